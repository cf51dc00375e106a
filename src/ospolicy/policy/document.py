"""
ospolicy.policy.document - Policy Document Model
==================================================

The policy document is derived once, after every installer is staged. It
aggregates:

    - the CID and the per-platform install parameters
    - one storage location (bucket, object, generation) per supported OS
    - inclusion / exclusion label predicates selecting the target VMs

OS Resource Keys:
    A staged artifact is mapped onto the document by its inventory key,
    ``os_short_name + os_version`` ("rhel" + "8*" → "rhel8*"). Artifacts
    whose key is not listed in OS_RESOURCES are not part of the document.

    ┌─────────────┬─────────┬──────────┐
    │ key         │ package │ platform │
    ├─────────────┼─────────┼──────────┤
    │ sles12*     │ rpm     │ linux    │
    │ rhel7*..10* │ rpm     │ linux    │
    │ ol7*..10*   │ rpm     │ linux    │
    │ centos7*..  │ rpm     │ linux    │
    │ debian      │ deb     │ linux    │
    │ ubuntu      │ deb     │ linux    │
    │ windows     │ exe     │ windows  │
    └─────────────┴─────────┴──────────┘

Label Predicates:
    "env" selects VMs carrying the label at all; "env:prod" selects VMs
    where the label has that value.
"""

from __future__ import annotations

from typing import Iterable, NamedTuple, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ospolicy.core.exceptions import PolicyError
from ospolicy.core.models import ResolvedArtifact


class OsTarget(NamedTuple):
    os_short_name: str
    os_version: str
    package: str


OS_RESOURCES: dict[str, OsTarget] = {
    "sles12*": OsTarget("sles", "12*", "rpm"),
    "sles15*": OsTarget("sles", "15*", "rpm"),
    "rhel7*": OsTarget("rhel", "7*", "rpm"),
    "rhel8*": OsTarget("rhel", "8*", "rpm"),
    "rhel9*": OsTarget("rhel", "9*", "rpm"),
    "rhel10*": OsTarget("rhel", "10*", "rpm"),
    "ol7*": OsTarget("ol", "7*", "rpm"),
    "ol8*": OsTarget("ol", "8*", "rpm"),
    "ol9*": OsTarget("ol", "9*", "rpm"),
    "ol10*": OsTarget("ol", "10*", "rpm"),
    "centos7*": OsTarget("centos", "7*", "rpm"),
    "centos8*": OsTarget("centos", "8*", "rpm"),
    "centos9*": OsTarget("centos", "9*", "rpm"),
    "centos10*": OsTarget("centos", "10*", "rpm"),
    "debian": OsTarget("debian", "", "deb"),
    "ubuntu": OsTarget("ubuntu", "", "deb"),
    "windows": OsTarget("windows", "", "exe"),
}


# =============================================================================
# Models
# =============================================================================
class LabelSet(BaseModel):
    """One VM label predicate. An empty value matches any value."""

    model_config = ConfigDict(frozen=True)

    label: str
    value: str = ""


class OsResource(BaseModel):
    """Storage location of one staged installer."""

    model_config = ConfigDict(frozen=True)

    bucket: str
    object: str
    generation: int
    package: str


class PolicyDocument(BaseModel):
    """Everything needed to render the OS policy assignment.

    Attributes:
        cid: Falcon customer id.
        linux_install_params: Formatted linux installer arguments.
        windows_install_params: Formatted windows installer arguments.
        resources: OS resource key → staged installer location, in
            OS_RESOURCES order.
        inclusion_labels: VMs must match one of these, if any are given.
        exclusion_labels: VMs matching any of these are skipped.
    """

    cid: str
    linux_install_params: str
    windows_install_params: str
    resources: dict[str, OsResource] = Field(default_factory=dict)
    inclusion_labels: list[LabelSet] = Field(default_factory=list)
    exclusion_labels: list[LabelSet] = Field(default_factory=list)


# =============================================================================
# Install Parameters
# =============================================================================
def format_linux_install_params(cid: str, extra: str = "") -> str:
    """Linux installer arguments: ``--cid=<cid>`` followed by ``extra``.

    Example:
        >>> format_linux_install_params("ABC-12", "--tags=prod")
        '--cid=ABC-12 --tags=prod'
    """
    return f"--cid={cid} {extra.strip()}".rstrip()


def format_windows_install_params(cid: str, extra: str = "") -> str:
    """Windows installer arguments as a quoted, comma-separated list.

    Each space-separated extra argument is wrapped in single quotes unless
    it already is.

    Example:
        >>> format_windows_install_params("ABC-12", "GROUPING_TAGS=prod")
        "'/install', '/quiet', '/norestart', 'CID=ABC-12', 'GROUPING_TAGS=prod'"
    """
    params = ["'/install'", "'/quiet'", "'/norestart'", f"'CID={cid}'"]
    for arg in extra.split():
        if not arg.startswith("'"):
            arg = "'" + arg
        if not arg.endswith("'"):
            arg = arg + "'"
        params.append(arg)
    return ", ".join(params)


# =============================================================================
# Labels
# =============================================================================
def parse_labels(entries: Iterable[str]) -> list[LabelSet]:
    """Parse ``label`` / ``label:value`` entries.

    Raises:
        PolicyError: INVALID_LABEL for entries with more than one ":" or
            an empty label name.
    """
    labels: list[LabelSet] = []
    for entry in entries:
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(":")
        if len(parts) > 2 or not parts[0]:
            raise PolicyError(
                message=f"invalid label predicate {entry!r}, expected 'label' or 'label:value'",
                error_code="INVALID_LABEL",
                details={"label": entry},
            )
        labels.append(LabelSet(label=parts[0], value=parts[1] if len(parts) == 2 else ""))
    return labels


# =============================================================================
# Builder
# =============================================================================
def build_policy(
    cid: str,
    artifacts: Sequence[ResolvedArtifact],
    linux_install_params: str = "",
    windows_install_params: str = "",
    inclusion_labels: Optional[Iterable[str]] = None,
    exclusion_labels: Optional[Iterable[str]] = None,
) -> PolicyDocument:
    """Build the policy document from successfully staged artifacts.

    Pure function: no I/O.

    Args:
        cid: Falcon customer id.
        artifacts: Staged artifacts; every one must carry a generation.
        linux_install_params: Extra linux installer arguments.
        windows_install_params: Extra windows installer arguments.
        inclusion_labels: ``label`` / ``label:value`` entries.
        exclusion_labels: ``label`` / ``label:value`` entries.

    Raises:
        PolicyError: If the CID is empty, an artifact was not confirmed in
            storage, or a label entry is malformed.
    """
    if not cid:
        raise PolicyError(message="a CID is required to build the policy", error_code="MISSING_CID")

    located: dict[str, OsResource] = {}
    for artifact in artifacts:
        if not artifact.is_confirmed:
            raise PolicyError(
                message=f"artifact {artifact.spec.name} has no confirmed storage generation",
                error_code="UNSTAGED_ARTIFACT",
                details={"artifact": artifact.spec.name},
            )
        target = OS_RESOURCES.get(artifact.spec.os_key)
        if target is None:
            continue
        located[artifact.spec.os_key] = OsResource(
            bucket=artifact.bucket,
            object=artifact.object_name,
            generation=artifact.generation,
            package=target.package,
        )

    return PolicyDocument(
        cid=cid,
        linux_install_params=format_linux_install_params(cid, linux_install_params),
        windows_install_params=format_windows_install_params(cid, windows_install_params),
        resources={key: located[key] for key in OS_RESOURCES if key in located},
        inclusion_labels=parse_labels(inclusion_labels or []),
        exclusion_labels=parse_labels(exclusion_labels or []),
    )
