"""
ospolicy.policy.renderer - OS Policy Assignment Rendering
===========================================================

Turns a PolicyDocument into the YAML file consumed by
``gcloud compute os-config os-policy-assignments create --file=...``.

Rendered Layout:

    osPolicies:
      - id: crowdstrike-falcon-sensor
        mode: ENFORCEMENT
        allowNoResourceGroupMatch: true
        resourceGroups:            one group per staged OS resource
          - inventoryFilters: [{osShortName, osVersion}]
            resources: [...]       rpm/deb package + CID check, or
                                   windows installer copy + install
    instanceFilter:                all VMs, or the label predicates
    rollout:
      disruptionBudget: {percent: 100}
      minWaitDuration: 60s

Every installer is pinned by bucket, object and generation, so a later
upload under the same key never changes what an existing assignment
installs.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Union

import structlog
import yaml

from ospolicy.core.exceptions import PolicyError
from ospolicy.policy.document import OS_RESOURCES, LabelSet, OsResource, PolicyDocument


logger = structlog.get_logger()


OS_POLICY_ID = "crowdstrike-falcon-sensor"
LINUX_FALCONCTL = "/opt/CrowdStrike/falconctl"
WINDOWS_INSTALLER_PATH = "C:\\Windows\\Temp\\WindowsSensor.exe"
ROLLOUT_DISRUPTION_PERCENT = 100
ROLLOUT_MIN_WAIT = "60s"


# =============================================================================
# Resource Builders
# =============================================================================
def _gcs_source(resource: OsResource) -> dict[str, Any]:
    return {
        "gcs": {
            "bucket": resource.bucket,
            "object": resource.object,
            "generation": resource.generation,
        }
    }


def _linux_resources(resource: OsResource, install_params: str) -> list[dict[str, Any]]:
    configure = (
        f"{LINUX_FALCONCTL} -s -f {install_params}\n"
        "systemctl restart falcon-sensor || service falcon-sensor restart\n"
        "exit 100\n"
    )
    validate = (
        f"if {LINUX_FALCONCTL} -g --cid 2>/dev/null | grep -q 'cid='; then exit 100; fi\n"
        "exit 101\n"
    )
    return [
        {
            "id": "install-falcon-sensor",
            "pkg": {
                "desiredState": "INSTALLED",
                resource.package: {"source": _gcs_source(resource)},
            },
        },
        {
            "id": "configure-falcon-sensor",
            "exec": {
                "validate": {"interpreter": "SHELL", "script": validate},
                "enforce": {"interpreter": "SHELL", "script": configure},
            },
        },
    ]


def _windows_resources(resource: OsResource, install_params: str) -> list[dict[str, Any]]:
    validate = (
        "if (Get-Service -Name CSFalconService -ErrorAction SilentlyContinue) { exit 100 }\n"
        "exit 101\n"
    )
    enforce = (
        f"Start-Process -FilePath '{WINDOWS_INSTALLER_PATH}' "
        f"-ArgumentList @({install_params}) -Wait\n"
        "exit 100\n"
    )
    return [
        {
            "id": "copy-falcon-sensor",
            "file": {
                "path": WINDOWS_INSTALLER_PATH,
                "state": "PRESENT",
                "file": _gcs_source(resource),
            },
        },
        {
            "id": "install-falcon-sensor",
            "exec": {
                "validate": {"interpreter": "POWERSHELL", "script": validate},
                "enforce": {"interpreter": "POWERSHELL", "script": enforce},
            },
        },
    ]


def _label_filters(labels: list[LabelSet]) -> list[dict[str, Any]]:
    return [{"labels": {label.label: label.value}} for label in labels]


# =============================================================================
# Public API
# =============================================================================
def to_assignment(doc: PolicyDocument) -> dict[str, Any]:
    """Build the OS policy assignment structure as plain data."""
    groups = []
    for key, resource in doc.resources.items():
        target = OS_RESOURCES[key]
        inventory_filter = {"osShortName": target.os_short_name}
        if target.os_version:
            inventory_filter["osVersion"] = target.os_version

        if resource.package == "exe":
            resources = _windows_resources(resource, doc.windows_install_params)
        else:
            resources = _linux_resources(resource, doc.linux_install_params)

        groups.append({"inventoryFilters": [inventory_filter], "resources": resources})

    instance_filter: dict[str, Any] = {}
    if doc.inclusion_labels:
        instance_filter["inclusionLabels"] = _label_filters(doc.inclusion_labels)
    if doc.exclusion_labels:
        instance_filter["exclusionLabels"] = _label_filters(doc.exclusion_labels)
    if not instance_filter:
        instance_filter["all"] = True

    return {
        "osPolicies": [
            {
                "id": OS_POLICY_ID,
                "mode": "ENFORCEMENT",
                "allowNoResourceGroupMatch": True,
                "resourceGroups": groups,
            }
        ],
        "instanceFilter": instance_filter,
        "rollout": {
            "disruptionBudget": {"percent": ROLLOUT_DISRUPTION_PERCENT},
            "minWaitDuration": ROLLOUT_MIN_WAIT,
        },
    }


def render_policy(doc: PolicyDocument) -> bytes:
    """Render ``doc`` as UTF-8 YAML bytes.

    Raises:
        PolicyError: If the document has no staged resources.
    """
    if not doc.resources:
        raise PolicyError(
            message="no staged installers to reference in the policy",
            error_code="EMPTY_POLICY",
        )
    text = yaml.safe_dump(to_assignment(doc), sort_keys=False, default_flow_style=False)
    return text.encode("utf-8")


def write_policy(doc: PolicyDocument, path: Union[str, Path]) -> Path:
    """Render ``doc`` and write it to ``path``, creating parent directories.

    Returns:
        The path written.

    Raises:
        PolicyError: POLICY_WRITE_FAILED if the file cannot be written.
    """
    target = Path(path)
    data = render_policy(doc)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    except OSError as e:
        raise PolicyError(
            message=f"Unexpected error while creating template file ({target}): {e}",
            error_code="POLICY_WRITE_FAILED",
            details={"path": str(target)},
        ) from e

    logger.info("policy_written", path=str(target), resources=len(doc.resources), size=len(data))
    return target
