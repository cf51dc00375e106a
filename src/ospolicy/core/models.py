"""
ospolicy.core.models - Core Data Models
=========================================

This module defines the Pydantic data models that flow through the staging
pipeline and the rollout orchestrator. Every component speaks in terms of
these types.

Model Hierarchy:
    ArtifactSpec       → Which installer family to stage (immutable input)
    ArtifactMetadata   → What the catalog reported for it (runtime discovery)
    ObjectAttrs        → What the object store holds (bucket, name, generation)
    ResolvedArtifact   → Spec + metadata + final storage location
    TransferSnapshot   → Point-in-time view of one transfer, for display
    RolloutSnapshot    → Point-in-time view of one zone rollout, for display

Data Flow:
    ┌──────────────┐  ArtifactSpec   ┌────────────────┐  ResolvedArtifact  ┌──────────┐
    │ targets.py   │ ──────────────→ │ TransferWorker │ ─────────────────→ │  policy  │
    └──────────────┘                 └────────────────┘                    └──────────┘
                                            │ TransferSnapshot
                                            ↓
                                     ┌────────────────┐
                                     │ monitor loop   │
                                     └────────────────┘

Design Principles:
    1. Specs and snapshots are frozen: they are values, not shared state.
    2. The only mutable shared state (progress counters, rollout flags) lives
       in lock-guarded objects outside this module.
    3. Catalog field names match the distribution API payload so records
       validate straight from JSON.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ospolicy.core.enums import CloudRegion, Platform, RolloutState, TransferState


# =============================================================================
# Artifact Spec
# =============================================================================
# One logical installer family, e.g. "RHEL 8 on linux". The filter is an FQL
# selector against the catalog; os_short_name/os_version are the inventory
# filter values the generated policy uses to target VMs.
# =============================================================================
class ArtifactSpec(BaseModel):
    """Immutable description of an installer family to stage.

    Attributes:
        name: Stable identifier used in logs and display ("rhel-8").
        filter: Catalog query selector (FQL).
        os_short_name: Inventory OS short name ("rhel", "windows").
        os_version: Inventory OS version glob ("8*"), empty for "any".
        platform: Installer platform, drives the cloud-agnostic path rules.
        cloud_region: Falcon cloud the installer is downloaded from.
        bucket_prefix: Destination prefix, containing the cloud-region
            segment (e.g. "crowdstrike/falcon/us-2/linux/rhel/8").

    Example:
        >>> spec = ArtifactSpec(
        ...     name="rhel-8",
        ...     filter="os:'*RHEL*'+os_version:'8'+platform:'linux'",
        ...     os_short_name="rhel",
        ...     os_version="8*",
        ...     platform=Platform.LINUX,
        ...     cloud_region=CloudRegion.US_2,
        ...     bucket_prefix="crowdstrike/falcon/us-2/linux/rhel/8",
        ... )
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Stable artifact identifier for logs and display")
    filter: str = Field(description="Catalog query selector")
    os_short_name: str = Field(description="Inventory OS short name")
    os_version: str = Field(default="", description="Inventory OS version glob")
    platform: Platform = Field(description="Installer platform")
    cloud_region: CloudRegion = Field(description="Falcon cloud region")
    bucket_prefix: str = Field(description="Destination path prefix")

    @property
    def os_key(self) -> str:
        """Key used to map the staged artifact onto a policy resource."""
        return f"{self.os_short_name}{self.os_version}"


# =============================================================================
# Artifact Metadata
# =============================================================================
class ArtifactMetadata(BaseModel):
    """A single installer record returned by the catalog.

    Field names follow the distribution API's JSON payload.
    """

    model_config = ConfigDict(extra="ignore")

    name: str = Field(description="Installer file name")
    version: str = Field(description="Installer version string")
    file_size: int = Field(ge=0, description="Installer size in bytes")
    sha256: str = Field(description="Content digest, also the download id")
    os: str = Field(default="", description="Operating system family")
    os_version: str = Field(default="", description="Operating system version")
    platform: str = Field(default="", description="Platform reported by the catalog")
    description: str = Field(default="", description="Human readable description")


# =============================================================================
# Object Attributes
# =============================================================================
class ObjectAttrs(BaseModel):
    """Attributes of a stored object.

    ``generation`` is the store's monotonically increasing version marker
    for the object; policies pin installers by generation.
    """

    model_config = ConfigDict(frozen=True)

    bucket: str
    name: str
    size: int = Field(ge=0)
    generation: int = Field(ge=0)


# =============================================================================
# Resolved Artifact
# =============================================================================
class ResolvedArtifact(BaseModel):
    """An ArtifactSpec after staging: what was resolved and where it lives.

    Owned exclusively by its TransferWorker while the worker runs; the
    coordinator and the policy builder only read it afterwards.

    Attributes:
        spec: The originating spec.
        metadata: Catalog record of the staged installer.
        bucket: Destination bucket.
        object_name: Final object key (prefix/version/file name).
        generation: Object generation, None until existence is confirmed.
        size: Stored size in bytes, None until existence is confirmed.
        already_existed: True when staging was skipped because the object
            was already present.
    """

    spec: ArtifactSpec
    metadata: ArtifactMetadata
    bucket: str
    object_name: str
    generation: Optional[int] = None
    size: Optional[int] = None
    already_existed: bool = False

    @property
    def full_path(self) -> str:
        """``bucket/object_name`` as used by the policy document."""
        return f"{self.bucket}/{self.object_name}"

    @property
    def is_confirmed(self) -> bool:
        """Whether the object is known to exist in storage."""
        return self.generation is not None


# =============================================================================
# Display Snapshots
# =============================================================================
# Produced by workers on demand for the monitor loop. Taking a snapshot reads
# the worker's shared fields under their lock, so a snapshot never mixes
# values from two different moments.
# =============================================================================
class TransferSnapshot(BaseModel):
    """Point-in-time view of one TransferWorker."""

    model_config = ConfigDict(frozen=True)

    name: str
    state: TransferState
    written: int = 0
    total: int = 0
    done: bool = False
    attempt: int = 0


class RolloutSnapshot(BaseModel):
    """Point-in-time view of one AssignmentRollout."""

    model_config = ConfigDict(frozen=True)

    name: str
    zone: str
    state: RolloutState
    done: bool = False
    failed: bool = False
