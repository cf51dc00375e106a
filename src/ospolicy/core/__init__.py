"""
ospolicy.core - Foundation Layer
==================================

Configuration, enumerations, exceptions, data models and logging setup
shared by every other package. Nothing in here performs I/O beyond reading
the configuration file.
"""

from ospolicy.core.config import (
    DeployConfig,
    FalconConfig,
    RolloutConfig,
    StagingConfig,
    load_config,
)
from ospolicy.core.enums import (
    CloudRegion,
    Platform,
    RolloutState,
    TransferState,
    WorkerOutcome,
)
from ospolicy.core.exceptions import (
    ArtifactNotFoundError,
    CatalogError,
    ConfigurationError,
    FanOutTimeoutError,
    ObjectNotFoundError,
    OSPolicyError,
    PolicyError,
    RolloutError,
    StorageError,
    TransferError,
)
from ospolicy.core.models import (
    ArtifactMetadata,
    ArtifactSpec,
    ObjectAttrs,
    ResolvedArtifact,
    RolloutSnapshot,
    TransferSnapshot,
)

__all__ = [
    "DeployConfig",
    "FalconConfig",
    "RolloutConfig",
    "StagingConfig",
    "load_config",
    "CloudRegion",
    "Platform",
    "RolloutState",
    "TransferState",
    "WorkerOutcome",
    "ArtifactNotFoundError",
    "CatalogError",
    "ConfigurationError",
    "FanOutTimeoutError",
    "ObjectNotFoundError",
    "OSPolicyError",
    "PolicyError",
    "RolloutError",
    "StorageError",
    "TransferError",
    "ArtifactMetadata",
    "ArtifactSpec",
    "ObjectAttrs",
    "ResolvedArtifact",
    "RolloutSnapshot",
    "TransferSnapshot",
]
