"""
ospolicy.staging - Installer Staging Pipeline
===============================================

Everything needed to move sensor installers from the distribution catalog
into object storage, one TransferWorker per installer family.

Components:
    - paths:     Version-dependent, cloud-agnostic storage path rules
    - progress:  ProgressSink, the lock-guarded byte counter per transfer
    - transfer:  TransferWorker, the per-artifact retrying state machine
    - targets:   The default installer families for a cloud region
"""

from ospolicy.staging.paths import (
    object_key,
    parse_version,
    resolve_bucket_path,
    should_use_cloud_agnostic_path,
    strip_path_segment,
)
from ospolicy.staging.progress import ProgressSink
from ospolicy.staging.targets import default_artifact_specs
from ospolicy.staging.transfer import TransferWorker

__all__ = [
    "object_key",
    "parse_version",
    "resolve_bucket_path",
    "should_use_cloud_agnostic_path",
    "strip_path_segment",
    "ProgressSink",
    "default_artifact_specs",
    "TransferWorker",
]
