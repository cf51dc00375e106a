"""
ospolicy.policy - Policy Document Generation
==============================================

Builds the OS policy assignment document from staged installers and writes
it to disk for the rollout group.

Components:
    - build_policy:  PolicyDocument from CID, params, artifacts and labels
    - render_policy: YAML bytes of the assignment
    - write_policy:  Render and persist to ``<output_dir>/<policy_file_name>``
"""

from ospolicy.policy.document import (
    LabelSet,
    OsResource,
    PolicyDocument,
    build_policy,
    format_linux_install_params,
    format_windows_install_params,
    parse_labels,
)
from ospolicy.policy.renderer import render_policy, to_assignment, write_policy

__all__ = [
    "LabelSet",
    "OsResource",
    "PolicyDocument",
    "build_policy",
    "format_linux_install_params",
    "format_windows_install_params",
    "parse_labels",
    "render_policy",
    "to_assignment",
    "write_policy",
]
