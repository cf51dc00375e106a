"""
ospolicy.orchestration - Orchestration Layer
==============================================

This package contains the components that run staging and rollout work
concurrently and decide what a failure means for the group.

Components:
    - RetryPolicy / retry_async: Bounded exponential backoff, last error only
    - FanOutCoordinator:         Concurrent launch, cancel-on-first-failure,
                                 read-only monitor loop
    - AssignmentRollout:         Per-zone deployment command state machine
    - CommandRunner:             Deployment CLI invocation seam
"""

from ospolicy.orchestration.retry import RetryPolicy, retry_async
from ospolicy.orchestration.fan_out import (
    FanOutCoordinator,
    RolloutSummary,
    TransferSummary,
    log_rollout_progress,
    log_transfer_progress,
    summarize_rollouts,
    summarize_transfers,
)
from ospolicy.orchestration.rollout import (
    AssignmentRollout,
    CommandResult,
    CommandRunner,
    SubprocessCommandRunner,
    is_already_exists,
)

__all__ = [
    # Retry
    "RetryPolicy",
    "retry_async",
    # Fan-out
    "FanOutCoordinator",
    "RolloutSummary",
    "TransferSummary",
    "log_rollout_progress",
    "log_transfer_progress",
    "summarize_rollouts",
    "summarize_transfers",
    # Rollout
    "AssignmentRollout",
    "CommandResult",
    "CommandRunner",
    "SubprocessCommandRunner",
    "is_already_exists",
]
