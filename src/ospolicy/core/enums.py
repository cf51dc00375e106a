"""
ospolicy.core.enums - Type-Safe Enumerations
==============================================

This module defines the enumeration types used throughout the sensor
deployment pipeline. Enums provide type safety, prevent typos, and make the
codebase self-documenting.

All enums inherit from both `str` and `Enum`, which means:
    - They serialize to strings in JSON/YAML (Pydantic-friendly)
    - They can be compared with plain strings: Platform.LINUX == "linux"
    - They parse directly from environment variables and YAML config

Architecture Mapping:

    ┌─────────────────────────────────────────────────────────────────┐
    │  STAGING PIPELINE                                               │
    │    CloudRegion: Which Falcon cloud the installers come from     │
    │    Platform: Installer platform family (linux / windows)        │
    │    TransferState: TransferWorker state machine                  │
    ├─────────────────────────────────────────────────────────────────┤
    │  ROLLOUT ORCHESTRATOR                                           │
    │    RolloutState: AssignmentRollout state machine                │
    ├─────────────────────────────────────────────────────────────────┤
    │  FAN-OUT                                                        │
    │    WorkerOutcome: How a fanned-out task settled                 │
    └─────────────────────────────────────────────────────────────────┘
"""

from enum import Enum


# =============================================================================
# Cloud Region Enumeration
# =============================================================================
# The Falcon clouds an API client can talk to. The value doubles as the
# path segment used in cloud-specific bucket prefixes, e.g.
#   crowdstrike/falcon/us-2/linux/rhel/8
#
# AUTODISCOVER is only valid as configuration input: the catalog client
# resolves it to a concrete region after authenticating.
# =============================================================================
class CloudRegion(str, Enum):
    """Falcon cloud regions.

    Usage:
        >>> CloudRegion("us-gov-1") is CloudRegion.US_GOV_1
        True
        >>> CloudRegion.US_2.value
        'us-2'
    """

    US_1 = "us-1"
    US_2 = "us-2"
    EU_1 = "eu-1"
    US_GOV_1 = "us-gov-1"
    AUTODISCOVER = "autodiscover"

    @property
    def is_government(self) -> bool:
        """Whether this region is a government cloud."""
        return self is CloudRegion.US_GOV_1


class Platform(str, Enum):
    """Installer platform families known to the path rules."""

    LINUX = "linux"
    WINDOWS = "windows"
    MAC = "mac"


# =============================================================================
# Transfer State Enumeration
# =============================================================================
# State machine for a single artifact's staging run:
#
#   PENDING → QUERYING_CATALOG → CHECKING_EXISTENCE ─┬→ ALREADY_EXISTS → DONE
#                    ↑                               └→ TRANSFERRING → VERIFYING → DONE
#                    └──────────── RETRYING ←── (any attempt failure)
#
# FAILED is terminal once the retry budget is spent or the run is cancelled.
# =============================================================================
class TransferState(str, Enum):
    """Lifecycle states of a TransferWorker."""

    PENDING = "pending"
    QUERYING_CATALOG = "querying_catalog"
    CHECKING_EXISTENCE = "checking_existence"
    ALREADY_EXISTS = "already_exists"
    TRANSFERRING = "transferring"
    VERIFYING = "verifying"
    RETRYING = "retrying"
    DONE = "done"
    FAILED = "failed"


class RolloutState(str, Enum):
    """Lifecycle states of an AssignmentRollout.

    State Transitions:
        PENDING → RUNNING:          The deployment command has been started
        RUNNING → SUCCEEDED:        Command exited 0
        RUNNING → ALREADY_EXISTS:   Command failed with the "already exists"
                                    marker (idempotent re-run)
        RUNNING → FAILED:           Any other failure, or cancellation
    """

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"


class WorkerOutcome(str, Enum):
    """How a task launched by a FanOutCoordinator settled."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
