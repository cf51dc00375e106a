"""
falcon-os-policy - Falcon Sensor Staging and GCP OS Policy Rollout
====================================================================

Stages CrowdStrike Falcon sensor installers from the sensor download API
into a Cloud Storage bucket, generates a GCP OS policy assignment that
installs them, and creates that assignment in every requested zone:

    CID lookup  →  Staging (one worker per installer)  →  Policy document
                →  Rollout (one assignment per zone)

Architecture Layers (top to bottom):
    1. Facade               - SensorDeployer
    2. Orchestration Layer  - FanOutCoordinator, retry, AssignmentRollout
    3. Staging / Policy     - Path rules, progress, transfers, policy YAML
    4. Infrastructure Layer - Object stores (GCS, in-memory)
    5. Integration Layer    - Sensor catalog clients (Falcon, Mock)

Quick Start:
    >>> from ospolicy import SensorDeployer
    >>> from ospolicy.core.config import load_config
    >>> async with SensorDeployer(load_config()) as deployer:
    ...     result = await deployer.run()
"""

# =============================================================================
# Package Version
# =============================================================================
__version__ = "0.1.0"

# =============================================================================
# Package-Level Exports
# =============================================================================
# The SensorDeployer facade is the main entry point for users.
# For specific components, import from submodules directly:
#   from ospolicy.core.config import DeployConfig
#   from ospolicy.staging import TransferWorker
#   from ospolicy.policy import build_policy
# =============================================================================
from ospolicy.deployer import DeploymentResult, SensorDeployer

__all__ = ["DeploymentResult", "SensorDeployer", "__version__"]
