"""
ospolicy.core.config - Configuration Management
=================================================

This module provides the configuration system for the sensor deployment
pipeline. Configuration can be loaded from multiple sources with the
following priority (highest first):

    1. Explicit constructor arguments / load_config() overrides
    2. YAML configuration file (ospolicy.yaml), passed as constructor args
    3. Environment variables (OSPOLICY_ prefix; FALCON_ for API credentials)
    4. Default values defined in the models below

    FALCON_* variables are read when the ``falcon`` section is left to its
    default. A ``falcon:`` block in YAML replaces it wholesale.

Architecture Context:
    A single DeployConfig is created once and passed down explicitly. No
    component reads package-level mutable state:

        DeployConfig
            ├── FalconConfig   → catalog client (credentials, cloud, CID)
            ├── StagingConfig  → TransferWorkers + staging FanOutCoordinator
            ├── RolloutConfig  → AssignmentRollouts + rollout FanOutCoordinator
            └── (top level)    → bucket, zones, install params, labels, output

Environment Variables:
    FALCON_CLIENT_ID=...
    FALCON_CLIENT_SECRET=...
    FALCON_CLOUD=us-2
    FALCON_CID=...
    OSPOLICY_BUCKET=my-sensor-bucket
    OSPOLICY_ZONES='["us-central1-a","us-central1-b"]'
    OSPOLICY_SKIP_WAIT=true
    OSPOLICY_STAGING__RETRY__MAX_RETRIES=5
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from ospolicy.core.enums import CloudRegion
from ospolicy.core.exceptions import ConfigurationError
from ospolicy.orchestration.retry import RetryPolicy


DEFAULT_CONFIG_FILE = "ospolicy.yaml"


# =============================================================================
# Falcon API Configuration
# =============================================================================
# A BaseSettings of its own so the original FALCON_* variables keep working
# even when the rest of the settings use the OSPOLICY_ prefix.
# =============================================================================
class FalconConfig(BaseSettings):
    """Configuration for the sensor distribution API.

    Attributes:
        provider: "falcon" for the real API, "mock" for dry runs and tests.
        client_id: OAuth2 client id.
        client_secret: OAuth2 client secret.
        cloud: Falcon cloud region. "autodiscover" resolves the region from
            the token response.
        cid: Customer id baked into install parameters. Looked up from the
            API when not set.
        base_url: Override for the API base URL (proxies, testing).
        request_timeout_seconds: Per-request timeout for API calls. Installer
            downloads use it as the idle read timeout between chunks.
    """

    provider: Literal["falcon", "mock"] = Field(
        default="falcon",
        description="Catalog client implementation",
    )
    client_id: Optional[str] = Field(default=None, description="Falcon API client id")
    client_secret: Optional[str] = Field(default=None, description="Falcon API client secret")
    cloud: CloudRegion = Field(
        default=CloudRegion.AUTODISCOVER,
        description="Falcon cloud: autodiscover, us-1, us-2, eu-1, us-gov-1",
    )
    cid: Optional[str] = Field(default=None, description="Falcon CID used at install time")
    base_url: Optional[str] = Field(default=None, description="API base URL override")
    request_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        le=3600,
        description="Timeout for individual API requests",
    )

    model_config = {
        "env_prefix": "FALCON_",
        "case_sensitive": False,
    }


# =============================================================================
# Staging Configuration
# =============================================================================
class StagingConfig(BaseModel):
    """Settings for the staging fan-out group.

    Attributes:
        retry: Retry budget per artifact (4 attempts, 2s → 30s backoff).
        tick_interval_seconds: How often the monitor loop samples progress.
        chunk_size: Download chunk size in bytes.
        timeout_seconds: Optional deadline for the whole staging group.
    """

    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    tick_interval_seconds: float = Field(default=1.0, gt=0, le=60)
    chunk_size: int = Field(default=1024 * 1024, ge=1024)
    timeout_seconds: Optional[float] = Field(default=None, gt=0)


# =============================================================================
# Rollout Configuration
# =============================================================================
class RolloutConfig(BaseModel):
    """Settings for the zone rollout fan-out group.

    Attributes:
        gcloud_binary: Name or path of the deployment CLI.
        assignment_prefix: Prefix of the OS policy assignment resource
            name; the zone is appended.
        tick_interval_seconds: How often the monitor loop samples zones.
        timeout_seconds: Optional deadline for the whole rollout group.
    """

    gcloud_binary: str = Field(default="gcloud")
    assignment_prefix: str = Field(default="crowdstrike-sensor-deploy")
    tick_interval_seconds: float = Field(default=1.0, gt=0, le=60)
    timeout_seconds: Optional[float] = Field(default=None, gt=0)


# =============================================================================
# Main Configuration
# =============================================================================
class DeployConfig(BaseSettings):
    """Top-level configuration for a staging + rollout run.

    Attributes:
        log_level: Logging level name for structlog filtering.
        log_format: "console" or "json".
        bucket: Destination bucket for staged installers.
        output_dir: Directory the policy document is written to.
        policy_file_name: File name of the generated policy document.
        zones: Compute zones to create policy assignments in.
        skip_wait: Pass --async to the deployment command.
        linux_install_params: Extra linux installer arguments (excluding CID).
        windows_install_params: Extra windows installer arguments (excluding CID).
        inclusion_labels: "label" or "label:value" entries a VM must carry.
        exclusion_labels: "label" or "label:value" entries a VM must not carry.

    Example:
        >>> config = DeployConfig(bucket="sensors", zones=["us-central1-a"])
        >>> config.validate_for_run()
    """

    # -------------------------------------------------------------------------
    # General Settings
    # -------------------------------------------------------------------------
    log_level: str = Field(default="INFO")
    log_format: Literal["console", "json"] = Field(default="console")

    # -------------------------------------------------------------------------
    # Staging target and rollout inputs
    # -------------------------------------------------------------------------
    bucket: str = Field(default="", description="GCS bucket for sensor binaries")
    output_dir: Path = Field(default_factory=Path.cwd)
    policy_file_name: str = Field(default="template.yaml")
    zones: list[str] = Field(default_factory=list)
    skip_wait: bool = Field(default=False)
    linux_install_params: str = Field(default="")
    windows_install_params: str = Field(default="")
    inclusion_labels: list[str] = Field(default_factory=list)
    exclusion_labels: list[str] = Field(default_factory=list)

    # -------------------------------------------------------------------------
    # Nested Configurations
    # -------------------------------------------------------------------------
    falcon: FalconConfig = Field(default_factory=FalconConfig)
    staging: StagingConfig = Field(default_factory=StagingConfig)
    rollout: RolloutConfig = Field(default_factory=RolloutConfig)

    model_config = {
        "env_prefix": "OSPOLICY_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }

    @property
    def policy_path(self) -> Path:
        """Where the generated policy document is written."""
        return self.output_dir / self.policy_file_name

    def validate_for_run(self) -> None:
        """Check the inputs a full run cannot do without.

        Raises:
            ConfigurationError: When the bucket or the zone list is missing,
                or when real API credentials are required but absent.
        """
        if not self.bucket:
            raise ConfigurationError(
                message="A storage bucket is required to stage sensor binaries",
                error_code="MISSING_BUCKET",
            )
        if not self.zones:
            raise ConfigurationError(
                message="At least one zone is required to create policy assignments",
                error_code="NO_ZONES",
            )
        if self.falcon.provider == "falcon" and not (
            self.falcon.client_id and self.falcon.client_secret
        ):
            raise ConfigurationError(
                message="Falcon API client id and secret are required",
                error_code="MISSING_CREDENTIALS",
            )


# =============================================================================
# Configuration Loader
# =============================================================================
def load_config(path: Optional[str] = None, **overrides: Any) -> DeployConfig:
    """Load configuration from a YAML file and/or environment variables.

    Args:
        path: YAML file to read. If None, ``ospolicy.yaml`` in the current
            directory is used when present.
        **overrides: Explicit values that win over the file.

    Returns:
        A validated DeployConfig.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigurationError: If the YAML file cannot be parsed.
    """
    if path is None:
        default_path = Path(DEFAULT_CONFIG_FILE)
        if default_path.exists():
            path = str(default_path)

    yaml_data: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(config_path) as f:
            try:
                raw_data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    message=f"Invalid YAML in {path}: {e}",
                    error_code="INVALID_CONFIG_FILE",
                    details={"path": str(config_path)},
                ) from e
            if isinstance(raw_data, dict):
                yaml_data = raw_data

    yaml_data.update(overrides)
    return DeployConfig(**yaml_data)
