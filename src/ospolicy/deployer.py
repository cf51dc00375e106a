"""
ospolicy.deployer - SensorDeployer Top-Level Facade
=====================================================

This module implements the SensorDeployer facade, the single entry point
that runs a complete deployment: resolve the CID, stage every installer,
write the policy document, and roll it out to every zone.

Architecture Context:

    ┌──────────────────────────────────────────────────────────┐
    │                SensorDeployer (Facade)                   │
    │                                                          │
    │  1. resolve_cid()  ── CatalogClient.get_cid()            │
    │                                                          │
    │  2. stage()        ── FanOutCoordinator("staging")       │
    │                         └── TransferWorker × artifacts   │
    │                               ├── CatalogClient          │
    │                               └── ObjectStore            │
    │                                                          │
    │  3. write_policy() ── build_policy → write_policy        │
    │                                                          │
    │  4. rollout()      ── FanOutCoordinator("rollout")       │
    │                         └── AssignmentRollout × zones    │
    │                               └── CommandRunner          │
    └──────────────────────────────────────────────────────────┘

    Each phase only starts when the previous one succeeded. A failure
    stops the pipeline, is logged together with a support report, and is
    re-raised unchanged.

Usage:
    >>> config = load_config()
    >>> async with SensorDeployer(config) as deployer:
    ...     result = await deployer.run()

    With test doubles:
    >>> deployer = SensorDeployer(
    ...     config,
    ...     catalog=MockCatalogClient(),
    ...     store=InMemoryObjectStore(),
    ...     runner=FakeRunner(),
    ... )
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence

import structlog
from pydantic import BaseModel, Field

from ospolicy.core.config import DeployConfig
from ospolicy.core.enums import RolloutState
from ospolicy.core.models import ArtifactSpec, ResolvedArtifact
from ospolicy.core.reporting import format_error_report
from ospolicy.infrastructure.object_store import ObjectStore
from ospolicy.integrations.catalog.base import CatalogClient
from ospolicy.integrations.catalog.factory import create_catalog_client
from ospolicy.orchestration.fan_out import (
    FanOutCoordinator,
    TickCallback,
    log_rollout_progress,
    log_transfer_progress,
)
from ospolicy.orchestration.rollout import (
    AssignmentRollout,
    CommandRunner,
    SubprocessCommandRunner,
)
from ospolicy.policy.document import build_policy
from ospolicy.policy.renderer import write_policy
from ospolicy.staging.targets import default_artifact_specs
from ospolicy.staging.transfer import TransferWorker


logger = structlog.get_logger()


class DeploymentResult(BaseModel):
    """Outcome of a successful SensorDeployer.run()."""

    cid: str
    artifacts: list[ResolvedArtifact] = Field(default_factory=list)
    policy_path: Path
    rollouts: dict[str, RolloutState] = Field(default_factory=dict)


class SensorDeployer:
    """Top-level facade running staging and rollout.

    Lifecycle:
        1. ``SensorDeployer(config)``: wire components
        2. ``await initialize()``: create and authenticate clients
        3. ``await run()`` (or the individual phases)
        4. ``await shutdown()``: close clients

    Args:
        config: Deployment configuration. Defaults to DeployConfig(), which
            reads environment variables.
        catalog: Catalog client. Created from ``config.falcon`` if None.
        store: Object store. A GCSObjectStore if None.
        runner: Deployment command runner. Runs ``config.rollout.gcloud_binary``
            as a subprocess if None.
        staging_on_tick: Staging monitor callback. Logs progress if None.
        rollout_on_tick: Rollout monitor callback. Logs zone states if None.
        sleep: Backoff sleep used between transfer attempts.

    Attributes:
        last_report: Support report of the most recent failed run.
    """

    def __init__(
        self,
        config: Optional[DeployConfig] = None,
        *,
        catalog: Optional[CatalogClient] = None,
        store: Optional[ObjectStore] = None,
        runner: Optional[CommandRunner] = None,
        staging_on_tick: Optional[TickCallback] = None,
        rollout_on_tick: Optional[TickCallback] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config or DeployConfig()
        self._catalog = catalog
        self._store = store
        self._runner = runner or SubprocessCommandRunner(self._config.rollout.gcloud_binary)
        self._staging_on_tick = staging_on_tick or log_transfer_progress
        self._rollout_on_tick = rollout_on_tick or log_rollout_progress
        self._sleep = sleep

        self.staging_group: Optional[FanOutCoordinator[TransferWorker]] = None
        self.rollout_group: Optional[FanOutCoordinator[AssignmentRollout]] = None
        self.last_report: Optional[str] = None

        self._initialized = False
        self._logger = logger.bind(component="sensor_deployer")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def config(self) -> DeployConfig:
        return self._config

    @property
    def catalog(self) -> CatalogClient:
        self._ensure_initialized()
        assert self._catalog is not None
        return self._catalog

    @property
    def store(self) -> ObjectStore:
        self._ensure_initialized()
        assert self._store is not None
        return self._store

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # Lifecycle Management
    # =========================================================================

    async def initialize(self) -> None:
        """Create missing clients and authenticate against the catalog.

        Idempotent: Safe to call multiple times.
        """
        if self._initialized:
            return

        self._logger.info("deployer_initializing", provider=self._config.falcon.provider)
        if self._catalog is None:
            self._catalog = create_catalog_client(
                self._config.falcon, chunk_size=self._config.staging.chunk_size
            )
        if self._store is None:
            from ospolicy.infrastructure.gcs_store import GCSObjectStore
            self._store = GCSObjectStore()

        await self._catalog.authenticate()

        self._initialized = True
        self._logger.info("deployer_initialized", region=self._catalog.region.value)

    async def shutdown(self) -> None:
        """Close the catalog and the store.

        Idempotent: Safe to call multiple times.
        """
        if not self._initialized:
            return

        if self._catalog is not None:
            await self._catalog.close()
        if self._store is not None:
            await self._store.close()

        self._initialized = False
        self._logger.info("deployer_shutdown_complete")

    async def __aenter__(self) -> SensorDeployer:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()

    # =========================================================================
    # Phases
    # =========================================================================

    async def resolve_cid(self) -> str:
        """The configured CID, or the account's CID from the catalog."""
        if self._config.falcon.cid:
            return self._config.falcon.cid
        self._logger.info("cid_lookup_started")
        cid = await self.catalog.get_cid()
        self._logger.info("cid_resolved", cid=cid)
        return cid

    def artifact_specs(self) -> list[ArtifactSpec]:
        """Default installer families for the catalog's region."""
        return default_artifact_specs(self.catalog.region)

    async def stage(self, specs: Optional[Sequence[ArtifactSpec]] = None) -> list[ResolvedArtifact]:
        """Stage every spec concurrently; the first failure cancels the rest.

        Returns:
            ResolvedArtifacts in spec order.
        """
        specs = list(specs) if specs is not None else self.artifact_specs()
        staging = self._config.staging
        workers = [
            TransferWorker(
                spec,
                self._config.bucket,
                self.catalog,
                self.store,
                retry_policy=staging.retry,
                sleep=self._sleep,
            )
            for spec in specs
        ]
        self.staging_group = FanOutCoordinator(
            "staging",
            workers,
            tick_interval=staging.tick_interval_seconds,
            on_tick=self._staging_on_tick,
            timeout=staging.timeout_seconds,
        )
        return await self.staging_group.run()

    def write_policy(self, cid: str, artifacts: Sequence[ResolvedArtifact]) -> Path:
        """Build the policy document and write it to ``config.policy_path``."""
        document = build_policy(
            cid,
            artifacts,
            linux_install_params=self._config.linux_install_params,
            windows_install_params=self._config.windows_install_params,
            inclusion_labels=self._config.inclusion_labels,
            exclusion_labels=self._config.exclusion_labels,
        )
        return write_policy(document, self._config.policy_path)

    async def rollout(self, policy_path: Path) -> dict[str, RolloutState]:
        """Create the policy assignment in every zone concurrently.

        Returns:
            ``zone -> SUCCEEDED | ALREADY_EXISTS``, zones in sorted order.
        """
        zones = sorted(self._config.zones)
        rollout_config = self._config.rollout
        rollouts = [
            AssignmentRollout(
                zone,
                policy_path,
                skip_wait=self._config.skip_wait,
                runner=self._runner,
                assignment_prefix=rollout_config.assignment_prefix,
            )
            for zone in zones
        ]
        self.rollout_group = FanOutCoordinator(
            "rollout",
            rollouts,
            tick_interval=rollout_config.tick_interval_seconds,
            on_tick=self._rollout_on_tick,
            timeout=rollout_config.timeout_seconds,
        )
        states = await self.rollout_group.run()
        return dict(zip(zones, states))

    async def run(self, specs: Optional[Sequence[ArtifactSpec]] = None) -> DeploymentResult:
        """Run CID lookup, staging, policy generation and rollout in order.

        Raises:
            ConfigurationError: Before any work if the config is incomplete.
            OSPolicyError: The first error of the failing phase. The support
                report is logged and kept in ``last_report``.
        """
        self._config.validate_for_run()
        self._ensure_initialized()
        self.last_report = None

        cid = await self._phase("Unexpected error while grabbing cid.", self.resolve_cid())
        artifacts = await self._phase(
            "An error occurred while downloading and uploading sensor binaries "
            f"to bucket({self._config.bucket}).",
            self.stage(specs),
        )
        self._logger.info("staging_complete", artifacts=len(artifacts))

        explanation = f"Unexpected error while creating template file ({self._config.policy_path})"
        try:
            policy_path = self.write_policy(cid, artifacts)
        except Exception as e:
            self._report(explanation, e)
            raise

        rollouts = await self._phase(
            "An error occurred while creating a GCP OS Policy Assignment",
            self.rollout(policy_path),
        )
        self._logger.info("deployment_complete", zones=len(rollouts), policy=str(policy_path))

        return DeploymentResult(
            cid=cid,
            artifacts=artifacts,
            policy_path=policy_path,
            rollouts=rollouts,
        )

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    async def _phase(self, explanation: str, operation: Awaitable[Any]) -> Any:
        try:
            return await operation
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._report(explanation, e)
            raise

    def _report(self, explanation: str, error: BaseException) -> None:
        self.last_report = format_error_report(explanation, error)
        self._logger.error(
            "deployment_failed",
            explanation=explanation,
            error=str(error),
            error_type=type(error).__name__,
            report=self.last_report,
        )

    def _ensure_initialized(self) -> None:
        """Raises RuntimeError if initialize() has not been called."""
        if not self._initialized:
            raise RuntimeError(
                "SensorDeployer has not been initialized. "
                "Call await deployer.initialize() or use 'async with SensorDeployer() as deployer:'"
            )

    def __repr__(self) -> str:
        return (
            f"SensorDeployer("
            f"initialized={self._initialized}, "
            f"bucket={self._config.bucket!r}, "
            f"zones={len(self._config.zones)})"
        )
