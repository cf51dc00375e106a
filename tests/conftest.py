"""
Shared Test Fixtures for falcon-os-policy
===========================================

This module provides reusable pytest fixtures used across the entire
test suite. Fixtures are organized by layer:

    1. Configuration fixtures
    2. Infrastructure fixtures (ObjectStore)
    3. Integration fixtures (catalog clients)
    4. Staging fixtures (ArtifactSpecs)
    5. Orchestration fixtures (command runners, retry policy)
"""

from __future__ import annotations

from typing import Sequence

import pytest

from ospolicy.core.config import DeployConfig, FalconConfig, StagingConfig
from ospolicy.core.enums import CloudRegion, Platform
from ospolicy.core.models import ArtifactSpec
from ospolicy.infrastructure.object_store import InMemoryObjectStore
from ospolicy.integrations.catalog.mock import MockCatalogClient
from ospolicy.orchestration.retry import RetryPolicy
from ospolicy.orchestration.rollout import CommandResult, CommandRunner


RHEL8_FILTER = "os:'*RHEL*'+os_version:'8'+platform:'linux'"
WINDOWS_FILTER = "os:'Windows'+platform:'windows'"


class FakeCommandRunner(CommandRunner):
    """CommandRunner that records argument lists and replays scripted results.

    Attributes:
        calls: Every argument list passed to run().
        results: ``zone -> CommandResult``. Zones without an entry succeed.
        errors: ``zone -> exception`` raised instead of returning.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.results: dict[str, CommandResult] = {}
        self.errors: dict[str, BaseException] = {}

    @staticmethod
    def zone_of(args: Sequence[str]) -> str:
        for arg in args:
            if arg.startswith("--location="):
                return arg.split("=", 1)[1]
        return ""

    async def run(self, args: Sequence[str]) -> CommandResult:
        self.calls.append(list(args))
        zone = self.zone_of(args)
        if zone in self.errors:
            raise self.errors[zone]
        return self.results.get(zone, CommandResult(returncode=0))


async def _no_sleep(delay: float) -> None:
    """Backoff sleep replacement that returns immediately."""
    return None


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def deploy_config(tmp_path):
    """DeployConfig wired to the mock catalog with zero retry delays."""
    return DeployConfig(
        bucket="sensor-bucket",
        zones=["us-central1-b", "us-central1-a"],
        output_dir=tmp_path,
        falcon=FalconConfig(provider="mock", cloud=CloudRegion.US_2),
        staging=StagingConfig(
            retry=RetryPolicy(initial_delay=0.0, max_delay=0.0),
            tick_interval_seconds=0.01,
        ),
    )


# =============================================================================
# Infrastructure
# =============================================================================

@pytest.fixture
def object_store():
    """Fresh InMemoryObjectStore."""
    return InMemoryObjectStore()


# =============================================================================
# Catalog
# =============================================================================

@pytest.fixture
def mock_catalog():
    """Fresh MockCatalogClient for us-2 with no installers."""
    return MockCatalogClient(region=CloudRegion.US_2, chunk_size=16)


# =============================================================================
# Staging
# =============================================================================

@pytest.fixture
def rhel8_spec():
    """ArtifactSpec for RHEL 8 installers in us-2."""
    return ArtifactSpec(
        name="rhel-8",
        filter=RHEL8_FILTER,
        os_short_name="rhel",
        os_version="8*",
        platform=Platform.LINUX,
        cloud_region=CloudRegion.US_2,
        bucket_prefix="crowdstrike/falcon/us-2/linux/rhel/8",
    )


@pytest.fixture
def windows_spec():
    """ArtifactSpec for Windows installers in us-2."""
    return ArtifactSpec(
        name="windows",
        filter=WINDOWS_FILTER,
        os_short_name="windows",
        os_version="",
        platform=Platform.WINDOWS,
        cloud_region=CloudRegion.US_2,
        bucket_prefix="crowdstrike/falcon/us-2/windows",
    )


# =============================================================================
# Orchestration
# =============================================================================

@pytest.fixture
def fast_retry():
    """Default retry budget (4 attempts) without delays."""
    return RetryPolicy(initial_delay=0.0, max_delay=0.0)


@pytest.fixture
def instant_sleep():
    """Backoff sleep that returns immediately."""
    return _no_sleep


@pytest.fixture
def command_runner():
    """Fresh FakeCommandRunner where every zone succeeds."""
    return FakeCommandRunner()
