"""
Dry Run Example - Full Deployment Without Cloud Access
======================================================

This example runs the complete pipeline against in-process stand-ins:

    - MockCatalogClient instead of the Falcon API
    - InMemoryObjectStore instead of Cloud Storage
    - A printing command runner instead of gcloud

It stages every default installer family, writes the policy file to a
temporary directory and "creates" the assignment in two zones.

Usage:
    python examples/dry_run.py
"""

from __future__ import annotations

import asyncio
import tempfile
from typing import Sequence

from ospolicy import SensorDeployer
from ospolicy.core.config import DeployConfig, FalconConfig
from ospolicy.core.enums import CloudRegion
from ospolicy.core.logging import configure_logging
from ospolicy.infrastructure.object_store import InMemoryObjectStore
from ospolicy.integrations.catalog.mock import MockCatalogClient
from ospolicy.orchestration.rollout import CommandResult, CommandRunner
from ospolicy.staging.targets import default_artifact_specs


class EchoRunner(CommandRunner):
    """Prints the command it would run and reports success."""

    async def run(self, args: Sequence[str]) -> CommandResult:
        print("  $ gcloud " + " ".join(args))
        return CommandResult(returncode=0)


async def main() -> None:
    """Run one deployment and print the outcome."""
    configure_logging("WARNING")

    # Two versions per family: the run picks the older one
    catalog = MockCatalogClient(region=CloudRegion.US_2)
    for spec in default_artifact_specs(CloudRegion.US_2):
        for version in ("7.29.18209", "7.30.18306"):
            catalog.add_installer(
                spec.filter,
                name=f"falcon-sensor-{version}-{spec.name}.bin",
                version=version,
                content=f"{spec.name} {version}".encode(),
            )

    with tempfile.TemporaryDirectory() as output_dir:
        config = DeployConfig(
            bucket="example-sensor-bucket",
            zones=["us-central1-a", "us-central1-b"],
            output_dir=output_dir,
            inclusion_labels=["env:prod"],
            falcon=FalconConfig(provider="mock", cloud=CloudRegion.US_2),
        )

        print("Rollout commands")
        print("-" * 40)
        async with SensorDeployer(
            config,
            catalog=catalog,
            store=InMemoryObjectStore(),
            runner=EchoRunner(),
        ) as deployer:
            result = await deployer.run()

        print()
        print("Staged installers")
        print("-" * 40)
        for artifact in result.artifacts:
            print(f"{artifact.spec.name:<10} gs://{artifact.bucket}/{artifact.object_name}")

        print()
        print("Zones")
        print("-" * 40)
        for zone, state in result.rollouts.items():
            print(f"{zone:<16} {state.value}")

        print()
        print(f"Policy file ({result.policy_path.name}):")
        print(result.policy_path.read_text())


if __name__ == "__main__":
    asyncio.run(main())
