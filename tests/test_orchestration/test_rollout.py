"""
Tests for ospolicy.orchestration.rollout
==========================================

What's Being Tested:
    - is_already_exists() stderr classification
    - AssignmentRollout argument construction (--async with skip_wait)
    - Outcome classification: success, already-exists, failure, missing tool
    - done/failed are set together exactly once, including on cancellation
    - SubprocessCommandRunner against real local binaries (sh, sleep)
    - A rollout group fails with the first zone's error

The deployment CLI itself is never invoked; the ``command_runner`` fixture
records argument lists and replays scripted results.
"""

import asyncio
import shutil
from pathlib import Path
from typing import Sequence

import pytest

from ospolicy.core.enums import RolloutState, WorkerOutcome
from ospolicy.core.exceptions import RolloutError
from ospolicy.orchestration.fan_out import FanOutCoordinator
from ospolicy.orchestration.rollout import (
    ALREADY_EXISTS_MARKER,
    AssignmentRollout,
    CommandResult,
    CommandRunner,
    SubprocessCommandRunner,
    is_already_exists,
)


POLICY = Path("/tmp/ospolicy/template.yaml")
EXISTS_STDERR = (
    "ERROR: (gcloud.compute.os-config.os-policy-assignments.create) "
    "ALREADY_EXISTS: Requested entity already exists\n"
)


class _BlockingRunner(CommandRunner):
    """Blocks until cancelled, like a long-running deployment command."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.cancelled = False

    async def run(self, args: Sequence[str]) -> CommandResult:
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return CommandResult(returncode=0)


# =============================================================================
# Test: stderr classification
# =============================================================================
class TestIsAlreadyExists:
    """Tests for the standalone stderr classifier."""

    def test_marker_detected(self) -> None:
        """The gcloud ALREADY_EXISTS message is recognised."""
        assert is_already_exists(EXISTS_STDERR)
        assert ALREADY_EXISTS_MARKER in EXISTS_STDERR

    def test_other_errors(self) -> None:
        """Other failures and empty output are not."""
        assert not is_already_exists("ERROR: PERMISSION_DENIED")
        assert not is_already_exists("")


# =============================================================================
# Test: AssignmentRollout
# =============================================================================
class TestAssignmentRollout:
    """Tests for one zone's state machine."""

    def test_build_args(self, command_runner) -> None:
        """Arguments name the assignment, file and location."""
        rollout = AssignmentRollout("us-central1-a", POLICY, runner=command_runner)
        assert rollout.build_args() == [
            "compute",
            "os-config",
            "os-policy-assignments",
            "create",
            "crowdstrike-sensor-deploy-us-central1-a",
            f"--file={POLICY}",
            "--location=us-central1-a",
        ]

    def test_skip_wait_adds_async(self, command_runner) -> None:
        """skip_wait appends --async."""
        rollout = AssignmentRollout("us-central1-a", POLICY, skip_wait=True, runner=command_runner)
        assert rollout.build_args()[-1] == "--async"

    def test_custom_prefix(self, command_runner) -> None:
        """The assignment prefix is configurable."""
        rollout = AssignmentRollout("eu-west1-b", POLICY, runner=command_runner, assignment_prefix="falcon")
        assert rollout.assignment_name == "falcon-eu-west1-b"
        assert rollout.name == "falcon-eu-west1-b"

    async def test_success(self, command_runner) -> None:
        """Exit 0 → SUCCEEDED, done and not failed."""
        rollout = AssignmentRollout("us-central1-a", POLICY, runner=command_runner)
        assert rollout.snapshot().state is RolloutState.PENDING

        assert await rollout.run() is RolloutState.SUCCEEDED

        snap = rollout.snapshot()
        assert (snap.done, snap.failed) == (True, False)
        assert command_runner.calls == [rollout.build_args()]

    async def test_already_exists_is_success(self, command_runner) -> None:
        """A non-zero exit with the ALREADY_EXISTS marker counts as success."""
        command_runner.results["us-central1-a"] = CommandResult(returncode=1, stderr=EXISTS_STDERR)
        rollout = AssignmentRollout("us-central1-a", POLICY, runner=command_runner)

        assert await rollout.run() is RolloutState.ALREADY_EXISTS
        assert rollout.done is True
        assert rollout.failed is False

    async def test_failure_raises_with_stderr(self, command_runner) -> None:
        """Other non-zero exits raise RolloutError carrying stderr."""
        command_runner.results["us-central1-a"] = CommandResult(
            returncode=1, stderr="ERROR: PERMISSION_DENIED: caller lacks osconfig.create\n"
        )
        rollout = AssignmentRollout("us-central1-a", POLICY, runner=command_runner)

        with pytest.raises(RolloutError) as exc_info:
            await rollout.run()

        error = exc_info.value
        assert error.zone == "us-central1-a"
        assert error.error_code == "ROLLOUT_FAILED"
        assert error.message == "ERROR: PERMISSION_DENIED: caller lacks osconfig.create"
        assert error.details["returncode"] == 1
        assert rollout.state is RolloutState.FAILED
        assert (rollout.done, rollout.failed) == (True, True)
        assert "PERMISSION_DENIED" in rollout.stderr

    async def test_failure_without_stderr(self, command_runner) -> None:
        """A silent failure still gets a message."""
        command_runner.results["us-central1-a"] = CommandResult(returncode=2)
        rollout = AssignmentRollout("us-central1-a", POLICY, runner=command_runner)

        with pytest.raises(RolloutError, match="command exited with status 2"):
            await rollout.run()

    async def test_missing_tool(self, command_runner) -> None:
        """FileNotFoundError from the runner → DEPLOY_TOOL_NOT_FOUND."""
        command_runner.errors["us-central1-a"] = FileNotFoundError("gcloud")
        rollout = AssignmentRollout("us-central1-a", POLICY, runner=command_runner)

        with pytest.raises(RolloutError) as exc_info:
            await rollout.run()

        assert exc_info.value.error_code == "DEPLOY_TOOL_NOT_FOUND"
        assert rollout.failed is True

    async def test_cancellation_marks_failed(self) -> None:
        """Cancelled while running → done and failed, cancellation propagates."""
        runner = _BlockingRunner()
        rollout = AssignmentRollout("us-central1-a", POLICY, runner=runner)

        task = asyncio.create_task(rollout.run())
        await asyncio.wait_for(runner.started.wait(), timeout=5)
        assert rollout.state is RolloutState.RUNNING
        assert rollout.done is False

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert runner.cancelled is True
        snap = rollout.snapshot()
        assert (snap.state, snap.done, snap.failed) == (RolloutState.FAILED, True, True)


# =============================================================================
# Test: SubprocessCommandRunner
# =============================================================================
@pytest.mark.skipif(shutil.which("sh") is None, reason="needs a POSIX shell")
class TestSubprocessCommandRunner:
    """Tests for the asyncio subprocess runner."""

    async def test_captures_output_and_status(self) -> None:
        """stdout, stderr and the exit status are captured."""
        runner = SubprocessCommandRunner("sh")
        result = await runner.run(["-c", "echo out; echo err >&2; exit 3"])

        assert result.returncode == 3
        assert result.stdout == "out\n"
        assert result.stderr == "err\n"

    async def test_missing_binary(self) -> None:
        """An unknown binary raises FileNotFoundError before spawning."""
        runner = SubprocessCommandRunner("definitely-not-gcloud-binary")
        with pytest.raises(FileNotFoundError):
            await runner.run(["version"])

    async def test_missing_binary_in_rollout(self) -> None:
        """Through AssignmentRollout the missing tool is DEPLOY_TOOL_NOT_FOUND."""
        rollout = AssignmentRollout(
            "us-central1-a", POLICY, runner=SubprocessCommandRunner("definitely-not-gcloud-binary")
        )
        with pytest.raises(RolloutError) as exc_info:
            await rollout.run()
        assert exc_info.value.error_code == "DEPLOY_TOOL_NOT_FOUND"

    @pytest.mark.skipif(shutil.which("sleep") is None, reason="needs sleep(1)")
    async def test_cancel_kills_process(self) -> None:
        """Cancelling the runner terminates the child process."""
        runner = SubprocessCommandRunner("sleep")
        task = asyncio.create_task(runner.run(["30"]))
        await asyncio.sleep(0.2)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, timeout=5)


# =============================================================================
# Test: Rollout Group
# =============================================================================
class TestRolloutGroup:
    """Tests for many zones under one FanOutCoordinator."""

    async def test_all_zones_succeed(self, command_runner) -> None:
        """One command per zone, results in zone order."""
        zones = ["us-central1-a", "us-central1-b", "us-east1-c"]
        rollouts = [AssignmentRollout(z, POLICY, runner=command_runner) for z in zones]
        command_runner.results["us-central1-b"] = CommandResult(returncode=1, stderr=EXISTS_STDERR)

        states = await FanOutCoordinator("rollout", rollouts).run()

        assert states == [RolloutState.SUCCEEDED, RolloutState.ALREADY_EXISTS, RolloutState.SUCCEEDED]
        assert sorted(command_runner.zone_of(args) for args in command_runner.calls) == zones

    async def test_failing_zone_cancels_running_zones(self, command_runner) -> None:
        """A failed zone cancels a zone still running; the failure surfaces."""
        blocking = _BlockingRunner()
        command_runner.results["us-central1-b"] = CommandResult(returncode=1, stderr="ERROR: quota\n")
        slow = AssignmentRollout("us-central1-a", POLICY, runner=blocking)
        failing = AssignmentRollout("us-central1-b", POLICY, runner=command_runner)
        coordinator = FanOutCoordinator("rollout", [slow, failing])

        with pytest.raises(RolloutError) as exc_info:
            await coordinator.run()

        assert exc_info.value.zone == "us-central1-b"
        assert blocking.cancelled is True
        assert (slow.done, slow.failed) == (True, True)
        assert coordinator.outcomes[slow.name] is WorkerOutcome.CANCELLED
