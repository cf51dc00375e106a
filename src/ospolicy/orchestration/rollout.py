"""
ospolicy.orchestration.rollout - Per-Zone Policy Assignment Rollout
=====================================================================

An AssignmentRollout creates the OS policy assignment for one compute zone
by invoking the deployment CLI and classifying its outcome.

State Machine:

    PENDING → RUNNING ─┬→ SUCCEEDED        exit status 0
                       ├→ ALREADY_EXISTS   non-zero exit, stderr says the
                       │                   assignment already exists
                       └→ FAILED           anything else, or cancellation

Command:
    gcloud compute os-config os-policy-assignments create \\
        <prefix>-<zone> --file=<policy path> --location=<zone> [--async]

Completion Flags:
    ``done`` and ``failed`` are written together, exactly once, under one
    threading.Lock. ``snapshot()`` reads them under the same lock, so the
    monitor loop never sees ``failed`` without ``done``.

    Cancellation outranks the command's status: a rollout cancelled while
    the command runs always ends ``done=True, failed=True``, and the child
    process is killed before the cancellation propagates.

Usage:
    >>> rollout = AssignmentRollout("us-central1-a", Path("template.yaml"))
    >>> await rollout.run()
    >>> rollout.snapshot().state
"""

from __future__ import annotations

import asyncio
import shutil
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence, Union

import structlog
from pydantic import BaseModel

from ospolicy.core.enums import RolloutState
from ospolicy.core.exceptions import RolloutError
from ospolicy.core.models import RolloutSnapshot


logger = structlog.get_logger()


ALREADY_EXISTS_MARKER = "ALREADY_EXISTS: Requested entity already exists"
DEFAULT_ASSIGNMENT_PREFIX = "crowdstrike-sensor-deploy"


def is_already_exists(stderr: str) -> bool:
    """Whether deployment output reports an existing assignment.

    Example:
        >>> is_already_exists("ERROR: (gcloud...) ALREADY_EXISTS: Requested entity already exists")
        True
    """
    return ALREADY_EXISTS_MARKER in stderr


# =============================================================================
# Command Runners
# =============================================================================
class CommandResult(BaseModel):
    """Exit status and captured output of one command."""

    returncode: int
    stdout: str = ""
    stderr: str = ""


class CommandRunner(ABC):
    """Runs the deployment CLI with a list of arguments."""

    @abstractmethod
    async def run(self, args: Sequence[str]) -> CommandResult:
        """Run the command and wait for it.

        Raises:
            FileNotFoundError: If the binary cannot be found.
            asyncio.CancelledError: After the child process was stopped.
        """
        ...


class SubprocessCommandRunner(CommandRunner):
    """Runs a binary found on PATH as an asyncio subprocess.

    Args:
        binary: Executable name or path, "gcloud" by default.
    """

    def __init__(self, binary: str = "gcloud") -> None:
        self.binary = binary
        self._logger = logger.bind(component="subprocess_runner", binary=binary)

    def resolve(self) -> str:
        path = shutil.which(self.binary)
        if path is None:
            raise FileNotFoundError(f"executable {self.binary!r} not found in PATH")
        return path

    async def run(self, args: Sequence[str]) -> CommandResult:
        executable = self.resolve()
        process = await asyncio.create_subprocess_exec(
            executable,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            self._logger.warning("subprocess_killed", pid=process.pid)
            raise

        return CommandResult(
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )


# =============================================================================
# AssignmentRollout
# =============================================================================
class AssignmentRollout:
    """Creates the policy assignment for one zone.

    Attributes:
        zone: Target compute zone.
        policy_path: Policy document passed with ``--file``.
        skip_wait: Pass ``--async`` so the command returns immediately.
    """

    def __init__(
        self,
        zone: str,
        policy_path: Union[str, Path],
        skip_wait: bool = False,
        runner: Optional[CommandRunner] = None,
        assignment_prefix: str = DEFAULT_ASSIGNMENT_PREFIX,
    ) -> None:
        self.zone = zone
        self.policy_path = Path(policy_path)
        self.skip_wait = skip_wait
        self.assignment_prefix = assignment_prefix

        self._runner = runner or SubprocessCommandRunner()
        self._lock = threading.Lock()
        self._state = RolloutState.PENDING
        self._done = False
        self._failed = False
        self._stderr = ""

        self._logger = logger.bind(component="assignment_rollout", zone=zone)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def name(self) -> str:
        return self.assignment_name

    @property
    def assignment_name(self) -> str:
        return f"{self.assignment_prefix}-{self.zone}"

    @property
    def done(self) -> bool:
        with self._lock:
            return self._done

    @property
    def failed(self) -> bool:
        with self._lock:
            return self._failed

    @property
    def state(self) -> RolloutState:
        with self._lock:
            return self._state

    @property
    def stderr(self) -> str:
        with self._lock:
            return self._stderr

    def snapshot(self) -> RolloutSnapshot:
        with self._lock:
            return RolloutSnapshot(
                name=self.assignment_name,
                zone=self.zone,
                state=self._state,
                done=self._done,
                failed=self._failed,
            )

    def build_args(self) -> list[str]:
        args = [
            "compute",
            "os-config",
            "os-policy-assignments",
            "create",
            self.assignment_name,
            f"--file={self.policy_path}",
            f"--location={self.zone}",
        ]
        if self.skip_wait:
            args.append("--async")
        return args

    def _finish(self, state: RolloutState, failed: bool, stderr: str = "") -> None:
        with self._lock:
            if self._done:
                return
            self._state = state
            self._done = True
            self._failed = failed
            self._stderr = stderr

    # =========================================================================
    # Run
    # =========================================================================

    async def run(self) -> RolloutState:
        """Run the deployment command for this zone.

        Returns:
            SUCCEEDED or ALREADY_EXISTS.

        Raises:
            RolloutError: ROLLOUT_FAILED with the captured stderr, or
                DEPLOY_TOOL_NOT_FOUND when the CLI is missing.
            asyncio.CancelledError: If cancelled; the zone is marked failed.
        """
        with self._lock:
            self._state = RolloutState.RUNNING
        self._logger.info("rollout_started", assignment=self.assignment_name, skip_wait=self.skip_wait)

        try:
            result = await self._runner.run(self.build_args())
        except asyncio.CancelledError:
            self._finish(RolloutState.FAILED, failed=True)
            self._logger.warning("rollout_cancelled")
            raise
        except FileNotFoundError as e:
            self._finish(RolloutState.FAILED, failed=True, stderr=str(e))
            raise RolloutError(
                message=f"deployment tool not found: {e}",
                zone=self.zone,
                error_code="DEPLOY_TOOL_NOT_FOUND",
            ) from e
        except OSError as e:
            self._finish(RolloutState.FAILED, failed=True, stderr=str(e))
            raise RolloutError(
                message=f"could not run deployment tool: {e}",
                zone=self.zone,
            ) from e

        if result.returncode == 0:
            self._finish(RolloutState.SUCCEEDED, failed=False)
            self._logger.info("rollout_succeeded")
            return RolloutState.SUCCEEDED

        if is_already_exists(result.stderr):
            self._finish(RolloutState.ALREADY_EXISTS, failed=False, stderr=result.stderr)
            self._logger.info("rollout_already_exists")
            return RolloutState.ALREADY_EXISTS

        self._finish(RolloutState.FAILED, failed=True, stderr=result.stderr)
        self._logger.error("rollout_failed", returncode=result.returncode, stderr=result.stderr.strip())
        raise RolloutError(
            message=result.stderr.strip() or f"command exited with status {result.returncode}",
            zone=self.zone,
            stderr=result.stderr,
            details={"returncode": result.returncode, "assignment": self.assignment_name},
        )

    def __repr__(self) -> str:
        snap = self.snapshot()
        return f"AssignmentRollout(zone={self.zone!r}, state={snap.state.value!r})"
