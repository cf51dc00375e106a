"""
ospolicy.orchestration.fan_out - Concurrent Fan-Out with Fail-Fast
====================================================================

This module runs a group of independent workers concurrently and joins
them at a barrier. It is used twice per deployment: once for the staging
group (one TransferWorker per installer) and once for the rollout group
(one AssignmentRollout per zone).

Fan-Out / Fan-In:

                          ┌──→ worker A.run() ──┐
    FanOutCoordinator.run ├──→ worker B.run() ──┼──→ asyncio.wait(FIRST_EXCEPTION)
                          └──→ worker C.run() ──┘            │
                                                             ├─ all succeeded → results in order
          monitor task ── every tick_interval ──→ on_tick    └─ B failed → cancel A, C
          (snapshots only, never mutates)                            → wait for A, C to settle
                                                                     → raise B's error

Failure Semantics:
    - The first worker to fail wins: its error is the only one raised.
      Errors of siblings that fail later (including their cancellation) are
      recorded in ``outcomes`` but never aggregated.
    - Every sibling still running is cancelled, and ``run()`` only returns
      or raises once all of them have settled.
    - An optional ``timeout`` bounds the whole group; on expiry every
      worker is cancelled and FanOutTimeoutError is raised.
    - Cancelling ``run()`` itself cancels every worker.

Monitor Loop:
    Samples ``worker.snapshot()`` for every worker each tick and hands the
    list to ``on_tick``. It stops once every snapshot reports ``done``, or
    when the group settles, in which case it renders one final frame.

Usage:
    >>> coordinator = FanOutCoordinator("staging", workers, tick_interval=1.0)
    >>> resolved = await coordinator.run()
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Generic, Optional, Protocol, Sequence, TypeVar

import structlog
from pydantic import BaseModel, Field

from ospolicy.core.enums import WorkerOutcome
from ospolicy.core.exceptions import FanOutTimeoutError
from ospolicy.core.models import RolloutSnapshot, TransferSnapshot


logger = structlog.get_logger()


class FanOutWorker(Protocol):
    """What a FanOutCoordinator needs from a worker."""

    @property
    def name(self) -> str: ...

    async def run(self) -> Any: ...

    def snapshot(self) -> Any: ...


W = TypeVar("W", bound=FanOutWorker)

TickCallback = Callable[[list[Any]], None]


# =============================================================================
# FanOutCoordinator
# =============================================================================
class FanOutCoordinator(Generic[W]):
    """Run workers concurrently; cancel the rest on the first failure.

    Args:
        name: Group name for logs and timeout errors ("staging", "rollout").
        workers: Workers exposing ``name``, ``async run()`` and ``snapshot()``.
        tick_interval: Seconds between monitor samples.
        on_tick: Receives the list of snapshots on every tick. None disables
            the monitor loop.
        timeout: Optional deadline in seconds for the whole group.

    Attributes:
        outcomes: ``worker name -> WorkerOutcome`` once ``run()`` settled.
        first_error: The error ``run()`` raised, if any.
    """

    def __init__(
        self,
        name: str,
        workers: Sequence[W],
        tick_interval: float = 1.0,
        on_tick: Optional[TickCallback] = None,
        timeout: Optional[float] = None,
    ) -> None:
        if tick_interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {tick_interval}")

        self.name = name
        self.workers: list[W] = list(workers)
        self.tick_interval = tick_interval
        self.on_tick = on_tick
        self.timeout = timeout

        self.outcomes: dict[str, WorkerOutcome] = {}
        self.first_error: Optional[BaseException] = None
        self.frames = 0

        self._logger = logger.bind(component="fan_out", group=name)

    # =========================================================================
    # Run
    # =========================================================================

    async def run(self) -> list[Any]:
        """Run every worker and wait for the group to settle.

        Returns:
            Each worker's result, in worker order.

        Raises:
            The first worker error, FanOutTimeoutError on deadline expiry, or
            asyncio.CancelledError if ``run()`` itself was cancelled.
        """
        self.outcomes = {}
        self.first_error = None
        if not self.workers:
            return []

        self._logger.info("fan_out_started", workers=len(self.workers), timeout=self.timeout)

        failure_order: list[asyncio.Task] = []

        def _record_failure(task: asyncio.Task) -> None:
            if not task.cancelled() and task.exception() is not None:
                failure_order.append(task)

        tasks: list[asyncio.Task] = []
        for worker in self.workers:
            task = asyncio.create_task(worker.run(), name=f"{self.name}:{worker.name}")
            task.add_done_callback(_record_failure)
            tasks.append(task)

        stop = asyncio.Event()
        monitor = (
            asyncio.create_task(self._monitor(stop), name=f"{self.name}:monitor")
            if self.on_tick is not None
            else None
        )

        timed_out = False
        try:
            done, pending = await asyncio.wait(
                tasks,
                timeout=self.timeout,
                return_when=asyncio.FIRST_EXCEPTION,
            )
            if pending:
                timed_out = not any(
                    not t.cancelled() and t.exception() is not None for t in done
                )
                await self._cancel_and_settle(pending)
        except asyncio.CancelledError:
            await self._cancel_and_settle([t for t in tasks if not t.done()])
            self._record_outcomes(tasks)
            self._logger.warning("fan_out_cancelled")
            raise
        finally:
            stop.set()
            if monitor is not None:
                await monitor

        self._record_outcomes(tasks)

        if failure_order:
            self.first_error = failure_order[0].exception()
            self._logger.error(
                "fan_out_failed",
                worker=failure_order[0].get_name(),
                error=str(self.first_error),
                outcomes={k: v.value for k, v in self.outcomes.items()},
            )
            raise self.first_error

        if timed_out:
            self.first_error = FanOutTimeoutError(group=self.name, timeout_seconds=self.timeout or 0.0)
            self._logger.error("fan_out_timed_out", timeout=self.timeout)
            raise self.first_error

        self._logger.info("fan_out_completed", workers=len(tasks))
        return [t.result() for t in tasks]

    async def _cancel_and_settle(self, pending: Sequence[asyncio.Task]) -> None:
        for task in pending:
            task.cancel()
        # gather with return_exceptions waits for every task to finish
        await asyncio.gather(*pending, return_exceptions=True)

    def _record_outcomes(self, tasks: Sequence[asyncio.Task]) -> None:
        for worker, task in zip(self.workers, tasks):
            if not task.done() or task.cancelled():
                self.outcomes[worker.name] = WorkerOutcome.CANCELLED
            elif task.exception() is not None:
                self.outcomes[worker.name] = WorkerOutcome.FAILED
            else:
                self.outcomes[worker.name] = WorkerOutcome.SUCCEEDED

    # =========================================================================
    # Monitor Loop
    # =========================================================================

    def _emit(self) -> list[Any]:
        snapshots = [worker.snapshot() for worker in self.workers]
        self.frames += 1
        if self.on_tick is not None:
            self.on_tick(snapshots)
        return snapshots

    async def _monitor(self, stop: asyncio.Event) -> None:
        try:
            while True:
                snapshots = self._emit()
                if all(getattr(s, "done", False) for s in snapshots):
                    return
                try:
                    await asyncio.wait_for(stop.wait(), timeout=self.tick_interval)
                except asyncio.TimeoutError:
                    continue
                self._emit()
                return
        except Exception as e:
            self._logger.error("fan_out_monitor_failed", error=str(e), error_type=type(e).__name__)


# =============================================================================
# Display Aggregates
# =============================================================================
class TransferSummary(BaseModel):
    """Aggregate of a staging group's progress at one tick."""

    count: int = 0
    completed: int = 0
    sized: int = 0
    written: int = 0
    total: int = 0
    fraction: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def all_done(self) -> bool:
        return self.completed == self.count


class RolloutSummary(BaseModel):
    """Aggregate of a rollout group's state at one tick."""

    count: int = 0
    done: int = 0
    failed: int = 0

    @property
    def succeeded(self) -> int:
        return self.done - self.failed


def summarize_transfers(snapshots: Sequence[TransferSnapshot]) -> TransferSummary:
    """Sum written/total bytes and count completed transfers.

    A transfer is sized once its total is known (or it is done). The
    byte fraction stays 0.0 until every transfer is sized.

    Example:
        >>> summary = summarize_transfers(snapshots)
        >>> f"{summary.completed}/{summary.count} {summary.fraction:.0%}"
    """
    written = sum(s.written for s in snapshots)
    total = sum(s.total for s in snapshots)
    completed = sum(1 for s in snapshots if s.done)
    sized = sum(1 for s in snapshots if s.total or s.done)
    if sized < len(snapshots):
        fraction = 0.0
    elif total:
        fraction = min(written / total, 1.0)
    else:
        fraction = 1.0 if snapshots and completed == len(snapshots) else 0.0
    return TransferSummary(
        count=len(snapshots),
        completed=completed,
        sized=sized,
        written=written,
        total=total,
        fraction=fraction,
    )


def summarize_rollouts(snapshots: Sequence[RolloutSnapshot]) -> RolloutSummary:
    """Count finished and failed zones."""
    return RolloutSummary(
        count=len(snapshots),
        done=sum(1 for s in snapshots if s.done),
        failed=sum(1 for s in snapshots if s.failed),
    )


def log_transfer_progress(snapshots: list[TransferSnapshot]) -> None:
    """Default staging ``on_tick``: one structured log line per tick."""
    summary = summarize_transfers(snapshots)
    logger.info(
        "staging_progress",
        completed=summary.completed,
        count=summary.count,
        sized=summary.sized,
        written=summary.written,
        total=summary.total,
        percent=round(summary.fraction * 100, 1),
    )


def log_rollout_progress(snapshots: list[RolloutSnapshot]) -> None:
    """Default rollout ``on_tick``: per-zone state plus counts."""
    summary = summarize_rollouts(snapshots)
    logger.info(
        "rollout_progress",
        done=summary.done,
        failed=summary.failed,
        count=summary.count,
        zones={s.zone: s.state.value for s in snapshots},
    )
