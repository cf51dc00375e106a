"""
ospolicy.staging.progress - Byte-Level Transfer Progress
==========================================================

A ProgressSink is the one piece of mutable state a TransferWorker shares
with the outside world. The worker writes into it while streaming an
installer; the monitor loop reads from it on every tick.

Sharing Model:

    TransferWorker (producer)              monitor loop (reader)
        set_total(file_size)                   snapshot() → (written, total)
        write(chunk) ──┐                       done / fraction
        write(chunk)   ├──> [ lock | written | total | known ] <──┘
        write(chunk) ──┘

    Every read and write takes the same threading.Lock, so the pair
    (written, total) is never observed half-updated. A threading lock is
    used rather than an asyncio one because uploads may write from a worker
    thread (asyncio.to_thread) while the event loop samples progress.

Invariants:
    - ``written <= total`` once a total is set; a write that would break it
      is rejected with TransferError(SIZE_MISMATCH).
    - ``set_total`` starts a fresh attempt: it resets ``written`` to zero.
    - ``done`` iff a total is known and ``written == total``.
"""

from __future__ import annotations

import threading
from typing import Union

from ospolicy.core.exceptions import TransferError


class ProgressSink:
    """Thread-safe written/total byte counter for one artifact.

    Usable as the second destination of a streaming copy: ``write(data)``
    counts ``len(data)`` and returns it, like a file object would.

    Attributes:
        name: Artifact name, used in error details.

    Example:
        >>> sink = ProgressSink("rhel-8")
        >>> sink.set_total(100)
        >>> sink.write(b"x" * 40)
        40
        >>> sink.add(60)
        >>> sink.done
        True
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._lock = threading.Lock()
        self._written = 0
        self._total = 0
        self._known = False

    # =========================================================================
    # Producer side
    # =========================================================================

    def set_total(self, total: int) -> None:
        """Start an attempt of ``total`` bytes, discarding earlier progress."""
        if total < 0:
            raise ValueError(f"total must be non-negative, got {total}")
        with self._lock:
            self._total = total
            self._written = 0
            self._known = True

    def complete(self, size: int) -> None:
        """Mark the artifact as fully present without transferring it."""
        if size < 0:
            raise ValueError(f"size must be non-negative, got {size}")
        with self._lock:
            self._total = size
            self._written = size
            self._known = True

    def add(self, count: int) -> None:
        """Count ``count`` more bytes as written.

        Raises:
            TransferError: SIZE_MISMATCH if the total is known and the write
                would exceed it. The counter is left unchanged.
        """
        with self._lock:
            if self._known and self._written + count > self._total:
                overflow = self._written + count
                total = self._total
            else:
                self._written += count
                return

        raise TransferError(
            message=(
                f"received {overflow} bytes for {self.name or 'artifact'}, "
                f"expected {total}"
            ),
            artifact=self.name,
            error_code="SIZE_MISMATCH",
            details={"received": overflow, "expected": total},
        )

    def write(self, data: Union[bytes, bytearray, memoryview]) -> int:
        """Count a chunk and return its length."""
        count = len(data)
        self.add(count)
        return count

    # =========================================================================
    # Reader side
    # =========================================================================

    def snapshot(self) -> tuple[int, int]:
        """``(written, total)`` read atomically."""
        with self._lock:
            return self._written, self._total

    @property
    def written(self) -> int:
        with self._lock:
            return self._written

    @property
    def total(self) -> int:
        with self._lock:
            return self._total

    @property
    def done(self) -> bool:
        """True once every advertised byte has been accounted for."""
        with self._lock:
            return self._known and self._written == self._total

    @property
    def fraction(self) -> float:
        """Completion ratio in [0, 1]; 0.0 before a total is known."""
        with self._lock:
            if not self._known:
                return 0.0
            if self._total == 0:
                return 1.0
            return min(max(self._written / self._total, 0.0), 1.0)

    def __repr__(self) -> str:
        written, total = self.snapshot()
        return f"ProgressSink(name={self.name!r}, written={written}, total={total})"
