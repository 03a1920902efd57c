"""Step records and the pending-step queue.

A :class:`StepRecord` is created on enqueue and leaves the
:class:`StepQueue` when its completion callback first fires, not when the
step function returns, so a step that keeps working asynchronously keeps
the queue busy.

::

    StepQueue
      ├── pending   deque[StepRecord]   not yet dispatched (FIFO)
      ├── active    StepRecord | None   dispatched, not yet completed
      └── stalled   bool                active record faulted; queue halted
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from stepline.execution.directives import KeyDirective

if TYPE_CHECKING:
    from stepline.execution.context import ExecutionContext

Complete = Callable[..., None]
CallbackStep = Callable[[Complete, "ExecutionContext", Any], Any]


@dataclass(frozen=True)
class StepRecord:
    """One queued step: its output directives and its callback-style function."""

    directives: tuple[KeyDirective, ...]
    fn: CallbackStep
    label: str | None = None

    @property
    def name(self) -> str:
        if self.label:
            return self.label
        return getattr(self.fn, "__name__", type(self.fn).__name__)


class StepQueue:
    """Ordered pending records plus the single in-flight record."""

    def __init__(self) -> None:
        self._pending: deque[StepRecord] = deque()
        self.active: StepRecord | None = None
        self.stalled = False

    def append(self, record: StepRecord) -> bool:
        """Add ``record``; return True if the queue was idle before."""
        was_idle = self.is_idle
        self._pending.append(record)
        return was_idle

    def take(self) -> StepRecord | None:
        """Move the next pending record into the in-flight slot."""
        if not self._pending:
            return None
        record = self._pending.popleft()
        self.active = record
        return record

    def release(self) -> None:
        """The in-flight record completed."""
        self.active = None

    def stall(self) -> None:
        """The in-flight record faulted; keep it at the head and halt."""
        self.stalled = True

    def clear(self) -> int:
        """Drop every record that has not been dispatched.

        A stalled head record is dropped too; a record still running is left
        to complete. Returns the number of records dropped.
        """
        dropped = len(self._pending)
        self._pending.clear()
        if self.stalled:
            self.active = None
            self.stalled = False
            dropped += 1
        return dropped

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    @property
    def is_idle(self) -> bool:
        return not self._pending and self.active is None

    def __len__(self) -> int:
        return len(self._pending) + (1 if self.active is not None else 0)

    def __iter__(self) -> Iterator[StepRecord]:
        if self.active is not None:
            yield self.active
        yield from self._pending
