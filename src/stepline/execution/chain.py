"""Chain queue — steps that hand their outputs straight to the next step.

``ChainQueue`` is the simpler, context-free sibling of
:class:`~stepline.execution.queue.SerialQueue`: there is no shared context
and no directives. Whatever a step completes with becomes the positional
arguments of the next step.

Completion follows the error-first convention, ``done(error, *outputs)``:

- with an error handler registered, a truthy ``error`` stops the chain and
  goes to the handler; otherwise ``outputs`` flow on. The handler takes a
  single argument, so only ``error`` reaches it and any ``outputs`` passed
  alongside it are dropped;
- without a handler nothing is interpreted and every argument passed to
  ``done`` (the leading ``error`` included) flows on unchanged.

::

    chain = ChainQueue()
    chain.on_error(report)
    chain.enqueue_callback(lambda done: done(None, 2, 3))
    chain.enqueue_awaitable(lambda a, b: fetch_sum(a, b))   # receives 2, 3
    chain.enqueue(lambda total: print(total))              # passes nothing on
    chain.on_complete(lambda *args: print("done"))
    await chain.join()
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from stepline.core.errors import FailureOrigin, QueueStateError
from stepline.core.logging import get_logger
from stepline.core.settings import QueueSettings, get_settings
from stepline.execution.deferral import Deferrer, next_turn, select_deferrer
from stepline.execution.dispatch import dispatch
from stepline.execution.handlers import CompletionSlot, ErrorChannel, ErrorHandler
from stepline.execution.records import StepQueue, StepRecord

logger = get_logger(__name__)


class ChainQueue:
    """Serial queue that forwards each step's outputs to the next step."""

    def __init__(
        self,
        *,
        deferrer: Deferrer | None = None,
        settings: QueueSettings | None = None,
        name: str | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._deferrer = deferrer or select_deferrer(self._settings)
        self.name = name
        self.args: tuple[Any, ...] = ()
        self._halted = False

        self._log = logger.bind(queue=name)
        self._steps = StepQueue()
        self._errors = ErrorChannel(self._log)
        self._completion = CompletionSlot()
        self._runner: asyncio.Task | None = None

    # ── Building ─────────────────────────────────────────────────────

    def enqueue_callback(self, fn: Callable[..., Any], *, label: str | None = None) -> ChainQueue:
        """Queue ``fn(done, *args)``; ``done(error, *outputs)`` ends it."""
        record = StepRecord((), fn, label)
        start = self._steps.is_idle and not self.running
        if start:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError as exc:
                raise QueueStateError(
                    "ChainQueue needs a running event loop to dispatch steps",
                    cause=exc,
                ).with_context(queue=self.name) from exc

        self._steps.append(record)
        if start:
            self._halted = False
            self._runner = loop.create_task(self._drain())
        return self

    def enqueue(self, fn: Callable[..., Any], *, label: str | None = None) -> ChainQueue:
        """Queue ``fn(*args)``; nothing is passed on to the next step."""

        def run(done: Callable[..., None], *args: Any) -> None:
            fn(*args)
            done()

        return self.enqueue_callback(run, label=label or getattr(fn, "__name__", None))

    def enqueue_awaitable(
        self,
        fn: Callable[..., Awaitable[Any]],
        *,
        label: str | None = None,
    ) -> ChainQueue:
        """Queue ``fn(*args)`` returning an awaitable; its result flows on."""

        async def run(done: Callable[..., None], *args: Any) -> None:
            try:
                result = await fn(*args)
            except Exception as exc:
                done(exc)
                return
            done(None, result)

        return self.enqueue_callback(run, label=label or getattr(fn, "__name__", None))

    def on_error(self, handler: ErrorHandler | None) -> ChainQueue:
        self._errors.register(handler)
        return self

    def on_complete(self, handler: Callable[..., Any] | None) -> ChainQueue:
        """Register ``handler(*args)``; it fires once when the chain drains."""
        self._completion.register(handler)
        return self

    async def join(self) -> tuple[Any, ...]:
        """Wait for the run-loop to exit and return the last outputs."""
        runner = self._runner
        while runner is not None:
            await runner
            if runner is self._runner:
                break
            runner = self._runner
        return self.args

    # ── Execution ────────────────────────────────────────────────────

    async def _drain(self) -> None:
        while True:
            if not self._steps.has_pending:
                handler = self._completion.take()
                if handler is not None:
                    try:
                        handler(*self.args)
                    except Exception as exc:
                        self._errors.raise_(exc, FailureOrigin.COMPLETION_HANDLER)
                if not self._steps.has_pending:
                    return
                continue

            await next_turn(self._deferrer)
            record = self._steps.take()
            if record is None:
                continue

            args = self.args
            values = await dispatch(
                lambda done: record.fn(done, *args),
                lambda exc: self._halt(record, exc, FailureOrigin.STEP_FAULT),
                lambda exc: self._errors.raise_(exc, FailureOrigin.STEP_FAULT, step=record.name),
            )
            if values is None:
                return
            self._steps.release()

            if not self._errors.has_handler:
                self.args = values
                continue
            if values and values[0]:
                self._halt(record, values[0], FailureOrigin.STEP_FAULT)
                return
            self.args = values[1:]

    def _halt(self, record: StepRecord, error: Any, origin: FailureOrigin) -> None:
        self.args = ()
        self._halted = True
        if self._steps.active is record:
            self._steps.stall()
        self._errors.raise_(error, origin, step=record.name)

    # ── Inspection ───────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    @property
    def pending_count(self) -> int:
        return len(self._steps)

    @property
    def halted(self) -> bool:
        """True when a failure stopped the chain."""
        return self._halted
