"""Serial queue — run steps one at a time over a shared context.

WHY
───
Pipelines often need "do A, then B with A's result, then C" where any of
the steps may be synchronous, callback-driven or a coroutine, and where a
step may decide at runtime to append more work. ``SerialQueue`` runs such
steps strictly in order, one in flight at a time, writes their outputs into
a shared :class:`ExecutionContext`, and routes every failure to one error
handler.

ARCHITECTURE
────────────
::

    SerialQueue
      ├── .enqueue_step(directives, fn)           fn(context, queue) -> value
      ├── .enqueue_callback_step(directives, fn)  fn(complete, context, queue)
      ├── .sub_queue(keys, delegate)              nested pipeline as one step
      ├── .on_error(handler) / .on_complete(handler)
      ├── .finish()                               drop pending, fire completion
      └── .join()                                 await the run-loop

    run-loop (one asyncio task per drain)
      pending?  ─ no ─→ fire completion handler (one-shot) → exit
         │ yes
      next_turn(deferrer)          never dispatch in the caller's stack
      dispatch(record)             fault → ErrorChannel, stall
      ResultBinder.bind(...)       awaitables resolved left to right
      loop

BEST PRACTICES
──────────────
- Register ``on_error`` before enqueueing. Without a handler the first
  failure escalates out of the run-loop and ``join()`` re-raises it.
- To retry a step, enqueue it again from the error handler; the queue
  never retries on its own.

Related modules:
    binder.py      — writes values into the context
    deferral.py    — how a "later turn" is scheduled
    subqueue.py    — nested queues for ``sub_queue``
    mapping.py     — ``map_sequence`` built on this queue

Example::

    queue = SerialQueue({"rows": []})
    queue.on_error(log_failure)
    queue.enqueue_step("page", fetch_first_page)
    queue.enqueue_step(Push("rows"), lambda ctx, q: parse(ctx["page"]))
    queue.on_complete(lambda ctx, q: print(len(ctx["rows"])))
    await queue.join()
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from stepline.core.errors import FailureOrigin, QueueStateError
from stepline.core.logging import LogContext, get_context, get_logger
from stepline.core.settings import QueueSettings, get_settings
from stepline.execution.binder import ResultBinder
from stepline.execution.context import ExecutionContext
from stepline.execution.deferral import Deferrer, next_turn, select_deferrer
from stepline.execution.directives import coerce_directives
from stepline.execution.dispatch import dispatch
from stepline.execution.handlers import (
    CompletionHandler,
    CompletionSlot,
    ErrorChannel,
    ErrorHandler,
)
from stepline.execution.records import CallbackStep, StepQueue, StepRecord
from stepline.execution.subqueue import delegate_step

logger = get_logger(__name__)

Step = Callable[[ExecutionContext, "SerialQueue"], Any]


def _split(directives: Any, fn: Callable | None) -> tuple[Any, Callable]:
    """Allow ``enqueue_*(fn)`` as well as ``enqueue_*(directives, fn)``."""
    if fn is None:
        if not callable(directives):
            raise TypeError("A step function is required")
        return (), directives
    return directives, fn


class SerialQueue:
    """Ordered, single-flight step pipeline over one ExecutionContext.

    Parameters
    ----------
    initial : Mapping, optional
        Values the context starts with.
    deferrer : Deferrer, optional
        Deferral strategy; defaults to the one named by ``settings``.
    settings : QueueSettings, optional
        Defaults to :func:`get_settings`.
    context : ExecutionContext, optional
        Use an existing context instead of creating one.
    name : str, optional
        Name used in log events.
    """

    def __init__(
        self,
        initial: Mapping[Any, Any] | None = None,
        *,
        deferrer: Deferrer | None = None,
        settings: QueueSettings | None = None,
        context: ExecutionContext | None = None,
        name: str | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._deferrer = deferrer or select_deferrer(self._settings)
        if context is None:
            context = ExecutionContext(initial)
        elif initial:
            context.update(initial)
        self.context = context
        self.name = name

        self._log = logger.bind(queue=name, queue_id=context.execution_id)
        self._steps = StepQueue()
        self._errors = ErrorChannel(self._log)
        self._completion = CompletionSlot()
        self._binder = ResultBinder(context, self._errors)
        self._runner: asyncio.Task | None = None

    # ── Building ─────────────────────────────────────────────────────

    def enqueue_step(
        self,
        directives: Any = None,
        fn: Step | None = None,
        *,
        label: str | None = None,
    ) -> SerialQueue:
        """Queue ``fn(context, queue)``; its return value is the sole output.

        Returns:
            ``self`` for fluent chaining.
        """
        directives, step = _split(directives, fn)

        def run(complete: Callable[..., None], context: ExecutionContext, queue: SerialQueue) -> None:
            complete(step(context, queue))

        return self._enqueue(directives, run, label or getattr(step, "__name__", None))

    def enqueue_callback_step(
        self,
        directives: Any = None,
        fn: CallbackStep | None = None,
        *,
        label: str | None = None,
    ) -> SerialQueue:
        """Queue ``fn(complete, context, queue)``; ``complete(*values)`` ends it.

        Returns:
            ``self`` for fluent chaining.
        """
        directives, step = _split(directives, fn)
        return self._enqueue(directives, step, label)

    def sub_queue(
        self,
        keys: Sequence[str] | str,
        delegate: Callable[..., Any],
        *,
        label: str | None = None,
    ) -> SerialQueue:
        """Queue a step that runs a nested queue built by ``delegate``.

        ``delegate(nested, context, queue)`` fills the nested queue. When it
        drains, the nested values under ``keys`` become this step's outputs,
        bound under the same names.
        A step fault inside the nested queue becomes a fault of this step.
        """
        if isinstance(keys, str):
            keys = (keys,)
        keys = tuple(keys)
        label = label or getattr(delegate, "__name__", "sub_queue")
        return self._enqueue(keys, delegate_step(keys, delegate, label), label)

    def on_error(self, handler: ErrorHandler | None) -> SerialQueue:
        """Register the error handler, replacing any prior one."""
        self._errors.register(handler)
        return self

    def on_complete(self, handler: CompletionHandler | None) -> SerialQueue:
        """Register the completion handler, replacing any prior one.

        The handler fires once, with ``(context, queue)``, the next time the
        queue drains (or on :meth:`finish`), and is then cleared.
        """
        self._completion.register(handler)
        return self

    def finish(self) -> SerialQueue:
        """Drop every step not yet dispatched and fire the completion handler.

        A step already running is left to complete; its outputs are still
        bound.
        """
        dropped = self._steps.clear()
        self._log.debug("serial_queue.finish", dropped=dropped)
        self._fire_completion()
        return self

    # ── Execution ────────────────────────────────────────────────────

    async def join(self) -> ExecutionContext:
        """Wait for the run-loop to exit (drained, stalled or failed).

        Raises:
            The escalated error, if a failure reached no error handler.
        """
        runner = self._runner
        while runner is not None:
            await runner
            if runner is self._runner:
                break
            runner = self._runner
        return self.context

    def _enqueue(self, directives: Any, fn: CallbackStep, label: str | None) -> SerialQueue:
        record = StepRecord(coerce_directives(directives), fn, label)
        start = self._steps.is_idle and not self.running
        loop = self._require_loop() if start else None

        self._steps.append(record)
        if self._settings.log_steps:
            self._log.debug(
                "serial_queue.enqueue",
                step=record.name,
                pending=len(self._steps),
            )
        if loop is not None:
            self._runner = loop.create_task(self._drain())
        return self

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        try:
            return asyncio.get_running_loop()
        except RuntimeError as exc:
            raise QueueStateError(
                "SerialQueue needs a running event loop to dispatch steps",
                cause=exc,
            ).with_context(queue=self.name, queue_id=self.context.execution_id) from exc

    async def _drain(self) -> None:
        # nested queues inherit the outermost pipeline_id from their parent task
        scope = {} if "pipeline_id" in get_context() else {"pipeline_id": self.context.execution_id}
        with LogContext(**scope):
            await self._run()

    async def _run(self) -> None:
        while True:
            if not self._steps.has_pending:
                self._fire_completion()
                if not self._steps.has_pending:
                    return
                continue

            await next_turn(self._deferrer)
            record = self._steps.take()
            if record is None:
                # finish() emptied the queue during the turn
                continue

            if self._settings.log_steps:
                self._log.debug("serial_queue.dispatch", step=record.name)

            values = await dispatch(
                lambda complete: record.fn(complete, self.context, self),
                lambda exc: self._fault(record, exc),
                lambda exc: self._errors.raise_(exc, FailureOrigin.STEP_FAULT, step=record.name),
            )
            if values is None:
                return

            self._steps.release()
            if self._settings.log_steps:
                self._log.debug("serial_queue.step_completed", step=record.name, values=len(values))
            await self._binder.bind(record.directives, values, step=record.name)

    def _fault(self, record: StepRecord, error: BaseException) -> None:
        self._steps.stall()
        self._log.debug("serial_queue.stalled", step=record.name, pending=len(self._steps))
        self._errors.raise_(error, FailureOrigin.STEP_FAULT, step=record.name)

    def _fire_completion(self) -> None:
        handler = self._completion.take()
        if handler is None:
            return
        self._log.debug("serial_queue.complete", keys=len(self.context))
        try:
            outcome = handler(self.context, self)
        except Exception as exc:
            self._errors.raise_(exc, FailureOrigin.COMPLETION_HANDLER)
            return
        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(outcome)
            task.add_done_callback(self._completion_task_done)

    def _completion_task_done(self, task: asyncio.Future) -> None:
        if not task.cancelled() and task.exception() is not None:
            self._errors.raise_(task.exception(), FailureOrigin.COMPLETION_HANDLER)

    # ── Inspection ───────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        """True while a run-loop task is active."""
        return self._runner is not None and not self._runner.done()

    @property
    def pending_count(self) -> int:
        """Records not yet completed (including the one in flight)."""
        return len(self._steps)

    @property
    def is_idle(self) -> bool:
        return self._steps.is_idle

    @property
    def stalled(self) -> bool:
        """True when a step faulted and the queue stopped advancing."""
        return self._steps.stalled

    @property
    def settings(self) -> QueueSettings:
        return self._settings

    @property
    def deferrer(self) -> Deferrer:
        return self._deferrer

    @property
    def errors(self) -> ErrorChannel:
        return self._errors

    def __repr__(self) -> str:
        return (
            f"SerialQueue(name={self.name!r}, pending={len(self._steps)}, "
            f"stalled={self.stalled})"
        )
