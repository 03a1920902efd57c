"""Single-step invocation with an exactly-once completion callback.

``dispatch`` invokes one step function, hands it a ``complete`` callback and
waits for the first call to that callback. Later calls are ignored. A step
function may be a plain callable or an ``async def``; a coroutine it returns
runs as a task alongside the wait.

::

    dispatch(invoke, on_fault, on_late)
      invoke(complete) raises             → on_fault(exc), return None
      returned task raises before complete → on_fault(exc), return None
      task raises after complete           → on_late(exc)
      complete(*values) first call         → return values
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

FaultHandler = Callable[[BaseException], None]


def _task_error(task: asyncio.Future) -> BaseException | None:
    if task.cancelled():
        return asyncio.CancelledError("step task was cancelled")
    return task.exception()


async def dispatch(
    invoke: Callable[[Callable[..., None]], Any],
    on_fault: FaultHandler,
    on_late: FaultHandler,
) -> tuple[Any, ...] | None:
    """Run one step and return the values of its first completion.

    Returns ``None`` when the step faulted before completing.
    """
    completion: asyncio.Future[tuple[Any, ...]] = asyncio.get_running_loop().create_future()

    def complete(*values: Any) -> None:
        if not completion.done():
            completion.set_result(values)

    try:
        outcome = invoke(complete)
    except Exception as exc:
        if completion.done():
            on_late(exc)
            return completion.result()
        on_fault(exc)
        return None

    if inspect.isawaitable(outcome):
        task = asyncio.ensure_future(outcome)
        if not completion.done():
            await asyncio.wait((completion, task), return_when=asyncio.FIRST_COMPLETED)
        if not completion.done():
            error = _task_error(task)
            if error is not None:
                on_fault(error)
                return None
        else:
            task.add_done_callback(lambda t: _report_late(t, on_late))

    return await completion


def _report_late(task: asyncio.Future, on_late: FaultHandler) -> None:
    error = _task_error(task)
    if error is not None:
        on_late(error)
