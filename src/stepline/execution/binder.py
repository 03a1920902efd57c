"""Result binder — writes a completed step's values into the context.

WHY
───
A step may complete with a mix of plain values and awaitables. The binder
pairs each value with the directive at the same index and writes them
strictly left to right: an awaitable at index ``i`` is awaited before index
``i + 1`` is even looked at, so a later slot is never observably set before
an earlier one.

ARCHITECTURE
────────────
::

    bind(directives, values)
      for i in range(max(len(directives), len(values))):
          directive = directives[i]  or Discard()
          value     = values[i]      or None
          value is awaitable?  → await it
                                 raises → ErrorChannel, abandon the rest
          ErrorSlot + exception → ErrorChannel, continue
          directive.apply(context, value)
                                 DirectiveError → ErrorChannel, abandon

Related modules:
    directives.py — what each directive does with a value
    queue.py      — calls bind() after a step completes
"""

from __future__ import annotations

import inspect
from collections.abc import Sequence
from typing import Any

from stepline.core.errors import DirectiveError, FailureOrigin, is_error_like
from stepline.core.logging import get_logger
from stepline.execution.context import ExecutionContext
from stepline.execution.directives import Discard, ErrorSlot, KeyDirective
from stepline.execution.handlers import ErrorChannel

logger = get_logger(__name__)

_DISCARD = Discard()


class ResultBinder:
    """Binds completion values into one queue's context."""

    def __init__(self, context: ExecutionContext, errors: ErrorChannel) -> None:
        self._context = context
        self._errors = errors

    async def bind(
        self,
        directives: Sequence[KeyDirective],
        values: Sequence[Any],
        step: str | None = None,
    ) -> bool:
        """Bind ``values`` according to ``directives``.

        Returns:
            True if every index was bound, False if binding was abandoned.
        """
        for index in range(max(len(directives), len(values))):
            directive = directives[index] if index < len(directives) else _DISCARD
            value = values[index] if index < len(values) else None

            if inspect.isawaitable(value):
                logger.debug(
                    "serial_queue.binding_suspended",
                    queue_id=self._context.execution_id,
                    step=step,
                    index=index,
                )
                try:
                    value = await value
                except Exception as exc:
                    _close_remaining(values, index + 1)
                    self._errors.raise_(exc, FailureOrigin.BINDING_REJECTION, step=step)
                    return False

            if isinstance(directive, ErrorSlot):
                if is_error_like(value):
                    self._errors.raise_(value, FailureOrigin.TAGGED_VALUE, step=step)
                continue

            try:
                directive.apply(self._context, value)
            except DirectiveError as exc:
                exc.with_context(
                    queue_id=self._context.execution_id,
                    step=step,
                    index=index,
                )
                _close_remaining(values, index + 1)
                self._errors.raise_(exc, FailureOrigin.DIRECTIVE, step=step)
                return False
        return True


def _close_remaining(values: Sequence[Any], start: int) -> None:
    """Close coroutines that will never be awaited once binding is abandoned."""
    for value in values[start:]:
        if inspect.iscoroutine(value):
            value.close()
