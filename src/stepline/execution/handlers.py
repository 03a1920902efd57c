"""Error channel and completion handler slot.

Every failure a queue sees, whatever its origin, goes through one
:class:`ErrorChannel`. With a handler registered the handler gets the error
exactly as it was raised; without one the error escalates out of the
queue's run-loop instead of being dropped.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from stepline.core.errors import FailureOrigin, SteplineError
from stepline.core.logging import get_logger

logger = get_logger(__name__)

ErrorHandler = Callable[[BaseException], Any]
CompletionHandler = Callable[[Any, Any], Any]


class ErrorChannel:
    """Single registered failure sink for a queue."""

    def __init__(self, log: Any = None) -> None:
        self._handler: ErrorHandler | None = None
        self._log = log or logger
        self.raised = 0

    def register(self, handler: ErrorHandler | None) -> None:
        """Store ``handler``, replacing any prior one."""
        self._handler = handler

    @property
    def has_handler(self) -> bool:
        return self._handler is not None

    def raise_(
        self,
        error: BaseException,
        origin: FailureOrigin,
        step: str | None = None,
    ) -> None:
        """Deliver ``error`` to the handler, or re-raise it when there is none."""
        self.raised += 1
        details = error.to_dict() if isinstance(error, SteplineError) else {"error": repr(error)}
        if self._handler is None:
            self._log.error(
                "serial_queue.unhandled_error",
                origin=origin.value,
                step=step,
                **details,
            )
            raise error
        self._log.warning(
            "serial_queue.error",
            origin=origin.value,
            step=step,
            **details,
        )
        self._handler(error)


class CompletionSlot:
    """Holds the completion handler; taking it clears the registration."""

    def __init__(self) -> None:
        self._handler: CompletionHandler | None = None

    def register(self, handler: CompletionHandler | None) -> None:
        self._handler = handler

    @property
    def armed(self) -> bool:
        return self._handler is not None

    def take(self) -> CompletionHandler | None:
        """Return the handler and clear it, so it fires at most once."""
        handler, self._handler = self._handler, None
        return handler
