"""
Structured error types for stepline.

The queue itself never wraps the errors raised by user steps: a step fault is
handed to the registered error handler exactly as it was raised. The types in
this module cover the failures stepline raises on its own account (a directive
that cannot be applied, an invalid configuration, a queue used in a state it
does not support) and carry the metadata needed to log them usefully.

Manifesto:
    - **Typed hierarchy:** One base class, one subclass per failure domain
    - **Rich context:** Errors know which queue, step and index they came from
    - **Error chaining:** The underlying exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────┐
        │                      SteplineError                       │
        │            (category, context, cause)                    │
        ├─────────────────────────────────────────────────────────┤
        │  DirectiveError     ConfigError      QueueStateError     │
        │  (DIRECTIVE)        (CONFIG)         (STATE)             │
        └─────────────────────────────────────────────────────────┘

        FailureOrigin tags every failure routed through an ErrorChannel:
        STEP_FAULT, BINDING_REJECTION, TAGGED_VALUE, DIRECTIVE,
        COMPLETION_HANDLER, SUBQUEUE

Examples:
    >>> error = DirectiveError("slot 'items' does not hold a list")
    >>> error.with_context(queue="ingest", index=1).to_dict()["context"]
    {'queue': 'ingest', 'index': 1}

Tags:
    error-handling, exception-hierarchy, error-context, stepline

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Categories for errors raised by stepline itself."""

    DIRECTIVE = "DIRECTIVE"  # Output directive could not be parsed or applied
    CONFIG = "CONFIG"  # Invalid settings or strategy selection
    STATE = "STATE"  # Queue used in an unsupported state
    INTERNAL = "INTERNAL"  # Bugs, unexpected state


class FailureOrigin(str, Enum):
    """
    Where in the pipeline a failure was detected.

    Every failure funnels through the same ErrorChannel; the origin is only
    used for logging so that a failed run can be diagnosed from its logs.
    """

    STEP_FAULT = "STEP_FAULT"  # Step function raised while being invoked
    BINDING_REJECTION = "BINDING_REJECTION"  # Awaited result value raised
    TAGGED_VALUE = "TAGGED_VALUE"  # ErrorSlot value was an exception
    DIRECTIVE = "DIRECTIVE"  # Directive could not be applied
    COMPLETION_HANDLER = "COMPLETION_HANDLER"  # on_complete handler raised
    SUBQUEUE = "SUBQUEUE"  # Forwarded from a delegated sub-queue


@dataclass
class ErrorContext:
    """
    Structured metadata attached to a stepline error.

    Attributes:
        queue: Name of the queue, when one was given
        queue_id: Execution id of the queue's context
        step: Label of the step being bound or run
        index: Result index being bound
        metadata: Additional key-value pairs
    """

    queue: str | None = None
    queue_id: str | None = None
    step: str | None = None
    index: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["queue", "queue_id", "step", "index"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class SteplineError(Exception):
    """
    Base exception for all errors raised by stepline.

    Subclasses set ``default_category``; callers may override it per
    instance. ``cause`` is chained as ``__cause__`` so tracebacks show the
    underlying failure.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> SteplineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DirectiveError("bad slot").with_context(queue="ingest", index=2)
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class DirectiveError(SteplineError):
    """An output directive could not be parsed or applied to a value."""

    default_category = ErrorCategory.DIRECTIVE


class ConfigError(SteplineError):
    """Invalid configuration, such as an unknown deferral strategy."""

    default_category = ErrorCategory.CONFIG


class QueueStateError(SteplineError):
    """The queue was driven in a way its current state does not allow."""

    default_category = ErrorCategory.STATE


def is_error_like(value: Any) -> bool:
    """True when ``value`` should be treated as a failure by an ErrorSlot."""
    return isinstance(value, BaseException)


__all__ = [
    "ErrorCategory",
    "FailureOrigin",
    "ErrorContext",
    "SteplineError",
    "DirectiveError",
    "ConfigError",
    "QueueStateError",
    "is_error_like",
]
