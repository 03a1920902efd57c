"""
Stepline core - errors, logging and settings shared by the execution engine.
"""

from stepline.core.errors import (
    ConfigError,
    DirectiveError,
    ErrorCategory,
    ErrorContext,
    FailureOrigin,
    QueueStateError,
    SteplineError,
    is_error_like,
)
from stepline.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_context,
    get_logger,
    unbind_context,
)
from stepline.core.settings import QueueSettings, SteplineBaseSettings, get_settings

__all__ = [
    # errors
    "ConfigError",
    "DirectiveError",
    "ErrorCategory",
    "ErrorContext",
    "FailureOrigin",
    "QueueStateError",
    "SteplineError",
    "is_error_like",
    # logging
    "LogContext",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_context",
    "get_logger",
    "unbind_context",
    # settings
    "QueueSettings",
    "SteplineBaseSettings",
    "get_settings",
]
