"""Settings for stepline queues.

Queues take their configuration explicitly: a ``QueueSettings`` instance can
be passed to ``SerialQueue(settings=...)``. When none is given the process-wide
settings from :func:`get_settings` apply, read once from ``STEPLINE_*``
environment variables and an optional ``.env`` file.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    The deferral strategy in particular is chosen once, at construction,
    never re-probed per call.

    - **Pydantic validation:** Unknown strategies fail at startup
    - **Environment-driven:** ``STEPLINE_DEFERRAL=timer`` switches strategy
    - **Sensible defaults:** ``auto`` works on every asyncio loop

Examples:
    >>> from stepline.core.settings import QueueSettings
    >>> QueueSettings(deferral="timer", timer_delay=0.01).deferral
    'timer'

Tags:
    settings, configuration, pydantic, environment, stepline

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SteplineBaseSettings(BaseSettings):
    """Common settings shared by everything built on stepline.

    Fields
    ──────
    debug        : Enable debug mode (verbose logging, etc.)
    log_level    : Structlog log level
    json_logs    : Force JSON (True) / console (False) output, None = auto
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    debug: bool = False
    log_level: str = "INFO"
    json_logs: bool | None = None


class QueueSettings(SteplineBaseSettings):
    """Queue execution settings (``STEPLINE_`` environment prefix).

    Fields
    ──────
    deferral     : ``auto``, ``soon`` (loop.call_soon) or ``timer`` (loop.call_later)
    timer_delay  : Delay in seconds used by the timer strategy
    log_steps    : Emit a debug event for every dispatch and completion
    """

    model_config = SettingsConfigDict(
        env_prefix="STEPLINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Scheduling ───────────────────────────────────────────────
    deferral: Literal["auto", "soon", "timer"] = "auto"
    timer_delay: float = Field(default=0.0, ge=0.0)

    # ── Observability ────────────────────────────────────────────
    log_steps: bool = True


@lru_cache(maxsize=1)
def get_settings() -> QueueSettings:
    """Process-wide settings, loaded from the environment on first use."""
    return QueueSettings()


__all__ = ["SteplineBaseSettings", "QueueSettings", "get_settings"]
