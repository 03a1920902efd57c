"""Sub-queue delegation — run a nested pipeline as a single outer step.

The outer step builds a fresh queue of the same type with an isolated
``context.child()``, lets a delegate fill it, and completes with the nested
values under ``keys`` once the nested queue drains. Nested errors are
forwarded to the outer queue's error channel, labelled with the outer step.
A nested step fault stalls the nested queue; it is then re-raised as a fault
of the outer step, which stalls the outer queue until ``finish()``.

::

    outer queue ── step(keys=[a, b]) ─────────────────────────→ next step
                     │                                   ▲
                     ▼                                   │
                nested queue (child context)   on_complete: complete(ctx[a], ctx[b])
                  ├── delegate(nested, context, outer)
                  └── on_error → outer ErrorChannel (SUBQUEUE)
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any

from stepline.core.errors import FailureOrigin
from stepline.core.logging import get_logger

logger = get_logger(__name__)


def delegate_step(
    keys: tuple[str, ...],
    delegate: Callable[..., Any],
    label: str | None = None,
) -> Callable[..., Any]:
    """Build the callback step that drives a nested queue for ``delegate``."""

    async def run(complete: Callable[..., None], context: Any, parent: Any) -> None:
        nested = type(parent)(
            context=context.child(),
            deferrer=parent.deferrer,
            settings=parent.settings,
            name=f"{parent.name or 'queue'}.sub",
        )
        faults: list[BaseException] = []

        def forward(error: BaseException) -> None:
            if nested.stalled:
                faults.append(error)
                return
            parent.errors.raise_(error, FailureOrigin.SUBQUEUE, step=label)

        nested.on_error(forward)
        nested.on_complete(
            lambda nested_context, _queue: complete(*nested_context.extract(keys))
        )
        logger.debug(
            "serial_queue.sub_queue_started",
            parent_id=context.execution_id,
            queue_id=nested.context.execution_id,
            keys=list(keys),
        )

        outcome = delegate(nested, context, parent)
        if inspect.isawaitable(outcome):
            await outcome

        if nested.is_idle and not nested.running:
            nested.finish()
        await nested.join()

        if faults:
            logger.debug(
                "serial_queue.sub_queue_stalled",
                parent_id=context.execution_id,
                queue_id=nested.context.execution_id,
                step=label,
            )
            raise faults[0]

    return run
