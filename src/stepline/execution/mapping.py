"""Sequential map over a queue.

``map_sequence`` runs ``fn(item)`` for every item one after another on an
internal :class:`SerialQueue` and returns the outputs in input order. The
first failure rejects the whole map and the remaining items are dropped.

Example::

    pages = await map_sequence(urls, fetch_page)   # one request at a time
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from stepline.core.logging import get_logger
from stepline.core.settings import QueueSettings
from stepline.execution.deferral import Deferrer
from stepline.execution.directives import Push
from stepline.execution.queue import SerialQueue

T = TypeVar("T")

logger = get_logger(__name__)

_RESULTS = "results"


async def map_sequence(
    items: Iterable[T],
    fn: Callable[[T], Any],
    *,
    deferrer: Deferrer | None = None,
    settings: QueueSettings | None = None,
) -> list[Any]:
    """Apply ``fn`` to each item in order, one at a time.

    Args:
        items: Items to map.
        fn: ``fn(item)`` returning a value or an awaitable.
        deferrer: Deferral strategy for the internal queue.
        settings: Settings for the internal queue.

    Returns:
        The outputs, in the order of ``items``.

    Raises:
        The first exception raised (or awaited) by ``fn``.
    """
    items = list(items)
    if not items:
        return []

    outcome: asyncio.Future[list[Any]] = asyncio.get_running_loop().create_future()
    queue = SerialQueue(
        {_RESULTS: []},
        deferrer=deferrer,
        settings=settings,
        name="map_sequence",
    )

    def _failed(error: BaseException) -> None:
        if not outcome.done():
            outcome.set_exception(error)
        queue.finish()

    def _done(context: Any, _queue: SerialQueue) -> None:
        if not outcome.done():
            outcome.set_result(list(context[_RESULTS]))

    queue.on_error(_failed).on_complete(_done)
    for index, item in enumerate(items):
        queue.enqueue_step(Push(_RESULTS), _apply(fn, item), label=f"item[{index}]")

    logger.debug("map_sequence.start", items=len(items))
    return await outcome


def _apply(fn: Callable[[T], Any], item: T) -> Callable[[Any, SerialQueue], Any]:
    def step(context: Any, queue: SerialQueue) -> Any:
        return fn(item)

    return step
