"""
Stepline - serial step queues for asyncio.

Run an ordered, extensible list of steps one at a time over a shared
context, with awaitable results resolved in order and every failure routed
to a single error handler.

- stepline.core: errors, logging, settings
- stepline.execution: SerialQueue, ChainQueue, map_sequence, directives
"""

__version__ = "0.1.0"

from stepline.core import *  # noqa
from stepline.execution import *  # noqa
