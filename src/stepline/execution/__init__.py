"""
Stepline execution - the serial step queue and its collaborators.

    from stepline.execution import SerialQueue, Push

    queue = SerialQueue({"rows": []})
    queue.enqueue_step(Push("rows"), lambda ctx, q: fetch())
    await queue.join()
"""

from stepline.execution.binder import ResultBinder
from stepline.execution.chain import ChainQueue
from stepline.execution.context import ExecutionContext
from stepline.execution.deferral import (
    CallSoonDeferrer,
    Deferrer,
    TimerDeferrer,
    next_turn,
    select_deferrer,
)
from stepline.execution.directives import (
    Discard,
    ErrorSlot,
    KeyDirective,
    MergeArray,
    MergeObject,
    Multi,
    Pick,
    Plain,
    Push,
    Set,
    coerce_directive,
    coerce_directives,
)
from stepline.execution.handlers import CompletionSlot, ErrorChannel
from stepline.execution.mapping import map_sequence
from stepline.execution.queue import SerialQueue
from stepline.execution.records import StepQueue, StepRecord

__all__ = [
    # queues
    "SerialQueue",
    "ChainQueue",
    "map_sequence",
    # context
    "ExecutionContext",
    # directives
    "KeyDirective",
    "Plain",
    "Set",
    "Push",
    "Pick",
    "MergeArray",
    "MergeObject",
    "ErrorSlot",
    "Discard",
    "Multi",
    "coerce_directive",
    "coerce_directives",
    # deferral
    "Deferrer",
    "CallSoonDeferrer",
    "TimerDeferrer",
    "select_deferrer",
    "next_turn",
    # internals
    "ResultBinder",
    "ErrorChannel",
    "CompletionSlot",
    "StepQueue",
    "StepRecord",
]
