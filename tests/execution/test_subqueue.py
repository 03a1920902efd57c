"""Tests for sub-queue delegation."""

from __future__ import annotations

import asyncio

import pytest
import structlog
import structlog.testing

from stepline.core.logging import get_context


class TestSubQueue:
    """A nested queue behaves as one atomic outer step."""

    @pytest.mark.asyncio
    async def test_nested_results_become_outer_outputs(self, make_queue):
        queue = make_queue()

        def build(nested, ctx, parent):
            nested.enqueue_step("a", lambda c, q: 1)
            nested.enqueue_step("b", lambda c, q: c["a"] + 1)

        queue.sub_queue(["a", "b"], build)
        queue.enqueue_step("sum", lambda ctx, q: ctx["a"] + ctx["b"])
        await queue.join()

        assert queue.context.to_dict() == {"a": 1, "b": 2, "sum": 3}

    @pytest.mark.asyncio
    async def test_nested_context_is_isolated(self, make_queue):
        queue = make_queue({"outer_only": True})
        seen = {}

        def build(nested, ctx, parent):
            seen["visible"] = "outer_only" in nested.context
            seen["parent_id"] = nested.context.parent_execution_id
            seen["parent"] = parent
            nested.enqueue_step("scratch", lambda c, q: "tmp")
            nested.enqueue_step("result", lambda c, q: c["scratch"].upper())

        queue.sub_queue("result", build)
        await queue.join()

        assert seen["visible"] is False
        assert seen["parent_id"] == queue.context.execution_id
        assert seen["parent"] is queue
        assert queue.context["result"] == "TMP"
        assert "scratch" not in queue.context

    @pytest.mark.asyncio
    async def test_outer_queue_waits_for_nested_pipeline(self, make_queue):
        queue = make_queue()
        order = []

        async def slow(c, q):
            await asyncio.sleep(0.01)
            order.append("nested")
            return "slow"

        def build(nested, ctx, parent):
            nested.enqueue_step("value", slow)

        queue.sub_queue(["value"], build)
        queue.enqueue_step(lambda ctx, q: order.append("outer"))
        await queue.join()

        assert order == ["nested", "outer"]
        assert queue.context["value"] == "slow"

    @pytest.mark.asyncio
    async def test_nested_errors_are_forwarded(self, make_queue, errors):
        queue = make_queue()
        boom = TimeoutError("upstream")

        async def failing():
            raise boom

        def build(nested, ctx, parent):
            nested.enqueue_step("value", lambda c, q: failing())

        queue.on_error(errors)
        queue.sub_queue(["value"], build)
        queue.enqueue_step("after", lambda ctx, q: "ran")
        await queue.join()

        assert errors.errors == [boom]
        assert queue.context["value"] is None
        assert queue.context["after"] == "ran"

    @pytest.mark.asyncio
    async def test_empty_delegate_completes_with_none(self, make_queue):
        queue = make_queue()
        queue.sub_queue(["a", "b"], lambda nested, ctx, parent: None)

        await queue.join()

        assert queue.context.to_dict() == {"a": None, "b": None}

    @pytest.mark.asyncio
    async def test_async_delegate(self, make_queue):
        queue = make_queue()

        async def build(nested, ctx, parent):
            await asyncio.sleep(0)
            nested.enqueue_step("a", lambda c, q: "async")

        queue.sub_queue("a", build)
        await queue.join()

        assert queue.context["a"] == "async"

    @pytest.mark.asyncio
    async def test_nested_queue_shares_strategy(self, make_queue):
        queue = make_queue()
        seen = []

        def build(nested, ctx, parent):
            seen.append((nested.deferrer, nested.settings))

        queue.sub_queue("x", build)
        await queue.join()

        assert seen == [(queue.deferrer, queue.settings)]


class TestSubQueueFaults:
    """A step fault inside the nested queue is a fault of the outer step."""

    @pytest.mark.asyncio
    async def test_nested_fault_stalls_outer_until_finish(self, make_queue, errors):
        queue = make_queue()

        def build(nested, ctx, parent):
            nested.enqueue_step("a", lambda c, q: 1 / 0)

        queue.on_error(errors)
        queue.sub_queue(["a"], build)
        queue.enqueue_step("skipped", lambda ctx, q: 1)
        await queue.join()

        assert [type(e) for e in errors.errors] == [ZeroDivisionError]
        assert queue.stalled
        assert queue.pending_count == 2

        queue.finish()
        queue.enqueue_step("fresh", lambda ctx, q: 2)
        await asyncio.wait_for(queue.join(), timeout=1)

        assert queue.context.to_dict() == {"fresh": 2}
        assert len(errors.errors) == 1

    @pytest.mark.asyncio
    async def test_nested_fault_escalates_without_handler(self, make_queue):
        queue = make_queue()
        queue.sub_queue(["a"], lambda nested, ctx, parent: nested.enqueue_step("a", lambda c, q: 1 / 0))

        with pytest.raises(ZeroDivisionError):
            await asyncio.wait_for(queue.join(), timeout=1)

    @pytest.mark.asyncio
    async def test_forwarded_error_is_labelled_with_outer_step(self, make_queue, errors):
        boom = TimeoutError("upstream")

        async def failing():
            raise boom

        with structlog.testing.capture_logs() as logs:
            queue = make_queue()
            queue.on_error(errors)
            queue.sub_queue(
                ["value"],
                lambda nested, ctx, parent: nested.enqueue_step("value", lambda c, q: failing()),
                label="fetch_upstream",
            )
            await queue.join()

        forwarded = [e for e in logs if e.get("origin") == "SUBQUEUE"]
        assert len(forwarded) == 1
        assert forwarded[0]["event"] == "serial_queue.error"
        assert forwarded[0]["step"] == "fetch_upstream"


class TestLogCorrelation:
    @pytest.mark.asyncio
    async def test_nested_steps_share_the_outer_pipeline_id(self, make_queue):
        queue = make_queue()
        seen = []

        def record(ctx, q):
            seen.append(get_context().get("pipeline_id"))

        def build(nested, ctx, parent):
            nested.enqueue_step(record)

        queue.enqueue_step(record)
        queue.sub_queue([], build)
        await queue.join()

        assert seen == [queue.context.execution_id, queue.context.execution_id]
        assert "pipeline_id" not in get_context()
