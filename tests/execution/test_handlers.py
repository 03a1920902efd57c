"""Tests for ErrorChannel, CompletionSlot and StepQueue."""

from __future__ import annotations

import pytest

from stepline.core.errors import DirectiveError, FailureOrigin
from stepline.execution import CompletionSlot, ErrorChannel, StepQueue, StepRecord


def _noop(complete, ctx, queue):
    complete()


class TestErrorChannel:
    def test_handler_receives_error(self, errors):
        channel = ErrorChannel()
        channel.register(errors)
        error = ValueError("x")

        channel.raise_(error, FailureOrigin.STEP_FAULT, step="load")

        assert errors.errors == [error]
        assert channel.raised == 1

    def test_without_handler_error_escalates(self):
        channel = ErrorChannel()

        with pytest.raises(DirectiveError):
            channel.raise_(DirectiveError("bad slot"), FailureOrigin.DIRECTIVE)

    def test_register_replaces(self, errors):
        channel = ErrorChannel()
        first = []
        channel.register(first.append)
        channel.register(errors)

        channel.raise_(KeyError("k"), FailureOrigin.TAGGED_VALUE)

        assert first == []
        assert len(errors.errors) == 1

    def test_has_handler(self):
        channel = ErrorChannel()
        assert not channel.has_handler
        channel.register(print)
        assert channel.has_handler


class TestCompletionSlot:
    def test_take_clears(self):
        slot = CompletionSlot()
        handler = lambda ctx, q: None  # noqa: E731
        slot.register(handler)

        assert slot.armed
        assert slot.take() is handler
        assert not slot.armed
        assert slot.take() is None


class TestStepQueue:
    def test_append_reports_idle_transition(self):
        steps = StepQueue()
        assert steps.append(StepRecord((), _noop)) is True
        assert steps.append(StepRecord((), _noop)) is False

    def test_take_moves_record_in_flight(self):
        steps = StepQueue()
        record = StepRecord((), _noop, label="first")
        steps.append(record)

        assert steps.take() is record
        assert steps.active is record
        assert len(steps) == 1
        assert not steps.has_pending

        steps.release()
        assert steps.is_idle

    def test_clear_keeps_running_record(self):
        steps = StepQueue()
        steps.append(StepRecord((), _noop))
        steps.append(StepRecord((), _noop))
        steps.take()

        assert steps.clear() == 1
        assert steps.active is not None

    def test_clear_drops_stalled_record(self):
        steps = StepQueue()
        steps.append(StepRecord((), _noop))
        steps.take()
        steps.stall()

        assert steps.clear() == 1
        assert steps.is_idle
        assert not steps.stalled

    def test_record_name(self):
        assert StepRecord((), _noop).name == "_noop"
        assert StepRecord((), _noop, label="custom").name == "custom"
