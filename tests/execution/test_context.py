"""Tests for ExecutionContext."""

from __future__ import annotations

from stepline.execution import ExecutionContext


class TestExecutionContext:
    def test_initial_values_are_copied(self):
        seed = {"a": 1}
        ctx = ExecutionContext(seed)
        ctx["b"] = 2

        assert seed == {"a": 1}
        assert ctx == {"a": 1, "b": 2}

    def test_mapping_protocol(self):
        ctx = ExecutionContext({"a": 1})
        ctx["b"] = 2
        del ctx["a"]

        assert list(ctx) == ["b"]
        assert len(ctx) == 1
        assert ctx.get("a") is None

    def test_execution_id_is_uuid(self):
        import uuid

        uuid.UUID(ExecutionContext().execution_id)

    def test_child_is_empty_and_linked(self):
        parent = ExecutionContext({"secret": 1})
        child = parent.child()

        assert len(child) == 0
        assert child.parent_execution_id == parent.execution_id
        assert child.execution_id != parent.execution_id

        child["a"] = 1
        assert "a" not in parent

    def test_extract_in_order(self):
        ctx = ExecutionContext({"a": 1, "b": 2})
        assert ctx.extract(["b", "a", "missing"]) == (2, 1, None)

    def test_to_dict_is_a_copy(self):
        ctx = ExecutionContext({"a": 1})
        snapshot = ctx.to_dict()
        snapshot["a"] = 99

        assert ctx["a"] == 1
