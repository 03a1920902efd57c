"""
Execution context - the shared key-value store threaded through a queue.

Every ``SerialQueue`` owns exactly one ExecutionContext. Steps read it
freely; only the ResultBinder writes to it, always on the single logical
thread of control driven by the queue's run-loop, so no locking is needed.

Each context also carries a lineage identity. A sub-queue gets a fresh
``child()`` context: its values start empty and are never aliased with the
parent's, but ``parent_execution_id`` links the two for log correlation.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                    ExecutionContext                       │
        ├──────────────────────────────────────────────────────────┤
        │  execution_id: str          ← UUID, auto-generated        │
        │  parent_execution_id: str?  ← set by child()              │
        │  started_at: datetime       ← UTC timestamp               │
        │  <values>                   ← MutableMapping[Any, Any]    │
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> ctx = ExecutionContext({"rows": []})
    >>> ctx["rows"].append(1)
    >>> child = ctx.child()
    >>> len(child), child.parent_execution_id == ctx.execution_id
    (0, True)

Tags:
    execution-context, lineage, shared-state, stepline

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator, Mapping, MutableMapping
from datetime import UTC, datetime
from typing import Any


class ExecutionContext(MutableMapping[Any, Any]):
    """Mutable mapping of step outputs, plus lineage identity."""

    def __init__(
        self,
        initial: Mapping[Any, Any] | None = None,
        *,
        execution_id: str | None = None,
        parent_execution_id: str | None = None,
    ) -> None:
        self._values: dict[Any, Any] = dict(initial or {})
        self.execution_id = execution_id or str(uuid.uuid4())
        self.parent_execution_id = parent_execution_id
        self.started_at = datetime.now(UTC)

    # ── Mapping protocol ─────────────────────────────────────────────

    def __getitem__(self, key: Any) -> Any:
        return self._values[key]

    def __setitem__(self, key: Any, value: Any) -> None:
        self._values[key] = value

    def __delitem__(self, key: Any) -> None:
        del self._values[key]

    def __iter__(self) -> Iterator[Any]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    # ── Lineage ──────────────────────────────────────────────────────

    def child(self) -> ExecutionContext:
        """
        Create an empty context for a nested queue.

        The child gets a new execution_id and points back at this context
        through ``parent_execution_id``. No values are shared.
        """
        return ExecutionContext(parent_execution_id=self.execution_id)

    def extract(self, keys: list[Any] | tuple[Any, ...]) -> tuple[Any, ...]:
        """Values for ``keys`` in order, ``None`` where a key is absent."""
        return tuple(self._values.get(key) for key in keys)

    def to_dict(self) -> dict[Any, Any]:
        """Shallow copy of the current values."""
        return dict(self._values)

    def __repr__(self) -> str:
        return (
            f"ExecutionContext(execution_id={self.execution_id!r}, "
            f"keys={list(self._values)!r})"
        )
