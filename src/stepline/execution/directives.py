"""Key directives — how a step's output values are written into the context.

Manifesto:
    A step declares, next to its function, one directive per positional
    output value. The binder pairs them up by index and applies each
    directive to its value. Directives are frozen tagged variants that can
    be logged and matched with ``match``.

ARCHITECTURE
────────────
::

    KeyDirective
      ├── Plain(name)      ctx[name] = value
      ├── Set(name)        ctx[name] = value
      ├── Push(name)       ctx[name].append(value)
      ├── Pick(names)      ctx[n] = value[n] for n in names
      ├── MergeArray()     ctx[i] = item for i, item in enumerate(value)
      ├── MergeObject()    ctx.update(value)
      ├── ErrorSlot()      exceptions go to the error channel
      ├── Discard()        value dropped
      └── Multi(parts)     several directives on one value, in order

    coerce_directive(spec) / coerce_directives(spec)
      "name"               → Plain("name")
      None                 → Discard()
      {"push": "rows"}     → Push("rows")   (a leading "$" is accepted)
      {"set": .., "pick": ..} → Multi((Set(..), Pick(..)))

Example::

    queue.enqueue_step([Push("rows"), ErrorSlot()], fetch_page)
    queue.enqueue_step({"pick": ["id", "name"]}, load_user)
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from typing import Any, Union

from stepline.core.errors import DirectiveError


@dataclass(frozen=True)
class Plain:
    """Assign the value under ``name``."""

    name: Any

    def apply(self, context: MutableMapping[Any, Any], value: Any) -> None:
        context[self.name] = value


@dataclass(frozen=True)
class Set:
    """Assign the value under ``name`` (same effect as :class:`Plain`)."""

    name: Any

    def apply(self, context: MutableMapping[Any, Any], value: Any) -> None:
        context[self.name] = value


@dataclass(frozen=True)
class Push:
    """Append the value to the list already stored at ``name``."""

    name: Any

    def apply(self, context: MutableMapping[Any, Any], value: Any) -> None:
        if self.name not in context:
            raise DirectiveError(f"Cannot push onto missing slot {self.name!r}")
        slot = context[self.name]
        if not isinstance(slot, list):
            raise DirectiveError(
                f"Cannot push onto slot {self.name!r} holding {type(slot).__name__}"
            )
        slot.append(value)


@dataclass(frozen=True)
class Pick:
    """Copy the named fields of the value into same-named slots."""

    names: str | tuple[str, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.names, str):
            object.__setattr__(self, "names", tuple(self.names))

    @property
    def fields(self) -> tuple[str, ...]:
        return (self.names,) if isinstance(self.names, str) else self.names

    def apply(self, context: MutableMapping[Any, Any], value: Any) -> None:
        for name in self.fields:
            context[name] = _field(value, name)


@dataclass(frozen=True)
class MergeArray:
    """Merge a sequence into the context keyed by item index."""

    def apply(self, context: MutableMapping[Any, Any], value: Any) -> None:
        if value is None:
            return
        if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
            raise DirectiveError(
                f"MergeArray expects a sequence, got {type(value).__name__}"
            )
        for index, item in enumerate(value):
            context[index] = item


@dataclass(frozen=True)
class MergeObject:
    """Shallow-merge a mapping (or an object's attributes) into the context."""

    def apply(self, context: MutableMapping[Any, Any], value: Any) -> None:
        if value is None:
            return
        if isinstance(value, Mapping):
            context.update(value)
        elif hasattr(value, "__dict__"):
            context.update(vars(value))
        else:
            raise DirectiveError(
                f"MergeObject expects a mapping or object, got {type(value).__name__}"
            )


@dataclass(frozen=True)
class ErrorSlot:
    """Marks a value that is an error when it holds an exception.

    The binder routes such values to the error channel; anything else in this
    slot is ignored.
    """

    def apply(self, context: MutableMapping[Any, Any], value: Any) -> None:
        return None


@dataclass(frozen=True)
class Discard:
    """Drop the value."""

    def apply(self, context: MutableMapping[Any, Any], value: Any) -> None:
        return None


@dataclass(frozen=True)
class Multi:
    """Apply several directives to the same value, left to right."""

    parts: tuple[KeyDirective, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "parts", tuple(self.parts))

    def apply(self, context: MutableMapping[Any, Any], value: Any) -> None:
        for part in self.parts:
            part.apply(context, value)


KeyDirective = Union[Plain, Set, Push, Pick, MergeArray, MergeObject, ErrorSlot, Discard, Multi]

DIRECTIVE_TYPES = (Plain, Set, Push, Pick, MergeArray, MergeObject, ErrorSlot, Discard, Multi)

_INSTRUCTIONS = {
    "set": Set,
    "push": Push,
    "pick": Pick,
}


def _field(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def coerce_directive(spec: Any) -> KeyDirective:
    """Turn a directive shorthand into a :data:`KeyDirective`."""
    if isinstance(spec, DIRECTIVE_TYPES):
        return spec
    if spec is None:
        return Discard()
    if isinstance(spec, str):
        return Plain(spec)
    if isinstance(spec, Mapping):
        parts: list[KeyDirective] = []
        for key, arg in spec.items():
            kind = _INSTRUCTIONS.get(str(key).lstrip("$").lower())
            if kind is None:
                raise DirectiveError(f"Unknown directive instruction: {key!r}")
            parts.append(kind(arg))
        if not parts:
            raise DirectiveError("Empty directive mapping")
        return parts[0] if len(parts) == 1 else Multi(tuple(parts))
    raise DirectiveError(f"Cannot use {spec!r} as an output directive")


def coerce_directives(spec: Any) -> tuple[KeyDirective, ...]:
    """Normalise the directive argument of ``enqueue_*``.

    A single directive (or shorthand) stands for a one-element list.
    """
    if spec is None or isinstance(spec, (str, Mapping, *DIRECTIVE_TYPES)):
        return (coerce_directive(spec),)
    if isinstance(spec, Sequence):
        return tuple(coerce_directive(item) for item in spec)
    raise DirectiveError(f"Cannot use {spec!r} as output directives")


__all__ = [
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
]
