"""
Change tracking for entity instances.

``track()`` wraps a plain instance in a :class:`TrackedEntity`. Attribute reads
pass through to the instance; attribute writes are recorded against a snapshot
of the last persisted values so that ``save()`` knows whether to INSERT, which
columns to UPDATE, or to do nothing.

Tracking state is only reachable through the module-level functions so that it
can never collide with an entity's own attribute names.
"""
from __future__ import annotations

from typing import Any

from .metadata import get_columns

_MISSING = object()

_STATE_SLOTS = ("_instance", "_entity_type", "_original", "_dirty", "_is_new")


class TrackedEntity:
    """
    An entity instance plus its tracking state.

    Not thread-safe: a tracked entity is expected to be mutated by one thread
    between load and save.
    """

    __slots__ = _STATE_SLOTS

    def __init__(self, instance: Any, entity_type: type, is_new: bool) -> None:
        object.__setattr__(self, "_instance", instance)
        object.__setattr__(self, "_entity_type", entity_type)
        object.__setattr__(self, "_original", {} if is_new else _snapshot(instance))
        object.__setattr__(self, "_dirty", set())
        object.__setattr__(self, "_is_new", is_new)

    def __getattr__(self, name: str) -> Any:
        return getattr(object.__getattribute__(self, "_instance"), name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _STATE_SLOTS:
            raise AttributeError(f"{name!r} is reserved for change tracking")

        if value != self._original.get(name, _MISSING):
            self._dirty.add(name)
        else:
            self._dirty.discard(name)

        setattr(self._instance, name, value)

    def __delattr__(self, name: str) -> None:
        raise AttributeError("Attributes of a tracked entity cannot be deleted")

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TrackedEntity):
            other = other._instance
        return self._instance == other

    def __repr__(self) -> str:
        state = "new" if self._is_new else ("dirty" if self._dirty else "clean")
        return f"<Tracked {self._instance!r} ({state})>"


def _snapshot(instance: Any) -> dict[str, Any]:
    return dict(vars(instance))


def track(instance: Any, entity_type: type, is_new: bool) -> TrackedEntity:
    return TrackedEntity(instance, entity_type, is_new)


def is_new(entity: TrackedEntity) -> bool:
    return entity._is_new


def is_dirty(entity: TrackedEntity) -> bool:
    return len(entity._dirty) > 0


def dirty_fields(entity: TrackedEntity) -> frozenset[str]:
    return frozenset(entity._dirty)


def get_changes(entity: TrackedEntity) -> dict[str, Any]:
    """Return a shallow copy of the dirty fields and their current values."""
    instance = entity._instance
    return {name: getattr(instance, name) for name in entity._dirty}


def mark_clean(entity: TrackedEntity) -> None:
    """Treat the current state as persisted."""
    object.__setattr__(entity, "_original", _snapshot(entity._instance))
    entity._dirty.clear()
    object.__setattr__(entity, "_is_new", False)


def get_entity_type(entity: TrackedEntity) -> type:
    return entity._entity_type


def unwrap(entity: TrackedEntity) -> Any:
    return entity._instance


def as_dict(entity: TrackedEntity) -> dict[str, Any]:
    """Column-backed attributes and their current values, in declaration order."""
    instance = entity._instance
    return {
        col.property_key: getattr(instance, col.property_key, None)
        for col in get_columns(entity._entity_type)
    }
