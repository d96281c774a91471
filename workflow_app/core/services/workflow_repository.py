"""Storage abstraction for workflow entities plus an in-memory implementation."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import replace
from threading import Lock
from typing import Any, Protocol

from workflow_app.core.errors import ConcurrentModification, NotFound
from workflow_app.core.models import EntityKind


class Repository(Protocol):
    """What the coordinator needs from storage.

    ``save`` must behave as a compare-and-swap on the entity's ``version``.
    """

    def get(self, kind: EntityKind | str, entity_id: str) -> Any: ...

    def save(self, kind: EntityKind | str, entity: Any) -> Any: ...

    def delete(self, kind: EntityKind | str, entity_id: str) -> None: ...

    def list(self, kind: EntityKind | str) -> list[Any]: ...


class InMemoryRepository:
    """Thread-safe dictionary store with optimistic versioning."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._entities: dict[EntityKind, dict[str, Any]] = {kind: {} for kind in EntityKind}

    def get(self, kind: EntityKind | str, entity_id: str) -> Any:
        kind = EntityKind(kind)
        with self._lock:
            entity = self._entities[kind].get(entity_id)
            if entity is None:
                raise NotFound(f"No {kind.value} with id {entity_id}.")
            return deepcopy(entity)

    def save(self, kind: EntityKind | str, entity: Any) -> Any:
        """Store ``entity`` if nobody saved a newer version since it was read."""
        kind = EntityKind(kind)
        with self._lock:
            current = self._entities[kind].get(entity.id)
            expected = 0 if current is None else current.version
            if entity.version != expected:
                raise ConcurrentModification(
                    f"{kind.value} {entity.id} is at version {expected}, "
                    f"save was based on {entity.version}."
                )
            stored = replace(entity, version=expected + 1)
            self._entities[kind][entity.id] = deepcopy(stored)
            return stored

    def delete(self, kind: EntityKind | str, entity_id: str) -> None:
        kind = EntityKind(kind)
        with self._lock:
            if self._entities[kind].pop(entity_id, None) is None:
                raise NotFound(f"No {kind.value} with id {entity_id}.")

    def list(self, kind: EntityKind | str) -> list[Any]:
        kind = EntityKind(kind)
        with self._lock:
            return [deepcopy(entity) for entity in self._entities[kind].values()]

    def count(self, kind: EntityKind | str) -> int:
        kind = EntityKind(kind)
        with self._lock:
            return len(self._entities[kind])

    def clear(self) -> None:
        with self._lock:
            for entities in self._entities.values():
                entities.clear()
