"""Persistence and notification collaborators used by the enrichment flow.

Durable storage of annotations and maps lives outside this package. The
enrichment flow only needs two things from it: saving a tag after its
enrichment changed, and telling a map that one of its annotations changed
(so the map is touched and reindexed). Both are expressed as protocols,
with in-memory implementations for tests and local development.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable

    from maphub.db import models as db_models


class TagRepositoryProtocol(Protocol):
    """Protocol interface for persisting tag updates."""

    def save(self, tag: db_models.Tag) -> db_models.Tag: ...


class MapNotifierProtocol(Protocol):
    """Protocol interface for refreshing a map after annotation changes."""

    def touch(self, annotated_map: db_models.Map) -> None: ...

    def reindex(self, annotated_map: db_models.Map) -> None: ...


class InMemoryTagRepository(TagRepositoryProtocol):
    """Simple in-memory tag store for tests and local development.

    Tags are keyed by their resource URI. Saves are serialized with a lock
    so concurrent enrichment of the same tag cannot lose an update.
    """

    def __init__(self) -> None:
        """Initialize an empty in-memory repository."""
        self._store: dict[str, db_models.Tag] = {}
        self._lock = threading.Lock()
        self.save_count = 0

    def save(self, tag: db_models.Tag) -> db_models.Tag:
        """Add or update a tag in the repository.

        Args:
            tag: Tag to store.

        Returns:
            The stored tag.
        """
        with self._lock:
            self._store[tag.dbpedia_uri] = tag
            self.save_count += 1
        return tag

    def get(self, dbpedia_uri: str) -> db_models.Tag | None:
        return self._store.get(dbpedia_uri)

    def all(self) -> Iterable[db_models.Tag]:
        return self._store.values()


class InMemoryMapNotifier(MapNotifierProtocol):
    """Records touch and reindex requests instead of forwarding them."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []

    def touch(self, annotated_map: db_models.Map) -> None:
        self.events.append(("touch", annotated_map.id))

    def reindex(self, annotated_map: db_models.Map) -> None:
        self.events.append(("reindex", annotated_map.id))
