from __future__ import annotations

import logging
from typing import Optional

from ..errors import MetadataError
from .metadata import TableMetadata, get_table_metadata

logger = logging.getLogger(__name__)


class EntityStore:
    """
    Registry of the entity types an application persists.

    Built once at startup and handed to the persistence layer, the schema
    differ and the migration runner:

        store = EntityStore()
        store.register(User)
        store.register(Habit)

    Registration order is preserved; the differ emits operations in it.
    """

    def __init__(self) -> None:
        self._metadatas: list[TableMetadata] = []

    def register(self, entity_type: type) -> TableMetadata:
        """
        Register an entity type and return its table metadata.

        Registering the same type twice is a no-op returning the existing
        metadata.

        Raises:
            MetadataError: If the type has no table declaration, or another
                registered type already maps to the same table
        """
        metadata = get_table_metadata(entity_type)

        existing = self.get(entity_type)
        if existing is not None:
            logger.debug("Entity %s already registered", metadata.table_name)
            return existing

        for other in self._metadatas:
            if other.table_name == metadata.table_name:
                raise MetadataError(
                    f"Table {metadata.table_name!r} is already mapped by "
                    f"{other.entity_type.__name__}; cannot register {entity_type.__name__}"
                )

        logger.info("Register entity %s", metadata.table_name)
        self._metadatas.append(metadata)
        return metadata

    def get_all(self) -> list[TableMetadata]:
        return list(self._metadatas)

    def get(self, entity_type: type) -> Optional[TableMetadata]:
        return next((m for m in self._metadatas if m.entity_type is entity_type), None)

    def require(self, entity_type: type) -> TableMetadata:
        metadata = self.get(entity_type)
        if metadata is None:
            name = getattr(entity_type, "__name__", repr(entity_type))
            raise MetadataError(f"Entity {name} is not registered")
        return metadata

    def __len__(self) -> int:
        return len(self._metadatas)

    def __contains__(self, entity_type: object) -> bool:
        return any(m.entity_type is entity_type for m in self._metadatas)
