from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional, TypeVar

from sqlalchemy.engine import Engine

from ..errors import MetadataError
from ..orm.metadata import ColumnMetadata, TableMetadata, get_table_metadata
from ..orm.tracking import (
    TrackedEntity,
    get_changes,
    get_entity_type,
    is_dirty,
    is_new,
    mark_clean,
    track,
    unwrap,
)
from .helpers import build_assignments, build_where_clause, column_list, quote_identifier
from .metrics import observe_entity_operation
from .session import DbSession

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EntityManager:
    """
    Metadata-driven CRUD for declared entities.

    Either owns its transactions (one ``DbSession`` per call):

        em = EntityManager(engine)
        user = em.fetch_one(User, {"username": "x"})

    or is bound to a session that is already active, in which case every call
    joins that session's transaction:

        with DbSession(engine) as session:
            em = EntityManager(session=session)
            ...

    Database errors are never caught here; they reach the caller as raised by
    SQLAlchemy.
    """

    def __init__(self, engine: Optional[Engine] = None, *, session: Optional[DbSession] = None) -> None:
        if (engine is None) == (session is None):
            raise ValueError("EntityManager needs exactly one of engine or session")
        self.engine = engine
        self._session = session

    @contextmanager
    def _session_scope(self) -> Iterator[DbSession]:
        if self._session is not None:
            yield self._session
            return
        with DbSession(self.engine) as session:
            yield session

    @contextmanager
    def _observed(self, table: str, op_type: str) -> Iterator[None]:
        start_time = time.monotonic()
        status = "success"
        try:
            yield
        except Exception:
            status = "error"
            raise
        finally:
            observe_entity_operation(table, op_type, status, time.monotonic() - start_time)

    def create(self, entity_type: type[T]) -> TrackedEntity:
        """Return a new, unsaved entity with the type's default values. No I/O."""
        return track(entity_type(), entity_type, is_new=True)

    def fetch(
        self,
        entity_type: type[T],
        where: Optional[Mapping[str, Any]] = None,
    ) -> list[TrackedEntity]:
        """
        Load every row matching ``where`` (property -> value, ANDed equality).

        Raises:
            MetadataError: If the type is undeclared or ``where`` names a
                property without a column
        """
        metadata = get_table_metadata(entity_type)
        table = quote_identifier(metadata.table_name)

        sql = f"SELECT * FROM {table}"
        params: dict[str, Any] = {}
        if where:
            conditions = {
                _column_for(metadata, key).column_name: value for key, value in where.items()
            }
            where_sql, params = build_where_clause(conditions)
            sql += f" WHERE {where_sql}"

        with self._observed(metadata.table_name, "select"):
            with self._session_scope() as session:
                rows = session.fetch_all(sql, params)

        return [self._from_row(metadata, row) for row in rows]

    def fetch_one(
        self,
        entity_type: type[T],
        where: Optional[Mapping[str, Any]] = None,
    ) -> Optional[TrackedEntity]:
        """First entity matching ``where``, or ``None`` when nothing matches."""
        results = self.fetch(entity_type, where)
        return results[0] if results else None

    def save(self, entity: TrackedEntity) -> None:
        """
        Persist a tracked entity.

        New entities are INSERTed (values generated by the database, such as a
        serial primary key, are copied back), dirty ones UPDATE only their
        changed columns, clean ones issue no SQL. The entity is clean afterwards.

        An INSERT lists only the columns whose value is not ``None``, so those
        columns take their server default (or NULL when there is none). An
        explicit NULL over a server default needs an UPDATE after the insert.

        Raises:
            MetadataError: If the entity type has no primary key column
        """
        metadata = get_table_metadata(get_entity_type(entity))
        pk = _require_primary_key(metadata)

        if is_new(entity):
            self._insert(metadata, entity)
        elif is_dirty(entity):
            self._update(metadata, pk, entity)

        mark_clean(entity)

    def delete(self, entity: TrackedEntity) -> int:
        """
        DELETE the entity's row by primary key and return the affected row count.

        Raises:
            MetadataError: If the entity type has no primary key column
        """
        metadata = get_table_metadata(get_entity_type(entity))
        pk = _require_primary_key(metadata)

        sql = (
            f"DELETE FROM {quote_identifier(metadata.table_name)} "
            f"WHERE {quote_identifier(pk.column_name)} = :pk_value"
        )
        logger.debug("Delete SQL: %s", sql)

        with self._observed(metadata.table_name, "delete"):
            with self._session_scope() as session:
                return session.execute(sql, {"pk_value": getattr(entity, pk.property_key)})

    def _insert(self, metadata: TableMetadata, entity: TrackedEntity) -> None:
        instance = unwrap(entity)
        data = {
            col.column_name: getattr(instance, col.property_key)
            for col in metadata.columns
            if getattr(instance, col.property_key, None) is not None
        }

        table = quote_identifier(metadata.table_name)
        if data:
            placeholders = ", ".join(f":ins_{i}" for i in range(len(data)))
            sql = (
                f"INSERT INTO {table} ({column_list(data)}) "
                f"VALUES ({placeholders}) RETURNING *"
            )
            params = {f"ins_{i}": value for i, value in enumerate(data.values())}
        else:
            sql = f"INSERT INTO {table} DEFAULT VALUES RETURNING *"
            params = {}
        logger.debug("Insert SQL: %s", sql)

        with self._observed(metadata.table_name, "insert"):
            with self._session_scope() as session:
                inserted = session.fetch_one(sql, params)

        if inserted is not None:
            for col in metadata.columns:
                if col.column_name in inserted:
                    setattr(instance, col.property_key, inserted[col.column_name])

    def _update(self, metadata: TableMetadata, pk: ColumnMetadata, entity: TrackedEntity) -> None:
        changes = {}
        for key, value in get_changes(entity).items():
            col = metadata.column_for_property(key)
            if col is None:
                logger.debug("Ignoring change to non-column attribute %s", key)
                continue
            changes[col.column_name] = value

        if not changes:
            return

        set_sql, params = build_assignments(changes)
        params["pk_value"] = getattr(entity, pk.property_key)
        sql = (
            f"UPDATE {quote_identifier(metadata.table_name)} SET {set_sql} "
            f"WHERE {quote_identifier(pk.column_name)} = :pk_value"
        )
        logger.debug("Update SQL: %s", sql)

        with self._observed(metadata.table_name, "update"):
            with self._session_scope() as session:
                session.execute(sql, params)

    def _from_row(self, metadata: TableMetadata, row: Mapping[str, Any]) -> TrackedEntity:
        instance = metadata.entity_type()
        for col in metadata.columns:
            setattr(instance, col.property_key, row.get(col.column_name))
        return track(instance, metadata.entity_type, is_new=False)


def _column_for(metadata: TableMetadata, property_key: str) -> ColumnMetadata:
    col = metadata.column_for_property(property_key)
    if col is None:
        raise MetadataError(
            f"{metadata.entity_type.__name__} has no column for property {property_key!r}"
        )
    return col


def _require_primary_key(metadata: TableMetadata) -> ColumnMetadata:
    pk = metadata.primary_key
    if pk is None:
        raise MetadataError(f"No primary key defined on {metadata.entity_type.__name__}")
    return pk
