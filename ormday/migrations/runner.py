from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from sqlalchemy.engine import Engine

from ..db.entity_manager import EntityManager
from ..db.helpers import _validate_identifier, quote_identifier
from ..db.metrics import observe_migration
from ..db.session import DbSession
from ..errors import MetadataError, SequenceGapError
from ..orm.metadata import ColumnKind
from ..orm.store import EntityStore
from . import ddl

logger = logging.getLogger(__name__)

MigrationHandler = Callable[["Migrator", DbSession], None]


@dataclass
class MigrationDef:
    version: int
    description: str
    handler: MigrationHandler


class Migrator:
    """
    Applies versioned migration handlers in order and records them in a ledger table.

    Each version moves from pending to applied exactly once. Its handler and
    its ledger row run in the same transaction, so a failing handler leaves
    neither schema changes nor a ledger entry behind and the run stops there.

    There is no locking between processes: if two processes run at once, the
    second one to insert the same ledger version fails on the primary key.

    Usage:
        migrator = Migrator(engine, store)

        @migrator.migration(1, "initial migration")
        def initial(m: Migrator, session: DbSession) -> None:
            m.migrate_create_entity(User)

        migrator.run()
    """

    def __init__(
        self,
        engine: Engine,
        store: EntityStore,
        ledger_table: str = "schema_versions",
        session_factory: Callable[[Engine], DbSession] = DbSession,
    ) -> None:
        self.engine = engine
        self.store = store
        self.ledger_table = _validate_identifier(ledger_table, "ledger_table")
        self._session_factory = session_factory
        self.versions: dict[int, MigrationDef] = {}
        self._active_session: Optional[DbSession] = None

    @property
    def max_version(self) -> int:
        return max(self.versions, default=0)

    def register_migration(self, version: int, description: str, handler: MigrationHandler) -> None:
        if isinstance(version, bool) or not isinstance(version, int) or version <= 0:
            raise ValueError(f"Migration version must be a positive integer, got {version!r}")
        if version in self.versions:
            logger.warning(
                "Migration %d (%s) replaced by %s",
                version,
                self.versions[version].description,
                description,
            )
        self.versions[version] = MigrationDef(version, description, handler)

    def migration(self, version: int, description: str) -> Callable[[MigrationHandler], MigrationHandler]:
        """Decorator form of :meth:`register_migration`."""

        def decorator(handler: MigrationHandler) -> MigrationHandler:
            self.register_migration(version, description, handler)
            return handler

        return decorator

    @contextmanager
    def _session(self) -> Iterator[DbSession]:
        if self._active_session is not None:
            yield self._active_session
            return
        with self._session_factory(self.engine) as session:
            yield session

    def _ledger(self) -> str:
        return quote_identifier(self.ledger_table)

    def ensure_ledger_table(self) -> None:
        with self._session() as session:
            session.execute_ddl(
                f"CREATE TABLE IF NOT EXISTS {self._ledger()} (\n"
                '  "version" INTEGER PRIMARY KEY,\n'
                '  "description" VARCHAR(255) NOT NULL,\n'
                '  "created_at" TIMESTAMP NOT NULL DEFAULT now()\n'
                ")"
            )

    def current_version(self) -> int:
        with self._session() as session:
            last = session.execute_scalar(f"SELECT MAX(version) FROM {self._ledger()}")
        return int(last or 0)

    def applied_migrations(self) -> list[dict[str, Any]]:
        with self._session() as session:
            return session.fetch_all(
                f"SELECT version, description, created_at FROM {self._ledger()} ORDER BY version"
            )

    def pending_versions(self) -> list[int]:
        current = self.current_version()
        return sorted(v for v in self.versions if v > current)

    def run(self) -> list[int]:
        """
        Apply every registered version above the ledger's last one, in order.

        Returns:
            The versions applied by this call (empty when up to date)

        Raises:
            SequenceGapError: If a version in the range has no handler; the
                versions before it stay applied
        """
        self.ensure_ledger_table()
        current = self.current_version()
        logger.info("On DB schema version %d", current)

        applied: list[int] = []
        if current >= self.max_version:
            return applied

        logger.info("Schema version %d is registered, beginning migrations...", self.max_version)
        for version in range(current + 1, self.max_version + 1):
            migration = self.versions.get(version)
            if migration is None:
                raise SequenceGapError(version)

            self._apply(migration)
            applied.append(version)

        return applied

    def _apply(self, migration: MigrationDef) -> None:
        logger.info("Running migration %d-%s...", migration.version, migration.description)
        start_time = time.monotonic()
        status = "success"

        try:
            with self._session_factory(self.engine) as session:
                self._active_session = session
                try:
                    migration.handler(self, session)
                    session.execute(
                        f"INSERT INTO {self._ledger()} (version, description) "
                        "VALUES (:version, :description)",
                        {"version": migration.version, "description": migration.description},
                    )
                finally:
                    self._active_session = None
        except Exception:
            status = "error"
            logger.error("Migration %d-%s failed", migration.version, migration.description)
            raise
        finally:
            observe_migration(status, time.monotonic() - start_time)

        logger.info("Migration %d-%s done", migration.version, migration.description)

    def migrate_create_entity(self, entity_type: type) -> None:
        """
        Create the entity's table (and its enum types) if it does not exist yet.

        Raises:
            MetadataError: If the entity type is not registered
        """
        metadata = self.store.require(entity_type)
        table_name = metadata.table_name

        with self._session() as session:
            for col in metadata.columns:
                if col.kind == ColumnKind.ENUM:
                    sql = ddl.create_enum_type_if_not_exists_sql(table_name, col)
                    logger.info("Create enum SQL: %s", sql)
                    session.execute_ddl(sql)

            sql = ddl.create_table_sql(metadata, if_not_exists=True)
            logger.info("Migrate %s SQL:\n%s", table_name, sql)
            session.execute_ddl(sql)

    def add_column(self, entity_type: type, property_key: str) -> None:
        """
        Add one declared column to the entity's existing table.

        Raises:
            MetadataError: If the entity is not registered or has no such property
        """
        metadata = self.store.require(entity_type)
        table_name = metadata.table_name
        column = metadata.column_for_property(property_key)
        if column is None:
            raise MetadataError(
                f"Cannot add column {property_key} to {table_name} as it doesn't exist!"
            )

        with self._session() as session:
            if column.kind == ColumnKind.ENUM:
                session.execute_ddl(ddl.create_enum_type_if_not_exists_sql(table_name, column))

            sql = ddl.add_column_sql(table_name, column, if_not_exists=True)
            logger.info("Add column SQL: %s", sql)
            session.execute_ddl(sql)

            fk = metadata.foreign_key_for(property_key)
            if fk is not None:
                session.execute_ddl(ddl.add_foreign_key_sql(table_name, column.column_name, fk))

    def entity_manager(self, session: Optional[DbSession] = None) -> EntityManager:
        """An EntityManager sharing ``session`` (or the running migration's session)."""
        session = session or self._active_session
        if session is None:
            return EntityManager(self.engine)
        return EntityManager(session=session)
