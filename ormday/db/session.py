from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import text
from sqlalchemy.engine import Connection, CursorResult, Engine
from sqlalchemy.sql import TextClause

logger = logging.getLogger(__name__)


class DbSession:
    """
    Unit of work for ormday: one connection, one PostgreSQL transaction.

    Entity reads and writes, introspection queries and migration DDL all run
    through a session. Leaving the block normally commits; an escaping
    exception rolls everything back, schema changes included.

        with DbSession(engine) as session:
            session.execute_ddl('CREATE TABLE "notes" ("id" SERIAL PRIMARY KEY)')
            rows = session.fetch_all('SELECT * FROM "notes"')

    A session is single-use at a time: entering it again while open raises.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._conn: Connection | None = None
        self._tx = None

    def __enter__(self) -> "DbSession":
        if self._conn is not None:
            raise RuntimeError("DbSession already open; sessions cannot be re-entered")
        self._conn = self.engine.connect()
        self._tx = self._conn.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if self._tx is not None:
                if exc_type:
                    logger.debug("Rolling back session after %s", exc_type.__name__)
                    self._tx.rollback()
                else:
                    self._tx.commit()
        finally:
            if self._conn is not None:
                self._conn.close()
            self._conn = None
            self._tx = None

        return False

    @property
    def active(self) -> bool:
        return self._conn is not None

    def _connection(self) -> Connection:
        if self._conn is None:
            raise RuntimeError("DbSession is not open; enter it with a `with` block first")
        return self._conn

    def _run(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None,
    ) -> CursorResult:
        conn = self._connection()
        stmt = text(sql) if isinstance(sql, str) else sql
        logger.debug("SQL: %s params=%s", stmt, dict(params or {}))
        return conn.execute(stmt, params or {})

    def execute(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> int:
        """INSERT/UPDATE/DELETE; returns the number of rows touched."""
        result = self._run(sql, params)
        if result.rowcount is None:
            raise RuntimeError(
                "Statement reported no row count; run schema changes with execute_ddl()"
            )
        return int(result.rowcount)

    def execute_ddl(self, sql: str | TextClause) -> None:
        """Schema change (CREATE, ALTER, DO block). Returns nothing."""
        self._run(sql, None).close()

    def execute_scalar(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        # single value or None; more than one row raises
        return self._run(sql, params).scalar_one_or_none()

    def fetch_one(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """
        Zero or one row as a dict, e.g. ``INSERT ... RETURNING *``.

        Raises:
            sqlalchemy.exc.MultipleResultsFound: If the statement yields several rows
        """
        row = self._run(sql, params).mappings().one_or_none()
        return dict(row) if row is not None else None

    def fetch_all(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        return [dict(row) for row in self._run(sql, params).mappings()]
