from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..db.helpers import _validate_identifier, quote_identifier
from ..db.session import DbSession


@dataclass
class DbColumnInfo:
    column_name: str
    data_type: str
    udt_name: str
    is_nullable: bool
    character_max_length: Optional[int]
    column_default: Optional[str]


@dataclass
class DbTableInfo:
    table_name: str
    columns: list[DbColumnInfo] = field(default_factory=list)

    def column(self, column_name: str) -> Optional[DbColumnInfo]:
        return next((c for c in self.columns if c.column_name == column_name), None)


@dataclass
class DbEnumInfo:
    type_name: str
    enum_values: list[str] = field(default_factory=list)


@dataclass
class DbSchema:
    tables: list[DbTableInfo] = field(default_factory=list)
    enums: list[DbEnumInfo] = field(default_factory=list)

    def table(self, table_name: str) -> Optional[DbTableInfo]:
        return next((t for t in self.tables if t.table_name == table_name), None)


class SchemaIntrospector:
    """
    Read-only view of the live database catalog.

    Every call queries the catalog again; nothing is cached.
    """

    def __init__(
        self,
        session: DbSession,
        schema: str = "public",
        ledger_table: str = "schema_versions",
    ) -> None:
        self.session = session
        self.schema = _validate_identifier(schema, "schema")
        self.ledger_table = _validate_identifier(ledger_table, "ledger_table")

    def get_schema(self) -> DbSchema:
        return DbSchema(tables=self.get_tables(), enums=self.get_enum_types())

    def get_tables(self) -> list[DbTableInfo]:
        rows = self.session.fetch_all(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = :schema
              AND table_type = 'BASE TABLE'
              AND table_name != :ledger_table
            ORDER BY table_name
            """,
            {"schema": self.schema, "ledger_table": self.ledger_table},
        )
        return [
            DbTableInfo(table_name=row["table_name"], columns=self.get_columns(row["table_name"]))
            for row in rows
        ]

    def get_columns(self, table_name: str) -> list[DbColumnInfo]:
        rows = self.session.fetch_all(
            """
            SELECT
              column_name,
              data_type,
              udt_name,
              is_nullable,
              character_maximum_length,
              column_default
            FROM information_schema.columns
            WHERE table_schema = :schema AND table_name = :table_name
            ORDER BY ordinal_position
            """,
            {"schema": self.schema, "table_name": table_name},
        )
        return [
            DbColumnInfo(
                column_name=row["column_name"],
                data_type=row["data_type"],
                udt_name=row["udt_name"],
                is_nullable=row["is_nullable"] == "YES",
                character_max_length=row["character_maximum_length"],
                column_default=row["column_default"],
            )
            for row in rows
        ]

    def get_enum_types(self) -> list[DbEnumInfo]:
        rows = self.session.fetch_all(
            """
            SELECT t.typname, e.enumlabel
            FROM pg_type t
            JOIN pg_enum e ON t.oid = e.enumtypid
            JOIN pg_namespace n ON n.oid = t.typnamespace
            WHERE n.nspname = :schema
            ORDER BY t.typname, e.enumsortorder
            """,
            {"schema": self.schema},
        )

        enums: dict[str, DbEnumInfo] = {}
        for row in rows:
            info = enums.setdefault(row["typname"], DbEnumInfo(type_name=row["typname"]))
            info.enum_values.append(row["enumlabel"])
        return list(enums.values())

    def table_exists(self, table_name: str) -> bool:
        return bool(
            self.session.execute_scalar(
                """
                SELECT EXISTS (
                  SELECT 1 FROM information_schema.tables
                  WHERE table_schema = :schema AND table_name = :table_name
                )
                """,
                {"schema": self.schema, "table_name": table_name},
            )
        )

    def get_next_migration_version(self) -> int:
        if not self.table_exists(self.ledger_table):
            return 1

        ledger = f"{quote_identifier(self.schema)}.{quote_identifier(self.ledger_table)}"
        last = self.session.execute_scalar(f"SELECT MAX(version) FROM {ledger}")
        return (last or 0) + 1
