"""
Compare declared entities with the live schema.

The differ is deliberately conservative:

- tables that exist in the database but not in code are never dropped;
- a renamed column shows up as a DROP_COLUMN plus an ADD_COLUMN;
- indexes and unique constraints are not compared.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import ClassVar, Optional, Sequence, Union

from ..orm.metadata import ColumnKind, ColumnMetadata, TableMetadata, enum_type_name
from .introspector import DbColumnInfo, DbSchema, DbTableInfo


class DiffType(str, enum.Enum):
    CREATE_TABLE = "CREATE_TABLE"
    ADD_COLUMN = "ADD_COLUMN"
    DROP_COLUMN = "DROP_COLUMN"
    ALTER_COLUMN = "ALTER_COLUMN"


@dataclass
class ColumnChanges:
    type_changed: bool = False
    nullability_changed: bool = False
    max_length_changed: bool = False
    old_type: Optional[str] = None
    new_type: Optional[str] = None

    def __bool__(self) -> bool:
        return self.type_changed or self.nullability_changed or self.max_length_changed


@dataclass
class CreateTable:
    metadata: TableMetadata

    type: ClassVar[DiffType] = DiffType.CREATE_TABLE

    @property
    def table_name(self) -> str:
        return self.metadata.table_name


@dataclass
class AddColumn:
    metadata: TableMetadata
    column: ColumnMetadata

    type: ClassVar[DiffType] = DiffType.ADD_COLUMN

    @property
    def table_name(self) -> str:
        return self.metadata.table_name

    @property
    def column_name(self) -> str:
        return self.column.column_name


@dataclass
class DropColumn:
    table_name: str
    column_name: str

    type: ClassVar[DiffType] = DiffType.DROP_COLUMN


@dataclass
class AlterColumn:
    metadata: TableMetadata
    column: ColumnMetadata
    changes: ColumnChanges = field(default_factory=ColumnChanges)

    type: ClassVar[DiffType] = DiffType.ALTER_COLUMN

    @property
    def table_name(self) -> str:
        return self.metadata.table_name

    @property
    def column_name(self) -> str:
        return self.column.column_name


DiffOperation = Union[CreateTable, AddColumn, DropColumn, AlterColumn]


def expected_type(column: ColumnMetadata, table_name: str) -> str:
    """The SQL type a declared column should have, as shown in review comments."""
    if column.primary:
        return "SERIAL PRIMARY KEY"

    kind = column.kind
    if kind == ColumnKind.NUMBER:
        return "INT"
    if kind == ColumnKind.STRING:
        return f"VARCHAR({column.max_length})" if column.max_length else "TEXT"
    if kind == ColumnKind.ENUM:
        return enum_type_name(table_name, column.column_name)
    if kind == ColumnKind.TIMESTAMP:
        return "TIMESTAMPTZ"
    if kind == ColumnKind.DATE:
        return "DATE"
    return "UNKNOWN"


class SchemaDiffer:
    def compute_diff(
        self,
        entities: Sequence[TableMetadata],
        db_schema: DbSchema,
    ) -> list[DiffOperation]:
        """
        Operations needed to bring the live schema in line with ``entities``.

        Entities are visited in the given (registration) order; within a table,
        declared columns come first in declaration order, then live columns
        that are no longer declared.
        """
        db_tables = {table.table_name: table for table in db_schema.tables}
        diffs: list[DiffOperation] = []

        for metadata in entities:
            db_table = db_tables.get(metadata.table_name)
            if db_table is None:
                diffs.append(CreateTable(metadata))
            else:
                diffs.extend(self.compare_columns(metadata, db_table))

        return diffs

    def compare_columns(self, metadata: TableMetadata, db_table: DbTableInfo) -> list[DiffOperation]:
        diffs: list[DiffOperation] = []
        db_columns = {col.column_name: col for col in db_table.columns}
        declared = set()

        for column in metadata.columns:
            declared.add(column.column_name)
            db_column = db_columns.get(column.column_name)

            if db_column is None:
                diffs.append(AddColumn(metadata, column))
                continue

            changes = self.compare_column_types(column, db_column, metadata.table_name)
            if changes:
                diffs.append(AlterColumn(metadata, column, changes))

        for db_column in db_table.columns:
            if db_column.column_name not in declared:
                diffs.append(DropColumn(metadata.table_name, db_column.column_name))

        return diffs

    def compare_column_types(
        self,
        column: ColumnMetadata,
        db_column: DbColumnInfo,
        table_name: str,
    ) -> ColumnChanges:
        changes = ColumnChanges()

        if not self.types_match(column, db_column, table_name):
            changes.type_changed = True
            changes.old_type = db_column.data_type
            changes.new_type = expected_type(column, table_name)

        # Primary keys are implicitly NOT NULL
        if not column.primary and column.optional != db_column.is_nullable:
            changes.nullability_changed = True

        if column.kind == ColumnKind.STRING and column.max_length:
            if db_column.character_max_length != column.max_length:
                changes.max_length_changed = True

        return changes

    def types_match(self, column: ColumnMetadata, db_column: DbColumnInfo, table_name: str) -> bool:
        if column.primary:
            return (
                db_column.data_type == "integer"
                and db_column.column_default is not None
                and "nextval" in db_column.column_default
            )

        kind = column.kind
        if kind == ColumnKind.NUMBER:
            return db_column.data_type == "integer"
        if kind == ColumnKind.STRING:
            if column.max_length:
                return db_column.data_type == "character varying"
            return db_column.data_type == "text"
        if kind == ColumnKind.ENUM:
            return (
                db_column.data_type == "USER-DEFINED"
                and db_column.udt_name == enum_type_name(table_name, column.column_name)
            )
        if kind == ColumnKind.TIMESTAMP:
            return db_column.data_type == "timestamp with time zone"
        if kind == ColumnKind.DATE:
            return db_column.data_type == "date"
        return False
