"""SQL rendering of declared tables and columns, shared by the generator and the runner."""
from __future__ import annotations

from ..db.helpers import quote_identifier, quote_literal
from ..errors import MetadataError
from ..orm.metadata import (
    ColumnKind,
    ColumnMetadata,
    ForeignKey,
    TableMetadata,
    enum_type_name,
    foreign_key_name,
)


def column_type_sql(table_name: str, column: ColumnMetadata) -> str:
    kind = column.kind
    if kind == ColumnKind.NUMBER:
        return "INT"
    if kind == ColumnKind.STRING:
        return f"VARCHAR({column.max_length})" if column.max_length else "TEXT"
    if kind == ColumnKind.ENUM:
        return quote_identifier(enum_type_name(table_name, column.column_name))
    if kind == ColumnKind.TIMESTAMP:
        return "TIMESTAMPTZ"
    if kind == ColumnKind.DATE:
        return "DATE"
    raise MetadataError(f"Unsupported column kind {kind!r} on {table_name}.{column.column_name}")


def column_sql(table_name: str, column: ColumnMetadata) -> str:
    """``"name" TYPE [NOT NULL]`` as used in CREATE TABLE and ADD COLUMN."""
    sql = f"{quote_identifier(column.column_name)} "
    if column.primary:
        return sql + "SERIAL PRIMARY KEY"

    sql += column_type_sql(table_name, column)
    if not column.optional:
        sql += " NOT NULL"
    return sql


def enum_values_sql(column: ColumnMetadata) -> str:
    return ", ".join(quote_literal(v) for v in column.enum_values)


def create_enum_type_sql(table_name: str, column: ColumnMetadata) -> str:
    type_name = quote_identifier(enum_type_name(table_name, column.column_name))
    return f"CREATE TYPE {type_name} AS ENUM ({enum_values_sql(column)});"


def create_enum_type_if_not_exists_sql(table_name: str, column: ColumnMetadata) -> str:
    # PostgreSQL has no CREATE TYPE IF NOT EXISTS
    return (
        "DO $$ BEGIN "
        f"{create_enum_type_sql(table_name, column)} "
        "EXCEPTION WHEN duplicate_object THEN NULL; "
        "END $$;"
    )


def foreign_key_clause_sql(column_name: str, fk: ForeignKey) -> str:
    sql = (
        f"FOREIGN KEY ({quote_identifier(column_name)}) "
        f"REFERENCES {quote_identifier(fk.referenced_table)}({quote_identifier(fk.referenced_column)})"
    )
    if fk.on_delete is not None:
        sql += f" ON DELETE {fk.on_delete.value}"
    return sql


def foreign_key_constraint_sql(table_name: str, column_name: str, fk: ForeignKey) -> str:
    """Named table constraint, as used inside CREATE TABLE."""
    constraint = quote_identifier(foreign_key_name(table_name, column_name))
    return f"CONSTRAINT {constraint} {foreign_key_clause_sql(column_name, fk)}"


def add_foreign_key_sql(table_name: str, column_name: str, fk: ForeignKey) -> str:
    return (
        f"ALTER TABLE {quote_identifier(table_name)} ADD "
        f"{foreign_key_constraint_sql(table_name, column_name, fk)};"
    )


def fk_column_name(metadata: TableMetadata, fk: ForeignKey) -> str:
    column = metadata.column_for_property(fk.property_key)
    return column.column_name if column is not None else fk.property_key


def create_table_sql(metadata: TableMetadata, if_not_exists: bool = False) -> str:
    table_name = metadata.table_name
    definitions = [column_sql(table_name, col) for col in metadata.columns]
    definitions += [
        foreign_key_constraint_sql(table_name, fk_column_name(metadata, fk), fk)
        for fk in metadata.foreign_keys
    ]

    head = "CREATE TABLE IF NOT EXISTS" if if_not_exists else "CREATE TABLE"
    body = ",\n".join("  " + d for d in definitions)
    return f"{head} {quote_identifier(table_name)} (\n{body}\n);"


def add_column_sql(table_name: str, column: ColumnMetadata, if_not_exists: bool = False) -> str:
    clause = "ADD COLUMN IF NOT EXISTS" if if_not_exists else "ADD COLUMN"
    return f"ALTER TABLE {quote_identifier(table_name)} {clause} {column_sql(table_name, column)};"


def drop_column_sql(table_name: str, column_name: str) -> str:
    return f"ALTER TABLE {quote_identifier(table_name)} DROP COLUMN {quote_identifier(column_name)};"
