from .differ import (
    AddColumn,
    AlterColumn,
    ColumnChanges,
    CreateTable,
    DiffOperation,
    DiffType,
    DropColumn,
    SchemaDiffer,
)
from .generator import GeneratedMigration, MigrationGenerator, write_migration
from .introspector import DbColumnInfo, DbEnumInfo, DbSchema, DbTableInfo, SchemaIntrospector
from .runner import MigrationDef, Migrator

__all__ = [
    "AddColumn",
    "AlterColumn",
    "ColumnChanges",
    "CreateTable",
    "DbColumnInfo",
    "DbEnumInfo",
    "DbSchema",
    "DbTableInfo",
    "DiffOperation",
    "DiffType",
    "DropColumn",
    "GeneratedMigration",
    "MigrationDef",
    "MigrationGenerator",
    "Migrator",
    "SchemaDiffer",
    "SchemaIntrospector",
    "write_migration",
]
