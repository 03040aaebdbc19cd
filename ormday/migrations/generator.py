"""
Render schema diffs as a reviewable SQL migration.

Generated SQL is meant to be read, edited and committed by a developer, never
applied automatically. Destructive operations get a warning comment and column
type changes only get comments: converting data between types is a decision
the generator cannot make.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from ..orm.metadata import ColumnKind
from . import ddl
from .differ import AddColumn, AlterColumn, CreateTable, DiffOperation, DiffType, DropColumn

logger = logging.getLogger(__name__)


@dataclass
class GeneratedMigration:
    version: int
    description: str
    sql: str


class MigrationGenerator:
    def generate(
        self,
        diffs: Sequence[DiffOperation],
        version: int,
        generated_at: Optional[datetime] = None,
    ) -> GeneratedMigration:
        statements: list[str] = []

        for diff in diffs:
            if isinstance(diff, CreateTable):
                statements.extend(self.generate_create_table(diff))
            elif isinstance(diff, AddColumn):
                statements.extend(self.generate_add_column(diff))
            elif isinstance(diff, DropColumn):
                statements.extend(self.generate_drop_column(diff))
            elif isinstance(diff, AlterColumn):
                statements.extend(self.generate_alter_column(diff))
            else:
                raise TypeError(f"Unknown diff operation {diff!r}")

            statements.append("")  # blank line between operations

        description = generate_description(diffs)
        sql = self.format_sql(version, description, statements, generated_at)
        logger.debug("Generated migration %d: %s", version, description)

        return GeneratedMigration(version=version, description=description, sql=sql)

    def generate_create_table(self, diff: CreateTable) -> list[str]:
        metadata = diff.metadata
        statements = [
            ddl.create_enum_type_sql(metadata.table_name, col)
            for col in metadata.columns
            if col.kind == ColumnKind.ENUM
        ]
        statements.append(ddl.create_table_sql(metadata))
        return statements

    def generate_add_column(self, diff: AddColumn) -> list[str]:
        table_name = diff.table_name
        column = diff.column
        statements = []

        if column.kind == ColumnKind.ENUM:
            statements.append(ddl.create_enum_type_sql(table_name, column))

        statements.append(ddl.add_column_sql(table_name, column))

        fk = diff.metadata.foreign_key_for(column.property_key)
        if fk is not None:
            statements.append(ddl.add_foreign_key_sql(table_name, column.column_name, fk))

        return statements

    def generate_drop_column(self, diff: DropColumn) -> list[str]:
        return [
            "-- WARNING: Dropping column - verify this is intentional!",
            ddl.drop_column_sql(diff.table_name, diff.column_name),
        ]

    def generate_alter_column(self, diff: AlterColumn) -> list[str]:
        changes = diff.changes
        statements = [
            f'-- WARNING: Column "{diff.table_name}"."{diff.column_name}" '
            "change detected - manual review required"
        ]
        if changes.type_changed:
            statements.append(
                f'-- Type changed from "{changes.old_type}" to "{changes.new_type}"'
            )
        if changes.nullability_changed:
            wanted = "NULL" if diff.column.optional else "NOT NULL"
            statements.append(f"-- Nullability changed (declared {wanted})")
        if changes.max_length_changed:
            statements.append(f"-- Max length changed (declared {diff.column.max_length})")
        statements.append("-- Write the ALTER TABLE statement for this change by hand")
        return statements

    def format_sql(
        self,
        version: int,
        description: str,
        statements: Sequence[str],
        generated_at: Optional[datetime] = None,
    ) -> str:
        generated_at = generated_at or datetime.now(timezone.utc)
        lines = [
            f"-- Migration: {version}",
            f"-- Description: {description}",
            f"-- Generated: {generated_at.isoformat()}",
            "",
            *statements,
        ]
        return "\n".join(lines)


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"


def generate_description(diffs: Sequence[DiffOperation]) -> str:
    """
    One-line summary: table creations first, then added, dropped and altered
    columns. More than two operations of a kind collapse into a count.
    """
    by_type: dict[DiffType, list[DiffOperation]] = {t: [] for t in DiffType}
    for diff in diffs:
        by_type[diff.type].append(diff)

    parts = []

    creates = by_type[DiffType.CREATE_TABLE]
    if creates:
        if len(creates) <= 2:
            names = ", ".join(d.table_name for d in creates)
            parts.append(f"Create {names} table{'s' if len(creates) > 1 else ''}")
        else:
            parts.append(f"Create {len(creates)} tables")

    adds = by_type[DiffType.ADD_COLUMN]
    if adds:
        if len(adds) <= 2:
            parts.append("Add " + ", ".join(f"{d.column_name} to {d.table_name}" for d in adds))
        else:
            parts.append(f"Add {len(adds)} columns")

    drops = by_type[DiffType.DROP_COLUMN]
    if drops:
        if len(drops) <= 2:
            parts.append("Drop " + ", ".join(f"{d.column_name} from {d.table_name}" for d in drops))
        else:
            parts.append(f"Drop {_plural(len(drops), 'column')}")

    alters = by_type[DiffType.ALTER_COLUMN]
    if alters:
        parts.append(f"Alter {_plural(len(alters), 'column')}")

    return ", ".join(parts) or "Schema changes"


def to_kebab_case(value: str) -> str:
    value = re.sub(r"([a-z0-9])([A-Z])", r"\1-\2", value)
    value = re.sub(r"[^A-Za-z0-9]+", "-", value)
    return value.strip("-").lower()


def migration_filename(name: str, on: Optional[date] = None) -> str:
    """``{YYYY-MM-DD}-{kebab-case name}.sql``"""
    on = on or date.today()
    return f"{on.isoformat()}-{to_kebab_case(name)}.sql"


def write_migration(
    migration: GeneratedMigration,
    directory: str | Path,
    name: Optional[str] = None,
    on: Optional[date] = None,
) -> Path:
    """Write ``migration`` to ``directory`` (created if needed) and return the file path."""
    path = Path(directory) / migration_filename(name or migration.description, on)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(migration.sql)
    logger.info("Written migration %d to %s", migration.version, path)
    return path
