"""
Command line entry points.

    ormday generate [name] [--write] [--dir DIR] --entities app.entities:register
    ormday migrate --entities app.entities:register --migrations app.migrations:register
    ormday status --migrations app.migrations:register

``--entities`` names a callable that receives the EntityStore and registers
the application's entities; ``--migrations`` names a callable that receives
the Migrator and registers its migration handlers. The database comes from
DATABASE_URL.
"""
from __future__ import annotations

import argparse
import importlib
import logging
import sys
from typing import Any, Callable, Optional

from sqlalchemy.engine import Engine

from .config import DbConfig, MigrationConfig, make_engine
from .db.session import DbSession
from .migrations.differ import SchemaDiffer
from .migrations.generator import MigrationGenerator, write_migration
from .migrations.introspector import SchemaIntrospector
from .migrations.runner import Migrator
from .orm.store import EntityStore

logger = logging.getLogger("ormday.cli")


def load_callable(path: str) -> Callable[..., Any]:
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Expected 'module:function', got {path!r}")
    module = importlib.import_module(module_name)
    return getattr(module, attr)


def build_store(entities: Optional[str]) -> EntityStore:
    store = EntityStore()
    if entities:
        load_callable(entities)(store)
    return store


def cmd_generate(args: argparse.Namespace, config: DbConfig, engine: Engine) -> int:
    store = build_store(args.entities)

    with DbSession(engine) as session:
        introspector = SchemaIntrospector(session, config.schema, config.ledger_table)
        logger.info("Fetching database schema...")
        db_schema = introspector.get_schema()
        next_version = introspector.get_next_migration_version()

    logger.info(
        "Found %d table(s) in database: %s",
        len(db_schema.tables),
        ", ".join(t.table_name for t in db_schema.tables) or "(none)",
    )
    entities = store.get_all()
    logger.info(
        "Found %d entity(ies) in code: %s",
        len(entities),
        ", ".join(e.table_name for e in entities) or "(none)",
    )

    diffs = SchemaDiffer().compute_diff(entities, db_schema)
    if not diffs:
        print("No schema changes detected. Database is in sync with entities.")
        return 0

    print(f"Detected {len(diffs)} change(s):")
    for diff in diffs:
        target = diff.table_name
        if hasattr(diff, "column_name"):
            target += f".{diff.column_name}"
        print(f"  - {diff.type.value.replace('_', ' ')}: {target}")

    migration = MigrationGenerator().generate(diffs, next_version)

    rule = "=" * 60
    print(f"\n{rule}\nGenerated SQL\n{rule}\n")
    print(migration.sql)
    print(f"\n{rule}")

    if args.write:
        path = write_migration(migration, args.dir, args.name)
        print(f"\nWritten to: {path}")
    else:
        print("\nTip: Run with --write to save to a file")

    return 0


def cmd_migrate(args: argparse.Namespace, config: DbConfig, engine: Engine) -> int:
    store = build_store(args.entities)
    migrator = Migrator(engine, store, ledger_table=config.ledger_table)
    load_callable(args.migrations)(migrator)

    applied = migrator.run()
    if applied:
        print(f"Applied migrations: {', '.join(str(v) for v in applied)}")
    else:
        print(f"Database is up to date at version {migrator.current_version()}")
    return 0


def cmd_status(args: argparse.Namespace, config: DbConfig, engine: Engine) -> int:
    store = build_store(args.entities)
    migrator = Migrator(engine, store, ledger_table=config.ledger_table)
    if args.migrations:
        load_callable(args.migrations)(migrator)

    with DbSession(engine) as session:
        introspector = SchemaIntrospector(session, config.schema, config.ledger_table)
        has_ledger = introspector.table_exists(config.ledger_table)

    if not has_ledger:
        print("No migrations applied")
        for version in sorted(migrator.versions):
            print(f"  pending  {version:>4}  {migrator.versions[version].description}")
        return 0

    for row in migrator.applied_migrations():
        print(f"  applied  {row['version']:>4}  {row['description']}  ({row['created_at']})")
    for version in migrator.pending_versions():
        print(f"  pending  {version:>4}  {migrator.versions[version].description}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ormday", description="Entity schema migration tools")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log generated SQL")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Diff entities against the database and print SQL")
    gen.add_argument("name", nargs="?", help="Migration file name (default: from description)")
    gen.add_argument("--write", action="store_true", help="Write the SQL to the migrations directory")
    gen.add_argument("--dir", default=MigrationConfig().migrations_dir, help="Migrations directory")
    gen.add_argument("--entities", required=True, help="module:function registering entities")
    gen.set_defaults(func=cmd_generate)

    mig = sub.add_parser("migrate", help="Apply registered migrations")
    mig.add_argument("--entities", help="module:function registering entities")
    mig.add_argument("--migrations", required=True, help="module:function registering migrations")
    mig.set_defaults(func=cmd_migrate)

    status = sub.add_parser("status", help="Show applied and pending migrations")
    status.add_argument("--entities", help="module:function registering entities")
    status.add_argument("--migrations", help="module:function registering migrations")
    status.set_defaults(func=cmd_status)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = DbConfig.from_env()
        engine = make_engine(config)
    except ValueError as exc:
        logger.error("%s", exc)
        return 1

    try:
        return args.func(args, config, engine)
    except Exception:
        logger.exception("ormday %s failed", args.command)
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
