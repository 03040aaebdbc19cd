"""
End-to-end tests against a live PostgreSQL server.

Each test gets its own schema (see the ``pg_schema`` fixture) and is skipped
when ORMDAY_TEST_DB_URL does not point at a reachable server.
"""
from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from ormday.db.entity_manager import EntityManager
from ormday.db.session import DbSession
from ormday.migrations.differ import DiffType, SchemaDiffer
from ormday.migrations.generator import MigrationGenerator
from ormday.migrations.introspector import SchemaIntrospector
from ormday.migrations.runner import Migrator
from ormday.orm.store import EntityStore
from ormday.orm.tracking import is_dirty, is_new

from ..entities import Habit, User

pytestmark = pytest.mark.integration


def _register_migrations(migrator: Migrator) -> None:
    @migrator.migration(1, "create users")
    def create_users(m, session):
        m.migrate_create_entity(User)

    @migrator.migration(2, "create habits")
    def create_habits(m, session):
        m.migrate_create_entity(Habit)

    @migrator.migration(3, "seed test user")
    def seed(m, session):
        em = m.entity_manager()
        user = em.create(User)
        user.username = "test"
        user.email = "test@example.com"
        user.password = "secret"
        em.save(user)


@pytest.fixture
def migrated(engine, store: EntityStore) -> Migrator:
    migrator = Migrator(engine, store)
    _register_migrations(migrator)
    assert migrator.run() == [1, 2, 3]
    return migrator


def test_run_is_idempotent(migrated: Migrator) -> None:
    assert migrated.run() == []
    assert migrated.current_version() == 3
    assert [row["description"] for row in migrated.applied_migrations()] == [
        "create users",
        "create habits",
        "seed test user",
    ]


def test_migrated_schema_matches_declarations(engine, pg_schema: str, store: EntityStore, migrated: Migrator) -> None:
    with DbSession(engine) as session:
        introspector = SchemaIntrospector(session, schema=pg_schema)
        schema = introspector.get_schema()
        next_version = introspector.get_next_migration_version()

    assert [t.table_name for t in schema.tables] == ["habits", "users"]
    assert next_version == 4
    assert SchemaDiffer().compute_diff(store.get_all(), schema) == []

    (cadence,) = schema.enums
    assert cadence.type_name == "habits_cadence_enum"
    assert cadence.enum_values == ["daily", "weekly"]


def test_generated_sql_applies_cleanly(engine, pg_schema: str, store: EntityStore) -> None:
    with DbSession(engine) as session:
        introspector = SchemaIntrospector(session, schema=pg_schema)
        diffs = SchemaDiffer().compute_diff(store.get_all(), introspector.get_schema())
        migration = MigrationGenerator().generate(diffs, introspector.get_next_migration_version())

    assert [d.type for d in diffs] == [DiffType.CREATE_TABLE, DiffType.CREATE_TABLE]
    assert migration.version == 1

    with DbSession(engine) as session:
        session.execute_ddl(migration.sql)

    with DbSession(engine) as session:
        schema = SchemaIntrospector(session, schema=pg_schema).get_schema()
    assert SchemaDiffer().compute_diff(store.get_all(), schema) == []


def test_dropped_column_is_detected(engine, pg_schema: str, store: EntityStore, migrated: Migrator) -> None:
    with DbSession(engine) as session:
        session.execute_ddl('ALTER TABLE "users" ADD COLUMN "legacy" TEXT')
        session.execute_ddl('ALTER TABLE "users" DROP COLUMN "auth_token"')
        schema = SchemaIntrospector(session, schema=pg_schema).get_schema()

    diffs = SchemaDiffer().compute_diff(store.get_all(), schema)

    assert [(d.type, d.column_name) for d in diffs] == [
        (DiffType.ADD_COLUMN, "auth_token"),
        (DiffType.DROP_COLUMN, "legacy"),
    ]


def test_seeded_user_round_trip(engine, migrated: Migrator) -> None:
    em = EntityManager(engine)

    user = em.fetch_one(User, {"username": "test"})
    assert user is not None
    assert isinstance(user.id, int)
    assert not is_new(user) and not is_dirty(user)

    assert em.fetch_one(User, {"username": "test", "password": "wrong"}) is None


def test_insert_update_delete(engine, migrated: Migrator) -> None:
    em = EntityManager(engine)
    owner = em.fetch_one(User, {"username": "test"})

    habit = em.create(Habit)
    habit.name = "run"
    habit.cadence = "daily"
    habit.user_id = owner.id
    em.save(habit)

    assert isinstance(habit.id, int)
    assert habit.created_at is None
    assert not is_new(habit)

    habit.cadence = "weekly"
    em.save(habit)
    (reloaded,) = em.fetch(Habit, {"id": habit.id})
    assert reloaded.cadence == "weekly"
    assert reloaded.name == "run"

    assert em.delete(reloaded) == 1
    assert em.fetch(Habit, {"id": habit.id}) == []
    assert em.delete(reloaded) == 0


def test_foreign_key_cascades_on_delete(engine, migrated: Migrator) -> None:
    em = EntityManager(engine)
    owner = em.fetch_one(User, {"username": "test"})
    habit = em.create(Habit)
    habit.name = "read"
    habit.user_id = owner.id
    em.save(habit)

    em.delete(owner)

    assert em.fetch(Habit) == []


def test_constraint_violation_propagates(engine, migrated: Migrator) -> None:
    em = EntityManager(engine)
    habit = em.create(Habit)
    habit.name = "orphan"
    habit.user_id = 999_999

    with pytest.raises(IntegrityError):
        em.save(habit)
    assert is_new(habit)


def test_failed_migration_leaves_no_trace(engine, pg_schema: str, store: EntityStore) -> None:
    migrator = Migrator(engine, store)

    @migrator.migration(1, "half done")
    def half_done(m, session):
        m.migrate_create_entity(User)
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        migrator.run()

    assert migrator.current_version() == 0
    with DbSession(engine) as session:
        introspector = SchemaIntrospector(session, schema=pg_schema)
        assert not introspector.table_exists("users")
