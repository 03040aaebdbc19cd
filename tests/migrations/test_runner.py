from __future__ import annotations

import pytest

from ormday.db.entity_manager import EntityManager
from ormday.errors import MetadataError, SequenceGapError
from ormday.migrations.runner import Migrator
from ormday.orm.store import EntityStore

from ..entities import Habit, User
from ..fakes import LedgerSession, session_factory


def _migrator(store: EntityStore, session: LedgerSession) -> Migrator:
    return Migrator(object(), store, session_factory=session_factory(session))


def _recording_handler(calls: list[int], version: int):
    def handler(migrator, session):
        calls.append(version)

    return handler


def test_run_creates_ledger_table(store: EntityStore, ledger_session: LedgerSession) -> None:
    _migrator(store, ledger_session).run()

    (ddl,) = ledger_session.sql("execute_ddl")
    assert ddl.startswith('CREATE TABLE IF NOT EXISTS "schema_versions" (')
    assert '"version" INTEGER PRIMARY KEY' in ddl
    assert '"description" VARCHAR(255) NOT NULL' in ddl
    assert '"created_at" TIMESTAMP NOT NULL DEFAULT now()' in ddl


def test_run_applies_pending_versions_in_order(store: EntityStore, ledger_session: LedgerSession) -> None:
    calls: list[int] = []
    migrator = _migrator(store, ledger_session)
    for version in (3, 1, 2):
        migrator.register_migration(version, f"v{version}", _recording_handler(calls, version))

    applied = migrator.run()

    assert applied == [1, 2, 3]
    assert calls == [1, 2, 3]
    assert ledger_session.versions() == [1, 2, 3]


def test_second_run_applies_nothing(store: EntityStore, ledger_session: LedgerSession) -> None:
    calls: list[int] = []
    migrator = _migrator(store, ledger_session)
    migrator.register_migration(1, "v1", _recording_handler(calls, 1))
    migrator.register_migration(2, "v2", _recording_handler(calls, 2))

    migrator.run()
    assert migrator.run() == []

    assert calls == [1, 2]
    assert migrator.current_version() == migrator.max_version == 2


def test_only_unapplied_versions_run() -> None:
    session = LedgerSession(applied=[1, 2])
    calls: list[int] = []
    migrator = _migrator(EntityStore(), session)
    for version in (1, 2, 3):
        migrator.register_migration(version, f"v{version}", _recording_handler(calls, version))

    assert migrator.run() == [3]

    assert calls == [3]
    assert session.versions() == [1, 2, 3]
    inserts = [(sql, params) for method, sql, params in session.statements if "INSERT INTO" in sql]
    assert inserts == [(
        'INSERT INTO "schema_versions" (version, description) VALUES (:version, :description)',
        {"version": 3, "description": "v3"},
    )]


def test_gap_aborts_after_contiguous_prefix(store: EntityStore, ledger_session: LedgerSession) -> None:
    calls: list[int] = []
    migrator = _migrator(store, ledger_session)
    migrator.register_migration(1, "v1", _recording_handler(calls, 1))
    migrator.register_migration(3, "v3", _recording_handler(calls, 3))

    with pytest.raises(SequenceGapError) as excinfo:
        migrator.run()

    assert excinfo.value.version == 2
    assert calls == [1]
    assert ledger_session.versions() == [1]


def test_failing_handler_stops_run_and_records_nothing(
    store: EntityStore, ledger_session: LedgerSession,
) -> None:
    calls: list[int] = []

    def broken(migrator, session):
        raise RuntimeError("boom")

    migrator = _migrator(store, ledger_session)
    migrator.register_migration(1, "v1", _recording_handler(calls, 1))
    migrator.register_migration(2, "broken", broken)
    migrator.register_migration(3, "v3", _recording_handler(calls, 3))

    with pytest.raises(RuntimeError, match="boom"):
        migrator.run()

    assert calls == [1]
    assert ledger_session.versions() == [1]
    assert ledger_session.rollbacks == 1


def test_register_rejects_non_positive_versions(store: EntityStore, ledger_session: LedgerSession) -> None:
    migrator = _migrator(store, ledger_session)

    for bad in (0, -1, 1.5, True):
        with pytest.raises(ValueError):
            migrator.register_migration(bad, "bad", lambda m, s: None)


def test_reregistering_a_version_overwrites_it(store: EntityStore, ledger_session: LedgerSession) -> None:
    calls: list[int] = []
    migrator = _migrator(store, ledger_session)
    migrator.register_migration(1, "first", _recording_handler(calls, 100))
    migrator.register_migration(1, "second", _recording_handler(calls, 1))

    migrator.run()

    assert calls == [1]
    assert ledger_session.ledger[0]["description"] == "second"


def test_migration_decorator_registers_handler(store: EntityStore, ledger_session: LedgerSession) -> None:
    migrator = _migrator(store, ledger_session)

    @migrator.migration(1, "initial migration")
    def initial(m, session):
        m.migrate_create_entity(User)

    assert migrator.versions[1].handler is initial
    assert migrator.run() == [1]
    assert migrator.pending_versions() == []


def test_migrate_create_entity_is_idempotent_ddl(store: EntityStore, ledger_session: LedgerSession) -> None:
    migrator = _migrator(store, ledger_session)

    migrator.migrate_create_entity(Habit)

    enum_ddl, table_ddl = ledger_session.sql("execute_ddl")
    assert enum_ddl == (
        "DO $$ BEGIN CREATE TYPE \"habits_cadence_enum\" AS ENUM ('daily', 'weekly'); "
        "EXCEPTION WHEN duplicate_object THEN NULL; END $$;"
    )
    assert table_ddl.startswith('CREATE TABLE IF NOT EXISTS "habits" (')
    assert 'CONSTRAINT "fk_habits_user_id" FOREIGN KEY ("user_id")' in table_ddl


def test_migrate_create_entity_requires_registration(ledger_session: LedgerSession) -> None:
    migrator = _migrator(EntityStore(), ledger_session)

    with pytest.raises(MetadataError):
        migrator.migrate_create_entity(User)


def test_add_column_helper(store: EntityStore, ledger_session: LedgerSession) -> None:
    migrator = _migrator(store, ledger_session)

    migrator.add_column(Habit, "user_id")

    assert ledger_session.sql("execute_ddl") == [
        'ALTER TABLE "habits" ADD COLUMN IF NOT EXISTS "user_id" INT;',
        'ALTER TABLE "habits" ADD CONSTRAINT "fk_habits_user_id" FOREIGN KEY ("user_id") '
        'REFERENCES "users"("id") ON DELETE CASCADE;',
    ]

    with pytest.raises(MetadataError, match="doesn't exist"):
        migrator.add_column(Habit, "nickname")


def test_handlers_share_the_version_session(store: EntityStore, ledger_session: LedgerSession) -> None:
    seen = {}

    def seed(m, session):
        em = m.entity_manager()
        seen["em"] = em
        seen["session"] = session
        user = em.create(User)
        user.username = "test"
        em.save(user)

    ledger_session.fetch_one_responses["INSERT INTO \"users\""] = {"id": 1, "username": "test"}
    migrator = _migrator(store, ledger_session)
    migrator.register_migration(1, "seed", seed)

    migrator.run()

    assert isinstance(seen["em"], EntityManager)
    assert seen["em"]._session is seen["session"] is ledger_session
    assert any(sql.startswith('INSERT INTO "users"') for sql in ledger_session.sql("fetch_one"))


def test_pending_versions_and_applied_rows() -> None:
    session = LedgerSession(applied=[1])
    migrator = _migrator(EntityStore(), session)
    for version in (1, 2, 3):
        migrator.register_migration(version, f"v{version}", lambda m, s: None)

    assert migrator.pending_versions() == [2, 3]
    assert [row["version"] for row in migrator.applied_migrations()] == [1]
