from __future__ import annotations

import logging
import sqlite3
import threading
import time

import pytest

from recordmap.domain.models import Mapping, Record
from recordmap.errors import AlreadyPersistedError, UnsavedRecordError
from recordmap.mapper import ColumnCatalog, RecordMapper
from recordmap.query import SQLITE

SEEDED_ROWS = 5


def _row(conn: sqlite3.Connection, record_id: int) -> dict:
    cursor = conn.execute("SELECT * FROM users WHERE id = ?", (record_id,))
    names = [column[0] for column in cursor.description]
    return dict(zip(names, cursor.fetchone()))


def test_create_assigns_id_and_find_returns_same_fields(users):
    user = users.new({"name": "ada", "age": 36, "score": 9.5, "active": "1"})

    new_id = users.create(user)

    assert new_id == user.id == 1
    found = users.find(new_id)
    assert found is not None
    assert found.id == new_id
    for column in ("name", "age", "score", "active"):
        assert found[column] == user[column]


def test_create_writes_audit_timestamps(users, clock, sqlite_conn):
    user = users.new({"name": "ada"})
    users.create(user)

    row = _row(sqlite_conn, user.id)
    assert row["created_at"] == clock.now
    assert row["updated_at"] == clock.now


def test_create_skips_timestamps_when_mapping_has_none(users_mapping, provider, sqlite_conn):
    mapping = users_mapping.model_copy(update={"has_created_at": False, "has_updated_at": False})
    mapper = RecordMapper(mapping, dialect=SQLITE, connection_provider=provider)
    user = mapper.new({"name": "ada"})
    mapper.create(user)

    row = _row(sqlite_conn, user.id)
    assert row["created_at"] is None
    assert row["updated_at"] is None


def test_create_ignores_undeclared_fields(users, sqlite_conn):
    user = users.new({"name": "ada", "nickname": "countess"})

    users.create(user)

    assert _row(sqlite_conn, user.id)["name"] == "ada"


def test_create_with_no_fields_inserts_defaults(users_mapping, provider):
    mapping = users_mapping.model_copy(update={"has_created_at": False, "has_updated_at": False})
    mapper = RecordMapper(mapping, dialect=SQLITE, connection_provider=provider)

    assert mapper.create(mapper.new()) == 1


def test_create_on_persisted_record_is_rejected(users):
    user = users.new({"name": "ada"})
    users.create(user)

    with pytest.raises(AlreadyPersistedError):
        users.create(user)
    assert users.count_by({}) == 1


def test_create_propagates_store_errors(users_mapping, provider):
    mapping = Mapping(table="missing_table", columns={"name": "string"})
    mapper = RecordMapper(mapping, dialect=SQLITE, connection_provider=provider)

    with pytest.raises(sqlite3.OperationalError):
        mapper.create(mapper.new({"name": "ada"}))


def test_find_returns_none_when_missing(users, seeded_users):
    assert users.find(999) is None


def test_find_by_returns_first_match_or_none(users, seeded_users):
    found = users.find_by({"name": "bob"})

    assert found is not None
    assert found["age"] == 30
    assert users.find_by({"name": "zed"}) is None


def test_find_all_by_filters_orders_and_limits(users, seeded_users):
    records = users.find_all_by(
        {"age": [20, 30]}, order={"name": "DESC"}, limit={"limit": 2, "offset": 1}
    )

    assert [record["name"] for record in records] == ["carol", "bob"]
    assert all(isinstance(record, Record) for record in records)


def test_find_all_by_returns_fresh_instances(users, seeded_users):
    first = users.find_all_by({"name": "alice"})[0]
    second = users.find_all_by({"name": "alice"})[0]

    assert first == second
    assert first is not second


def test_find_all_by_with_no_match_is_empty(users, seeded_users):
    assert users.find_all_by({"age": []}) == []
    assert users.find_all_by({"age": 99}) == []


def test_count_by_matches_table_size(users, seeded_users):
    assert users.count_by({}) == SEEDED_ROWS
    assert users.count_by() == SEEDED_ROWS
    assert users.count_by({}, high_performance=True) == SEEDED_ROWS
    assert users.count_by({"age": 20}) == 2
    assert users.count_by({"age": [30, 40]}) == 3


def test_count_by_on_empty_table_is_zero(users):
    assert users.count_by({}) == 0


def test_get_column_specific_data_projects_columns(users, seeded_users):
    records = users.get_column_specific_data(["id", "name"], {"age": 30}, order={"id": "ASC"})

    assert [record.values() for record in records] == [{"name": "bob"}, {"name": "erin"}]
    assert [record.id for record in records] == [2, 5]
    assert not records[0].is_set("age")


def test_update_requires_persisted_record(users, provider, seeded_users):
    borrows_before = provider.borrows

    with pytest.raises(UnsavedRecordError):
        users.update(users.new({"name": "ghost"}))

    assert provider.borrows == borrows_before
    assert users.count_by({"name": "ghost"}) == 0


def test_update_rewrites_present_columns_and_touches_updated_at(users, clock, sqlite_conn):
    user = users.new({"name": "ada", "age": 36})
    users.create(user)
    created_at = clock.now
    clock.now = "2024-06-01 08:30:00"

    user["age"] = 37
    affected = users.update(user)

    assert affected == 1
    row = _row(sqlite_conn, user.id)
    assert row["age"] == 37
    assert row["name"] == "ada"
    assert row["created_at"] == created_at
    assert row["updated_at"] == "2024-06-01 08:30:00"


def test_update_of_missing_row_affects_nothing(users):
    stale = Record(users.mapping, {"name": "nobody"}, id=404)

    assert users.update(stale) == 0


def test_update_with_nothing_to_set_returns_zero(users_mapping, provider):
    mapping = users_mapping.model_copy(update={"has_updated_at": False})
    mapper = RecordMapper(mapping, dialect=SQLITE, connection_provider=provider)
    record = Record(mapping, {"nickname": "x"}, id=1)
    borrows_before = provider.borrows

    assert mapper.update(record) == 0
    assert provider.borrows == borrows_before


def test_delete_removes_row(users, seeded_users):
    bob = users.find_by({"name": "bob"})

    assert users.delete(bob) == 1
    assert users.find(bob.id) is None
    assert users.count_by({}) == SEEDED_ROWS - 1


def test_delete_requires_persisted_record(users):
    with pytest.raises(UnsavedRecordError) as excinfo:
        users.delete(users.new({"name": "ghost"}))

    assert excinfo.value.operation == "delete"
    assert excinfo.value.mapping_name == "users"


def test_explicit_connection_bypasses_provider(users, provider, sqlite_conn, seeded_users):
    borrows_before = provider.borrows

    assert users.count_by({}, conn=sqlite_conn) == SEEDED_ROWS
    assert provider.borrows == borrows_before


def test_columns_on_db_is_fetched_once(users, provider):
    first = users.columns_on_db()
    borrows_after_first = provider.borrows
    second = users.columns_on_db()

    assert first == second
    assert first[:3] == ("id", "name", "age")
    assert provider.borrows == borrows_after_first


def test_column_catalog_is_shared_per_mapping_name(users_mapping, provider):
    catalog = ColumnCatalog()
    one = RecordMapper(users_mapping, dialect=SQLITE, connection_provider=provider, catalog=catalog)
    two = RecordMapper(users_mapping, dialect=SQLITE, connection_provider=provider, catalog=catalog)

    one.columns_on_db()
    borrows = provider.borrows
    two.columns_on_db()

    assert provider.borrows == borrows
    catalog.forget()
    two.columns_on_db()
    assert provider.borrows == borrows + 1


def test_column_catalog_loads_once_under_concurrent_first_access():
    catalog = ColumnCatalog()
    calls = []
    workers = 8
    barrier = threading.Barrier(workers)
    results = []

    def slow_loader():
        calls.append(1)
        time.sleep(0.05)
        return ["id", "name"]

    def lookup():
        barrier.wait()
        results.append(catalog.get(("User", "users"), slow_loader))

    threads = [threading.Thread(target=lookup) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert len(calls) == 1
    assert results == [("id", "name")] * workers


def test_column_catalog_slow_key_does_not_block_other_keys():
    catalog = ColumnCatalog()
    loading = threading.Event()
    release = threading.Event()

    def blocked_loader():
        loading.set()
        release.wait(timeout=5)
        return ["id"]

    slow = threading.Thread(target=catalog.get, args=(("Slow", "slow"), blocked_loader))
    slow.start()
    try:
        assert loading.wait(timeout=5)
        assert catalog.get(("Fast", "fast"), lambda: ["id", "label"]) == ("id", "label")
        assert slow.is_alive()
    finally:
        release.set()
        slow.join(timeout=5)

    assert catalog.get(("Slow", "slow"), lambda: ["unused"]) == ("id",)


def test_has_column_needs_both_live_and_declared(users_mapping, provider):
    columns = dict(users_mapping.columns)
    columns["ghost"] = {"type": "string"}
    mapping = Mapping(table="users", columns=columns)
    mapper = RecordMapper(mapping, dialect=SQLITE, connection_provider=provider, catalog=ColumnCatalog())

    assert mapper.has_column("name")
    assert not mapper.has_column("ghost")
    assert mapper.has_column_defined("ghost")
    assert not mapper.has_column("created_at")
    assert not mapper.has_column_defined("created_at")


def test_assign_skips_undeclared_names(users):
    user = users.new()

    rejected = users.assign(user, {"name": "ada", "age": 36, "nickname": "countess"})

    assert rejected == ["nickname"]
    assert user.values() == {"name": "ada", "age": 36}


def test_to_json_hash_of_fetched_row(users, seeded_users):
    carol = users.find_by({"name": "carol"})
    dave = users.find_by({"name": "dave"})

    assert users.to_json_hash(carol) == {
        "id": 3,
        "name": "carol",
        "age": 20,
        "score": "",
        "active": True,
    }
    assert users.to_json_hash(dave)["active"] == ""
    assert users.to_json_hash(users.find_by({"name": "bob"}))["active"] is False


def test_statements_are_logged_at_debug(users, seeded_users, caplog):
    with caplog.at_level(logging.DEBUG, logger="recordmap.mapper"):
        users.find_by({"name": "bob"})

    record = next(r for r in caplog.records if r.getMessage() == "Executing statement")
    assert record.sql == "SELECT * FROM users WHERE name = ?"
    assert record.params == ["bob"]
    assert record.table == "users"
