# Tests for storage.py: row-scoped JSON tables.
# Created: 2026-10-10

import json
from unittest.mock import patch

import pytest

from rankdeck.storage import (
    Caller,
    PermissionDeniedError,
    RecordNotFoundError,
    RecordTable,
    StorageError,
)


@pytest.fixture
def table(tmp_path):
    return RecordTable("things", tmp_path / "things.json")


class TestCaller:
    def test_unknown_role_is_user(self):
        assert Caller("u1", role="superuser").role == "user"

    def test_elevated_roles(self):
        assert Caller("u1", role="admin").elevated
        assert Caller("u1", role="manager").elevated
        assert not Caller("u1").elevated


class TestRowScoping:
    def test_insert_defaults_owner_and_id(self, table, alice):
        row = table.insert(alice, {"name": "a"})
        assert row["owner_id"] == "alice"
        assert row["id"]

    def test_select_only_own_rows(self, table, alice, bob):
        table.insert(alice, {"name": "a"})
        table.insert(bob, {"name": "b"})
        assert [r["name"] for r in table.select(alice)] == ["a"]
        assert [r["name"] for r in table.select(bob)] == ["b"]

    def test_admin_sees_everything(self, table, alice, bob, admin):
        table.insert(alice, {"name": "a"})
        table.insert(bob, {"name": "b"})
        assert len(table.select(admin)) == 2

    def test_insert_for_other_owner_denied(self, table, alice):
        with pytest.raises(PermissionDeniedError):
            table.insert(alice, {"owner_id": "bob", "name": "x"})

    def test_get_hides_foreign_row(self, table, alice, bob):
        row = table.insert(alice, {"name": "a"})
        assert table.get(bob, row["id"]) is None
        assert table.get(alice, row["id"])["name"] == "a"

    def test_update_foreign_row_not_found(self, table, alice, bob):
        row = table.insert(alice, {"name": "a"})
        with pytest.raises(RecordNotFoundError):
            table.update(bob, row["id"], {"name": "hacked"})

    def test_delete_foreign_row_is_noop(self, table, alice, bob):
        row = table.insert(alice, {"name": "a"})
        assert table.delete(bob, row["id"]) is False
        assert table.get(alice, row["id"]) is not None

    def test_returned_rows_are_copies(self, table, alice):
        row = table.insert(alice, {"name": "a"})
        row["name"] = "mutated"
        assert table.select(alice)[0]["name"] == "a"


class TestUpsert:
    def test_upsert_inserts_then_overwrites(self, table, alice):
        first = table.upsert(alice, {"kind": "k", "value": 1}, on_conflict=("owner_id", "kind"))
        second = table.upsert(alice, {"kind": "k", "value": 2}, on_conflict=("owner_id", "kind"))
        assert first["id"] == second["id"]
        rows = table.select(alice)
        assert len(rows) == 1
        assert rows[0]["value"] == 2

    def test_upsert_keeps_unsupplied_columns(self, table, alice):
        table.upsert(alice, {"kind": "k", "note": "keep"}, on_conflict=("owner_id", "kind"))
        row = table.upsert(alice, {"kind": "k", "value": 2}, on_conflict=("owner_id", "kind"))
        assert row["note"] == "keep"

    def test_upsert_distinct_owners(self, table, alice, bob):
        table.upsert(alice, {"kind": "k"}, on_conflict=("owner_id", "kind"))
        table.upsert(bob, {"kind": "k"}, on_conflict=("owner_id", "kind"))
        assert len(table.select(alice)) == 1
        assert len(table.select(bob)) == 1


class TestPersistence:
    def test_rows_survive_reload(self, tmp_path, alice):
        path = tmp_path / "things.json"
        RecordTable("things", path).insert(alice, {"name": "a"})
        reloaded = RecordTable("things", path)
        assert reloaded.select(alice)[0]["name"] == "a"

    def test_failed_write_leaves_table_intact(self, table, alice):
        table.insert(alice, {"name": "a"})
        before = json.loads(table.path.read_text())

        with patch("pathlib.Path.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                table.insert(alice, {"name": "b"})

        assert json.loads(table.path.read_text()) == before
        assert [r["name"] for r in table.select(alice)] == ["a"]

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(StorageError):
            RecordTable("bad", path)


class TestBulkOps:
    def test_delete_where_scoped(self, table, alice, bob):
        table.insert(alice, {"tag": "x"})
        table.insert(alice, {"tag": "x"})
        table.insert(bob, {"tag": "x"})
        assert table.delete_where(alice, tag="x") == 2
        assert len(table.select(bob)) == 1

    def test_pop_where_removes_and_returns(self, table, alice):
        table.insert(alice, {"tag": "x"})
        table.insert(alice, {"tag": "y"})
        taken = table.pop_where(alice, tag="x")
        assert [r["tag"] for r in taken] == ["x"]
        assert [r["tag"] for r in table.select(alice)] == ["y"]
        assert table.pop_where(alice, tag="x") == []

    def test_purge_ignores_ownership(self, table, alice, bob):
        table.insert(alice, {"old": True})
        table.insert(bob, {"old": True})
        table.insert(bob, {"old": False})
        assert table.purge(lambda r: r["old"]) == 2
        assert len(table.select(bob)) == 1
