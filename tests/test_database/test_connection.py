"""Tests for database connection management."""

import sqlite3

import pytest

from fence_flow.database.connection import DatabaseConnection


class TestDatabaseConnection:
    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "test.db"
        DatabaseConnection(path)
        assert path.parent.exists()

    def test_foreign_keys_enabled(self, db_path):
        conn = DatabaseConnection(db_path)
        with conn.get_connection() as c:
            result = c.execute("PRAGMA foreign_keys").fetchone()
            assert result[0] == 1

    def test_row_factory_is_row(self, db_path):
        conn = DatabaseConnection(db_path)
        with conn.get_connection() as c:
            c.execute("CREATE TABLE t (id INTEGER, name TEXT)")
            c.execute("INSERT INTO t VALUES (1, 'test')")
            row = c.execute("SELECT * FROM t").fetchone()
            assert row["name"] == "test"

    def test_rollback_on_error(self, db_path):
        conn = DatabaseConnection(db_path)
        with conn.get_connection() as c:
            c.execute("CREATE TABLE t (id INTEGER PRIMARY KEY)")

        with pytest.raises(sqlite3.IntegrityError):
            with conn.get_connection() as c:
                c.execute("INSERT INTO t VALUES (1)")
                c.execute("INSERT INTO t VALUES (1)")

        rows = conn.execute("SELECT * FROM t")
        assert rows == []

    def test_immediate_takes_write_lock(self, db_path):
        conn = DatabaseConnection(db_path, timeout=0.1)
        with conn.get_connection() as c:
            c.execute("CREATE TABLE t (id INTEGER)")

        with conn.get_connection(immediate=True) as c:
            c.execute("INSERT INTO t VALUES (1)")
            with pytest.raises(sqlite3.OperationalError, match="locked"):
                with conn.get_connection(immediate=True):
                    pass

        assert len(conn.execute("SELECT * FROM t")) == 1

    def test_execute_script(self, db_path):
        conn = DatabaseConnection(db_path)
        conn.execute_script(
            "CREATE TABLE a (id INTEGER); CREATE TABLE b (id INTEGER);"
        )
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "ORDER BY name"
        )
        assert [r["name"] for r in rows] == ["a", "b"]
