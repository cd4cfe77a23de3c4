from __future__ import annotations

import pytest

from src.member_attendance.member_attendance.database.bootstrap import _strip_create_db_and_use, iter_sql_statements
from src.member_attendance.member_attendance.database.mysql_base import db_cursor, transaction


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn

    def execute(self, sql, params=None):
        self.conn.log.append(("execute", sql))

    def close(self):
        pass


class FakeConnection:
    def __init__(self, log):
        self.log = log

    def cursor(self, dictionary=True):
        return FakeCursor(self)

    def start_transaction(self):
        self.log.append("start")

    def commit(self):
        self.log.append("commit")

    def rollback(self):
        self.log.append("rollback")

    def close(self):
        self.log.append("close")


class FakeConnectionFactory:
    def __init__(self):
        self.log = []
        self.opened = 0

    def connect(self, *, with_database=True):
        self.opened += 1
        return FakeConnection(self.log)


def test_db_cursor_commits_each_call_outside_transaction():
    factory = FakeConnectionFactory()

    with db_cursor(factory) as (_, cur):
        cur.execute("SELECT 1")
    with db_cursor(factory) as (_, cur):
        cur.execute("SELECT 2")

    assert factory.opened == 2
    assert factory.log == [("execute", "SELECT 1"), "commit", "close", ("execute", "SELECT 2"), "commit", "close"]


def test_transaction_pins_one_connection_and_commits_once():
    factory = FakeConnectionFactory()

    with transaction(factory):
        with db_cursor(factory) as (_, cur):
            cur.execute("DELETE FROM attendances")
        with transaction(factory):
            with db_cursor(factory) as (_, cur):
                cur.execute("DELETE FROM members")

    assert factory.opened == 1
    assert factory.log == [
        "start",
        ("execute", "DELETE FROM attendances"),
        ("execute", "DELETE FROM members"),
        "commit",
        "close",
    ]


def test_transaction_rolls_back_everything_on_error():
    factory = FakeConnectionFactory()

    with pytest.raises(RuntimeError):
        with transaction(factory):
            with db_cursor(factory) as (_, cur):
                cur.execute("DELETE FROM attendances")
            raise RuntimeError("boom")

    assert factory.log == ["start", ("execute", "DELETE FROM attendances"), "rollback", "close"]

    # The pinned connection is released once the block ends.
    with db_cursor(factory) as (_, cur):
        cur.execute("SELECT 1")
    assert factory.opened == 2


def test_schema_splitter_ignores_semicolons_in_quotes():
    sql = _strip_create_db_and_use(
        "CREATE DATABASE IF NOT EXISTS x;\nUSE x;\n"
        "CREATE TABLE a (note VARCHAR(10) DEFAULT 'a;b');\nCREATE INDEX i ON a(note);"
    )

    assert list(iter_sql_statements(sql)) == [
        "CREATE TABLE a (note VARCHAR(10) DEFAULT 'a;b')",
        "CREATE INDEX i ON a(note)",
    ]
