import sqlite3
import unittest
from unittest.mock import MagicMock

import psycopg2.extensions

from peca_ai.db import Database


class PostgresTransactionTest(unittest.TestCase):
    def test_commits_and_restores_autocommit(self) -> None:
        conn = MagicMock(status=psycopg2.extensions.STATUS_READY)
        db = Database("postgres", conn)
        with db.transaction():
            self.assertFalse(conn.autocommit)
            db.commit()
            conn.commit.assert_not_called()
        conn.commit.assert_called_once_with()
        self.assertTrue(conn.autocommit)

    def test_refuses_to_start_inside_open_transaction(self) -> None:
        conn = MagicMock(status=psycopg2.extensions.STATUS_IN_TRANSACTION)
        conn.autocommit = True
        db = Database("postgres", conn)
        with self.assertRaises(RuntimeError):
            with db.transaction():
                self.fail("block must not run")
        self.assertTrue(conn.autocommit)
        conn.commit.assert_not_called()


class SqliteTransactionTest(unittest.TestCase):
    def setUp(self) -> None:
        conn = sqlite3.connect(":memory:")
        conn.row_factory = sqlite3.Row
        conn.execute("CREATE TABLE items (name TEXT)")
        conn.commit()
        self.db = Database("sqlite", conn)

    def tearDown(self) -> None:
        self.db.close()

    def _names(self) -> list:
        return [row["name"] for row in self.db.execute("SELECT name FROM items ORDER BY name").fetchall()]

    def test_nested_block_joins_outer_unit(self) -> None:
        with self.assertRaises(ValueError):
            with self.db.transaction():
                self.db.execute("INSERT INTO items (name) VALUES (?)", ("filtro",))
                with self.db.transaction():
                    self.db.execute("INSERT INTO items (name) VALUES (?)", ("vela",))
                raise ValueError("boom")
        self.assertEqual(self._names(), [])

    def test_commits_on_success(self) -> None:
        with self.db.transaction():
            self.db.execute("INSERT INTO items (name) VALUES (?)", ("correia",))
        self.assertEqual(self._names(), ["correia"])


if __name__ == "__main__":
    unittest.main()
