"""SQLite connection handle shared by every store component.

One `Database` is opened at process start and passed explicitly to each
component. The connection runs in autocommit mode; multi-statement
mutations go through `Database.transaction()`.
"""

from __future__ import annotations

import functools
import logging
import sqlite3
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    return uuid.uuid4().hex[:12]


class Database:
    """Owns the single sqlite3 connection for an installation."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path) if str(path) != ":memory:" else None
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(path), isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys=ON")
        self.ready = False

    # ── Statements ───────────────────────────────────────────

    def execute(self, sql: str, params: tuple | list = ()) -> sqlite3.Cursor:
        return self.conn.execute(sql, params)

    def fetchone(self, sql: str, params: tuple | list = ()) -> sqlite3.Row | None:
        return self.conn.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        return self.conn.execute(sql, params).fetchall()

    def scalar(self, sql: str, params: tuple | list = (), default: Any = None) -> Any:
        row = self.fetchone(sql, params)
        if row is None or row[0] is None:
            return default
        return row[0]

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """BEGIN/COMMIT around the block, ROLLBACK on any exception.

        A transaction opened while another is in flight joins the outer one,
        so the outermost block decides commit or rollback.
        """
        if self.conn.in_transaction:
            yield self.conn
            return
        self.conn.execute("BEGIN")
        try:
            yield self.conn
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        else:
            self.conn.execute("COMMIT")

    # ── Introspection ────────────────────────────────────────

    def table_exists(self, table: str) -> bool:
        row = self.fetchone(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
        )
        return row is not None

    def columns(self, table: str) -> set[str]:
        return {row["name"] for row in self.fetchall(f"PRAGMA table_info({table})")}

    def tables(self) -> list[str]:
        rows = self.fetchall(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [row["name"] for row in rows]

    @property
    def user_version(self) -> int:
        return int(self.scalar("PRAGMA user_version", default=0))

    @user_version.setter
    def user_version(self, version: int) -> None:
        self.conn.execute(f"PRAGMA user_version = {int(version)}")

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def when_ready(default: Callable[[], T] | T) -> Callable:
    """Short-circuit a read method to `default` until migrations have run.

    The decorated method must live on an object with a `db` attribute.
    """

    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(fn)
        def wrapper(self, *args, **kwargs):
            if not self.db.ready:
                logger.debug("Store not ready, %s returns empty result", fn.__name__)
                return default() if callable(default) else default
            return fn(self, *args, **kwargs)

        return wrapper

    return decorator
