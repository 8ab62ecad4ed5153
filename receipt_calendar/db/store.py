"""Expense rows in SQLite, scoped to the device's signed-in user."""

from __future__ import annotations

import sqlite3
import uuid
from pathlib import Path

from ..auth import IdentityProvider
from ..repository import ExpenseStore
from .schema import ensure_schema

_COLUMNS = ("id", "user_id", "date", "amount", "shop_name", "category", "created_at")


class LocalExpenseStore(ExpenseStore):
    """Manages the expenses table.

    Every read and write is limited to rows owned by the identity provider's
    current user; with no signed-in user, reads return nothing and writes fail.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        db_path: str | Path = "~/.config/receipt-calendar/expenses.db",
    ) -> None:
        self._identity = identity
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    async def _current_user_id(self) -> str | None:
        user = await self._identity.get_user()
        return user.id if user is not None else None

    async def select(
        self,
        filters: dict,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict]:
        user_id = await self._current_user_id()
        if user_id is None:
            return []

        where, params = _where({**filters}, user_id)
        sql = f"SELECT {', '.join(_COLUMNS)} FROM expenses WHERE {where}"
        if order_by is not None:
            _check_column(order_by)
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY {order_by} {direction}, rowid {direction}"

        rows = self._get_conn().execute(sql, params).fetchall()
        return [dict(r) for r in rows]

    async def insert(self, rows: list[dict]) -> None:
        user_id = await self._current_user_id()
        if user_id is None:
            raise PermissionError("サインインしていません")

        conn = self._get_conn()
        try:
            for row in rows:
                if row.get("user_id") != user_id:
                    raise PermissionError("他のユーザーの経費は登録できません")
                conn.execute(
                    """INSERT INTO expenses
                       (id, user_id, date, amount, shop_name, category)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (
                        row.get("id") or str(uuid.uuid4()),
                        user_id,
                        row["date"],
                        row["amount"],
                        row.get("shop_name", ""),
                        row["category"],
                    ),
                )
        except Exception:
            conn.rollback()
            raise
        conn.commit()

    async def delete(self, filters: dict) -> int:
        user_id = await self._current_user_id()
        if user_id is None:
            raise PermissionError("サインインしていません")

        where, params = _where({**filters}, user_id)
        conn = self._get_conn()
        cur = conn.execute(f"DELETE FROM expenses WHERE {where}", params)
        conn.commit()
        return cur.rowcount


def _check_column(name: str) -> None:
    if name not in _COLUMNS:
        raise ValueError(f"不明なカラム: {name!r}")


def _where(filters: dict, user_id: str) -> tuple[str, list]:
    """Build an equality WHERE clause that always pins ``user_id``."""
    if filters.get("user_id", user_id) != user_id:
        # Another user's rows are invisible, not an error
        return "0", []
    filters["user_id"] = user_id
    clauses: list[str] = []
    params: list = []
    for column, value in filters.items():
        _check_column(column)
        clauses.append(f"{column} = ?")
        params.append(value)
    return " AND ".join(clauses), params
