"""Device-scoped anonymous identity stored in SQLite."""

from __future__ import annotations

import logging
import secrets
import sqlite3
import uuid
from pathlib import Path

from ..auth import (
    SIGNED_IN,
    SIGNED_OUT,
    AuthListener,
    IdentityProvider,
    Session,
    Subscription,
    User,
)
from .schema import ensure_schema

logger = logging.getLogger(__name__)


class LocalIdentityProvider(IdentityProvider):
    """Issues one anonymous session per database file (i.e. per device)."""

    def __init__(
        self, db_path: str | Path = "~/.config/receipt-calendar/expenses.db"
    ) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._listeners: list[AuthListener] = []

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    async def get_session(self) -> Session | None:
        row = self._get_conn().execute(
            "SELECT user_id, access_token FROM auth_session WHERE slot = 1"
        ).fetchone()
        if row is None:
            return None
        return Session(access_token=row["access_token"], user=User(id=row["user_id"]))

    async def sign_in_anonymously(self) -> Session:
        session = Session(
            access_token=secrets.token_urlsafe(32),
            user=User(id=str(uuid.uuid4())),
        )
        conn = self._get_conn()
        conn.execute(
            "INSERT OR REPLACE INTO auth_session (slot, user_id, access_token) "
            "VALUES (1, ?, ?)",
            (session.user.id, session.access_token),
        )
        conn.commit()
        logger.info("匿名ユーザーを作成しました: %s", session.user.id)
        await self._notify(SIGNED_IN, session)
        return session

    async def get_user(self) -> User | None:
        session = await self.get_session()
        return session.user if session is not None else None

    async def sign_out(self) -> None:
        conn = self._get_conn()
        conn.execute("DELETE FROM auth_session")
        conn.commit()
        await self._notify(SIGNED_OUT, None)

    def on_auth_state_change(self, listener: AuthListener) -> Subscription:
        self._listeners.append(listener)
        return Subscription(lambda: self._listeners.remove(listener))

    async def _notify(self, event: str, session: Session | None) -> None:
        for listener in list(self._listeners):
            await listener(event, session)
