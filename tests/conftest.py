"""Shared test doubles for the identity and storage collaborators."""

from __future__ import annotations

import itertools

import pytest

from receipt_calendar.auth import (
    SIGNED_IN,
    SIGNED_OUT,
    IdentityProvider,
    Session,
    Subscription,
    User,
)
from receipt_calendar.repository import ExpenseStore


class FakeIdentity(IdentityProvider):
    """In-memory identity provider with switchable failures."""

    def __init__(self, existing_user: str | None = None, fail_sign_in: bool = False):
        self.session = (
            Session(access_token="tok-existing", user=User(id=existing_user))
            if existing_user
            else None
        )
        self.fail_sign_in = fail_sign_in
        self.sign_in_calls = 0
        self.listeners = []

    async def get_session(self):
        return self.session

    async def sign_in_anonymously(self):
        self.sign_in_calls += 1
        if self.fail_sign_in:
            raise ConnectionError("auth server unreachable")
        self.session = Session(access_token="tok-new", user=User(id="user-new"))
        await self.emit(SIGNED_IN, self.session)
        return self.session

    async def get_user(self):
        return self.session.user if self.session else None

    async def sign_out(self):
        self.session = None
        await self.emit(SIGNED_OUT, None)

    def on_auth_state_change(self, listener):
        self.listeners.append(listener)
        return Subscription(lambda: self.listeners.remove(listener))

    async def emit(self, event, session):
        for listener in list(self.listeners):
            await listener(event, session)


class FakeStore(ExpenseStore):
    """In-memory ``expenses`` table recording every call."""

    def __init__(self):
        self.rows: list[dict] = []
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)

    async def select(self, filters, order_by=None, descending=False):
        self.calls.append(("select", dict(filters), order_by, descending))
        if "select" in self.fail_on:
            raise ConnectionError("store unreachable")
        rows = [
            dict(r) for r in self.rows if all(r.get(k) == v for k, v in filters.items())
        ]
        if order_by is not None:
            rows.sort(key=lambda r: r[order_by], reverse=descending)
        return rows

    async def insert(self, rows):
        self.calls.append(("insert", [dict(r) for r in rows]))
        if "insert" in self.fail_on:
            raise ConnectionError("store unreachable")
        for row in rows:
            stored = dict(row)
            stored.setdefault("id", f"r{next(self._ids)}")
            stored["created_at"] = f"2024-01-01T00:00:{next(self._clock):02d}"
            self.rows.append(stored)

    async def delete(self, filters):
        self.calls.append(("delete", dict(filters)))
        if "delete" in self.fail_on:
            raise ConnectionError("store unreachable")
        before = len(self.rows)
        self.rows = [
            r for r in self.rows if not all(r.get(k) == v for k, v in filters.items())
        ]
        return before - len(self.rows)

    def add(self, **row):
        """Seed a row directly, bypassing the call log."""
        row.setdefault("id", f"r{next(self._ids)}")
        row.setdefault("shop_name", "")
        row.setdefault("category", "食費")
        row["created_at"] = f"2024-01-01T00:00:{next(self._clock):02d}"
        self.rows.append(row)
        return row["id"]


@pytest.fixture
def fake_store():
    return FakeStore()
