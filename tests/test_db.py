"""Tests for the SQLite identity provider and expense store."""

import sqlite3

import pytest

from receipt_calendar.auth import SIGNED_IN, SIGNED_OUT
from receipt_calendar.db import LocalExpenseStore, LocalIdentityProvider, ensure_schema
from receipt_calendar.db.schema import _SCHEMA_VERSION


def _row(user_id, date="2024-04-01", amount=1200, shop_name="Cafe A", category="食費"):
    return {
        "user_id": user_id,
        "date": date,
        "amount": amount,
        "shop_name": shop_name,
        "category": category,
    }


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "receipts.db"


@pytest.fixture
def identity(db_path):
    provider = LocalIdentityProvider(db_path=db_path)
    yield provider
    provider.close()


@pytest.fixture
def store(identity, db_path):
    expense_store = LocalExpenseStore(identity, db_path=db_path)
    yield expense_store
    expense_store.close()


class TestSchema:
    def test_creates_tables(self, db_path):
        conn = ensure_schema(db_path)
        tables = {
            r["name"]
            for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        assert {"expenses", "auth_session", "schema_version"} <= tables
        version = conn.execute("SELECT version FROM schema_version").fetchone()
        assert version["version"] == _SCHEMA_VERSION
        conn.close()

    def test_idempotent(self, db_path):
        ensure_schema(db_path).close()
        conn = ensure_schema(db_path)
        rows = conn.execute("SELECT COUNT(*) AS n FROM schema_version").fetchone()
        assert rows["n"] == 1
        conn.close()

    def test_amount_must_be_positive(self, db_path):
        conn = ensure_schema(db_path)
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO expenses (id, user_id, date, amount, category) "
                "VALUES ('x', 'u', '2024-04-01', 0, '食費')"
            )
        conn.close()

    def test_category_is_closed(self, db_path):
        conn = ensure_schema(db_path)
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO expenses (id, user_id, date, amount, category) "
                "VALUES ('x', 'u', '2024-04-01', 100, 'Snacks')"
            )
        conn.close()


class TestLocalIdentityProvider:
    @pytest.mark.asyncio
    async def test_no_session_initially(self, identity):
        assert await identity.get_session() is None
        assert await identity.get_user() is None

    @pytest.mark.asyncio
    async def test_sign_in_persists_per_device(self, identity, db_path):
        session = await identity.sign_in_anonymously()
        assert session.user.is_anonymous
        assert session.access_token

        other = LocalIdentityProvider(db_path=db_path)
        try:
            restored = await other.get_session()
        finally:
            other.close()
        assert restored.user.id == session.user.id

    @pytest.mark.asyncio
    async def test_listeners_notified(self, identity):
        events = []

        async def listener(event, session):
            events.append((event, session.user.id if session else None))

        subscription = identity.on_auth_state_change(listener)
        session = await identity.sign_in_anonymously()
        await identity.sign_out()

        assert events == [(SIGNED_IN, session.user.id), (SIGNED_OUT, None)]
        assert await identity.get_session() is None

        subscription.unsubscribe()
        assert not subscription.active
        await identity.sign_in_anonymously()
        assert len(events) == 2


class TestLocalExpenseStore:
    @pytest.mark.asyncio
    async def test_insert_and_select_newest_first(self, identity, store):
        session = await identity.sign_in_anonymously()
        uid = session.user.id
        await store.insert([_row(uid, shop_name="first")])
        await store.insert([_row(uid, shop_name="second")])

        rows = await store.select({"user_id": uid}, order_by="created_at", descending=True)

        assert [r["shop_name"] for r in rows] == ["second", "first"]
        assert all(r["id"] and r["created_at"] for r in rows)
        assert rows[0]["user_id"] == uid

    @pytest.mark.asyncio
    async def test_select_without_session_is_empty(self, store):
        assert await store.select({}) == []

    @pytest.mark.asyncio
    async def test_insert_without_session_fails(self, store):
        with pytest.raises(PermissionError):
            await store.insert([_row("anyone")])

    @pytest.mark.asyncio
    async def test_cannot_insert_for_another_user(self, identity, store):
        await identity.sign_in_anonymously()
        with pytest.raises(PermissionError):
            await store.insert([_row("someone-else")])

    @pytest.mark.asyncio
    async def test_other_users_rows_invisible(self, identity, store, db_path):
        first = await identity.sign_in_anonymously()
        await store.insert([_row(first.user.id)])
        rows = await store.select({"user_id": first.user.id})
        record_id = rows[0]["id"]

        # A new anonymous identity on the same device cannot see or delete them
        second = await identity.sign_in_anonymously()
        assert await store.select({}) == []
        assert await store.select({"user_id": first.user.id}) == []
        assert await store.delete({"id": record_id}) == 0

        conn = ensure_schema(db_path)
        remaining = conn.execute("SELECT COUNT(*) AS n FROM expenses").fetchone()
        conn.close()
        assert remaining["n"] == 1
        assert second.user.id != first.user.id

    @pytest.mark.asyncio
    async def test_delete_by_id(self, identity, store):
        session = await identity.sign_in_anonymously()
        uid = session.user.id
        await store.insert([_row(uid, shop_name="keep"), _row(uid, shop_name="drop")])
        rows = await store.select({"user_id": uid})
        drop_id = next(r["id"] for r in rows if r["shop_name"] == "drop")

        assert await store.delete({"id": drop_id}) == 1
        assert [r["shop_name"] for r in await store.select({"user_id": uid})] == ["keep"]

    @pytest.mark.asyncio
    async def test_check_constraint_rolls_back_batch(self, identity, store):
        session = await identity.sign_in_anonymously()
        uid = session.user.id
        with pytest.raises(sqlite3.IntegrityError):
            await store.insert([_row(uid), _row(uid, amount=0)])
        assert await store.select({"user_id": uid}) == []

    @pytest.mark.asyncio
    async def test_unknown_column_rejected(self, identity, store):
        await identity.sign_in_anonymously()
        with pytest.raises(ValueError, match="不明なカラム"):
            await store.select({"user_id; DROP TABLE expenses": "x"})
        with pytest.raises(ValueError, match="不明なカラム"):
            await store.select({}, order_by="amount DESC; --")
