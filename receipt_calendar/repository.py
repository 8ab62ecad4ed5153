"""Expense storage: collaborator interface and the repository facade."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date

from .errors import RepositoryFailure
from .models import Category, ExpenseRecord

logger = logging.getLogger(__name__)

ORDER_KEY = "created_at"


class ExpenseStore(ABC):
    """Abstract row store for the ``expenses`` table.

    Implementations scope every call to the caller's own ``user_id``.
    """

    @abstractmethod
    async def select(
        self,
        filters: dict,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict]:
        """Return rows whose columns equal every value in ``filters``."""
        ...

    @abstractmethod
    async def insert(self, rows: list[dict]) -> None:
        ...

    @abstractmethod
    async def delete(self, filters: dict) -> int:
        """Delete rows matching ``filters`` and return how many were removed."""
        ...


class ExpenseRepository:
    """List, insert and delete expense records for one owner.

    Never patches any local state; callers re-list after a mutation.
    """

    def __init__(self, store: ExpenseStore) -> None:
        self._store = store

    async def list(self, owner_id: str) -> list[ExpenseRecord]:
        """Return the owner's records, most recently created first.

        Raises:
            RepositoryFailure: If the store call fails.
        """
        try:
            rows = await self._store.select(
                {"user_id": owner_id}, order_by=ORDER_KEY, descending=True
            )
        except Exception as e:
            logger.error("経費の取得に失敗しました: %s", e)
            raise RepositoryFailure(f"経費の取得に失敗しました: {e}") from e

        records: list[ExpenseRecord] = []
        for row in rows:
            try:
                records.append(ExpenseRecord.from_row(row))
            except (KeyError, ValueError) as e:
                logger.warning("不正な経費データをスキップしました: %s (%s)", row, e)
        return records

    async def insert(
        self,
        owner_id: str,
        day: date,
        amount: int,
        shop_name: str,
        category: Category,
    ) -> None:
        """Insert one record; the store assigns ``id`` and ``created_at``.

        Raises:
            RepositoryFailure: If the store rejects the row.
        """
        row = {
            "user_id": owner_id,
            "date": day.isoformat(),
            "amount": amount,
            "shop_name": shop_name,
            "category": category.value,
        }
        try:
            await self._store.insert([row])
        except Exception as e:
            logger.error("経費の保存に失敗しました: %s", e)
            raise RepositoryFailure(f"経費の保存に失敗しました: {e}") from e
        logger.info("経費を保存しました: %s %d円", row["date"], amount)

    async def delete(self, record_id: str) -> None:
        """Delete a record by id.

        Raises:
            RepositoryFailure: If the store call fails.
        """
        try:
            removed = await self._store.delete({"id": record_id})
        except Exception as e:
            logger.error("経費の削除に失敗しました: %s", e)
            raise RepositoryFailure(f"経費の削除に失敗しました: {e}") from e
        if removed == 0:
            logger.warning("削除対象の経費が見つかりませんでした: id=%s", record_id)
        else:
            logger.info("経費を削除しました: id=%s", record_id)
