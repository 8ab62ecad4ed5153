"""Pipeline controller: draft staging, day selection and the record cache."""

from __future__ import annotations

import inspect
import logging
import mimetypes
from dataclasses import dataclass, fields, replace
from datetime import date
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from . import projections
from .auth import IdentityProvider, SessionGate
from .errors import ExtractionFailure, ValidationFailure
from .extraction import ExtractionClient, coerce_extraction
from .models import (
    DEFAULT_CATEGORY,
    Category,
    DraftForm,
    ExpenseRecord,
    ExtractionResult,
    SelectedDate,
    SingleDate,
)
from .preprocess import ImagePreprocessor
from .repository import ExpenseRepository, ExpenseStore

if TYPE_CHECKING:
    from .config import AppConfig

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[ExpenseRecord | None], bool | Awaitable[bool]]


class PipelineState(Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    SAVING = "saving"
    DELETING = "deleting"


@dataclass
class PipelineClients:
    """Collaborators injected into the controller."""

    identity: IdentityProvider
    store: ExpenseStore
    extractor: ExtractionClient
    preprocessor: ImagePreprocessor


class PipelineController:
    """Sequences preprocess → extract → stage, and stage → save → refresh.

    One operation runs at a time. A request arriving while another is in
    flight is ignored: the method logs it and returns ``None``/``False``.
    The record cache is only ever replaced by :meth:`refresh`.
    """

    def __init__(
        self,
        clients: PipelineClients,
        unknown_category: Category = DEFAULT_CATEGORY,
        today: date | None = None,
    ) -> None:
        self._clients = clients
        self._unknown_category = unknown_category
        self._repository = ExpenseRepository(clients.store)
        self._gate = SessionGate(clients.identity, on_ready=self.refresh)

        self._state = PipelineState.IDLE
        self._draft = DraftForm.empty()
        self._selected: SelectedDate | None = SingleDate(today or date.today())
        self._records: tuple[ExpenseRecord, ...] = ()

    async def __aenter__(self) -> PipelineController:
        try:
            await self.start()
        except Exception:
            self.close()
            raise
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    # -- state ---------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state is not PipelineState.IDLE

    @property
    def session(self) -> SessionGate:
        return self._gate

    @property
    def draft(self) -> DraftForm:
        return self._draft

    @property
    def selected_date(self) -> SelectedDate | None:
        return self._selected

    @property
    def records(self) -> tuple[ExpenseRecord, ...]:
        return self._records

    def select_date(self, value: SelectedDate | date | None) -> None:
        if isinstance(value, date):
            value = SingleDate(value)
        self._selected = value

    def update_draft(self, **changes: Any) -> DraftForm:
        """Apply user edits field by field.

        Raises:
            ValidationFailure: On an unknown field or category.
        """
        known = {f.name for f in fields(DraftForm)}
        unknown = set(changes) - known
        if unknown:
            raise ValidationFailure(f"不明な項目: {', '.join(sorted(unknown))}")
        if "category" in changes:
            category = Category.parse(changes["category"])
            if category is None:
                raise ValidationFailure(f"不明なカテゴリ: {changes['category']!r}")
            changes["category"] = category
        if "amount" in changes:
            changes["amount"] = _edited_amount(changes["amount"])
        for name, value in changes.items():
            setattr(self._draft, name, value)
        return self._draft

    def reset_draft(self) -> None:
        self._draft = DraftForm.empty()

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Establish identity; the gate's ready signal loads the cache.

        Raises:
            IdentityFailure: If anonymous sign-in fails.
        """
        await self._gate.start()

    def close(self) -> None:
        """Unsubscribe from identity events and close the collaborators."""
        self._gate.close()
        for client in (self._clients.store, self._clients.identity):
            close = getattr(client, "close", None)
            if close is not None:
                close()

    # -- projections ---------------------------------------------------------

    def has_record(self, day: date) -> bool:
        return projections.has_record(self._records, day)

    def records_on(self, day: date | None = None) -> list[ExpenseRecord]:
        """Records on ``day``, defaulting to the selected date."""
        if day is None:
            if self._selected is None:
                return []
            day = self._selected.effective_date()
        return projections.records_on(self._records, day)

    # -- operations ----------------------------------------------------------

    async def refresh(self) -> bool:
        """Reload the cache from the store.

        Failures are logged and leave the cache as it was.
        """
        try:
            owner_id = await self._gate.current_user_id()
            records = await self._repository.list(owner_id)
        except Exception as e:
            logger.error("経費一覧の更新に失敗しました: %s", e)
            return False
        self._records = tuple(records)
        logger.debug("経費一覧を更新しました: %d 件", len(records))
        return True

    async def extract(self, data: bytes, mime_type: str) -> ExtractionResult | None:
        """Read a receipt image into the draft.

        Returns None if another operation is in flight.

        Raises:
            ExtractionFailure: The draft is left untouched.
        """
        if not self._begin(PipelineState.EXTRACTING):
            return None
        try:
            prepared = await self._clients.preprocessor.process(data, mime_type)
            payload = await self._clients.extractor.analyze(
                prepared.data, prepared.mime_type
            )
            result = coerce_extraction(payload, self._unknown_category)
            self._draft = replace(result.draft)
            if result.date is not None:
                self._selected = SingleDate(result.date)
            return result
        finally:
            self._state = PipelineState.IDLE

    async def extract_file(self, path: str | Path) -> ExtractionResult | None:
        """Read a receipt image file into the draft.

        Raises:
            ExtractionFailure: If the file can't be read or extraction fails.
        """
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.error("画像ファイルを読み込めません: %s (%s)", path, e)
            raise ExtractionFailure(f"画像ファイルを読み込めません: {path}") from e
        mime_type = mimetypes.guess_type(str(path))[0] or "image/jpeg"
        return await self.extract(data, mime_type)

    async def save(self) -> bool:
        """Persist the draft on the selected date, then refresh and clear.

        Returns False if another operation is in flight.

        Raises:
            ValidationFailure: Before any network call.
            IdentityFailure: If no user is signed in.
            RepositoryFailure: The draft is kept so the user can retry.
        """
        if self.busy:
            logger.warning("処理中のため保存要求を無視しました (%s)", self._state.value)
            return False
        day, amount = self._validate()

        self._state = PipelineState.SAVING
        try:
            owner_id = await self._gate.current_user_id()
            await self._repository.insert(
                owner_id,
                day,
                amount,
                self._draft.shop_name,
                self._draft.category,
            )
            await self.refresh()
            self.reset_draft()
            return True
        finally:
            self._state = PipelineState.IDLE

    async def delete(
        self,
        record_id: str,
        confirm: ConfirmCallback | None = None,
    ) -> bool:
        """Delete a record after confirmation, then refresh.

        Returns False if declined or if another operation is in flight.

        Raises:
            IdentityFailure: If no user is signed in.
            RepositoryFailure: The cache is left unchanged.
        """
        if self.busy:
            logger.warning("処理中のため削除要求を無視しました (%s)", self._state.value)
            return False

        if confirm is not None:
            target = next((r for r in self._records if r.id == record_id), None)
            answer = confirm(target)
            if inspect.isawaitable(answer):
                answer = await answer
            if not answer:
                return False

        if not self._begin(PipelineState.DELETING):
            return False
        try:
            await self._gate.current_user_id()
            await self._repository.delete(record_id)
            await self.refresh()
            return True
        finally:
            self._state = PipelineState.IDLE

    def _begin(self, state: PipelineState) -> bool:
        if self.busy:
            logger.warning(
                "処理中のため要求を無視しました (%s → %s)",
                self._state.value,
                state.value,
            )
            return False
        self._state = state
        return True

    def _validate(self) -> tuple[date, int]:
        if self._selected is None:
            logger.warning("保存を中止しました: 日付が未選択です")
            raise ValidationFailure("日付を選択してください")
        amount = self._draft.amount
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            logger.warning("保存を中止しました: 金額が不正です (%r)", amount)
            raise ValidationFailure("金額を正しく入力してください")
        return self._selected.effective_date(), amount


def create_controller(config: AppConfig) -> PipelineController:
    """Wire the local collaborators, extraction client and preprocessor."""
    from .db import LocalExpenseStore, LocalIdentityProvider

    identity = LocalIdentityProvider(db_path=config.storage.db_path)
    clients = PipelineClients(
        identity=identity,
        store=LocalExpenseStore(identity, db_path=config.storage.db_path),
        extractor=ExtractionClient(
            url=config.extraction.url,
            timeout=config.extraction.timeout,
        ),
        preprocessor=ImagePreprocessor(
            max_dimension=config.preprocess.max_dimension,
            max_bytes=config.preprocess.max_bytes,
            quality=config.preprocess.quality,
            min_quality=config.preprocess.min_quality,
        ),
    )
    return PipelineController(
        clients, unknown_category=config.extraction.unknown_category
    )


def _edited_amount(value: Any) -> int | None:
    """Amount typed by the user; "" clears it. Range is checked on save."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            return int(value.strip().replace(",", ""))
        except ValueError:
            raise ValidationFailure(f"金額は整数で入力してください: {value!r}") from None
    return value
