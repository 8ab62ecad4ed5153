"""Client for the receipt extraction service and coercion of its replies."""

from __future__ import annotations

import base64
import logging
import math
from typing import Any

import httpx

from .errors import ExtractionFailure
from .models import DEFAULT_CATEGORY, Category, DraftForm, ExtractionResult, parse_day

logger = logging.getLogger(__name__)

_GENERIC_FAILURE = "レシートの解析に失敗しました"


class ExtractionClient:
    """POST a receipt image to the extraction service and return its JSON reply.

    The reply is a best-effort guess; pass it through :func:`coerce_extraction`
    before using it.
    """

    def __init__(
        self,
        url: str,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._http_client = http_client

    async def analyze(self, data: bytes, mime_type: str) -> dict:
        """Send the image and return the parsed reply object.

        Raises:
            ExtractionFailure: On transport errors, non-2xx responses, or a
                reply that is not a JSON object.
        """
        payload = {
            "image": base64.standard_b64encode(data).decode(),
            "mimeType": mime_type,
        }

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self._url,
                    json=payload,
                    timeout=(
                        httpx.USE_CLIENT_DEFAULT
                        if self._timeout is None
                        else self._timeout
                    ),
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=payload)
        except httpx.HTTPError as e:
            logger.error("抽出サービスに接続できませんでした: %s", e)
            raise ExtractionFailure(f"抽出サービスに接続できませんでした: {e}") from e

        if not response.is_success:
            message = _error_message(response) or _GENERIC_FAILURE
            logger.error(
                "抽出サービスがエラーを返しました (HTTP %d): %s",
                response.status_code,
                message,
            )
            raise ExtractionFailure(message, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise ExtractionFailure("抽出結果をJSONとして解析できませんでした") from e
        if not isinstance(body, dict):
            raise ExtractionFailure("抽出結果の形式が不正です")
        return body


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"].strip()
    return ""


def coerce_extraction(
    payload: dict,
    unknown_category: Category = DEFAULT_CATEGORY,
) -> ExtractionResult:
    """Turn an untrusted extraction reply into a complete draft.

    Missing category → the default; a category outside the closed set →
    ``unknown_category``; a missing or invalid amount stays unset.
    """
    raw_category = payload.get("category")
    if raw_category is None or raw_category == "":
        category = DEFAULT_CATEGORY
    else:
        category = Category.parse(raw_category)
        if category is None:
            logger.info(
                "未知のカテゴリ %r を %s として扱います",
                raw_category,
                unknown_category.value,
            )
            category = unknown_category

    shop_name = payload.get("shop_name")
    draft = DraftForm(
        amount=coerce_amount(payload.get("amount")),
        shop_name=shop_name.strip() if isinstance(shop_name, str) else "",
        category=category,
    )
    return ExtractionResult(draft=draft, date=parse_day(payload.get("date")))


def coerce_amount(value: Any) -> int | None:
    """Whole yen > 0, or None when the value is missing or unusable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip().replace(",", "").strip("¥￥円 ")
        try:
            value = float(text)
        except ValueError:
            return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        value = round(value)
    if isinstance(value, int) and value > 0:
        return value
    return None
