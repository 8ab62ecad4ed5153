"""Receipt vision backend base class and factory."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from ..models import Category

if TYPE_CHECKING:
    from ..config import AppConfig

_CATEGORY_LABELS = "、".join(c.value for c in Category)

RECEIPT_PROMPT = f"""\
添付された領収書の画像を読み取り、次の項目をJSONオブジェクトで返してください。
- date: 日付 (YYYY-MM-DD形式)
- amount: 合計金額 (数値のみ)
- shop_name: 店名
- category: {_CATEGORY_LABELS} のいずれか

読み取れない項目は省略してください。
出力は純粋なJSONのみとし、マークダウンのバッククォートは含めないでください。
"""


class ReceiptVisionBackend(ABC):
    """Abstract base for receipt field extraction from an image."""

    @abstractmethod
    async def analyze_receipt(self, image: bytes, mime_type: str) -> dict:
        """Return a best-effort ``{date?, amount?, shop_name?, category?}`` guess."""
        ...


def create_backend(config: AppConfig) -> ReceiptVisionBackend:
    """Create a vision backend based on configuration."""
    backend_name = config.vision.backend

    match backend_name:
        case "gemini":
            from .gemini import GeminiVisionBackend

            return GeminiVisionBackend(
                api_key=config.vision.gemini.api_key,
                model=config.vision.gemini.model,
            )
        case "claude":
            from .claude import ClaudeVisionBackend

            return ClaudeVisionBackend(
                api_key=config.vision.claude.api_key,
                model=config.vision.claude.model,
            )
        case _:
            raise ValueError(
                f"不明なVisionバックエンド: {backend_name!r}  "
                f"(gemini / claude から選択してください)"
            )


def parse_response(text: str) -> dict:
    """Parse the JSON object from a model reply.

    Raises:
        ValueError: If the reply is not a JSON object.
    """
    # Strip markdown fences if present
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)

    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError(f"JSONオブジェクトではありません: {type(data).__name__}")
    return data
