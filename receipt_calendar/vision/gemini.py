"""Gemini API vision backend for receipt extraction."""

from __future__ import annotations

from . import RECEIPT_PROMPT, ReceiptVisionBackend, parse_response

_SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
]


class GeminiVisionBackend(ReceiptVisionBackend):
    """Read receipt fields using Google Gemini's vision capability."""

    def __init__(self, api_key: str = "", model: str = "gemini-1.5-flash") -> None:
        self._api_key = api_key
        self._model = model

    async def analyze_receipt(self, image: bytes, mime_type: str) -> dict:
        if not self._api_key:
            raise ValueError(
                "Gemini APIキーが設定されていません。"
                "設定ファイルまたは GEMINI_API_KEY 環境変数を確認してください。"
            )

        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install 'receipt-calendar[gemini]'"
            ) from None

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(self._model)

        parts: list = [RECEIPT_PROMPT, {"mime_type": mime_type, "data": image}]
        response = await model.generate_content_async(
            parts, safety_settings=_SAFETY_SETTINGS
        )
        return parse_response(response.text)
