"""Claude API vision backend for receipt extraction."""

from __future__ import annotations

import base64

from . import RECEIPT_PROMPT, ReceiptVisionBackend, parse_response


class ClaudeVisionBackend(ReceiptVisionBackend):
    """Read receipt fields using Claude's vision capability."""

    def __init__(self, api_key: str = "", model: str = "claude-sonnet-4-5-20250929") -> None:
        self._api_key = api_key
        self._model = model

    async def analyze_receipt(self, image: bytes, mime_type: str) -> dict:
        if not self._api_key:
            raise ValueError(
                "Anthropic APIキーが設定されていません。"
                "設定ファイルまたは ANTHROPIC_API_KEY 環境変数を確認してください。"
            )

        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install 'receipt-calendar[claude]'"
            ) from None

        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": mime_type,
                    "data": base64.standard_b64encode(image).decode(),
                },
            },
            {"type": "text", "text": RECEIPT_PROMPT},
        ]

        client = anthropic.AsyncAnthropic(api_key=self._api_key)
        response = await client.messages.create(
            model=self._model,
            max_tokens=1024,
            messages=[{"role": "user", "content": content}],
        )

        return parse_response(response.content[0].text)
