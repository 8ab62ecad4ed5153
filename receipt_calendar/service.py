"""HTTP extraction service: receipt image in, structured JSON guess out."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from .vision import ReceiptVisionBackend

logger = logging.getLogger(__name__)


class AnalyzeRequest(BaseModel):
    image: Optional[str] = None
    mimeType: Optional[str] = None


def create_app(backend: ReceiptVisionBackend) -> FastAPI:
    """Build the FastAPI app exposing ``POST /api/analyze-receipt``.

    Every error body carries a ``message`` key, which is what
    :class:`~receipt_calendar.extraction.ExtractionClient` reads.
    """
    app = FastAPI(title="receipt-extraction-service")

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"message": "リクエストの形式が不正です。", "error": str(exc)},
        )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/api/analyze-receipt")
    async def analyze_receipt(payload: AnalyzeRequest):
        if not payload.image or not payload.mimeType:
            return JSONResponse(
                status_code=400,
                content={"message": "画像データと mimeType は必須です。"},
            )

        try:
            image = base64.b64decode(payload.image, validate=True)
        except (binascii.Error, ValueError):
            return JSONResponse(
                status_code=400,
                content={"message": "画像データが正しいBase64ではありません。"},
            )

        try:
            result = await backend.analyze_receipt(image, payload.mimeType)
        except Exception as e:
            logger.exception("レシート解析エラー")
            return JSONResponse(
                status_code=500,
                content={"message": "レシートの解析中にエラーが発生しました", "error": str(e)},
            )

        logger.info("レシート解析完了: %s", sorted(result))
        return result

    return app
