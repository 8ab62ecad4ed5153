"""Receipt image downscaling before upload."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class PreparedImage:
    data: bytes
    mime_type: str


class ImagePreprocessor:
    """Recompress a captured image to bounded dimensions and size.

    The longer side is capped at ``max_dimension`` (never upscaled) and the
    JPEG output at ``max_bytes``. Any failure falls back to the original
    bytes so the pipeline always continues.
    """

    def __init__(
        self,
        max_dimension: int = 1024,
        max_bytes: int = 1_000_000,
        quality: int = 85,
        min_quality: int = 40,
    ) -> None:
        self._max_dimension = max_dimension
        self._max_bytes = max_bytes
        self._quality = quality
        self._min_quality = min_quality

    async def process(self, data: bytes, mime_type: str) -> PreparedImage:
        try:
            compressed = await asyncio.to_thread(self._compress, data)
        except Exception as e:
            logger.warning("画像の圧縮に失敗したため元画像を使用します: %s", e)
            return PreparedImage(data=data, mime_type=mime_type)

        logger.debug(
            "画像を圧縮しました: %d bytes → %d bytes", len(data), len(compressed)
        )
        return PreparedImage(data=compressed, mime_type="image/jpeg")

    def _compress(self, data: bytes) -> bytes:
        try:
            import cv2
            import numpy as np
        except ImportError:
            raise ImportError(
                "opencv-python is required: pip install opencv-python"
            ) from None

        image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        if image is None:
            raise ValueError("画像をデコードできませんでした")

        height, width = image.shape[:2]
        scale = min(1.0, self._max_dimension / max(height, width))

        # Lower the quality first, then shrink further if the floor is still too big
        for _ in range(8):
            size = (max(1, int(width * scale)), max(1, int(height * scale)))
            resized = (
                image
                if size == (width, height)
                else cv2.resize(image, size, interpolation=cv2.INTER_AREA)
            )
            quality = self._quality
            while quality >= self._min_quality:
                ok, encoded = cv2.imencode(
                    ".jpg", resized, [cv2.IMWRITE_JPEG_QUALITY, quality]
                )
                if not ok:
                    raise ValueError("JPEGエンコードに失敗しました")
                if encoded.size <= self._max_bytes:
                    return encoded.tobytes()
                quality -= 10
            scale *= 0.75

        raise ValueError(
            f"{self._max_bytes} bytes 以下に圧縮できませんでした"
        )
