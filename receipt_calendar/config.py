"""TOML configuration loader for receipt-calendar."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]

from .models import DEFAULT_CATEGORY, Category


@dataclass
class ExtractionConfig:
    url: str = "http://127.0.0.1:8787/api/analyze-receipt"
    timeout: float | None = 60.0
    unknown_category: Category = DEFAULT_CATEGORY


@dataclass
class PreprocessConfig:
    max_dimension: int = 1024
    max_bytes: int = 1_000_000
    quality: int = 85
    min_quality: int = 40


@dataclass
class StorageConfig:
    db_path: str = "~/.config/receipt-calendar/expenses.db"


@dataclass
class GeminiVisionConfig:
    api_key: str = ""
    model: str = "gemini-1.5-flash"


@dataclass
class ClaudeVisionConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class VisionConfig:
    backend: str = "gemini"
    gemini: GeminiVisionConfig = field(default_factory=GeminiVisionConfig)
    claude: ClaudeVisionConfig = field(default_factory=ClaudeVisionConfig)


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8787


@dataclass
class AppConfig:
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    preprocess: PreprocessConfig = field(default_factory=PreprocessConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    vision: VisionConfig = field(default_factory=VisionConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    API keys and the extraction URL can be overridden via environment variables.

    Raises:
        ValueError: If ``extraction.unknown_category`` is not a known category.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    ext = raw.get("extraction", {})
    pre = raw.get("preprocess", {})
    sto = raw.get("storage", {})
    vis = raw.get("vision", {})
    srv = raw.get("server", {})

    gemini_cfg = vis.get("gemini", {})
    claude_cfg = vis.get("claude", {})

    # Resolve: config file → environment variable
    gemini_api_key = gemini_cfg.get("api_key", "") or os.environ.get(
        "GEMINI_API_KEY", ""
    )
    claude_api_key = claude_cfg.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )
    extraction_url = os.environ.get("RECEIPT_EXTRACTION_URL", "") or ext.get(
        "url", ExtractionConfig.url
    )

    unknown_raw = ext.get("unknown_category", DEFAULT_CATEGORY.value)
    unknown_category = Category.parse(unknown_raw)
    if unknown_category is None:
        raise ValueError(
            f"不明なカテゴリ: {unknown_raw!r}  "
            f"({', '.join(c.value for c in Category)} から選択してください)"
        )

    timeout = ext.get("timeout", 60.0)
    if timeout is not None and timeout <= 0:
        timeout = None

    return AppConfig(
        extraction=ExtractionConfig(
            url=extraction_url,
            timeout=timeout,
            unknown_category=unknown_category,
        ),
        preprocess=PreprocessConfig(
            max_dimension=pre.get("max_dimension", 1024),
            max_bytes=pre.get("max_bytes", 1_000_000),
            quality=pre.get("quality", 85),
            min_quality=pre.get("min_quality", 40),
        ),
        storage=StorageConfig(
            db_path=sto.get("db_path", "~/.config/receipt-calendar/expenses.db"),
        ),
        vision=VisionConfig(
            backend=vis.get("backend", "gemini"),
            gemini=GeminiVisionConfig(
                api_key=gemini_api_key,
                model=gemini_cfg.get("model", "gemini-1.5-flash"),
            ),
            claude=ClaudeVisionConfig(
                api_key=claude_api_key,
                model=claude_cfg.get("model", "claude-sonnet-4-5-20250929"),
            ),
        ),
        server=ServerConfig(
            host=srv.get("host", "127.0.0.1"),
            port=srv.get("port", 8787),
        ),
    )
