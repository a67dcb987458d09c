"""crawl_ingest configuration.

Values are read once from the environment (and an optional `.env` next to the
package) and handed around as an immutable `Settings` object.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


def _as_int(value: str | None, default: int) -> int:
    try:
        return int(str(value).strip())
    except Exception:
        return int(default)


def _as_float(value: str | None, default: float) -> float:
    try:
        return float(str(value).strip())
    except Exception:
        return float(default)


def _as_path(value: str | None, default: Path) -> Path:
    raw = (value or "").strip()
    return Path(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    db_path: Path
    sqlite_busy_timeout_ms: int

    # Firecrawl provider
    firecrawl_url: str
    firecrawl_api_key: str
    firecrawl_timeout_sec: float

    # Work queue
    queue_name: str
    worker_poll_sec: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    base_dir = Path(__file__).resolve().parents[1]
    load_dotenv(dotenv_path=base_dir / ".env", override=False)

    db_path = _as_path(os.getenv("CRAWL_INGEST_DATABASE_PATH"), base_dir / ".runtime" / "data" / "crawl_ingest.db")
    if not db_path.is_absolute():
        db_path = base_dir / db_path

    return Settings(
        base_dir=base_dir,
        db_path=db_path,
        sqlite_busy_timeout_ms=_as_int(os.getenv("CRAWL_INGEST_SQLITE_BUSY_TIMEOUT_MS"), 5000),
        firecrawl_url=(os.getenv("FIRECRAWL_URL") or "https://api.firecrawl.dev").rstrip("/"),
        firecrawl_api_key=os.getenv("FIRECRAWL_API_KEY", ""),
        firecrawl_timeout_sec=max(1.0, _as_float(os.getenv("FIRECRAWL_TIMEOUT_SEC"), 60.0)),
        queue_name=(os.getenv("CRAWL_INGEST_QUEUE_NAME") or "scrape_queue").strip(),
        worker_poll_sec=max(1, _as_int(os.getenv("CRAWL_INGEST_WORKER_POLL_SEC"), 30)),
    )
