"""SQLite helpers + migration runner for crawl_ingest."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from crawl_ingest.config import Settings, get_settings


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _configure_connection(db: aiosqlite.Connection, *, settings: Settings) -> None:
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL;")
    await db.execute("PRAGMA synchronous=NORMAL;")
    await db.execute(f"PRAGMA busy_timeout={max(100, int(settings.sqlite_busy_timeout_ms))};")


async def get_db(*, settings: Settings | None = None) -> aiosqlite.Connection:
    settings = settings or get_settings()
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(settings.db_path))
    await _configure_connection(db, settings=settings)
    return db


async def apply_migrations(db: aiosqlite.Connection) -> list[str]:
    migrations_dir = Path(__file__).resolve().parent / "migrations"
    migrations = sorted(p for p in migrations_dir.glob("*.sql") if p.is_file())

    await db.execute(
        "CREATE TABLE IF NOT EXISTS schema_migrations (name TEXT PRIMARY KEY, applied_at TEXT NOT NULL)"
    )
    await db.commit()

    cur = await db.execute("SELECT name FROM schema_migrations")
    applied = {str(row["name"]) for row in await cur.fetchall()}

    newly_applied = []
    for path in migrations:
        name = path.name
        if name in applied:
            continue
        sql = path.read_text(encoding="utf-8")
        await db.executescript(sql)
        await db.execute(
            "INSERT INTO schema_migrations(name, applied_at) VALUES (?, ?)",
            (name, _utcnow_iso()),
        )
        await db.commit()
        newly_applied.append(name)
    return newly_applied


async def init_db(*, settings: Settings | None = None) -> dict:
    settings = settings or get_settings()
    db = await get_db(settings=settings)
    try:
        applied = await apply_migrations(db)
    finally:
        await db.close()
    return {"db_path": str(settings.db_path), "applied_migrations": applied}
