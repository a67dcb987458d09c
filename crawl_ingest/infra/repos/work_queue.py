"""Named FIFO work queue stored in SQLite."""

from __future__ import annotations

from crawl_ingest.infra.db.sqlite import get_db
from crawl_ingest.infra.repos._common import utcnow_iso


async def push(queue: str, payload: str) -> int:
    """Append `payload` to `queue`; returns the queue length after the push."""
    db = await get_db()
    try:
        await db.execute(
            "INSERT INTO work_queue(queue, payload, created_at) VALUES (?, ?, ?)",
            (queue, payload, utcnow_iso()),
        )
        cur = await db.execute("SELECT COUNT(1) AS n FROM work_queue WHERE queue = ?", (queue,))
        row = await cur.fetchone()
        await db.commit()
        return int(row["n"] or 0) if row else 0
    finally:
        await db.close()


async def pop(queue: str) -> str | None:
    db = await get_db()
    try:
        cur = await db.execute(
            "DELETE FROM work_queue WHERE id = ("
            "SELECT id FROM work_queue WHERE queue = ? ORDER BY id ASC LIMIT 1"
            ") RETURNING payload",
            (queue,),
        )
        rows = await cur.fetchall()
        await db.commit()
        return str(rows[0]["payload"]) if rows else None
    finally:
        await db.close()


async def length(queue: str) -> int:
    db = await get_db()
    try:
        cur = await db.execute("SELECT COUNT(1) AS n FROM work_queue WHERE queue = ?", (queue,))
        row = await cur.fetchone()
        return int(row["n"] or 0) if row else 0
    finally:
        await db.close()
