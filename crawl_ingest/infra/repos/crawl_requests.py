"""Crawl requests repository (SQLite)."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any

from crawl_ingest.core.models import CrawlOptions, CrawlRequest, CrawlStatus
from crawl_ingest.infra.db.sqlite import get_db
from crawl_ingest.infra.repos._common import from_iso, json_dumps, json_loads, to_iso

_COLUMNS = (
    "id, url, status, next_crawl_at, interval, crawl_options, scrape_id, dataset_id, created_at, attempt_number"
)


def _row_to_request(row) -> CrawlRequest:
    d: dict[str, Any] = dict(row)
    return CrawlRequest(
        id=uuid.UUID(d["id"]),
        url=d.get("url") or "",
        status=CrawlStatus(d["status"]),
        interval=timedelta(seconds=int(d.get("interval") or 0)),
        next_crawl_at=from_iso(d["next_crawl_at"]),
        crawl_options=CrawlOptions.model_validate(json_loads(d.get("crawl_options"), {})),
        scrape_id=uuid.UUID(d["scrape_id"]) if d.get("scrape_id") else None,
        dataset_id=uuid.UUID(d["dataset_id"]),
        created_at=from_iso(d["created_at"]),
        attempt_number=int(d.get("attempt_number") or 0),
    )


def _uuid_or_none(value: uuid.UUID | None) -> str | None:
    return str(value) if value is not None else None


def _options_json(options: CrawlOptions) -> str:
    return json_dumps(options.model_dump(mode="json", exclude_none=True))


async def insert_crawl_request(request: CrawlRequest) -> CrawlRequest:
    db = await get_db()
    try:
        cur = await db.execute(
            f"INSERT INTO crawl_requests({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) RETURNING {_COLUMNS}",
            (
                str(request.id),
                request.url,
                request.status.value,
                to_iso(request.next_crawl_at),
                int(request.interval.total_seconds()),
                _options_json(request.crawl_options),
                _uuid_or_none(request.scrape_id),
                str(request.dataset_id),
                to_iso(request.created_at),
                int(request.attempt_number),
            ),
        )
        row = await cur.fetchone()
        await db.commit()
        return _row_to_request(row)
    finally:
        await db.close()


async def get_by_scrape_id(scrape_id: uuid.UUID) -> CrawlRequest | None:
    db = await get_db()
    try:
        cur = await db.execute(
            f"SELECT {_COLUMNS} FROM crawl_requests WHERE scrape_id = ? LIMIT 1",
            (str(scrape_id),),
        )
        row = await cur.fetchone()
        return _row_to_request(row) if row else None
    finally:
        await db.close()


async def get_latest_for_dataset(dataset_id: uuid.UUID) -> CrawlRequest | None:
    db = await get_db()
    try:
        cur = await db.execute(
            f"SELECT {_COLUMNS} FROM crawl_requests WHERE dataset_id = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (str(dataset_id),),
        )
        row = await cur.fetchone()
        return _row_to_request(row) if row else None
    finally:
        await db.close()


# Newest row of the same dataset, matching get_latest_for_dataset ordering.
_IS_CURRENT = (
    "rowid = (SELECT latest.rowid FROM crawl_requests AS latest "
    "WHERE latest.dataset_id = crawl_requests.dataset_id "
    "ORDER BY latest.created_at DESC, latest.rowid DESC LIMIT 1)"
)


async def list_due(*, now: datetime, current_only: bool = False) -> list[CrawlRequest]:
    """All requests with next_crawl_at <= now; `current_only` keeps one row per dataset."""
    where = "next_crawl_at <= ?"
    if current_only:
        where += f" AND {_IS_CURRENT}"
    db = await get_db()
    try:
        cur = await db.execute(
            f"SELECT {_COLUMNS} FROM crawl_requests WHERE {where} ORDER BY next_crawl_at ASC, rowid ASC",
            (to_iso(now),),
        )
        rows = await cur.fetchall()
        return [_row_to_request(row) for row in rows]
    finally:
        await db.close()


async def update_status(*, scrape_id: uuid.UUID, status: CrawlStatus) -> int:
    db = await get_db()
    try:
        cur = await db.execute(
            "UPDATE crawl_requests SET status = ? WHERE scrape_id = ?",
            (status.value, str(scrape_id)),
        )
        await db.commit()
        return int(getattr(cur, "rowcount", 0) or 0)
    finally:
        await db.close()


async def update_next_crawl_at(*, scrape_id: uuid.UUID, next_crawl_at: datetime) -> int:
    db = await get_db()
    try:
        cur = await db.execute(
            "UPDATE crawl_requests SET next_crawl_at = ? WHERE scrape_id = ?",
            (to_iso(next_crawl_at), str(scrape_id)),
        )
        await db.commit()
        return int(getattr(cur, "rowcount", 0) or 0)
    finally:
        await db.close()


async def update_scrape_id(*, scrape_id: uuid.UUID, new_scrape_id: uuid.UUID) -> CrawlRequest | None:
    db = await get_db()
    try:
        cur = await db.execute(
            f"UPDATE crawl_requests SET scrape_id = ? WHERE scrape_id = ? RETURNING {_COLUMNS}",
            (str(new_scrape_id), str(scrape_id)),
        )
        rows = await cur.fetchall()
        await db.commit()
        return _row_to_request(rows[0]) if rows else None
    finally:
        await db.close()


async def update_url_for_dataset(*, dataset_id: uuid.UUID, url: str) -> None:
    db = await get_db()
    try:
        await db.execute("UPDATE crawl_requests SET url = ? WHERE dataset_id = ?", (url, str(dataset_id)))
        await db.commit()
    finally:
        await db.close()


async def update_interval_for_dataset(*, dataset_id: uuid.UUID, interval_seconds: int) -> None:
    db = await get_db()
    try:
        await db.execute(
            "UPDATE crawl_requests SET interval = ? WHERE dataset_id = ?",
            (int(interval_seconds), str(dataset_id)),
        )
        await db.commit()
    finally:
        await db.close()


async def update_options_for_dataset(*, dataset_id: uuid.UUID, crawl_options: CrawlOptions) -> None:
    db = await get_db()
    try:
        await db.execute(
            "UPDATE crawl_requests SET crawl_options = ? WHERE dataset_id = ?",
            (_options_json(crawl_options), str(dataset_id)),
        )
        await db.commit()
    finally:
        await db.close()


async def update_request(
    *,
    request_id: uuid.UUID,
    status: CrawlStatus | None = None,
    next_crawl_at: datetime | None = None,
    attempt_number: int | None = None,
) -> None:
    """Partial update keyed by row id; works for requests without a provider job."""
    db = await get_db()
    try:
        await db.execute(
            "UPDATE crawl_requests SET "
            "status = COALESCE(?, status), "
            "next_crawl_at = COALESCE(?, next_crawl_at), "
            "attempt_number = COALESCE(?, attempt_number) "
            "WHERE id = ?",
            (
                status.value if status is not None else None,
                to_iso(next_crawl_at) if next_crawl_at is not None else None,
                attempt_number,
                str(request_id),
            ),
        )
        await db.commit()
    finally:
        await db.close()
