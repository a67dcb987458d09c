"""Crawl request lifecycle: submission, lookups, status/schedule updates and reconfiguration."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator

import aiosqlite
from loguru import logger
from pydantic import ValidationError

from crawl_ingest.config import get_settings
from crawl_ingest.core.errors import CrawlRequestNotFoundError, StorageError
from crawl_ingest.core.models import CrawlOptions, CrawlRequest, CrawlStatus, interval_seconds
from crawl_ingest.infra.firecrawl.client import FirecrawlClient
from crawl_ingest.infra.repos import crawl_requests as repo
from crawl_ingest.infra.repos import work_queue
from crawl_ingest.infra.repos._common import utcnow


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except (aiosqlite.Error, OSError, ValidationError) as exc:
        logger.error(f"Error {action}: {exc!r}")
        raise StorageError(f"Error {action}") from exc


class CrawlLifecycle:
    def __init__(
        self,
        client: FirecrawlClient,
        *,
        queue_name: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.queue_name = queue_name or get_settings().queue_name
        self.clock = clock

    async def submit_crawl(self, options: CrawlOptions, dataset_id: uuid.UUID) -> uuid.UUID | None:
        """Start a crawl for `dataset_id` and queue it; returns the provider job id.

        Feed-based options never reach the provider and get no job id.
        """
        if options.is_feed_based:
            scrape_id = None
        else:
            scrape_id = await self.client.submit(options)

        await self.create_request(options, dataset_id, scrape_id)
        return scrape_id

    async def create_request(
        self,
        options: CrawlOptions,
        dataset_id: uuid.UUID,
        scrape_id: uuid.UUID | None,
    ) -> CrawlRequest:
        now = self.clock()
        request = CrawlRequest(
            id=uuid.uuid4(),
            url=options.site_url or "",
            status=CrawlStatus.PENDING,
            interval=timedelta(seconds=interval_seconds(options.interval)),
            next_crawl_at=now,
            crawl_options=options,
            scrape_id=scrape_id,
            dataset_id=dataset_id,
            created_at=now,
            attempt_number=0,
        )
        with storage_errors("inserting crawl request"):
            created = await repo.insert_crawl_request(request)
        await self.enqueue(created)
        logger.info(f"Queued crawl request {created.id} for dataset {dataset_id} (job {scrape_id})")
        return created

    async def enqueue(self, request: CrawlRequest) -> int:
        with storage_errors("pushing crawl request onto the work queue"):
            return await work_queue.push(self.queue_name, request.model_dump_json())

    async def get_by_job_id(self, job_id: uuid.UUID) -> CrawlRequest:
        with storage_errors("loading crawl request"):
            request = await repo.get_by_scrape_id(job_id)
        if request is None:
            raise CrawlRequestNotFoundError(f"No crawl request for job {job_id}")
        return request

    async def get_by_dataset(self, dataset_id: uuid.UUID) -> CrawlRequest | None:
        with storage_errors("loading crawl request for dataset"):
            return await repo.get_latest_for_dataset(dataset_id)

    async def list_due(self, now: datetime | None = None, *, current_only: bool = False) -> list[CrawlRequest]:
        """Every request due at `now`; `current_only` drops rows superseded by a newer request for the dataset."""
        with storage_errors("listing due crawl requests"):
            return await repo.list_due(now=now or self.clock(), current_only=current_only)

    async def set_status(self, job_id: uuid.UUID, status: CrawlStatus) -> None:
        with storage_errors("updating crawl status"):
            await repo.update_status(scrape_id=job_id, status=status)

    async def set_next_crawl_at(self, job_id: uuid.UUID, next_crawl_at: datetime) -> None:
        with storage_errors("updating next_crawl_at"):
            await repo.update_next_crawl_at(scrape_id=job_id, next_crawl_at=next_crawl_at)

    async def reconfigure(self, options: CrawlOptions, dataset_id: uuid.UUID) -> uuid.UUID | None:
        """Store new crawl settings for a dataset and immediately start a new crawl."""
        previous = await self.get_by_dataset(dataset_id)

        if options.site_url is not None:
            with storage_errors("updating url on crawl_requests"):
                await repo.update_url_for_dataset(dataset_id=dataset_id, url=options.site_url)

        if options.interval is not None:
            with storage_errors("updating interval on crawl_requests"):
                await repo.update_interval_for_dataset(
                    dataset_id=dataset_id,
                    interval_seconds=options.interval.seconds,
                )

        merged = options.merge(previous.crawl_options if previous else None)
        with storage_errors("updating crawl options on crawl_requests"):
            await repo.update_options_for_dataset(dataset_id=dataset_id, crawl_options=merged)

        return await self.submit_crawl(merged, dataset_id)

    async def repoint_job(self, old_job_id: uuid.UUID, new_job_id: uuid.UUID) -> CrawlRequest:
        with storage_errors("updating scrape_id"):
            updated = await repo.update_scrape_id(scrape_id=old_job_id, new_scrape_id=new_job_id)
        if updated is None:
            raise CrawlRequestNotFoundError(f"No crawl request for job {old_job_id}")
        return updated

    async def mark(
        self,
        request: CrawlRequest,
        *,
        status: CrawlStatus | None = None,
        next_crawl_at: datetime | None = None,
        attempt_number: int | None = None,
    ) -> None:
        """Update a request by row id (also covers requests without a provider job)."""
        with storage_errors("updating crawl request"):
            await repo.update_request(
                request_id=request.id,
                status=status,
                next_crawl_at=next_crawl_at,
                attempt_number=attempt_number,
            )
