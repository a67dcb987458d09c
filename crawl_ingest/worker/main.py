"""crawl_ingest worker.

Re-submits crawl requests whose next_crawl_at has passed, drains the scrape
queue, polls Firecrawl for each queued job and hands the segmented chunks of
completed crawls to a sink.
"""

from __future__ import annotations

import asyncio
import signal
import uuid
from typing import Awaitable, Callable

from loguru import logger

from crawl_ingest.config import get_settings
from crawl_ingest.core.errors import CrawlServiceError
from crawl_ingest.core.models import Chunk, CrawlRequest, CrawlStatus, IngestStatus
from crawl_ingest.core.usecases.chunks import result_chunks
from crawl_ingest.infra.db.sqlite import init_db
from crawl_ingest.infra.firecrawl.client import FirecrawlClient
from crawl_ingest.infra.repos import work_queue
from crawl_ingest.services.crawl_lifecycle import CrawlLifecycle, storage_errors

ChunkSink = Callable[[CrawlRequest, list[Chunk]], Awaitable[None]]

# Requests in these states already have a provider job in flight.
_IN_FLIGHT = {CrawlStatus.PENDING, CrawlStatus.SCRAPING}


async def log_chunks(request: CrawlRequest, chunks: list[Chunk]) -> None:
    logger.info(f"Dataset {request.dataset_id}: {len(chunks)} chunks from crawl {request.scrape_id}")


class CrawlWorker:
    def __init__(self, lifecycle: CrawlLifecycle, *, sink: ChunkSink = log_chunks):
        self.lifecycle = lifecycle
        self.client = lifecycle.client
        self.sink = sink

    async def reschedule_due(self) -> list[CrawlRequest]:
        """Start a fresh provider job for each dataset whose current request is due and not in flight."""
        now = self.lifecycle.clock()
        rescheduled = []
        for request in await self.lifecycle.list_due(now, current_only=True):
            if request.status in _IN_FLIGHT:
                continue

            if request.scrape_id is None or request.crawl_options.is_feed_based:
                await self.lifecycle.mark(request, status=CrawlStatus.PENDING)
                queued = request.model_copy(update={"status": CrawlStatus.PENDING})
            else:
                new_job_id = await self.client.submit(request.crawl_options)
                queued = await self.lifecycle.repoint_job(request.scrape_id, new_job_id)
                await self.lifecycle.set_status(new_job_id, CrawlStatus.PENDING)
                queued = queued.model_copy(update={"status": CrawlStatus.PENDING})

            await self.lifecycle.enqueue(queued)
            logger.info(f"Rescheduled crawl request {request.id} for dataset {request.dataset_id}")
            rescheduled.append(queued)
        return rescheduled

    async def process_message(self) -> CrawlRequest | None:
        """Pop one queued request and advance it; returns None when the queue is empty."""
        with storage_errors("popping from the work queue"):
            payload = await work_queue.pop(self.lifecycle.queue_name)
        if payload is None:
            return None
        request = CrawlRequest.model_validate_json(payload)

        if request.scrape_id is None:
            # Feed ingestion runs outside firecrawl; only the schedule is kept here.
            logger.info(f"Crawl request {request.id} is feed-based; nothing to fetch from firecrawl")
            await self.lifecycle.mark(
                request,
                status=CrawlStatus.COMPLETED,
                next_crawl_at=self.lifecycle.clock() + request.interval,
            )
            return request

        await self.lifecycle.set_status(request.scrape_id, CrawlStatus.SCRAPING)
        try:
            result = await self.client.fetch_all(request.scrape_id)
        except CrawlServiceError:
            await self._finish(request.scrape_id, request, CrawlStatus.FAILED)
            raise

        if result.status == IngestStatus.SCRAPING:
            attempt = request.attempt_number + 1
            await self.lifecycle.mark(request, attempt_number=attempt)
            await self.lifecycle.enqueue(request.model_copy(update={"attempt_number": attempt}))
            logger.info(f"Crawl {request.scrape_id} still scraping ({result.completed}/{result.total}); requeued")
            return request

        if result.status == IngestStatus.COMPLETED:
            await self.sink(request, result_chunks(result))

        await self._finish(request.scrape_id, request, CrawlStatus(result.status.value))
        return request

    async def _finish(self, job_id: uuid.UUID, request: CrawlRequest, status: CrawlStatus) -> None:
        await self.lifecycle.set_status(job_id, status)
        await self.lifecycle.set_next_crawl_at(job_id, self.lifecycle.clock() + request.interval)

    async def tick(self) -> int:
        """One scheduler pass; each request queued at the start is processed at most once."""
        await self.reschedule_due()
        with storage_errors("reading work queue length"):
            pending = await work_queue.length(self.lifecycle.queue_name)
        processed = 0
        for _ in range(pending):
            try:
                if await self.process_message() is None:
                    break
            except CrawlServiceError as exc:
                logger.error(f"Crawl processing failed ({exc.code}): {exc.message}")
            processed += 1
        return processed

    async def run(self, stop_event: asyncio.Event, *, poll_sec: int | None = None) -> None:
        poll_sec = poll_sec or get_settings().worker_poll_sec
        while not stop_event.is_set():
            try:
                await self.tick()
            except CrawlServiceError as exc:
                logger.error(f"Worker tick failed ({exc.code}): {exc.message}")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=poll_sec)
            except asyncio.TimeoutError:
                continue


async def main() -> None:
    await init_db()
    client = FirecrawlClient.from_settings()
    worker = CrawlWorker(CrawlLifecycle(client))

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass

    logger.info("crawl_ingest worker started")
    try:
        await worker.run(stop_event)
    finally:
        await client.stop()
        logger.info("crawl_ingest worker stopped")


if __name__ == "__main__":
    asyncio.run(main())
