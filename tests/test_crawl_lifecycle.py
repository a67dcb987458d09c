import json
import os
import tempfile
import unittest
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx

from crawl_ingest.config import get_settings
from crawl_ingest.core.errors import CrawlRequestNotFoundError, StorageError
from crawl_ingest.core.models import CrawlInterval, CrawlOptions, CrawlRequest, CrawlStatus, ShopifyScrapeOptions
from crawl_ingest.infra.db.sqlite import get_db, init_db
from crawl_ingest.infra.firecrawl.client import FirecrawlClient
from crawl_ingest.infra.repos import work_queue
from crawl_ingest.services.crawl_lifecycle import CrawlLifecycle

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


class CrawlLifecycleTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self._original_db = os.environ.get("CRAWL_INGEST_DATABASE_PATH")
        os.environ["CRAWL_INGEST_DATABASE_PATH"] = str(Path(self._tmpdir.name) / "crawl.db")
        get_settings.cache_clear()
        await init_db()

        self.submitted = []

        def handler(request: httpx.Request) -> httpx.Response:
            job_id = uuid.uuid4()
            self.submitted.append((job_id, json.loads(request.content)))
            return httpx.Response(200, json={"success": True, "id": str(job_id)})

        self.client = FirecrawlClient("http://firecrawl.test", "fc-key", transport=httpx.MockTransport(handler))
        self.lifecycle = CrawlLifecycle(self.client, queue_name="scrape_queue", clock=lambda: NOW)
        self.dataset_id = uuid.uuid4()

    async def asyncTearDown(self):
        await self.client.stop()
        if self._original_db is None:
            os.environ.pop("CRAWL_INGEST_DATABASE_PATH", None)
        else:
            os.environ["CRAWL_INGEST_DATABASE_PATH"] = self._original_db
        get_settings.cache_clear()
        self._tmpdir.cleanup()

    async def test_submit_creates_pending_request_due_now_and_queues_it(self):
        options = CrawlOptions(site_url="https://docs.example.com", interval=CrawlInterval.WEEKLY)
        job_id = await self.lifecycle.submit_crawl(options, self.dataset_id)

        self.assertEqual(job_id, self.submitted[0][0])
        request = await self.lifecycle.get_by_job_id(job_id)
        self.assertEqual(request.status, CrawlStatus.PENDING)
        self.assertEqual(request.next_crawl_at, NOW)
        self.assertEqual(request.created_at, NOW)
        self.assertEqual(request.interval, timedelta(days=7))
        self.assertEqual(request.url, "https://docs.example.com")
        self.assertEqual(request.dataset_id, self.dataset_id)
        self.assertEqual(request.attempt_number, 0)

        payload = await work_queue.pop("scrape_queue")
        queued = CrawlRequest.model_validate_json(payload)
        self.assertEqual(queued.id, request.id)
        self.assertEqual(queued.scrape_id, job_id)

    async def test_interval_defaults_to_daily(self):
        job_id = await self.lifecycle.submit_crawl(CrawlOptions(site_url="https://a.example"), self.dataset_id)
        request = await self.lifecycle.get_by_job_id(job_id)
        self.assertEqual(request.interval, timedelta(days=1))

    async def test_feed_based_submit_skips_provider(self):
        options = CrawlOptions(site_url="https://shop.example", scrape_options=ShopifyScrapeOptions())
        job_id = await self.lifecycle.submit_crawl(options, self.dataset_id)

        self.assertIsNone(job_id)
        self.assertEqual(self.submitted, [])
        request = await self.lifecycle.get_by_dataset(self.dataset_id)
        self.assertIsNotNone(request)
        self.assertIsNone(request.scrape_id)
        self.assertTrue(request.crawl_options.is_feed_based)
        self.assertEqual(await work_queue.length("scrape_queue"), 1)

    async def test_lookups_for_unknown_ids(self):
        with self.assertRaises(CrawlRequestNotFoundError):
            await self.lifecycle.get_by_job_id(uuid.uuid4())
        self.assertIsNone(await self.lifecycle.get_by_dataset(uuid.uuid4()))

    async def test_list_due_uses_next_crawl_at(self):
        job_id = await self.lifecycle.submit_crawl(CrawlOptions(site_url="https://a.example"), self.dataset_id)

        due = await self.lifecycle.list_due(NOW)
        self.assertEqual([r.scrape_id for r in due], [job_id])
        self.assertEqual(await self.lifecycle.list_due(NOW - timedelta(seconds=1)), [])

        await self.lifecycle.set_next_crawl_at(job_id, NOW + timedelta(days=1))
        self.assertEqual(await self.lifecycle.list_due(NOW + timedelta(hours=23)), [])
        self.assertEqual(len(await self.lifecycle.list_due(NOW + timedelta(days=1))), 1)

    async def test_status_and_schedule_update_independently(self):
        job_id = await self.lifecycle.submit_crawl(CrawlOptions(site_url="https://a.example"), self.dataset_id)

        await self.lifecycle.set_status(job_id, CrawlStatus.SCRAPING)
        request = await self.lifecycle.get_by_job_id(job_id)
        self.assertEqual(request.status, CrawlStatus.SCRAPING)
        self.assertEqual(request.next_crawl_at, NOW)

        later = NOW + timedelta(days=1)
        await self.lifecycle.set_next_crawl_at(job_id, later)
        request = await self.lifecycle.get_by_job_id(job_id)
        self.assertEqual(request.status, CrawlStatus.SCRAPING)
        self.assertEqual(request.next_crawl_at, later)

    async def test_reconfigure_merges_previous_options_and_resubmits(self):
        first = CrawlOptions(site_url="https://docs.example.com", interval=CrawlInterval.DAILY, limit=10)
        first_job = await self.lifecycle.submit_crawl(first, self.dataset_id)

        new_job = await self.lifecycle.reconfigure(
            CrawlOptions(interval=CrawlInterval.WEEKLY, include_paths=["/guides"]),
            self.dataset_id,
        )

        self.assertEqual(len(self.submitted), 2)
        self.assertNotEqual(new_job, first_job)
        self.assertEqual(self.submitted[1][1]["url"], "https://docs.example.com")
        self.assertEqual(self.submitted[1][1]["includePaths"], ["/guides"])

        current = await self.lifecycle.get_by_dataset(self.dataset_id)
        self.assertEqual(current.scrape_id, new_job)
        self.assertEqual(current.crawl_options.limit, 10)
        self.assertEqual(current.crawl_options.interval, CrawlInterval.WEEKLY)
        self.assertEqual(current.interval, timedelta(days=7))

        previous = await self.lifecycle.get_by_job_id(first_job)
        self.assertEqual(previous.interval, timedelta(days=7))
        self.assertEqual(previous.crawl_options, current.crawl_options)

    async def test_reconfigure_overwrites_url_column(self):
        await self.lifecycle.submit_crawl(CrawlOptions(site_url="https://old.example"), self.dataset_id)
        first_job = self.submitted[0][0]

        await self.lifecycle.reconfigure(CrawlOptions(site_url="https://new.example"), self.dataset_id)

        previous = await self.lifecycle.get_by_job_id(first_job)
        self.assertEqual(previous.url, "https://new.example")

    async def test_reconfigure_twice_with_same_options_is_stable(self):
        await self.lifecycle.submit_crawl(
            CrawlOptions(site_url="https://docs.example.com", max_depth=2), self.dataset_id
        )
        change = CrawlOptions(exclude_paths=["/blog"], boost_titles=True)

        await self.lifecycle.reconfigure(change, self.dataset_id)
        once = (await self.lifecycle.get_by_dataset(self.dataset_id)).crawl_options
        await self.lifecycle.reconfigure(change, self.dataset_id)
        twice = (await self.lifecycle.get_by_dataset(self.dataset_id)).crawl_options

        self.assertEqual(once, twice)

    async def test_reconfigure_without_previous_request_submits_options(self):
        job_id = await self.lifecycle.reconfigure(CrawlOptions(site_url="https://a.example"), self.dataset_id)
        request = await self.lifecycle.get_by_job_id(job_id)
        self.assertEqual(request.crawl_options, CrawlOptions(site_url="https://a.example"))

    async def test_repoint_job(self):
        old_job = await self.lifecycle.submit_crawl(CrawlOptions(site_url="https://a.example"), self.dataset_id)
        new_job = uuid.uuid4()

        updated = await self.lifecycle.repoint_job(old_job, new_job)

        self.assertEqual(updated.scrape_id, new_job)
        self.assertEqual((await self.lifecycle.get_by_job_id(new_job)).id, updated.id)
        with self.assertRaises(CrawlRequestNotFoundError):
            await self.lifecycle.get_by_job_id(old_job)
        with self.assertRaises(CrawlRequestNotFoundError):
            await self.lifecycle.repoint_job(uuid.uuid4(), uuid.uuid4())

    async def test_storage_failure_surfaces_as_storage_error(self):
        blocker = Path(self._tmpdir.name) / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        os.environ["CRAWL_INGEST_DATABASE_PATH"] = str(blocker / "crawl.db")
        get_settings.cache_clear()

        with self.assertRaises(StorageError):
            await self.lifecycle.get_by_dataset(self.dataset_id)

    async def test_list_due_returns_every_due_request(self):
        rows = [
            (
                str(uuid.uuid4()),
                f"https://site{i}.example",
                CrawlStatus.PENDING.value if i < 1000 else CrawlStatus.COMPLETED.value,
                (NOW - timedelta(days=1) if i < 1000 else NOW).isoformat(),
                86400,
                "{}",
                str(uuid.uuid4()),
                str(uuid.uuid4()),
                NOW.isoformat(),
            )
            for i in range(1001)
        ]
        db = await get_db()
        try:
            await db.executemany(
                "INSERT INTO crawl_requests("
                "id, url, status, next_crawl_at, interval, crawl_options, scrape_id, dataset_id, created_at"
                ") VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                rows,
            )
            await db.commit()
        finally:
            await db.close()

        due = await self.lifecycle.list_due(NOW)

        self.assertEqual(len(due), 1001)
        self.assertEqual(due[-1].status, CrawlStatus.COMPLETED)
        self.assertEqual(len(await self.lifecycle.list_due(NOW, current_only=True)), 1001)
