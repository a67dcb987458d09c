"""Firecrawl crawl API client: job submission and paginated result aggregation."""

from __future__ import annotations

import uuid

import httpx
from loguru import logger
from pydantic import ValidationError

from crawl_ingest.config import Settings, get_settings
from crawl_ingest.core.errors import FirecrawlClientError
from crawl_ingest.core.models import CrawlOptions, IngestResult, IngestStatus


class FirecrawlClient:
    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        *,
        timeout_sec: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key or ""
        self.timeout = httpx.Timeout(timeout_sec, connect=15.0)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs) -> FirecrawlClient:
        settings = settings or get_settings()
        return cls(
            settings.firecrawl_url,
            settings.firecrawl_api_key,
            timeout_sec=settings.firecrawl_timeout_sec,
            **kwargs,
        )

    async def start(self):
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def stop(self):
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            await self.start()
        assert self._client is not None
        return self._client

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def crawl_url(self, job_id: uuid.UUID) -> str:
        return f"{self.base_url}/v1/crawl/{job_id}"

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        client = await self._get_client()
        try:
            resp = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as exc:
            logger.error(f"Timed out sending request to firecrawl: {exc!r}")
            raise FirecrawlClientError(
                code="firecrawl_timeout",
                message="Request to firecrawl timed out.",
                status_code=504,
            ) from exc
        except httpx.HTTPError as exc:
            logger.error(f"Error sending request to firecrawl: {exc!r}")
            raise FirecrawlClientError(
                code="firecrawl_unreachable",
                message="Error sending request to firecrawl",
                status_code=500,
            ) from exc

        if not resp.is_success:
            logger.error(f"Error getting response from firecrawl: HTTP {resp.status_code} {resp.text[:500]}")
            raise FirecrawlClientError(
                code="firecrawl_http_error",
                message=f"Firecrawl returned HTTP {resp.status_code}.",
            )
        return resp

    async def submit(self, options: CrawlOptions) -> uuid.UUID:
        """Start a crawl job and return the provider's job id."""
        resp = await self._send("POST", f"{self.base_url}/v1/crawl", json=options.to_firecrawl_payload())
        try:
            body = resp.json()
        except ValueError as exc:
            logger.error(f"Error parsing response from firecrawl: {exc!r}")
            raise FirecrawlClientError(
                code="firecrawl_bad_response",
                message="Error parsing response from firecrawl",
            ) from exc

        raw_id = body.get("id") if isinstance(body, dict) else None
        if not raw_id:
            raise FirecrawlClientError(
                code="firecrawl_bad_response",
                message="Firecrawl response did not include a job id",
            )
        try:
            return uuid.UUID(str(raw_id))
        except ValueError as exc:
            raise FirecrawlClientError(
                code="firecrawl_bad_response",
                message=f"Firecrawl returned an invalid job id: {raw_id!r}",
            ) from exc

    async def fetch_page(self, url: str) -> IngestResult:
        resp = await self._send("GET", url)
        try:
            return IngestResult.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            logger.error(f"Error parsing response from firecrawl: {exc!r}")
            raise FirecrawlClientError(
                code="firecrawl_bad_response",
                message="Error parsing response from firecrawl",
            ) from exc

    async def fetch_all(self, job_id: uuid.UUID) -> IngestResult:
        """Follow `next` cursors and return every document of a completed job.

        A job that is not completed yet is returned as-is from its first page.
        Cursors are downgraded to http before use, and a cursor pointing back at
        the page just fetched ends the walk.
        """
        logger.info(f"Getting crawl {job_id} from firecrawl")
        url = self.crawl_url(job_id)
        collected = []

        while True:
            page = await self.fetch_page(url)
            if page.status != IngestStatus.COMPLETED:
                logger.info(f"Crawl {job_id} status: {page.status.value}")
                return page

            collected.extend(page.data)

            if not page.next:
                break

            next_url = page.next.replace("https://", "http://")
            logger.info(f"Next ingest url: {next_url} | prev {url}")
            if next_url == url:
                logger.info(f"Firecrawl repeated the last page for crawl {job_id}; stopping")
                break
            url = next_url

        return page.model_copy(update={"next": None, "data": collected})
