"""Crawl request records, crawl options and the Firecrawl result objects."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CrawlStatus(str, Enum):
    PENDING = "pending"
    SCRAPING = "scraping"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CrawlInterval(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def seconds(self) -> int:
        return _INTERVAL_SECONDS[self]


_INTERVAL_SECONDS = {
    CrawlInterval.DAILY: 60 * 60 * 24,
    CrawlInterval.WEEKLY: 60 * 60 * 24 * 7,
    CrawlInterval.MONTHLY: 60 * 60 * 24 * 30,
}


def interval_seconds(interval: CrawlInterval | None) -> int:
    return (interval or CrawlInterval.DAILY).seconds


class ShopifyScrapeOptions(BaseModel):
    """Product-feed ingestion; these datasets never go through Firecrawl."""

    type: Literal["shopify"] = "shopify"
    group_variants: Optional[bool] = None


class CrawlOptions(BaseModel):
    site_url: Optional[str] = None
    interval: Optional[CrawlInterval] = None
    limit: Optional[int] = Field(default=None, ge=1)
    max_depth: Optional[int] = Field(default=None, ge=0)
    include_paths: Optional[list[str]] = None
    exclude_paths: Optional[list[str]] = None
    include_tags: Optional[list[str]] = None
    exclude_tags: Optional[list[str]] = None
    allow_external_links: Optional[bool] = None
    ignore_sitemap: Optional[bool] = None
    boost_titles: Optional[bool] = None
    body_remove_strings: Optional[list[str]] = None
    heading_remove_strings: Optional[list[str]] = None
    scrape_options: Optional[ShopifyScrapeOptions] = None

    @property
    def is_feed_based(self) -> bool:
        return isinstance(self.scrape_options, ShopifyScrapeOptions)

    def merge(self, previous: CrawlOptions | None) -> CrawlOptions:
        """Fields set here win; unset fields fall back to `previous`."""
        if previous is None:
            return self
        merged = {}
        for name in type(self).model_fields:
            value = getattr(self, name)
            merged[name] = value if value is not None else getattr(previous, name)
        return type(self)(**merged)

    def to_firecrawl_payload(self) -> dict[str, Any]:
        scrape_options = {
            "formats": ["html", "rawHtml"],
            "includeTags": self.include_tags,
            "excludeTags": self.exclude_tags,
        }
        payload = {
            "url": self.site_url or "",
            "includePaths": self.include_paths,
            "excludePaths": self.exclude_paths,
            "maxDepth": self.max_depth,
            "limit": self.limit,
            "ignoreSitemap": self.ignore_sitemap,
            "allowExternalLinks": self.allow_external_links,
            "allowBackwardLinks": True,
            "scrapeOptions": {k: v for k, v in scrape_options.items() if v is not None},
        }
        return {k: v for k, v in payload.items() if v is not None}


def merge_options(new: CrawlOptions, old: CrawlOptions | None) -> CrawlOptions:
    return new.merge(old)


class CrawlRequest(BaseModel):
    id: uuid.UUID
    url: str
    status: CrawlStatus
    interval: timedelta
    next_crawl_at: datetime
    crawl_options: CrawlOptions
    # None when no provider job backs this request (feed-based ingestion).
    scrape_id: Optional[uuid.UUID] = None
    dataset_id: uuid.UUID
    created_at: datetime
    attempt_number: int = 0


class IngestStatus(str, Enum):
    SCRAPING = "scraping"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Metadata(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    title: Optional[str] = None
    description: Optional[str] = None
    language: Optional[str] = None
    source_url: Optional[str] = Field(default=None, alias="sourceURL")
    status_code: Optional[int] = Field(default=None, alias="statusCode")
    error: Optional[str] = None


class Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    markdown: Optional[str] = None
    extract: Any = None
    html: Optional[str] = None
    raw_html: Optional[str] = Field(default=None, alias="rawHtml")
    links: Optional[list[str]] = None
    screenshot: Optional[str] = None
    metadata: Metadata = Field(default_factory=Metadata)


class IngestResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: IngestStatus
    completed: int = 0
    total: int = 0
    credits_used: int = Field(default=0, alias="creditsUsed")
    expires_at: Optional[str] = Field(default=None, alias="expiresAt")
    next: Optional[str] = None
    data: list[Optional[Document]] = Field(default_factory=list)

    @field_validator("data", mode="before")
    @classmethod
    def _null_data(cls, value):
        return [] if value is None else value


class Chunk(BaseModel):
    heading: str
    html: str
    tags: list[str] = Field(default_factory=list)
    source_url: Optional[str] = None
