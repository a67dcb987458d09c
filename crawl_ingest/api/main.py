"""FastAPI entrypoint for crawl_ingest."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from crawl_ingest.core.errors import CrawlServiceError
from crawl_ingest.infra.db.sqlite import init_db
from crawl_ingest.infra.firecrawl.client import FirecrawlClient
from crawl_ingest.services.crawl_lifecycle import CrawlLifecycle

from crawl_ingest.api.routes.crawls import router as crawls_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    if getattr(app.state, "lifecycle", None) is None:
        app.state.lifecycle = CrawlLifecycle(FirecrawlClient.from_settings())
    try:
        yield
    finally:
        await app.state.lifecycle.client.stop()


app = FastAPI(
    title="crawl_ingest",
    description="Recurring Firecrawl ingestion for datasets",
    version="2.0.0",
    lifespan=lifespan,
)

app.include_router(crawls_router)


@app.exception_handler(CrawlServiceError)
async def crawl_service_error_handler(_request: Request, exc: CrawlServiceError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.message})


@app.get("/api/v2/health")
async def health():
    return {"status": "ok", "service": "crawl_ingest"}
