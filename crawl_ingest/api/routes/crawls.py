"""Crawl routes."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Request

from crawl_ingest.core.models import Chunk, CrawlOptions, CrawlRequest, IngestStatus
from crawl_ingest.core.usecases.chunks import result_chunks
from crawl_ingest.services.crawl_lifecycle import CrawlLifecycle


router = APIRouter(prefix="/api/v2", tags=["crawls"])


def get_lifecycle(request: Request) -> CrawlLifecycle:
    return request.app.state.lifecycle


def _job_response(job_id: uuid.UUID | None) -> dict:
    return {"job_id": str(job_id) if job_id is not None else None}


@router.post("/datasets/{dataset_id}/crawl")
async def api_submit_crawl(
    dataset_id: uuid.UUID,
    options: CrawlOptions,
    lifecycle: CrawlLifecycle = Depends(get_lifecycle),
):
    if not options.is_feed_based and not (options.site_url or "").strip():
        raise HTTPException(status_code=400, detail="site_url is required unless a feed is configured.")
    job_id = await lifecycle.submit_crawl(options, dataset_id)
    return _job_response(job_id)


@router.put("/datasets/{dataset_id}/crawl")
async def api_reconfigure_crawl(
    dataset_id: uuid.UUID,
    options: CrawlOptions,
    lifecycle: CrawlLifecycle = Depends(get_lifecycle),
):
    job_id = await lifecycle.reconfigure(options, dataset_id)
    return _job_response(job_id)


@router.get("/datasets/{dataset_id}/crawl", response_model=CrawlRequest)
async def api_get_dataset_crawl(dataset_id: uuid.UUID, lifecycle: CrawlLifecycle = Depends(get_lifecycle)):
    request = await lifecycle.get_by_dataset(dataset_id)
    if request is None:
        raise HTTPException(status_code=404, detail="No crawl configured for dataset")
    return request


@router.get("/crawls/{job_id}", response_model=CrawlRequest)
async def api_get_crawl(job_id: uuid.UUID, lifecycle: CrawlLifecycle = Depends(get_lifecycle)):
    return await lifecycle.get_by_job_id(job_id)


@router.get("/crawls/{job_id}/chunks")
async def api_get_crawl_chunks(job_id: uuid.UUID, lifecycle: CrawlLifecycle = Depends(get_lifecycle)):
    await lifecycle.get_by_job_id(job_id)
    result = await lifecycle.client.fetch_all(job_id)
    chunks: list[Chunk] = result_chunks(result) if result.status == IngestStatus.COMPLETED else []
    return {
        "job_id": str(job_id),
        "status": result.status.value,
        "completed": result.completed,
        "total": result.total,
        "documents": len([d for d in result.data if d is not None]),
        "chunks": [c.model_dump() for c in chunks],
    }
