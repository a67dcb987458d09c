"""Turn crawled documents into indexable chunks."""

from __future__ import annotations

from crawl_ingest.core.models import Chunk, Document, IngestResult
from crawl_ingest.core.usecases.segmentation import chunk_html
from crawl_ingest.core.usecases.tags import path_tags


def document_chunks(document: Document) -> list[Chunk]:
    html = document.html or document.raw_html
    if not html:
        return []
    source_url = document.metadata.source_url
    tags = path_tags(source_url) if source_url else []
    return [
        Chunk(heading=heading, html=chunk, tags=tags, source_url=source_url)
        for heading, chunk in chunk_html(html)
    ]


def result_chunks(result: IngestResult) -> list[Chunk]:
    chunks: list[Chunk] = []
    for document in result.data:
        # Slots that are not ready yet come back as null.
        if document is None:
            continue
        chunks.extend(document_chunks(document))
    return chunks
