"""Heading-anchored HTML segmentation.

Pages are split on opening heading tags (h1-h6). Each fragment keeps the
heading tag that introduced it, so the chunk can be indexed under that
heading. Fragments with too few words are carried forward and prepended to
the next fragment instead of being emitted on their own.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup

HEADING_TAG_RE = re.compile(r"<h[1-6].*?>", re.IGNORECASE)
HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]

# Fragments at or below this many words are merged into the next one.
SHORT_CHUNK_MAX_WORDS = 5


def html_to_text(html: str) -> str:
    return BeautifulSoup(html or "", "html.parser").get_text(" ")


def word_count(html: str) -> int:
    return len(html_to_text(html).split())


def extract_first_heading(html: str) -> str:
    heading = BeautifulSoup(html or "", "html.parser").find(HEADING_TAGS)
    return heading.get_text() if heading is not None else ""


def _with_carry(short_chunk: str | None, fragment: str) -> str:
    fragment = fragment.strip()
    if short_chunk is None:
        return fragment
    return f"{short_chunk} {fragment}"


def chunk_html(html: str) -> list[tuple[str, str]]:
    """Split `html` into ordered `(heading_text, chunk_html)` pairs."""
    chunks: list[tuple[str, str]] = []
    current = ""
    last_end = 0
    short_chunk: str | None = None

    for match in HEADING_TAG_RE.finditer(html):
        if last_end != match.start():
            current += html[last_end:match.start()]

        if current:
            candidate = _with_carry(short_chunk, current)
            short_chunk = None
            if word_count(candidate) > SHORT_CHUNK_MAX_WORDS:
                chunks.append((extract_first_heading(candidate), candidate))
            else:
                short_chunk = candidate

        current = match.group(0)
        last_end = match.end()

    if last_end < len(html):
        current += html[last_end:]

    # The trailing fragment is emitted even when it is short.
    if current:
        candidate = _with_carry(short_chunk, current)
        chunks.append((extract_first_heading(candidate), candidate))
    elif short_chunk is not None:
        chunks.append((extract_first_heading(short_chunk), short_chunk))

    return chunks
