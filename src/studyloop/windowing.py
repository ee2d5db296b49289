"""Page-marker indexing over page-tagged document text.

Extraction concatenates one block per page::

    [Page 1]
    first page text

    [Page 2]
    ...

Everything here is a pure function of that text; consumers slice a bounded
page range out of it without touching the source document again.
"""
from __future__ import annotations

import re
from collections.abc import Iterable, Iterator

from .errors import InsufficientContent, InvalidRange, RangeNotFound
from .models import Document

_MARKER_RE = re.compile(r"^\[Page (\d+)\]\n", re.MULTILINE)


def page_marker(page_number: int) -> str:
    return f"[Page {page_number}]"


def format_page_tagged_text(pages: Iterable[str]) -> str:
    return "".join(f"{page_marker(number)}\n{text}\n\n" for number, text in enumerate(pages, start=1))


def iter_pages(text: str) -> Iterator[tuple[int, str]]:
    """Yield ``(page_number, page_text)`` for each marker block, in document order."""

    matches = list(_MARKER_RE.finditer(text))
    for idx, match in enumerate(matches):
        end = matches[idx + 1].start() if idx + 1 < len(matches) else len(text)
        body = text[match.end() : end]
        if body.endswith("\n\n"):
            body = body[:-2]
        yield int(match.group(1)), body


def _find_marker(text: str, page_number: int, pos: int = 0) -> int:
    """Offset of the line holding exactly the marker for ``page_number``, or -1."""

    match = re.compile(rf"^{re.escape(page_marker(page_number))}$", re.MULTILINE).search(text, pos)
    return match.start() if match else -1


def clamp_range(start: int, end: int, page_count: int) -> tuple[int, int]:
    start = max(1, start)
    end = min(page_count, end)
    if start > end:
        raise InvalidRange(f"Start page {start} is after end page {end} (document has {page_count} pages).")
    return start, end


def page_window(source: Document | str, start: int, end: int, page_count: int | None = None) -> str:
    """Return the tagged text for pages ``start`` through ``end`` inclusive.

    The range is clamped to the document first. When the marker after ``end``
    cannot be found the window runs to the end of the text.
    """

    if isinstance(source, Document):
        text = source.page_tagged_text
        page_count = source.page_count if page_count is None else page_count
    else:
        text = source
        if page_count is None:
            page_count = max((number for number, _ in iter_pages(text)), default=0)

    start, end = clamp_range(start, end, page_count)
    start_offset = _find_marker(text, start)
    if start_offset == -1:
        raise RangeNotFound(f"Marker for page {start} not found.")
    end_offset = _find_marker(text, end + 1, start_offset)
    if end_offset == -1:
        end_offset = len(text)
    return text[start_offset:end_offset]


def require_content(window: str, min_chars: int) -> str:
    if len(window.strip()) < min_chars:
        raise InsufficientContent(
            "Not enough text content in the selected page range to generate a quiz."
        )
    return window
