"""Page-by-page text extraction producing page-tagged text."""
from __future__ import annotations

import asyncio
import logging
import mimetypes
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from langchain_community.document_loaders import PyPDFLoader, TextLoader
from langchain_core.documents import Document as LCDocument

from .errors import ExtractionFailed
from .windowing import format_page_tagged_text

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


@dataclass(frozen=True, slots=True)
class ExtractedText:
    text: str
    page_count: int


class TextExtractor(Protocol):
    async def extract(self, raw_handle: Path | bytes, on_progress: ProgressCallback) -> ExtractedText:
        ...


class PagedTextExtractor:
    """Loads PDFs (one LangChain document per page) and plain text files (a single page)."""

    SUPPORTED_MIME_TYPES = {"application/pdf", "text/plain"}

    async def extract(self, raw_handle: Path | bytes, on_progress: ProgressCallback) -> ExtractedText:
        loop = asyncio.get_running_loop()

        def report(fraction: float) -> None:
            loop.call_soon_threadsafe(on_progress, fraction)

        try:
            pages = await asyncio.to_thread(self._load_pages, raw_handle, report)
        except ExtractionFailed:
            raise
        except Exception as exc:  # noqa: BLE001 - loaders raise a wide variety of parse errors
            logger.warning("Extraction failed: %s", exc)
            raise ExtractionFailed(f"Failed to process document: {exc}") from exc
        return ExtractedText(text=format_page_tagged_text(pages), page_count=len(pages))

    def _load_pages(self, raw_handle: Path | bytes, report: ProgressCallback) -> list[str]:
        if isinstance(raw_handle, bytes):
            suffix = ".pdf" if raw_handle.startswith(b"%PDF") else ".txt"
            with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as handle:
                handle.write(raw_handle)
                path = Path(handle.name)
            try:
                return self._load_path(path, report)
            finally:
                path.unlink(missing_ok=True)
        return self._load_path(Path(raw_handle), report)

    def _load_path(self, path: Path, report: ProgressCallback) -> list[str]:
        mime_type, _ = mimetypes.guess_type(path)
        if mime_type not in self.SUPPORTED_MIME_TYPES:
            raise ExtractionFailed(f"Unsupported file type: {mime_type or path.suffix or 'unknown'}")
        if mime_type == "application/pdf":
            loader = PyPDFLoader(str(path))
        else:
            loader = TextLoader(str(path), autodetect_encoding=True)

        pages: list[str] = []
        for doc in loader.lazy_load():
            pages.append(self._page_text(doc))
            total = doc.metadata.get("total_pages")
            if total:
                report(min(1.0, len(pages) / int(total)))
        report(1.0)
        return pages

    @staticmethod
    def _page_text(doc: LCDocument) -> str:
        return " ".join(doc.page_content.split())
