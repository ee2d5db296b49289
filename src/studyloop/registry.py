"""In-memory registry of extracted documents with a single active selection."""
from __future__ import annotations

import logging
from pathlib import Path

from .errors import DocumentLoading, DuplicateDocument, ExtractionFailed
from .extraction import PagedTextExtractor, TextExtractor
from .models import Document

logger = logging.getLogger(__name__)


class DocumentRegistry:
    """Owns the document lifecycle: add (extract), remove, activate.

    Documents live only for the lifetime of the registry; they are re-derived
    from uploaded binaries rather than persisted.
    """

    def __init__(self, extractor: TextExtractor | None = None) -> None:
        self.extractor = PagedTextExtractor() if extractor is None else extractor
        self._documents: dict[str, Document] = {}
        self._active: str | None = None
        self._loading: set[str] = set()
        self.progress: float = 0.0

    async def add(self, identity: str, raw_handle: Path | bytes) -> Document:
        if identity in self._documents:
            raise DuplicateDocument(identity)
        if identity in self._loading:
            raise DocumentLoading(identity)

        self._loading.add(identity)
        self.progress = 0.0
        logger.info("Processing %s", identity)
        try:
            extracted = await self.extractor.extract(raw_handle, self._set_progress)
        except ExtractionFailed:
            logger.warning("Failed to process %s", identity)
            raise
        except Exception as exc:  # noqa: BLE001 - any extractor fault is an extraction failure
            logger.warning("Failed to process %s: %s", identity, exc)
            raise ExtractionFailed(f"Failed to process {identity}.") from exc
        finally:
            self._loading.discard(identity)
            self.progress = 1.0

        document = Document(
            identity=identity,
            raw_handle=raw_handle,
            page_tagged_text=extracted.text,
            page_count=extracted.page_count,
        )
        self._documents[identity] = document
        self._active = identity
        logger.info("%s processed: %d pages", identity, document.page_count)
        return document

    def _set_progress(self, fraction: float) -> None:
        self.progress = max(0.0, min(1.0, fraction))

    def remove(self, identity: str) -> None:
        if self._documents.pop(identity, None) is None:
            return
        if self._active == identity:
            self._active = next(iter(self._documents), None)
        logger.info("Removed %s; active is now %s", identity, self._active)

    def activate(self, identity: str) -> bool:
        if identity not in self._documents:
            return False
        self._active = identity
        return True

    @property
    def loading(self) -> bool:
        return bool(self._loading)

    def is_loading(self, identity: str) -> bool:
        return identity in self._loading

    @property
    def active_identity(self) -> str | None:
        return self._active

    @property
    def active(self) -> Document | None:
        return self._documents.get(self._active) if self._active is not None else None

    @property
    def text(self) -> str:
        return self.active.page_tagged_text if self.active else ""

    @property
    def name(self) -> str:
        return self.active.identity if self.active else ""

    @property
    def page_count(self) -> int:
        return self.active.page_count if self.active else 0

    @property
    def raw_handle(self) -> Path | bytes | None:
        return self.active.raw_handle if self.active else None

    @property
    def documents(self) -> tuple[Document, ...]:
        return tuple(self._documents.values())

    def get(self, identity: str) -> Document | None:
        return self._documents.get(identity)

    def __contains__(self, identity: object) -> bool:
        return identity in self._documents

    def __len__(self) -> int:
        return len(self._documents)
