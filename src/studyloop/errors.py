"""Typed failures surfaced to the flow that initiated an operation."""
from __future__ import annotations


class StudyLoopError(Exception):
    """Base class for every recoverable failure in the study pipeline."""


class DuplicateDocument(StudyLoopError):
    def __init__(self, identity: str) -> None:
        super().__init__(f'A document named "{identity}" is already loaded.')
        self.identity = identity


class DocumentLoading(StudyLoopError):
    def __init__(self, identity: str) -> None:
        super().__init__(f'"{identity}" is still being processed.')
        self.identity = identity


class ExtractionFailed(StudyLoopError):
    pass


class NoActiveDocument(StudyLoopError):
    def __init__(self) -> None:
        super().__init__("Please upload and process a document first.")


class InvalidRange(StudyLoopError):
    pass


class RangeNotFound(StudyLoopError):
    pass


class InsufficientContent(StudyLoopError):
    pass


class GenerationMalformed(StudyLoopError):
    pass


class GradingMalformed(StudyLoopError):
    pass


class VerificationUnavailable(StudyLoopError):
    """Raised inside a single link probe; never escapes the verification batch."""


class ChatBusy(StudyLoopError):
    def __init__(self, identity: str) -> None:
        super().__init__(f'A reply for "{identity}" is still pending.')
        self.identity = identity
