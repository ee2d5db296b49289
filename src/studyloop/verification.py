"""Filters AI-suggested videos down to ones that demonstrably exist."""
from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable, Sequence
from typing import Protocol
from urllib.parse import parse_qs, urlparse

import httpx

from .config import settings
from .errors import VerificationUnavailable
from .models import GroundingSource, VerificationOutcome, YouTubeRecommendation
from .observability import record_probe, traced_span

logger = logging.getLogger(__name__)

VIDEO_ID_LENGTH = 11
_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
_FALLBACK_RE = re.compile(r"^.*(youtu\.be/|v/|u/\w/|embed/|watch\?v=|&v=)([^#&?]*).*")


def _valid_id(candidate: str | None) -> str | None:
    if candidate and _VIDEO_ID_RE.match(candidate):
        return candidate
    return None


def extract_video_id(url: str | None) -> str | None:
    if not url:
        return None
    url = url.strip()
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if host == "youtu.be":
        return _valid_id(parsed.path.lstrip("/").split("/")[0])
    if host.endswith("youtube.com"):
        video_id = parse_qs(parsed.query).get("v", [None])[0]
        if video_id:
            return _valid_id(video_id)

    match = _FALLBACK_RE.match(url)
    if match and len(match.group(2)) == VIDEO_ID_LENGTH:
        return _valid_id(match.group(2))
    return None


class ResourceProbe(Protocol):
    async def exists(self, video_id: str) -> bool:
        ...


class ThumbnailProbe:
    """HEAD request against the public thumbnail of a video; 2xx means the video exists."""

    def __init__(self, client: httpx.AsyncClient | None = None, url_template: str | None = None) -> None:
        self._client = client
        self.url_template = settings.verification.thumbnail_url if url_template is None else url_template

    async def exists(self, video_id: str) -> bool:
        try:
            return await self._head(video_id)
        except VerificationUnavailable as exc:
            logger.warning("Validation failed for video ID %s: %s", video_id, exc)
            return False

    async def _head(self, video_id: str) -> bool:
        url = self.url_template.format(video_id=video_id)
        try:
            if self._client is not None:
                response = await self._client.head(url)
            else:
                async with httpx.AsyncClient(timeout=settings.verification.probe_timeout_s) as client:
                    response = await client.head(url)
        except httpx.HTTPError as exc:
            raise VerificationUnavailable(str(exc)) from exc
        return response.is_success


async def _check(item: YouTubeRecommendation, probe: ResourceProbe) -> YouTubeRecommendation:
    video_id = extract_video_id(item.youtube_url)
    valid = False
    if video_id is not None:
        try:
            valid = bool(await probe.exists(video_id))
        except Exception as exc:  # noqa: BLE001 - one failed probe never aborts its siblings
            logger.warning("Probe for %s raised: %s", video_id, exc)
            valid = False
    record_probe(valid)
    return YouTubeRecommendation(
        title=item.title,
        description=item.description,
        youtube_url=item.youtube_url,
        is_valid=valid,
    )


async def verify_recommendations(
    items: Sequence[YouTubeRecommendation],
    probe: ResourceProbe,
    sources: Iterable[GroundingSource] = (),
) -> VerificationOutcome:
    """Probe every candidate concurrently and keep only the confirmed ones, in input order."""

    with traced_span("verification.batch"):
        checked = await asyncio.gather(*(_check(item, probe) for item in items))
    confirmed = [item for item in checked if item.is_valid]
    logger.info("Verified %d of %d video links", len(confirmed), len(items))
    return VerificationOutcome(confirmed=confirmed, sources=list(sources), candidates=len(items))
