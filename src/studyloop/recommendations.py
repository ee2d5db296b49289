"""Video discovery: ask the model for videos, then keep only verifiable ones."""
from __future__ import annotations

import logging
from typing import Any

from .config import settings
from .errors import GenerationMalformed
from .llm import StructuredLLM, parse_model_json
from .models import VerificationOutcome, YouTubeRecommendation
from .observability import record_malformed
from .verification import ResourceProbe, ThumbnailProbe, verify_recommendations

logger = logging.getLogger(__name__)

CURATOR_SYSTEM = """You are an expert YouTube video curator. Your sole purpose is to find real, verifiable, and publicly accessible YouTube videos relevant to the user's content.
- Use the search tool when one is available to find videos.
- Use the exact URL and title of each video. Do not paraphrase titles.
- Do NOT invent, guess, or construct URLs. If you cannot find a valid URL, do not include that video.
- Your output MUST be a valid JSON array. Do not include any other text, explanations, or markdown before or after the JSON.
- Accuracy is your highest priority. Providing a fake or broken link is a critical failure."""

RECOMMENDATION_SCHEMA: dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "title": {"type": "string"},
            "description": {"type": "string"},
            "youtubeUrl": {"type": "string"},
        },
        "required": ["title", "description", "youtubeUrl"],
    },
}


def build_recommendation_prompt(context: str, count: int, context_chars: int) -> str:
    return (
        f"Find {count} highly relevant educational YouTube videos for the following textbook content. "
        "For each video, provide the exact title, a brief description of its relevance, and the full youtube.com URL.\n\n"
        'Format your response as a JSON array of objects, where each object has these keys: "title", "description", and "youtubeUrl".\n\n'
        f'Textbook Content:\n"""\n{context[:context_chars]}\n"""'
    )


def parse_recommendations(raw_text: str) -> list[YouTubeRecommendation]:
    parsed = parse_model_json(raw_text)
    if not parsed.ok or not isinstance(parsed.value, list):
        record_malformed("recommendations")
        raise GenerationMalformed("The AI returned recommendations in an invalid format.")
    items = []
    for item in parsed.value:
        if not isinstance(item, dict):
            continue
        items.append(
            YouTubeRecommendation(
                title=str(item.get("title") or "").strip(),
                description=str(item.get("description") or "").strip(),
                youtube_url=str(item.get("youtubeUrl") or "").strip(),
            )
        )
    return items


class RecommendationService:
    def __init__(self, llm: StructuredLLM, probe: ResourceProbe | None = None) -> None:
        self.llm = llm
        self.probe = ThumbnailProbe() if probe is None else probe

    async def recommend(self, context: str, count: int | None = None) -> VerificationOutcome:
        if count is None:
            count = settings.quiz.recommendation_count
        prompt = build_recommendation_prompt(context, count, settings.quiz.recommendation_context_chars)
        try:
            reply = await self.llm.generate(prompt, RECOMMENDATION_SCHEMA, system=CURATOR_SYSTEM)
        except Exception as exc:  # noqa: BLE001 - provider/network failures surface as a malformed generation
            logger.error("Error generating YouTube recommendations: %s", exc)
            raise GenerationMalformed("Failed to generate YouTube recommendations.") from exc

        candidates = parse_recommendations(reply.text)
        if not candidates:
            logger.info("The AI could not find any videos for this content")
            return VerificationOutcome(confirmed=[], sources=list(reply.sources), candidates=0)
        return await verify_recommendations(candidates, self.probe, reply.sources)
