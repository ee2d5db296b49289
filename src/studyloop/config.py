"""Centralized configuration for the study assistant."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DOTENV_PATH = Path(__file__).resolve().parents[2] / ".env"
if DOTENV_PATH.exists():
    load_dotenv(dotenv_path=DOTENV_PATH, override=False)
else:
    load_dotenv()


class Paths(BaseModel):
    project_root: Path = Field(default=Path(__file__).resolve().parents[2])
    data_dir: Path = Field(default=Path("data"))
    uploads_dir: Path = Field(default=Path("data/uploads"))
    session_dir: Path = Field(default=Path("data/session"))


class ModelSettings(BaseModel):
    llm_model: str = Field(default="gpt-4o-mini")
    llm_base_url: str = Field(default="http://localhost:11434")
    llm_provider: Literal["ollama", "openai"] = Field(default="openai")
    openai_api_base: str | None = Field(default="https://api.openai.com/v1")
    temperature: float = Field(default=0.4)
    max_output_tokens: int = Field(default=4096)
    max_retries: int = Field(default=2)


class QuizSettings(BaseModel):
    min_context_chars: int = Field(default=100)
    default_questions: int = Field(default=5)
    default_page_span: int = Field(default=10)
    chat_context_chars: int = Field(default=20000)
    recommendation_context_chars: int = Field(default=5000)
    recommendation_count: int = Field(default=5)


class VerificationSettings(BaseModel):
    thumbnail_url: str = Field(default="https://img.youtube.com/vi/{video_id}/0.jpg")
    # None disables the timeout; a hung probe then holds the batch.
    probe_timeout_s: float | None = Field(default=None)


class ObservabilitySettings(BaseModel):
    enable_tracing: bool = Field(default=False)
    otlp_endpoint: str = Field(default="http://localhost:4318")
    enable_prometheus: bool = Field(default=True)


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="STUDYLOOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    environment: str = Field(default="local")
    debug: bool = Field(default=False)
    paths: Paths = Paths()
    model: ModelSettings = ModelSettings()
    quiz: QuizSettings = QuizSettings()
    verification: VerificationSettings = VerificationSettings()
    observability: ObservabilitySettings = ObservabilitySettings()


@lru_cache
def get_settings() -> AppSettings:
    """Return cached settings instance."""

    settings = AppSettings()
    settings.paths.data_dir.mkdir(parents=True, exist_ok=True)
    settings.paths.uploads_dir.mkdir(parents=True, exist_ok=True)
    settings.paths.session_dir.mkdir(parents=True, exist_ok=True)
    return settings


settings = get_settings()
