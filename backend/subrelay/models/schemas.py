from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# --- Enums ---
class JobStatus(str, Enum):
    initializing = "initializing"
    downloading = "downloading"
    processing = "processing"
    translating = "translating"
    saving = "saving"
    completed = "completed"
    error = "error"


class JobOutcome(str, Enum):
    cached = "cached"
    saved = "saved"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Request Schemas ---
class TranslateRequest(_CamelModel):
    url: Optional[str] = None
    target_lang: str = "ar"


# --- Stream events (one JSON object per line) ---
class ProgressEvent(BaseModel):
    type: Literal["progress"] = "progress"
    status: JobStatus
    progress: int = Field(ge=0, le=100)
    message: str
    timestamp: str = Field(default_factory=utc_now_iso)


class CompletedEvent(_CamelModel):
    type: Literal["completed"] = "completed"
    success: bool = True
    status: int = 200
    message: str = "Translation completed successfully!"
    found_cached: bool
    download_url: str
    id: str
    language: str
    timestamp: str = Field(default_factory=utc_now_iso)


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    status: int = 500
    success: bool = False
    error: str = "Translation failed"
    message: str
    timestamp: str = Field(default_factory=utc_now_iso)


# --- AniList ---
class AnimeTitle(_CamelModel):
    romaji: Optional[str] = None
    english: Optional[str] = None
    native: Optional[str] = None
    user_preferred: Optional[str] = None


class AnimeInfo(_CamelModel):
    id: int
    site_url: Optional[str] = None
    title: AnimeTitle = AnimeTitle()
    format: Optional[str] = None
    status: Optional[str] = None
    episodes: Optional[int] = None
    season: Optional[str] = None
    season_year: Optional[int] = None
    average_score: Optional[int] = None
    genres: list[str] = []
    banner_image: Optional[str] = None
    cover_image: Optional[dict[str, Any]] = None
    description: Optional[str] = None

    @property
    def display_name(self) -> Optional[str]:
        return self.title.romaji or self.title.english or self.title.user_preferred


class AnimeMapping(_CamelModel):
    anilist_id: int
    anime_name: Optional[str] = None
    kebab_name: Optional[str] = None
    hi_anime_slug: Optional[str] = None
    anime_info: Optional[AnimeInfo] = None
    error: Optional[str] = None
