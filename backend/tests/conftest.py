"""Pytest configuration and shared fixtures."""

import json
from typing import Callable, Optional

import httpx
import pytest

from subrelay.core.config import Settings
from subrelay.core.deps import Services
from subrelay.services.anilist import AniListClient
from subrelay.services.cache_store import FallbackCacheStore, LocalCacheStore
from subrelay.services.pipeline import TranslationPipeline
from subrelay.services.translation import ChunkTranslator, TranslationEngine

SOURCE_URL = "https://cdn.example.com/subtitle/abc123/en.vtt"

EXAMPLE_VTT = (
    "WEBVTT\n\n"
    "1\n00:00:01.000 --> 00:00:02.000\nHello\n\n"
    "2\n00:00:03.000 --> 00:00:04.000\nWorld\n"
)

THREE_CUE_VTT = (
    "WEBVTT\n\n"
    "1\n00:00:01.000 --> 00:00:02.000\nAlpha\n\n"
    "2\n00:00:03.000 --> 00:00:04.000\nBravo\n\n"
    "3\n00:00:05.000 --> 00:00:06.000\nCharlie\n"
)

ONE_PIECE_MEDIA = {
    "id": 21,
    "siteUrl": "https://anilist.co/anime/21",
    "title": {
        "romaji": "One Piece",
        "english": "One Piece",
        "native": "ONE PIECE",
        "userPreferred": "One Piece",
    },
    "format": "TV",
    "status": "RELEASING",
    "episodes": None,
    "season": "FALL",
    "seasonYear": 1999,
    "averageScore": 88,
    "genres": ["Action", "Adventure"],
    "bannerImage": None,
    "coverImage": {"medium": None, "large": "https://img.example/21.jpg", "extraLarge": None, "color": "#e4a15d"},
    "description": "Gold Roger was known as the Pirate King.",
}

HIANIME_SEARCH_HTML = (
    "<html><body><nav><a href='/home'>Home</a></nav>"
    "<div class='film-poster'><a href='/watch/one-piece-100'>One Piece</a></div>"
    "<div class='film-poster'><a href='/watch/one-piece-film-red-18236'>Film Red</a></div>"
    "</body></html>"
)


class FakeEngine(TranslationEngine):
    """Stub translation backend that records every call."""

    def __init__(
        self,
        reply: Callable[[str, str], str] = lambda chunk, lang: f"[{lang}] {chunk}",
        fail_times: int = 0,
        fail_on: Optional[Callable[[str], bool]] = None,
    ):
        self.reply = reply
        self.fail_times = fail_times
        self.fail_on = fail_on
        self.calls: list[str] = []

    async def translate_chunk(self, chunk: str, target_lang: str) -> str:
        self.calls.append(chunk)
        if self.fail_on and self.fail_on(chunk):
            raise RuntimeError("translation backend unavailable")
        if len(self.calls) <= self.fail_times:
            raise RuntimeError(f"transient failure #{len(self.calls)}")
        return self.reply(chunk, target_lang)


class SleepRecorder:
    """Async sleep replacement that returns immediately and remembers delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class UpstreamRouter:
    """httpx MockTransport handler for the subtitle CDN, AniList and HiAnime."""

    def __init__(self, vtt_text: str = EXAMPLE_VTT, vtt_status: int = 200):
        self.vtt_text = vtt_text
        self.vtt_status = vtt_status
        self.downloads = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == "cdn.example.com":
            self.downloads += 1
            return httpx.Response(self.vtt_status, text=self.vtt_text)
        if host == "graphql.anilist.co":
            media_id = json.loads(request.content)["variables"]["id"]
            if media_id == ONE_PIECE_MEDIA["id"]:
                return httpx.Response(200, json={"data": {"Media": ONE_PIECE_MEDIA}})
            return httpx.Response(
                404, json={"data": {"Media": None}, "errors": [{"message": "Not Found.", "status": 404}]},
            )
        if host == "hianime.to" and request.url.path == "/search":
            return httpx.Response(200, text=HIANIME_SEARCH_HTML)
        return httpx.Response(404)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        client_api_key="test-secret",
        google_ai_api_key="",
        cache_dir=str(tmp_path / "cache"),
        cache_backends="local",
        supabase_url="",
        redis_url="",
        rate_limit_max=1000,
    )


@pytest.fixture
def upstream() -> UpstreamRouter:
    return UpstreamRouter()


@pytest.fixture
def http_client(upstream) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream))


@pytest.fixture
def local_store(settings) -> LocalCacheStore:
    return LocalCacheStore(settings.cache_path)


@pytest.fixture
def cache(local_store) -> FallbackCacheStore:
    return FallbackCacheStore([local_store])


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine(reply=lambda chunk, lang: "مرحبا... عالم...")


@pytest.fixture
def translator_sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def pipeline_sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def translator(engine, translator_sleep) -> ChunkTranslator:
    return ChunkTranslator(engine, max_retries=3, backoff_seconds=2.0, sleep=translator_sleep)


@pytest.fixture
def pipeline(cache, translator, http_client, pipeline_sleep) -> TranslationPipeline:
    return TranslationPipeline(
        cache,
        translator,
        http_client,
        max_chunk_size=3000,
        chunk_delay_seconds=1.0,
        sleep=pipeline_sleep,
    )


@pytest.fixture
def services(settings, http_client, cache, pipeline) -> Services:
    return Services(
        settings=settings,
        http=http_client,
        cache=cache,
        anilist=AniListClient(http_client),
        pipeline=pipeline,
    )
