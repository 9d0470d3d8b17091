"""Process-wide service container, built once in the app lifespan."""

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from fastapi import Request

from subrelay.core.config import Settings
from subrelay.services.anilist import AniListClient
from subrelay.services.cache_store import CacheStore, build_cache_store
from subrelay.services.pipeline import TranslationPipeline
from subrelay.services.translation import ChunkTranslator, GeminiEngine

logger = structlog.get_logger()


@dataclass
class Services:
    settings: Settings
    http: httpx.AsyncClient
    cache: CacheStore
    anilist: AniListClient
    # None when GOOGLE_AI_API_KEY is not configured
    pipeline: Optional[TranslationPipeline] = None

    async def aclose(self) -> None:
        await self.cache.aclose()
        await self.http.aclose()


def build_services(settings: Settings) -> Services:
    http = httpx.AsyncClient(
        timeout=httpx.Timeout(60, connect=10),
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
    )
    cache = build_cache_store(settings, http=http)

    pipeline = None
    if settings.google_ai_api_key:
        engine = GeminiEngine(
            settings.google_ai_api_key,
            model=settings.gemini_model,
            api_version=settings.gemini_api_version,
        )
        translator = ChunkTranslator(
            engine,
            max_retries=settings.max_retries,
            backoff_seconds=settings.retry_backoff_seconds,
        )
        pipeline = TranslationPipeline(
            cache,
            translator,
            http,
            max_chunk_size=settings.max_chunk_size,
            chunk_delay_seconds=settings.chunk_delay_seconds,
            credit_text=settings.credit_text,
        )
    else:
        logger.error("google_ai_key_missing", hint="set GOOGLE_AI_API_KEY to enable /api/translate")

    anilist = AniListClient(http, settings.anilist_url, settings.hianime_base_url)
    return Services(settings=settings, http=http, cache=cache, anilist=anilist, pipeline=pipeline)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_settings_dep(request: Request) -> Settings:
    return get_services(request).settings
