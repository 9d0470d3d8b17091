from pydantic_settings import BaseSettings
from functools import lru_cache
from pathlib import Path


class Settings(BaseSettings):
    # Google AI (Gemini)
    google_ai_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    gemini_api_version: str = "v1alpha"

    # Shared secret expected in the x-api-key header
    client_api_key: str = ""

    # Supabase Storage
    supabase_url: str = ""
    supabase_service_role: str = ""
    supabase_anon_key: str = ""
    supabase_bucket: str = "subtitles"

    # Redis
    redis_url: str = ""
    redis_ttl_seconds: int = 0

    # Local cache
    cache_dir: str = "./cache"

    # Backend lookup order, first configured backend wins
    cache_backends: str = "supabase,redis,local"

    # Translation pipeline
    max_chunk_size: int = 3000
    max_retries: int = 3
    retry_backoff_seconds: float = 2.0
    chunk_delay_seconds: float = 1.0
    credit_text: str = "Thanks for watching nuvex team"

    # AniList / HiAnime
    anilist_url: str = "https://graphql.anilist.co"
    hianime_base_url: str = "https://hianime.to"

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False
    cors_origins: str = (
        "https://api-nuvexanime.vercel.app,https://nuvexanime.vercel.app,"
        "http://localhost:3000,http://localhost:3001"
    )
    rate_limit_max: int = 100
    rate_limit_window_seconds: int = 3600
    # e.g. redis://localhost:6379/1 to share counters between workers
    rate_limit_storage_uri: str = "memory://"

    @property
    def supabase_key(self) -> str:
        """Service role key if present, anon key otherwise."""
        return self.supabase_service_role or self.supabase_anon_key

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def cache_backend_list(self) -> list[str]:
        return [b.strip().lower() for b in self.cache_backends.split(",") if b.strip()]

    @property
    def cache_path(self) -> Path:
        p = Path(self.cache_dir)
        p.mkdir(parents=True, exist_ok=True)
        return p

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
