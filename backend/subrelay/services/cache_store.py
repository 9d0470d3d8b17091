"""Translated subtitle cache: local files, Redis and Supabase Storage behind one interface."""

import asyncio
import os
import re
import tempfile
from pathlib import Path
from typing import NamedTuple, Optional

import structlog
from redis import asyncio as aioredis

from subrelay.core.config import Settings
from subrelay.core.errors import StorageError, ValidationError
from subrelay.core.supabase import SupabaseClient

logger = structlog.get_logger()

_SAFE_PART_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_BOM = "\ufeff".encode("utf-8")


class CacheKey(NamedTuple):
    subtitle_id: str
    lang: str

    @classmethod
    def of(cls, subtitle_id: str, lang: str) -> "CacheKey":
        """Build a key, rejecting ids or languages that could escape a path."""
        for part in (subtitle_id, lang):
            if not part or not _SAFE_PART_RE.match(part):
                raise ValidationError(f"Invalid subtitle id or language: {part!r}")
        return cls(subtitle_id, lang)

    @property
    def filename(self) -> str:
        return f"{self.subtitle_id}_{self.lang}.vtt"

    @property
    def object_path(self) -> str:
        return f"{self.subtitle_id}/{self.lang}.vtt"

    @property
    def redis_key(self) -> str:
        return f"vtt:{self.subtitle_id}:{self.lang}"


class CacheStore:
    """Base class for cache backends."""

    name = "base"

    async def get(self, key: CacheKey) -> Optional[bytes]:
        """Return the cached bytes or None on a miss."""
        raise NotImplementedError

    async def put(self, key: CacheKey, data: bytes) -> None:
        """Store bytes under key, raising StorageError on failure."""
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None


class LocalCacheStore(CacheStore):
    """Local file system cache, one ``{id}_{lang}.vtt`` file per entry."""

    name = "local"

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info("local_cache_init", root=str(self.root))

    def _path(self, key: CacheKey) -> Path:
        return self.root / key.filename

    def _write(self, path: Path, data: bytes) -> None:
        # Write then rename so concurrent readers never see a partial file
        fd, tmp = tempfile.mkstemp(dir=self.root, suffix=".part")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    async def get(self, key: CacheKey) -> Optional[bytes]:
        path = self._path(key)
        if not path.is_file():
            return None
        return await asyncio.to_thread(path.read_bytes)

    async def put(self, key: CacheKey, data: bytes) -> None:
        try:
            await asyncio.to_thread(self._write, self._path(key), data)
        except OSError as e:
            raise StorageError(f"Local cache write failed: {e}") from e
        logger.info("local_stored", key=key.filename, size=len(data))

    async def ping(self) -> bool:
        return self.root.is_dir()


class RedisCacheStore(CacheStore):
    """Redis key-value cache under ``vtt:{id}:{lang}``."""

    name = "redis"

    def __init__(self, client: aioredis.Redis, ttl_seconds: int = 0):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = 0) -> "RedisCacheStore":
        return cls(aioredis.from_url(url, socket_timeout=5), ttl_seconds=ttl_seconds)

    async def get(self, key: CacheKey) -> Optional[bytes]:
        value = await self.client.get(key.redis_key)
        if value is None:
            return None
        return value.encode("utf-8") if isinstance(value, str) else value

    async def put(self, key: CacheKey, data: bytes) -> None:
        try:
            await self.client.set(key.redis_key, data, ex=self.ttl_seconds or None)
        except aioredis.RedisError as e:
            raise StorageError(f"Redis write failed: {e}") from e
        logger.info("redis_stored", key=key.redis_key, size=len(data))

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def aclose(self) -> None:
        await self.client.aclose()


class SupabaseCacheStore(CacheStore):
    """Supabase Storage object cache under ``{bucket}/{id}/{lang}.vtt``."""

    name = "supabase"

    def __init__(self, client: SupabaseClient, bucket: str):
        self.client = client
        self.bucket = bucket

    async def get(self, key: CacheKey) -> Optional[bytes]:
        data = await self.client.storage.from_(self.bucket).download(key.object_path)
        if data is not None:
            logger.info("supabase_found", path=key.object_path)
        return data

    async def put(self, key: CacheKey, data: bytes) -> None:
        try:
            await self.client.storage.from_(self.bucket).upload(
                key.object_path,
                data,
                content_type="text/vtt; charset=utf-8",
                cache_control="604800",
                upsert=True,
            )
        except Exception as e:
            raise StorageError(f"Supabase upload failed: {e}") from e
        logger.info("supabase_stored", path=key.object_path, size=len(data))

    async def aclose(self) -> None:
        await self.client.aclose()


class FallbackCacheStore(CacheStore):
    """Ordered chain of backends.

    Reads return the first hit; a backend that errors counts as a miss.
    Writes go to the first backend that accepts them.
    """

    name = "fallback"

    def __init__(self, backends: list[CacheStore]):
        if not backends:
            raise ValueError("At least one cache backend is required")
        self.backends = backends

    async def get(self, key: CacheKey) -> Optional[bytes]:
        for backend in self.backends:
            try:
                data = await backend.get(key)
            except Exception as e:
                logger.warning("cache_get_failed", backend=backend.name, key=key.filename, error=str(e))
                continue
            if data:
                if data.startswith(_BOM):
                    data = data[len(_BOM):]
                logger.info("cache_hit", backend=backend.name, key=key.filename)
                return data
        return None

    async def put(self, key: CacheKey, data: bytes) -> None:
        errors = []
        for backend in self.backends:
            try:
                await backend.put(key, data)
                return
            except StorageError as e:
                logger.warning("cache_put_failed", backend=backend.name, key=key.filename, error=e.message)
                errors.append(f"{backend.name}: {e.message}")
        raise StorageError("Cache write failed on all backends (" + "; ".join(errors) + ")")

    async def health(self) -> dict[str, bool]:
        checks = {}
        for backend in self.backends:
            try:
                checks[backend.name] = await backend.ping()
            except Exception:
                checks[backend.name] = False
        return checks

    async def aclose(self) -> None:
        for backend in self.backends:
            await backend.aclose()


def build_cache_store(settings: Settings, http=None) -> FallbackCacheStore:
    """Build the backend chain in ``CACHE_BACKENDS`` order, skipping unconfigured ones."""
    backends: list[CacheStore] = []
    for name in settings.cache_backend_list:
        if name == "supabase":
            if settings.supabase_url and settings.supabase_key:
                backends.append(SupabaseCacheStore(
                    SupabaseClient(settings.supabase_url, settings.supabase_key, http=http),
                    settings.supabase_bucket,
                ))
            else:
                logger.info("cache_backend_skipped", backend=name, reason="SUPABASE_URL or key not set")
        elif name == "redis":
            if settings.redis_url:
                backends.append(RedisCacheStore.from_url(settings.redis_url, settings.redis_ttl_seconds))
            else:
                logger.info("cache_backend_skipped", backend=name, reason="REDIS_URL not set")
        elif name == "local":
            backends.append(LocalCacheStore(settings.cache_path))
        else:
            logger.warning("cache_backend_unknown", backend=name)

    if not backends:
        logger.warning("cache_backend_default", backend="local")
        backends.append(LocalCacheStore(settings.cache_path))

    logger.info("cache_store_ready", backends=[b.name for b in backends])
    return FallbackCacheStore(backends)
