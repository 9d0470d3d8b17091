"""Lightweight Supabase Storage client using httpx (no heavy SDK dependency)."""

import httpx
from typing import Optional


class SupabaseStorage:
    """Minimal storage client for object upload and download."""

    def __init__(self, client: "SupabaseClient"):
        self._client = client

    def from_(self, bucket: str) -> "SupabaseBucket":
        return SupabaseBucket(self._client, bucket)


class SupabaseBucket:
    def __init__(self, client: "SupabaseClient", bucket: str):
        self._client = client
        self._bucket = bucket

    def _object_url(self, path: str) -> str:
        return f"{self._client.storage_url}/object/{self._bucket}/{path}"

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        cache_control: str = "3600",
        upsert: bool = False,
    ) -> dict:
        headers = {
            **self._client.headers,
            "Content-Type": content_type,
            "cache-control": f"max-age={cache_control}",
            "x-upsert": "true" if upsert else "false",
        }
        resp = await self._client.http.post(self._object_url(path), content=data, headers=headers)
        if resp.status_code >= 400:
            raise RuntimeError(f"Storage upload error {resp.status_code}: {resp.text[:300]}")
        return resp.json() if resp.text else {}

    async def download(self, path: str) -> Optional[bytes]:
        """Return object bytes, or None when the object does not exist."""
        resp = await self._client.http.get(self._object_url(path), headers=self._client.headers)
        # Storage answers 400 with a "not_found" body for missing objects on some versions
        if resp.status_code == 404 or (resp.status_code == 400 and "not_found" in resp.text.lower()):
            return None
        if resp.status_code >= 400:
            raise RuntimeError(f"Storage download error {resp.status_code}: {resp.text[:300]}")
        return resp.content


class SupabaseClient:
    """Supabase client sharing the process-wide httpx connection pool."""

    def __init__(self, url: str, key: str, http: Optional[httpx.AsyncClient] = None):
        self.url = url.rstrip("/")
        self.key = key
        self.storage_url = f"{self.url}/storage/v1"
        self.headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
        }
        self._owns_http = http is None
        # Uploads of long subtitle files can be slow, keep a generous timeout
        self.http = http or httpx.AsyncClient(
            timeout=120,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )
        self.storage = SupabaseStorage(self)

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()
