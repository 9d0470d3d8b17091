"""AniList metadata lookup and HiAnime slug matching."""

import asyncio
import re
from typing import Optional

import httpx
import structlog
from bs4 import BeautifulSoup

from subrelay.core.errors import UpstreamError
from subrelay.models.schemas import AnimeInfo, AnimeMapping

logger = structlog.get_logger()

ANILIST_MEDIA_QUERY = """
query ($id: Int) {
  Media(id: $id, type: ANIME) {
    id
    siteUrl
    title { romaji english native userPreferred }
    format
    status
    episodes
    season
    seasonYear
    averageScore
    genres
    bannerImage
    coverImage { medium large extraLarge color }
    description(asHtml: false)
  }
}
"""

_WATCH_HREF_RE = re.compile(r"/watch/([a-z0-9-]+)-(\d+)$")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def to_kebab_case(name: str) -> str:
    return _NON_ALNUM_RE.sub("-", name.strip().lower()).strip("-")


def parse_hianime_slug(html: str) -> Optional[str]:
    """Return ``{slug}-{id}`` from the first watch link in a search results page."""
    soup = BeautifulSoup(html, "html.parser")
    link = soup.select_one("a[href^='/watch/']")
    if link is None:
        return None
    match = _WATCH_HREF_RE.search(link.get("href", ""))
    if not match:
        return None
    return f"{match.group(1)}-{match.group(2)}"


class AniListClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        anilist_url: str = "https://graphql.anilist.co",
        hianime_base_url: str = "https://hianime.to",
    ):
        self.http = http
        self.anilist_url = anilist_url
        self.hianime_base_url = hianime_base_url.rstrip("/")

    async def get_anime_info(self, anilist_id: int) -> Optional[AnimeInfo]:
        try:
            resp = await self.http.post(
                self.anilist_url,
                json={"query": ANILIST_MEDIA_QUERY, "variables": {"id": anilist_id}},
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"AniList request failed: {e}") from e

        # AniList answers 404 with a null Media for unknown ids
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise UpstreamError(f"AniList error {resp.status_code}: {resp.text[:300]}")

        media = ((resp.json() or {}).get("data") or {}).get("Media")
        if not media:
            return None
        return AnimeInfo.model_validate(media)

    async def find_hianime_slug(self, anime_name: str) -> Optional[str]:
        """Best-effort scrape; any failure means no match."""
        try:
            resp = await self.http.get(
                f"{self.hianime_base_url}/search",
                params={"keyword": anime_name},
                headers={"User-Agent": "Mozilla/5.0"},
                follow_redirects=True,
            )
            resp.raise_for_status()
            return parse_hianime_slug(resp.text)
        except Exception as e:
            logger.warning("hianime_search_failed", anime_name=anime_name, error=str(e))
            return None

    async def resolve(self, anilist_id: int) -> Optional[AnimeMapping]:
        info = await self.get_anime_info(anilist_id)
        if info is None:
            return None
        name = info.display_name
        return AnimeMapping(
            anilist_id=anilist_id,
            anime_name=name,
            kebab_name=to_kebab_case(name) if name else None,
            hi_anime_slug=await self.find_hianime_slug(name) if name else None,
            anime_info=info,
        )

    async def resolve_many(self, anilist_ids: list[int]) -> list[AnimeMapping]:
        async def _one(anilist_id: int) -> AnimeMapping:
            mapping = await self.resolve(anilist_id)
            return mapping or AnimeMapping(anilist_id=anilist_id, error="Not found")

        return list(await asyncio.gather(*(_one(i) for i in anilist_ids)))
