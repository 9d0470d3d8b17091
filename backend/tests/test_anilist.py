"""Tests for the AniList lookup and HiAnime slug matching."""

import httpx
import pytest

from subrelay.core.errors import UpstreamError
from subrelay.services.anilist import AniListClient, parse_hianime_slug, to_kebab_case

from conftest import HIANIME_SEARCH_HTML, ONE_PIECE_MEDIA


@pytest.mark.parametrize(
    "name,expected",
    [
        ("One Piece", "one-piece"),
        ("Re:Zero kara Hajimeru Isekai Seikatsu", "re-zero-kara-hajimeru-isekai-seikatsu"),
        ("  Steins;Gate 0 ", "steins-gate-0"),
        ("JoJo no Kimyou na Bouken (2012)", "jojo-no-kimyou-na-bouken-2012"),
    ],
)
def test_to_kebab_case(name, expected):
    assert to_kebab_case(name) == expected


class TestParseHiAnimeSlug:
    def test_first_watch_link_wins(self):
        assert parse_hianime_slug(HIANIME_SEARCH_HTML) == "one-piece-100"

    def test_no_watch_links(self):
        assert parse_hianime_slug("<html><body><a href='/home'>Home</a></body></html>") is None

    def test_watch_link_without_numeric_id(self):
        assert parse_hianime_slug("<a href='/watch/one-piece'>One Piece</a>") is None

    def test_empty_page(self):
        assert parse_hianime_slug("") is None


def _client(handler) -> AniListClient:
    return AniListClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestAniListClient:
    @pytest.mark.asyncio
    async def test_sends_graphql_query_with_id(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["host"] = request.url.host
            seen["body"] = request.content
            return httpx.Response(200, json={"data": {"Media": ONE_PIECE_MEDIA}})

        info = await _client(handler).get_anime_info(21)

        assert seen["host"] == "graphql.anilist.co"
        assert b'"variables":{"id":21}' in seen["body"].replace(b" ", b"")
        assert info.id == 21
        assert info.display_name == "One Piece"
        assert info.cover_image["large"] == "https://img.example/21.jpg"

    @pytest.mark.asyncio
    async def test_unknown_id_returns_none(self, http_client):
        assert await AniListClient(http_client).get_anime_info(999999) is None

    @pytest.mark.asyncio
    async def test_null_media_returns_none(self):
        client = _client(lambda request: httpx.Response(200, json={"data": {"Media": None}}))

        assert await client.get_anime_info(1) is None

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        client = _client(lambda request: httpx.Response(500, text="upstream down"))

        with pytest.raises(UpstreamError, match="500"):
            await client.get_anime_info(21)

    @pytest.mark.asyncio
    async def test_display_name_prefers_romaji_then_english(self):
        media = {**ONE_PIECE_MEDIA, "title": {"romaji": None, "english": "Attack on Titan", "userPreferred": "x"}}
        client = _client(lambda request: httpx.Response(200, json={"data": {"Media": media}}))

        info = await client.get_anime_info(21)

        assert info.display_name == "Attack on Titan"

    @pytest.mark.asyncio
    async def test_resolve_builds_mapping(self, http_client, upstream):
        mapping = await AniListClient(http_client).resolve(21)

        assert mapping.anilist_id == 21
        assert mapping.anime_name == "One Piece"
        assert mapping.kebab_name == "one-piece"
        assert mapping.hi_anime_slug == "one-piece-100"
        assert mapping.error is None

    @pytest.mark.asyncio
    async def test_search_failure_leaves_slug_empty(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "graphql.anilist.co":
                return httpx.Response(200, json={"data": {"Media": ONE_PIECE_MEDIA}})
            return httpx.Response(403, text="blocked")

        mapping = await _client(handler).resolve(21)

        assert mapping.kebab_name == "one-piece"
        assert mapping.hi_anime_slug is None

    @pytest.mark.asyncio
    async def test_resolve_many_keeps_order_and_marks_misses(self, http_client):
        results = await AniListClient(http_client).resolve_many([999999, 21])

        assert [r.anilist_id for r in results] == [999999, 21]
        assert results[0].error == "Not found"
        assert results[1].hi_anime_slug == "one-piece-100"
