from unittest.mock import AsyncMock

import pytest

from mediabot.anime.service import AnimeService, normalise_api_result, normalise_info
from mediabot.anime.sites import make_result
from mediabot.config import COMPLETED_DOWNLOAD_TTL_SECONDS, SESSION_TTL_SECONDS
from mediabot.errors import ScrapeError, SessionExpired


class FakeSite:
    name = "fake"
    display_name = "Fake"

    def __init__(self, results=None, error=None):
        self.results = results or []
        self.error = error
        self.search = AsyncMock(side_effect=self._search)
        self.get_popular = AsyncMock(return_value=self.results)
        self.get_anime_details = AsyncMock(return_value={"id": "x", "title": "Fake Show", "image": None})
        self.list_episodes = AsyncMock(return_value=[{"id": "e1", "number": 1, "title": "Episode 1"}])
        self.episode_sources = AsyncMock(return_value=[{"url": "https://fake/e1", "quality": "720p"}])

    async def _search(self, query):
        if self.error:
            raise self.error
        return self.results


@pytest.fixture
def api_down():
    return AsyncMock(side_effect=ScrapeError("Anime API returned HTTP 503"))


def test_normalise_api_result():
    result = normalise_api_result({
        "id": "dandadan-123", "title": "Dandadan", "poster": "https://p/d.jpg",
        "totalEpisodes": 12, "japaneseTitle": "ダンダダン", "sub": 12, "dub": 10,
    })
    assert result["image"] == "https://p/d.jpg"
    assert result["episodes"] == 12
    assert result["japanese_title"] == "ダンダダン"
    assert result["source"] == "api"


def test_normalise_info_defaults_to_sub_only():
    info = normalise_info({"id": "x", "title": "X"}, [{"id": 5, "number": 1}, {"number": 2}], "fake")
    assert info["has_sub"] is True and info["has_dub"] is False
    assert info["episodes"] == [{"id": "5", "number": 1, "title": None}]
    assert info["total_episodes"] == 2


async def test_search_prefers_api(clock):
    service = AnimeService(sites=[FakeSite()], clock=clock)
    service.api_get = AsyncMock(return_value={
        "results": [{"id": "a", "title": "A"}], "totalPages": 3, "hasNextPage": True,
    })
    results, pages, has_next = await service.search("a")
    assert [r["id"] for r in results] == ["a"]
    assert (pages, has_next) == (3, True)


async def test_search_falls_back_to_sites(clock, api_down):
    broken = FakeSite(error=ScrapeError("blocked"))
    broken.name = "broken"
    working = FakeSite(results=[make_result("fake", id="x", title="X")])
    service = AnimeService(sites=[broken, working], clock=clock)
    service.api_get = api_down

    results, pages, has_next = await service.search("x")
    assert results[0]["source"] == "fake"
    assert (pages, has_next) == (1, False)
    broken.search.assert_awaited_once()


async def test_search_all_providers_failing(clock, api_down):
    service = AnimeService(sites=[FakeSite(error=ScrapeError("blocked"))], clock=clock)
    service.api_get = api_down
    with pytest.raises(ScrapeError, match="All anime providers failed"):
        await service.search("x")


async def test_get_info_from_site_keeps_search_image(clock):
    site = FakeSite()
    service = AnimeService(sites=[site], clock=clock)
    info = await service.get_info(make_result("fake", id="x", title="X", image="https://img/x.jpg"))
    assert info["image"] == "https://img/x.jpg"
    assert info["episodes"][0]["id"] == "e1"
    assert info["source"] == "fake"


async def test_get_info_and_sources_from_api(clock):
    service = AnimeService(sites=[], clock=clock)
    service.api_get = AsyncMock(side_effect=[
        {"id": "x", "title": "X", "hasSub": True, "hasDub": True, "episodes": [{"id": "x-ep-1", "number": 1}]},
        {"sources": [{"url": "https://cdn/1.m3u8", "quality": "1080p"}, {"quality": "720p"}]},
    ])
    info = await service.get_info({"id": "x", "source": "api"})
    assert info["has_dub"] is True
    sources = await service.get_sources(info, "x-ep-1")
    assert sources == [{"url": "https://cdn/1.m3u8", "quality": "1080p"}]
    assert service.api_get.await_args_list[1].args[0] == "/anime/sources/x-ep-1"


def test_sessions_move_and_expire(clock):
    service = AnimeService(sites=[], clock=clock)
    results = [make_result("api", id=str(i), title=f"T{i}") for i in range(3)]
    session_id = service.create_session(1, "t", results)

    assert service.move(session_id, "prev")["current_index"] == 0
    service.move(session_id, "next")
    service.move(session_id, "next")
    session = service.move(session_id, "next")
    assert session["current_index"] == 2
    assert service.current(session)["id"] == "2"

    clock.advance(SESSION_TTL_SECONDS + 1)
    with pytest.raises(SessionExpired):
        service.get_session(session_id)


def test_cached_info(clock):
    service = AnimeService(sites=[], clock=clock)
    key = service.store_info({"id": "x", "source": "api"})
    assert service.get_cached_info(key)["id"] == "x"
    with pytest.raises(SessionExpired):
        service.get_cached_info("nope")


def test_download_queue_lifecycle(clock):
    service = AnimeService(sites=[], clock=clock)
    download = service.enqueue_download(1, 100, "ep-1", "sub", title="X - Episode 1")
    assert download["status"] == "queued"
    assert download["id"].startswith("1_")
    assert service.user_downloads(1) == [download]
    assert service.user_downloads(2) == []

    service.complete_download(download["id"])
    assert download["status"] == "completed"
    assert service.complete_download("missing") is None

    clock.advance(COMPLETED_DOWNLOAD_TTL_SECONDS + 1)
    assert service.sweep() == 1
    assert service.downloads == {}


def test_sweep_keeps_queued_downloads(clock):
    service = AnimeService(sites=[], clock=clock)
    service.enqueue_download(1, 100, "ep-1", "sub")
    service.create_session(1, "q", [make_result("api", id="1")])
    clock.advance(SESSION_TTL_SECONDS + COMPLETED_DOWNLOAD_TTL_SECONDS)
    assert service.sweep() == 1
    assert len(service.downloads) == 1
