import asyncio
import logging
import time
from typing import List, Optional, Tuple
from urllib.parse import quote

import aiohttp

from mediabot.anime.sites import SITE_CLASSES, make_result
from mediabot.callbacks import short_key
from mediabot.config import (
    ANIME_API_BASE,
    ANIME_REQUEST_TIMEOUT,
    COMPLETED_DOWNLOAD_TTL_SECONDS,
    SESSION_TTL_SECONDS,
)
from mediabot.errors import ScrapeError, SessionExpired
from mediabot.state import TTLStore

logger = logging.getLogger("mediabot.anime")

PROVIDER_ERRORS = (ScrapeError, KeyError, ValueError, TypeError)


def normalise_api_result(raw: dict) -> dict:
    return make_result(
        "api",
        id=raw.get("id"),
        title=raw.get("title") or raw.get("name"),
        image=raw.get("image") or raw.get("poster"),
        type=raw.get("type"),
        status=raw.get("status"),
        episodes=raw.get("totalEpisodes") or raw.get("episodes"),
        year=raw.get("releaseDate") or raw.get("year"),
        url=raw.get("url"),
        japanese_title=raw.get("japaneseTitle"),
        season=raw.get("season"),
        sub=raw.get("sub"),
        dub=raw.get("dub"),
        genres=raw.get("genres") or [],
        description=raw.get("description"),
    )


def normalise_info(raw: dict, episodes: List[dict], source: str) -> dict:
    has_sub = raw.get("hasSub")
    has_dub = raw.get("hasDub")
    if has_sub is None and has_dub is None:
        has_sub, has_dub = True, False
    return {
        "id": raw.get("id"),
        "title": raw.get("title") or "Unknown Title",
        "image": raw.get("image") or raw.get("poster"),
        "description": raw.get("description"),
        "type": raw.get("type"),
        "status": raw.get("status"),
        "genres": raw.get("genres") or [],
        "total_episodes": raw.get("totalEpisodes") or len(episodes),
        "has_sub": bool(has_sub),
        "has_dub": bool(has_dub),
        "episodes": [
            {"id": str(ep.get("id")), "number": ep.get("number"), "title": ep.get("title")}
            for ep in episodes
            if ep.get("id") is not None
        ],
        "url": raw.get("url"),
        "source": source,
    }


class AnimeService:
    """
    Anime lookups over the hosted API with the site scrapers as fallbacks,
    plus the per-user search sessions and the (simulated) download queue.
    """

    def __init__(self, api_base=ANIME_API_BASE, sites=None, clock=time.monotonic):
        self.api_base = api_base.rstrip("/")
        site_list = sites if sites is not None else [cls() for cls in SITE_CLASSES]
        self.sites = {site.name: site for site in site_list}
        self.clock = clock
        self.sessions = TTLStore(SESSION_TTL_SECONDS, clock)
        self.cache = TTLStore(SESSION_TTL_SECONDS, clock)
        self.downloads = {}

    async def api_get(self, path: str, params: Optional[dict] = None) -> dict:
        url = f"{self.api_base}{path}"
        try:
            timeout = aiohttp.ClientTimeout(total=ANIME_REQUEST_TIMEOUT)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, params=params) as resp:
                    if resp.status != 200:
                        raise ScrapeError(f"Anime API returned HTTP {resp.status} for {path}")
                    return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ScrapeError(f"Anime API request failed: {e}") from e

    # --- lookups ---

    async def search(self, query: str, page: int = 1) -> Tuple[List[dict], int, bool]:
        try:
            data = await self.api_get(f"/anime/search/{quote(query, safe='')}", {"page": page})
            results = [normalise_api_result(r) for r in data.get("results") or []]
            return results, data.get("totalPages") or 1, bool(data.get("hasNextPage"))
        except PROVIDER_ERRORS as e:
            logger.warning(f"Anime API search failed for '{query}': {e}")

        if page > 1:
            raise ScrapeError("No further result pages available")

        last_error = None
        for site in self.sites.values():
            try:
                results = await site.search(query)
                logger.info(f"{site.display_name} returned {len(results)} results for '{query}'")
                return results, 1, False
            except PROVIDER_ERRORS as e:
                last_error = e
                logger.warning(f"{site.display_name} search failed: {e}")
        raise ScrapeError(f"All anime providers failed. Last error: {last_error}")

    async def get_info(self, anime: dict) -> dict:
        source = anime.get("source") or "api"
        site = self.sites.get(source)
        if site is None:
            raw = await self.api_get(f"/anime/info/{quote(str(anime['id']), safe='')}")
            return normalise_info(raw, raw.get("episodes") or [], "api")

        details = await site.get_anime_details(anime["id"])
        episodes = await site.list_episodes(anime["id"])
        if not details.get("image"):
            details["image"] = anime.get("image")
        return normalise_info(details, episodes, source)

    async def get_sources(self, info: dict, episode_id: str) -> List[dict]:
        site = self.sites.get(info.get("source"))
        if site is None:
            data = await self.api_get(f"/anime/sources/{quote(episode_id, safe='')}")
            return [s for s in data.get("sources") or [] if s.get("url")]
        return await site.episode_sources(info["id"], episode_id)

    async def get_popular(self) -> List[dict]:
        try:
            data = await self.api_get("/anime/popular")
            return [normalise_api_result(r) for r in data.get("results") or []]
        except PROVIDER_ERRORS as e:
            logger.warning(f"Anime API popular failed: {e}")

        last_error = None
        for site in self.sites.values():
            try:
                return await site.get_popular()
            except PROVIDER_ERRORS as e:
                last_error = e
                logger.warning(f"{site.display_name} popular failed: {e}")
        raise ScrapeError(f"All anime providers failed. Last error: {last_error}")

    # --- search sessions ---

    def create_session(self, user_id, query, results, page=1, total_pages=1, has_next_page=False, index=0) -> str:
        session_id = short_key(f"{user_id}_{query}_{time.time()}")
        self.sessions.set(session_id, {
            "user_id": user_id,
            "query": query,
            "results": results,
            "current_index": max(0, min(index, len(results) - 1)),
            "current_page": page,
            "total_pages": total_pages,
            "has_next_page": has_next_page,
        })
        return session_id

    def get_session(self, session_id: str) -> dict:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionExpired(session_id)
        return session

    def move(self, session_id: str, direction: str) -> dict:
        session = self.get_session(session_id)
        step = {"prev": -1, "next": 1}.get(direction, 0)
        last = len(session["results"]) - 1
        session["current_index"] = max(0, min(session["current_index"] + step, last))
        self.sessions.touch(session_id)
        return session

    @staticmethod
    def current(session: dict) -> dict:
        return session["results"][session["current_index"]]

    def store_info(self, info: dict) -> str:
        key = short_key(f"info_{info.get('source')}_{info.get('id')}_{time.time()}")
        self.cache.set(key, info)
        return key

    def get_cached_info(self, key: str) -> dict:
        info = self.cache.get(key)
        if info is None:
            raise SessionExpired(key)
        return info

    # --- download queue ---

    def enqueue_download(self, user_id, chat_id, episode_id, kind, title=None, source_url=None) -> dict:
        download_id = f"{user_id}_{int(time.time() * 1000)}"
        while download_id in self.downloads:
            download_id += "0"
        download = {
            "id": download_id,
            "user_id": user_id,
            "chat_id": chat_id,
            "episode_id": episode_id,
            "kind": kind,
            "title": title,
            "source_url": source_url,
            "status": "queued",
            "created_at": time.time(),
            "completed_at": None,
        }
        self.downloads[download_id] = download
        logger.info(f"Queued download {download_id} ({kind}) for episode {episode_id}")
        return download

    def complete_download(self, download_id: str) -> Optional[dict]:
        download = self.downloads.get(download_id)
        if download is None:
            return None
        download["status"] = "completed"
        download["completed_at"] = self.clock()
        return download

    def user_downloads(self, user_id) -> List[dict]:
        return [d for d in self.downloads.values() if d["user_id"] == user_id]

    def sweep(self) -> int:
        removed = self.sessions.sweep() + self.cache.sweep()
        now = self.clock()
        finished = [
            download_id
            for download_id, d in self.downloads.items()
            if d["status"] == "completed" and now - d["completed_at"] > COMPLETED_DOWNLOAD_TTL_SECONDS
        ]
        for download_id in finished:
            del self.downloads[download_id]
        removed += len(finished)
        if removed:
            logger.info(f"Swept {removed} expired anime sessions and downloads")
        return removed
