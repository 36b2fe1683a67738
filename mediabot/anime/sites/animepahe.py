import asyncio
import json
import logging
import re
import time
from typing import List, Optional
from urllib.parse import quote

import aiohttp
from bs4 import BeautifulSoup

from mediabot.anime.sites.base import AnimeSite, make_result
from mediabot.browser import fetch_page_source
from mediabot.config import ANIME_REQUEST_TIMEOUT, ANIMEPAHE_BASE_URL, ANIMEPAHE_MAX_PAGES, ANIMEPAHE_MIN_INTERVAL
from mediabot.errors import ScrapeError

logger = logging.getLogger("mediabot.anime.animepahe")

ANIME_SESSION_RE = re.compile(r"/anime/([a-f0-9-]+)")
PLAY_SESSION_RE = re.compile(r"/play/[^/]+/([a-f0-9-]+)")


def parse_search_html(html: str, base_url: str = ANIMEPAHE_BASE_URL) -> List[dict]:
    soup = BeautifulSoup(html, "html.parser")
    results = []
    for el in soup.select(".col-6"):
        link = el.select_one("a[title]")
        if not link:
            continue
        title = link.get("title") or link.get_text(strip=True)
        href = link.get("href") or ""
        match = ANIME_SESSION_RE.search(href)
        if not title or not match:
            continue
        img = el.select_one("img")
        poster = (img.get("data-src") or img.get("src")) if img else None
        results.append(make_result(
            "animepahe",
            id=match.group(1),
            title=title,
            url=href if href.startswith("http") else base_url + href,
            image=poster if not poster or poster.startswith("http") else base_url + poster,
            type="TV",
            status="Unknown",
        ))
    return results


def parse_details_html(html: str, anime_id: str, base_url: str = ANIMEPAHE_BASE_URL) -> dict:
    soup = BeautifulSoup(html, "html.parser")

    def first_text(selector):
        el = soup.select_one(selector)
        return el.get_text(strip=True) if el else ""

    img = soup.select_one(".anime-poster img, .cover img")
    poster = (img.get("data-src") or img.get("src")) if img else None
    genres = [a.get_text(strip=True) for a in soup.select(".anime-genre a, .genre a, .genres a")]
    genres = [g for g in genres if g]

    return {
        "id": anime_id,
        "title": first_text(".title-wrapper h1, .anime-title, h1") or "Unknown Title",
        "image": poster if not poster or poster.startswith("http") else base_url + poster,
        "description": first_text(".anime-synopsis, .description p, .synopsis") or "No description available",
        "year": first_text(".anime-year, .year") or "Unknown",
        "status": first_text(".anime-status, .status") or "Unknown",
        "episodes": first_text(".anime-episodes, .episodes-count") or "Unknown",
        "type": first_text(".anime-type, .type") or "TV",
        "genres": genres or ["Unknown"],
        "url": f"{base_url}/anime/{anime_id}",
        "source": "animepahe",
    }


def parse_episodes_html(html: str, anime_id: str) -> List[dict]:
    soup = BeautifulSoup(html, "html.parser")
    episodes = []
    for i, el in enumerate(soup.select(".episode-list .episode, .episodes .episode"), start=1):
        link = el.select_one("a")
        if not link or not link.get("href"):
            continue
        number_el = el.select_one(".episode-number")
        number_text = number_el.get_text(strip=True) if number_el else ""
        number = int(number_text) if number_text.isdigit() else i
        title_el = el.select_one(".episode-title")
        match = PLAY_SESSION_RE.search(link["href"])
        episodes.append({
            "id": match.group(1) if match else f"ep{number}",
            "number": number,
            "title": (title_el.get_text(strip=True) if title_el else "") or f"Episode {number}",
            "anime_id": anime_id,
        })
    return episodes


def parse_popular_html(html: str, base_url: str = ANIMEPAHE_BASE_URL) -> List[dict]:
    soup = BeautifulSoup(html, "html.parser")
    popular = []
    for el in soup.select(".latest-update .col-6, .popular .col-6"):
        link = el.select_one(".title a, a[title]")
        if not link:
            continue
        title = link.get("title") or link.get_text(strip=True)
        href = link.get("href") or ""
        match = ANIME_SESSION_RE.search(href)
        if not title or not match:
            continue
        img = el.select_one("img")
        poster = (img.get("data-src") or img.get("src")) if img else None
        episode = el.select_one(".episode")
        result = make_result(
            "animepahe",
            id=match.group(1),
            title=title,
            url=href if href.startswith("http") else base_url + href,
            image=poster if not poster or poster.startswith("http") else base_url + poster,
        )
        result["latest_episode"] = episode.get_text(strip=True) if episode else None
        popular.append(result)
    return popular


class AnimePaheSite(AnimeSite):
    name = "animepahe"
    display_name = "AnimePahe"
    icon = "🎌"
    base_url = ANIMEPAHE_BASE_URL

    def __init__(self, min_interval=ANIMEPAHE_MIN_INTERVAL, block_delay=5.0, page_delay=1.0, clock=time.monotonic):
        super().__init__()
        self.api_url = f"{self.base_url}/api"
        self.min_interval = min_interval
        self.block_delay = block_delay
        self.page_delay = page_delay
        self.clock = clock
        self._last_request = None
        self._lock = asyncio.Lock()
        self.session_initialized = False

    async def init_session(self):
        """Visit the home page once to pick up the DDoS-guard cookies."""
        if self.session_initialized:
            return
        try:
            timeout = aiohttp.ClientTimeout(total=ANIME_REQUEST_TIMEOUT)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.base_url, headers=self.headers) as resp:
                    cookies = "; ".join(f"{k}={m.value}" for k, m in resp.cookies.items())
            if cookies:
                self.headers["Cookie"] = cookies
            logger.info("AnimePahe session initialized")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            # might still work without cookies
            logger.warning(f"Failed to initialize AnimePahe session: {e}")
        self.session_initialized = True

    async def _throttle(self):
        async with self._lock:
            if self._last_request is not None:
                wait = self.min_interval - (self.clock() - self._last_request)
                if wait > 0:
                    await asyncio.sleep(wait)
            self._last_request = self.clock()

    async def request(self, url: str) -> str:
        await self._throttle()
        await self.init_session()
        status, text = await self.fetch(url)
        if status in (403, 429):
            logger.info(f"AnimePahe answered {status}, falling back to headless browser")
            await asyncio.sleep(self.block_delay)
            return await fetch_page_source(url)
        if status >= 400:
            raise ScrapeError(f"AnimePahe returned HTTP {status} for {url}")
        return text

    async def request_json(self, url: str) -> Optional[dict]:
        text = await self.request(url)
        try:
            data = json.loads(text)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    async def search(self, query: str) -> List[dict]:
        try:
            data = await self.request_json(f"{self.api_url}?m=search&q={quote(query)}")
            if data and data.get("data"):
                return [
                    make_result(
                        "animepahe",
                        id=anime["session"],
                        title=anime.get("title"),
                        url=f"{self.base_url}/anime/{anime['session']}",
                        image=anime.get("poster"),
                        type=anime.get("type"),
                        episodes=anime.get("episodes"),
                        status=anime.get("status"),
                        year=anime.get("year"),
                    )
                    for anime in data["data"]
                    if anime.get("session")
                ]
        except ScrapeError as e:
            logger.info(f"AnimePahe API search failed, trying HTML scraping: {e}")

        html = await self.request(f"{self.base_url}/?s={quote(query)}")
        return parse_search_html(html, self.base_url)

    async def get_anime_details(self, anime_id: str) -> dict:
        html = await self.request(f"{self.base_url}/anime/{anime_id}")
        return parse_details_html(html, anime_id, self.base_url)

    async def get_episodes(self, anime_id: str, page: int = 1) -> List[dict]:
        try:
            data = await self.request_json(
                f"{self.api_url}?m=release&id={anime_id}&sort=episode_asc&page={page}"
            )
            if data is not None and "data" in data:
                return [
                    {
                        "id": ep["session"],
                        "number": ep.get("episode"),
                        "title": ep.get("title") or f"Episode {ep.get('episode')}",
                        "snapshot": ep.get("snapshot"),
                        "duration": ep.get("duration"),
                        "anime_id": anime_id,
                    }
                    for ep in data.get("data") or []
                ]
        except ScrapeError as e:
            logger.info(f"AnimePahe API episodes failed, trying HTML scraping: {e}")

        if page > 1:
            # the HTML page carries only one list
            return []
        html = await self.request(f"{self.base_url}/anime/{anime_id}")
        return parse_episodes_html(html, anime_id)

    async def get_all_episodes(self, anime_id: str) -> List[dict]:
        episodes = []
        for page in range(1, ANIMEPAHE_MAX_PAGES + 1):
            batch = await self.get_episodes(anime_id, page)
            if not batch:
                break
            episodes.extend(batch)
            await asyncio.sleep(self.page_delay)
        return sorted(episodes, key=lambda ep: ep["number"] or 0)

    async def get_popular(self) -> List[dict]:
        html = await self.request(self.base_url)
        return parse_popular_html(html, self.base_url)

    async def episode_links(self, anime_id: str, numbers, quality: str = "720p", audio: str = "sub") -> List[dict]:
        """Watch page links for the given episode numbers; direct links need the site's player."""
        episodes = await self.get_all_episodes(anime_id)
        by_number = {ep["number"]: ep for ep in episodes}
        links = []
        for number in numbers:
            episode = by_number.get(number)
            if not episode:
                logger.warning(f"Episode {number} not found for {anime_id}")
                continue
            links.append({
                "episode": number,
                "title": episode["title"],
                "quality": quality,
                "audio": "eng" if audio == "dub" else "jpn",
                "url": f"{self.base_url}/play/{anime_id}/{episode['id']}",
                "size": "Unknown",
            })
        return links

    async def list_episodes(self, anime_id: str) -> List[dict]:
        return await self.get_all_episodes(anime_id)

    async def episode_sources(self, anime_id: str, episode_id: str) -> List[dict]:
        return [{"url": f"{self.base_url}/play/{anime_id}/{episode_id}", "quality": "720p"}]
