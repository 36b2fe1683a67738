import asyncio
import logging
import re
from typing import Optional

import aiohttp

from mediabot.config import ANIME_REQUEST_TIMEOUT, USER_AGENTS
from mediabot.errors import ScrapeError

logger = logging.getLogger("mediabot.anime.sites")

YEAR_RE = re.compile(r"(\d{4})")
EPISODES_RE = re.compile(r"(\d+)\s*(?:eps?|episodes?)", re.I)
TYPE_RE = re.compile(r"\b(TV|Movie|OVA|ONA|Special)\b", re.I)
STATUS_RE = re.compile(r"(Completed|Ongoing|Upcoming)", re.I)


def parse_meta(text: str) -> dict:
    """Pull year, episode count, type and status out of a free-form info line."""
    year = YEAR_RE.search(text)
    episodes = EPISODES_RE.search(text)
    kind = TYPE_RE.search(text)
    status = STATUS_RE.search(text)
    return {
        "year": year.group(1) if year else None,
        "episodes": int(episodes.group(1)) if episodes else None,
        "type": kind.group(1) if kind else "TV",
        "status": status.group(1) if status else "Unknown",
    }


def make_result(source: str, **fields) -> dict:
    result = {
        "id": None,
        "title": None,
        "image": None,
        "type": None,
        "status": None,
        "episodes": None,
        "year": None,
        "url": None,
        "source": source,
    }
    result.update(fields)
    return result


class AnimeSite:
    name = ""
    display_name = ""
    icon = ""
    base_url = ""
    default_headers = {
        "User-Agent": USER_AGENTS[1],
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "DNT": "1",
        "Upgrade-Insecure-Requests": "1",
    }

    def __init__(self):
        self.headers = dict(self.default_headers)

    def absolute(self, url: Optional[str]) -> Optional[str]:
        if not url:
            return None
        if url.startswith("http"):
            return url
        if url.startswith("//"):
            return "https:" + url
        return self.base_url + url

    async def fetch(self, url: str, headers: Optional[dict] = None, timeout: int = ANIME_REQUEST_TIMEOUT):
        """GET ``url`` and return ``(status, text)``. Network failures raise ScrapeError."""
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
                async with session.get(url, headers={**self.headers, **(headers or {})}) as resp:
                    return resp.status, await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ScrapeError(f"{self.display_name} request failed: {e}") from e

    async def fetch_ok(self, url: str, headers: Optional[dict] = None) -> str:
        status, text = await self.fetch(url, headers)
        if status != 200:
            raise ScrapeError(f"{self.display_name} returned HTTP {status} for {url}")
        return text

    async def check_availability(self) -> bool:
        try:
            status, _ = await self.fetch(self.base_url, timeout=5)
        except ScrapeError:
            return False
        return status == 200

    def get_supported_qualities(self):
        return ["1080p", "720p", "480p", "360p"]

    def get_supported_types(self):
        return ["sub", "dub"]

    async def list_episodes(self, anime_id: str):
        """Every episode as ``{"id", "number", "title"}``, sorted by number."""
        raise NotImplementedError

    async def episode_sources(self, anime_id: str, episode_id: str):
        """Playable or watch-page links for one episode as ``[{"url", "quality"}]``."""
        raise NotImplementedError
