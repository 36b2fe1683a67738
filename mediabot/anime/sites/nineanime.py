import asyncio
import json
import logging
import re
from typing import List
from urllib.parse import quote

import aiohttp
from bs4 import BeautifulSoup

from mediabot.anime.sites.base import AnimeSite, make_result, parse_meta
from mediabot.config import NINEANIME_BASE_URL
from mediabot.errors import ScrapeError

logger = logging.getLogger("mediabot.anime.nineanime")

WATCH_ID_RE = re.compile(r"/watch/([^/?]+)")
EPISODE_ID_RE = re.compile(r"/watch/[^/]+/ep-(\d+)")
EPISODE_PARAM_RE = re.compile(r"[?&]ep=(\d+)")
EPISODE_TITLE_RE = re.compile(r"Episode (\d+)", re.I)
LEADING_NUMBER_RE = re.compile(r"\s*(\d+)")


def extract_anime_id(url: str) -> str:
    match = WATCH_ID_RE.search(url)
    if match:
        return match.group(1)
    return url.rstrip("/").split("/")[-1].split("?")[0]


def extract_episode_id(url: str) -> str:
    match = EPISODE_ID_RE.search(url) or EPISODE_PARAM_RE.search(url)
    if match:
        return match.group(1)
    return url.rstrip("/").split("/")[-1].split("?")[0]


def parse_anime_list(html: str, base_url: str = NINEANIME_BASE_URL) -> List[dict]:
    """Parse any film grid (search, most popular, recently updated)."""
    soup = BeautifulSoup(html, "html.parser")
    results = []
    for el in soup.select(".film_list-wrap .flw-item, .ani.poster.tip"):
        link = el.select_one(".film-name a, .title a")
        if not link:
            continue
        title = link.get("title") or link.get_text(strip=True)
        href = link.get("href")
        if not title or not href:
            continue
        img = el.select_one(".film-poster img, .poster img")
        image = (img.get("data-src") or img.get("src")) if img else None
        meta_el = el.select_one(".film-detail .fd-infor, .meta")
        meta = parse_meta(meta_el.get_text(" ", strip=True) if meta_el else "")
        results.append(make_result(
            "9anime",
            id=extract_anime_id(href),
            title=title,
            url=base_url + href if not href.startswith("http") else href,
            image=None if not image else image if image.startswith("http") else base_url + image,
            **meta,
        ))
    return results


def _info_value(soup, label: str) -> str:
    el = soup.select_one(f'.anisc-info .item:-soup-contains("{label}") .name')
    return el.get_text(" ", strip=True) if el else ""


def parse_details_html(html: str, anime_id: str, base_url: str = NINEANIME_BASE_URL) -> dict:
    soup = BeautifulSoup(html, "html.parser")

    title_el = soup.select_one(".anisc-detail h2.film-name, .anis-content h2.film-name")
    desc_el = soup.select_one(".film-description .text")
    img = soup.select_one(".anisc-poster img, .film-poster img")
    image = (img.get("data-src") or img.get("src")) if img else None
    genres = [
        a.get_text(strip=True)
        for a in soup.select('.anisc-info .item:-soup-contains("Genre") a')
    ]

    year = re.search(r"(\d{4})", _info_value(soup, "Aired"))
    episodes = re.search(r"(\d+)", _info_value(soup, "Episodes"))
    rating = re.search(r"([\d.]+)", _info_value(soup, "Score"))

    return {
        "id": anime_id,
        "title": title_el.get_text(strip=True) if title_el else "",
        "description": desc_el.get_text(" ", strip=True) if desc_el else "",
        "image": None if not image else image if image.startswith("http") else base_url + image,
        "genres": genres,
        "year": year.group(1) if year else None,
        "status": _info_value(soup, "Status") or None,
        "episodes": int(episodes.group(1)) if episodes else None,
        "rating": rating.group(1) if rating else None,
        "url": f"{base_url}/watch/{anime_id}",
        "source": "9anime",
    }


def parse_episode_list(html: str, base_url: str = NINEANIME_BASE_URL) -> List[dict]:
    soup = BeautifulSoup(html, "html.parser")
    episodes = []
    for i, link in enumerate(soup.select(".ss-list a, .episode-item a, .eps-item a"), start=1):
        href = link.get("href")
        if not href:
            continue
        title = link.get("title") or link.get_text(strip=True)
        # recaps carry fractional data-number values like "12.5"
        match = LEADING_NUMBER_RE.match(link.get("data-number") or "") or EPISODE_TITLE_RE.search(title)
        number = match.group(1) if match else i
        episodes.append({
            "id": link.get("data-id") or extract_episode_id(href),
            "number": int(number),
            "title": title,
            "url": base_url + href if not href.startswith("http") else href,
        })
    return sorted(episodes, key=lambda ep: ep["number"])


def extract_direct_link(stream_data) -> str:
    if isinstance(stream_data, dict) and stream_data.get("link"):
        return stream_data["link"]
    raise ScrapeError("No valid stream link found")


class NineAnimeSite(AnimeSite):
    name = "9anime"
    display_name = "9Anime"
    icon = "🎭"
    base_url = NINEANIME_BASE_URL

    def _watch_url(self, anime_id: str) -> str:
        return anime_id if anime_id.startswith("http") else f"{self.base_url}/watch/{anime_id}"

    async def search(self, query: str, page: int = 1) -> List[dict]:
        html = await self.fetch_ok(f"{self.base_url}/search?keyword={quote(query)}&page={page}")
        return parse_anime_list(html, self.base_url)

    async def get_anime_details(self, anime_id: str) -> dict:
        html = await self.fetch_ok(self._watch_url(anime_id))
        return parse_details_html(html, anime_id, self.base_url)

    async def get_popular(self, page: int = 1) -> List[dict]:
        html = await self.fetch_ok(f"{self.base_url}/most-popular?page={page}")
        return parse_anime_list(html, self.base_url)

    async def get_latest(self, page: int = 1) -> List[dict]:
        html = await self.fetch_ok(f"{self.base_url}/recently-updated?page={page}")
        return parse_anime_list(html, self.base_url)

    async def get_episode_list(self, anime_id: str) -> List[dict]:
        html = await self.fetch_ok(self._watch_url(anime_id))
        return parse_episode_list(html, self.base_url)

    async def get_stream_data(self, episode_id: str) -> dict:
        text = await self.fetch_ok(
            f"{self.base_url}/ajax/v2/episode/sources?id={episode_id}",
            headers={"X-Requested-With": "XMLHttpRequest", "Referer": self.base_url},
        )
        try:
            return json.loads(text)
        except ValueError as e:
            raise ScrapeError(f"Unexpected stream data for episode {episode_id}") from e

    extract_direct_link = staticmethod(extract_direct_link)

    async def get_file_size(self, url: str) -> str:
        try:
            timeout = aiohttp.ClientTimeout(total=5)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.head(url, headers=self.headers, allow_redirects=True) as resp:
                    length = resp.headers.get("Content-Length")
        except (aiohttp.ClientError, asyncio.TimeoutError):
            return "Unknown"
        if length and length.isdigit():
            return f"{int(length) / (1024 * 1024):.2f} MB"
        return "Unknown"

    async def episode_links(self, anime_id: str, numbers, quality: str = "1080p", kind: str = "sub") -> List[dict]:
        episodes = {ep["number"]: ep for ep in await self.get_episode_list(anime_id)}
        links = []
        for number in numbers:
            episode = episodes.get(number)
            if not episode:
                continue
            try:
                link = extract_direct_link(await self.get_stream_data(episode["id"]))
            except ScrapeError as e:
                logger.error(f"Error processing episode {number}: {e}")
                continue
            links.append({
                "episode": number,
                "title": episode["title"],
                "url": link,
                "quality": quality,
                "type": kind,
                "size": await self.get_file_size(link),
            })
        return links

    parse_anime_list = staticmethod(parse_anime_list)
    extract_anime_id = staticmethod(extract_anime_id)
    extract_episode_id = staticmethod(extract_episode_id)

    async def list_episodes(self, anime_id: str) -> List[dict]:
        return await self.get_episode_list(anime_id)

    async def episode_sources(self, anime_id: str, episode_id: str) -> List[dict]:
        link = extract_direct_link(await self.get_stream_data(episode_id))
        return [{"url": link, "quality": "default"}]
