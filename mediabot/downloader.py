import asyncio
import json
import logging
import os
import random
import re
import time
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import aiohttp
from bs4 import BeautifulSoup
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from mediabot.config import (
    TEMP_DIR,
    TIKTOK_API_TIMEOUT,
    TIKTOK_DOWNLOAD_TIMEOUT,
    TIKWM_API_URLS,
    USER_AGENTS,
    YTDLP_RETRIES,
    YTDLP_TIMEOUT,
)
from mediabot.errors import DownloadError

logger = logging.getLogger("mediabot.downloader")

TIKTOK_URL_PATTERNS = [
    re.compile(r"^https?://(www\.|m\.)?tiktok\.com/@[\w.-]+/video/\d+"),
    re.compile(r"^https?://vm\.tiktok\.com/[\w]+"),
    re.compile(r"^https?://vt\.tiktok\.com/[\w]+"),
    re.compile(r"^https?://(www\.)?tiktok\.com/t/[\w]+"),
]

VIDEO_ID_PATTERNS = [
    re.compile(r"/video/(\d+)"),
    re.compile(r"/v/(\d+)"),
    re.compile(r"vm\.tiktok\.com/(\w+)"),
    re.compile(r"vt\.tiktok\.com/(\w+)"),
    re.compile(r"tiktok\.com/t/(\w+)"),
]

VIDEO_ACCEPT = "video/webm,video/ogg,video/*;q=0.9,application/ogg;q=0.7,audio/*;q=0.6,*/*;q=0.5"


def is_valid_tiktok_url(url) -> bool:
    if not url or not isinstance(url, str):
        return False
    url = url.strip()
    return any(p.match(url) for p in TIKTOK_URL_PATTERNS)


def extract_video_id(url: str) -> Optional[str]:
    for pattern in VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def extract_video_url(result) -> Optional[str]:
    """Pick the first playable address from a downloader API or page payload."""
    if not isinstance(result, dict):
        return None
    video = result.get("video")
    video = video if isinstance(video, dict) else {}

    def first(value):
        if isinstance(value, list):
            return value[0] if value else None
        return value

    candidates = [
        first(video.get("playAddr")),
        first(video.get("downloadAddr")),
        result.get("video1"),
        result.get("video2"),
        result.get("play"),
        result.get("wmplay"),
        video.get("play"),
        video.get("wmplay"),
    ]
    for candidate in candidates:
        if candidate and isinstance(candidate, str):
            return candidate
    return None


def describe_download_error(error) -> str:
    message = str(error)
    lowered = message.lower()
    text = "❌ Download failed: "
    if "403" in message:
        text += (
            "TikTok blocked the request. Try:\n"
            "• Using a different video URL\n"
            "• Setting a TikTok cookie with /setcookie\n"
            "• Waiting a few minutes before trying again"
        )
    elif "timeout" in lowered or "timed out" in lowered:
        text += "Download timed out. The video might be too large or TikTok servers are slow. Try again later."
    elif "no video url" in lowered:
        text += "Could not find video in TikTok response. The video might be private or deleted."
    elif "ffmpeg" in lowered:
        text += (
            "FFmpeg failed or is not installed. Please install FFmpeg:\n"
            "• Ubuntu/Debian: sudo apt install ffmpeg\n"
            "• macOS: brew install ffmpeg"
        )
    else:
        text += message
    return text


class YtDlpTransientError(DownloadError):
    pass


@retry(
    stop=stop_after_attempt(YTDLP_RETRIES),
    wait=wait_exponential(multiplier=2, min=2, max=30),
    retry=retry_if_exception_type(YtDlpTransientError),
    reraise=True,
)
async def run_yt_dlp_cmd(args: list[str]) -> str:
    try:
        proc = await asyncio.create_subprocess_exec(
            "yt-dlp",
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        raise DownloadError("yt-dlp is not installed")
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=YTDLP_TIMEOUT)
    except asyncio.TimeoutError:
        proc.kill()
        raise YtDlpTransientError(f"yt-dlp timed out after {YTDLP_TIMEOUT}s")
    if proc.returncode != 0:
        err = stderr.decode(errors="replace").strip()
        logger.warning(f"yt-dlp failed: {err}")
        if "403" in err or "Unsupported URL" in err or "private" in err.lower():
            raise DownloadError(err or f"yt-dlp exited with {proc.returncode}")
        raise YtDlpTransientError(err or f"yt-dlp exited with {proc.returncode}")
    return stdout.decode(errors="replace")


class TikTokDownloader:
    """Downloads a TikTok video, falling back through several strategies."""

    def __init__(self, cookie: Optional[str] = None, temp_dir=TEMP_DIR):
        self.cookie = cookie
        self.temp_dir = Path(temp_dir)

    def set_cookie(self, cookie: Optional[str]):
        self.cookie = cookie.strip() if cookie else None
        logger.info("TikTok cookie set" if self.cookie else "TikTok cookie cleared")

    def cookie_status(self) -> str:
        return "Cookie is set" if self.cookie else "No cookie set"

    def random_user_agent(self) -> str:
        return random.choice(USER_AGENTS)

    def strategies(self):
        return [
            ("tikwm", self.download_with_tikwm),
            ("yt-dlp", self.download_with_ytdlp),
            ("direct", self.download_with_direct_method),
        ]

    async def download(self, url: str) -> Path:
        strategies = self.strategies()
        last_error = None
        for i, (name, method) in enumerate(strategies, start=1):
            try:
                logger.info(f"Attempting download method {i} ({name}) for {url}")
                path = await method(url)
                logger.info(f"Download successful with method {i} ({name})")
                return path
            except Exception as e:
                last_error = e
                logger.warning(f"Method {i} ({name}) failed: {e}")
        raise DownloadError(f"All download methods failed. Last error: {last_error}")

    def _output_path(self, method: str) -> Path:
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        return self.temp_dir / f"tiktok_{int(time.time() * 1000)}_{method}.mp4"

    async def download_with_tikwm(self, url: str) -> Path:
        if not extract_video_id(url):
            raise DownloadError("Could not extract video ID from URL")

        headers = {
            "User-Agent": self.random_user_agent(),
            "Accept": "application/json",
            "Referer": "https://tikwm.com/",
        }
        timeout = aiohttp.ClientTimeout(total=TIKTOK_API_TIMEOUT)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            for template in TIKWM_API_URLS:
                api_url = template.format(url=quote(url, safe=""))
                try:
                    async with session.get(api_url, headers=headers) as resp:
                        if resp.status != 200:
                            logger.warning(f"tikwm endpoint returned [{resp.status}]")
                            continue
                        data = await resp.json(content_type=None)
                except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                    logger.warning(f"tikwm endpoint failed: {e}")
                    continue

                if data and data.get("code") == 0 and data.get("data"):
                    video_url = extract_video_url(data["data"])
                    if video_url:
                        if video_url.startswith("/"):
                            video_url = "https://www.tikwm.com" + video_url
                        return await self.download_file(video_url, "tikwm")
        raise DownloadError("All tikwm API endpoints failed")

    async def download_with_ytdlp(self, url: str) -> Path:
        output_path = self._output_path("ytdlp")
        args = [
            "--no-part",
            "--no-mtime",
            "--no-warnings",
            "--no-playlist",
            "-f", "best[ext=mp4]/best",
            "-o", str(output_path),
        ]
        if self.cookie:
            args += ["--add-header", f"Cookie:{self.cookie}"]
        args.append(url)
        await run_yt_dlp_cmd(args)

        if not output_path.exists() or output_path.stat().st_size == 0:
            output_path.unlink(missing_ok=True)
            raise DownloadError("yt-dlp produced no file")
        return output_path

    async def download_with_direct_method(self, url: str) -> Path:
        headers = {
            "User-Agent": USER_AGENTS[1],
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }
        if self.cookie:
            headers["Cookie"] = self.cookie

        timeout = aiohttp.ClientTimeout(total=TIKTOK_DOWNLOAD_TIMEOUT)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url, headers=headers) as resp:
                if resp.status == 403:
                    raise DownloadError("Access forbidden (403) - TikTok blocked the request")
                if resp.status >= 400:
                    raise DownloadError(f"HTTP {resp.status} fetching video page")
                html = await resp.text()
                final_url = str(resp.url)

            item = parse_video_page(html, extract_video_id(final_url))
            video_url = extract_video_url(item) if item else None
            if not video_url:
                raise DownloadError("No video URL found in page data")
            # the CDN wants the cookies the page just set
            return await self.download_file(video_url, "direct", session=session, user_agent=headers["User-Agent"])

    async def download_file(self, url: str, method: str = "unknown", session=None, user_agent=None) -> Path:
        logger.info(f"Downloading video file using {method}...")
        headers = {
            "User-Agent": user_agent or self.random_user_agent(),
            "Referer": "https://www.tiktok.com/",
            "Accept": VIDEO_ACCEPT,
            "Accept-Language": "en-US,en;q=0.9",
        }
        if self.cookie and "tiktok" in url:
            headers["Cookie"] = self.cookie
        output_path = self._output_path(method)

        own_session = session is None
        if own_session:
            session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=TIKTOK_DOWNLOAD_TIMEOUT))
        try:
            async with session.get(url, headers=headers) as resp:
                if resp.status == 403:
                    raise DownloadError("Access forbidden (403) - TikTok blocked the request. Try using a cookie.")
                if resp.status >= 400:
                    raise DownloadError(f"HTTP {resp.status}: {resp.reason}")
                with open(output_path, "wb") as f:
                    async for chunk in resp.content.iter_chunked(65536):
                        f.write(chunk)
        except asyncio.TimeoutError:
            output_path.unlink(missing_ok=True)
            raise DownloadError("Download timeout - TikTok server is slow")
        except aiohttp.ClientError as e:
            output_path.unlink(missing_ok=True)
            raise DownloadError(f"Network error: {e}")
        except DownloadError:
            output_path.unlink(missing_ok=True)
            raise
        finally:
            if own_session:
                await session.close()

        size = os.path.getsize(output_path)
        if size == 0:
            output_path.unlink()
            raise DownloadError("Downloaded file is empty")
        logger.info(f"Video downloaded successfully ({size} bytes) to {output_path}")
        return output_path


def parse_video_page(html: str, video_id: Optional[str] = None) -> Optional[dict]:
    """Return the item dict embedded in a TikTok video page, if any."""
    soup = BeautifulSoup(html, "html.parser")

    script = soup.find("script", id="__UNIVERSAL_DATA_FOR_REHYDRATION__")
    if script and script.string:
        try:
            data = json.loads(script.string)
            scope = data.get("__DEFAULT_SCOPE__", {})
            return scope["webapp.video-detail"]["itemInfo"]["itemStruct"]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Unexpected rehydration payload: {e}")

    script = soup.find("script", id="SIGI_STATE")
    if script and script.string:
        try:
            items = json.loads(script.string).get("ItemModule", {})
        except ValueError as e:
            logger.warning(f"Unexpected SIGI_STATE payload: {e}")
            return None
        if video_id and video_id in items:
            return items[video_id]
        if items:
            return next(iter(items.values()))
    return None
