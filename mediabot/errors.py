class DownloadError(Exception):
    """A TikTok download strategy or file transfer failed."""


class WatermarkError(RuntimeError):
    """FFmpeg exited with an error while compositing a watermark."""


class ScrapeError(Exception):
    """An anime source could not be reached or parsed."""


class SessionExpired(KeyError):
    """A callback referenced a cache entry that has been evicted."""
