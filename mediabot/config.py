import os
from dotenv import load_dotenv

load_dotenv()

# Environment variables and constants
BOT_TOKEN = os.getenv("BOT_TOKEN", None)
if not BOT_TOKEN:
    raise ValueError("BOT_TOKEN not found in environment variables. Please export BOT_TOKEN.")

PORT = int(os.getenv("PORT", "3000"))
ENVIRONMENT = os.getenv("ENVIRONMENT", os.getenv("NODE_ENV", "development"))

TIKTOK_COOKIE = os.getenv("TIKTOK_COOKIE") or None

# Headless browser
BROWSERLESS_TOKEN = os.getenv("BROWSERLESS_TOKEN") or None
BROWSERLESS_URL = os.getenv("BROWSERLESS_URL", "https://chrome.browserless.io/webdriver")
BROWSER_BINARY = os.getenv("PUPPETEER_EXECUTABLE_PATH") or None
GECKODRIVER_PATH = os.getenv("GECKODRIVER_PATH", "/usr/bin/geckodriver")
BROWSER_PAGE_TIMEOUT = 30

# Anime
ANIME_API_BASE = os.getenv("ANIME_API_BASE", "https://coloured-georgette-ogcheel-8222b3ae.koyeb.app").rstrip("/")
ANIMEPAHE_BASE_URL = "https://animepahe.ru"
NINEANIME_BASE_URL = "https://9animetv.to"
ANIME_REQUEST_TIMEOUT = 15
ANIMEPAHE_MIN_INTERVAL = 2.0  # seconds between requests
ANIMEPAHE_MAX_PAGES = 50
EPISODES_PER_ROW = 5
EPISODES_PER_PAGE = 20
POPULAR_LIMIT = 10
DESCRIPTION_LIMIT = 200
SIMULATED_DOWNLOAD_SECONDS = 5

# Session cache
SESSION_TTL_SECONDS = 30 * 60
COMPLETED_DOWNLOAD_TTL_SECONDS = 60 * 60
SWEEP_INTERVAL_MINUTES = 5
TEMP_CLEANUP_INTERVAL_MINUTES = 30

# TikTok downloads
TIKWM_API_URLS = (
    "https://tikwm.com/api/?url={url}",
    "https://www.tikwm.com/api/?url={url}&hd=1",
)
TIKTOK_API_TIMEOUT = 15
TIKTOK_DOWNLOAD_TIMEOUT = 60
YTDLP_RETRIES = 3
YTDLP_TIMEOUT = 120

# Watermark / FFmpeg
FFMPEG_TIMEOUT_SECONDS = 300
FONT_DIRS = ("/usr/share/fonts/truetype/dejavu", "/usr/share/fonts/truetype", "/usr/share/fonts")

# Paths
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
TEMP_DIR = os.getenv("TEMP_DIR", os.path.join(BASE_DIR, "..", "temp"))
TEMP_MAX_AGE_SECONDS = 60 * 60

# Ensure directories exist
os.makedirs(TEMP_DIR, exist_ok=True)

# Telegram retry and timeout config
TELEGRAM_SEND_RETRIES = 3
TELEGRAM_TIMEOUT_SECONDS = 120

# Logging config
LOG_FILE = os.getenv("LOG_FILE", os.path.join(BASE_DIR, "..", "bot.log"))

USER_AGENTS = [
    "Mozilla/5.0 (iPhone; CPU iPhone OS 16_5 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.5 Mobile/15E148 Safari/604.1",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Android 13; Mobile; rv:109.0) Gecko/117.0 Firefox/117.0",
]

VERSION = "1.0.0"
