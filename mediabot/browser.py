import asyncio
import logging
from typing import Optional

from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options as ChromeOptions
from selenium.webdriver.common.by import By
from selenium.webdriver.firefox.options import Options as FirefoxOptions
from selenium.webdriver.firefox.service import Service
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from mediabot.config import (
    BROWSER_BINARY,
    BROWSER_PAGE_TIMEOUT,
    BROWSERLESS_TOKEN,
    BROWSERLESS_URL,
    GECKODRIVER_PATH,
    USER_AGENTS,
)
from mediabot.errors import ScrapeError

logger = logging.getLogger("mediabot.browser")

HIDE_WEBDRIVER_JS = "Object.defineProperty(navigator, 'webdriver', {get: () => undefined})"


def setup_browser():
    """Start a headless browser: browserless.io when a token is set, local Firefox otherwise."""
    if BROWSERLESS_TOKEN:
        options = ChromeOptions()
        options.add_argument("--headless=new")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-dev-shm-usage")
        options.add_argument(f"--user-agent={USER_AGENTS[1]}")
        options.set_capability("browserless:token", BROWSERLESS_TOKEN)
        try:
            driver = webdriver.Remote(
                command_executor=f"{BROWSERLESS_URL}?token={BROWSERLESS_TOKEN}",
                options=options,
            )
            logger.info("Connected to remote browserless WebDriver")
            return driver
        except WebDriverException as e:
            logger.error(f"Failed to connect to browserless: {e}")
            raise

    firefox_options = FirefoxOptions()
    firefox_options.add_argument("-headless")
    firefox_options.add_argument("--width=1200")
    firefox_options.add_argument("--height=900")
    firefox_options.set_preference("general.useragent.override", USER_AGENTS[1])
    firefox_options.set_preference("dom.webdriver.enabled", False)
    if BROWSER_BINARY:
        firefox_options.binary_location = BROWSER_BINARY
    try:
        driver = webdriver.Firefox(service=Service(GECKODRIVER_PATH), options=firefox_options)
        logger.info("Firefox WebDriver started")
        return driver
    except WebDriverException as e:
        logger.error(f"Failed to start Firefox WebDriver: {e}")
        raise


def blocking_fetch_page_source(url: str, wait_selector: Optional[str] = None, timeout: int = BROWSER_PAGE_TIMEOUT) -> str:
    """
    Load ``url`` in a fresh browser and return the rendered HTML.
    Designed to be executed in a thread via asyncio.to_thread.
    """
    try:
        driver = setup_browser()
    except WebDriverException as e:
        raise ScrapeError(f"Headless browser unavailable: {e.msg}") from e
    try:
        driver.set_page_load_timeout(timeout)
        driver.get(url)
        try:
            driver.execute_script(HIDE_WEBDRIVER_JS)
        except WebDriverException as e:
            logger.debug(f"Could not hide webdriver flag: {e.msg}")
        if wait_selector:
            WebDriverWait(driver, timeout).until(
                EC.presence_of_element_located((By.CSS_SELECTOR, wait_selector))
            )
        return driver.page_source
    except TimeoutException as e:
        raise ScrapeError(f"Timed out loading {url}") from e
    except WebDriverException as e:
        raise ScrapeError(f"Browser failed loading {url}: {e.msg}") from e
    finally:
        driver.quit()


async def fetch_page_source(url: str, wait_selector: Optional[str] = None, timeout: int = BROWSER_PAGE_TIMEOUT) -> str:
    logger.info(f"Fetching {url} with headless browser")
    return await asyncio.to_thread(blocking_fetch_page_source, url, wait_selector, timeout)
