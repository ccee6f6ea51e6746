"""
Browser management using Playwright
"""

from contextlib import asynccontextmanager
from typing import Optional, Dict, Any
from pathlib import Path
import logging

from playwright.async_api import async_playwright, Browser, BrowserContext, Page

from e2e_runner.models import BrowserEngine, SessionState
from e2e_runner.session_store import attach

logger = logging.getLogger(__name__)


class BrowserManager:
    """Manages one Playwright driver and one browser per engine"""

    def __init__(self, headless: bool = True, viewport: Dict[str, int] = None,
                 base_url: str = None, ignore_https_errors: bool = False):
        """
        Initialize browser manager

        Args:
            headless: Run browsers in headless mode
            viewport: Viewport dimensions {'width': int, 'height': int}
            base_url: Base URL applied to every context
            ignore_https_errors: Accept invalid TLS certificates
        """
        self.headless = headless
        self.viewport = viewport or {'width': 1280, 'height': 720}
        self.base_url = base_url
        self.ignore_https_errors = ignore_https_errors
        self.playwright = None
        self.browsers: Dict[BrowserEngine, Browser] = {}

    async def start(self):
        """Start the Playwright driver"""
        if not self.playwright:
            self.playwright = await async_playwright().start()

    async def stop(self):
        """Close all browsers and the driver"""
        for engine, browser in list(self.browsers.items()):
            try:
                await browser.close()
            except Exception as e:
                logger.debug(f"Error closing {engine.value}: {e}")
        self.browsers.clear()
        if self.playwright:
            await self.playwright.stop()
            self.playwright = None

    async def browser(self, engine: BrowserEngine) -> Browser:
        """
        Get (launching on first use) the browser for an engine

        Args:
            engine: Browser engine

        Returns:
            Playwright Browser
        """
        if engine in self.browsers:
            return self.browsers[engine]

        await self.start()
        try:
            browser = await getattr(self.playwright, engine.value).launch(headless=self.headless)
        except Exception as e:
            error_msg = str(e)
            if "Executable doesn't exist" in error_msg or "playwright install" in error_msg.lower():
                logger.error(f"Playwright {engine.value} is not installed. Run: playwright install {engine.value}")
                raise RuntimeError(
                    f"Playwright browsers are not installed. "
                    f"Please run: playwright install {engine.value}"
                ) from None
            logger.error(f"Error starting {engine.value}: {error_msg}")
            raise
        self.browsers[engine] = browser
        logger.info(f"Launched {engine.value} (headless={self.headless})")
        return browser

    def context_options(self, record_video_dir: Optional[Path] = None) -> Dict[str, Any]:
        """Options shared by every context of the run"""
        options: Dict[str, Any] = {
            'viewport': self.viewport,
            'ignore_https_errors': self.ignore_https_errors,
        }
        if self.base_url:
            options['base_url'] = self.base_url
        if record_video_dir:
            options['record_video_dir'] = str(record_video_dir)
        return options

    @asynccontextmanager
    async def new_context(self, engine: BrowserEngine, storage_state: SessionState = None,
                          record_video_dir: Optional[Path] = None):
        """
        Yield a fresh browser context that is closed on every exit path

        Args:
            engine: Browser engine
            storage_state: Optional session snapshot to hydrate the context from
            record_video_dir: Directory for screen recordings, if recording

        Yields:
            Playwright BrowserContext
        """
        browser = await self.browser(engine)
        options = self.context_options(record_video_dir)
        if storage_state is not None:
            context: BrowserContext = await attach(browser, storage_state, **options)
        else:
            context = await browser.new_context(**options)
        try:
            yield context
        finally:
            try:
                await context.close()
            except Exception as e:
                logger.debug(f"Error closing context: {e}")

    async def take_screenshot(self, page: Page, filepath: str) -> str:
        """
        Take a screenshot of the current page

        Args:
            page: Playwright page object
            filepath: Path to save screenshot

        Returns:
            Path to saved screenshot, or "" if capture failed
        """
        try:
            Path(filepath).parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=filepath, full_page=True)
            return filepath
        except Exception as e:
            logger.error(f"Error taking screenshot: {e}")
            return ""
