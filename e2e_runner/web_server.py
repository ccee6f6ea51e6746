"""
Advisory readiness check for a local development server
"""

import asyncio
import time
from typing import Optional
import logging

from e2e_runner.config_loader import WebServerConfig

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.25


class WebServerHook:
    """
    Makes sure the local app is reachable before any project starts

    Failures are logged and never raised: the run continues and individual
    tests report navigation errors if the server really is down.
    """

    def __init__(self, config: WebServerConfig, base_url: str, playwright):
        """
        Initialize hook

        Args:
            config: Web server settings
            base_url: Fallback URL to check
            playwright: Started Playwright driver, used for its request API
        """
        self.config = config
        self.url = config.url or base_url
        self.playwright = playwright
        self.process: Optional[asyncio.subprocess.Process] = None

    async def is_ready(self) -> bool:
        """Request the URL once; any HTTP response below 500 counts as ready"""
        request = await self.playwright.request.new_context(ignore_https_errors=True)
        try:
            response = await request.get(self.url, timeout=1000, max_redirects=0)
            return response.status < 500
        except Exception as e:
            logger.debug(f"Web server check of {self.url} failed: {e}")
            return False
        finally:
            await request.dispose()

    async def ensure_ready(self) -> bool:
        """
        Reuse a running server or start the configured command and wait for it

        Returns:
            True if the URL answered before the timeout
        """
        if self.config.reuse_existing_server and await self.is_ready():
            logger.info(f"Reusing existing server at {self.url}")
            return True

        if self.config.command:
            try:
                self.process = await asyncio.create_subprocess_shell(self.config.command)
                logger.info(f"Started web server: {self.config.command}")
            except OSError as e:
                logger.warning(f"Could not start web server '{self.config.command}': {e}")
                return False

        deadline = time.monotonic() + self.config.timeout_ms / 1000
        while time.monotonic() < deadline:
            if await self.is_ready():
                logger.info(f"Web server ready at {self.url}")
                return True
            await asyncio.sleep(POLL_INTERVAL_S)

        logger.warning(
            f"Web server at {self.url} not reachable after {self.config.timeout_ms}ms; "
            f"continuing anyway"
        )
        return False

    async def stop(self):
        """Terminate a server started by this hook"""
        if self.process is None or self.process.returncode is not None:
            return
        self.process.terminate()
        try:
            await asyncio.wait_for(self.process.wait(), timeout=5)
        except asyncio.TimeoutError:
            self.process.kill()
        logger.info("Stopped web server")
