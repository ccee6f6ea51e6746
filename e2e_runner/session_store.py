"""
Persisted authenticated session state shared by dependent projects
"""

import json
import os
import re
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import Optional
from urllib.parse import urljoin, urlparse
import logging

from playwright.async_api import BrowserContext, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from e2e_runner.errors import AuthenticationError, StaleSessionError
from e2e_runner.models import Credentials, Environment, SessionState

logger = logging.getLogger(__name__)

AUTH_PATH = '/auth'
AUTHENTICATED_URL = re.compile(r'/$')
SIGN_IN_BUTTON = re.compile(r'sign in', re.IGNORECASE)
STALE_REDIRECT_WINDOW_MS = 1000


class SessionStateStore:
    """Single-slot store for the snapshot produced by the setup project"""

    def __init__(self, path: Path):
        """
        Initialize session store

        Args:
            path: File holding the serialized storage state
        """
        self.path = Path(path)

    @classmethod
    def for_environment(cls, path: Path, environment: Environment, keyed: bool = False) -> "SessionStateStore":
        """
        Build a store, optionally keyed by environment

        With keyed=True, "user.json" becomes "user.staging.json" so runs against
        different environments do not overwrite each other's snapshot.
        """
        path = Path(path)
        if keyed:
            path = path.with_name(f"{path.stem}.{environment.value}{path.suffix}")
        return cls(path)

    async def produce(self, context: BrowserContext, page: Page, credentials: Credentials,
                      base_url: str, timeout_ms: int = 30000) -> SessionState:
        """
        Log in through the UI and persist the resulting storage state

        Args:
            context: Browser context the page belongs to
            page: Page to drive
            credentials: Login to submit
            base_url: Deployment root
            timeout_ms: Budget for the whole login flow; keep it below the test
                timeout so a stuck login surfaces as AuthenticationError

        Returns:
            The SessionState that was written

        Raises:
            AuthenticationError: if the authenticated page is not reached in time
        """
        deadline = time.monotonic() + timeout_ms / 1000

        def left() -> int:
            return max(1, int((deadline - time.monotonic()) * 1000))

        try:
            await page.goto(urljoin(base_url, AUTH_PATH), timeout=left())
            await page.get_by_label('Email').fill(credentials.email, timeout=left())
            await page.get_by_label('Password').fill(credentials.password, timeout=left())
            await page.get_by_role('button', name=SIGN_IN_BUTTON).click(timeout=left())
            await page.wait_for_url(AUTHENTICATED_URL, timeout=left())
        except PlaywrightTimeoutError:
            raise AuthenticationError(
                f"Login as {credentials.email} did not reach the authenticated page within "
                f"{timeout_ms}ms (still at {page.url})"
            ) from None

        state = SessionState.from_storage_state(await context.storage_state(), created_at=datetime.now())
        self.save(state)
        logger.info(f"Saved session state for {credentials.email} to {self.path}")
        return state

    def save(self, state: SessionState):
        """Overwrite the snapshot atomically (last writer wins)"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = state.to_storage_state()
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def load(self) -> Optional[SessionState]:
        """
        Read the snapshot without modifying it

        Returns:
            SessionState, or None if no setup run has produced one yet
        """
        if not self.path.exists():
            return None
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable session state {self.path}: {e}")
            return None
        created_at = datetime.fromtimestamp(self.path.stat().st_mtime)
        return SessionState.from_storage_state(data, created_at=created_at)

    def exists(self) -> bool:
        return self.path.exists()

    def invalidate(self):
        """Delete the snapshot so the next run regenerates it"""
        if self.path.exists():
            self.path.unlink()
            logger.info(f"Invalidated session state {self.path}")

    async def attach(self, browser, state: SessionState, **context_options) -> BrowserContext:
        return await attach(browser, state, **context_options)


async def attach(browser, state: SessionState, **context_options) -> BrowserContext:
    """
    Create a browser context pre-seeded with the snapshot

    The snapshot is passed by value; the stored file is never touched.

    Args:
        browser: Playwright Browser
        state: Snapshot to hydrate from
        **context_options: Extra Browser.new_context options

    Returns:
        New BrowserContext
    """
    return await browser.new_context(storage_state=state.to_storage_state(), **context_options)


async def assert_authenticated(page: Page, session_path: str = None,
                               settle_ms: int = STALE_REDIRECT_WINDOW_MS):
    """
    Fail with StaleSessionError if the page is bounced to the login screen

    The app redirects an expired session client-side after navigation has
    already resolved, so the URL is watched for settle_ms before the page is
    accepted as authenticated.

    Dependent projects call this from their first test so that an expired
    snapshot is reported distinctly from ordinary assertion failures.
    """
    if not _on_login_page(page.url):
        try:
            await page.wait_for_url(_on_login_page, timeout=settle_ms)
        except PlaywrightTimeoutError:
            return
    raise StaleSessionError(
        "Expected an authenticated page but was redirected to the login page",
        url=page.url,
        session_path=session_path,
    )


def _on_login_page(url: str) -> bool:
    return urlparse(url).path.rstrip('/') == AUTH_PATH
