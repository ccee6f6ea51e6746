from unittest.mock import AsyncMock, MagicMock

import pytest

from e2e_runner.browser_manager import BrowserManager
from e2e_runner.models import BrowserEngine, SessionState


def manager_with_browser():
    context = MagicMock(close=AsyncMock())
    browser = MagicMock(new_context=AsyncMock(return_value=context), close=AsyncMock())
    playwright = MagicMock(stop=AsyncMock())
    playwright.firefox.launch = AsyncMock(return_value=browser)
    manager = BrowserManager(base_url='https://staging.example.test', ignore_https_errors=True)
    manager.playwright = playwright
    return manager, playwright, browser, context


@pytest.mark.asyncio
async def test_browser_is_launched_once_per_engine():
    manager, playwright, browser, _ = manager_with_browser()

    assert await manager.browser(BrowserEngine.FIREFOX) is browser
    assert await manager.browser(BrowserEngine.FIREFOX) is browser
    playwright.firefox.launch.assert_awaited_once_with(headless=True)


@pytest.mark.asyncio
async def test_new_context_hydrates_and_closes():
    manager, _, browser, context = manager_with_browser()
    state = SessionState(cookies=[{'name': 'sid', 'value': '1'}])

    with pytest.raises(RuntimeError):
        async with manager.new_context(BrowserEngine.FIREFOX, storage_state=state) as ctx:
            assert ctx is context
            raise RuntimeError('scenario blew up')

    browser.new_context.assert_awaited_once_with(
        storage_state={'cookies': [{'name': 'sid', 'value': '1'}], 'origins': []},
        viewport={'width': 1280, 'height': 720},
        ignore_https_errors=True,
        base_url='https://staging.example.test',
    )
    context.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_missing_browser_binary_gives_install_hint():
    manager, playwright, _, _ = manager_with_browser()
    playwright.firefox.launch = AsyncMock(side_effect=Exception("Executable doesn't exist at /ms-playwright/firefox"))

    with pytest.raises(RuntimeError, match='playwright install firefox'):
        await manager.browser(BrowserEngine.FIREFOX)


@pytest.mark.asyncio
async def test_stop_closes_browsers_and_driver():
    manager, playwright, browser, _ = manager_with_browser()
    await manager.browser(BrowserEngine.FIREFOX)

    await manager.stop()

    browser.close.assert_awaited_once()
    playwright.stop.assert_awaited_once()
    assert manager.playwright is None
