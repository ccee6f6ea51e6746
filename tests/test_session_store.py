import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from e2e_runner.errors import AuthenticationError, StaleSessionError
from e2e_runner.models import Credentials, Environment, SessionState
from e2e_runner.session_store import SessionStateStore, assert_authenticated

STORAGE = {
    'cookies': [{'name': 'sid', 'value': 'abc', 'domain': 'staging.example.test', 'path': '/'}],
    'origins': [{'origin': 'https://staging.example.test', 'localStorage': [{'name': 'token', 'value': 'xyz'}]}],
}


def login_page(wait_for_url=None):
    page = MagicMock()
    page.url = 'https://staging.example.test/auth'
    page.goto = AsyncMock()
    page.wait_for_url = wait_for_url or AsyncMock()
    fields = {}

    def get_by_label(label):
        fields[label] = MagicMock(fill=AsyncMock())
        return fields[label]

    page.get_by_label.side_effect = get_by_label
    button = MagicMock(click=AsyncMock())
    page.get_by_role.return_value = button
    return page, fields, button


def test_load_without_prior_setup_returns_none(tmp_path):
    store = SessionStateStore(tmp_path / 'auth' / 'user.json')

    assert store.load() is None
    assert store.exists() is False


def test_save_then_load_returns_same_state(tmp_path):
    store = SessionStateStore(tmp_path / 'auth' / 'user.json')
    state = SessionState.from_storage_state(STORAGE)

    store.save(state)

    assert store.load() == state
    assert json.loads(store.path.read_text(encoding='utf-8')) == STORAGE


def test_save_overwrites_and_leaves_no_temp_files(tmp_path):
    store = SessionStateStore(tmp_path / 'user.json')
    store.save(SessionState.from_storage_state(STORAGE))
    store.save(SessionState(cookies=[], origins=[]))

    assert store.load() == SessionState()
    assert [p.name for p in tmp_path.iterdir()] == ['user.json']


def test_load_does_not_modify_file(tmp_path):
    store = SessionStateStore(tmp_path / 'user.json')
    store.save(SessionState.from_storage_state(STORAGE))
    before = store.path.read_bytes()
    mtime = store.path.stat().st_mtime_ns

    store.load()
    store.load()

    assert store.path.read_bytes() == before
    assert store.path.stat().st_mtime_ns == mtime


def test_unreadable_snapshot_is_treated_as_absent(tmp_path):
    path = tmp_path / 'user.json'
    path.write_text('{not json', encoding='utf-8')

    assert SessionStateStore(path).load() is None


def test_invalidate_removes_snapshot(tmp_path):
    store = SessionStateStore(tmp_path / 'user.json')
    store.save(SessionState.from_storage_state(STORAGE))

    store.invalidate()
    store.invalidate()

    assert store.load() is None


def test_for_environment_keying(tmp_path):
    base = tmp_path / '.auth' / 'user.json'

    assert SessionStateStore.for_environment(base, Environment.STAGING).path == base
    keyed = SessionStateStore.for_environment(base, Environment.PRODUCTION, keyed=True)
    assert keyed.path == tmp_path / '.auth' / 'user.production.json'


@pytest.mark.asyncio
async def test_produce_logs_in_and_persists_storage(tmp_path):
    store = SessionStateStore(tmp_path / 'user.json')
    page, fields, button = login_page()
    context = MagicMock(storage_state=AsyncMock(return_value=STORAGE))

    state = await store.produce(context, page, Credentials('qa@example.com', 'pw'),
                                'https://staging.example.test', timeout_ms=1000)

    assert page.goto.await_args.args == ('https://staging.example.test/auth',)
    fields['Email'].fill.assert_awaited_once()
    assert fields['Email'].fill.await_args.args == ('qa@example.com',)
    assert fields['Password'].fill.await_args.args == ('pw',)
    button.click.assert_awaited_once()
    pattern = page.wait_for_url.await_args.args[0]
    assert 0 < page.wait_for_url.await_args.kwargs['timeout'] <= 1000
    assert pattern.search('https://staging.example.test/')
    assert not pattern.search('https://staging.example.test/auth')
    assert store.load() == state == SessionState.from_storage_state(STORAGE)


@pytest.mark.asyncio
async def test_produce_timeout_raises_authentication_error(tmp_path):
    store = SessionStateStore(tmp_path / 'user.json')
    page, _, _ = login_page(wait_for_url=AsyncMock(side_effect=PlaywrightTimeoutError('Timeout 10ms exceeded')))
    context = MagicMock(storage_state=AsyncMock(return_value=STORAGE))

    with pytest.raises(AuthenticationError, match='did not reach the authenticated page'):
        await store.produce(context, page, Credentials('qa@example.com', 'pw'),
                            'https://staging.example.test', timeout_ms=10)

    assert store.load() is None
    context.storage_state.assert_not_awaited()


@pytest.mark.asyncio
async def test_attach_seeds_new_context(tmp_path):
    store = SessionStateStore(tmp_path / 'user.json')
    browser = MagicMock(new_context=AsyncMock(return_value='context'))
    state = SessionState.from_storage_state(STORAGE)

    context = await store.attach(browser, state, viewport={'width': 1, 'height': 1})

    assert context == 'context'
    browser.new_context.assert_awaited_once_with(storage_state=STORAGE, viewport={'width': 1, 'height': 1})


@pytest.mark.asyncio
async def test_produce_navigation_timeout_is_an_authentication_error(tmp_path):
    store = SessionStateStore(tmp_path / 'user.json')
    page, fields, _ = login_page()
    page.goto = AsyncMock(side_effect=PlaywrightTimeoutError('Timeout 50ms exceeded'))

    with pytest.raises(AuthenticationError):
        await store.produce(MagicMock(), page, Credentials('qa@example.com', 'pw'),
                            'https://staging.example.test', timeout_ms=50)

    assert fields == {}


class RoutedPage:
    """Page whose URL may change client-side after navigation resolved"""

    def __init__(self, url, redirect_to=None):
        self.url = url
        self.redirect_to = redirect_to

    async def wait_for_url(self, predicate, timeout=None):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout / 1000
        while loop.time() < deadline:
            if predicate(self.url):
                return
            await asyncio.sleep(0)
            if self.redirect_to:
                self.url = self.redirect_to
        raise PlaywrightTimeoutError(f'Timeout {timeout}ms exceeded.')


@pytest.mark.asyncio
async def test_assert_authenticated_flags_login_page():
    page = RoutedPage('https://staging.example.test/auth')

    with pytest.raises(StaleSessionError) as exc:
        await assert_authenticated(page, 'playwright/.auth/user.json', settle_ms=50)

    assert 'regenerate' in str(exc.value)
    assert exc.value.url == 'https://staging.example.test/auth'


@pytest.mark.asyncio
async def test_assert_authenticated_catches_late_client_redirect():
    page = RoutedPage('https://staging.example.test/', redirect_to='https://staging.example.test/auth')

    with pytest.raises(StaleSessionError):
        await assert_authenticated(page, settle_ms=200)


@pytest.mark.asyncio
async def test_assert_authenticated_accepts_app_pages():
    await assert_authenticated(RoutedPage('https://staging.example.test/'), settle_ms=20)
    await assert_authenticated(RoutedPage('https://staging.example.test/authors'), settle_ms=20)
