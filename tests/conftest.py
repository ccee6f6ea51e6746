"""
Shared fixtures and in-memory stand-ins for Playwright objects
"""

from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from e2e_runner.config_loader import Settings
from e2e_runner.models import (
    ArtifactPolicy,
    BrowserEngine,
    Credentials,
    Environment,
    EnvironmentConfig,
    Project,
    ReporterSpec,
    RunConfiguration,
    TestCase,
)


class FakeTracing:
    def __init__(self):
        self.started = False
        self.stopped_paths = []

    async def start(self, **kwargs):
        self.started = True

    async def stop(self, path=None):
        self.stopped_paths.append(path)


class FakePage:
    def __init__(self, url='about:blank'):
        self.url = url
        self.video = None
        self.screenshots = []

    async def screenshot(self, path=None, full_page=False):
        self.screenshots.append(path)


class FakeContext:
    def __init__(self, engine, storage_state=None, page_factory=FakePage):
        self.engine = engine
        self.page_factory = page_factory
        self.storage_state_seed = storage_state
        self.tracing = FakeTracing()
        self.pages = []
        self.closed = False

    async def new_page(self):
        page = self.page_factory()
        self.pages.append(page)
        return page

    async def close(self):
        self.closed = True


class FakeBrowserManager:
    """Hands out fake contexts and remembers them for assertions"""

    def __init__(self, page_factory=FakePage):
        self.contexts = []
        self.playwright = None
        self.page_factory = page_factory

    async def start(self):
        pass

    async def stop(self):
        pass

    @asynccontextmanager
    async def new_context(self, engine, storage_state=None, record_video_dir=None):
        context = FakeContext(engine, storage_state, self.page_factory)
        self.contexts.append(context)
        try:
            yield context
        finally:
            await context.close()

    async def take_screenshot(self, page, filepath):
        await page.screenshot(path=filepath)
        return filepath


def make_case(file, title, func, tags=()):
    return TestCase(title=title, file=file, func=func, tags=frozenset(tags))


def make_project(name, match='*_spec.py', engine=BrowserEngine.CHROMIUM, ignore=(),
                 dependencies=(), use_session=False):
    return Project(
        name=name,
        engine=engine,
        test_match=(match,) if isinstance(match, str) else tuple(match),
        test_ignore=tuple(ignore),
        dependencies=tuple(dependencies),
        use_session=use_session,
    )


def make_run_config(retries=0, workers=2, fully_parallel=True, timeout_ms=30000,
                    environment=Environment.STAGING, unattended=False):
    env = EnvironmentConfig(
        environment=environment,
        base_url='https://staging.example.test',
        ignore_https_errors=environment == Environment.STAGING,
        timeout_ms=timeout_ms,
        expect_timeout_ms=1000,
    )
    return RunConfiguration(
        environment=env,
        unattended=unattended,
        fully_parallel=fully_parallel,
        workers=workers,
        retries=retries,
        reporters=(ReporterSpec('list'),),
        artifacts=ArtifactPolicy(),
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        selector='staging',
        url_overrides={},
        unattended=False,
        credentials=Credentials('qa@example.com', 's3cret'),
        projects=(),
        test_dir=tmp_path / 'scenarios',
        results_dir=tmp_path / 'test-results',
        session_path=tmp_path / 'auth' / 'user.json',
    )


@pytest.fixture
def browser_manager():
    return FakeBrowserManager()
