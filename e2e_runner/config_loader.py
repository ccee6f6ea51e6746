"""
Configuration loader for YAML config files and environment variable snapshots
"""

import copy
from dataclasses import dataclass, field, replace
import yaml
from pathlib import Path
from typing import Dict, Any, List, Mapping, Optional, Tuple
import logging

from e2e_runner.errors import ConfigurationError
from e2e_runner.models import BrowserEngine, Credentials, Environment, Project

logger = logging.getLogger(__name__)

PLACEHOLDER_EMAIL = 'test@example.com'
PLACEHOLDER_PASSWORD = 'testpassword'

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "default_config.yaml"


@dataclass(frozen=True)
class WebServerConfig:
    """Optional local dev server readiness hook"""
    command: Optional[str] = None
    url: Optional[str] = None
    reuse_existing_server: bool = True
    timeout_ms: int = 5000


@dataclass(frozen=True)
class Settings:
    """Everything a run needs, assembled once at startup"""
    selector: Optional[str]
    url_overrides: Dict[Environment, str]
    unattended: bool
    credentials: Credentials
    projects: Tuple[Project, ...]
    test_dir: Path = Path('scenarios')
    results_dir: Path = Path('test-results')
    report_dir: Path = Path('playwright-report')
    results_file: Path = Path('test-results.json')
    junit_file: Path = Path('junit.xml')
    session_path: Path = Path('playwright/.auth/user.json')
    key_session_by_environment: bool = False
    headless: bool = True
    viewport: Dict[str, int] = field(default_factory=lambda: {'width': 1280, 'height': 720})
    timeout_ms: int = 30000
    expect_timeout_ms: int = 5000
    unattended_workers: int = 2
    unattended_retries: int = 2
    web_server: WebServerConfig = field(default_factory=WebServerConfig)

    def with_overrides(self, **changes) -> "Settings":
        return replace(self, **changes)


class ConfigLoader:
    """Loads and manages configuration"""

    @staticmethod
    def load_config(config_path: str = None) -> Dict[str, Any]:
        """
        Load configuration from YAML file

        Args:
            config_path: Path to config file (defaults to config/default_config.yaml)

        Returns:
            Configuration dictionary merged over the built-in defaults
        """
        defaults = ConfigLoader._get_default_config()
        if config_path is None:
            if DEFAULT_CONFIG_PATH.exists():
                config_path = str(DEFAULT_CONFIG_PATH)
            else:
                return defaults

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Error loading config from {config_path}: {e}. Using defaults.")
            return defaults

        logger.info(f"Loaded configuration from {config_path}")
        return ConfigLoader._merge(defaults, loaded)

    @staticmethod
    def load_settings(config_path: str = None, environ: Mapping[str, str] = None) -> Settings:
        """
        Build the run settings from the config file and an environment snapshot

        Args:
            config_path: Optional path to a YAML config file
            environ: Snapshot of environment variables; nothing else is read

        Returns:
            Immutable Settings object
        """
        config = ConfigLoader.load_config(config_path)
        return ConfigLoader.settings_from_config(config, environ or {})

    @staticmethod
    def settings_from_config(config: Dict[str, Any], environ: Mapping[str, str]) -> Settings:
        """Combine a config dictionary with environment variable overrides"""
        output = config.get('output', {})
        session = config.get('session', {})
        timeouts = config.get('timeouts', {})
        browser = config.get('browser', {})
        unattended = config.get('unattended', {})
        web_server = config.get('web_server') or {}

        overrides = {}
        if environ.get('STAGING_URL'):
            overrides[Environment.STAGING] = environ['STAGING_URL']
        if environ.get('PRODUCTION_URL'):
            overrides[Environment.PRODUCTION] = environ['PRODUCTION_URL']

        headless = bool(browser.get('headless', True))
        if environ.get('E2E_HEADLESS'):
            headless = environ['E2E_HEADLESS'].lower() == 'true'

        return Settings(
            selector=environ.get('ENVIRONMENT') or None,
            url_overrides=overrides,
            unattended=bool(environ.get('CI')),
            credentials=ConfigLoader._credentials(environ),
            projects=tuple(parse_project(p) for p in config.get('projects', [])),
            test_dir=Path(config.get('test_dir', 'scenarios')),
            results_dir=Path(output.get('results_dir', 'test-results')),
            report_dir=Path(output.get('report_dir', 'playwright-report')),
            results_file=Path(output.get('results_file', 'test-results.json')),
            junit_file=Path(output.get('junit_file', 'junit.xml')),
            session_path=Path(session.get('path', 'playwright/.auth/user.json')),
            key_session_by_environment=bool(session.get('key_by_environment', False)),
            headless=headless,
            viewport=dict(browser.get('viewport', {'width': 1280, 'height': 720})),
            timeout_ms=int(timeouts.get('test_ms', 30000)),
            expect_timeout_ms=int(timeouts.get('expect_ms', 5000)),
            unattended_workers=int(unattended.get('workers', 2)),
            unattended_retries=int(unattended.get('retries', 2)),
            web_server=WebServerConfig(
                command=web_server.get('command'),
                url=web_server.get('url'),
                reuse_existing_server=bool(web_server.get('reuse_existing_server', True)),
                timeout_ms=int(web_server.get('timeout_ms', 5000)),
            ),
        )

    @staticmethod
    def _credentials(environ: Mapping[str, str]) -> Credentials:
        email = environ.get('TEST_USER_EMAIL')
        password = environ.get('TEST_USER_PASSWORD')
        return Credentials(
            email=email or PLACEHOLDER_EMAIL,
            password=password or PLACEHOLDER_PASSWORD,
            is_placeholder=not (email and password),
        )

    @staticmethod
    def _merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge extra into a copy of base; lists are replaced"""
        merged = copy.deepcopy(base)
        for key, value in extra.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = ConfigLoader._merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    @staticmethod
    def _get_default_config() -> Dict[str, Any]:
        """Get minimal default configuration"""
        return {
            'test_dir': 'scenarios',
            'output': {
                'results_dir': 'test-results',
                'report_dir': 'playwright-report',
                'results_file': 'test-results.json',
                'junit_file': 'junit.xml'
            },
            'session': {
                'path': 'playwright/.auth/user.json',
                'key_by_environment': False
            },
            'timeouts': {
                'test_ms': 30000,
                'expect_ms': 5000
            },
            'browser': {
                'headless': True,
                'viewport': {'width': 1280, 'height': 720}
            },
            'unattended': {
                'workers': 2,
                'retries': 2
            },
            'web_server': {
                'command': None,
                'url': None,
                'reuse_existing_server': True,
                'timeout_ms': 5000
            },
            'projects': [
                {'name': 'chromium', 'browser': 'chromium', 'test_match': ['*_spec.py']},
                {'name': 'firefox', 'browser': 'firefox', 'test_match': ['*_spec.py']}
            ]
        }


def parse_project(data: Dict[str, Any]) -> Project:
    """
    Convert one YAML project declaration into a Project

    Args:
        data: Mapping with name, browser, test_match, test_ignore,
              dependencies and use_session keys

    Returns:
        Project record
    """
    name = str(data.get('name') or '').strip()
    if not name:
        raise ConfigurationError(f"Project declaration requires a non-empty 'name': {data}")

    browser = data.get('browser', 'chromium')
    try:
        engine = BrowserEngine(browser)
    except ValueError:
        raise ConfigurationError(
            f"Project '{name}' uses unknown browser '{browser}' "
            f"(expected one of {', '.join(e.value for e in BrowserEngine)})"
        ) from None

    test_match = _as_tuple(data.get('test_match'))
    if not test_match:
        raise ConfigurationError(f"Project '{name}' requires at least one 'test_match' pattern")

    return Project(
        name=name,
        engine=engine,
        test_match=test_match,
        test_ignore=_as_tuple(data.get('test_ignore')),
        dependencies=_as_tuple(data.get('dependencies')),
        use_session=bool(data.get('use_session', False)),
    )


def _as_tuple(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    items: List[str] = [str(v) for v in value]
    return tuple(items)
