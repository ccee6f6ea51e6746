#!/usr/bin/env python3
"""
Main CLI entry point for the end-to-end test runner
"""

import asyncio
import argparse
import logging
import os
import sys

from dotenv import load_dotenv

from e2e_runner.browser_manager import BrowserManager
from e2e_runner.config_loader import ConfigLoader
from e2e_runner.coordinator import build_run_configuration
from e2e_runner.environment import resolve_environment
from e2e_runner.errors import ConfigurationError
from e2e_runner.plan_builder import build_plan, format_plan, select_projects
from e2e_runner.registry import discover
from e2e_runner.reporters import create_reporters
from e2e_runner.session_store import SessionStateStore
from e2e_runner.test_runner import TestRunner

EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_CONFIG_ERROR = 2


# Configure logging with UTF-8 encoding to handle Unicode characters
class UTF8StreamHandler(logging.StreamHandler):
    """StreamHandler that uses UTF-8 encoding for Windows compatibility"""
    def __init__(self, stream=None):
        if stream is None:
            stream = sys.stdout
        if sys.platform == 'win32' and hasattr(stream, 'reconfigure'):
            try:
                stream.reconfigure(encoding='utf-8', errors='replace')
            except (AttributeError, ValueError):
                pass
        super().__init__(stream)


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            UTF8StreamHandler(sys.stderr),
            logging.FileHandler('e2e-run.log', encoding='utf-8')
        ]
    )


logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='End-to-end browser test runner',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py
  python main.py --env local --project chromium-guest
  ENVIRONMENT=production CI=1 python main.py --grep smoke
        """
    )
    parser.add_argument('--config', type=str, default=None,
                        help='Path to configuration YAML file (default: config/default_config.yaml)')
    parser.add_argument('--env', type=str, default=None,
                        help='Environment to target: local, staging or production (overrides ENVIRONMENT)')
    parser.add_argument('--ci', action='store_true',
                        help='Force unattended mode (retries, bounded workers, CI reporters)')
    parser.add_argument('--grep', type=str, default=None,
                        help='Only run tests carrying this tag (e.g. smoke)')
    parser.add_argument('--project', action='append', default=None,
                        help='Only run this project and its dependencies (repeatable)')
    parser.add_argument('--headed', action='store_true', help='Show browser windows')
    parser.add_argument('--list', action='store_true', help='Print the execution plan and exit')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """Main execution function"""
    args = parse_args(argv)
    setup_logging(args.verbose)

    # Single snapshot of the process environment; nothing downstream reads os.environ
    load_dotenv(override=False)
    environ = dict(os.environ)
    if args.env:
        environ['ENVIRONMENT'] = args.env
    if args.ci:
        environ['CI'] = '1'

    try:
        settings = ConfigLoader.load_settings(args.config, environ)
        if args.headed:
            settings = settings.with_overrides(headless=False)

        environment = resolve_environment(
            settings.selector,
            settings.url_overrides,
            timeout_ms=settings.timeout_ms,
            expect_timeout_ms=settings.expect_timeout_ms,
        )
        run_config = build_run_configuration(environment, settings)

        projects = select_projects(settings.projects, args.project)
        plan = build_plan(projects, run_config, discover(settings.test_dir), tag=args.grep)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    if args.list:
        print(format_plan(plan))
        return EXIT_PASSED

    session_store = SessionStateStore.for_environment(
        settings.session_path,
        environment.environment,
        keyed=settings.key_session_by_environment,
    )
    browser_manager = BrowserManager(
        headless=settings.headless,
        viewport=settings.viewport,
        base_url=environment.base_url,
        ignore_https_errors=environment.ignore_https_errors,
    )
    runner = TestRunner(
        settings,
        run_config,
        browser_manager,
        session_store,
        reporters=create_reporters(run_config.reporters),
    )

    try:
        summary = await runner.run(plan)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR
    finally:
        try:
            await browser_manager.stop()
        except Exception as stop_err:
            logger.debug(f"Error stopping browsers: {stop_err}")

    return EXIT_PASSED if summary.passed else EXIT_FAILED


def _cli():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    _cli()
