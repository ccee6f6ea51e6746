"""
Environment resolution: selector + overrides -> base URL, TLS policy and timeouts
"""

from typing import Dict, Optional
from urllib.parse import urlparse
import logging

from e2e_runner.errors import ConfigurationError
from e2e_runner.models import Environment, EnvironmentConfig

logger = logging.getLogger(__name__)

DEFAULT_ENVIRONMENT = Environment.STAGING

DEFAULT_BASE_URLS = {
    Environment.LOCAL: 'http://localhost:5174',
    Environment.STAGING: 'https://staging.yourapp.com',
    Environment.PRODUCTION: 'https://yourapp.com',
}

# Only staging may ignore certificate errors
IGNORE_HTTPS_ERRORS = {
    Environment.LOCAL: False,
    Environment.STAGING: True,
    Environment.PRODUCTION: False,
}


def parse_selector(selector: Optional[str]) -> Environment:
    """
    Map an external selector onto the closed environment set

    Matching is exact and case-sensitive. Unset or unknown values fall back to
    staging, and the fallback is logged so misconfiguration stays visible.

    Args:
        selector: Raw selector value, e.g. from ENVIRONMENT

    Returns:
        Selected Environment
    """
    if not selector:
        logger.info(f"No environment selected, defaulting to '{DEFAULT_ENVIRONMENT.value}'")
        return DEFAULT_ENVIRONMENT

    for environment in Environment:
        if environment.value == selector:
            return environment

    logger.warning(
        f"Unrecognized environment '{selector}' "
        f"(expected one of {', '.join(e.value for e in Environment)}), "
        f"falling back to '{DEFAULT_ENVIRONMENT.value}'"
    )
    return DEFAULT_ENVIRONMENT


def validate_base_url(url: str) -> str:
    """Reject anything that is not an absolute http(s) URL"""
    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ConfigurationError(f"Base URL must be an absolute http(s) URL, got '{url}'")
    return url


def resolve_environment(selector: Optional[str],
                        overrides: Dict[Environment, str] = None,
                        timeout_ms: int = 30000,
                        expect_timeout_ms: int = 5000) -> EnvironmentConfig:
    """
    Resolve the environment-dependent fields of the run configuration

    Args:
        selector: External environment selector (may be None)
        overrides: Per-environment base URL overrides; blank values are ignored
        timeout_ms: Default per-test timeout
        expect_timeout_ms: Default timeout for UI assertions

    Returns:
        EnvironmentConfig with base URL and TLS tolerance always populated
    """
    environment = parse_selector(selector)
    overrides = overrides or {}

    override = (overrides.get(environment) or '').strip()
    base_url = validate_base_url(override or DEFAULT_BASE_URLS[environment])

    config = EnvironmentConfig(
        environment=environment,
        base_url=base_url,
        ignore_https_errors=IGNORE_HTTPS_ERRORS[environment],
        timeout_ms=timeout_ms,
        expect_timeout_ms=expect_timeout_ms,
        selector=selector,
        fell_back=selector != environment.value,
    )
    logger.info(
        f"Environment '{environment.value}': base URL {base_url}, "
        f"ignore HTTPS errors={config.ignore_https_errors}"
    )
    return config
