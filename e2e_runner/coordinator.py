"""
Run coordination policy: parallelism, retries and reporting sinks
"""

import os
from typing import Optional
import logging

from e2e_runner.config_loader import Settings
from e2e_runner.models import ArtifactPolicy, EnvironmentConfig, ReporterSpec, RunConfiguration

logger = logging.getLogger(__name__)


def default_workers(cpu_count: Optional[int] = None) -> int:
    """Half the available cores, at least one"""
    cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 2)
    return max(1, cpus // 2)


def build_run_configuration(environment: EnvironmentConfig,
                            settings: Settings,
                            cpu_count: Optional[int] = None) -> RunConfiguration:
    """
    Select parallelism, retry budget and reporters for the run

    Interactive runs fan out fully with no retries. Unattended runs use a small
    worker pool, run each file's tests in order and retry failures.

    Args:
        environment: Resolved environment configuration
        settings: Run settings (unattended flag, output locations)
        cpu_count: Override for the detected CPU count

    Returns:
        RunConfiguration, constant for the run
    """
    unattended = settings.unattended
    reporters = [
        ReporterSpec('list'),
        ReporterSpec('html', str(settings.report_dir)),
        ReporterSpec('json', str(settings.results_file)),
    ]
    if unattended:
        reporters.append(ReporterSpec('github'))
        reporters.append(ReporterSpec('junit', str(settings.junit_file)))

    run_config = RunConfiguration(
        environment=environment,
        unattended=unattended,
        fully_parallel=not unattended,
        workers=max(1, settings.unattended_workers) if unattended else default_workers(cpu_count),
        retries=max(0, settings.unattended_retries) if unattended else 0,
        reporters=tuple(reporters),
        artifacts=ArtifactPolicy(),
    )
    logger.info(
        f"Run mode: {'unattended' if unattended else 'interactive'}, "
        f"workers={run_config.workers}, fully_parallel={run_config.fully_parallel}, "
        f"retries={run_config.retries}, reporters={', '.join(run_config.reporter_names)}"
    )
    return run_config
