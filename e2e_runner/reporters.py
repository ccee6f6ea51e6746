"""
Reporting sinks: console list, JSON results, HTML report, GitHub annotations and JUnit XML
"""

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TextIO
import logging

from jinja2 import Template

from e2e_runner.models import (
    CaseStatus,
    ExecutionPlan,
    FailureKind,
    ReporterSpec,
    RunSummary,
    TestResult,
)

logger = logging.getLogger(__name__)

STATUS_MARKS = {
    CaseStatus.PASSED: '✓',
    CaseStatus.FAILED: '✘',
    CaseStatus.SKIPPED: '-',
}


class Reporter:
    """Base reporter; subclasses override the hooks they need"""

    def on_begin(self, plan: ExecutionPlan):
        pass

    def on_test_end(self, result: TestResult):
        pass

    def on_end(self, summary: RunSummary):
        pass


class ListReporter(Reporter):
    """Human-readable line per finished test"""

    def __init__(self, stream: TextIO = None):
        self.stream = stream or sys.stdout
        self.finished = 0
        self.total = 0

    def on_begin(self, plan: ExecutionPlan):
        self.total = plan.total_cases
        self._write(f"Running {self.total} tests using {plan.run_config.workers} workers "
                    f"against {plan.run_config.environment.base_url}")

    def on_test_end(self, result: TestResult):
        self.finished += 1
        mark = STATUS_MARKS.get(result.status, '?')
        line = f"  {mark} {self.finished}/{self.total} [{result.project}] › {result.file} › {result.title}"
        if result.status == CaseStatus.SKIPPED and result.skip_reason:
            line += f" ({result.skip_reason})"
        else:
            line += f" ({result.duration_ms}ms)"
        if result.flaky:
            line += f" [flaky, {result.retries} retries]"
        self._write(line)
        if result.status == CaseStatus.FAILED and result.error:
            kind = result.failure_kind.value if result.failure_kind else 'error'
            self._write(f"      {kind}: {result.error}")

    def on_end(self, summary: RunSummary):
        counts = summary.to_dict()
        self._write(
            f"\n  {counts['passed']} passed, {counts['failed']} failed, {counts['skipped']} skipped"
            f" ({counts['flaky']} flaky) - run {counts['verdict']}"
        )
        for result in summary.stale_sessions:
            self._write(f"  stale session in [{result.project}] {result.title}: "
                        f"re-run the setup project to regenerate it")

    def _write(self, line: str):
        self.stream.write(line + "\n")
        self.stream.flush()


class JsonReporter(Reporter):
    """Stores test results in JSON format"""

    def __init__(self, output_file: str):
        """
        Initialize JSON reporter

        Args:
            output_file: File to write the results to
        """
        self.output_file = Path(output_file)
        self.plan: Optional[ExecutionPlan] = None

    def on_begin(self, plan: ExecutionPlan):
        self.plan = plan

    def on_end(self, summary: RunSummary):
        json_data = {
            'environment': summary.environment.environment.value if summary.environment else None,
            'base_url': summary.environment.base_url if summary.environment else None,
            'started_at': summary.started_at.isoformat(),
            'finished_at': (summary.finished_at or datetime.now()).isoformat(),
            'summary': summary.to_dict(),
            'results': [result_to_dict(r) for r in summary.results],
        }
        self.output_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.output_file, 'w', encoding='utf-8') as f:
            json.dump(json_data, f, indent=2, ensure_ascii=False)
        logger.info(f"Saved {len(summary.results)} results to {self.output_file}")


def result_to_dict(result: TestResult) -> Dict[str, Any]:
    """Convert TestResult to dictionary"""
    return {
        'id': result.case_id,
        'title': result.title,
        'file': result.file,
        'project': result.project,
        'status': result.status.value,
        'tags': sorted(result.tags),
        'duration_ms': result.duration_ms,
        'retries': result.retries,
        'flaky': result.flaky,
        'failure_kind': result.failure_kind.value if result.failure_kind else None,
        'error': result.error,
        'skip_reason': result.skip_reason,
        'timestamp': result.timestamp.isoformat(),
        'attempts': [
            {
                'attempt': a.attempt,
                'status': a.status.value,
                'duration_ms': a.duration_ms,
                'failure_kind': a.failure_kind.value if a.failure_kind else None,
                'error': a.error,
                'artifacts': a.artifacts,
            }
            for a in result.attempts
        ],
    }


HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>E2E Report - {{ environment }}</title>
    <style>
        body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; margin: 0; padding: 20px; background: #f5f5f5; }
        .container { max-width: 1200px; margin: 0 auto; background: white; padding: 30px; border-radius: 8px; }
        .summary { display: flex; gap: 20px; margin-bottom: 30px; }
        .card { flex: 1; padding: 15px; border-radius: 6px; background: #fafafa; text-align: center; }
        .card .value { font-size: 28px; font-weight: bold; }
        .passed { color: #2e7d32; }
        .failed { color: #c62828; }
        .skipped { color: #757575; }
        table { width: 100%; border-collapse: collapse; }
        th, td { padding: 8px 12px; border-bottom: 1px solid #eee; text-align: left; vertical-align: top; }
        th { background: #fafafa; }
        .error { font-family: monospace; font-size: 12px; white-space: pre-wrap; color: #c62828; }
        .tag { display: inline-block; padding: 1px 6px; border-radius: 3px; background: #e3f2fd; font-size: 11px; }
    </style>
</head>
<body>
<div class="container">
    <h1>E2E Report</h1>
    <p>Environment: <strong>{{ environment }}</strong> ({{ base_url }}) - generated {{ generated_at }}</p>
    <div class="summary">
        <div class="card"><div class="value">{{ summary.total_tests }}</div>Total</div>
        <div class="card passed"><div class="value">{{ summary.passed }}</div>Passed</div>
        <div class="card failed"><div class="value">{{ summary.failed }}</div>Failed</div>
        <div class="card skipped"><div class="value">{{ summary.skipped }}</div>Skipped</div>
        <div class="card"><div class="value">{{ summary.flaky }}</div>Flaky</div>
    </div>
    <table>
        <tr><th>Project</th><th>Test</th><th>Status</th><th>Duration</th><th>Details</th></tr>
        {% for r in results %}
        <tr>
            <td>{{ r.project }}</td>
            <td>{{ r.file }} › {{ r.title }}{% for tag in r.tags %} <span class="tag">@{{ tag }}</span>{% endfor %}</td>
            <td class="{{ r.status }}">{{ r.status }}{% if r.flaky %} (flaky){% endif %}</td>
            <td>{{ r.duration_ms }}ms</td>
            <td>
                {% if r.skip_reason %}{{ r.skip_reason }}{% endif %}
                {% if r.error %}<div class="error">{{ r.failure_kind }}: {{ r.error }}</div>{% endif %}
                {% for attempt in r.attempts %}{% for name, path in attempt.artifacts.items() %}
                <div><a href="{{ path }}">{{ name }} (attempt {{ attempt.attempt }})</a></div>
                {% endfor %}{% endfor %}
            </td>
        </tr>
        {% endfor %}
    </table>
</div>
</body>
</html>
"""


class HtmlReporter(Reporter):
    """Generates a single-page HTML report"""

    def __init__(self, output_dir: str):
        self.output_dir = Path(output_dir)

    def on_end(self, summary: RunSummary):
        self.output_dir.mkdir(parents=True, exist_ok=True)
        env = summary.environment
        html = Template(HTML_TEMPLATE, autoescape=True).render(
            environment=env.environment.value if env else 'unknown',
            base_url=env.base_url if env else '',
            generated_at=datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
            summary=summary.to_dict(),
            results=[result_to_dict(r) for r in summary.results],
        )
        filepath = self.output_dir / 'index.html'
        with open(filepath, 'w', encoding='utf-8') as f:
            f.write(html)
        logger.info(f"Generated HTML report: {filepath}")


class GithubReporter(Reporter):
    """Emits GitHub Actions workflow annotations for failures"""

    def __init__(self, stream: TextIO = None):
        self.stream = stream or sys.stdout

    def on_test_end(self, result: TestResult):
        if result.status != CaseStatus.FAILED:
            if result.flaky:
                self._annotate('warning', result, f"passed after {result.retries} retries")
            return
        message = result.error or 'test failed'
        if result.failure_kind == FailureKind.STALE_SESSION:
            message = f"stale session: {message}"
        self._annotate('error', result, message)

    def on_end(self, summary: RunSummary):
        upstream = [r for r in summary.results if r.status == CaseStatus.SKIPPED and r.skip_reason]
        if upstream:
            self.stream.write(
                f"::warning title=Skipped tests::{len(upstream)} tests skipped because a setup project failed\n"
            )

    def _annotate(self, level: str, result: TestResult, message: str):
        title = _escape_property(f"[{result.project}] {result.title}")
        self.stream.write(
            f"::{level} file={_escape_property(result.file)},title={title}::{_escape_data(message)}\n"
        )


def _escape_data(value: str) -> str:
    return value.replace('%', '%25').replace('\r', '%0D').replace('\n', '%0A')


def _escape_property(value: str) -> str:
    return _escape_data(value).replace(':', '%3A').replace(',', '%2C')


JUNIT_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<testsuites name="e2e" tests="{{ summary.total_tests }}" failures="{{ summary.failed }}" skipped="{{ summary.skipped }}" time="{{ '%.3f'|format(total_seconds) }}">
{% for project, results in suites %}  <testsuite name="{{ project }}" tests="{{ results|length }}" failures="{{ results|selectattr('status', 'equalto', 'failed')|list|length }}" skipped="{{ results|selectattr('status', 'equalto', 'skipped')|list|length }}">
{% for r in results %}    <testcase name="{{ r.title }}" classname="{{ r.file }}" time="{{ '%.3f'|format(r.duration_ms / 1000) }}">
{% if r.status == 'failed' %}      <failure type="{{ r.failure_kind }}" message="{{ r.error }}">{{ r.error }}</failure>
{% elif r.status == 'skipped' %}      <skipped message="{{ r.skip_reason or '' }}"/>
{% endif %}    </testcase>
{% endfor %}  </testsuite>
{% endfor %}</testsuites>
"""


class JUnitReporter(Reporter):
    """Writes JUnit-style XML for CI systems"""

    def __init__(self, output_file: str):
        self.output_file = Path(output_file)

    def on_end(self, summary: RunSummary):
        suites: Dict[str, List[Dict[str, Any]]] = {}
        for result in summary.results:
            suites.setdefault(result.project, []).append(result_to_dict(result))
        xml = Template(JUNIT_TEMPLATE, autoescape=True).render(
            summary=summary.to_dict(),
            suites=list(suites.items()),
            total_seconds=sum(r.duration_ms for r in summary.results) / 1000,
        )
        self.output_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.output_file, 'w', encoding='utf-8') as f:
            f.write(xml)
        logger.info(f"Saved JUnit report to {self.output_file}")


def create_reporters(specs: Sequence[ReporterSpec]) -> List[Reporter]:
    """Instantiate reporters from the run configuration"""
    reporters: List[Reporter] = []
    for spec in specs:
        if spec.name == 'list':
            reporters.append(ListReporter())
        elif spec.name == 'json':
            reporters.append(JsonReporter(spec.output or 'test-results.json'))
        elif spec.name == 'html':
            reporters.append(HtmlReporter(spec.output or 'playwright-report'))
        elif spec.name == 'github':
            reporters.append(GithubReporter())
        elif spec.name == 'junit':
            reporters.append(JUnitReporter(spec.output or 'junit.xml'))
        else:
            logger.warning(f"Unknown reporter '{spec.name}', ignoring")
    return reporters
