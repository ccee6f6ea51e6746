"""
Data models for environments, projects, plans and test results
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple, FrozenSet, Callable, Awaitable
from datetime import datetime
from enum import Enum


class Environment(str, Enum):
    """Deployment targeted by a run"""
    LOCAL = "local"
    STAGING = "staging"
    PRODUCTION = "production"


class BrowserEngine(str, Enum):
    """Playwright browser engines"""
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class ProjectRole(str, Enum):
    """Position of a project in the two-stage plan"""
    PRODUCER = "producer"      # no dependencies, depended upon
    INDEPENDENT = "independent"  # no dependencies, not depended upon
    DEPENDENT = "dependent"    # has dependencies


class CaseStatus(str, Enum):
    """Test case lifecycle status"""
    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class FailureKind(str, Enum):
    """Classification of a failing attempt"""
    ASSERTION = "assertion"
    TRANSIENT = "transient"
    TIMEOUT = "timeout"
    STALE_SESSION = "stale_session"
    AUTHENTICATION = "authentication"
    ERROR = "error"


# Failures that a retry cannot fix
NON_RETRYABLE = frozenset({FailureKind.STALE_SESSION, FailureKind.AUTHENTICATION})


@dataclass(frozen=True)
class EnvironmentConfig:
    """Environment-dependent part of the run configuration"""
    environment: Environment
    base_url: str
    ignore_https_errors: bool
    timeout_ms: int = 30000
    expect_timeout_ms: int = 5000
    selector: Optional[str] = field(default=None, compare=False)
    fell_back: bool = field(default=False, compare=False)


@dataclass(frozen=True)
class Credentials:
    """Login used by the setup test case"""
    email: str
    password: str
    is_placeholder: bool = False

    def __repr__(self) -> str:
        return f"Credentials(email={self.email!r}, password='***', is_placeholder={self.is_placeholder})"


@dataclass(frozen=True)
class Project:
    """Named execution group of test cases sharing a browser engine and auth requirement"""
    name: str
    engine: BrowserEngine
    test_match: Tuple[str, ...]
    test_ignore: Tuple[str, ...] = ()
    dependencies: Tuple[str, ...] = ()
    use_session: bool = False


@dataclass
class TestCase:
    """Represents a single browser scenario"""
    __test__ = False

    title: str
    file: str
    func: Callable[..., Awaitable[Any]]
    tags: FrozenSet[str] = frozenset()
    index: int = 0

    @property
    def case_id(self) -> str:
        return f"{self.file}::{self.title}"


@dataclass(frozen=True)
class PlannedProject:
    """A project together with the role and test cases assigned by the plan builder"""
    project: Project
    role: ProjectRole
    test_cases: Tuple[TestCase, ...] = ()

    @property
    def name(self) -> str:
        return self.project.name


@dataclass(frozen=True)
class Stage:
    """Barrier-separated wave of project execution"""
    index: int
    projects: Tuple[PlannedProject, ...]


@dataclass(frozen=True)
class ArtifactPolicy:
    """When to capture traces, screenshots and recordings"""
    trace: str = "on-first-retry"
    screenshot: str = "only-on-failure"
    video: str = "retain-on-failure"


@dataclass(frozen=True)
class ReporterSpec:
    """A reporting sink and its optional output location"""
    name: str
    output: Optional[str] = None


@dataclass(frozen=True)
class RunConfiguration:
    """Read-only bundle computed once per run"""
    environment: EnvironmentConfig
    unattended: bool
    fully_parallel: bool
    workers: int
    retries: int
    reporters: Tuple[ReporterSpec, ...]
    artifacts: ArtifactPolicy = field(default_factory=ArtifactPolicy)

    @property
    def reporter_names(self) -> List[str]:
        return [r.name for r in self.reporters]


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered stages produced by the plan builder"""
    stages: Tuple[Stage, ...]
    run_config: RunConfiguration

    def projects(self) -> List[PlannedProject]:
        return [p for stage in self.stages for p in stage.projects]

    def project(self, name: str) -> PlannedProject:
        for planned in self.projects():
            if planned.name == name:
                return planned
        raise KeyError(name)

    @property
    def total_cases(self) -> int:
        return sum(len(p.test_cases) for p in self.projects())


@dataclass
class SessionState:
    """Serialized snapshot of authenticated browser storage"""
    cookies: List[Dict[str, Any]] = field(default_factory=list)
    origins: List[Dict[str, Any]] = field(default_factory=list)
    created_at: Optional[datetime] = field(default=None, compare=False)

    def to_storage_state(self) -> Dict[str, Any]:
        """Shape accepted by Browser.new_context(storage_state=...)"""
        return {'cookies': self.cookies, 'origins': self.origins}

    @classmethod
    def from_storage_state(cls, data: Dict[str, Any], created_at: datetime = None) -> "SessionState":
        return cls(
            cookies=list(data.get('cookies', [])),
            origins=list(data.get('origins', [])),
            created_at=created_at,
        )


@dataclass
class AttemptRecord:
    """Outcome of one execution attempt of a test case"""
    attempt: int
    status: CaseStatus
    duration_ms: int = 0
    failure_kind: Optional[FailureKind] = None
    error: Optional[str] = None
    artifacts: Dict[str, str] = field(default_factory=dict)


@dataclass
class TestResult:
    """Represents the final verdict of a test case within a project"""
    __test__ = False

    case_id: str
    title: str
    file: str
    project: str
    status: CaseStatus
    tags: FrozenSet[str] = frozenset()
    attempts: List[AttemptRecord] = field(default_factory=list)
    failure_kind: Optional[FailureKind] = None
    error: Optional[str] = None
    skip_reason: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def duration_ms(self) -> int:
        return sum(a.duration_ms for a in self.attempts)

    @property
    def retries(self) -> int:
        return max(0, len(self.attempts) - 1)

    @property
    def flaky(self) -> bool:
        return self.status == CaseStatus.PASSED and self.retries > 0

    @property
    def artifacts(self) -> List[Dict[str, str]]:
        return [a.artifacts for a in self.attempts if a.artifacts]


@dataclass
class RunSummary:
    """All results of a run plus the overall verdict"""
    results: List[TestResult]
    started_at: datetime
    finished_at: Optional[datetime] = None
    environment: Optional[EnvironmentConfig] = None

    def count(self, status: CaseStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def passed(self) -> bool:
        """Run passes only if every non-skipped case passed"""
        return all(r.status == CaseStatus.PASSED for r in self.results if r.status != CaseStatus.SKIPPED)

    @property
    def verdict(self) -> CaseStatus:
        return CaseStatus.PASSED if self.passed else CaseStatus.FAILED

    @property
    def stale_sessions(self) -> List[TestResult]:
        return [r for r in self.results if r.failure_kind == FailureKind.STALE_SESSION]

    def to_dict(self) -> Dict[str, Any]:
        total = len(self.results)
        return {
            'total_tests': total,
            'passed': self.count(CaseStatus.PASSED),
            'failed': self.count(CaseStatus.FAILED),
            'skipped': self.count(CaseStatus.SKIPPED),
            'flaky': sum(1 for r in self.results if r.flaky),
            'stale_session': len(self.stale_sessions),
            'verdict': self.verdict.value,
        }
