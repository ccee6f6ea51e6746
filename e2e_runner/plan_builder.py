"""
Execution plan construction: project roles, dependency validation and test membership
"""

from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Optional, Sequence
import logging

from e2e_runner.errors import ConfigurationError
from e2e_runner.models import (
    ExecutionPlan,
    PlannedProject,
    Project,
    ProjectRole,
    RunConfiguration,
    Stage,
    TestCase,
)
from e2e_runner.registry import filter_by_tag

logger = logging.getLogger(__name__)


def matches(project: Project, test_case: TestCase) -> bool:
    """
    Decide whether a test case belongs to a project

    A case belongs when its file matches any test_match glob and no test_ignore
    glob. Globs are right-anchored, so "*_setup.py" matches "auth/login_setup.py".
    """
    path = PurePosixPath(test_case.file)
    if not any(path.match(pattern) for pattern in project.test_match):
        return False
    return not any(path.match(pattern) for pattern in project.test_ignore)


def validate_projects(projects: Sequence[Project]) -> None:
    """
    Reject project graphs that are not a valid depth-1 producer/dependent graph

    Raises:
        ConfigurationError: duplicate names, self or duplicate dependencies,
            unknown dependency targets, or a dependent that is itself depended upon
    """
    by_name: Dict[str, Project] = {}
    for project in projects:
        if project.name in by_name:
            raise ConfigurationError(f"Duplicate project name '{project.name}'")
        by_name[project.name] = project

    for project in projects:
        seen = set()
        for dep in project.dependencies:
            if dep == project.name:
                raise ConfigurationError(f"Project '{project.name}' depends on itself")
            if dep in seen:
                raise ConfigurationError(f"Project '{project.name}' lists dependency '{dep}' twice")
            seen.add(dep)
            target = by_name.get(dep)
            if target is None:
                raise ConfigurationError(
                    f"Project '{project.name}' depends on unknown project '{dep}'"
                )
            if target.dependencies:
                raise ConfigurationError(
                    f"Project '{project.name}' depends on '{dep}', which has dependencies of "
                    f"its own ({', '.join(target.dependencies)}); only one setup stage is supported"
                )

    for project in projects:
        if project.use_session and not project.dependencies:
            logger.warning(
                f"Project '{project.name}' reuses session state without depending on a setup "
                f"project; a snapshot from a previous run will be used"
            )


def classify_projects(projects: Sequence[Project]) -> Dict[str, ProjectRole]:
    """Partition projects into producers, independents and dependents"""
    referenced = {dep for p in projects for dep in p.dependencies}
    roles = {}
    for project in projects:
        if project.dependencies:
            roles[project.name] = ProjectRole.DEPENDENT
        elif project.name in referenced:
            roles[project.name] = ProjectRole.PRODUCER
        else:
            roles[project.name] = ProjectRole.INDEPENDENT
    return roles


def assign_test_cases(projects: Sequence[Project],
                      test_cases: Iterable[TestCase]) -> Dict[str, List[TestCase]]:
    """
    Assign every test case to at most one project per browser engine

    Raises:
        ConfigurationError: if two projects of the same engine claim one case
    """
    assigned: Dict[str, List[TestCase]] = {p.name: [] for p in projects}
    for case in sorted(test_cases, key=lambda c: (c.file, c.index)):
        claimed: Dict[str, str] = {}
        for project in projects:
            if not matches(project, case):
                continue
            other = claimed.get(project.engine.value)
            if other is not None:
                raise ConfigurationError(
                    f"Test '{case.case_id}' matches both '{other}' and '{project.name}' "
                    f"on {project.engine.value}; tighten test_match/test_ignore"
                )
            claimed[project.engine.value] = project.name
            assigned[project.name].append(case)
        if not claimed:
            logger.debug(f"Test '{case.case_id}' matches no project")
    return assigned


def select_projects(projects: Sequence[Project], names: Optional[Sequence[str]]) -> List[Project]:
    """Keep the named projects plus the projects they depend on, in declaration order"""
    if not names:
        return list(projects)
    known = {p.name for p in projects}
    unknown = [n for n in names if n not in known]
    if unknown:
        raise ConfigurationError(
            f"Unknown project(s): {', '.join(unknown)}. Available: {', '.join(sorted(known))}"
        )
    wanted = set(names)
    for project in projects:
        if project.name in wanted:
            wanted.update(project.dependencies)
    return [p for p in projects if p.name in wanted]


def _select_by_tag(projects: Sequence[Project],
                   roles: Dict[str, ProjectRole],
                   assigned: Dict[str, List[TestCase]],
                   tag: Optional[str]) -> Dict[str, List[TestCase]]:
    if not tag:
        return assigned
    selected = {
        p.name: filter_by_tag(assigned[p.name], tag)
        for p in projects if roles[p.name] != ProjectRole.PRODUCER
    }
    for project in projects:
        if roles[project.name] != ProjectRole.PRODUCER:
            continue
        needed = any(selected[p.name] for p in projects if project.name in p.dependencies)
        if needed:
            selected[project.name] = assigned[project.name]
            logger.debug(f"Keeping all cases of '{project.name}' for its dependents")
        else:
            selected[project.name] = filter_by_tag(assigned[project.name], tag)
    return selected


def build_plan(projects: Sequence[Project],
               run_config: RunConfiguration,
               test_cases: Iterable[TestCase],
               tag: Optional[str] = None) -> ExecutionPlan:
    """
    Expand project declarations into an ordered, barrier-separated plan

    Stage 0 holds producers and independent projects, stage 1 holds dependents.
    The tag filter is applied after membership is assigned.
    The result depends only on the declarations, the cases and the run config.

    Args:
        projects: Project declarations in declaration order
        run_config: Run configuration for this run
        test_cases: Discovered test cases
        tag: Only keep cases carrying this tag. A producer keeps all of its
            cases while any of its dependents still has cases to run

    Returns:
        ExecutionPlan with empty stages omitted
    """
    validate_projects(projects)
    roles = classify_projects(projects)
    assigned = assign_test_cases(projects, test_cases)
    selected = _select_by_tag(projects, roles, assigned, tag)

    first: List[PlannedProject] = []
    second: List[PlannedProject] = []
    for project in projects:
        planned = PlannedProject(
            project=project,
            role=roles[project.name],
            test_cases=tuple(selected[project.name]),
        )
        if planned.role == ProjectRole.DEPENDENT:
            second.append(planned)
        else:
            first.append(planned)

    stages = []
    for group in (first, second):
        if group:
            stages.append(Stage(index=len(stages), projects=tuple(group)))

    plan = ExecutionPlan(stages=tuple(stages), run_config=run_config)
    for stage in plan.stages:
        summary = ', '.join(f"{p.name}[{p.role.value}]={len(p.test_cases)}" for p in stage.projects)
        logger.info(f"Stage {stage.index}: {summary}")
    return plan


def format_plan(plan: ExecutionPlan) -> str:
    """Human-readable listing used by --list"""
    lines = []
    for stage in plan.stages:
        lines.append(f"Stage {stage.index}")
        for planned in stage.projects:
            deps = f" (after {', '.join(planned.project.dependencies)})" if planned.project.dependencies else ""
            lines.append(f"  [{planned.name}] {planned.project.engine.value} {planned.role.value}{deps}")
            for case in planned.test_cases:
                lines.append(f"    {case.file} › {case.title}")
    lines.append(f"Total: {plan.total_cases} tests in {len(plan.projects())} projects")
    return "\n".join(lines)
