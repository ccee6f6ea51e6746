"""
Scenario declaration and discovery
"""

import importlib.util
import inspect
import re
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence
import logging

from e2e_runner.errors import ConfigurationError
from e2e_runner.models import TestCase

logger = logging.getLogger(__name__)

SCENARIO_PATTERNS = ('*_spec.py', '*_setup.py')

_TAG_RE = re.compile(r'(?<!\S)@([\w-]+)')
_META_ATTR = '__e2e_test__'


def e2e_test(title: str, tags: Iterable[str] = ()) -> Callable:
    """
    Mark an async function as a browser scenario

    Tags are the union of the explicit tags and any "@tag" tokens in the title.
    """
    def decorator(func):
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"Scenario '{title}' must be declared with 'async def'")
        setattr(func, _META_ATTR, {'title': title, 'tags': frozenset(tags) | parse_tags(title)})
        return func
    return decorator


def parse_tags(title: str) -> frozenset:
    return frozenset(_TAG_RE.findall(title))


def discover(test_dir: Path, patterns: Sequence[str] = SCENARIO_PATTERNS) -> List[TestCase]:
    """
    Import every scenario module under test_dir and collect decorated scenarios

    Args:
        test_dir: Directory holding scenario modules
        patterns: Glob patterns for scenario files

    Returns:
        Test cases sorted by file path, then by definition order
    """
    test_dir = Path(test_dir)
    if not test_dir.is_dir():
        raise ConfigurationError(f"Test directory not found: {test_dir}")

    files = sorted({p for pattern in patterns for p in test_dir.rglob(pattern)})
    cases: List[TestCase] = []
    for path in files:
        rel = path.relative_to(test_dir).as_posix()
        module = _import_file(path, rel)
        cases.extend(collect(module, rel))

    logger.info(f"Discovered {len(cases)} test cases in {len(files)} files under {test_dir}")
    return cases


def collect(module, rel_path: str) -> List[TestCase]:
    """Collect scenarios from an imported module in definition order"""
    suite: Optional[str] = getattr(module, 'SUITE', None)
    found = []
    funcs = set()
    for _, func in inspect.getmembers(module, inspect.iscoroutinefunction):
        meta = getattr(func, _META_ATTR, None)
        if meta is None or func.__module__ != module.__name__ or func in funcs:
            continue
        funcs.add(func)
        title = f"{suite} › {meta['title']}" if suite else meta['title']
        found.append((func.__code__.co_firstlineno, title, meta['tags'], func))

    found.sort(key=lambda item: item[0])
    cases = []
    seen = set()
    for idx, (_, title, tags, func) in enumerate(found):
        if title in seen:
            raise ConfigurationError(f"Duplicate scenario title '{title}' in {rel_path}")
        seen.add(title)
        cases.append(TestCase(title=title, file=rel_path, func=func, tags=tags, index=idx))
    return cases


def filter_by_tag(cases: List[TestCase], tag: Optional[str]) -> List[TestCase]:
    if not tag:
        return list(cases)
    tag = tag.lstrip('@')
    return [c for c in cases if tag in c.tags]


def _import_file(path: Path, rel_path: str):
    module_name = 'e2e_scenarios.' + re.sub(r'\W', '_', rel_path[:-3])
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ConfigurationError(f"Cannot import scenario file {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module
