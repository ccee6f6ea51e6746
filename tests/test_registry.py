import textwrap

import pytest

from e2e_runner.errors import ConfigurationError
from e2e_runner.registry import discover, e2e_test, filter_by_tag, parse_tags

GUEST_SPEC = '''
from e2e_runner.registry import e2e_test

SUITE = 'Auth flow'


@e2e_test('redirects to login @smoke')
async def redirects(ctx):
    pass


@e2e_test('shows sign in form', tags=['forms'])
async def sign_in_form(ctx):
    pass


async def helper(ctx):
    pass
'''

SETUP = '''
from e2e_runner.registry import e2e_test


@e2e_test('authenticate')
async def authenticate(ctx):
    pass
'''


def write(directory, name, source):
    path = directory / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(source), encoding='utf-8')
    return path


def test_parse_tags_reads_at_tokens():
    assert parse_tags('loads dashboard @smoke @critical-path') == {'smoke', 'critical-path'}
    assert parse_tags('mail me at qa@example.com') == frozenset()


def test_e2e_test_requires_coroutine():
    with pytest.raises(TypeError):
        @e2e_test('not async')
        def sync_scenario(ctx):
            pass


def test_discover_collects_in_definition_order(tmp_path):
    write(tmp_path, 'auth_guest_spec.py', GUEST_SPEC)
    write(tmp_path, 'auth_setup.py', SETUP)
    write(tmp_path, 'notes.py', SETUP)

    cases = discover(tmp_path)

    assert [(c.file, c.title) for c in cases] == [
        ('auth_guest_spec.py', 'Auth flow › redirects to login @smoke'),
        ('auth_guest_spec.py', 'Auth flow › shows sign in form'),
        ('auth_setup.py', 'authenticate'),
    ]
    assert cases[0].tags == {'smoke'}
    assert cases[1].tags == {'forms'}
    assert [c.index for c in cases] == [0, 1, 0]
    assert cases[0].case_id == 'auth_guest_spec.py::Auth flow › redirects to login @smoke'


def test_discover_walks_subdirectories(tmp_path):
    write(tmp_path, 'billing/invoices_spec.py', SETUP)

    cases = discover(tmp_path)

    assert [c.file for c in cases] == ['billing/invoices_spec.py']


def test_aliased_scenarios_are_collected_once(tmp_path):
    write(tmp_path, 'auth_setup.py', SETUP)
    write(tmp_path, 'reexport_spec.py', '''
        from e2e_runner.registry import e2e_test


        @e2e_test('own scenario')
        async def own(ctx):
            pass


        own_alias = own
    ''')

    cases = discover(tmp_path)

    assert [c.title for c in cases if c.file == 'reexport_spec.py'] == ['own scenario']


def test_duplicate_titles_are_rejected(tmp_path):
    write(tmp_path, 'dup_spec.py', '''
        from e2e_runner.registry import e2e_test


        @e2e_test('same')
        async def first(ctx):
            pass


        @e2e_test('same')
        async def second(ctx):
            pass
    ''')

    with pytest.raises(ConfigurationError, match="Duplicate scenario title 'same'"):
        discover(tmp_path)


def test_missing_directory_is_a_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError, match='Test directory not found'):
        discover(tmp_path / 'missing')


def test_filter_by_tag(tmp_path):
    write(tmp_path, 'auth_guest_spec.py', GUEST_SPEC)
    cases = discover(tmp_path)

    assert [c.title for c in filter_by_tag(cases, '@smoke')] == ['Auth flow › redirects to login @smoke']
    assert [c.title for c in filter_by_tag(cases, 'forms')] == ['Auth flow › shows sign in form']
    assert filter_by_tag(cases, None) == cases
