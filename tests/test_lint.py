import io

import pytest

from cargo_featlint import config
from cargo_featlint.errors import LintError, MetadataIntegrityError
from cargo_featlint.feature_graph import build_feature_dag
from cargo_featlint.lint import (
    FixOptions,
    check_never_enables,
    check_propagate_feature,
    find_implication,
    render_feature_path,
    run_never_enables,
    run_never_implies,
    run_propagate_feature,
)

from conftest import dep


def propagate(workspace, feature='std', resolve=True, **kwargs):
    out = io.StringIO()
    code = run_propagate_feature(workspace.metadata(resolve), feature,
                                 verbosity=config.QUIET, out=out, **kwargs)
    return code, out.getvalue()


# ============================================================================
# PROPAGATE FEATURE
# ============================================================================

def test_propagate_missing_is_reported(workspace):
    workspace.crate('a', deps=['b'], features={'std': []})
    workspace.crate('b', features={'std': []})

    code, out = propagate(workspace)

    assert code == 1
    assert out == ('crate "a"\n  feature "std"\n    must propagate to:\n      b\n'
                   'Generated 1 errors and 0 warnings and fixed 0 issues.\n')


def test_propagate_fix_rewrites_manifest(workspace):
    workspace.crate('a', deps=['b'], features={'std': []})
    workspace.crate('b', features={'std': []})

    code, out = propagate(workspace, fix=FixOptions(enabled=True, allowed_dir=workspace.root))

    assert code == 0
    assert 'must propagate to:\n      b\n' in out
    assert out.endswith('Generated 0 errors and 0 warnings and fixed 1 issues.\n')
    assert 'std = ["b/std"]\n' in workspace.manifest('a').read_text()


def test_feature_missing_is_reported(workspace):
    workspace.crate('a', deps=['b', 'c'])
    workspace.crate('b', version='1.2.3', features={'std': []})
    workspace.crate('c', features={'std': []})

    code, out = propagate(workspace, crate_versions=True)

    assert code == 1
    assert 'crate "a v0.1.0"\n' in out
    assert 'must exist because 2 dependencies have it:\n      b v1.2.3\n      c v0.1.0\n' in out
    assert 'Generated 1 errors' in out


def test_correct_propagation_passes(workspace):
    workspace.crate('a', deps=['b'], features={'std': ['b/std']})
    workspace.crate('b', features={'std': []})
    code, out = propagate(workspace)
    assert (code, out) == (0, '')


def test_renamed_dependency_is_forwarded_by_its_rename(workspace):
    workspace.crate('a', deps=[dep('b-two', rename='bt')], features={'std': ['bt/std']})
    workspace.crate('b-two', features={'std': []})
    assert propagate(workspace) == (0, '')


def test_fix_writes_rename_of_renamed_dependency(workspace):
    workspace.crate('a', deps=[dep('b-two', rename='bt')], features={'std': []})
    workspace.crate('b-two', features={'std': []})

    code, out = propagate(workspace, fix=FixOptions(enabled=True, dependency='bt',
                                                    allowed_dir=workspace.root))

    assert code == 0
    assert 'must propagate to:\n      b-two\n' in out
    assert 'std = ["bt/std"]\n' in workspace.manifest('a').read_text()
    assert 'b-two/std' not in workspace.manifest('a').read_text()


def test_weak_forward_counts_as_propagated(workspace):
    workspace.crate('a', deps=[dep('b', optional=True)], features={'std': ['b?/std']})
    workspace.crate('b', features={'std': []})
    report = check_propagate_feature(workspace.metadata(), 'std')
    assert not report.propagate_missing
    assert workspace.id('a') not in report.feature_maybe_unused
    assert propagate(workspace) == (0, '')


def test_maybe_unused_is_computed_but_quiet_by_default(workspace):
    workspace.crate('a', deps=['b'], features={'std': []})
    workspace.crate('b')
    report = check_propagate_feature(workspace.metadata(), 'std')
    assert report.feature_maybe_unused == {workspace.id('a')}
    assert propagate(workspace) == (0, '')

    code, out = propagate(workspace, show_maybe_unused=True)
    assert code == 0
    assert 'is not used by any dependencies' in out
    assert 'Generated 0 errors and 1 warnings' in out


def test_disabled_optional_dependency_is_ignored(workspace):
    workspace.crate('a', deps=[dep('c', optional=True, active=False)], features={'std': []})
    workspace.crate('c', features={'std': []})
    report = check_propagate_feature(workspace.metadata(), 'std')
    assert not report.propagate_missing
    assert not report.feature_missing
    assert workspace.id('a') not in report.feature_maybe_unused


def test_packages_filter_limits_checks_and_fixes(workspace):
    workspace.crate('a', deps=['c'], features={'std': []})
    workspace.crate('b', deps=['c'], features={'std': []})
    workspace.crate('c', features={'std': []})
    before = workspace.manifest('b').read_text()

    code, out = propagate(workspace, packages=['a'],
                          fix=FixOptions(enabled=True, allowed_dir=workspace.root))

    assert code == 0
    assert 'crate "b"' not in out
    assert 'std = ["c/std"]' in workspace.manifest('a').read_text()
    assert workspace.manifest('b').read_text() == before


def test_packages_filter_matching_nothing_fails(workspace):
    workspace.crate('a')
    with pytest.raises(LintError, match='ghost'):
        check_propagate_feature(workspace.metadata(), 'std', ['ghost'])


def test_fix_dependency_and_package_filters(workspace):
    workspace.crate('a', deps=['b', 'c'], features={'std': []})
    workspace.crate('b', features={'std': []})
    workspace.crate('c', features={'std': []})

    code, out = propagate(workspace, fix=FixOptions(enabled=True, dependency='c',
                                                    allowed_dir=workspace.root))
    assert code == 1
    assert 'std = ["c/std"]' in workspace.manifest('a').read_text()
    assert 'fixed 1 issues' in out

    code, out = propagate(workspace, fix=FixOptions(enabled=True, package='other',
                                                    allowed_dir=workspace.root))
    assert code == 1
    assert 'fixed 0 issues' in out


def test_manifest_outside_allowed_dir_is_not_touched(workspace):
    workspace.crate('a', deps=['b'], features={'std': []})
    workspace.crate('b', features={'std': []})
    before = workspace.manifest('a').read_text()

    code, out = propagate(workspace, fix=FixOptions(enabled=True,
                                                    allowed_dir=workspace.root / 'b'))
    assert code == 1
    assert 'fixed 0 issues' in out
    assert workspace.manifest('a').read_text() == before


def test_failed_fix_is_not_counted(workspace, capsys):
    workspace.crate('a', deps=['b'], features={'std': []}, manifest='[package]\nname = "a"\n')
    workspace.crate('b', features={'std': []})

    code, out = propagate(workspace, fix=FixOptions(enabled=True, allowed_dir=workspace.root))

    assert code == 1
    assert 'Generated 1 errors and 0 warnings and fixed 0 issues.' in out
    assert 'could not fix a' in capsys.readouterr().err


def test_propagate_without_resolve_graph_uses_workspace(workspace):
    workspace.crate('a', deps=['b', 'serde'], features={'std': []})
    workspace.crate('b', features={'std': []})
    workspace.crate('serde', member=False, features={'std': []})
    report = check_propagate_feature(workspace.metadata(resolve=False), 'std')
    assert report.propagate_missing == {workspace.id('a'): {workspace.id('b')}}


# ============================================================================
# NEVER ENABLES
# ============================================================================

def test_never_enables_reports_forwarding_dependency(workspace):
    workspace.crate('a', deps=['b'], features={'std': ['b/alloc']})
    workspace.crate('b', features={'alloc': []})
    meta = workspace.metadata()

    assert check_never_enables(meta, 'std', 'alloc') == {workspace.id('a'): {workspace.id('b')}}

    out = io.StringIO()
    code = run_never_enables(meta, 'std', 'alloc', verbosity=config.QUIET, out=out)
    assert code == 1
    assert out.getvalue() == ('crate "a"\n  feature "std"\n'
                              '    enables feature "alloc" on dependencies:\n      b\n'
                              'Found 1 crates violating the rule.\n')


def test_never_enables_own_feature(workspace):
    workspace.crate('a', features={'std': ['alloc'], 'alloc': []})
    meta = workspace.metadata()
    assert check_never_enables(meta, 'std', 'alloc') == {workspace.id('a'): {workspace.id('a')}}


def test_never_enables_is_one_hop_only(workspace):
    workspace.crate('a', deps=['b'], features={'std': ['b/std']})
    workspace.crate('b', features={'std': ['alloc'], 'alloc': []})
    offenders = check_never_enables(workspace.metadata(), 'std', 'alloc')
    assert set(offenders) == {workspace.id('b')}


def test_never_enables_renamed_dependency(workspace):
    workspace.crate('a', deps=[dep('b-two', rename='bt')], features={'std': ['bt/alloc']})
    workspace.crate('b-two', features={'alloc': []})
    offenders = check_never_enables(workspace.metadata(), 'std', 'alloc')
    assert offenders == {workspace.id('a'): {workspace.id('b-two')}}


def test_never_enables_clean(workspace):
    workspace.crate('a', features={'std': []})
    out = io.StringIO()
    assert run_never_enables(workspace.metadata(), 'std', 'alloc',
                             verbosity=config.QUIET, out=out) == 0
    assert out.getvalue() == ''


# ============================================================================
# NEVER IMPLIES
# ============================================================================

def chain(workspace):
    workspace.crate('x', deps=['y'], features={'runtime-benchmarks': ['y/rt']})
    workspace.crate('y', deps=['z'], features={'rt': ['z/std']})
    workspace.crate('z', features={'std': []})


def test_never_implies_prints_path(workspace):
    chain(workspace)
    out = io.StringIO()
    code = run_never_implies(workspace.metadata(), 'runtime-benchmarks', 'std',
                             verbosity=config.QUIET, out=out)
    assert code == 1
    assert out.getvalue() == ("Feature 'runtime-benchmarks' implies 'std' via path:\n"
                              "  x/runtime-benchmarks -> y/rt -> z/std\n")


def test_never_implies_reports_only_first_violating_crate(workspace):
    workspace.crate('b', deps=['z'], features={'runtime-benchmarks': ['z/std']})
    workspace.crate('a', deps=['z'], features={'runtime-benchmarks': ['z/std']})
    workspace.crate('z', features={'std': []})
    out = io.StringIO()

    code = run_never_implies(workspace.metadata(), 'runtime-benchmarks', 'std',
                             verbosity=config.QUIET, out=out)

    assert code == 1
    assert out.getvalue() == ("Feature 'runtime-benchmarks' implies 'std' via path:\n"
                              "  b/runtime-benchmarks -> z/std\n")


def test_never_implies_path_annotations(workspace):
    chain(workspace)
    workspace.crates['z']['source'] = 'registry+https://example.org'
    meta = workspace.metadata()
    path = find_implication(meta, build_feature_dag(meta, config.QUIET), 'runtime-benchmarks', 'std')

    rendered = render_feature_path(meta, path, delimiter='\\n', show_version=True, show_source=True)
    assert rendered == ('x/runtime-benchmarks v0.1.0\ny/rt v0.1.0\n'
                        'z/std v0.1.0 (registry+https://example.org)')


def test_never_implies_clean(workspace):
    chain(workspace)
    out = io.StringIO()
    assert run_never_implies(workspace.metadata(), 'runtime-benchmarks', 'alloc',
                             verbosity=config.QUIET, out=out) == 0
    assert out.getvalue() == ''


def test_never_implies_ignores_disabled_dependency(workspace):
    workspace.crate('a', deps=[dep('c', optional=True, active=False)],
                    features={'runtime-benchmarks': ['c/std']})
    workspace.crate('c', features={'std': []})
    out = io.StringIO()
    assert run_never_implies(workspace.metadata(), 'runtime-benchmarks', 'std',
                             verbosity=config.QUIET, out=out) == 0


def test_never_implies_through_default_features(workspace):
    workspace.crate('a', deps=['b'])
    workspace.crate('b', features={'default': ['std'], 'std': []})
    meta = workspace.metadata()
    path = find_implication(meta, build_feature_dag(meta, config.QUIET), 'default', 'std')
    assert render_feature_path(meta, path) == 'a/default -> b/default -> b/std'


def test_never_implies_rejects_broken_metadata(workspace):
    workspace.crate('a', features={'std': ['missing']})
    with pytest.raises(MetadataIntegrityError):
        run_never_implies(workspace.metadata(), 'std', 'alloc', verbosity=config.QUIET,
                          out=io.StringIO())
