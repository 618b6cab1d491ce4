"""
lint.py - Feature lints over a metadata snapshot.

- propagate-feature: a crate whose dependency has feature F must itself have F
  and forward it as `dep/F`. Missing forwards can be written back to the
  manifest.
- never-enables: feature P of a crate never lists S directly, neither as its
  own feature nor as `dep/S` on a resolved dependency. One hop only.
- never-implies: no chain of implications leads from any `crate/P` to any
  `crate/S`. The first violating chain is printed.

The `check_*` functions only compute findings; the `run_*` functions print
them, apply fixes and return a process exit status.
"""

from __future__ import annotations

import sys
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, TextIO

from . import config
from .autofix import AutoFixer
from .errors import AutofixError, LintError
from .feature_graph import CrateAndFeature, build_feature_dag
from .metadata import Metadata, Package
from .resolve import resolve_dep
from .utils import echo, is_within, unescape_delimiter

# ============================================================================
# PROPAGATE FEATURE
# ============================================================================

@dataclass
class PropagateReport:
    """Findings of one propagate-feature run, keyed by package id."""
    feature: str
    # crate not forwarding the feature -> dependencies it is not forwarded to
    propagate_missing: dict = field(default_factory=lambda: defaultdict(set))
    # crate missing the feature -> dependencies that have it
    feature_missing: dict = field(default_factory=lambda: defaultdict(set))
    # crates that have the feature but forward it nowhere
    feature_maybe_unused: set = field(default_factory=set)
    # (crate id, dependency id) -> name the crate refers to the dependency by
    dep_names: dict = field(default_factory=dict)

    def faulty_crates(self, show_maybe_unused: bool = False) -> list:
        ids = set(self.propagate_missing) | set(self.feature_missing)
        if show_maybe_unused:
            ids |= self.feature_maybe_unused
        return sorted(ids)


def select_packages(meta: Metadata, names: list) -> list:
    if not names:
        return list(meta.packages)
    selected = [p for p in meta.packages if p.name in names]
    if not selected:
        raise LintError(f"No packages found: {names}")
    return selected


def check_propagate_feature(meta: Metadata, feature: str, packages: Optional[list] = None) -> PropagateReport:
    report = PropagateReport(feature)

    for pkg in select_packages(meta, packages or []):
        feature_used = False
        enabled = pkg.features.get(feature)

        for declared in pkg.dependencies:
            dep = resolve_dep(pkg, declared, meta)
            if dep is None:
                # Outside the workspace, or not active for this build
                feature_used = True
                continue
            if feature not in dep.features:
                continue

            name = declared.effective_name
            report.dep_names.setdefault((pkg.id, dep.id), name)
            if enabled is None:
                report.feature_missing[pkg.id].add(dep.id)
            elif f"{name}/{feature}" not in enabled and f"{name}?/{feature}" not in enabled:
                report.propagate_missing[pkg.id].add(dep.id)
            else:
                feature_used = True

        if not feature_used and enabled is not None:
            report.feature_maybe_unused.add(pkg.id)

    return report


@dataclass
class FixOptions:
    enabled: bool = False
    package: Optional[str] = None  # only fix this crate
    dependency: Optional[str] = None  # only fix forwards to this dependency
    allowed_dir: Optional[Path] = None

    def wants(self, krate: Package, dep: Package, name: Optional[str] = None) -> bool:
        if not self.enabled:
            return False
        if self.package is not None and self.package != krate.name:
            return False
        return self.dependency is None or self.dependency in (dep.name, name)


def _crate_label(pkg: Package, versions: bool) -> str:
    return f"{pkg.name} v{pkg.version}" if versions else pkg.name


def _apply_fixes(
    krate: Package,
    deps: list,
    feature: str,
    fix: FixOptions,
    verbosity: int,
) -> tuple:
    """Forward `feature` to each of `deps` in the manifest of `krate`.

    `deps` holds (package, name) pairs where name is how the manifest of
    `krate` refers to the dependency, which differs from the package name
    for renamed dependencies.

    Returns (fixes applied, fix failures). Nothing counts as fixed until the
    manifest is saved.
    """
    wanted = [(dep, name) for dep, name in deps if fix.wants(krate, dep, name)]
    if not wanted:
        return 0, 0

    manifest = Path(krate.manifest_path)
    if fix.allowed_dir is None or not is_within(manifest, fix.allowed_dir):
        echo(f"Cannot fix {krate.name} because it is not in the allowed directory {fix.allowed_dir}",
             verbose=verbosity >= config.INFO)
        return 0, len(wanted)

    try:
        fixer = AutoFixer.from_manifest(manifest)
        for _, name in wanted:
            fixer.add_to_feature(feature, f"{name}/{feature}")
            echo(f"Added feature {feature} to {name} in {krate.name}",
                 verbose=verbosity >= config.INFO)
        fixer.save()
    except AutofixError as e:
        print(f"Error: could not fix {krate.name}: {e}", file=sys.stderr)
        return 0, len(wanted)
    return len(wanted), 0


def run_propagate_feature(
    meta: Metadata,
    feature: str,
    packages: Optional[list] = None,
    crate_versions: bool = False,
    fix: Optional[FixOptions] = None,
    show_maybe_unused: bool = False,
    verbosity: int = config.INFO,
    out: TextIO = None,
) -> int:
    out = out or sys.stdout
    fix = fix or FixOptions()
    echo(f"Checking that feature {feature!r} is propagated", verbose=verbosity >= config.INFO)
    report = check_propagate_feature(meta, feature, packages)

    errors = warnings = fixes = 0
    for krate_id in report.faulty_crates(show_maybe_unused):
        krate = meta.package(krate_id)
        print(f'crate "{_crate_label(krate, crate_versions)}"\n  feature "{feature}"', file=out)

        missing = report.feature_missing.get(krate_id)
        if missing:
            deps = sorted((meta.package(d) for d in missing), key=lambda p: p.id)
            joined = '\n      '.join(_crate_label(d, crate_versions) for d in deps)
            print(f"    must exist because {len(deps)} dependencies have it:\n      {joined}", file=out)
            errors += 1

        unforwarded = report.propagate_missing.get(krate_id)
        if unforwarded:
            deps = sorted((meta.package(d) for d in unforwarded), key=lambda p: p.id)
            joined = '\n      '.join(_crate_label(d, crate_versions) for d in deps)
            print(f"    must propagate to:\n      {joined}", file=out)
            named = [(d, report.dep_names.get((krate_id, d.id), d.name)) for d in deps]
            fixed, failed = _apply_fixes(krate, named, feature, fix, verbosity)
            fixes += fixed
            if fixed < len(deps) or failed:
                errors += 1

        if show_maybe_unused and krate_id in report.feature_maybe_unused:
            print("    is not used by any dependencies", file=out)
            warnings += 1

    if errors or warnings or fixes:
        print(f"Generated {errors} errors and {warnings} warnings and fixed {fixes} issues.", file=out)
    return 1 if errors else 0


# ============================================================================
# NEVER ENABLES
# ============================================================================

def check_never_enables(meta: Metadata, precondition: str, stays_disabled: str) -> dict:
    """Crate id -> ids of the crates on which `precondition` enables `stays_disabled`."""
    offenders = defaultdict(set)

    for pkg in meta.packages:
        enabled = pkg.features.get(precondition)
        if enabled is None:
            continue
        if stays_disabled in enabled:
            offenders[pkg.id].add(pkg.id)

        for declared in pkg.dependencies:
            dep = resolve_dep(pkg, declared, meta)
            if dep is None:
                continue
            name = declared.effective_name
            if f"{name}/{stays_disabled}" in enabled or f"{name}?/{stays_disabled}" in enabled:
                offenders[pkg.id].add(dep.id)

    return dict(offenders)


def run_never_enables(
    meta: Metadata,
    precondition: str,
    stays_disabled: str,
    verbosity: int = config.INFO,
    out: TextIO = None,
) -> int:
    out = out or sys.stdout
    echo(f"Checking that feature {precondition!r} never enables {stays_disabled!r}",
         verbose=verbosity >= config.INFO)
    offenders = check_never_enables(meta, precondition, stays_disabled)

    for krate_id in sorted(offenders):
        krate = meta.package(krate_id)
        print(f'crate "{krate.name}"\n  feature "{precondition}"', file=out)
        print(f'    enables feature "{stays_disabled}" on dependencies:', file=out)
        for dep_id in sorted(offenders[krate_id]):
            print(f"      {meta.package(dep_id).name}", file=out)

    if offenders:
        print(f"Found {len(offenders)} crates violating the rule.", file=out)
        return 1
    return 0


# ============================================================================
# NEVER IMPLIES
# ============================================================================

def find_implication(meta: Metadata, dag, precondition: str, stays_disabled: str):
    """First path from some `crate/precondition` to some `crate/stays_disabled`.

    Only nodes backed by a real package count; a placeholder for an inactive
    dependency enables nothing.
    """
    def violates(node: CrateAndFeature) -> bool:
        return node.feature == stays_disabled and meta.find_package(node.crate) is not None

    for node in dag.lhs_nodes():
        if node.feature != precondition:
            continue
        path = dag.reachable_predicate(node, violates)
        if path is not None:
            return path
    return None


def render_feature_path(
    meta: Metadata,
    path,
    delimiter: str = config.DEFAULT_PATH_DELIMITER,
    show_version: bool = False,
    show_source: bool = False,
) -> str:
    def fmt(node: CrateAndFeature) -> str:
        krate = meta.package(node.crate)
        text = f"{krate.name}/{node.feature}"
        if show_version:
            text += f" v{krate.version}"
        if show_source and krate.source:
            text += f" ({krate.source})"
        return text

    return path.render(fmt, unescape_delimiter(delimiter))


def run_never_implies(
    meta: Metadata,
    precondition: str,
    stays_disabled: str,
    show_source: bool = False,
    show_version: bool = False,
    path_delimiter: str = config.DEFAULT_PATH_DELIMITER,
    verbosity: int = config.INFO,
    out: TextIO = None,
) -> int:
    out = out or sys.stdout
    echo(f"Checking that feature {precondition!r} never implies {stays_disabled!r}",
         verbose=verbosity >= config.INFO)
    dag = build_feature_dag(meta, verbosity)

    path = find_implication(meta, dag, precondition, stays_disabled)
    if path is None:
        return 0

    rendered = render_feature_path(meta, path, path_delimiter, show_version, show_source)
    print(f"Feature '{precondition}' implies '{stays_disabled}' via path:\n  {rendered}", file=out)
    return 1
