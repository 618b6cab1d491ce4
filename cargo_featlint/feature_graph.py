"""
feature_graph.py - Build the "enabling X enables Y" graph from metadata.

Nodes are (package id, feature) pairs. Edges come from two places:
- dependency declarations: a package's `default` enables the dependency's
  `default` (unless `default-features = false`) and any features listed on
  the declaration itself;
- the `[features]` table, where each value is one of
    `dep:NAME`        -> (NAME, "default")
    `NAME/F`, `NAME?/F` -> (NAME, F)
    `F`               -> (same package, F)

Dependencies that do not resolve (disabled optional, other target, unused
dev/build) become placeholder nodes keyed by the dependency name. They never
get outgoing edges.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Optional

from . import config
from .dag import Dag
from .errors import MetadataIntegrityError
from .metadata import Dependency, Metadata, Package
from .resolve import resolve_dep
from .utils import echo


class CrateAndFeature(NamedTuple):
    crate: str  # package id, or a dependency name for placeholders
    feature: str

    def __str__(self) -> str:
        return f"{self.crate}/{self.feature}"


@dataclass
class Implication:
    """One parsed entry of a feature's value list."""
    kind: str  # "dep", "forward", "local"
    feature: str
    dep_name: Optional[str] = None
    weak: bool = False


def parse_implication(pkg: Package, value: str) -> Implication:
    """Classify a raw `[features]` value of `pkg`."""
    if ':' in value:
        prefix, _, name = value.partition(':')
        if prefix != 'dep' or not name or '/' in name:
            raise MetadataIntegrityError(
                f"Malformed feature value {value!r} in crate {pkg.id}")
        return Implication('dep', config.DEFAULT_FEATURE, dep_name=name)

    if '/' in value:
        name, _, feature = value.partition('/')
        weak = name.endswith('?')
        name = name.rstrip('?')
        if not name or not feature or '/' in feature or '?' in name:
            raise MetadataIntegrityError(
                f"Malformed feature value {value!r} in crate {pkg.id}")
        return Implication('forward', feature, dep_name=name, weak=weak)

    if value != config.DEFAULT_FEATURE and value not in pkg.features:
        raise MetadataIntegrityError(
            f"Feature {value!r} enabled by crate {pkg.id} is not one of its features")
    return Implication('local', value)


def find_declared_dep(pkg: Package, name: str) -> Dependency:
    """The dependency `pkg` refers to as `name` (its rename, if it has one)."""
    for dep in pkg.dependencies:
        if dep.effective_name == name:
            return dep
    raise MetadataIntegrityError(f"Could not resolve dep {name} of {pkg.id}")


def dep_node_id(pkg: Package, dep: Dependency, meta: Metadata) -> str:
    resolved = resolve_dep(pkg, dep, meta)
    if resolved is None:
        return dep.name
    return resolved.id


def build_feature_dag(meta: Metadata, verbosity: int = config.INFO) -> Dag:
    """Build the feature implication graph for every package in `meta`."""
    trace = verbosity >= config.DEBUG
    dag = Dag()

    def add(src: CrateAndFeature, dst: CrateAndFeature):
        echo(f"Adding: {src} -> {dst}", 1, trace)
        dag.add_edge(src, dst)

    for pkg in meta.packages:
        default = CrateAndFeature(pkg.id, config.DEFAULT_FEATURE)
        for dep in pkg.dependencies:
            target = dep_node_id(pkg, dep, meta)
            if dep.uses_default_features:
                add(default, CrateAndFeature(target, config.DEFAULT_FEATURE))
            for feature in dep.features:
                add(default, CrateAndFeature(target, feature))

        for feature, values in pkg.features.items():
            src = CrateAndFeature(pkg.id, feature)
            for value in values:
                imp = parse_implication(pkg, value)
                if imp.kind == 'local':
                    add(src, CrateAndFeature(pkg.id, imp.feature))
                    continue
                # TODO: model `?` forwards as conditional on the dependency being enabled elsewhere
                dep = find_declared_dep(pkg, imp.dep_name)
                add(src, CrateAndFeature(dep_node_id(pkg, dep, meta), imp.feature))

    echo(f"Built feature graph: {len(dag)} nodes, {len(dag.lhs_nodes())} with edges",
         verbose=verbosity >= config.INFO)
    return dag
