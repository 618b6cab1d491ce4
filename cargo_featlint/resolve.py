"""
resolve.py - Map a declared dependency to the concrete package it resolves to.

`None` is a normal answer: the dependency is optional and disabled, only
exists for another target, or is a dev/build dependency that was never
materialized. Callers treat it as a dead end.
"""

from __future__ import annotations

from typing import Optional

from .metadata import Dependency, Metadata, Package


def resolve_dep(pkg: Package, dep: Dependency, meta: Metadata) -> Optional[Package]:
    """Resolve `dep` of `pkg`, preferring cargo's resolve graph when present."""
    if meta.resolve is not None:
        return resolve_dep_from_graph(pkg, dep, meta)
    return resolve_dep_from_workspace(dep, meta)


def resolve_dep_from_workspace(dep: Dependency, meta: Metadata) -> Optional[Package]:
    """Exact name match among workspace members; external crates never resolve."""
    for work in meta.workspace_packages():
        if work.name == dep.name:
            return work
    return None


def resolve_dep_from_graph(pkg: Package, dep: Dependency, meta: Metadata) -> Optional[Package]:
    """Follow the resolve edge of `pkg` whose extern name matches `dep`."""
    node = meta.resolve.get(pkg.id)
    if node is None:
        return None

    # The resolve graph uses the extern crate name: renamed and with `_`
    dep_name = dep.effective_name.replace('-', '_')
    for edge in node.deps:
        if edge.name != dep_name:
            continue
        if edge.dep_kinds and dep.kind not in edge.dep_kinds:
            continue
        return meta.find_package(edge.pkg)
    return None
