"""
trace.py - Find how one crate ends up depending on another.
"""

from __future__ import annotations

import sys
from typing import TextIO

from . import config
from .dag import Dag
from .errors import LintError
from .metadata import Metadata
from .resolve import resolve_dep
from .utils import echo, unescape_delimiter


def build_crate_dag(meta: Metadata) -> Dag:
    """Package id -> resolved dependency id, for every active dependency."""
    dag = Dag()
    for pkg in meta.packages:
        dag.add_node(pkg.id)
        for declared in pkg.dependencies:
            dep = resolve_dep(pkg, declared, meta)
            if dep is not None:
                dag.add_edge(pkg.id, dep.id)
    return dag


def find_dependency_path(meta: Metadata, dag: Dag, from_crate: str, to_crate: str):
    starts = [p.id for p in meta.packages if p.name == from_crate]
    if not starts:
        raise LintError(f"No package named {from_crate!r} in the metadata")

    def is_target(pkg_id: str) -> bool:
        return meta.package(pkg_id).name == to_crate

    best = None
    for start in starts:
        path = dag.reachable_predicate(start, is_target)
        if path is not None and (best is None or len(path) < len(best)):
            best = path
    return best


def run_trace(
    meta: Metadata,
    from_crate: str,
    to_crate: str,
    show_version: bool = False,
    path_delimiter: str = config.DEFAULT_PATH_DELIMITER,
    verbosity: int = config.INFO,
    out: TextIO = None,
) -> int:
    out = out or sys.stdout
    echo(f"Tracing dependency path from {from_crate!r} to {to_crate!r}",
         verbose=verbosity >= config.INFO)
    dag = build_crate_dag(meta)
    path = find_dependency_path(meta, dag, from_crate, to_crate)
    if path is None:
        print(f"No path from {from_crate} to {to_crate}", file=out)
        return 1

    def fmt(pkg_id: str) -> str:
        krate = meta.package(pkg_id)
        return f"{krate.name} v{krate.version}" if show_version else krate.name

    print(path.render(fmt, unescape_delimiter(path_delimiter)), file=out)
    return 0
