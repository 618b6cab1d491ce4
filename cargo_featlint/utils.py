"""
utils.py - Small helpers for output and paths.
"""

from __future__ import annotations

import sys
from pathlib import Path


def echo(msg: str, indent: int = 0, verbose: bool = True):
    """Print a progress line to stderr with indentation."""
    if verbose:
        print(f"{'  ' * indent}-> {msg}", file=sys.stderr)


def unescape_delimiter(delimiter: str) -> str:
    """Turn the literal `\\n` and `\\t` a shell passes through into real characters."""
    return delimiter.replace('\\n', '\n').replace('\\t', '\t')


def is_within(path: Path, root: Path) -> bool:
    """Whether `path` lies inside `root` once both are canonicalized."""
    try:
        path.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True
