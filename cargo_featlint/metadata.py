"""
metadata.py - Load `cargo metadata` output into typed snapshots.

The snapshot is the only input the linters see: every package in the build
(workspace members and external crates), the dependencies each one declares,
its `[features]` table and, unless `--no-deps` was used, cargo's resolve graph
describing which dependency instances are actually active.
"""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from . import config
from .errors import MetadataIntegrityError, MetadataLoadError
from .utils import echo

# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass
class Dependency:
    """A dependency as declared in the owning package's manifest."""
    name: str
    rename: Optional[str] = None
    uses_default_features: bool = True
    features: list = field(default_factory=list)  # requested on the declaration itself
    kind: str = 'normal'  # "normal", "dev", "build"
    target: Optional[str] = None
    optional: bool = False

    @property
    def effective_name(self) -> str:
        """The name the owning package refers to this dependency by."""
        return self.rename or self.name

    @classmethod
    def from_dict(cls, data: dict) -> Dependency:
        return cls(
            name=data['name'],
            rename=data.get('rename'),
            uses_default_features=data.get('uses_default_features', True),
            features=list(data.get('features') or []),
            kind=data.get('kind') or 'normal',
            target=data.get('target'),
            optional=data.get('optional', False),
        )


@dataclass
class Package:
    """One concrete package instance."""
    id: str
    name: str
    version: str
    manifest_path: str
    dependencies: list = field(default_factory=list)  # [Dependency]
    features: dict = field(default_factory=dict)  # feature -> [implication]
    source: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> Package:
        return cls(
            id=data['id'],
            name=data['name'],
            version=data['version'],
            manifest_path=data.get('manifest_path', ''),
            dependencies=[Dependency.from_dict(d) for d in data.get('dependencies', [])],
            features={k: list(v) for k, v in (data.get('features') or {}).items()},
            source=data.get('source'),
        )


@dataclass
class NodeDep:
    """A resolved edge out of a resolve node."""
    name: str  # extern crate name, dashes already folded to underscores
    pkg: str
    dep_kinds: list = field(default_factory=list)  # ["normal", "dev", "build"]

    @classmethod
    def from_dict(cls, data: dict) -> NodeDep:
        kinds = [k.get('kind') or 'normal' for k in data.get('dep_kinds') or []]
        return cls(name=data['name'], pkg=data['pkg'], dep_kinds=kinds)


@dataclass
class ResolveNode:
    """A package in cargo's resolve graph with its active dependencies."""
    id: str
    deps: list = field(default_factory=list)  # [NodeDep]
    features: list = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> ResolveNode:
        return cls(
            id=data['id'],
            deps=[NodeDep.from_dict(d) for d in data.get('deps') or []],
            features=list(data.get('features') or []),
        )


@dataclass
class Metadata:
    """A full `cargo metadata` snapshot."""
    packages: list = field(default_factory=list)  # [Package]
    workspace_members: list = field(default_factory=list)  # [package id]
    resolve: Optional[dict] = None  # package id -> ResolveNode
    workspace_root: str = ''
    _by_id: dict = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        self._by_id = {p.id: p for p in self.packages}

    @classmethod
    def from_dict(cls, data: dict) -> Metadata:
        resolve = None
        if data.get('resolve'):
            resolve = {}
            for node in data['resolve'].get('nodes') or []:
                resolve[node['id']] = ResolveNode.from_dict(node)
        return cls(
            packages=[Package.from_dict(p) for p in data.get('packages', [])],
            workspace_members=list(data.get('workspace_members') or []),
            resolve=resolve,
            workspace_root=data.get('workspace_root', ''),
        )

    def find_package(self, pkg_id: str) -> Optional[Package]:
        return self._by_id.get(pkg_id)

    def package(self, pkg_id: str) -> Package:
        """Look up a package by id; a missing id means the snapshot is broken."""
        pkg = self._by_id.get(pkg_id)
        if pkg is None:
            raise MetadataIntegrityError(f"Could not find crate {pkg_id} in the metadata")
        return pkg

    def workspace_packages(self) -> list:
        members = set(self.workspace_members)
        return [p for p in self.packages if p.id in members]


# ============================================================================
# CARGO METADATA
# ============================================================================

def manifest_file(manifest_path: Path) -> Path:
    """Append `Cargo.toml` when given a directory."""
    manifest_path = Path(manifest_path)
    if manifest_path.is_dir():
        return manifest_path / config.CARGO_FILE
    return manifest_path


def metadata_command(
    manifest_path: Path,
    workspace: bool = False,
    offline: bool = False,
    all_features: bool = True,
) -> list:
    cmd = [config.CARGO, 'metadata', '--format-version', '1',
           '--manifest-path', str(manifest_path)]
    if all_features:
        cmd.append('--all-features')
    if workspace:
        cmd.append('--no-deps')
    if offline:
        cmd.append('--offline')
    return cmd


def load_metadata(
    manifest_path: Path,
    workspace: bool = False,
    offline: bool = False,
    all_features: bool = True,
    verbosity: int = config.INFO,
) -> Metadata:
    """Run cargo metadata and parse its output. Any failure is fatal."""
    manifest_path = manifest_file(manifest_path)
    if not manifest_path.exists():
        raise MetadataLoadError(f"No {config.CARGO_FILE} found at {manifest_path}")

    cmd = metadata_command(manifest_path, workspace, offline, all_features)
    echo(f"Running: {' '.join(cmd)}", verbose=verbosity >= config.DEBUG)
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=config.METADATA_TIMEOUT
        )
    except FileNotFoundError as e:
        raise MetadataLoadError(f"Failed to load metadata: {config.CARGO} not found") from e
    except subprocess.TimeoutExpired as e:
        raise MetadataLoadError(
            f"Failed to load metadata: timed out after {config.METADATA_TIMEOUT}s") from e

    if result.returncode != 0:
        raise MetadataLoadError(f"Failed to load metadata: {result.stderr.strip()}")
    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise MetadataLoadError(f"Failed to load metadata: invalid JSON ({e})") from e

    meta = Metadata.from_dict(data)
    echo(f"Loaded {len(meta.packages)} packages ({len(meta.workspace_members)} in workspace)",
         verbose=verbosity >= config.INFO)
    return meta
