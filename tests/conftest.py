"""Fixtures for building small fake cargo workspaces without cargo."""

from pathlib import Path

import pytest

from cargo_featlint.metadata import Metadata

REGISTRY = 'registry+https://github.com/rust-lang/crates.io-index'


def dep(name, rename=None, default_features=True, features=(), kind=None,
        optional=False, active=True, target=None):
    """A dependency declaration as `cargo metadata` reports it.

    `active=False` keeps the declaration but leaves it out of the resolve
    graph, like a disabled optional dependency.
    """
    return {
        'name': name,
        'rename': rename,
        'uses_default_features': default_features,
        'features': list(features),
        'kind': kind,
        'optional': optional,
        'target': target,
        '_active': active,
    }


class FakeWorkspace:
    def __init__(self, root: Path):
        self.root = root
        self.crates = {}  # name -> package dict

    def crate(self, name, version='0.1.0', deps=(), features=None, member=True, manifest=None):
        if member:
            pkg_id = f"path+file://{self.root / name}#{name}@{version}"
            manifest_path = self.root / name / 'Cargo.toml'
            manifest_path.parent.mkdir(parents=True, exist_ok=True)
            manifest_path.write_text(
                manifest if manifest is not None else render_manifest(name, version, deps, features or {}))
            source = None
        else:
            pkg_id = f"{REGISTRY}#{name}@{version}"
            manifest_path = Path('/registry') / f"{name}-{version}" / 'Cargo.toml'
            source = REGISTRY
        self.crates[name] = {
            'id': pkg_id,
            'name': name,
            'version': version,
            'manifest_path': str(manifest_path),
            'dependencies': [d if isinstance(d, dict) else dep(d) for d in deps],
            'features': dict(features or {}),
            'source': source,
            '_member': member,
        }
        return pkg_id

    def id(self, name):
        return self.crates[name]['id']

    def manifest(self, name) -> Path:
        return Path(self.crates[name]['manifest_path'])

    def as_dict(self, resolve=True) -> dict:
        packages = []
        nodes = []
        for pkg in self.crates.values():
            deps = [{k: v for k, v in d.items() if not k.startswith('_')} for d in pkg['dependencies']]
            packages.append({**{k: v for k, v in pkg.items() if not k.startswith('_')},
                             'dependencies': deps})
            node_deps = []
            for d in pkg['dependencies']:
                if not d['_active'] or d['name'] not in self.crates:
                    continue
                node_deps.append({
                    'name': (d['rename'] or d['name']).replace('-', '_'),
                    'pkg': self.crates[d['name']]['id'],
                    'dep_kinds': [{'kind': d['kind'], 'target': d['target']}],
                })
            nodes.append({'id': pkg['id'], 'deps': node_deps, 'features': []})
        return {
            'packages': packages,
            'workspace_members': [p['id'] for p in self.crates.values() if p['_member']],
            'resolve': {'nodes': nodes, 'root': None} if resolve else None,
            'workspace_root': str(self.root),
        }

    def metadata(self, resolve=True) -> Metadata:
        return Metadata.from_dict(self.as_dict(resolve))


def render_manifest(name, version, deps, features) -> str:
    lines = ['[package]', f'name = "{name}"', f'version = "{version}"', '', '[dependencies]']
    for d in deps:
        d = d if isinstance(d, dict) else dep(d)
        key = d['rename'] or d['name']
        package = f', package = "{d["name"]}"' if d['rename'] else ''
        lines.append(f'{key} = {{ path = "../{d["name"]}"{package} }}')
    lines += ['', '[features]']
    for feature, values in features.items():
        items = ', '.join(f'"{v}"' for v in values)
        lines.append(f'{feature} = [{items}]')
    return '\n'.join(lines) + '\n'


@pytest.fixture
def workspace(tmp_path):
    return FakeWorkspace(tmp_path)
