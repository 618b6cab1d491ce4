"""Lint and fix feature propagation across a Rust workspace."""

from .config import VERSION as __version__
from .dag import Dag, NodePath
from .errors import (
    AutofixError,
    FeatureLintError,
    LintError,
    MetadataIntegrityError,
    MetadataLoadError,
)
from .metadata import Metadata, load_metadata

__all__ = [
    'AutofixError',
    'Dag',
    'FeatureLintError',
    'LintError',
    'Metadata',
    'MetadataIntegrityError',
    'MetadataLoadError',
    'NodePath',
    'load_metadata',
]
