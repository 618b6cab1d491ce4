"""
errors.py - Exception types raised by cargo_featlint.

Lint findings are not exceptions; they are reported and counted. These cover
the cases where a run cannot produce a trustworthy answer.
"""


class FeatureLintError(Exception):
    """Base class for every error the CLI reports and exits on."""


class MetadataLoadError(FeatureLintError):
    """`cargo metadata` could not be run or its output could not be read."""


class MetadataIntegrityError(FeatureLintError):
    """The metadata snapshot is inconsistent (unknown feature, dependency or package id)."""


class AutofixError(FeatureLintError):
    """A manifest could not be edited or written."""


class LintError(FeatureLintError):
    """A lint was invoked with arguments that match nothing in the workspace."""
