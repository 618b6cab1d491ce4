#!/usr/bin/env python3
"""
cli.py - Command line entry point.

Usage:
    cargo-featlint lint propagate-feature --feature std
    cargo-featlint lint propagate-feature --feature runtime-benchmarks --fix
    cargo-featlint lint never-enables --precondition std --stays-disabled alloc
    cargo-featlint lint never-implies --precondition default --stays-disabled std
    cargo-featlint trace my-crate some-dep --show-version
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from . import config
from .errors import FeatureLintError
from .lint import FixOptions, run_never_enables, run_never_implies, run_propagate_feature
from .metadata import load_metadata, manifest_file
from .trace import run_trace


def metadata_args() -> argparse.ArgumentParser:
    """Arguments describing how to load cargo metadata, shared by all subcommands."""
    parser = argparse.ArgumentParser(add_help=False)
    group = parser.add_argument_group('metadata')
    group.add_argument('--manifest-path', type=Path, default=Path(config.CARGO_FILE),
                       help='Cargo manifest path or directory (default: Cargo.toml)')
    group.add_argument('--workspace', action='store_true',
                       help='Only consider workspace crates')
    group.add_argument('--offline', action='store_true',
                       help='Run cargo metadata in offline mode')
    group.add_argument('--all-features', action=argparse.BooleanOptionalAction, default=True,
                       help='Resolve with all features enabled; --no-all-features uses the default feature set')
    return parser


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='cargo-featlint',
        description='Lint how features propagate through a Rust workspace',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split('Usage:', 1)[1],
    )
    parser.add_argument('--quiet', '-q', action='store_true', help='Only print findings')
    parser.add_argument('--verbose', '-v', action='store_true', help='Trace graph construction')
    parser.add_argument('--version', action='version', version=f'%(prog)s {config.VERSION}')
    common = metadata_args()
    sub = parser.add_subparsers(dest='command', required=True)

    lint = sub.add_parser('lint', help='Lint feature usage')
    lint_sub = lint.add_subparsers(dest='lint', required=True)

    prop = lint_sub.add_parser('propagate-feature', parents=[common],
                               help='Check whether features are properly propagated')
    prop.add_argument('--feature', required=True, help='The feature to check')
    prop.add_argument('--packages', '-p', nargs='*', default=[],
                      help='The packages to check (default: all)')
    prop.add_argument('--crate-versions', action='store_true',
                      help='Show crate versions in the output')
    prop.add_argument('--fix', action='store_true', help='Try to fix the problems')
    prop.add_argument('--fix-package', help='Fix only issues with this package as feature source')
    prop.add_argument('--fix-dependency', help='Fix only issues with this package as dependency')
    prop.add_argument('--show-maybe-unused', action='store_true',
                      help='Also report crates that have the feature but forward it nowhere')

    enables = lint_sub.add_parser('never-enables', parents=[common],
                                  help='A feature never directly enables another feature')
    enables.add_argument('--precondition', required=True,
                         help='Left side of the implication; may be "default"')
    enables.add_argument('--stays-disabled', required=True,
                         help='Stays disabled whenever the precondition is enabled')

    implies = lint_sub.add_parser('never-implies', parents=[common],
                                  help='A feature never transitively implies another feature')
    implies.add_argument('--precondition', required=True,
                         help='Left side of the implication; may be "default"')
    implies.add_argument('--stays-disabled', required=True,
                         help='Stays disabled whenever the precondition is enabled')
    implies.add_argument('--show-source', action='store_true',
                         help='Show the source of crates in the output')
    implies.add_argument('--show-version', action='store_true',
                         help='Show the version of crates in the output')
    implies.add_argument('--path-delimiter', default=config.DEFAULT_PATH_DELIMITER,
                         help=r'Delimiter for rendering paths; \n and \t are unescaped')

    trace = sub.add_parser('trace', parents=[common],
                           help='Show the dependency path from one crate to another')
    trace.add_argument('from_crate', metavar='FROM')
    trace.add_argument('to_crate', metavar='TO')
    trace.add_argument('--show-version', action='store_true',
                       help='Show the version of crates in the output')
    trace.add_argument('--path-delimiter', default=config.DEFAULT_PATH_DELIMITER,
                       help=r'Delimiter for rendering paths; \n and \t are unescaped')
    return parser


def verbosity_of(args) -> int:
    if args.quiet:
        return config.QUIET
    if args.verbose:
        return config.DEBUG
    return config.INFO


def dispatch(args, verbosity: int) -> int:
    meta = load_metadata(
        args.manifest_path,
        workspace=args.workspace,
        offline=args.offline,
        all_features=args.all_features,
        verbosity=verbosity,
    )

    if args.command == 'trace':
        return run_trace(meta, args.from_crate, args.to_crate,
                         show_version=args.show_version,
                         path_delimiter=args.path_delimiter,
                         verbosity=verbosity)

    if args.lint == 'propagate-feature':
        # Only manifests below the workspace manifest's directory may be rewritten
        allowed_dir = manifest_file(args.manifest_path).resolve().parent
        fix = FixOptions(
            enabled=args.fix,
            package=args.fix_package,
            dependency=args.fix_dependency,
            allowed_dir=allowed_dir,
        )
        return run_propagate_feature(meta, args.feature,
                                     packages=args.packages,
                                     crate_versions=args.crate_versions,
                                     fix=fix,
                                     show_maybe_unused=args.show_maybe_unused,
                                     verbosity=verbosity)
    if args.lint == 'never-enables':
        return run_never_enables(meta, args.precondition, args.stays_disabled,
                                 verbosity=verbosity)
    return run_never_implies(meta, args.precondition, args.stays_disabled,
                             show_source=args.show_source,
                             show_version=args.show_version,
                             path_delimiter=args.path_delimiter,
                             verbosity=verbosity)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return dispatch(args, verbosity_of(args))
    except FeatureLintError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    raise SystemExit(main())
