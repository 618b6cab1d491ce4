"""
config.py - Constants shared by the metadata loader, linters and CLI.
"""

import os

# ============================================================================
# CONFIGURATION
# ============================================================================

VERSION = "0.4.0"

CARGO = os.environ.get('CARGO', 'cargo')
CARGO_FILE = 'Cargo.toml'
METADATA_TIMEOUT = 300  # seconds; a cold registry fetch can be slow

DEFAULT_FEATURE = 'default'
DEFAULT_PATH_DELIMITER = ' -> '

# Verbosity levels, threaded explicitly from the CLI into each component
QUIET = 0
INFO = 1
DEBUG = 2
