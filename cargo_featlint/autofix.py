"""
autofix.py - Format-preserving edits of a Cargo.toml `[features]` table.

The manifest is never re-serialized. A cursor scan over the raw text finds the
byte span of the target feature's array and the new value is spliced in next
to the last element, copying the array's own layout (single line or one item
per line, trailing comma or not, indentation). Every other byte stays as is.

Edits accumulate in memory; `save()` writes the final text once.
"""

from __future__ import annotations

import json
import os
import re
import shutil
import tempfile
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import AutofixError

BARE_KEY = re.compile(r'^[A-Za-z0-9_-]+$')
FEATURES_TABLE = 'features'


@dataclass
class ArrayItem:
    value: str
    start: int
    end: int


@dataclass
class KeyValue:
    table: Optional[str]
    key: str
    line_start: int
    value_start: int
    value_end: int


# ============================================================================
# SCANNER
# ============================================================================

def _skip_ws(text: str, pos: int, newlines: bool = True) -> int:
    chars = ' \t\r\n' if newlines else ' \t'
    while pos < len(text) and text[pos] in chars:
        pos += 1
    return pos


def _skip_comment(text: str, pos: int) -> int:
    end = text.find('\n', pos)
    return len(text) if end == -1 else end


def _skip_trivia(text: str, pos: int) -> int:
    """Skip whitespace, newlines and comments."""
    while True:
        pos = _skip_ws(text, pos)
        if pos < len(text) and text[pos] == '#':
            pos = _skip_comment(text, pos)
            continue
        return pos


def _scan_string(text: str, pos: int) -> int:
    """Return the index just past the string literal starting at `pos`."""
    for quote in ('"""', "'''"):
        if text.startswith(quote, pos):
            end = pos + 3
            while True:
                end = text.find(quote, end)
                if end == -1:
                    raise AutofixError(f"Unterminated string at offset {pos}")
                if quote == '"""' and _escaped(text, end):
                    end += 1
                    continue
                end += 3
                # `""""` closes with the extra quote inside the string
                while end < len(text) and text[end] == quote[0]:
                    end += 1
                return end

    quote = text[pos]
    end = pos + 1
    while end < len(text):
        ch = text[end]
        if ch == '\\' and quote == '"':
            end += 2
            continue
        if ch == quote:
            return end + 1
        if ch == '\n':
            break
        end += 1
    raise AutofixError(f"Unterminated string at offset {pos}")


def _escaped(text: str, pos: int) -> bool:
    backslashes = 0
    while pos - backslashes - 1 >= 0 and text[pos - backslashes - 1] == '\\':
        backslashes += 1
    return backslashes % 2 == 1


def _scan_value(text: str, pos: int) -> int:
    """Return the index just past the TOML value starting at `pos`."""
    if pos >= len(text):
        raise AutofixError("Missing value at end of file")
    ch = text[pos]
    if ch in '"\'':
        return _scan_string(text, pos)
    if ch in '[{':
        close = ']' if ch == '[' else '}'
        pos += 1
        while True:
            pos = _skip_trivia(text, pos)
            if pos >= len(text):
                raise AutofixError(f"Unclosed {ch!r} in manifest")
            if text[pos] == close:
                return pos + 1
            if text[pos] in ',=':
                pos += 1
            elif ch == '{' and text[pos] not in '"\'[{':
                # Bare key inside an inline table
                while pos < len(text) and text[pos] not in ' \t=.,}\n':
                    pos += 1
                if pos < len(text) and text[pos] == '.':
                    pos += 1
            else:
                pos = _scan_value(text, pos)
    # Bare value: number, bool, date
    while pos < len(text) and text[pos] not in ',]}#\r\n':
        pos += 1
    return pos


def _scan_key(text: str, pos: int) -> tuple:
    """Read a (possibly dotted or quoted) key. Returns (normalized key, end)."""
    parts = []
    while True:
        pos = _skip_ws(text, pos, newlines=False)
        if pos < len(text) and text[pos] in '"\'':
            end = _scan_string(text, pos)
            parts.append(_decode_string(text[pos:end]))
        else:
            end = pos
            while end < len(text) and (text[end].isalnum() or text[end] in '_-'):
                end += 1
            if end == pos:
                raise AutofixError(f"Expected a key at offset {pos}")
            parts.append(text[pos:end])
        pos = _skip_ws(text, end, newlines=False)
        if pos < len(text) and text[pos] == '.':
            pos += 1
            continue
        return '.'.join(parts), pos


def _decode_string(raw: str) -> str:
    if raw.startswith("'"):
        return raw[1:-1]
    try:
        return json.loads(raw)
    except ValueError as e:
        raise AutofixError(f"Cannot decode string {raw}: {e}") from e


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def _line_start(text: str, pos: int) -> int:
    return text.rfind('\n', 0, pos) + 1


def _line_end(text: str, pos: int) -> int:
    end = text.find('\n', pos)
    return len(text) if end == -1 else end + 1


def scan_entries(text: str) -> tuple:
    """Walk the document. Returns ([KeyValue], {table: header end offset})."""
    entries = []
    headers = {}
    table = None
    pos = 0
    while True:
        pos = _skip_trivia(text, pos)
        if pos >= len(text):
            return entries, headers
        if text[pos] == '[':
            array_table = text.startswith('[[', pos)
            name, end = _scan_key(text, pos + (2 if array_table else 1))
            closer = ']]' if array_table else ']'
            if not text.startswith(closer, end):
                raise AutofixError(f"Malformed table header at offset {pos}")
            table = name
            headers.setdefault(name, _line_end(text, end))
            pos = end + len(closer)
            continue

        key, end = _scan_key(text, pos)
        if end >= len(text) or text[end] != '=':
            raise AutofixError(f"Expected '=' after key {key!r}")
        value_start = _skip_ws(text, end + 1, newlines=False)
        value_end = _scan_value(text, value_start)
        entries.append(KeyValue(table, key, _line_start(text, pos), value_start, value_end))
        pos = value_end


def scan_array(text: str, start: int) -> tuple:
    """Read the string items of the array at `start`. Returns (items, close offset)."""
    if text[start] != '[':
        raise AutofixError(f"Expected an array at offset {start}")
    items = []
    pos = start + 1
    while True:
        pos = _skip_trivia(text, pos)
        if pos >= len(text):
            raise AutofixError("Unclosed array in manifest")
        ch = text[pos]
        if ch == ']':
            return items, pos
        if ch == ',':
            pos += 1
            continue
        if ch not in '"\'':
            raise AutofixError(f"Feature arrays may only hold strings (offset {pos})")
        end = _scan_string(text, pos)
        items.append(ArrayItem(_decode_string(text[pos:end]), pos, end))
        pos = end


# ============================================================================
# AUTOFIXER
# ============================================================================

class AutoFixer:
    """Batched, format-preserving edits of one manifest."""

    def __init__(self, manifest: Path, text: str):
        self.manifest = Path(manifest)
        self.text = text
        self.original = text

    @classmethod
    def from_manifest(cls, manifest: Path) -> AutoFixer:
        manifest = Path(manifest)
        try:
            with open(manifest, encoding='utf-8', newline='') as f:
                text = f.read()
        except OSError as e:
            raise AutofixError(f"Cannot read {manifest}: {e}") from e
        try:
            tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise AutofixError(f"Cannot parse {manifest}: {e}") from e
        return cls(manifest, text)

    @property
    def modified(self) -> bool:
        return self.text != self.original

    def _indent_unit(self) -> str:
        for line in self.text.splitlines():
            if line.startswith('\t'):
                return '\t'
        return '    '

    def _newline(self) -> str:
        return '\r\n' if '\r\n' in self.text else '\n'

    def _find_feature(self, feature: str) -> Optional[KeyValue]:
        entries, headers = scan_entries(self.text)
        if FEATURES_TABLE not in headers:
            raise AutofixError(f"No [{FEATURES_TABLE}] table in {self.manifest}")
        for entry in entries:
            if entry.table == FEATURES_TABLE and entry.key == feature:
                return entry
        return None

    def _insert_feature(self, feature: str):
        """Add `feature = []` as the last entry of the features table."""
        entries, headers = scan_entries(self.text)
        at = headers[FEATURES_TABLE]
        for entry in entries:
            if entry.table == FEATURES_TABLE:
                at = _line_end(self.text, entry.value_end)
        key = feature if BARE_KEY.match(feature) else _quote(feature)
        nl = self._newline()
        line = f"{key} = []{nl}"
        if at > 0 and not self.text[:at].endswith('\n'):
            line = nl + line
        self.text = self.text[:at] + line + self.text[at:]

    def add_to_feature(self, feature: str, value: str):
        """Append `value` to the array of `feature`, unless it is already there."""
        entry = self._find_feature(feature)
        if entry is None:
            self._insert_feature(feature)
            entry = self._find_feature(feature)
        if self.text[entry.value_start] != '[':
            raise AutofixError(f"Feature {feature!r} in {self.manifest} is not an array")

        items, close = scan_array(self.text, entry.value_start)
        if any(item.value == value for item in items):
            return
        self.text = self._splice(entry.value_start, items, close, _quote(value))

    def _splice(self, open_at: int, items: list, close: int, quoted: str) -> str:
        text = self.text
        multiline = '\n' in text[open_at:close]
        nl = self._newline()

        if not items:
            if not multiline:
                return text[:open_at + 1] + quoted + text[close:]
            indent = text[_line_start(text, close):close]
            if indent.strip():
                indent = ''
            at = _line_start(text, close)
            if indent == '' and at != close:
                return text[:close] + nl + self._indent_unit() + quoted + ',' + nl + text[close:]
            return text[:at] + indent + self._indent_unit() + quoted + ',' + nl + text[at:]

        last = items[-1]
        after = _skip_ws(text, last.end, newlines=False)
        has_comma = after < len(text) and text[after] == ','

        if not multiline:
            if has_comma:
                return text[:after + 1] + ' ' + quoted + ',' + text[after + 1:]
            return text[:last.end] + ', ' + quoted + text[last.end:]

        line_start = _line_start(text, last.start)
        indent = text[line_start:_skip_ws(text, line_start, newlines=False)]
        if _line_start(text, close) <= last.start:
            # The closing bracket shares the line with the last item
            column = ' ' * (last.start - line_start) if indent != text[line_start:last.start] else indent
            if has_comma:
                return text[:after + 1] + nl + column + quoted + ',' + text[after + 1:]
            return text[:last.end] + ',' + nl + column + quoted + text[last.end:]

        if has_comma:
            at = _line_end(text, after)
            return text[:at] + indent + quoted + ',' + nl + text[at:]
        at = _line_end(text, last.end)
        return (text[:last.end] + ',' + text[last.end:at]
                + indent + quoted + nl + text[at:])

    def save(self):
        """Atomically replace the manifest with the edited text."""
        if not self.modified:
            return
        fd, tmp = tempfile.mkstemp(dir=self.manifest.parent, prefix='.Cargo.toml.')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8', newline='') as f:
                f.write(self.text)
            shutil.copymode(self.manifest, tmp)
            os.replace(tmp, self.manifest)
        except OSError as e:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise AutofixError(f"Cannot write {self.manifest}: {e}") from e
        self.original = self.text
