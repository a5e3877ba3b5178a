"""
Flat KEY=VALUE configuration files for the dependent service.

Parsing is permissive: blank lines, `#` comments and lines without `=` carry no
settings but are kept verbatim, line endings included, so a rewrite only touches
the keys a repair changed. Bytes that are not valid UTF-8 survive a rewrite
unchanged (surrogateescape).
"""
from __future__ import annotations

import re
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .errors import ConfigFileError

ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"

DATABASE_URL_KEY = "DATABASE_URL"
PLUGINS_KEY = "ENABLED_PLUGINS"
DATABASE_URL_PATTERN = re.compile(r"^postgresql://([^:]+):([^@]+)@([^:]+):(\d+)/(.+)$")


def unquote(value: str) -> str:
    return value.replace('"', "").replace("'", "").strip()


def valid_database_url(value: Optional[str]) -> bool:
    return bool(value) and DATABASE_URL_PATTERN.match(unquote(value)) is not None


def split_plugins(value: Optional[str]) -> list[str]:
    return [p.strip() for p in unquote(value or "").split(",") if p.strip()]


def _split_lines(text: str) -> Iterable[tuple[str, str]]:
    """Yield (line, ending) pairs; the ending is "\\n", "\\r\\n" or "" for a final unterminated line."""
    parts = text.split("\n")
    for i, part in enumerate(parts):
        if i == len(parts) - 1:
            if part:
                yield part, ""
            return
        if part.endswith("\r"):
            yield part[:-1], "\r\n"
        else:
            yield part, "\n"


@dataclass
class _Line:
    raw: str
    key: Optional[str] = None
    value: Optional[str] = None
    dirty: bool = False
    ending: str = "\n"

    def render(self) -> str:
        if self.key is None or not self.dirty:
            return self.raw + self.ending
        return f"{self.key}={self.value}{self.ending}"


class EnvFile:
    def __init__(self, lines: Iterable[_Line], path: Optional[Path] = None, newline: str = "\n") -> None:
        self._lines: List[_Line] = list(lines)
        self.path = path
        self.newline = newline

    @classmethod
    def parse(cls, text: str, path: Optional[Path] = None) -> "EnvFile":
        lines = []
        newline = "\n"
        for raw, ending in _split_lines(text):
            if ending == "\r\n" and not lines:
                newline = ending
            stripped = raw.strip()
            if not stripped or stripped.startswith("#") or "=" not in stripped:
                lines.append(_Line(raw=raw, ending=ending))
                continue
            key, _, value = stripped.partition("=")
            key = key.strip()
            if not key:
                lines.append(_Line(raw=raw, ending=ending))
                continue
            lines.append(_Line(raw=raw, key=key, value=value.strip(), ending=ending))
        return cls(lines, path=path, newline=newline)

    @classmethod
    def load(cls, path: Path) -> "EnvFile":
        try:
            text = Path(path).read_bytes().decode(ENCODING, ENCODING_ERRORS)
        except OSError as e:
            raise ConfigFileError(f"Failed to read configuration file {path}: {e}") from e
        return cls.parse(text, path=Path(path))

    def as_dict(self) -> Dict[str, str]:
        values: Dict[str, str] = {}
        for line in self._lines:
            if line.key is not None:
                values[line.key] = line.value or ""
        return values

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.as_dict().get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self.as_dict()

    def keys(self) -> list[str]:
        return list(self.as_dict().keys())

    def set(self, key: str, value: str, comment: Optional[str] = None) -> bool:
        """
        Set `key` in place of its first occurrence, dropping later duplicates.
        A new key is appended at the end (after `comment`, if given).
        Returns True when the rendered file changes.
        """
        before = self.render()
        kept: List[_Line] = []
        found = False
        for line in self._lines:
            if line.key == key:
                if found:
                    continue
                found = True
                if line.value != value:
                    line.value = value
                    line.dirty = True
            kept.append(line)
        if not found:
            if kept and not kept[-1].ending:
                kept[-1].ending = self.newline
            if comment:
                kept.append(_Line(raw=f"# {comment}", ending=self.newline))
            kept.append(_Line(raw="", key=key, value=value, dirty=True, ending=self.newline))
        self._lines = kept
        return self.render() != before

    def render(self) -> str:
        return "".join(line.render() for line in self._lines)

    def save(self, *, timestamp: Callable[[], int] = lambda: int(time.time() * 1000)) -> Optional[Path]:
        """
        Rewrite the whole file, first copying the original to `<name>.backup.<ts>`.
        Returns the backup path (None when there was no original to back up).
        """
        if self.path is None:
            raise ConfigFileError("env file has no path to save to")
        backup: Optional[Path] = None
        try:
            if self.path.exists():
                backup = self.path.with_name(f"{self.path.name}.backup.{timestamp()}")
                shutil.copy2(self.path, backup)
            self.path.write_bytes(self.render().encode(ENCODING, ENCODING_ERRORS))
        except (OSError, UnicodeError) as e:
            raise ConfigFileError(f"Failed to write configuration file {self.path}: {e}") from e
        return backup
