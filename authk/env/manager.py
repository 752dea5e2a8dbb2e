"""Read and update a single key in a human-edited .env style file.

The file is parsed into an ordered list of lines. Lines assigning the managed
key (``[export ]KEY=value[ #comment]``) become ``Assignment`` entries; every
other line is kept as an opaque ``EnvLine`` and written back byte for byte.
When the key is assigned more than once, only the first assignment is read or
rewritten and later ones are left untouched.
"""

import errno
import logging
import os
import re
import stat
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Union

from ..core.exceptions import KeyNotFoundError

logger = logging.getLogger(__name__)


COMMENT_MARKER = " #"
NEW_FILE_MODE = 0o600


@dataclass(frozen=True)
class EnvLine:
    """A line passed through unchanged."""

    raw: str

    def render(self) -> str:
        return self.raw


@dataclass(frozen=True)
class Assignment(EnvLine):
    """A line assigning the managed key, split into its parts."""

    indent: str
    export: str
    key: str
    separator: str
    rest: str
    line_ending: str = ""

    @property
    def comment(self) -> str:
        idx = self.rest.find(COMMENT_MARKER)
        return self.rest[idx:] if idx != -1 else ""

    @property
    def value(self) -> str:
        """The assigned value without comment, whitespace and one pair of quotes."""
        value_part = self.rest
        idx = value_part.find(COMMENT_MARKER)
        if idx != -1:
            value_part = value_part[:idx]
        return _unquote(value_part.strip())

    def with_value(self, value: str) -> "Assignment":
        rest = f'"{value}"{self.comment}'
        raw = f"{self.indent}{self.export}{self.key}{self.separator}{rest}{self.line_ending}"
        return replace(self, raw=raw, rest=rest)


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    return value


def _assignment_pattern(key: str) -> "re.Pattern[str]":
    return re.compile(rf"^(\s*)(export\s+)?({re.escape(key)})(\s*=\s*)(.*)$")


def split_lines(text: str) -> List[str]:
    """Split on ``\\n`` only; a final terminator does not start a new line."""
    if not text:
        return []
    lines = text.split("\n")
    if text.endswith("\n"):
        lines.pop()
    return lines


class EnvDocument:
    """Line model of an env file for one managed key."""

    def __init__(self, key: str, lines: Optional[List[EnvLine]] = None):
        self.key = key
        self.lines: List[EnvLine] = list(lines or [])

    @classmethod
    def parse(cls, text: str, key: str) -> "EnvDocument":
        pattern = _assignment_pattern(key)
        lines: List[EnvLine] = []

        for raw in split_lines(text):
            body, line_ending = (raw[:-1], "\r") if raw.endswith("\r") else (raw, "")
            match = pattern.match(body)
            if match:
                indent, export, matched_key, separator, rest = match.groups()
                lines.append(Assignment(
                    raw=raw,
                    indent=indent,
                    export=export or "",
                    key=matched_key,
                    separator=separator,
                    rest=rest,
                    line_ending=line_ending,
                ))
            else:
                lines.append(EnvLine(raw=raw))

        return cls(key, lines)

    @property
    def assignments(self) -> List[Assignment]:
        return [line for line in self.lines if isinstance(line, Assignment)]

    def first_assignment(self) -> Optional[Assignment]:
        for line in self.lines:
            if isinstance(line, Assignment):
                return line
        return None

    def get(self) -> Optional[str]:
        assignment = self.first_assignment()
        return assignment.value if assignment is not None else None

    def set_value(self, value: str) -> bool:
        """Rewrite the first assignment, or append one if there is none.

        Returns:
            True if an existing line was rewritten, False if a line was appended
        """
        for i, line in enumerate(self.lines):
            if isinstance(line, Assignment):
                self.lines[i] = line.with_value(value)
                return True

        self.lines.append(Assignment(
            raw=f'{self.key}="{value}"',
            indent="",
            export="",
            key=self.key,
            separator="=",
            rest=f'"{value}"',
        ))
        return False

    def render(self) -> str:
        return "".join(f"{line.render()}\n" for line in self.lines)


class EnvFileManager:
    """Reads and updates one key in one file."""

    def __init__(self, file_path: Union[str, Path], key: str):
        self.file_path = Path(file_path)
        self.key = key

    def __repr__(self) -> str:
        return f"EnvFileManager({str(self.file_path)!r}, {self.key!r})"

    def get(self) -> str:
        """Return the current value of the key.

        Raises:
            FileNotFoundError: If the file does not exist
            KeyNotFoundError: If no line assigns the key
        """
        document = EnvDocument.parse(self._read(), self.key)
        value = document.get()
        if value is None:
            raise KeyNotFoundError(self.key, str(self.file_path))
        return value

    def update(self, value: str) -> None:
        """Set the key to ``value``, preserving every other line of the file.

        A missing file is treated as empty and created. The file is replaced
        through a rename, so hard links to it are not updated.

        Raises:
            ValueError: If the value contains a line break or the comment marker
            PermissionError: If the existing file is not writable
            OSError: If the file cannot be read or written
        """
        if "\n" in value or "\r" in value:
            raise ValueError("value must not contain line breaks")
        if COMMENT_MARKER in value:
            raise ValueError(f"value must not contain {COMMENT_MARKER!r}, it would be read back as a comment")

        try:
            text = self._read()
        except FileNotFoundError:
            logger.debug(f"{self.file_path} does not exist, it will be created")
            text = ""

        document = EnvDocument.parse(text, self.key)
        if len(document.assignments) > 1:
            logger.warning(
                f"{self.key} is assigned {len(document.assignments)} times in {self.file_path}, "
                "only the first assignment is updated"
            )

        document.set_value(value)
        self._write(document.render())

    def _read(self) -> str:
        with open(self.file_path, "r", encoding="utf-8", newline="") as f:
            return f.read()

    def _write(self, content: str) -> None:
        # Follow symlinks so the link itself survives the rename
        path = Path(os.path.realpath(self.file_path))

        try:
            mode = stat.S_IMODE(os.stat(path).st_mode)
        except FileNotFoundError:
            mode = NEW_FILE_MODE
        else:
            # The rename would otherwise bypass the file's own read-only mode
            if not os.access(path, os.W_OK):
                raise PermissionError(errno.EACCES, os.strerror(errno.EACCES), str(path))

        temp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                newline="",
                dir=path.parent,
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False,
            ) as temp_file:
                temp_path = temp_file.name
                temp_file.write(content)
                temp_file.flush()
                os.fsync(temp_file.fileno())

            os.chmod(temp_path, mode)
            os.replace(temp_path, path)
        except Exception:
            if temp_path is not None and os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

        logger.debug(f"Wrote {self.key} to: {path}")


def find_upwards(name: Union[str, Path], start: Optional[Union[str, Path]] = None) -> Path:
    """Locate ``name`` in ``start`` (default: cwd) or the nearest parent.

    Raises:
        FileNotFoundError: If no directory up to the root contains the file
    """
    candidate = Path(name)
    if candidate.is_absolute():
        if candidate.exists():
            return candidate
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(candidate))

    current = Path(start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        path = directory / candidate
        if path.exists():
            return path

    raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(candidate))
