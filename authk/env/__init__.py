"""Format-preserving updates of a single key in .env style files."""

from .manager import Assignment, EnvDocument, EnvFileManager, EnvLine, find_upwards

__all__ = [
    "Assignment",
    "EnvDocument",
    "EnvFileManager",
    "EnvLine",
    "find_upwards",
]
