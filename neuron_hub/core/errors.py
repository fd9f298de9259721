from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class HubError(Exception):
    """A coded hub error pointing at where it happened.

    `code` is a stable E_* identifier, `file` the document it came from and
    `path` the dotted field path inside it (e.g. program.workstreams[0].id).
    The CLI prints these and maps them to exit codes.
    """

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<program>"
        return f"{loc}: {self.code}: {self.message}"


class HubLoadError(HubError):
    """A program, snapshot or settings file could not be read or parsed."""


class HubValidationError(HubError):
    """A parsed program document breaks a field or structure rule."""


class SnapshotError(HubError):
    """A snapshot write broke a store rule, e.g. saving outside the current month."""
