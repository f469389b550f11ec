from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence


@dataclass(frozen=True)
class FieldError:
    path: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"path": self.path, "message": self.message}


class ToolError(Exception):
    """Base class for failures raised while serving a tool call."""


class UnknownToolError(ToolError, LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class ToolValidationError(ToolError, ValueError):
    """Arguments rejected before any handler ran."""

    def __init__(self, errors: Sequence[FieldError], tool: str | None = None) -> None:
        self.errors = list(errors)
        self.tool = tool
        summary = "; ".join(f"{err.path}: {err.message}" for err in self.errors) or "invalid arguments"
        super().__init__(summary)

    def as_payload(self) -> dict[str, Any]:
        return {"errors": [err.as_dict() for err in self.errors]}


class NotFoundError(ToolError):
    """The primary entity of a call does not exist."""

    def __init__(self, entity: str, identifier: Any) -> None:
        super().__init__(f"{entity} not found: {identifier}")
        self.entity = entity
        self.identifier = identifier


class StoreError(ToolError):
    """A query or insert against the data store failed."""


class BestEffortError(ToolError):
    """A non-critical operation failed.

    The dispatcher answers these with the tool's fallback text, which for
    best-effort tools reads like success, and records the failure on the
    response instead of surfacing it to the user.
    """


__all__ = [
    "FieldError",
    "ToolError",
    "UnknownToolError",
    "ToolValidationError",
    "NotFoundError",
    "StoreError",
    "BestEffortError",
]
