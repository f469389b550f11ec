from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping

from pydantic import ValidationError

from errors import BestEffortError, FieldError, NotFoundError, StoreError, ToolValidationError, UnknownToolError
from tools.schemas import ToolInput, input_json_schema

_LOGGER = logging.getLogger("affiliate_mcp.tools")


class FailureKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STORE = "store"
    BEST_EFFORT = "best_effort"
    INTERNAL = "internal"


@dataclass
class ToolResponse:
    """The `{text, structuredContent}` envelope every tool call resolves to."""

    text: str
    structured_content: dict[str, Any] | None = None
    failure: FailureKind | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"text": self.text}
        if self.structured_content is not None:
            payload["structuredContent"] = self.structured_content
        return payload


ToolHandler = Callable[[Any], Awaitable[ToolResponse]]


@dataclass(frozen=True)
class WidgetBinding:
    kind: str
    uri: str
    invoking: str
    invoked: str


@dataclass
class ToolSpec:
    name: str
    title: str
    description: str
    input_model: type[ToolInput]
    handler: ToolHandler
    failure_text: str
    failure_content: dict[str, Any] | None = None
    widget: WidgetBinding | None = None
    annotations: dict[str, Any] = field(default_factory=dict)

    @property
    def input_schema(self) -> dict[str, Any]:
        return input_json_schema(self.input_model)

    def validate(self, arguments: Any) -> ToolInput:
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise ToolValidationError([FieldError("(root)", "Tool arguments must be an object")], tool=self.name)
        try:
            return self.input_model.model_validate(dict(arguments))
        except ValidationError as exc:
            raise ToolValidationError(_field_errors(exc), tool=self.name) from exc

    def fallback(self, failure: FailureKind) -> ToolResponse:
        return ToolResponse(
            text=self.failure_text,
            structured_content=copy.deepcopy(self.failure_content),
            failure=failure,
        )


def _field_errors(exc: ValidationError) -> list[FieldError]:
    errors = []
    for item in exc.errors():
        path = ".".join(str(part) for part in item.get("loc", ())) or "(root)"
        errors.append(FieldError(path, str(item.get("msg", "Invalid value"))))
    return errors


def _failure_kind(exc: BaseException) -> FailureKind:
    if isinstance(exc, BestEffortError):
        return FailureKind.BEST_EFFORT
    if isinstance(exc, NotFoundError):
        return FailureKind.NOT_FOUND
    if isinstance(exc, StoreError):
        return FailureKind.STORE
    return FailureKind.INTERNAL


class ToolDispatcher:
    """Validates arguments, runs handlers and normalizes every outcome into a ToolResponse.

    The dispatcher keeps no per-call state, so any number of invocations
    may be awaited concurrently.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> ToolSpec:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec
        return spec

    def get(self, name: str) -> ToolSpec:
        spec = self._tools.get(name)
        if spec is None:
            raise UnknownToolError(name)
        return spec

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    async def invoke(self, name: str, arguments: Any = None) -> ToolResponse:
        spec = self.get(name)

        try:
            validated = spec.validate(arguments)
        except ToolValidationError as exc:
            _LOGGER.info("tool=%s rejected: %s", name, exc)
            return ToolResponse(
                text=f"Invalid arguments for {name}: {exc}",
                structured_content=exc.as_payload(),
                failure=FailureKind.VALIDATION,
            )

        started = time.perf_counter()
        try:
            response = await spec.handler(validated)
        except BestEffortError as exc:
            _LOGGER.warning("tool=%s best-effort failure: %s", name, exc)
            return spec.fallback(FailureKind.BEST_EFFORT)
        except (NotFoundError, StoreError) as exc:
            _LOGGER.warning("tool=%s failed: %s", name, exc)
            return spec.fallback(_failure_kind(exc))
        except Exception:
            _LOGGER.exception("tool=%s raised an unexpected error", name)
            return spec.fallback(FailureKind.INTERNAL)

        _LOGGER.info("tool=%s ok duration_ms=%.1f", name, (time.perf_counter() - started) * 1000)
        return response


__all__ = [
    "FailureKind",
    "ToolResponse",
    "ToolHandler",
    "WidgetBinding",
    "ToolSpec",
    "ToolDispatcher",
]
