"""Messages exchanged between a rendered widget and its host frame.

Inbound (host -> widget): ``{"structuredContent": {...}}``; each delivery
replaces whatever the widget showed before.

Outbound (widget -> host): ``{"action": <name>, ...identifiers}``. Widgets
never call tools themselves; ``resolve_action`` is the host-side mapping
from an action message to the tool call that should follow it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from errors import FieldError, ToolValidationError
from tools.schemas import Identifier

_LEAD_ROUTING_KEYS = ("brand_id", "product_id", "consent")


class _Action(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RequestDataAction(_Action):
    action: Literal["requestData"]


class SelectBrandAction(_Action):
    action: Literal["selectBrand"]
    brand_id: Identifier = Field(alias="brandId")


class SelectProductAction(_Action):
    action: Literal["selectProduct"]
    product_id: Identifier = Field(alias="productId")


class GoBackAction(_Action):
    action: Literal["goBack"]
    brand_id: Identifier | None = Field(default=None, alias="brandId")


class SubmitLeadAction(_Action):
    action: Literal["submitLead"]
    product_id: Identifier | None = Field(default=None, alias="productId")
    brand_id: Identifier | None = Field(default=None, alias="brandId")
    variant_id: Identifier | None = Field(default=None, alias="variantId")
    data: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _needs_target(self) -> "SubmitLeadAction":
        if self.data is None and self.product_id is None and self.brand_id is None:
            raise ValueError("submitLead needs either form data or a productId/brandId")
        return self


class CheckoutAction(_Action):
    action: Literal["checkout"]
    product_id: Identifier = Field(alias="productId")
    variant_id: Identifier | None = Field(default=None, alias="variantId")
    checkout_url: str | None = Field(default=None, alias="checkoutUrl")


WidgetAction = Annotated[
    Union[
        RequestDataAction,
        SelectBrandAction,
        SelectProductAction,
        GoBackAction,
        SubmitLeadAction,
        CheckoutAction,
    ],
    Field(discriminator="action"),
]

_ACTION_ADAPTER: TypeAdapter[Any] = TypeAdapter(WidgetAction)


@dataclass(frozen=True)
class ToolCall:
    tool: str
    arguments: dict[str, Any] = field(default_factory=dict)


def structured_content_message(structured_content: Mapping[str, Any] | None) -> dict[str, Any]:
    return {"structuredContent": dict(structured_content or {})}


def parse_action(message: Any) -> Any:
    if not isinstance(message, Mapping):
        raise ToolValidationError([FieldError("(root)", "Widget message must be an object")])
    try:
        return _ACTION_ADAPTER.validate_python(dict(message))
    except ValidationError as exc:
        errors = [
            FieldError(".".join(str(part) for part in err.get("loc", ())) or "(root)", str(err.get("msg")))
            for err in exc.errors()
        ]
        raise ToolValidationError(errors) from exc


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _lead_from_form(data: Mapping[str, Any]) -> ToolCall:
    payload = {key: value for key, value in data.items() if key not in _LEAD_ROUTING_KEYS}
    if not _blank_to_none(payload.get("variant_id")):
        payload.pop("variant_id", None)
    arguments: dict[str, Any] = {
        "brandId": _blank_to_none(data.get("brand_id")),
        "productId": _blank_to_none(data.get("product_id")),
        "payload": payload,
        "consent": False if data.get("consent") is None else data.get("consent"),
    }
    return ToolCall("submit_lead", {key: value for key, value in arguments.items() if value is not None})


def resolve_action(message: Any) -> ToolCall | None:
    """Map one widget action message to the tool call that should follow it.

    ``requestData`` resolves to None: the host answers it by re-sending the
    structured content it already holds.
    """

    action = parse_action(message)

    if isinstance(action, RequestDataAction):
        return None
    if isinstance(action, SelectBrandAction):
        return ToolCall("select_brand", {"brandId": action.brand_id})
    if isinstance(action, SelectProductAction):
        return ToolCall("select_product", {"productId": action.product_id})
    if isinstance(action, GoBackAction):
        if action.brand_id:
            return ToolCall("select_brand", {"brandId": action.brand_id})
        return ToolCall("list_brands", {})
    if isinstance(action, SubmitLeadAction):
        if action.data is not None:
            return _lead_from_form(action.data)
        arguments = {"brandId": action.brand_id, "productId": action.product_id, "variantId": action.variant_id}
        return ToolCall("show_lead_form", {key: value for key, value in arguments.items() if value is not None})
    if isinstance(action, CheckoutAction):
        payload = {
            "event_type": "checkout_click",
            "product_id": action.product_id,
            "variant_id": action.variant_id,
            "checkout_url": action.checkout_url,
        }
        return ToolCall(
            "track_event",
            {"type": "click", "payload": {key: value for key, value in payload.items() if value is not None}},
        )
    raise ToolValidationError([FieldError("action", f"Unsupported action: {getattr(action, 'action', None)}")])


__all__ = [
    "ToolCall",
    "parse_action",
    "resolve_action",
    "structured_content_message",
]
