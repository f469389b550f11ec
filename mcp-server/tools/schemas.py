from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StringConstraints

Identifier = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]


class ToolInput(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ListBrandsInput(ToolInput):
    pass


class SelectBrandInput(ToolInput):
    brand_id: Identifier = Field(
        validation_alias=AliasChoices("brandId", "brand_id"),
        description="The brand ID to select",
    )


class SelectProductInput(ToolInput):
    product_id: Identifier = Field(
        validation_alias=AliasChoices("productId", "product_id"),
        description="The product ID to view",
    )


class ShowLeadFormInput(ToolInput):
    brand_id: Identifier = Field(
        validation_alias=AliasChoices("brandId", "brand_id"),
        description="The brand ID",
    )
    product_id: Identifier | None = Field(
        default=None,
        validation_alias=AliasChoices("productId", "product_id"),
        description="Optional product ID",
    )
    variant_id: Identifier | None = Field(
        default=None,
        validation_alias=AliasChoices("variantId", "variant_id"),
        description="Optional variant ID",
    )


class SubmitLeadInput(ToolInput):
    brand_id: Identifier = Field(
        validation_alias=AliasChoices("brandId", "brand_id"),
        description="The brand ID",
    )
    product_id: Identifier | None = Field(
        default=None,
        validation_alias=AliasChoices("productId", "product_id"),
        description="Optional product ID",
    )
    payload: dict[str, Any] = Field(description="Lead form data (name, email, phone, message, ...)")
    consent: bool = Field(default=False, description="User consent flag")


class TrackEventInput(ToolInput):
    type: Literal["search", "click"] = Field(description="Event type")
    payload: dict[str, Any] = Field(description="Event data")


def input_json_schema(model: type[ToolInput]) -> dict[str, Any]:
    schema = model.model_json_schema(mode="validation")
    schema.pop("title", None)
    schema.setdefault("type", "object")
    schema.setdefault("properties", {})
    return schema


__all__ = [
    "ToolInput",
    "ListBrandsInput",
    "SelectBrandInput",
    "SelectProductInput",
    "ShowLeadFormInput",
    "SubmitLeadInput",
    "TrackEventInput",
    "input_json_schema",
]
