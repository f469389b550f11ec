from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from db import CatalogStore
from errors import BestEffortError, NotFoundError, StoreError
from formatters import checkout_url_with_params, count_label, format_price, sanitize, sanitize_many
from tools.dispatcher import ToolDispatcher, ToolResponse, ToolSpec, WidgetBinding
from tools.schemas import (
    ListBrandsInput,
    SelectBrandInput,
    SelectProductInput,
    ShowLeadFormInput,
    SubmitLeadInput,
    TrackEventInput,
)
from widgets.renderer import WIDGETS

_LOGGER = logging.getLogger("affiliate_mcp.tools")

Clock = Callable[[], datetime]

EVENT_TABLES = {"search": "search_events", "click": "click_events"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def event_table(event_type: str) -> str:
    return EVENT_TABLES["search"] if event_type == "search" else EVENT_TABLES["click"]


def _widget(kind: str, invoking: str, invoked: str) -> WidgetBinding:
    return WidgetBinding(kind=kind, uri=WIDGETS[kind].uri, invoking=invoking, invoked=invoked)


def _without_none(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


def _display_name(record: Any) -> str | None:
    name = record.get("name") if record else None
    if name is None or not str(name).strip():
        return None
    return str(name).strip()


def register_tools(
    dispatcher: ToolDispatcher,
    store: CatalogStore,
    clock: Clock = _utcnow,
) -> ToolDispatcher:
    async def _lookup_name(table: str, identifier: Any) -> str | None:
        # Secondary lookups never fail the call; a miss just drops the field.
        if identifier is None or identifier == "":
            return None
        try:
            row = await store.fetch_one(table, {"id": identifier}, columns=("name",))
        except StoreError as exc:
            _LOGGER.warning("name lookup failed table=%s id=%s error=%s", table, identifier, exc)
            return None
        return _display_name(row)

    async def _list_brands(_args: ListBrandsInput) -> ToolResponse:
        brands = await store.fetch_all("brands", {"active": True}, order_by="name")
        clean_brands = sanitize_many("brand", brands)
        return ToolResponse(
            text=f"Found {count_label(len(clean_brands), 'active brand')}.",
            structured_content={"brands": clean_brands},
        )

    async def _select_brand(args: SelectBrandInput) -> ToolResponse:
        brand = await store.fetch_one("brands", {"id": args.brand_id})
        if not brand:
            raise NotFoundError("Brand", args.brand_id)

        products = await store.fetch_all(
            "products",
            {"brand_id": args.brand_id, "active": True},
            order_by="name",
        )
        clean_products = sanitize_many("product", products)
        brand_name = _display_name(brand)
        text = f'Selected brand "{brand_name}".' if brand_name else "Selected brand."
        return ToolResponse(
            text=f"{text} Found {count_label(len(clean_products), 'product')}.",
            structured_content=_without_none(
                {
                    "brand": sanitize("brand", brand),
                    "products": clean_products,
                    "brandName": brand_name,
                }
            ),
        )

    async def _select_product(args: SelectProductInput) -> ToolResponse:
        product = await store.fetch_one("products", {"id": args.product_id})
        if not product:
            raise NotFoundError("Product", args.product_id)

        brand_name = await _lookup_name("brands", product.get("brand_id"))
        variants = await store.fetch_all("product_variants", {"product_id": args.product_id}, order_by="price")

        clean_product = sanitize("product_detail", product)
        if "checkout_url" in clean_product:
            clean_product["checkout_url"] = checkout_url_with_params(
                clean_product["checkout_url"], product.get("affiliate_params")
            )
        clean_variants = sanitize_many("variant", variants)

        text = f"Product details: {_display_name(product) or 'this product'}"
        if brand_name:
            text += f" by {brand_name}"
        price = format_price(product.get("base_price"), product.get("currency"))
        if price:
            text += f", from {price}"
        if clean_variants:
            text += f" ({count_label(len(clean_variants), 'option')})"

        return ToolResponse(
            text=text + ".",
            structured_content=_without_none(
                {
                    "product": clean_product,
                    "variants": clean_variants,
                    "brandName": brand_name,
                }
            ),
        )

    async def _show_lead_form(args: ShowLeadFormInput) -> ToolResponse:
        brand_name = await _lookup_name("brands", args.brand_id)
        product_name = await _lookup_name("products", args.product_id) if args.product_id else None

        text = "Please fill in your details to receive a consultation"
        if product_name:
            text += f" about {product_name}"
        return ToolResponse(
            text=text + ".",
            structured_content=_without_none(
                {
                    "brandId": args.brand_id,
                    "brandName": brand_name,
                    "productId": args.product_id,
                    "productName": product_name,
                    "variantId": args.variant_id,
                }
            ),
        )

    async def _submit_lead(args: SubmitLeadInput) -> ToolResponse:
        await store.insert_one(
            "leads",
            {
                "brand_id": args.brand_id,
                "product_id": args.product_id or None,
                "payload": args.payload,
                "consent": args.consent,
                "created_at": clock(),
            },
        )
        _LOGGER.info("lead stored brand_id=%s product_id=%s", args.brand_id, args.product_id)
        return ToolResponse(
            text="Your information has been submitted successfully! We will contact you as soon as possible.",
        )

    async def _track_event(args: TrackEventInput) -> ToolResponse:
        table = event_table(args.type)
        try:
            await store.insert_one(table, {**args.payload, "created_at": clock()})
        except StoreError as exc:
            raise BestEffortError(f"{args.type} event was not recorded: {exc}") from exc
        return ToolResponse(text="Event recorded.")

    dispatcher.register(
        ToolSpec(
            name="list_brands",
            title="Choose a brand",
            description="List all active brands.",
            input_model=ListBrandsInput,
            handler=_list_brands,
            failure_text="Could not load the brand list. Please try again later.",
            failure_content={"brands": []},
            widget=_widget("brand_list", "Loading brands...", "Brands loaded!"),
            annotations={"readOnlyHint": True},
        )
    )
    dispatcher.register(
        ToolSpec(
            name="select_brand",
            title="Select a brand",
            description="Select a brand and show its active products.",
            input_model=SelectBrandInput,
            handler=_select_brand,
            failure_text="Could not load this brand. Please try again.",
            failure_content={"products": []},
            widget=_widget("product_list", "Loading products...", "Products loaded!"),
            annotations={"readOnlyHint": True},
        )
    )
    dispatcher.register(
        ToolSpec(
            name="select_product",
            title="Product details",
            description="Show product details, purchase options and variants.",
            input_model=SelectProductInput,
            handler=_select_product,
            failure_text="Could not load this product. Please try again.",
            failure_content={},
            widget=_widget("product_detail", "Loading product details...", "Product details loaded!"),
            annotations={"readOnlyHint": True},
        )
    )
    dispatcher.register(
        ToolSpec(
            name="show_lead_form",
            title="Request a consultation",
            description="Show a form that collects contact details from an interested customer.",
            input_model=ShowLeadFormInput,
            handler=_show_lead_form,
            failure_text="Could not display the form. Please try again.",
            failure_content={},
            widget=_widget("lead_form", "Preparing the form...", "The form is ready!"),
            annotations={"readOnlyHint": True},
        )
    )
    dispatcher.register(
        ToolSpec(
            name="submit_lead",
            title="Save lead",
            description="Save a customer's contact details for the brand.",
            input_model=SubmitLeadInput,
            handler=_submit_lead,
            failure_text="We couldn't submit your information. Please try again later.",
            failure_content={"submitted": False},
            widget=_widget("lead_submitted", "Sending your details...", "Your details were saved!"),
        )
    )
    dispatcher.register(
        ToolSpec(
            name="track_event",
            title="Track event",
            description="Record a user interaction event (search or click).",
            input_model=TrackEventInput,
            handler=_track_event,
            failure_text="Your request has been processed.",
            widget=_widget("event_tracked", "Recording event...", "Event recorded!"),
        )
    )
    return dispatcher


def build_dispatcher(store: CatalogStore, clock: Clock = _utcnow) -> ToolDispatcher:
    return register_tools(ToolDispatcher(), store, clock=clock)


__all__ = ["register_tools", "build_dispatcher", "event_table", "EVENT_TABLES"]
