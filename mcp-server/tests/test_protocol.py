import pytest

from errors import ToolValidationError
from widgets.protocol import ToolCall, resolve_action, structured_content_message


def test_request_data_needs_no_tool_call():
    assert resolve_action({"action": "requestData"}) is None


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ({"action": "selectBrand", "brandId": "b1"}, ToolCall("select_brand", {"brandId": "b1"})),
        ({"action": "selectProduct", "productId": "p2"}, ToolCall("select_product", {"productId": "p2"})),
        ({"action": "goBack", "brandId": "b1"}, ToolCall("select_brand", {"brandId": "b1"})),
        ({"action": "goBack"}, ToolCall("list_brands", {})),
        (
            {"action": "submitLead", "productId": "p2", "brandId": "b1", "variantId": "v1"},
            ToolCall("show_lead_form", {"brandId": "b1", "productId": "p2", "variantId": "v1"}),
        ),
    ],
)
def test_navigation_actions(message, expected):
    assert resolve_action(message) == expected


def test_submit_lead_with_form_data():
    call = resolve_action(
        {
            "action": "submitLead",
            "data": {
                "name": "Lan",
                "email": "lan@example.com",
                "phone": "+84 901234567",
                "notes": "",
                "brand_id": "b1",
                "product_id": "",
                "variant_id": "",
                "consent": True,
                "created_at": "2024-05-01T12:00:00Z",
            },
        }
    )

    assert call == ToolCall(
        "submit_lead",
        {
            "brandId": "b1",
            "payload": {
                "name": "Lan",
                "email": "lan@example.com",
                "phone": "+84 901234567",
                "notes": "",
                "created_at": "2024-05-01T12:00:00Z",
            },
            "consent": True,
        },
    )


def test_submit_lead_form_defaults_consent_to_false():
    call = resolve_action({"action": "submitLead", "data": {"name": "Lan", "brand_id": "b1", "product_id": "p2"}})

    assert call.arguments == {"brandId": "b1", "productId": "p2", "payload": {"name": "Lan"}, "consent": False}


def test_checkout_becomes_click_event():
    call = resolve_action(
        {"action": "checkout", "productId": "p2", "variantId": "v1", "checkoutUrl": "https://shop.example.com/zipper"}
    )

    assert call == ToolCall(
        "track_event",
        {
            "type": "click",
            "payload": {
                "event_type": "checkout_click",
                "product_id": "p2",
                "variant_id": "v1",
                "checkout_url": "https://shop.example.com/zipper",
            },
        },
    )


def test_checkout_without_variant():
    call = resolve_action({"action": "checkout", "productId": "p2"})
    assert call.arguments["payload"] == {"event_type": "checkout_click", "product_id": "p2"}


@pytest.mark.parametrize(
    "message",
    [
        None,
        ["selectBrand"],
        {},
        {"action": "addToCart", "productId": "p2"},
        {"action": "selectBrand"},
        {"action": "selectProduct", "productId": "  "},
        {"action": "submitLead"},
        {"action": "checkout"},
    ],
)
def test_invalid_messages_are_rejected(message):
    with pytest.raises(ToolValidationError) as exc_info:
        resolve_action(message)
    assert exc_info.value.as_payload()["errors"]


def test_structured_content_message():
    assert structured_content_message({"brands": []}) == {"structuredContent": {"brands": []}}
    assert structured_content_message(None) == {"structuredContent": {}}
