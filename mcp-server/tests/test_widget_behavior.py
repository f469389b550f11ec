"""Runs the rendered widget scripts under node with a stub host bridge."""

import json
import re
import shutil
import subprocess
from pathlib import Path

import pytest

from widgets import WidgetRenderer, render

NODE = shutil.which("node")
HARNESS = Path(__file__).with_name("widget_harness.js")
SCRIPT_RE = re.compile(r"<script>(.*?)</script>", re.S)

pytestmark = pytest.mark.skipif(NODE is None, reason="node is not installed")


def run_widget(html, messages=(), bridge=True):
    config = {"scripts": SCRIPT_RE.findall(html), "bridge": bridge, "messages": list(messages)}
    proc = subprocess.run(
        [NODE, str(HARNESS)],
        input=json.dumps(config),
        capture_output=True,
        text=True,
        timeout=30,
        check=True,
    )
    return json.loads(proc.stdout)


def _brands(*names):
    return {"structuredContent": {"brands": [{"id": f"b{i}", "name": name} for i, name in enumerate(names)]}}


def test_requests_data_after_delay():
    result = run_widget(render("brand_list"))

    assert result["sent"] == [{"action": "requestData"}]
    assert result["delays"] == [100]
    assert result["connection"] == "connected"
    assert result["bannerHidden"] is True


def test_configured_delay_is_used():
    result = run_widget(WidgetRenderer(request_delay_ms=250).render("brand_list"))
    assert result["delays"] == [250]


def test_latest_payload_replaces_previous_one():
    result = run_widget(render("brand_list"), messages=[_brands("Acme"), _brands("Other")])

    first, second = result["snapshots"][1:]
    assert "Acme" in first
    assert "Other" in second
    assert "Acme" not in second


def test_messages_without_structured_content_are_ignored():
    result = run_widget(render("brand_list"), messages=[_brands("Acme"), {"type": "ping"}, "noise"])

    assert all("Acme" in snapshot for snapshot in result["snapshots"][1:])


def test_injected_content_renders_without_handshake():
    result = run_widget(render("brand_list", {"brands": [{"id": "b1", "name": "Acme"}]}))

    assert result["sent"] == []
    assert "Acme" in result["snapshots"][0]


def test_brand_card_fallbacks():
    result = run_widget(render("brand_list", {"brands": [{"id": "b1", "name": "Nameless Co", "logo_url": None}]}))

    html = result["snapshots"][0]
    assert "https://via.placeholder.com/280x160/f3f4f6/9ca3af?text=Nameless%20Co" in html
    assert "No description" in html


def test_price_block_is_omitted_for_non_numeric_price():
    content = {
        "brandName": "Acme",
        "products": [
            {"id": "p1", "name": "Priced", "base_price": 1000, "currency": "VND"},
            {"id": "p2", "name": "Unpriced", "base_price": "call us", "currency": "VND"},
        ],
    }

    html = run_widget(render("product_list", content))["snapshots"][0]

    assert html.count('class="product-price"') == 1


def test_missing_bridge_shows_not_connected():
    result = run_widget(render("brand_list"), bridge=False)

    assert result["sent"] == []
    assert result["delays"] == []
    assert result["connection"] == "disconnected"
    assert result["bannerHidden"] is False
    assert "Not connected" in result["snapshots"][0]


def test_lead_confirmation_reflects_failed_submission():
    failed = run_widget(render("lead_submitted", {"submitted": False}))["snapshots"][0]
    saved = run_widget(render("lead_submitted"))["snapshots"][0]

    assert "Submission failed" in failed
    assert "Submitted successfully!" in saved
