"""Widget document rendering.

Every widget kind is one Jinja2 template extending ``base.html.j2``. The base
carries the shared layout, styling and the bootstrap script that acquires
structured content (pre-injected global first, then the host handshake) and
turns clicks into outbound action messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from formatters import plain_value

TEMPLATE_DIR = Path(__file__).parent / "templates"
ENV = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html", "j2")),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)

WIDGET_MIME_TYPE = "text/html+skybridge"


@dataclass(frozen=True)
class WidgetTemplate:
    kind: str
    template: str
    uri: str
    title: str
    loading_text: str
    static: bool = False

    @property
    def filename(self) -> str:
        return self.uri.rsplit("/", 1)[-1]


WIDGETS: dict[str, WidgetTemplate] = {
    widget.kind: widget
    for widget in (
        WidgetTemplate("brand_list", "brand_list.html.j2", "ui://widget/brand-list.html", "Choose a brand", "Loading brands..."),
        WidgetTemplate(
            "product_list", "product_list.html.j2", "ui://widget/product-list.html", "Products", "Loading products..."
        ),
        WidgetTemplate(
            "product_detail",
            "product_detail.html.j2",
            "ui://widget/product-detail.html",
            "Product details",
            "Loading product...",
        ),
        WidgetTemplate("lead_form", "lead_form.html.j2", "ui://widget/lead-form.html", "Request a quote", "Loading form..."),
        WidgetTemplate(
            "lead_submitted",
            "lead_submitted.html.j2",
            "ui://widget/lead-submitted.html",
            "Submitted",
            "",
            static=True,
        ),
        WidgetTemplate(
            "event_tracked",
            "event_tracked.html.j2",
            "ui://widget/event-tracked.html",
            "Event recorded",
            "",
            static=True,
        ),
    )
}


class UnknownWidgetError(LookupError):
    pass


def get_widget(kind: str) -> WidgetTemplate:
    widget = WIDGETS.get(kind)
    if widget is None:
        raise UnknownWidgetError(f"Unknown widget kind: {kind}")
    return widget


def widget_for_filename(filename: str) -> WidgetTemplate:
    for widget in WIDGETS.values():
        if widget.filename == filename or widget.kind == filename:
            return widget
    raise UnknownWidgetError(f"Unknown widget: {filename}")


class WidgetRenderer:
    def __init__(
        self,
        env: Environment = ENV,
        request_delay_ms: int = 100,
        placeholder_base: str = "https://via.placeholder.com",
    ) -> None:
        self._env = env
        self._request_delay_ms = max(0, int(request_delay_ms))
        self._placeholder_base = placeholder_base.rstrip("/")

    def render(self, kind: str, structured_content: Mapping[str, Any] | None = None) -> str:
        """Render a self-contained widget document.

        With ``structured_content`` the payload is written into
        ``window.__STRUCTURED_CONTENT__`` and the widget renders on load;
        without it the widget waits for the host to deliver the data.
        """

        widget = get_widget(kind)
        template = self._env.get_template(widget.template)
        injected = structured_content is not None
        html = template.render(
            widget=widget,
            injected=injected,
            structured_content=plain_value(dict(structured_content)) if injected else None,
            request_delay_ms=self._request_delay_ms,
            placeholder_base=self._placeholder_base,
        )
        return html.strip()


_DEFAULT_RENDERER = WidgetRenderer()


def render(kind: str, structured_content: Mapping[str, Any] | None = None) -> str:
    return _DEFAULT_RENDERER.render(kind, structured_content)


__all__ = [
    "WIDGETS",
    "WIDGET_MIME_TYPE",
    "WidgetTemplate",
    "WidgetRenderer",
    "UnknownWidgetError",
    "get_widget",
    "widget_for_filename",
    "render",
]
