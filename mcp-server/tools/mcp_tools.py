from __future__ import annotations

from typing import Any, Callable

from fastmcp import FastMCP
from fastmcp.tools import Tool
from fastmcp.tools.tool import ToolResult
from mcp.types import TextContent, ToolAnnotations
from pydantic import PrivateAttr

from tools.dispatcher import ToolDispatcher, ToolResponse, ToolSpec
from widgets.renderer import WIDGET_MIME_TYPE, WIDGETS, WidgetRenderer


def widget_meta(spec: ToolSpec, widget_accessible: bool = True) -> dict[str, Any]:
    if spec.widget is None:
        return {}
    return {
        "openai/outputTemplate": spec.widget.uri,
        "openai/toolInvocation/invoking": spec.widget.invoking,
        "openai/toolInvocation/invoked": spec.widget.invoked,
        "openai/widgetAccessible": widget_accessible,
        "openai/resultCanProduceWidget": True,
    }


def to_tool_result(response: ToolResponse) -> ToolResult:
    return ToolResult(
        content=[TextContent(type="text", text=response.text)],
        structured_content=response.structured_content,
    )


class DispatchedTool(Tool):
    """MCP tool whose calls go through the ToolDispatcher.

    Arguments reach the dispatcher unvalidated so that validation failures
    come back as the same envelope as every other outcome.
    """

    _dispatcher: Any = PrivateAttr(default=None)

    @classmethod
    def from_spec(cls, spec: ToolSpec, dispatcher: ToolDispatcher, widget_accessible: bool = True) -> "DispatchedTool":
        tool = cls(
            name=spec.name,
            title=spec.title,
            description=spec.description,
            parameters=spec.input_schema,
            annotations=ToolAnnotations(**spec.annotations) if spec.annotations else None,
            meta=widget_meta(spec, widget_accessible) or None,
        )
        tool._dispatcher = dispatcher
        return tool

    async def run(self, arguments: dict[str, Any]) -> ToolResult:
        response = await self._dispatcher.invoke(self.name, arguments)
        return to_tool_result(response)


def _widget_reader(renderer: WidgetRenderer, kind: str) -> Callable[[], str]:
    def _read() -> str:
        return renderer.render(kind)

    return _read


def register_mcp(
    mcp: FastMCP,
    dispatcher: ToolDispatcher,
    renderer: WidgetRenderer,
    widget_accessible: bool = True,
) -> list[str]:
    for spec in dispatcher.specs():
        mcp.add_tool(DispatchedTool.from_spec(spec, dispatcher, widget_accessible))

    for widget in WIDGETS.values():
        mcp.resource(
            widget.uri,
            name=widget.kind,
            description=widget.title,
            mime_type=WIDGET_MIME_TYPE,
        )(_widget_reader(renderer, widget.kind))

    return dispatcher.names


__all__ = ["DispatchedTool", "register_mcp", "to_tool_result", "widget_meta"]
