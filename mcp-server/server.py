from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastmcp import FastMCP

from config import Settings, load_settings
from db import CatalogStore, Database, PostgresStore
from errors import ToolValidationError, UnknownToolError
from tools import build_dispatcher
from tools.mcp_tools import register_mcp
from widgets.protocol import resolve_action, structured_content_message
from widgets.renderer import UnknownWidgetError, WidgetRenderer, widget_for_filename

SERVICE_NAME = "affiliate-mcp"

_LOGGER = logging.getLogger("affiliate_mcp.server")


def _log_unhandled_async_error(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    # Faults outside a request (e.g. an un-awaited task) are logged and the process keeps serving.
    exc = context.get("exception")
    _LOGGER.error(
        "Unhandled async error: %s",
        context.get("message", "unknown"),
        exc_info=(type(exc), exc, exc.__traceback__) if exc is not None else None,
    )


class MCPAcceptHeaderMiddleware:
    """Loosen Accept header handling for MCP endpoint probes.

    Some MCP registries/probers send `Accept: */*` or omit `Accept` while
    validating URL reachability. Streamable HTTP expects explicit media types.
    """

    def __init__(self, app: Any):
        self.app = app

    async def __call__(self, scope: dict[str, Any], receive: Any, send: Any) -> None:
        if scope.get("type") == "http" and scope.get("path") == "/mcp/sse":
            headers = list(scope.get("headers", []))
            accept = ""
            for key, value in headers:
                if key == b"accept":
                    accept = value.decode("latin-1")
                    break
            if not accept or accept.strip() == "*/*":
                rewritten = [(k, v) for k, v in headers if k != b"accept"]
                rewritten.append((b"accept", b"application/json, text/event-stream"))
                scope = dict(scope)
                scope["headers"] = rewritten
        await self.app(scope, receive, send)


def _base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def _mcp_descriptor(request: Request) -> dict[str, Any]:
    base = _base_url(request)
    return {
        "ok": True,
        "service": SERVICE_NAME,
        "transport": "streamable-http",
        "sse_url": f"{base}/mcp/sse",
        "legacy_sse_url": f"{base}/mcp-legacy/sse",
    }


async def _json_body(request: Request) -> Any:
    if not request.headers.get("content-type", "").startswith("application/json"):
        return {}
    try:
        return await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Request body must be valid JSON") from exc


def create_app(
    settings: Settings | None = None,
    store: CatalogStore | None = None,
    database: Database | None = None,
) -> FastAPI:
    """Wire store, dispatcher, MCP server and HTTP routes into one app.

    When `store` is given it is used as-is and no database pool is managed.
    """

    settings = settings or load_settings()
    if store is None:
        database = database or Database(
            dsn=settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=settings.db_command_timeout,
        )
        store = PostgresStore(database)

    dispatcher = build_dispatcher(store)
    renderer = WidgetRenderer(
        request_delay_ms=settings.widget_data_request_delay_ms,
        placeholder_base=settings.placeholder_image_base,
    )

    mcp = FastMCP(name=SERVICE_NAME)
    register_mcp(mcp, dispatcher, renderer, widget_accessible=settings.widget_accessible)
    # Primary compatibility transport:
    # - streamable HTTP at /mcp/sse (accepts GET + POST used by many clients)
    mcp_streamable_app = mcp.http_app(path="/sse", transport="streamable-http")
    # Legacy SSE transport retained for older clients.
    mcp_legacy_sse_app = mcp.http_app(path="/sse", transport="sse")

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        asyncio.get_running_loop().set_exception_handler(_log_unhandled_async_error)
        # FastMCP streamable transport requires its own lifespan to initialize
        # the session manager task group. Run that lifespan alongside DB setup.
        async with mcp_streamable_app.lifespan(mcp_streamable_app):
            db_ready = database is None
            db_error = ""
            if database is not None:
                try:
                    await database.connect()
                    db_ready = True
                    _LOGGER.info("Database pool ready")
                except Exception as exc:
                    db_error = str(exc)
                    _LOGGER.exception("Database connection failed; tools will answer with fallbacks")
            _app.state.db_ready = db_ready
            _app.state.db_error = db_error
            try:
                yield
            finally:
                if database is not None and db_ready:
                    await database.close()

    app = FastAPI(title="Affiliate MCP Server", lifespan=lifespan)
    app.state.dispatcher = dispatcher
    app.state.renderer = renderer
    app.state.mcp = mcp
    app.add_middleware(MCPAcceptHeaderMiddleware)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "ok": True,
            "service": SERVICE_NAME,
            "db_ready": bool(getattr(app.state, "db_ready", False)),
            "db_error": getattr(app.state, "db_error", ""),
            "tools": dispatcher.names,
        }

    @app.get("/")
    async def root(request: Request) -> dict[str, Any]:
        return _mcp_descriptor(request)

    @app.get("/mcp")
    async def mcp_root(request: Request) -> dict[str, Any]:
        return _mcp_descriptor(request)

    @app.get("/mcp/")
    async def mcp_root_slash(request: Request) -> dict[str, Any]:
        return _mcp_descriptor(request)

    @app.get("/.well-known/oauth-protected-resource")
    @app.get("/.well-known/oauth-protected-resource/mcp/sse")
    @app.get("/.well-known/oauth-protected-resource/sse")
    async def oauth_protected_resource(request: Request) -> dict[str, Any]:
        # No OAuth; advertise the MCP resource directly.
        return {
            "resource": f"{_base_url(request)}/mcp/sse",
            "authorization_servers": [],
        }

    @app.get("/.well-known/oauth-authorization-server")
    @app.get("/.well-known/openid-configuration")
    async def oauth_disabled() -> dict[str, Any]:
        return {
            "oauth_supported": False,
        }

    @app.post("/register")
    async def oauth_dynamic_client_registration_disabled() -> dict[str, Any]:
        # Compatibility endpoint for OAuth discovery probes from MCP registries.
        return {
            "oauth_supported": False,
            "dynamic_client_registration": False,
        }

    @app.post("/mcp/tool/{tool}")
    async def invoke_tool(tool: str, request: Request) -> dict[str, Any]:
        payload = await _json_body(request)
        arguments = payload.get("arguments", payload) if isinstance(payload, dict) else payload
        try:
            response = await dispatcher.invoke(tool, arguments)
        except UnknownToolError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return response.to_dict()

    @app.post("/widgets/actions")
    async def widget_action(request: Request) -> dict[str, Any]:
        message = await _json_body(request)
        try:
            call = resolve_action(message)
        except ToolValidationError as exc:
            raise HTTPException(status_code=422, detail=exc.as_payload()["errors"]) from exc
        if call is None:
            return {"tool": None}
        response = await dispatcher.invoke(call.tool, call.arguments)
        return {
            "tool": call.tool,
            "arguments": call.arguments,
            "response": response.to_dict(),
            "message": structured_content_message(response.structured_content),
        }

    @app.get("/widgets/{filename}", response_class=HTMLResponse)
    async def widget_template(filename: str) -> HTMLResponse:
        try:
            widget = widget_for_filename(filename)
        except UnknownWidgetError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return HTMLResponse(renderer.render(widget.kind))

    @app.post("/widgets/{filename}", response_class=HTMLResponse)
    async def widget_with_data(filename: str, request: Request) -> HTMLResponse:
        try:
            widget = widget_for_filename(filename)
        except UnknownWidgetError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        payload = await _json_body(request)
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Structured content must be a JSON object")
        content = payload.get("structuredContent", payload)
        if not isinstance(content, dict):
            raise HTTPException(status_code=400, detail="Structured content must be a JSON object")
        return HTMLResponse(renderer.render(widget.kind, content))

    app.mount("/mcp", mcp_streamable_app)
    app.mount("/mcp-legacy", mcp_legacy_sse_app)

    @app.api_route("/sse", methods=["GET", "HEAD", "POST", "DELETE"])
    async def sse_alias() -> RedirectResponse:
        # Some MCP clients probe /sse directly; redirect while preserving method.
        return RedirectResponse(url="/mcp/sse", status_code=307)

    return app


settings = load_settings()
logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)


__all__ = ["app", "create_app", "SERVICE_NAME"]
