from __future__ import annotations

import contextlib
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from mcp.server.fastmcp import FastMCP
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from jira_mcp.api.tools import MCP_PATH
from jira_mcp.core.config import Settings
from jira_mcp.middleware.auth import api_key_auth_middleware
from jira_mcp.utils.logging import logger


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Attaches a request_id to each HTTP request, echoes it in the X-Request-ID
    header and logs it with the MCP session the request belongs to.
    """

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or f"req-{int(time.time() * 1000)}"
        start = time.perf_counter()

        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.exception(
                "unhandled_exception",
                extra={
                    "request_id": request_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": duration_ms,
                },
            )
            raise

        duration_ms = int((time.perf_counter() - start) * 1000)
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "request_completed",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": getattr(response, "status_code", 0),
                "mcp_session_id": request.headers.get("Mcp-Session-Id"),
                "duration_ms": duration_ms,
            },
        )
        return response


def build_http_app(mcp: FastMCP, settings: Settings) -> FastAPI:
    """
    PUBLIC_INTERFACE
    Serve the MCP streamable HTTP transport at MCP_PATH; every other path is 404.
    """
    mcp_app = mcp.streamable_http_app()

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        async with mcp.session_manager.run():
            yield

    app = FastAPI(
        title="JIRA MCP Server",
        description="MCP tools for creating and updating JIRA issues.",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Mcp-Session-Id", "X-Request-ID"],
    )
    app.middleware("http")(api_key_auth_middleware(settings.api_keys, MCP_PATH))
    app.add_middleware(RequestIDMiddleware)

    app.mount("/", mcp_app)
    return app
