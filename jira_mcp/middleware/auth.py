from __future__ import annotations

from typing import Iterable, Optional

from fastapi import Request
from starlette.responses import JSONResponse

from jira_mcp.utils.logging import logger


def _authorized(api_keys: Iterable[str], request: Request) -> bool:
    """
    Returns True if the request contains a valid API key in either X-API-KEY header
    or Authorization: Bearer <token>.
    """
    x_api_key: Optional[str] = request.headers.get("X-API-KEY")
    if x_api_key and x_api_key in api_keys:
        return True

    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        token = auth[len("Bearer ") :].strip()
        if token and token in api_keys:
            return True

    return False


def api_key_auth_middleware(api_keys: Iterable[str], protected_path: str):
    """
    PUBLIC_INTERFACE
    Build an API key guard for the MCP endpoint. Validates X-API-KEY header or Bearer token.
    Does nothing when no keys are configured; other paths pass through untouched.
    """
    keys = frozenset(api_keys)

    async def middleware(request: Request, call_next):
        path = request.url.path.rstrip("/") or "/"
        if not keys or path != protected_path or _authorized(keys, request):
            return await call_next(request)

        request_id = getattr(request.state, "request_id", None)
        logger.warning(
            "unauthorized_request",
            extra={"path": path, "method": request.method, "request_id": request_id},
        )
        return JSONResponse(
            status_code=401,
            content={
                "error": {
                    "code": "unauthorized",
                    "message": "Missing or invalid API key.",
                    "details": None,
                },
                "request_id": request_id,
            },
        )

    return middleware
