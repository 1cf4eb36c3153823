from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

import uvicorn
from pydantic import ValidationError

from jira_mcp.api.http import build_http_app
from jira_mcp.api.tools import MCP_PATH, build_mcp_server, read_version
from jira_mcp.core.config import Settings, get_settings
from jira_mcp.services.issue_adapter import IssueToolAdapter
from jira_mcp.services.jira_client import JiraClient, JiraClientError
from jira_mcp.utils.logging import configure_logging, logger

TRANSPORTS = ("stdio", "http")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="jira-mcp-server", description="JIRA MCP server")
    parser.add_argument("--transport", choices=TRANSPORTS, default="stdio", help="Transport type (stdio or http)")
    parser.add_argument("--host", default=None, help="Bind host for the http transport (default: MCP_HOST)")
    parser.add_argument("--port", type=int, default=None, help="Port for the http transport (default: MCP_PORT)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {read_version()}")
    return parser.parse_args(argv)


# PUBLIC_INTERFACE
async def verify_connection(client: JiraClient) -> None:
    """
    Authenticate against JIRA before serving; a failure aborts the process.
    """
    try:
        me = await client.get_myself()
    except JiraClientError as exc:
        logger.critical("jira_authentication_failed: %s", exc, extra={"error": str(exc)})
        raise SystemExit(1) from exc
    logger.info(
        "jira_connected",
        extra={"display_name": me.get("displayName"), "email": me.get("emailAddress")},
    )


async def serve(settings: Settings, transport: str, host: str, port: int) -> None:
    client = JiraClient.from_settings(settings)
    try:
        await verify_connection(client)

        adapter = IssueToolAdapter(client, settings.JIRA_BASE_URL, settings.JIRA_PROJECT_KEY)
        mcp = build_mcp_server(adapter, settings)

        if transport == "http":
            logger.info("server_starting", extra={"transport": transport, "host": host, "port": port, "path": MCP_PATH})
            app = build_http_app(mcp, settings)
            config = uvicorn.Config(app, host=host, port=port, log_config=None, log_level=settings.LOG_LEVEL.lower())
            await uvicorn.Server(config).serve()
        else:
            logger.info("server_starting", extra={"transport": transport})
            await mcp.run_stdio_async()
    finally:
        await client.aclose()


# PUBLIC_INTERFACE
def main(argv: Optional[List[str]] = None) -> None:
    """
    Load configuration, check JIRA credentials and serve the MCP tools over the chosen transport.
    """
    args = parse_args(argv)
    configure_logging()

    try:
        settings = get_settings()
    except ValidationError as exc:
        logger.critical("invalid_configuration: %s", exc)
        sys.exit(1)

    configure_logging(level=settings.LOG_LEVEL)
    logger.info(
        "configuration_loaded",
        extra={
            "base_url": settings.JIRA_BASE_URL,
            "username": settings.JIRA_USERNAME,
            "project_key": settings.JIRA_PROJECT_KEY,
            "api_token": "*" * len(settings.JIRA_API_TOKEN),
        },
    )

    host = args.host or settings.MCP_HOST
    port = args.port or settings.MCP_PORT
    asyncio.run(serve(settings, args.transport, host, port))


if __name__ == "__main__":
    main()
