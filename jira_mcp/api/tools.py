from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional

from mcp.server.fastmcp import Context, FastMCP
from pydantic import Field

from jira_mcp.core.config import Settings
from jira_mcp.models.jira import AssigneeRef, IssueAssignRequest, IssueCreateRequest, IssueUpdateRequest
from jira_mcp.services.issue_adapter import IssueToolAdapter
from jira_mcp.utils.logging import logger

SERVER_NAME = "jira-mcp-server"
MCP_PATH = "/mcp"

INSTRUCTIONS = """Tools for creating and updating JIRA issues.

- create-jira-issue: put "assign to: <email or name>" on its own line in the
  description to pick an assignee; otherwise the explicit assignee, or the
  authenticated user, is used.
- update-jira-issue: only non-empty fields are changed; a status is reached
  through the matching workflow transition.
- assign-jira-issue: assign an existing issue to a user found by email or name.
"""


def _log_invocation(ctx: Context, tool: str, **fields: Any) -> None:
    try:
        request_id = ctx.request_id
    except ValueError:
        # invoked outside a protocol request
        request_id = None
    logger.info("tool_invoked", extra={"request_id": request_id, "tool": tool, **fields})


def read_version() -> str:
    """Read version from VERSION file with fallback."""
    try:
        version_path = Path(__file__).resolve().parent.parent / "VERSION"
        return version_path.read_text(encoding="utf-8").strip() or "0.1.0"
    except OSError:
        return "0.1.0"


# PUBLIC_INTERFACE
def build_mcp_server(adapter: IssueToolAdapter, settings: Settings) -> FastMCP:
    """
    Create the MCP server and register the JIRA tools backed by the given adapter.
    """
    mcp = FastMCP(
        SERVER_NAME,
        instructions=INSTRUCTIONS,
        host=settings.MCP_HOST,
        port=settings.MCP_PORT,
        streamable_http_path=MCP_PATH,
    )
    # advertised as serverInfo.version during initialize
    mcp._mcp_server.version = read_version()

    @mcp.tool(name="create-jira-issue", description="Create a new Jira issue")
    async def create_jira_issue(
        ctx: Context,
        summary: Annotated[str, Field(description="Short summary/title of the issue")],
        description: Annotated[
            str, Field(description='Issue description; a line "assign to: <email or name>" selects the assignee')
        ] = "",
        issue_type: Annotated[str, Field(description='Issue type name, e.g., "Task", "Bug"')] = "Task",
        priority: Annotated[str, Field(description='Priority name, e.g., "High"')] = "",
        project_key: Annotated[str, Field(description="Project key; the server default is used when empty")] = "",
        labels: Annotated[Optional[List[str]], Field(description="Labels to set")] = None,
        components: Annotated[Optional[List[str]], Field(description="Component names to set")] = None,
        custom_fields: Annotated[
            Optional[Dict[str, Any]], Field(description="Extra fields keyed by field id, e.g., customfield_10016")
        ] = None,
        assignee: Annotated[Optional[AssigneeRef], Field(description="Explicit assignee by accountId")] = None,
    ) -> str:
        _log_invocation(ctx, "create-jira-issue", project=project_key or settings.JIRA_PROJECT_KEY)
        request = IssueCreateRequest(
            summary=summary,
            description=description,
            issue_type=issue_type,
            priority=priority,
            project_key=project_key,
            labels=labels or [],
            components=components or [],
            custom_fields=custom_fields or {},
            assignee=assignee,
        )
        result = await adapter.create_issue(request)
        return result.text

    @mcp.tool(name="update-jira-issue", description="Update an existing Jira issue")
    async def update_jira_issue(
        ctx: Context,
        issue_key: Annotated[str, Field(description="Issue key, e.g., PROJ-123")],
        summary: Annotated[str, Field(description="New summary; left untouched when empty")] = "",
        description: Annotated[str, Field(description="New description; left untouched when empty")] = "",
        status: Annotated[str, Field(description="Target status name, e.g., Done")] = "",
    ) -> str:
        _log_invocation(ctx, "update-jira-issue", issue=issue_key)
        request = IssueUpdateRequest(issue_key=issue_key, summary=summary, description=description, status=status)
        result = await adapter.update_issue(request)
        return result.text

    @mcp.tool(name="assign-jira-issue", description="Assign an existing Jira issue to a user")
    async def assign_jira_issue(
        ctx: Context,
        issue_key: Annotated[str, Field(description="Issue key, e.g., PROJ-123")],
        user: Annotated[str, Field(description="Email, display name or account name of the user")],
    ) -> str:
        _log_invocation(ctx, "assign-jira-issue", issue=issue_key)
        result = await adapter.assign_issue(IssueAssignRequest(issue_key=issue_key, user=user))
        return result.text

    return mcp
