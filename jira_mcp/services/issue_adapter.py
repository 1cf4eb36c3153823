from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Protocol

from jira_mcp.models.jira import (
    IssueAssignRequest,
    IssueCreateRequest,
    IssueUpdateRequest,
    JiraUser,
    ToolResult,
)
from jira_mcp.services.jira_client import JiraClientError
from jira_mcp.utils.logging import logger

ASSIGN_DIRECTIVE = "assign to:"
_ASSIGN_DIRECTIVE_RE = re.compile(re.escape(ASSIGN_DIRECTIVE), re.IGNORECASE)


class UserLookupError(Exception):
    """Raised when a user query cannot be resolved to an account."""


class IssueTracker(Protocol):
    """The subset of JiraClient the adapter depends on."""

    async def get_myself(self) -> Dict[str, Any]: ...

    async def search_users(self, query: str) -> List[Dict[str, Any]]: ...

    async def get_issue(self, issue_key: str, fields: Optional[List[str]] = None) -> Dict[str, Any]: ...

    async def create_issue(self, fields: Dict[str, Any]) -> Dict[str, Any]: ...

    async def update_issue(self, issue_key: str, update: Dict[str, Any]) -> None: ...

    async def assign_issue(self, issue_key: str, account_id: Optional[str]) -> None: ...

    async def get_transitions(self, issue_key: str) -> List[Dict[str, Any]]: ...

    async def transition_issue(self, issue_key: str, transition_id: str) -> None: ...


# PUBLIC_INTERFACE
def extract_assignee_directive(description: Optional[str]) -> Optional[str]:
    """
    Return the user query of an "assign to: <query>" directive in an issue description.

    The marker is matched case-insensitively at its first occurrence; the query is the
    rest of that line, trimmed. Returns None when there is no marker and "" when the
    marker is followed by nothing.
    """
    if not description:
        return None
    match = _ASSIGN_DIRECTIVE_RE.search(description)
    if match is None:
        return None
    rest = description[match.end():]
    return rest.split("\n", 1)[0].strip()


def _error_text(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


class IssueToolAdapter:
    """
    PUBLIC_INTERFACE
    Translates tool invocations into JIRA calls and maps every outcome to a ToolResult.

    Tracker failures are reported as failure text, never raised. Cancellation of the
    invoking task propagates untouched through every outbound call.
    """

    def __init__(self, client: IssueTracker, base_url: str, default_project_key: str) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.default_project_key = default_project_key

    def browse_url(self, issue_key: str) -> str:
        return f"{self.base_url}/browse/{issue_key}"

    # PUBLIC_INTERFACE
    async def find_user(self, query: str) -> Optional[JiraUser]:
        """
        Resolve a free-text query (email, display name or account name) to a user.

        An empty query resolves to None without searching. An exact case-insensitive
        match wins over search order; otherwise the first candidate is returned.
        Raises UserLookupError when the search fails or returns nobody.
        """
        if not query:
            return None
        try:
            raw_users = await self.client.search_users(query)
        except JiraClientError as exc:
            raise UserLookupError(f"error searching for user '{query}': {_error_text(exc)}") from exc
        if not raw_users:
            raise UserLookupError(f"no user found for query '{query}'")

        users = [JiraUser.model_validate(u) for u in raw_users]
        for user in users:
            if user.matches(query):
                return user
        return users[0]

    async def resolve_assignee(self, request: IssueCreateRequest) -> Optional[str]:
        """Pick the accountId to assign a new issue to, or None to leave it unassigned."""
        query = extract_assignee_directive(request.description)
        if query is not None:
            logger.info("assignee_lookup", extra={"query": query})
            try:
                user = await self.find_user(query)
            except UserLookupError as exc:
                logger.warning("assignee_lookup_failed", extra={"query": query, "error": str(exc)})
                return None
            if user is None:
                logger.info("assignee_not_found", extra={"query": query})
                return None
            logger.info(
                "assignee_resolved",
                extra={"display_name": user.display_name, "email": user.email_address},
            )
            return user.account_id or None

        if request.assignee is not None and request.assignee.account_id:
            logger.info("assignee_from_parameter", extra={"account_id": request.assignee.account_id})
            return request.assignee.account_id

        try:
            me = JiraUser.model_validate(await self.client.get_myself())
        except JiraClientError as exc:
            logger.warning("self_assign_failed", extra={"error": _error_text(exc)})
            return None
        logger.info("assignee_defaulted_to_self", extra={"display_name": me.display_name})
        return me.account_id or None

    def build_issue_fields(
        self, request: IssueCreateRequest, project_key: str, assignee_id: Optional[str]
    ) -> Dict[str, Any]:
        core: Dict[str, Any] = {
            "project": {"key": project_key},
            "summary": request.summary,
            "issuetype": {"name": request.issue_type or "Task"},
        }
        if request.description:
            core["description"] = request.description
        if request.priority:
            core["priority"] = {"name": request.priority}
        if request.labels:
            core["labels"] = list(dict.fromkeys(request.labels))
        if request.components:
            core["components"] = [{"name": c} for c in dict.fromkeys(request.components)]
        if assignee_id:
            core["assignee"] = {"accountId": assignee_id}

        fields: Dict[str, Any] = {}
        for name, value in request.custom_fields.items():
            if name in core:
                logger.warning("custom_field_ignored", extra={"field": name})
                continue
            fields[name] = value
        fields.update(core)
        return fields

    # PUBLIC_INTERFACE
    async def create_issue(self, request: IssueCreateRequest) -> ToolResult:
        """Create an issue, resolving its assignee first."""
        project_key = request.project_key.strip() or self.default_project_key
        assignee_id = await self.resolve_assignee(request)
        fields = self.build_issue_fields(request, project_key, assignee_id)

        try:
            created = await self.client.create_issue(fields)
        except JiraClientError as exc:
            logger.warning("issue_create_failed", extra={"project": project_key, "error": _error_text(exc)})
            return ToolResult.failure(f"Failed to create JIRA issue: {_error_text(exc)}")

        url = self.browse_url(created.get("key", ""))
        logger.info("issue_created", extra={"url": url})
        return ToolResult.success(f"Created JIRA issue: {url}")

    # PUBLIC_INTERFACE
    async def update_issue(self, request: IssueUpdateRequest) -> ToolResult:
        """Apply a partial update; a requested status is reached through a workflow transition."""
        try:
            issue = await self.client.get_issue(request.issue_key, fields=["summary", "status"])
        except JiraClientError as exc:
            return ToolResult.failure(f"Failed to get JIRA issue {request.issue_key}: {_error_text(exc)}")
        issue_key = issue.get("key") or request.issue_key

        update: Dict[str, Any] = {}
        if request.summary:
            update["summary"] = [{"set": request.summary}]
        if request.description:
            update["description"] = [{"set": request.description}]
        if update:
            try:
                await self.client.update_issue(issue_key, update)
            except JiraClientError as exc:
                return ToolResult.failure(f"Failed to update JIRA issue {request.issue_key}: {_error_text(exc)}")

        if request.status.strip():
            failure = await self._move_to_status(issue_key, issue, request.status)
            if failure is not None:
                return failure

        url = self.browse_url(issue_key)
        logger.info("issue_updated", extra={"url": url, "fields": sorted(update)})
        return ToolResult.success(f"Updated JIRA issue: {url}")

    async def _move_to_status(self, issue_key: str, issue: Dict[str, Any], status: str) -> Optional[ToolResult]:
        wanted = status.strip().casefold()
        current = ((issue.get("fields") or {}).get("status") or {}).get("name", "")
        if current.casefold() == wanted:
            return None

        try:
            transitions = await self.client.get_transitions(issue_key)
        except JiraClientError as exc:
            return ToolResult.failure(f"Failed to get transitions for JIRA issue {issue_key}: {_error_text(exc)}")

        for transition in transitions:
            target = (transition.get("to") or {}).get("name", "")
            if wanted in (target.casefold(), transition.get("name", "").casefold()):
                try:
                    await self.client.transition_issue(issue_key, str(transition["id"]))
                except JiraClientError as exc:
                    return ToolResult.failure(
                        f"Failed to move JIRA issue {issue_key} to status '{status}': {_error_text(exc)}"
                    )
                logger.info("issue_transitioned", extra={"issue": issue_key, "status": target or status})
                return None

        available = ", ".join(
            sorted({(t.get("to") or {}).get("name", "") or t.get("name", "") for t in transitions})
        ) or "none"
        return ToolResult.failure(
            f"Failed to move JIRA issue {issue_key} to status '{status}': "
            f"no matching transition (available: {available})"
        )

    # PUBLIC_INTERFACE
    async def assign_issue(self, request: IssueAssignRequest) -> ToolResult:
        """Assign an existing issue to the user matching the request's query."""
        try:
            issue = await self.client.get_issue(request.issue_key, fields=["assignee"])
        except JiraClientError as exc:
            return ToolResult.failure(f"Failed to get JIRA issue {request.issue_key}: {_error_text(exc)}")
        issue_key = issue.get("key") or request.issue_key

        try:
            user = await self.find_user(request.user.strip())
        except UserLookupError as exc:
            return ToolResult.failure(f"Failed to assign JIRA issue {issue_key}: {exc}")
        if user is None or not user.account_id:
            return ToolResult.failure(f"Failed to assign JIRA issue {issue_key}: no user given")

        try:
            await self.client.assign_issue(issue_key, user.account_id)
        except JiraClientError as exc:
            return ToolResult.failure(f"Failed to assign JIRA issue {issue_key}: {_error_text(exc)}")

        url = self.browse_url(issue_key)
        logger.info("issue_assigned", extra={"url": url, "display_name": user.display_name})
        return ToolResult.success(f"Assigned JIRA issue {url} to {user.display_name or user.account_id}")
