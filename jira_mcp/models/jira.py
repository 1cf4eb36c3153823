from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field


# PUBLIC_INTERFACE
class AssigneeRef(BaseModel):
    """Explicit assignee reference supplied by the caller."""
    account_id: str = Field(
        default="",
        validation_alias=AliasChoices("account_id", "accountId"),
        description="JIRA accountId of the user to assign",
    )


# PUBLIC_INTERFACE
class JiraUser(BaseModel):
    """User account as returned by the JIRA user endpoints."""
    account_id: Optional[str] = Field(default="", alias="accountId", description="JIRA accountId")
    display_name: Optional[str] = Field(default="", alias="displayName", description="Display name")
    email_address: Optional[str] = Field(default="", alias="emailAddress", description="Email address (may be hidden)")
    name: Optional[str] = Field(default="", description="Account name (JIRA Server/Data Center)")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    def matches(self, query: str) -> bool:
        """Case-insensitive exact match on email, display name or account name."""
        needle = query.casefold()
        return any(
            value and value.casefold() == needle
            for value in (self.email_address, self.display_name, self.name)
        )


class IssueCreateRequest(BaseModel):
    """
    PUBLIC_INTERFACE
    Request model for creating a JIRA issue.
    """
    summary: str = Field(..., description="Short summary/title of the issue")
    description: str = Field(default="", description='Detailed description; may contain an "assign to: <user>" line')
    issue_type: str = Field(default="Task", description='Issue type name, e.g., "Task", "Bug"')
    priority: str = Field(default="", description='Priority name, e.g., "High"')
    project_key: str = Field(default="", description="Project key; the configured default is used when empty")
    labels: List[str] = Field(default_factory=list, description="Labels to set")
    components: List[str] = Field(default_factory=list, description="Component names to set")
    custom_fields: Dict[str, Any] = Field(default_factory=dict, description="Extra fields keyed by field id")
    assignee: Optional[AssigneeRef] = Field(default=None, description="Explicit assignee")


class IssueUpdateRequest(BaseModel):
    """
    PUBLIC_INTERFACE
    Request model for a partial update of an existing JIRA issue.
    """
    issue_key: str = Field(..., description="Issue key, e.g., PROJ-123")
    summary: str = Field(default="", description="New summary; left untouched when empty")
    description: str = Field(default="", description="New description; left untouched when empty")
    status: str = Field(default="", description="Target status name, reached through a workflow transition")


# PUBLIC_INTERFACE
class IssueAssignRequest(BaseModel):
    """Request to assign an existing issue to a user."""
    issue_key: str = Field(..., description="Issue key, e.g., PROJ-123")
    user: str = Field(..., description="Email, display name or account name of the user")


# PUBLIC_INTERFACE
class ToolResult(BaseModel):
    """Uniform result envelope returned for every tool invocation."""
    text: str = Field(..., description="Human-readable outcome")
    ok: bool = Field(default=True, description="False when the tracker call failed")

    @classmethod
    def success(cls, text: str) -> "ToolResult":
        return cls(text=text, ok=True)

    @classmethod
    def failure(cls, text: str) -> "ToolResult":
        return cls(text=text, ok=False)
