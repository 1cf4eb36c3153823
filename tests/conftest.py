from typing import Any, Dict, List, Optional

import pytest

from jira_mcp.core.config import Settings
from jira_mcp.services.issue_adapter import IssueToolAdapter
from jira_mcp.services.jira_client import JiraClientError

BASE_URL = "https://example.atlassian.net"


class FakeJiraClient:
    """In-memory stand-in for JiraClient that records every call."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.users: List[Dict[str, Any]] = []
        self.myself: Dict[str, Any] = {"accountId": "acc-me", "displayName": "Me", "emailAddress": "me@example.com"}
        self.issues: Dict[str, Dict[str, Any]] = {}
        self.transitions: List[Dict[str, Any]] = []
        self.next_key = "SMS-100"
        self.fail: Dict[str, JiraClientError] = {}

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.fail:
            raise self.fail[name]

    def called(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def get_myself(self) -> Dict[str, Any]:
        self._record("get_myself")
        return self.myself

    async def search_users(self, query: str) -> List[Dict[str, Any]]:
        self._record("search_users", query)
        return self.users

    async def get_issue(self, issue_key: str, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        self._record("get_issue", issue_key)
        if issue_key not in self.issues:
            raise JiraClientError("JIRA client error 404", status_code=404, details="Issue does not exist")
        return self.issues[issue_key]

    async def create_issue(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        self._record("create_issue", fields)
        return {"id": "10001", "key": self.next_key, "self": f"{BASE_URL}/rest/api/2/issue/10001"}

    async def update_issue(self, issue_key: str, update: Dict[str, Any]) -> None:
        self._record("update_issue", issue_key, update)

    async def assign_issue(self, issue_key: str, account_id: Optional[str]) -> None:
        self._record("assign_issue", issue_key, account_id)

    async def get_transitions(self, issue_key: str) -> List[Dict[str, Any]]:
        self._record("get_transitions", issue_key)
        return self.transitions

    async def transition_issue(self, issue_key: str, transition_id: str) -> None:
        self._record("transition_issue", issue_key, transition_id)


def make_issue(key: str, status: str = "To Do") -> Dict[str, Any]:
    return {"id": "1", "key": key, "fields": {"summary": "Old", "status": {"name": status}}}


@pytest.fixture
def fake_client() -> FakeJiraClient:
    return FakeJiraClient()


@pytest.fixture
def adapter(fake_client: FakeJiraClient) -> IssueToolAdapter:
    return IssueToolAdapter(fake_client, BASE_URL, "SMS")


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        JIRA_BASE_URL=BASE_URL,
        JIRA_USERNAME="bot@example.com",
        JIRA_API_TOKEN="token",
        JIRA_PROJECT_KEY="SMS",
    )
