import pytest

from conftest import BASE_URL, make_issue
from jira_mcp.models.jira import AssigneeRef, IssueAssignRequest, IssueCreateRequest, IssueUpdateRequest
from jira_mcp.services.issue_adapter import UserLookupError, extract_assignee_directive
from jira_mcp.services.jira_client import JiraClientError


def test_extract_assignee_directive():
    assert extract_assignee_directive("steps...\nassign to: alice@example.com\nmore") == "alice@example.com"
    assert extract_assignee_directive("Please ASSIGN TO:   Bob Smith  ") == "Bob Smith"
    assert extract_assignee_directive("assign to: a\nassign to: b") == "a"
    assert extract_assignee_directive("assign to:") == ""
    assert extract_assignee_directive("no directive here") is None
    assert extract_assignee_directive("") is None
    assert extract_assignee_directive(None) is None
    # lowercasing "İ" yields two code points; the query must still be cut at the marker
    assert extract_assignee_directive("İİ team: assign to: bob") == "bob"
    assert extract_assignee_directive("İstanbul ASSIGN TO: ayşe\nrest") == "ayşe"


async def test_create_uses_default_project(adapter, fake_client):
    result = await adapter.create_issue(IssueCreateRequest(summary="Hello", project_key=""))

    assert result.ok
    fields = fake_client.called("create_issue")[0][1]
    assert fields["project"] == {"key": "SMS"}


async def test_create_keeps_explicit_project(adapter, fake_client):
    await adapter.create_issue(IssueCreateRequest(summary="Hello", project_key="OPS"))

    fields = fake_client.called("create_issue")[0][1]
    assert fields["project"] == {"key": "OPS"}


async def test_create_directive_wins_over_explicit_assignee(adapter, fake_client):
    fake_client.users = [{"accountId": "acc-alice", "displayName": "Alice", "emailAddress": "alice@example.com"}]
    request = IssueCreateRequest(
        summary="Hello",
        description="Details\nAssign To: alice@example.com\n",
        assignee=AssigneeRef(account_id="acc-explicit"),
    )

    await adapter.create_issue(request)

    assert fake_client.called("search_users") == [("search_users", "alice@example.com")]
    fields = fake_client.called("create_issue")[0][1]
    assert fields["assignee"] == {"accountId": "acc-alice"}


async def test_create_uses_explicit_assignee(adapter, fake_client):
    await adapter.create_issue(IssueCreateRequest(summary="Hello", assignee=AssigneeRef(account_id="acc-42")))

    assert fake_client.called("get_myself") == []
    fields = fake_client.called("create_issue")[0][1]
    assert fields["assignee"] == {"accountId": "acc-42"}


async def test_create_defaults_to_self(adapter, fake_client):
    await adapter.create_issue(IssueCreateRequest(summary="Hello", assignee=AssigneeRef(account_id="")))

    fields = fake_client.called("create_issue")[0][1]
    assert fields["assignee"] == {"accountId": "acc-me"}


async def test_create_unassigned_when_self_lookup_fails(adapter, fake_client):
    fake_client.fail["get_myself"] = JiraClientError("JIRA client error 401", status_code=401)

    result = await adapter.create_issue(IssueCreateRequest(summary="Hello"))

    assert result.ok
    assert "assignee" not in fake_client.called("create_issue")[0][1]


async def test_create_unassigned_when_no_user_found(adapter, fake_client):
    fake_client.users = []

    result = await adapter.create_issue(IssueCreateRequest(summary="Hello", description="assign to: nobody"))

    assert result.ok
    assert "assignee" not in fake_client.called("create_issue")[0][1]
    assert fake_client.called("get_myself") == []


async def test_create_bug_scenario(adapter, fake_client):
    fake_client.next_key = "SMS-77"
    fake_client.users = [
        {"accountId": "acc-bobby", "displayName": "Bobby Tables", "emailAddress": "bobby@example.com"},
        {"accountId": "acc-bob", "displayName": "bob", "emailAddress": "bob@example.com"},
    ]
    request = IssueCreateRequest(
        summary="Bug", issue_type="Bug", priority="High", description="steps... assign to: bob"
    )

    result = await adapter.create_issue(request)

    fields = fake_client.called("create_issue")[0][1]
    assert fields["assignee"] == {"accountId": "acc-bob"}
    assert fields["issuetype"] == {"name": "Bug"}
    assert fields["priority"] == {"name": "High"}
    assert result.ok
    assert result.text == f"Created JIRA issue: {BASE_URL}/browse/SMS-77"


async def test_create_builds_full_field_set(adapter, fake_client):
    request = IssueCreateRequest(
        summary="Hello",
        labels=["backend", "backend", "urgent"],
        components=["API"],
        custom_fields={"customfield_10016": 3, "summary": "ignored"},
        assignee=AssigneeRef(account_id="acc-1"),
    )

    await adapter.create_issue(request)

    fields = fake_client.called("create_issue")[0][1]
    assert fields["summary"] == "Hello"
    assert fields["issuetype"] == {"name": "Task"}
    assert fields["labels"] == ["backend", "urgent"]
    assert fields["components"] == [{"name": "API"}]
    assert fields["customfield_10016"] == 3
    assert "priority" not in fields
    assert "description" not in fields


async def test_create_failure_is_reported_as_text(adapter, fake_client):
    fake_client.fail["create_issue"] = JiraClientError(
        "JIRA client error 400", status_code=400, details='{"errors":{"issuetype":"invalid"}}'
    )

    result = await adapter.create_issue(IssueCreateRequest(summary="Hello"))

    assert not result.ok
    assert result.text.startswith("Failed to create JIRA issue: JIRA client error 400")
    assert "issuetype" in result.text


async def test_find_user_prefers_exact_match(adapter, fake_client):
    fake_client.users = [
        {"accountId": "acc-1", "displayName": "Alice Cooper", "emailAddress": "acooper@example.com"},
        {"accountId": "acc-2", "displayName": "Alice", "emailAddress": "ALICE@example.com"},
    ]

    user = await adapter.find_user("alice@example.com")

    assert user.account_id == "acc-2"


async def test_find_user_matches_account_name(adapter, fake_client):
    fake_client.users = [
        {"accountId": "acc-1", "displayName": "Someone"},
        {"accountId": "acc-2", "displayName": "Jay", "name": "JSMITH"},
    ]

    user = await adapter.find_user("jsmith")

    assert user.account_id == "acc-2"


async def test_find_user_falls_back_to_first(adapter, fake_client):
    fake_client.users = [{"accountId": "acc-1", "displayName": "Alice Cooper"}, {"accountId": "acc-2"}]

    user = await adapter.find_user("alice")

    assert user.account_id == "acc-1"


async def test_find_user_empty_query_skips_search(adapter, fake_client):
    assert await adapter.find_user("") is None
    assert fake_client.called("search_users") == []


async def test_find_user_no_results_raises(adapter, fake_client):
    with pytest.raises(UserLookupError):
        await adapter.find_user("ghost")


async def test_find_user_search_error_raises(adapter, fake_client):
    fake_client.fail["search_users"] = JiraClientError("JIRA request failed")

    with pytest.raises(UserLookupError, match="JIRA request failed"):
        await adapter.find_user("alice")


async def test_update_without_fields_issues_no_update(adapter, fake_client):
    fake_client.issues["SMS-1"] = make_issue("SMS-1")

    result = await adapter.update_issue(IssueUpdateRequest(issue_key="SMS-1"))

    assert result.ok
    assert fake_client.called("update_issue") == []
    assert result.text == f"Updated JIRA issue: {BASE_URL}/browse/SMS-1"


async def test_update_summary_only(adapter, fake_client):
    fake_client.issues["SMS-1"] = make_issue("SMS-1")

    await adapter.update_issue(IssueUpdateRequest(issue_key="SMS-1", summary="New title"))

    assert fake_client.called("update_issue") == [("update_issue", "SMS-1", {"summary": [{"set": "New title"}]})]


async def test_update_summary_and_description(adapter, fake_client):
    fake_client.issues["SMS-1"] = make_issue("SMS-1")

    await adapter.update_issue(IssueUpdateRequest(issue_key="SMS-1", summary="T", description="D"))

    update = fake_client.called("update_issue")[0][2]
    assert update == {"summary": [{"set": "T"}], "description": [{"set": "D"}]}


async def test_update_fetch_failure_stops(adapter, fake_client):
    result = await adapter.update_issue(IssueUpdateRequest(issue_key="SMS-404", summary="New"))

    assert not result.ok
    assert "SMS-404" in result.text
    assert result.text.startswith("Failed to get JIRA issue")
    assert fake_client.calls == [("get_issue", "SMS-404")]


async def test_update_failure_is_reported(adapter, fake_client):
    fake_client.issues["SMS-1"] = make_issue("SMS-1")
    fake_client.fail["update_issue"] = JiraClientError("JIRA client error 403", status_code=403)

    result = await adapter.update_issue(IssueUpdateRequest(issue_key="SMS-1", summary="New"))

    assert not result.ok
    assert result.text == "Failed to update JIRA issue SMS-1: JIRA client error 403"


async def test_update_status_already_current_makes_no_transition(adapter, fake_client):
    fake_client.issues["SMS-12"] = make_issue("SMS-12", status="Done")

    result = await adapter.update_issue(IssueUpdateRequest(issue_key="SMS-12", status="done"))

    assert result.ok
    assert fake_client.called("get_transitions") == []
    assert fake_client.called("transition_issue") == []


async def test_update_status_runs_matching_transition(adapter, fake_client):
    fake_client.issues["SMS-12"] = make_issue("SMS-12", status="In Progress")
    fake_client.transitions = [
        {"id": "11", "name": "Back to todo", "to": {"name": "To Do"}},
        {"id": "31", "name": "Resolve", "to": {"name": "Done"}},
    ]

    result = await adapter.update_issue(IssueUpdateRequest(issue_key="SMS-12", status="Done"))

    assert result.ok
    assert fake_client.called("transition_issue") == [("transition_issue", "SMS-12", "31")]


async def test_update_status_matches_transition_name(adapter, fake_client):
    fake_client.issues["SMS-12"] = make_issue("SMS-12")
    fake_client.transitions = [{"id": 21, "name": "Start Progress", "to": {"name": "In Progress"}}]

    await adapter.update_issue(IssueUpdateRequest(issue_key="SMS-12", status="start progress"))

    assert fake_client.called("transition_issue") == [("transition_issue", "SMS-12", "21")]


async def test_update_status_without_transition_fails(adapter, fake_client):
    fake_client.issues["SMS-12"] = make_issue("SMS-12")
    fake_client.transitions = [{"id": "21", "name": "Start Progress", "to": {"name": "In Progress"}}]

    result = await adapter.update_issue(IssueUpdateRequest(issue_key="SMS-12", status="Done"))

    assert not result.ok
    assert "no matching transition" in result.text
    assert "In Progress" in result.text
    assert fake_client.called("transition_issue") == []


async def test_assign_issue(adapter, fake_client):
    fake_client.issues["SMS-5"] = make_issue("SMS-5")
    fake_client.users = [{"accountId": "acc-carol", "displayName": "Carol", "emailAddress": "carol@example.com"}]

    result = await adapter.assign_issue(IssueAssignRequest(issue_key="SMS-5", user="carol@example.com"))

    assert result.ok
    assert fake_client.called("assign_issue") == [("assign_issue", "SMS-5", "acc-carol")]
    assert f"{BASE_URL}/browse/SMS-5" in result.text


async def test_assign_issue_unknown_user(adapter, fake_client):
    fake_client.issues["SMS-5"] = make_issue("SMS-5")

    result = await adapter.assign_issue(IssueAssignRequest(issue_key="SMS-5", user="ghost"))

    assert not result.ok
    assert "no user found" in result.text
    assert fake_client.called("assign_issue") == []


async def test_assign_issue_missing_issue(adapter, fake_client):
    result = await adapter.assign_issue(IssueAssignRequest(issue_key="SMS-9", user="carol"))

    assert not result.ok
    assert "SMS-9" in result.text
    assert fake_client.called("search_users") == []


async def test_update_blank_status_makes_no_transition(adapter, fake_client):
    fake_client.issues["SMS-12"] = make_issue("SMS-12")
    fake_client.transitions = [{"id": "99", "to": {}}]

    result = await adapter.update_issue(IssueUpdateRequest(issue_key="SMS-12", status="   "))

    assert result.ok
    assert fake_client.called("get_transitions") == []
    assert fake_client.called("transition_issue") == []
