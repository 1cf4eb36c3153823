from __future__ import annotations

import asyncio
import base64
from typing import Any, Dict, List, Optional

import httpx

from jira_mcp.core.config import Settings
from jira_mcp.utils.logging import logger, timed_log_debug


class JiraClientError(Exception):
    """Represents an error interacting with the JIRA API."""

    def __init__(self, message: str, status_code: int = 502, details: Any | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class JiraClient:
    """
    PUBLIC_INTERFACE
    Async JIRA REST API (v2) client with basic auth and exponential backoff retries for 5xx errors,
    rate limiting (429) handling with Retry-After support, and structured debug logging.

    A single instance is shared by all tool invocations; it holds no per-call state.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        api_token: str,
        timeout: float = 15.0,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not base_url or not username or not api_token:
            raise ValueError("Missing JIRA configuration for client initialization.")
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.api_token = api_token
        self.timeout = timeout
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_base = float(backoff_base)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "JiraClient":
        return cls(
            base_url=settings.JIRA_BASE_URL,
            username=settings.JIRA_USERNAME,
            api_token=settings.JIRA_API_TOKEN,
            timeout=settings.JIRA_TIMEOUT_SECONDS,
            max_attempts=settings.JIRA_RETRY_MAX_ATTEMPTS,
            backoff_base=settings.JIRA_RETRY_BACKOFF_BASE,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {
                "Accept": "application/json",
                "Content-Type": "application/json",
                "Authorization": f"Basic {self._basic_token()}",
            }
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}/rest/api/2",
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _basic_token(self) -> str:
        return base64.b64encode(f"{self.username}:{self.api_token}".encode("utf-8")).decode("utf-8")

    def _backoff(self, attempt: int) -> float:
        return self.backoff_base * (2 ** (attempt - 1))

    async def _request_with_retries(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Perform an HTTP request with retries.
        Retries on:
          - 5xx responses
          - 429 (Rate limited) honoring Retry-After header if present
          - network errors (httpx.HTTPError)
        Maps client/server errors to JiraClientError with appropriate status mapping:
          - 400, 401, 403, 404 propagate as-is
          - other 4xx -> 400
          - 5xx -> 502
        Cancellation is not intercepted and aborts the request in flight.
        """
        last_exc: Optional[Exception] = None

        attempt = 0
        while attempt < self.max_attempts:
            attempt += 1
            with timed_log_debug("jira_http_request", extra={"method": method, "url": url, "attempt": attempt}):
                try:
                    client = await self._get_client()
                    resp = await client.request(method, url, **kwargs)

                    logger.debug(
                        "jira_http_response",
                        extra={"method": method, "url": url, "status_code": resp.status_code, "attempt": attempt},
                    )

                    if resp.status_code == 429:
                        retry_after = resp.headers.get("Retry-After")
                        try:
                            delay = float(retry_after) if retry_after is not None else self._backoff(attempt)
                        except ValueError:
                            delay = self._backoff(attempt)
                        if attempt < self.max_attempts:
                            logger.debug("jira_rate_limited_retrying", extra={"delay_s": delay, "attempt": attempt})
                            await asyncio.sleep(delay)
                            continue
                        raise JiraClientError(
                            message="JIRA rate limit exceeded",
                            status_code=429,
                            details=self._safe_response_text(resp),
                        )

                    if 500 <= resp.status_code < 600:
                        if attempt < self.max_attempts:
                            delay = self._backoff(attempt)
                            logger.debug(
                                "jira_server_error_retrying",
                                extra={"status_code": resp.status_code, "delay_s": delay, "attempt": attempt},
                            )
                            await asyncio.sleep(delay)
                            continue
                        raise JiraClientError(
                            message=f"JIRA server error {resp.status_code}",
                            status_code=502,
                            details=self._safe_response_text(resp),
                        )

                    if 400 <= resp.status_code < 500:
                        mapped = resp.status_code if resp.status_code in (400, 401, 403, 404) else 400
                        raise JiraClientError(
                            message=f"JIRA client error {resp.status_code}",
                            status_code=mapped,
                            details=self._safe_response_text(resp),
                        )

                    return resp

                except JiraClientError as exc:
                    last_exc = exc
                    break
                except httpx.HTTPError as exc:
                    last_exc = exc
                    if attempt >= self.max_attempts:
                        break
                    delay = self._backoff(attempt)
                    logger.debug(
                        "jira_network_error_retrying",
                        extra={"delay_s": delay, "attempt": attempt, "error": str(exc)},
                    )
                    await asyncio.sleep(delay)

        if isinstance(last_exc, JiraClientError):
            raise last_exc
        raise JiraClientError(message="JIRA request failed", status_code=502, details=str(last_exc))

    def _safe_response_text(self, response: httpx.Response) -> str:
        try:
            return response.text
        except (httpx.ResponseNotRead, UnicodeDecodeError):
            return "<no text>"

    # PUBLIC_INTERFACE
    async def get_myself(self) -> Dict[str, Any]:
        """
        Fetch the account the client is authenticated as.
        """
        resp = await self._request_with_retries("GET", "/myself")
        return resp.json()

    # PUBLIC_INTERFACE
    async def search_users(self, query: str, max_results: int = 50) -> List[Dict[str, Any]]:
        """
        Find users whose name, display name or email matches the query.
        """
        params = {"query": query, "maxResults": max_results}
        resp = await self._request_with_retries("GET", "/user/search", params=params)
        return resp.json()

    # PUBLIC_INTERFACE
    async def get_issue(self, issue_key: str, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Fetch an issue by key.
        """
        params = {"fields": ",".join(fields)} if fields else None
        resp = await self._request_with_retries("GET", f"/issue/{issue_key}", params=params)
        return resp.json()

    # PUBLIC_INTERFACE
    async def create_issue(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a new issue from a prepared field set. Returns the id/key/self triple.
        """
        resp = await self._request_with_retries("POST", "/issue", json={"fields": fields})
        return resp.json()

    # PUBLIC_INTERFACE
    async def update_issue(self, issue_key: str, update: Dict[str, Any]) -> None:
        """
        Apply update operations, e.g. {"summary": [{"set": "New"}]}, to an issue.
        """
        await self._request_with_retries("PUT", f"/issue/{issue_key}", json={"update": update})

    # PUBLIC_INTERFACE
    async def assign_issue(self, issue_key: str, account_id: Optional[str]) -> None:
        """
        Set the assignee of an issue; None unassigns it.
        """
        await self._request_with_retries("PUT", f"/issue/{issue_key}/assignee", json={"accountId": account_id})

    # PUBLIC_INTERFACE
    async def get_transitions(self, issue_key: str) -> List[Dict[str, Any]]:
        """
        Fetch the workflow transitions currently available for an issue.
        """
        resp = await self._request_with_retries("GET", f"/issue/{issue_key}/transitions")
        return resp.json().get("transitions", [])

    # PUBLIC_INTERFACE
    async def transition_issue(self, issue_key: str, transition_id: str) -> None:
        """
        Perform a workflow transition on an issue.
        """
        payload = {"transition": {"id": transition_id}}
        await self._request_with_retries("POST", f"/issue/{issue_key}/transitions", json=payload)

    async def aclose(self) -> None:
        """Close underlying httpx client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
