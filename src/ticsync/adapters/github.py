"""GitHub Issues adapter over the REST (and, for deletes, GraphQL) API.

Mapping between GitHub issues and work items:

- issue number  -> ``id``
- open / closed -> ``status``
- milestone     -> ``iteration``
- first assignee -> ``assignee``
- label names   -> ``labels``
- body          -> ``description``
- issue comments -> ``comments`` (fetched for single-item reads only)

GitHub has no priorities, custom types, parents or dependencies here, which
``GITHUB_CAPABILITIES`` declares so the local store rejects them up front.

``GitHubClient`` is synchronous (``requests``); ``GitHubAdapter`` runs each
call in the default executor so the event loop is never blocked, awaiting
them one at a time.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

import requests

from ..errors import AdapterError, NotFoundError
from ..logging import get_logger
from ..models import Capabilities, Comment, NewComment, WorkItem
from ..retry import RetryConfig, is_transient, run_with_retries
from .base import GITHUB_CAPABILITIES

T = TypeVar("T")

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "ticsync/0.1.0"
HTTP_ERROR_STATUS = 400
HTTP_NOT_FOUND = 404
TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})
REQUEST_TIMEOUT = 30
STATUSES = ["open", "closed"]

_DELETE_ISSUE_MUTATION = """
mutation($id: ID!) {
  deleteIssue(input: {issueId: $id}) { clientMutationId }
}
"""


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


class GitHubClient:
    """Lightweight REST/GraphQL client scoped to one repository."""

    def __init__(
        self,
        token: str | None,
        repo: str,
        *,
        base_url: str = DEFAULT_API_URL,
        session: requests.Session | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        self.repo = repo
        self.base_url = base_url.rstrip("/")
        self.retry = retry
        self._session = session or requests.Session()
        if token:
            self._session.headers.setdefault("Authorization", f"Bearer {token}")
        self._session.headers.setdefault("Accept", "application/vnd.github+json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    def close(self) -> None:
        self._session.close()

    # ---- REST helpers -------------------------------------------------
    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
    ) -> Any:
        url = path if path.startswith("http") else f"{self.base_url}/{path.lstrip('/')}"

        def _run() -> requests.Response:
            try:
                response = self._session.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    timeout=REQUEST_TIMEOUT,
                )
            except requests.RequestException as exc:
                raise AdapterError(
                    f"GitHub API {method} {url} failed: {exc}",
                    transient=isinstance(exc, (requests.ConnectionError, requests.Timeout)),
                ) from exc
            if response.status_code >= HTTP_ERROR_STATUS:
                text = response.text or ""
                raise AdapterError(
                    f"GitHub API {method} {url} failed with {response.status_code}",
                    status=response.status_code,
                    transient=response.status_code in TRANSIENT_STATUSES or is_transient(text),
                    response_text=text,
                    retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                )
            return response

        response = run_with_retries(_run, cfg=self.retry)
        if not response.text:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _paginate(self, path: str, *, params: dict[str, Any] | None = None) -> list[Any]:
        params = dict(params or {})
        per_page = params.setdefault("per_page", 100)
        params.setdefault("page", 1)
        results: list[Any] = []
        while True:
            data = self._request("GET", path, params=params)
            if not isinstance(data, list):
                break
            results.extend(data)
            if len(data) < per_page:
                break
            params["page"] = params.get("page", 1) + 1
        return results

    # ---- issues -------------------------------------------------------
    def list_issues(self) -> list[dict[str, Any]]:
        data = self._paginate(f"/repos/{self.repo}/issues", params={"state": "all"})
        # The issues endpoint also returns pull requests.
        return [e for e in data if isinstance(e, dict) and "pull_request" not in e]

    def get_issue(self, number: str) -> dict[str, Any]:
        data = self._request("GET", f"/repos/{self.repo}/issues/{number}")
        if not isinstance(data, dict):
            raise AdapterError(f"Unexpected response for issue #{number}")
        return data

    def create_issue(self, payload: dict[str, Any]) -> dict[str, Any]:
        data = self._request("POST", f"/repos/{self.repo}/issues", json_body=payload)
        if not isinstance(data, dict) or not isinstance(data.get("number"), int):
            raise AdapterError("GitHub did not return the created issue number")
        return data

    def update_issue(self, number: str, payload: dict[str, Any]) -> dict[str, Any]:
        data = self._request("PATCH", f"/repos/{self.repo}/issues/{number}", json_body=payload)
        if not isinstance(data, dict):
            raise AdapterError(f"Unexpected response updating issue #{number}")
        return data

    def list_comments(self, number: str) -> list[dict[str, Any]]:
        data = self._paginate(f"/repos/{self.repo}/issues/{number}/comments")
        return [e for e in data if isinstance(e, dict)]

    def create_comment(self, number: str, body: str) -> dict[str, Any]:
        data = self._request(
            "POST", f"/repos/{self.repo}/issues/{number}/comments", json_body={"body": body}
        )
        if not isinstance(data, dict):
            raise AdapterError(f"Unexpected response commenting on issue #{number}")
        return data

    def list_milestones(self, state: str = "all") -> list[dict[str, Any]]:
        data = self._paginate(f"/repos/{self.repo}/milestones", params={"state": state})
        return [e for e in data if isinstance(e, dict)]

    def list_assignees(self) -> list[str]:
        data = self._paginate(f"/repos/{self.repo}/assignees")
        return [str(e["login"]) for e in data if isinstance(e, dict) and e.get("login")]

    def graphql(self, query: str, variables: dict[str, Any] | None = None) -> Any:
        payload = {"query": query, "variables": variables or {}}
        data = self._request("POST", "/graphql", json_body=payload)
        if isinstance(data, dict) and data.get("errors"):
            raise AdapterError(f"GraphQL query failed: {data['errors']}")
        return data

    def delete_issue(self, number: str) -> None:
        node_id = self.get_issue(number).get("node_id")
        if not node_id:
            raise AdapterError(f"Issue #{number} has no node id")
        self.graphql(_DELETE_ISSUE_MUTATION, {"id": node_id})

    def resolve_milestone(self, title: str) -> int | None:
        title = title.strip()
        if not title:
            return None
        for entry in self.list_milestones():
            entry_title = entry.get("title")
            if isinstance(entry_title, str) and entry_title.lower() == title.lower():
                number = entry.get("number")
                if isinstance(number, int):
                    return number
        return None


def comment_from_github(raw: Mapping[str, Any]) -> Comment:
    user = raw.get("user") or {}
    return Comment(
        author=str(user.get("login") or ""),
        date=str(raw.get("created_at") or ""),
        body=str(raw.get("body") or ""),
    )


def issue_to_work_item(issue: Mapping[str, Any], comments: list[Mapping[str, Any]] | None = None) -> WorkItem:
    milestone = issue.get("milestone") or {}
    assignees = issue.get("assignees") or []
    labels = issue.get("labels") or []
    return WorkItem(
        id=str(issue["number"]),
        title=str(issue.get("title") or ""),
        type="issue",
        status="closed" if str(issue.get("state") or "").lower() == "closed" else "open",
        iteration=str(milestone.get("title") or "") if isinstance(milestone, Mapping) else "",
        assignee=str(assignees[0].get("login") or "") if assignees else "",
        labels=[str(lbl["name"]) for lbl in labels if isinstance(lbl, Mapping) and lbl.get("name")],
        description=str(issue.get("body") or ""),
        comments=[comment_from_github(c) for c in comments or []],
        created=str(issue.get("created_at") or ""),
        updated=str(issue.get("updated_at") or ""),
    )


class GitHubAdapter:
    name = "github"

    def __init__(self, client: GitHubClient, capabilities: Capabilities = GITHUB_CAPABILITIES) -> None:
        self.client = client
        self.capabilities = capabilities

    def close(self) -> None:
        self.client.close()

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    def _payload(self, data: Mapping[str, Any]) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if "title" in data:
            payload["title"] = data["title"]
        if "description" in data:
            payload["body"] = data["description"] or ""
        if "labels" in data:
            payload["labels"] = list(data["labels"] or [])
        if "assignee" in data:
            payload["assignees"] = [data["assignee"]] if data["assignee"] else []
        if "status" in data:
            payload["state"] = "closed" if data["status"] == "closed" else "open"
        if "iteration" in data:
            payload["milestone"] = self.client.resolve_milestone(str(data["iteration"] or ""))
        return payload

    def get_capabilities(self) -> Capabilities:
        return self.capabilities

    async def get_statuses(self) -> list[str]:
        return list(STATUSES)

    async def get_work_item_types(self) -> list[str]:
        return ["issue"]

    async def get_assignees(self) -> list[str]:
        return await self._call(self.client.list_assignees)

    async def get_iterations(self) -> list[str]:
        milestones = await self._call(self.client.list_milestones)
        return [str(m["title"]) for m in milestones if m.get("title")]

    async def get_current_iteration(self) -> str:
        milestones = await self._call(self.client.list_milestones, "open")
        if not milestones:
            return ""
        # Earliest due date first; undated milestones sort last.
        milestones.sort(key=lambda m: (m.get("due_on") is None, m.get("due_on") or ""))
        return str(milestones[0].get("title") or "")

    async def list_work_items(self, iteration: str | None = None) -> list[WorkItem]:
        issues = await self._call(self.client.list_issues)
        items = [issue_to_work_item(i) for i in issues]
        if iteration:
            items = [i for i in items if i.iteration == iteration]
        return items

    async def get_work_item(self, item_id: str) -> WorkItem:
        try:
            issue = await self._call(self.client.get_issue, item_id)
        except AdapterError as exc:
            if exc.status == HTTP_NOT_FOUND:
                raise NotFoundError(item_id) from exc
            raise
        comments = await self._call(self.client.list_comments, item_id)
        return issue_to_work_item(issue, comments)

    async def create_work_item(self, data: Mapping[str, Any]) -> WorkItem:
        payload = await self._call(self._payload, data)
        state = payload.pop("state", "open")
        created = await self._call(self.client.create_issue, payload)
        if state == "closed":
            created = await self._call(self.client.update_issue, str(created["number"]), {"state": "closed"})
        return issue_to_work_item(created)

    async def update_work_item(self, item_id: str, partial: Mapping[str, Any]) -> WorkItem:
        payload = await self._call(self._payload, partial)
        updated = await self._call(self.client.update_issue, item_id, payload)
        return issue_to_work_item(updated)

    async def delete_work_item(self, item_id: str) -> None:
        try:
            await self._call(self.client.delete_issue, item_id)
        except AdapterError as exc:
            if exc.status != HTTP_NOT_FOUND:
                raise
            get_logger().info("issue already deleted on remote", item_id=item_id)

    async def add_comment(self, item_id: str, comment: NewComment) -> Comment:
        created = await self._call(self.client.create_comment, item_id, comment.body)
        return comment_from_github(created)


__all__ = [
    "GitHubAdapter",
    "GitHubClient",
    "comment_from_github",
    "issue_to_work_item",
]
