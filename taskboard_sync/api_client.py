"""REST client implementing the task, label, assignee and user collaborators."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from .errors import ApiError
from .models import LabelRef, ListRef, TaskPage, TaskRecord, UserRef

logger = logging.getLogger(__name__)

TOTAL_PAGES_HEADER = "x-pagination-total-pages"


class ApiClient:
    """Thin async wrapper around httpx with bearer auth and error mapping."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Any = None,
    ) -> httpx.Response:
        logger.debug("%s %s %s", method, path, params or "")
        resp = await self._client.request(method, path, json=json, params=params)
        if resp.is_error:
            message, code = "", None
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                message = body.get("message", "")
                code = body.get("code")
            else:
                message = resp.text
            raise ApiError(resp.status_code, message, code)
        return resp

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


def _query_pairs(params: Mapping[str, Any]) -> list[tuple[str, Any]]:
    """Flatten list values into repeated ``key[]`` query parameters."""
    pairs: list[tuple[str, Any]] = []
    for key, value in params.items():
        if isinstance(value, (list, tuple)):
            pairs.extend((f"{key}[]", v) for v in value)
        else:
            pairs.append((key, value))
    return pairs


class TaskService:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def create(self, task: TaskRecord) -> TaskRecord:
        resp = await self.api.request("PUT", f"/lists/{task.list_id}", json=task.to_api())
        return TaskRecord.from_api(resp.json())

    async def update(self, task: TaskRecord) -> TaskRecord:
        resp = await self.api.request("POST", f"/tasks/{task.id}", json=task.to_api())
        return TaskRecord.from_api(resp.json())

    async def delete(self, task: TaskRecord) -> dict:
        resp = await self.api.request("DELETE", f"/tasks/{task.id}")
        return resp.json()


class TaskCollectionService:
    """Paged task queries, scoped to a list or across all lists."""

    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def get_all(
        self, scope: Mapping[str, Any], params: Mapping[str, Any], page: int = 1
    ) -> TaskPage:
        list_id = scope.get("list_id")
        path = f"/lists/{list_id}/tasks" if list_id else "/tasks/all"
        query = _query_pairs(params) + [("page", page)]
        resp = await self.api.request("GET", path, params=query)
        tasks = [TaskRecord.from_api(t) for t in resp.json() or []]
        try:
            total_pages = int(resp.headers.get(TOTAL_PAGES_HEADER, 1))
        except ValueError:
            total_pages = 1
        return TaskPage(tasks=tasks, total_pages=total_pages)


class LabelTaskService:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def create(self, *, task_id: int, label_id: int) -> dict:
        resp = await self.api.request(
            "PUT", f"/tasks/{task_id}/labels", json={"label_id": label_id}
        )
        return resp.json()

    async def delete(self, *, task_id: int, label_id: int) -> dict:
        resp = await self.api.request("DELETE", f"/tasks/{task_id}/labels/{label_id}")
        return resp.json()


class TaskAssigneeService:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def create(self, *, task_id: int, user_id: int) -> dict:
        resp = await self.api.request(
            "PUT", f"/tasks/{task_id}/assignees", json={"user_id": user_id}
        )
        return resp.json()

    async def delete(self, *, task_id: int, user_id: int) -> dict:
        resp = await self.api.request("DELETE", f"/tasks/{task_id}/assignees/{user_id}")
        return resp.json()


class UserService:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def get_all(
        self, filters: Mapping[str, Any], params: Mapping[str, Any]
    ) -> list[UserRef]:
        resp = await self.api.request("GET", "/users", params={**filters, **params})
        return [UserRef.from_api(u) for u in resp.json() or []]


class LabelService:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def get_all(self) -> list[LabelRef]:
        resp = await self.api.request("GET", "/labels")
        return [LabelRef.from_api(lb) for lb in resp.json() or []]

    async def create(self, label: LabelRef) -> LabelRef:
        resp = await self.api.request("PUT", "/labels", json=label.to_api())
        return LabelRef.from_api(resp.json())


class ListService:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def get_all(self) -> list[ListRef]:
        resp = await self.api.request("GET", "/lists")
        return [ListRef(id=lst["id"], title=lst.get("title") or "") for lst in resp.json() or []]
