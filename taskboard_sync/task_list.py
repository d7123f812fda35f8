"""Paginated, sorted, filterable task list driven by query parameters.

Parameter changes are pulled: callers mutate ``search``/``page``/``sort_by``
and then call ``parameters_changed()``. The fetch only happens when the
serialized parameter set differs from the one last seen.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from .models import QueryParams, TaskRecord
from .ports import NavigationContext, TaskCollection

logger = logging.getLogger(__name__)

SORT_BY_DEFAULT = {"id": "desc"}


def get_default_params() -> dict[str, Any]:
    return {
        "sort_by": ["position", "id"],
        "order_by": ["asc", "desc"],
        "filter_by": ["done"],
        "filter_value": ["false"],
        "filter_comparator": ["equals"],
        "filter_concat": "and",
    }


def format_sort_order(sort_by: Mapping[str, str], params: dict[str, Any]) -> dict[str, Any]:
    """Fill ``sort_by``/``order_by`` in params from a field -> direction mapping.

    ``id`` always goes last: sorting by id first would make every other sort
    column meaningless.
    """
    keys = [k for k in sort_by if k != "id"]
    if "id" in sort_by:
        keys.append("id")
    params["sort_by"] = keys
    params["order_by"] = [sort_by[k] for k in keys]
    return params


def build_task_params(
    base: Mapping[str, Any],
    search: str,
    sort_by: Mapping[str, str],
    list_id: int | None,
    page: int,
) -> tuple[dict[str, Any], QueryParams, int]:
    """Assemble the (scope, params, page) triple for a collection query."""
    params = dict(base)
    if search != "":
        params["s"] = search
    params = format_sort_order(sort_by, params)
    return {"list_id": list_id}, QueryParams(**params), page or 1


def params_signature(scope: Mapping[str, Any], params: QueryParams, page: int) -> str:
    return json.dumps([dict(scope), params.to_query(), page], sort_keys=True)


def should_reload(previous: str | None, current: str) -> bool:
    return previous != current


class TaskList:
    """Task list state for one list view."""

    def __init__(
        self,
        collection: TaskCollection,
        list_id: int | None = None,
        sort_by_default: Mapping[str, str] = SORT_BY_DEFAULT,
    ) -> None:
        self.collection = collection
        self.list_id = list_id
        self.params: dict[str, Any] = get_default_params()
        self.search = ""
        self.page = 1
        self.sort_by: dict[str, str] = dict(sort_by_default)
        self.tasks: list[TaskRecord] = []
        self.total_pages = 1
        self.fetch_count = 0
        self._signature: str | None = None
        self._epoch = 0
        self._pending = 0

    @property
    def loading(self) -> bool:
        return self._pending > 0

    def all_tasks_params(self) -> tuple[dict[str, Any], QueryParams, int]:
        return build_task_params(self.params, self.search, self.sort_by, self.list_id, self.page)

    async def load_tasks(self) -> list[TaskRecord]:
        """Fetch the current page unconditionally. A later fetch wins."""
        scope, params, page = self.all_tasks_params()
        self._epoch += 1
        epoch = self._epoch
        self.fetch_count += 1
        self.tasks = []
        self._pending += 1
        try:
            result = await self.collection.get_all(scope, params.to_query(), page)
        finally:
            self._pending -= 1
        if epoch != self._epoch:
            logger.debug("Ignoring task list response for superseded parameters")
            return self.tasks
        self.tasks = result.tasks
        self.total_pages = result.total_pages
        return self.tasks

    async def parameters_changed(self) -> bool:
        """Reload if the assembled parameters differ from the last ones.

        Returns True when a fetch was made.
        """
        signature = params_signature(*self.all_tasks_params())
        if not should_reload(self._signature, signature):
            return False
        self._signature = signature
        logger.debug("Task list parameters changed: %s", signature)
        await self.load_tasks()
        return True

    def sync_query(self, query: Mapping[str, str]) -> None:
        """Seed page and search from the navigation query (inbound only)."""
        if query.get("search") is not None:
            self.search = query["search"]
        if query.get("page") is not None:
            try:
                page = int(query["page"])
            except ValueError:
                page = 1
            self.page = max(page, 1)

    async def activate(self, navigation: NavigationContext) -> bool:
        if navigation.list_id is not None:
            self.list_id = navigation.list_id
        self.sync_query(navigation.query)
        return await self.parameters_changed()

    async def on_query_changed(self, query: Mapping[str, str]) -> bool:
        self.sync_query(query)
        return await self.parameters_changed()
