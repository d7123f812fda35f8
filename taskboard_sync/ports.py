"""Collaborator interfaces consumed by the store and the quick-add pipeline.

The core depends on these Protocols, never on a concrete transport. The
bundled httpx implementations live in ``api_client``; tests pass mocks.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from .models import LabelRef, ListRef, ParsedQuickAddResult, TaskPage, TaskRecord, UserRef


class TaskCollection(Protocol):
    async def get_all(
        self, scope: Mapping[str, Any], params: Mapping[str, Any], page: int = 1
    ) -> TaskPage: ...


class TaskPersistence(Protocol):
    async def create(self, task: TaskRecord) -> TaskRecord: ...
    async def update(self, task: TaskRecord) -> TaskRecord: ...
    async def delete(self, task: TaskRecord) -> Any: ...


class LabelTaskLinks(Protocol):
    async def create(self, *, task_id: int, label_id: int) -> Any: ...
    async def delete(self, *, task_id: int, label_id: int) -> Any: ...


class TaskAssignees(Protocol):
    async def create(self, *, task_id: int, user_id: int) -> Any: ...
    async def delete(self, *, task_id: int, user_id: int) -> Any: ...


class UserSearch(Protocol):
    async def get_all(
        self, filters: Mapping[str, Any], params: Mapping[str, Any]
    ) -> list[UserRef]: ...


class LabelStore(Protocol):
    """Current label collection plus the ability to create new labels."""

    @property
    def labels(self) -> Mapping[int, LabelRef]: ...

    async def create_label(self, label: LabelRef) -> LabelRef: ...


class ListLookup(Protocol):
    def find_list_by_exact_name(self, name: str) -> ListRef | None: ...


class QuickAddParser(Protocol):
    def parse(self, text: str, mode: str) -> ParsedQuickAddResult: ...


class NavigationContext(Protocol):
    """Read-only view of the current route."""

    @property
    def list_id(self) -> int | None: ...

    @property
    def query(self) -> Mapping[str, str]: ...
