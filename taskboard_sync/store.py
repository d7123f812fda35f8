"""Task store: the canonical task mapping and every operation that mutates it.

A TaskStore is an explicit context object. It is handed its collaborators
and the board synchronizer at construction and holds no global state.

The canonical mapping and the board are separate caches. Apart from
``set_tasks`` and ``load_tasks``, operations persist through the API and
mirror into the board only; the canonical record of a task touched that way
is listed in ``stale_ids`` until the next ``load_tasks``/``set_tasks``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from .board import BoardSynchronizer, SyncOutcome
from .loading import LoadingGuard
from .models import AttachmentRef, LabelRef, QueryParams, TaskRecord, UserRef
from .ports import LabelTaskLinks, TaskAssignees, TaskCollection, TaskPersistence
from .quick_add import QuickAddPipeline

logger = logging.getLogger(__name__)


@dataclass
class TaskServices:
    """The persistence collaborators a TaskStore talks to."""

    collection: TaskCollection
    tasks: TaskPersistence
    label_links: LabelTaskLinks
    assignees: TaskAssignees


@dataclass
class MutationResult:
    """What the API answered, and whether the board was patched as well."""

    response: Any
    board: SyncOutcome

    @property
    def mirrored(self) -> bool:
        return self.board is SyncOutcome.MIRRORED


@dataclass
class _LoadState:
    epoch: int = 0
    total_pages: int = 1
    stale_ids: set[int] = field(default_factory=set)
    # done flag as last answered by update(), newer than the canonical record
    done: dict[int, bool] = field(default_factory=dict)


class TaskStore:
    def __init__(
        self,
        services: TaskServices,
        board: BoardSynchronizer,
        quick_add: QuickAddPipeline | None = None,
        on_task_done: Callable[[TaskRecord], Any] | None = None,
    ) -> None:
        self.services = services
        self.board = board
        self.quick_add = quick_add
        self.on_task_done = on_task_done
        self.tasks: dict[int, TaskRecord] = {}
        self.attachments: dict[int, AttachmentRef] = {}
        self._loading = LoadingGuard()
        self._state = _LoadState()

    @property
    def is_loading(self) -> bool:
        return self._loading.is_loading

    @property
    def has_tasks(self) -> bool:
        return len(self.tasks) > 0

    @property
    def total_pages(self) -> int:
        return self._state.total_pages

    @property
    def stale_ids(self) -> frozenset[int]:
        """Ids whose canonical record may lag behind the API and the board."""
        return frozenset(self._state.stale_ids)

    def _mark_stale(self, task_id: int) -> None:
        if task_id in self.tasks:
            self._state.stale_ids.add(task_id)

    # ------------------------------------------------------------------
    # Canonical mapping
    # ------------------------------------------------------------------

    def set_tasks(self, tasks: Iterable[TaskRecord]) -> None:
        """Upsert tasks by id. Tasks not passed in are kept."""
        for task in tasks:
            self.tasks[task.id] = task
            self._state.stale_ids.discard(task.id)
            self._state.done.pop(task.id, None)

    async def load_tasks(
        self,
        params: QueryParams | Mapping[str, Any],
        scope: Mapping[str, Any] | None = None,
        page: int = 1,
    ) -> list[TaskRecord] | None:
        """Query tasks and replace the whole mapping with the result.

        When another load was started while this one was pending, this
        result is discarded and None is returned: the latest load wins no
        matter which response arrives first.
        """
        if isinstance(params, QueryParams):
            params = params.to_query()

        self._state.epoch += 1
        epoch = self._state.epoch

        with self._loading.acquire():
            result = await self.services.collection.get_all(scope or {}, params, page)

        if epoch != self._state.epoch:
            logger.debug(
                "Discarding stale task load (epoch %d, latest %d)", epoch, self._state.epoch
            )
            return None

        self.tasks = {t.id: t for t in result.tasks}
        self._state.total_pages = result.total_pages
        self._state.stale_ids.clear()
        self._state.done.clear()
        logger.debug("Loaded %d task(s), %d page(s)", len(self.tasks), result.total_pages)
        return list(self.tasks.values())

    # ------------------------------------------------------------------
    # Task mutations
    # ------------------------------------------------------------------

    async def _update(self, task: TaskRecord) -> tuple[TaskRecord, SyncOutcome]:
        with self._loading.acquire():
            was_done = self._was_done(task.id)
            updated = await self.services.tasks.update(task)
            outcome = self.board.set_task(updated)
            self._mark_stale(updated.id)
            self._state.done[updated.id] = updated.done
            if task.done and not was_done:
                self._task_done(updated)
            return updated, outcome

    def _was_done(self, task_id: int) -> bool:
        if task_id in self._state.done:
            return self._state.done[task_id]
        previous = self.tasks.get(task_id)
        return previous is not None and previous.done

    def _task_done(self, task: TaskRecord) -> None:
        if self.on_task_done is None:
            return
        try:
            self.on_task_done(task)
        except Exception as e:
            logger.warning("Completion effect failed for task %s: %s", task.id, e)

    async def update(self, task: TaskRecord) -> TaskRecord:
        updated, _ = await self._update(task)
        return updated

    async def delete(self, task: TaskRecord) -> Any:
        with self._loading.acquire():
            response = await self.services.tasks.delete(task)
            self.board.remove_task(task.id)
            self._mark_stale(task.id)
            logger.info("Deleted task '%s' (%s)", task.title, task.id)
            return response

    async def create_new_task(
        self,
        title: str,
        bucket_id: int | None = None,
        list_id: int | None = None,
        position: float | None = None,
    ) -> TaskRecord:
        """Create a task from quick-add text.

        Raises NoListError (before anything is persisted) when no list can
        be determined. Labels created before a failure are not rolled back.
        """
        if self.quick_add is None:
            raise RuntimeError("TaskStore was built without a quick-add pipeline")
        with self._loading.acquire():
            return await self.quick_add.create_task(
                title, bucket_id=bucket_id, list_id=list_id, position=position
            )

    # ------------------------------------------------------------------
    # Relationship mutations (board only, canonical record goes stale)
    # ------------------------------------------------------------------

    async def add_assignee(self, user: UserRef, task_id: int) -> MutationResult:
        with self._loading.acquire():
            response = await self.services.assignees.create(task_id=task_id, user_id=user.id)
            self._mark_stale(task_id)
            return MutationResult(response, self.board.add_assignee(task_id, user))

    async def remove_assignee(self, user: UserRef, task_id: int) -> MutationResult:
        with self._loading.acquire():
            response = await self.services.assignees.delete(task_id=task_id, user_id=user.id)
            self._mark_stale(task_id)
            return MutationResult(response, self.board.remove_assignee(task_id, user))

    async def add_label(self, label: LabelRef, task_id: int) -> MutationResult:
        with self._loading.acquire():
            response = await self.services.label_links.create(task_id=task_id, label_id=label.id)
            self._mark_stale(task_id)
            return MutationResult(response, self.board.add_label(task_id, label))

    async def remove_label(self, label: LabelRef, task_id: int) -> MutationResult:
        with self._loading.acquire():
            response = await self.services.label_links.delete(task_id=task_id, label_id=label.id)
            self._mark_stale(task_id)
            return MutationResult(response, self.board.remove_label(task_id, label))

    async def set_cover_image(
        self, task: TaskRecord, attachment: AttachmentRef | None
    ) -> MutationResult:
        """Set (or clear, with None) the attachment shown as the task's cover."""
        cover_id = attachment.id if attachment is not None else 0
        updated, outcome = await self._update(replace(task, cover_image_attachment_id=cover_id))
        return MutationResult(updated, outcome)

    def add_task_attachment(self, task_id: int, attachment: AttachmentRef) -> SyncOutcome:
        """Record an uploaded attachment and show it on the board entry."""
        self.attachments[attachment.id] = attachment
        self._mark_stale(task_id)
        return self.board.add_attachment(task_id, attachment)
