"""Board view and the synchronizer that mirrors task mutations into it.

The board keeps its own denormalized copies of tasks grouped into buckets.
It is owned by whatever view loaded it, not by the task store, so the
synchronizer only ever patches entries that are already materialized.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace

from .models import AttachmentRef, BoardBucketEntry, LabelRef, TaskRecord, UserRef

logger = logging.getLogger(__name__)


class SyncOutcome(enum.Enum):
    MIRRORED = "mirrored"
    SKIPPED = "skipped"  # task not present on the board


class BoardView:
    """Tasks grouped into buckets, in display order."""

    def __init__(self) -> None:
        self._buckets: dict[int, list[BoardBucketEntry]] = {}

    def load_buckets(self, buckets: Mapping[int, Iterable[TaskRecord]]) -> None:
        """Replace the board contents with the given bucket -> tasks mapping."""
        self._buckets = {}
        for bucket_id, tasks in buckets.items():
            self._buckets[bucket_id] = [
                BoardBucketEntry(task=t, bucket_id=bucket_id, index=i)
                for i, t in enumerate(tasks)
            ]
        logger.debug("Loaded %d bucket(s) into the board", len(self._buckets))

    def tasks_in_bucket(self, bucket_id: int) -> list[TaskRecord]:
        return [e.task for e in self._buckets.get(bucket_id, [])]

    def get_task_by_id(self, task_id: int) -> BoardBucketEntry | None:
        for entries in self._buckets.values():
            for entry in entries:
                if entry.task_id == task_id:
                    return entry
        return None

    def set_entry_at_index(self, entry: BoardBucketEntry) -> None:
        """Write an entry back at its own bucket and index."""
        entries = self._buckets[entry.bucket_id]
        if entries[entry.index].task_id != entry.task_id:
            raise ValueError(
                f"Bucket {entry.bucket_id} index {entry.index} holds task "
                f"{entries[entry.index].task_id}, not {entry.task_id}"
            )
        entries[entry.index] = entry

    def add_task_to_bucket(self, task: TaskRecord) -> BoardBucketEntry | None:
        """Append a task to its bucket if that bucket is loaded."""
        entries = self._buckets.get(task.bucket_id)
        if entries is None:
            return None
        entry = BoardBucketEntry(task=task, bucket_id=task.bucket_id, index=len(entries))
        entries.append(entry)
        return entry

    def set_task_in_bucket(self, task: TaskRecord) -> BoardBucketEntry | None:
        """Replace a task's entry, moving it when its bucket changed.

        A task moved to a bucket that is not loaded is dropped from the board.
        Returns the new entry, or None when the task is not (or no longer)
        on the board.
        """
        current = self.get_task_by_id(task.id)
        if current is None:
            return None

        target = task.bucket_id
        if target and target != current.bucket_id:
            self.remove_task_in_bucket(task.id)
            return self.add_task_to_bucket(task)

        entry = replace(current, task=replace(task, bucket_id=current.bucket_id))
        self.set_entry_at_index(entry)
        return entry

    def remove_task_in_bucket(self, task_id: int) -> bool:
        current = self.get_task_by_id(task_id)
        if current is None:
            return False
        entries = self._buckets[current.bucket_id]
        del entries[current.index]
        # Keep stored indexes in line with list positions
        for i in range(current.index, len(entries)):
            entries[i] = replace(entries[i], index=i)
        return True


class BoardSynchronizer:
    """Best-effort mirroring of task mutations into a BoardView."""

    def __init__(self, board: BoardView) -> None:
        self.board = board

    def _patch(
        self,
        task_id: int,
        change: Callable[[TaskRecord], TaskRecord],
        what: str,
    ) -> SyncOutcome:
        entry = self.board.get_task_by_id(task_id)
        if entry is None:
            # Usually the board simply has not been opened yet
            logger.debug("Could not %s on board, task %s not found", what, task_id)
            return SyncOutcome.SKIPPED
        self.board.set_entry_at_index(replace(entry, task=change(entry.task)))
        return SyncOutcome.MIRRORED

    def add_assignee(self, task_id: int, user: UserRef) -> SyncOutcome:
        return self._patch(
            task_id,
            lambda t: replace(t, assignees=[*t.assignees, user]),
            "add assignee",
        )

    def remove_assignee(self, task_id: int, user: UserRef) -> SyncOutcome:
        return self._patch(
            task_id,
            lambda t: replace(t, assignees=[u for u in t.assignees if u.id != user.id]),
            "remove assignee",
        )

    def add_label(self, task_id: int, label: LabelRef) -> SyncOutcome:
        return self._patch(
            task_id,
            lambda t: replace(t, labels=[*t.labels, label]),
            "add label",
        )

    def remove_label(self, task_id: int, label: LabelRef) -> SyncOutcome:
        return self._patch(
            task_id,
            lambda t: replace(t, labels=[lb for lb in t.labels if lb.id != label.id]),
            "remove label",
        )

    def add_attachment(self, task_id: int, attachment: AttachmentRef) -> SyncOutcome:
        return self._patch(
            task_id,
            lambda t: replace(t, attachments=[*t.attachments, attachment]),
            "add attachment",
        )

    def set_task(self, task: TaskRecord) -> SyncOutcome:
        if self.board.get_task_by_id(task.id) is None:
            logger.debug("Could not update task %s on board, not found", task.id)
            return SyncOutcome.SKIPPED
        if self.board.set_task_in_bucket(task) is None:
            logger.debug(
                "Task %s moved to bucket %s which is not loaded, removed from board",
                task.id, task.bucket_id,
            )
        return SyncOutcome.MIRRORED

    def remove_task(self, task_id: int) -> SyncOutcome:
        if not self.board.remove_task_in_bucket(task_id):
            logger.debug("Could not remove task %s from board, not found", task_id)
            return SyncOutcome.SKIPPED
        return SyncOutcome.MIRRORED
