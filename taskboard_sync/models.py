"""Data models for tasks, board entries and query parameters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


def _parse_datetime(value: str | None) -> datetime | None:
    # The API sends the zero time for "no due date"
    if not value or value.startswith("0001-01-01"):
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class UserRef:
    """A user as returned by the user search. Never authored locally."""

    id: int
    username: str = ""
    name: str = ""
    email: str = ""

    @classmethod
    def from_api(cls, data: dict) -> UserRef:
        return cls(
            id=data["id"],
            username=data.get("username") or "",
            name=data.get("name") or "",
            email=data.get("email") or "",
        )

    def to_api(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "email": self.email,
        }


@dataclass
class LabelRef:
    id: int
    title: str
    hex_color: str = ""

    @classmethod
    def from_api(cls, data: dict) -> LabelRef:
        return cls(
            id=data["id"],
            title=data.get("title") or "",
            hex_color=data.get("hex_color") or "",
        )

    def to_api(self) -> dict:
        d: dict = {"title": self.title}
        if self.id:
            d["id"] = self.id
        if self.hex_color:
            d["hex_color"] = self.hex_color
        return d


@dataclass
class AttachmentRef:
    id: int
    task_id: int = 0
    file_name: str = ""

    @classmethod
    def from_api(cls, data: dict) -> AttachmentRef:
        file_info = data.get("file") or {}
        return cls(
            id=data["id"],
            task_id=data.get("task_id") or 0,
            file_name=file_info.get("name", ""),
        )


@dataclass
class ListRef:
    """The parent grouping of a task (a.k.a. project)."""

    id: int
    title: str


@dataclass
class TaskRecord:
    """A single task as held by the task store."""

    id: int
    title: str
    list_id: int = 0
    bucket_id: int = 0
    position: float | None = None
    due_date: datetime | None = None
    priority: int = 0
    repeat_after: int = 0
    done: bool = False
    assignees: list[UserRef] = field(default_factory=list)
    labels: list[LabelRef] = field(default_factory=list)
    attachments: list[AttachmentRef] = field(default_factory=list)
    cover_image_attachment_id: int = 0

    @classmethod
    def from_api(cls, data: dict) -> TaskRecord:
        return cls(
            id=data.get("id") or 0,
            title=data.get("title") or "",
            list_id=data.get("list_id") or data.get("project_id") or 0,
            bucket_id=data.get("bucket_id") or 0,
            position=data.get("position"),
            due_date=_parse_datetime(data.get("due_date")),
            priority=data.get("priority") or 0,
            repeat_after=data.get("repeat_after") or 0,
            done=bool(data.get("done")),
            assignees=[UserRef.from_api(u) for u in data.get("assignees") or []],
            labels=[LabelRef.from_api(lb) for lb in data.get("labels") or []],
            attachments=[
                AttachmentRef.from_api(a) for a in data.get("attachments") or []
            ],
            cover_image_attachment_id=data.get("cover_image_attachment_id") or 0,
        )

    def to_api(self) -> dict:
        """Return the JSON body sent to the API for create/update."""
        d: dict = {
            "title": self.title,
            "list_id": self.list_id,
            "bucket_id": self.bucket_id,
            "priority": self.priority,
            "repeat_after": self.repeat_after,
            "done": self.done,
            "assignees": [u.to_api() for u in self.assignees],
            "labels": [lb.to_api() for lb in self.labels],
            "cover_image_attachment_id": self.cover_image_attachment_id,
        }
        if self.id:
            d["id"] = self.id
        if self.position is not None:
            d["position"] = self.position
        if self.due_date is not None:
            d["due_date"] = self.due_date.isoformat()
        return d


@dataclass(frozen=True)
class BoardBucketEntry:
    """A task as materialized inside a board bucket.

    Entries are immutable; mutations build a new entry with
    ``dataclasses.replace`` and write it back at ``index``.
    """

    task: TaskRecord
    bucket_id: int
    index: int

    @property
    def task_id(self) -> int:
        return self.task.id


@dataclass
class QueryParams:
    """Parameters of a task collection query.

    ``sort_by`` and ``order_by`` are positionally paired.
    """

    sort_by: list[str] = field(default_factory=list)
    order_by: list[str] = field(default_factory=list)
    filter_by: list[str] = field(default_factory=list)
    filter_value: list[str] = field(default_factory=list)
    filter_comparator: list[str] = field(default_factory=list)
    filter_concat: str = "and"
    s: str = ""

    def __post_init__(self) -> None:
        if len(self.sort_by) != len(self.order_by):
            raise ValueError(
                f"sort_by and order_by differ in length: {self.sort_by!r} / {self.order_by!r}"
            )
        if len(set(self.sort_by)) != len(self.sort_by):
            raise ValueError(f"Duplicate sort keys: {self.sort_by!r}")

    def to_query(self) -> dict:
        """Return the query-string mapping for the collection endpoint."""
        d: dict = {
            "sort_by": list(self.sort_by),
            "order_by": list(self.order_by),
            "filter_by": list(self.filter_by),
            "filter_value": list(self.filter_value),
            "filter_comparator": list(self.filter_comparator),
            "filter_concat": self.filter_concat,
        }
        if self.s:
            d["s"] = self.s
        return d


@dataclass
class ParsedQuickAddResult:
    """Structured fields extracted from quick-add text by the parser."""

    text: str
    assignees: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    # Must stay below the list-typed fields: it shadows the builtin
    list: str | None = None
    priority: int = 0
    date: datetime | None = None
    repeats: int = 0


@dataclass
class TaskPage:
    """One page of a task collection query."""

    tasks: list[TaskRecord] = field(default_factory=list)
    total_pages: int = 1


@dataclass
class Route:
    """Navigation state: the current list id and query string values."""

    list_id: int | None = None
    query: dict[str, str] = field(default_factory=dict)
