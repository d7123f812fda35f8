"""Quick-add resolution: free text to a fully structured, persisted task.

The text grammar itself belongs to an injected parser. This module resolves
what the parser found (list name, assignee and label tokens) against the
list, user and label collaborators, then creates the task and links labels.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping

from .errors import NoListError
from .models import LabelRef, ListRef, ParsedQuickAddResult, TaskRecord, UserRef
from .ports import (
    LabelStore,
    LabelTaskLinks,
    ListLookup,
    NavigationContext,
    QuickAddParser,
    TaskPersistence,
    UserSearch,
)

logger = logging.getLogger(__name__)

QUICK_ADD_MODES = ("vikunja", "todoist", "disabled")


async def _gather_all(coros) -> list:
    """Await every coroutine, then re-raise the first failure.

    Siblings of a failed call still run to completion and their errors are
    collected, so nothing is left unretrieved.
    """
    results = await asyncio.gather(*coros, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


# ------------------------------------------------------------------
# Typed lookups
# ------------------------------------------------------------------


def _same(a: str | None, b: str) -> bool:
    return bool(a) and a.lower() == b.lower()


def match_user(users: Iterable[UserRef], query: str) -> UserRef | None:
    """Find the user a quick-add token refers to.

    Exact, case-insensitive. Username beats name, name beats email, across
    the whole result set.
    """
    users = list(users)
    for attr in ("username", "name", "email"):
        for user in users:
            if _same(getattr(user, attr), query):
                return user
    return None


def match_label(labels: Iterable[LabelRef], title: str) -> LabelRef | None:
    for label in labels:
        if _same(label.title, title):
            return label
    return None


class ListIndex:
    """In-memory list collection implementing ListLookup."""

    def __init__(self, lists: Iterable[ListRef] = ()) -> None:
        self.lists: dict[int, ListRef] = {lst.id: lst for lst in lists}

    def find_list_by_exact_name(self, name: str) -> ListRef | None:
        for lst in self.lists.values():
            if _same(lst.title, name):
                return lst
        return None


class LabelIndex:
    """In-memory label collection that creates missing labels through the API."""

    def __init__(self, service, labels: Iterable[LabelRef] = ()) -> None:
        self._service = service
        self._labels: dict[int, LabelRef] = {lb.id: lb for lb in labels}

    @property
    def labels(self) -> Mapping[int, LabelRef]:
        return self._labels

    async def create_label(self, label: LabelRef) -> LabelRef:
        created = await self._service.create(label)
        self._labels[created.id] = created
        logger.info("Created label '%s' (%s)", created.title, created.id)
        return created


class PlainTextParser:
    """Parser for the ``disabled`` magic mode: the text is taken as-is."""

    def parse(self, text: str, mode: str = "disabled") -> ParsedQuickAddResult:
        return ParsedQuickAddResult(text=text.strip())


# ------------------------------------------------------------------
# Resolution steps
# ------------------------------------------------------------------


def find_list_id(
    parsed_list: str | None,
    list_id: int | None,
    route_list_id: int | None,
    lists: ListLookup,
) -> int:
    """Pick the list for a new task.

    1. A list named in the quick-add text, if such a list exists
    2. The explicitly passed list id (0 means none)
    3. The list id of the current route
    Raises NoListError when none of these apply.
    """
    if parsed_list is not None:
        found = lists.find_list_by_exact_name(parsed_list)
        if found is not None:
            return found.id
        logger.debug("List '%s' from quick-add text not found", parsed_list)

    if list_id:
        return list_id

    if route_list_id:
        return route_list_id

    raise NoListError()


async def find_assignees(tokens: list[str], users: UserSearch) -> list[UserRef]:
    """Resolve assignee tokens to users, dropping tokens that match nobody."""
    if not tokens:
        return []

    async def _lookup(token: str) -> UserRef | None:
        found = match_user(await users.get_all({}, {"s": token}), token)
        if found is None:
            logger.debug("No user matches assignee '%s'", token)
        return found

    resolved = await _gather_all(_lookup(t) for t in tokens)
    return [u for u in resolved if u is not None]


async def resolve_label(label_store: LabelStore, title: str) -> LabelRef:
    """Return the existing label with this title, creating it if needed."""
    label = match_label(label_store.labels.values(), title)
    if label is not None:
        return label
    return await label_store.create_label(LabelRef(id=0, title=title))


async def add_labels_to_task(
    task: TaskRecord,
    parsed_labels: list[str],
    label_store: LabelStore,
    label_links: LabelTaskLinks,
) -> TaskRecord:
    """Find or create each label and attach it to an already created task."""
    titles: dict[str, str] = {}
    for title in parsed_labels:
        titles.setdefault(title.lower(), title)
    if not titles:
        return task

    async def _add(title: str) -> None:
        label = await resolve_label(label_store, title)
        await label_links.create(task_id=task.id, label_id=label.id)
        task.labels.append(label)

    await _gather_all(_add(t) for t in titles.values())
    return task


class QuickAddPipeline:
    """Turns quick-add text into a created task."""

    def __init__(
        self,
        *,
        parser: QuickAddParser,
        lists: ListLookup,
        users: UserSearch,
        label_store: LabelStore,
        tasks: TaskPersistence,
        label_links: LabelTaskLinks,
        navigation: NavigationContext | None = None,
        mode: str = "vikunja",
    ) -> None:
        if mode not in QUICK_ADD_MODES:
            raise ValueError(f"Unknown quick-add mode {mode!r}, expected one of {QUICK_ADD_MODES}")
        self.parser = parser
        self.lists = lists
        self.users = users
        self.label_store = label_store
        self.tasks = tasks
        self.label_links = label_links
        self.navigation = navigation
        self.mode = mode

    async def create_task(
        self,
        title: str,
        bucket_id: int | None = None,
        list_id: int | None = None,
        position: float | None = None,
    ) -> TaskRecord:
        parsed = self.parser.parse(title, self.mode)

        route_list_id = self.navigation.list_id if self.navigation is not None else None
        found_list_id = find_list_id(parsed.list, list_id or 0, route_list_id, self.lists)

        assignees = await find_assignees(parsed.assignees, self.users)

        task = TaskRecord(
            id=0,
            title=parsed.text,
            list_id=found_list_id,
            bucket_id=bucket_id or 0,
            position=position,
            due_date=parsed.date,
            priority=parsed.priority,
            repeat_after=parsed.repeats,
            assignees=assignees,
        )
        created = await self.tasks.create(task)
        logger.info("Created task '%s' (%s) in list %s", created.title, created.id, found_list_id)

        return await add_labels_to_task(
            created, parsed.labels, self.label_store, self.label_links
        )
