"""Tests for quick-add resolution: lists, assignees, labels and the full pipeline."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from taskboard_sync.api_client import LabelService, LabelTaskService, TaskService, UserService
from taskboard_sync.errors import NoListError
from taskboard_sync.models import LabelRef, ListRef, ParsedQuickAddResult, Route, TaskRecord, UserRef
from taskboard_sync.quick_add import (
    LabelIndex,
    ListIndex,
    PlainTextParser,
    QuickAddPipeline,
    add_labels_to_task,
    find_assignees,
    find_list_id,
    match_label,
    match_user,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _StubParser:
    def __init__(self, result: ParsedQuickAddResult) -> None:
        self.result = result
        self.calls: list[tuple[str, str]] = []

    def parse(self, text: str, mode: str) -> ParsedQuickAddResult:
        self.calls.append((text, mode))
        return self.result


def _lists() -> ListIndex:
    return ListIndex([ListRef(id=10, title="Groceries"), ListRef(id=20, title="Work")])


def _label_index(labels: list[LabelRef] | None = None, next_id: int = 100) -> LabelIndex:
    service = MagicMock(spec=LabelService)
    counter = iter(range(next_id, next_id + 50))

    async def create(label):
        return LabelRef(id=next(counter), title=label.title)

    service.create.side_effect = create
    return LabelIndex(service, labels or [])


def _users(results: dict[str, list[UserRef]] | None = None) -> MagicMock:
    users = MagicMock(spec=UserService)

    async def get_all(filters, params):
        return (results or {}).get(params["s"], [])

    users.get_all.side_effect = get_all
    return users


def _task_service() -> MagicMock:
    tasks = MagicMock(spec=TaskService)

    async def create(task):
        return TaskRecord(
            id=42,
            title=task.title,
            list_id=task.list_id,
            bucket_id=task.bucket_id,
            position=task.position,
            due_date=task.due_date,
            priority=task.priority,
            repeat_after=task.repeat_after,
            assignees=list(task.assignees),
        )

    tasks.create.side_effect = create
    return tasks


def _pipeline(parsed: ParsedQuickAddResult, **overrides) -> QuickAddPipeline:
    kwargs = dict(
        parser=_StubParser(parsed),
        lists=_lists(),
        users=_users(),
        label_store=_label_index(),
        tasks=_task_service(),
        label_links=MagicMock(spec=LabelTaskService),
        navigation=Route(),
    )
    kwargs.update(overrides)
    return QuickAddPipeline(**kwargs)


# ===================================================================
# Typed lookups
# ===================================================================


def test_match_user_prefers_username_over_name():
    users = [
        UserRef(id=1, username="other", name="Sam"),
        UserRef(id=2, username="sam", name="Samuel"),
    ]
    assert match_user(users, "sam").id == 2


def test_match_user_falls_back_to_name_then_email():
    users = [
        UserRef(id=1, username="x", name="Konrad", email="k@example.com"),
        UserRef(id=2, username="y", name="Other", email="konrad"),
    ]
    assert match_user(users, "KONRAD").id == 1
    assert match_user(users, "k@example.com").id == 1


def test_match_user_no_partial_matches():
    assert match_user([UserRef(id=1, username="samantha")], "sam") is None


def test_match_label_is_case_insensitive():
    labels = [LabelRef(id=1, title="Bug"), LabelRef(id=2, title="Docs")]
    assert match_label(labels, "bug").id == 1
    assert match_label(labels, "feature") is None


def test_list_index_exact_name():
    lists = _lists()
    assert lists.find_list_by_exact_name("groceries").id == 10
    assert lists.find_list_by_exact_name("Groc") is None


# ===================================================================
# find_list_id
# ===================================================================


class TestFindListId:
    def test_parsed_list_beats_explicit_id(self):
        assert find_list_id("work", 10, None, _lists()) == 20

    def test_parsed_list_beats_route(self):
        assert find_list_id("Groceries", 0, 20, _lists()) == 10

    def test_unknown_parsed_list_falls_back_to_explicit(self):
        assert find_list_id("Nope", 20, 10, _lists()) == 20

    def test_explicit_beats_route(self):
        assert find_list_id(None, 20, 10, _lists()) == 20

    def test_zero_explicit_uses_route(self):
        assert find_list_id(None, 0, 10, _lists()) == 10

    def test_nothing_raises_no_list(self):
        with pytest.raises(NoListError) as exc:
            find_list_id("Nope", 0, None, _lists())
        assert exc.value.code == "NO_LIST"


# ===================================================================
# Assignees and labels
# ===================================================================


@pytest.mark.asyncio
async def test_find_assignees_drops_unmatched_tokens():
    users = _users({
        "sam": [UserRef(id=1, username="other", name="Sam"), UserRef(id=2, username="sam")],
        "ghost": [UserRef(id=3, username="ghostly")],
    })

    found = await find_assignees(["sam", "ghost", "nobody"], users)

    assert [u.id for u in found] == [2]
    assert users.get_all.await_count == 3


@pytest.mark.asyncio
async def test_find_assignees_empty_makes_no_calls():
    users = _users()
    assert await find_assignees([], users) == []
    users.get_all.assert_not_called()


@pytest.mark.asyncio
async def test_labels_reused_or_created():
    store = _label_index([LabelRef(id=1, title="Bug")])
    links = MagicMock(spec=LabelTaskService)
    task = TaskRecord(id=42, title="Fix it")

    await add_labels_to_task(task, ["bug", "urgent"], store, links)

    store._service.create.assert_awaited_once_with(LabelRef(id=0, title="urgent"))
    linked = sorted(call.kwargs["label_id"] for call in links.create.await_args_list)
    assert linked == [1, 100]
    assert sorted(lb.id for lb in task.labels) == [1, 100]
    assert 100 in store.labels


@pytest.mark.asyncio
async def test_duplicate_label_tokens_create_once():
    store = _label_index()
    links = MagicMock(spec=LabelTaskService)
    task = TaskRecord(id=42, title="Fix it")

    await add_labels_to_task(task, ["urgent", "Urgent"], store, links)

    assert store._service.create.await_count == 1
    assert links.create.await_count == 1


@pytest.mark.asyncio
async def test_failed_assignee_lookup_waits_for_the_others():
    finished = []

    async def get_all(filters, params):
        if params["s"] == "broken":
            raise RuntimeError("search failed")
        for _ in range(3):
            await asyncio.sleep(0)
        finished.append(params["s"])
        return [UserRef(id=1, username=params["s"])]

    users = MagicMock(spec=UserService)
    users.get_all.side_effect = get_all

    with pytest.raises(RuntimeError, match="search failed"):
        await find_assignees(["broken", "sam", "kim"], users)

    assert sorted(finished) == ["kim", "sam"]


@pytest.mark.asyncio
async def test_failed_label_link_waits_for_the_others():
    linked = []

    async def create(*, task_id, label_id):
        if label_id == 1:
            raise RuntimeError("link failed")
        for _ in range(3):
            await asyncio.sleep(0)
        linked.append(label_id)
        return {"label_id": label_id}

    store = _label_index([LabelRef(id=1, title="Bug"), LabelRef(id=2, title="Docs")])
    links = MagicMock(spec=LabelTaskService)
    links.create.side_effect = create
    task = TaskRecord(id=42, title="Fix it")

    with pytest.raises(RuntimeError, match="link failed"):
        await add_labels_to_task(task, ["bug", "docs", "urgent"], store, links)

    assert sorted(linked) == [2, 100]
    assert sorted(lb.id for lb in task.labels) == [2, 100]


# ===================================================================
# Full pipeline
# ===================================================================


class TestQuickAddPipeline:
    @pytest.mark.asyncio
    async def test_no_list_aborts_before_persistence(self):
        label_store = _label_index()
        tasks = _task_service()
        links = MagicMock(spec=LabelTaskService)
        users = _users()
        pipeline = _pipeline(
            ParsedQuickAddResult(text="Buy milk", list="Nope", assignees=["sam"], labels=["x"]),
            tasks=tasks,
            label_links=links,
            label_store=label_store,
            users=users,
        )

        with pytest.raises(NoListError):
            await pipeline.create_task("Buy milk *x @sam +Nope")

        assert tasks.create.await_count == 0
        assert links.create.await_count == 0
        assert label_store._service.create.await_count == 0
        assert users.get_all.await_count == 0

    @pytest.mark.asyncio
    async def test_creates_structured_task(self):
        due = datetime(2026, 11, 1, 12, 0, tzinfo=timezone.utc)
        parsed = ParsedQuickAddResult(
            text="Buy milk",
            list="groceries",
            assignees=["sam"],
            labels=["bug", "urgent"],
            priority=3,
            date=due,
            repeats=86400,
        )
        tasks = _task_service()
        links = MagicMock(spec=LabelTaskService)
        pipeline = _pipeline(
            parsed,
            tasks=tasks,
            label_links=links,
            users=_users({"sam": [UserRef(id=7, username="sam")]}),
            label_store=_label_index([LabelRef(id=1, title="Bug")]),
        )

        created = await pipeline.create_task("raw text", bucket_id=5, list_id=20, position=2.5)

        sent = tasks.create.await_args.args[0]
        assert sent.title == "Buy milk"
        assert sent.list_id == 10
        assert sent.bucket_id == 5
        assert sent.position == 2.5
        assert sent.due_date == due
        assert sent.priority == 3
        assert sent.repeat_after == 86400
        assert [u.id for u in sent.assignees] == [7]
        assert created.id == 42
        assert sorted(lb.title for lb in created.labels) == ["Bug", "urgent"]
        assert all(c.kwargs["task_id"] == 42 for c in links.create.await_args_list)

    @pytest.mark.asyncio
    async def test_route_list_used_when_nothing_else(self):
        tasks = _task_service()
        pipeline = _pipeline(
            ParsedQuickAddResult(text="Call mom"),
            tasks=tasks,
            navigation=Route(list_id=20),
        )

        created = await pipeline.create_task("Call mom")

        assert created.list_id == 20
        assert created.bucket_id == 0

    @pytest.mark.asyncio
    async def test_parser_receives_mode(self):
        parser = _StubParser(ParsedQuickAddResult(text="x"))
        pipeline = _pipeline(parser.result, parser=parser, mode="todoist")

        await pipeline.create_task("x", list_id=10)

        assert parser.calls == [("x", "todoist")]

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError):
            _pipeline(ParsedQuickAddResult(text="x"), mode="magic")

    @pytest.mark.asyncio
    async def test_link_failure_propagates(self):
        links = MagicMock(spec=LabelTaskService)
        links.create.side_effect = RuntimeError("boom")
        tasks = _task_service()
        pipeline = _pipeline(
            ParsedQuickAddResult(text="x", labels=["new"]),
            tasks=tasks,
            label_links=links,
        )

        with pytest.raises(RuntimeError, match="boom"):
            await pipeline.create_task("x", list_id=10)
        assert tasks.create.await_count == 1


def test_plain_text_parser_keeps_text():
    parsed = PlainTextParser().parse("  Buy milk *urgent  ", "disabled")
    assert parsed.text == "Buy milk *urgent"
    assert parsed.labels == []
    assert parsed.list is None
