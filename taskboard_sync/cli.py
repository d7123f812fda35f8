"""CLI entry point for taskboard-sync."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .api_client import (
    ApiClient,
    LabelService,
    LabelTaskService,
    ListService,
    TaskAssigneeService,
    TaskCollectionService,
    TaskService,
    UserService,
)
from .board import BoardSynchronizer, BoardView
from .config import Settings
from .errors import ApiError, NoListError
from .models import Route, TaskRecord
from .quick_add import LabelIndex, ListIndex, PlainTextParser, QuickAddPipeline
from .store import TaskServices, TaskStore
from .task_list import TaskList


def _sort_arg(value: str) -> tuple[str, str]:
    """Parse a ``field:dir`` argument; the direction defaults to asc."""
    name, _, direction = value.partition(":")
    direction = direction or "asc"
    if not name or direction not in ("asc", "desc"):
        raise argparse.ArgumentTypeError(f"Invalid sort '{value}', expected field:asc|desc")
    return name, direction


def _task_summary(task: TaskRecord) -> dict:
    return {
        "id": task.id,
        "title": task.title,
        "list_id": task.list_id,
        "done": task.done,
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "assignees": [u.username for u in task.assignees],
        "labels": [lb.title for lb in task.labels],
    }


async def _run_list(api: ApiClient, args: argparse.Namespace) -> dict:
    task_list = TaskList(TaskCollectionService(api), list_id=args.list_id)
    if args.sort:
        task_list.sort_by = dict(args.sort)
    if args.all:
        task_list.params["filter_by"] = []
        task_list.params["filter_value"] = []
        task_list.params["filter_comparator"] = []

    query = {}
    if args.search:
        query["search"] = args.search
    if args.page:
        query["page"] = str(args.page)
    await task_list.activate(Route(list_id=args.list_id, query=query))

    for task in task_list.tasks:
        mark = "x" if task.done else " "
        logging.info("[%s] #%d %s", mark, task.id, task.title)
    logging.info("Page %d of %d", task_list.page, task_list.total_pages)
    return {
        "page": task_list.page,
        "total_pages": task_list.total_pages,
        "tasks": [_task_summary(t) for t in task_list.tasks],
    }


async def _run_add(api: ApiClient, args: argparse.Namespace, settings: Settings) -> dict:
    labels = LabelIndex(LabelService(api), await LabelService(api).get_all())
    lists = ListIndex(await ListService(api).get_all())
    task_service = TaskService(api)
    label_links = LabelTaskService(api)

    pipeline = QuickAddPipeline(
        parser=PlainTextParser(),
        lists=lists,
        users=UserService(api),
        label_store=labels,
        tasks=task_service,
        label_links=label_links,
        navigation=Route(),
        mode=settings.quick_add_mode,
    )
    store = TaskStore(
        TaskServices(
            collection=TaskCollectionService(api),
            tasks=task_service,
            label_links=label_links,
            assignees=TaskAssigneeService(api),
        ),
        BoardSynchronizer(BoardView()),
        quick_add=pipeline,
    )
    task = await store.create_new_task(
        args.text,
        bucket_id=args.bucket_id,
        list_id=args.list_id,
        position=args.position,
    )
    logging.info("Created task #%d '%s' in list %d", task.id, task.title, task.list_id)
    return {"created": _task_summary(task)}


async def _run(args: argparse.Namespace, settings: Settings) -> dict:
    async with ApiClient(settings.api_url, settings.token, settings.timeout) as api:
        if args.command == "add":
            return await _run_add(api, args, settings)
        return await _run_list(api, args)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="taskboard-sync",
        description="List tasks and create tasks from quick-add text.",
    )
    parser.add_argument(
        "--api-url",
        type=str,
        default=None,
        help="Base URL of the task API (or set TASKBOARD_API_URL env var)",
    )
    parser.add_argument(
        "--token",
        type=str,
        default=None,
        help="API token (or set TASKBOARD_TOKEN env var)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--output-json",
        type=str,
        default=None,
        help="Write the result to a JSON file",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list", help="List tasks")
    list_cmd.add_argument("--list-id", type=int, default=None, help="Only tasks of this list")
    list_cmd.add_argument("--search", type=str, default="", help="Search term")
    list_cmd.add_argument("--page", type=int, default=None, help="Page number (from 1)")
    list_cmd.add_argument(
        "--sort",
        action="append",
        type=_sort_arg,
        default=None,
        help="Sort as field:asc|desc, repeatable; 'id' always sorts last",
    )
    list_cmd.add_argument("--all", action="store_true", help="Include done tasks")

    add_cmd = sub.add_parser("add", help="Create a task from quick-add text")
    add_cmd.add_argument("text", type=str, help="Quick-add text")
    add_cmd.add_argument("--list-id", type=int, default=None, help="List for the new task")
    add_cmd.add_argument("--bucket-id", type=int, default=None, help="Board bucket")
    add_cmd.add_argument("--position", type=float, default=None, help="Position")
    add_cmd.add_argument(
        "--mode",
        type=str,
        default=None,
        help="Quick-add magic mode, only 'disabled' is built in (or set TASKBOARD_QUICK_ADD_MODE env var)",
    )

    args = parser.parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(message)s",
    )

    settings = Settings.from_env()
    if args.api_url:
        settings.api_url = args.api_url
    if args.token:
        settings.token = args.token
    if getattr(args, "mode", None):
        settings.quick_add_mode = args.mode
    problems = settings.validate()
    if args.command == "add" and settings.quick_add_mode != "disabled" and not problems:
        # Only PlainTextParser ships with this package
        problems.append(
            f"Quick-add mode '{settings.quick_add_mode}' needs a quick-add parser; "
            "the CLI only supports 'disabled'"
        )
    if problems:
        for problem in problems:
            logging.error(problem)
        return 1

    try:
        result = asyncio.run(_run(args, settings))
    except NoListError:
        logging.error("No list given for the new task. Use --list-id or name a list in the text")
        return 1
    except ApiError as e:
        logging.error("%s", e)
        return 1

    if args.output_json:
        Path(args.output_json).write_text(json.dumps(result, indent=2))
        logging.info("Results written to %s", args.output_json)

    return 0


if __name__ == "__main__":
    sys.exit(main())
