"""Exceptions raised by taskboard-sync."""

from __future__ import annotations


class TaskBoardError(Exception):
    """Base class for errors raised by this package."""


class NoListError(TaskBoardError):
    """Quick-add could not determine which list the new task belongs to.

    Distinct from transport failures so callers can ask the user for a list.
    """

    code = "NO_LIST"

    def __init__(self, message: str = "NO_LIST") -> None:
        super().__init__(message)


class ApiError(TaskBoardError):
    """The API answered with a non-success status."""

    def __init__(
        self,
        status_code: int,
        message: str = "",
        code: int | None = None,
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.code = code
        super().__init__(f"API error {status_code}: {message or 'no message'}")
