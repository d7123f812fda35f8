"""Reference-counted loading flag shared by overlapping store operations."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class Acquisition:
    """One outstanding hold on a LoadingGuard. Releasing twice is a no-op."""

    def __init__(self, guard: LoadingGuard) -> None:
        self._guard = guard
        self._released = False

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._guard._count -= 1
        logger.debug("Loading guard released (%d outstanding)", self._guard._count)


class LoadingGuard:
    """Busy flag that stays set while any operation still holds it.

    A plain boolean would let the first operation to finish clear the flag
    for another one that is still in flight.
    """

    def __init__(self) -> None:
        self._count = 0

    @property
    def is_loading(self) -> bool:
        return self._count > 0

    @property
    def outstanding(self) -> int:
        return self._count

    @contextmanager
    def acquire(self) -> Iterator[Acquisition]:
        self._count += 1
        logger.debug("Loading guard acquired (%d outstanding)", self._count)
        hold = Acquisition(self)
        try:
            yield hold
        finally:
            hold.release()
