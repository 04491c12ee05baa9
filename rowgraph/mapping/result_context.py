"""Row paging and per-row result callbacks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")

NO_ROW_OFFSET = 0
NO_ROW_LIMIT = 2**31 - 1


@dataclass(frozen=True)
class RowBounds:
    """Client-side paging: skip ``offset`` rows, then map at most ``limit``."""

    offset: int = NO_ROW_OFFSET
    limit: int = NO_ROW_LIMIT

    @property
    def is_default(self) -> bool:
        return self.offset == NO_ROW_OFFSET and self.limit == NO_ROW_LIMIT


DEFAULT_ROW_BOUNDS = RowBounds()


class ResultContext(Generic[T]):
    """Current result object plus a stop flag the callback may set."""

    def __init__(self) -> None:
        self.result_object: T | None = None
        self.result_count = 0
        self._stopped = False

    def next_result_object(self, result_object: T | None) -> None:
        self.result_count += 1
        self.result_object = result_object

    def stop(self) -> None:
        self._stopped = True

    @property
    def is_stopped(self) -> bool:
        return self._stopped


@runtime_checkable
class ResultHandler(Protocol):
    """Receives every mapped top-level object of a statement."""

    def handle_result(self, context: ResultContext[Any]) -> None: ...


class DefaultResultHandler:
    """Collects results into a list."""

    def __init__(self) -> None:
        self.results: list[Any] = []

    def handle_result(self, context: ResultContext[Any]) -> None:
        self.results.append(context.result_object)
