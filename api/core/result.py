"""
Success-or-failure values returned by mediator operations.

Expected failures (validation, not found, conflicts) travel as `Err` so
callers branch explicitly; the HTTP layer calls `unwrap()` and lets the
exception handler render the error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from .errors import ApplicationError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    error: ApplicationError

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        raise self.error


Result = Union[Ok[T], Err]
