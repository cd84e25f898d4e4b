# ABOUTME: Tagged Ok/Err results for operations that may fail independently
# ABOUTME: Used where one failed section must not block the others

from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Generic, TypeVar

from finscope.exceptions import FinscopeError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: FinscopeError

    @property
    def ok(self) -> bool:
        return False


async def capture(awaitable: Awaitable[T]) -> "Ok[T] | Err":
    """
    Await an operation and wrap its outcome.

    Only Finscope errors are captured; anything else is a bug and propagates.
    """
    try:
        return Ok(await awaitable)
    except FinscopeError as exc:
        return Err(exc)
