"""Ok/Err result union for consuming client calls without exceptions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Generic, TypeVar

from .errors import map_rest_error
from .models import RestError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    ok: bool = True


@dataclass(frozen=True)
class Err:
    error: RestError
    ok: bool = False


Result = Ok[T] | Err


async def capture(awaitable: Awaitable[T]) -> Ok[T] | Err:
    """Await a client call and fold any failure into ``Err``."""
    try:
        return Ok(await awaitable)
    except Exception as exc:
        return Err(map_rest_error(exc))
