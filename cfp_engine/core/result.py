"""Tagged success/failure result used at internal seams.

Per-item outcomes travel as ``Ok(value)`` or ``Err(reason)`` and are flattened
into plain records only at the boundary where callers consume them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    reason: str
    exception: BaseException | None = None

    @property
    def is_ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]
