"""Stage results passed between pipeline steps instead of exceptions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class FailureKind(Enum):
    """Failure taxonomy of the metadata pipeline."""

    TRANSPORT = "transport"  # timeout, connection error, bad status


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: FailureKind
    reason: str

    @property
    def ok(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.reason}"


Result = Union[Ok[T], Err]
