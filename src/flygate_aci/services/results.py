"""Tagged results returned by every public core operation."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from .enums import GateError, HandshakeError

__all__ = ["Accepted", "Rejected", "Result"]

T = TypeVar("T")


@dataclass(frozen=True)
class Accepted(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Rejected:
    reason: HandshakeError | GateError
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        if self.detail:
            return f"{self.reason.message}: {self.detail}"
        return self.reason.message


Result = Union[Accepted[T], Rejected]
