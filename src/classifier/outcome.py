"""Result wrapper returned by classifier calls."""

from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class Verdict(StrEnum):
    RELEVANT = "RELEVANT"
    IRRELEVANT = "IRRELEVANT"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or an error message, tagged with where the value came from.

    Callers chain ``or_else`` to fall back to a deterministic heuristic
    instead of branching on exceptions.
    """

    value: T | None = None
    error: str | None = None
    origin: str = "ai"

    @classmethod
    def ok(cls, value: T, origin: str = "ai") -> "Outcome[T]":
        return cls(value=value, origin=origin)

    @classmethod
    def fail(cls, error: str) -> "Outcome[T]":
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def or_else(self, fallback: Callable[[], T], origin: str = "heuristic") -> "Outcome[T]":
        if self.is_ok:
            return self
        return Outcome(value=fallback(), origin=origin)

    def unwrap(self) -> T:
        if not self.is_ok:
            msg = f"Outcome has no value: {self.error}"
            raise ValueError(msg)
        return self.value  # type: ignore[return-value]
