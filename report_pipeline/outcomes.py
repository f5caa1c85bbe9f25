from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class OutcomeKind(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ItemOutcome:
    key: str
    kind: OutcomeKind
    reason: str = ""


@dataclass
class BatchOutcome(Generic[T]):
    """Per-item results of one orchestrator run.

    Successful items carry their produced value. Skipped items had no signal, and failed
    items raised. Neither kind stops the batch.
    """

    stage: str
    produced: list[T] = field(default_factory=list)
    items: list[ItemOutcome] = field(default_factory=list)

    def succeeded(self, key: str, value: T | None = None) -> None:
        if value is not None:
            self.produced.append(value)
        self.items.append(ItemOutcome(key, OutcomeKind.SUCCEEDED))

    def skipped(self, key: str, reason: str) -> None:
        self.items.append(ItemOutcome(key, OutcomeKind.SKIPPED, reason))

    def failed(self, key: str, exc: BaseException) -> None:
        self.items.append(ItemOutcome(key, OutcomeKind.FAILED, f"{type(exc).__name__}: {exc}"))

    def count(self, kind: OutcomeKind) -> int:
        return sum(1 for item in self.items if item.kind is kind)

    @property
    def total(self) -> int:
        return len(self.items)

    def summary(self) -> dict[str, int]:
        return {
            "total": self.total,
            "succeeded": self.count(OutcomeKind.SUCCEEDED),
            "skipped": self.count(OutcomeKind.SKIPPED),
            "failed": self.count(OutcomeKind.FAILED),
        }
