"""Domain entity for flashcards and their scheduling state."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import ClassVar

from ...utils.timestamps import ensure_utc


class SchedulerKind(str, Enum):
    """Spaced-repetition algorithm that owns a card's scheduling fields."""

    FSRS = "FSRS"
    SM2 = "SM2"


@dataclass(frozen=True)
class FsrsParams:
    """FSRS memory model parameters."""

    kind: ClassVar[SchedulerKind] = SchedulerKind.FSRS

    difficulty: float | None = None
    stability: float | None = None


@dataclass(frozen=True)
class Sm2Params:
    """SM-2 parameters (ease factor and interval in days)."""

    kind: ClassVar[SchedulerKind] = SchedulerKind.SM2

    ease: float | None = None
    interval: float | None = None


SchedulerParams = FsrsParams | Sm2Params


def empty_params(kind: SchedulerKind) -> SchedulerParams:
    return FsrsParams() if kind is SchedulerKind.FSRS else Sm2Params()


@dataclass(frozen=True)
class SchedulingState:
    """Scheduling record: algorithm parameters plus review timestamps."""

    params: SchedulerParams = field(default_factory=FsrsParams)
    last_reviewed_at: datetime | None = None
    next_due_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.last_reviewed_at is not None:
            object.__setattr__(self, "last_reviewed_at", ensure_utc(self.last_reviewed_at))
        if self.next_due_at is not None:
            object.__setattr__(self, "next_due_at", ensure_utc(self.next_due_at))

    @property
    def kind(self) -> SchedulerKind:
        return self.params.kind

    @classmethod
    def empty(cls, kind: SchedulerKind) -> SchedulingState:
        return cls(params=empty_params(kind))


@dataclass(frozen=True)
class CardEntity:
    """A flashcard as seen by the sync engine.

    Front and back hold markdown text. Tags are an unordered set of names.
    The host application owns the real card; instances of this class are
    short-lived snapshots read through the host interface.
    """

    card_id: str
    front: str
    back: str
    tags: frozenset[str] = frozenset()
    scheduling: SchedulingState = field(default_factory=SchedulingState)
    updated_at: datetime | None = None
    parent_id: str | None = None

    def __post_init__(self) -> None:
        if not self.card_id:
            raise ValueError("Card id cannot be empty")
        object.__setattr__(
            self, "tags", frozenset(tag for tag in self.tags if tag)
        )
        if self.updated_at is not None:
            object.__setattr__(self, "updated_at", ensure_utc(self.updated_at))

    @property
    def sorted_tags(self) -> list[str]:
        return sorted(self.tags)

    def with_text(self, front: str, back: str) -> CardEntity:
        """Create a new CardEntity with replaced front/back text."""
        return replace(self, front=front, back=back)
