"""Domain entities."""

from .card import (
    CardEntity,
    FsrsParams,
    SchedulerKind,
    SchedulerParams,
    SchedulingState,
    Sm2Params,
)
from .identity import IdentityMapEntry

__all__ = [
    "CardEntity",
    "FsrsParams",
    "IdentityMapEntry",
    "SchedulerKind",
    "SchedulerParams",
    "SchedulingState",
    "Sm2Params",
]
