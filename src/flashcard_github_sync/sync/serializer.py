"""Canonical markdown artifact for one card.

Format::

    ---
    remId: rem-abcd1234
    cardId: card-efgh5678
    tags:
    - Astronomy
    scheduler: FSRS
    difficulty: 5.6
    stability: 15.2
    lastReviewed: '2025-04-10T09:30:00Z'
    nextDue: '2025-05-10T09:30:00Z'
    updated: '2025-04-11T10:00:00Z'
    ---
    **Q:** Why does the sky appear blue?

    **A:** Rayleigh scattering.

Every timestamp key is written, as an ISO-8601 string or an explicit null,
so that parsing can tell "unset" from "missing in an older artifact".

Question and answer are written verbatim. A text line that itself starts
with a marker gets one extra leading backslash, so only the serializer's own
marker lines split the body.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import yaml

from ..domain.entities.card import (
    CardEntity,
    FsrsParams,
    SchedulerKind,
    SchedulerParams,
    SchedulingState,
    Sm2Params,
)
from ..error_codes import ErrorCode
from ..exceptions import MalformedArtifactError
from ..utils.timestamps import parse_iso, to_iso

QUESTION_MARKER = "**Q:**"
ANSWER_MARKER = "**A:**"

_FRONTMATTER_RE = re.compile(r"^---\n(.*?)\n---\n(.*)$", re.DOTALL)
_MEDIA_PATH_RE = re.compile(r"!\[(.*?)\]\((media/[^)\s]+)\)")
# Any run of backslashes before a marker, so escaping stays reversible
_MARKER_LINE_RE = re.compile(r"^(\\*\*\*[QA]:\*\*)", re.MULTILINE)
_ESCAPED_MARKER_LINE_RE = re.compile(r"^\\(\\*\*\*[QA]:\*\*)", re.MULTILINE)

_FSRS_KEYS = ("difficulty", "stability")
_SM2_KEYS = ("ease", "interval")


@dataclass(frozen=True)
class ParsedArtifact:
    """Fields recovered from an artifact.

    ``card_id`` is None when the metadata carries no id; the caller then
    falls back to the id embedded in the file name.
    """

    card_id: str | None
    parent_id: str | None
    tags: frozenset[str]
    scheduling: SchedulingState
    updated_at: datetime | None
    question: str
    answer: str
    media_paths: list[str] = field(default_factory=list)

    def to_entity(self, card_id: str | None = None) -> CardEntity:
        """Build a CardEntity, preferring the id from metadata."""
        resolved_id = self.card_id or card_id
        if not resolved_id:
            raise MalformedArtifactError(
                "Artifact has no card id and none was supplied",
                error_code=ErrorCode.SER_BAD_METADATA.value,
            )
        return CardEntity(
            card_id=resolved_id,
            front=self.question,
            back=self.answer,
            tags=self.tags,
            scheduling=self.scheduling,
            updated_at=self.updated_at,
            parent_id=self.parent_id,
        )


def _scheduler_fields(params: SchedulerParams) -> dict[str, Any]:
    if isinstance(params, FsrsParams):
        return {"difficulty": params.difficulty, "stability": params.stability}
    return {"ease": params.ease, "interval": params.interval}


def _escape_markers(text: str) -> str:
    return _MARKER_LINE_RE.sub(r"\\\1", text)


def _unescape_markers(text: str) -> str:
    return _ESCAPED_MARKER_LINE_RE.sub(r"\1", text)


def serialize_card(card: CardEntity) -> str:
    """Serialize a card to its canonical artifact text.

    Pure: performs no media translation.
    """
    scheduling = card.scheduling
    metadata: dict[str, Any] = {
        "remId": card.parent_id,
        "cardId": card.card_id,
        "tags": card.sorted_tags,
        "scheduler": scheduling.kind.value,
        **_scheduler_fields(scheduling.params),
        "lastReviewed": to_iso(scheduling.last_reviewed_at),
        "nextDue": to_iso(scheduling.next_due_at),
        "updated": to_iso(card.updated_at),
    }
    front = yaml.safe_dump(
        metadata, sort_keys=False, allow_unicode=True, default_flow_style=False
    ).rstrip("\n")
    question = _escape_markers(card.front)
    answer = _escape_markers(card.back)
    return f"---\n{front}\n---\n{QUESTION_MARKER} {question}\n\n{ANSWER_MARKER} {answer}\n"


def _as_number(value: Any, key: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedArtifactError(
            f"Scheduling field {key} must be a number, got a boolean",
            error_code=ErrorCode.SER_BAD_METADATA.value,
        )
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise MalformedArtifactError(
            f"Scheduling field {key} must be a number, got {value!r}",
            error_code=ErrorCode.SER_BAD_METADATA.value,
        ) from e


def _as_timestamp(value: Any, key: str) -> datetime | None:
    try:
        return parse_iso(value)
    except ValueError as e:
        raise MalformedArtifactError(
            f"Timestamp field {key} is not ISO-8601: {value!r}",
            error_code=ErrorCode.SER_BAD_TIMESTAMP.value,
        ) from e


def _as_tags(value: Any) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset(t for t in re.split(r"[,\s]+", value) if t)
    if isinstance(value, (list, tuple, set)):
        return frozenset(str(t).strip() for t in value if t is not None and str(t).strip())
    raise MalformedArtifactError(
        f"tags must be a list, got {type(value).__name__}",
        error_code=ErrorCode.SER_BAD_METADATA.value,
    )


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def infer_scheduler_kind(
    metadata: dict[str, Any], default: SchedulerKind = SchedulerKind.SM2
) -> SchedulerKind:
    """Scheduler kind from metadata.

    An explicit ``scheduler`` key wins. Otherwise the presence of FSRS keys
    implies FSRS and the presence of SM-2 keys implies SM2; with neither the
    ``default`` applies.
    """
    declared = metadata.get("scheduler")
    if isinstance(declared, str) and declared.strip():
        try:
            return SchedulerKind(declared.strip().upper())
        except ValueError as e:
            raise MalformedArtifactError(
                f"Unknown scheduler {declared!r}",
                error_code=ErrorCode.SER_BAD_METADATA.value,
            ) from e
    if any(key in metadata for key in _FSRS_KEYS):
        return SchedulerKind.FSRS
    if any(key in metadata for key in _SM2_KEYS):
        return SchedulerKind.SM2
    return default


def _parse_scheduling(metadata: dict[str, Any]) -> SchedulingState:
    kind = infer_scheduler_kind(metadata)
    params: SchedulerParams
    if kind is SchedulerKind.FSRS:
        params = FsrsParams(
            difficulty=_as_number(metadata.get("difficulty"), "difficulty"),
            stability=_as_number(metadata.get("stability"), "stability"),
        )
    else:
        params = Sm2Params(
            ease=_as_number(metadata.get("ease"), "ease"),
            interval=_as_number(metadata.get("interval"), "interval"),
        )
    return SchedulingState(
        params=params,
        last_reviewed_at=_as_timestamp(metadata.get("lastReviewed"), "lastReviewed"),
        next_due_at=_as_timestamp(metadata.get("nextDue"), "nextDue"),
    )


def _section_text(lines: list[str], marker: str) -> str:
    """Text after a marker, minus the space and newline the serializer adds."""
    text = "\n".join(lines)[len(marker) :]
    return _unescape_markers(text.removeprefix(" ").removesuffix("\n"))


def _split_body(body: str) -> tuple[str, str]:
    lines = body.split("\n")
    q_index = next(
        (i for i, line in enumerate(lines) if line.startswith(QUESTION_MARKER)), -1
    )
    a_index = next(
        (i for i, line in enumerate(lines) if line.startswith(ANSWER_MARKER)), -1
    )
    if q_index == -1 or a_index == -1:
        raise MalformedArtifactError(
            "Invalid card markdown: missing Q/A",
            error_code=ErrorCode.SER_MISSING_MARKERS.value,
        )
    if a_index < q_index:
        raise MalformedArtifactError(
            "Invalid card markdown: answer precedes question",
            error_code=ErrorCode.SER_MARKER_ORDER.value,
        )
    return (
        _section_text(lines[q_index:a_index], QUESTION_MARKER),
        _section_text(lines[a_index:], ANSWER_MARKER),
    )


def find_media_paths(*texts: str) -> list[str]:
    """Every ``media/...`` target referenced with ``![alt](target)``."""
    return [m.group(2) for text in texts for m in _MEDIA_PATH_RE.finditer(text)]


def parse_artifact(text: str) -> ParsedArtifact:
    """Parse artifact text produced by ``serialize_card``.

    Raises:
        MalformedArtifactError: metadata delimiter missing, metadata not a
            mapping, Q/A markers missing or out of order, or a field of the
            wrong type
    """
    normalized = text.lstrip("\ufeff").replace("\r\n", "\n")
    match = _FRONTMATTER_RE.match(normalized)
    if not match:
        raise MalformedArtifactError(
            "Invalid card markdown: missing frontmatter",
            error_code=ErrorCode.SER_MISSING_FRONTMATTER.value,
        )

    try:
        metadata = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        raise MalformedArtifactError(
            f"Invalid card metadata: {e}",
            error_code=ErrorCode.SER_BAD_METADATA.value,
        ) from e
    if not isinstance(metadata, dict):
        raise MalformedArtifactError(
            "Invalid card metadata: expected key/value lines",
            error_code=ErrorCode.SER_BAD_METADATA.value,
        )

    question, answer = _split_body(match.group(2))

    return ParsedArtifact(
        card_id=_optional_str(metadata.get("cardId")),
        parent_id=_optional_str(metadata.get("remId")),
        tags=_as_tags(metadata.get("tags")),
        scheduling=_parse_scheduling(metadata),
        updated_at=_as_timestamp(metadata.get("updated"), "updated"),
        question=question,
        answer=answer,
        media_paths=find_media_paths(question, answer),
    )
