"""Local card store on SQLite acting as the host application."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime
from typing import Any

from ..domain.entities.card import (
    FsrsParams,
    SchedulerKind,
    SchedulingState,
    Sm2Params,
)
from ..domain.interfaces.host_application import HostCard, IHostApplication
from ..utils.logging import get_logger
from ..utils.timestamps import parse_iso, to_iso, utc_now
from .database import SQLiteDatabase

logger = get_logger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


class SQLiteHostApplication(IHostApplication):
    """Host application whose rich text is plain markdown.

    Every mutation stamps ``updated_at`` with the current time, the way an
    editor records a user edit. The sync engine restores the remote value
    through ``set_updated_at`` after applying pulled fields.
    """

    def __init__(self, db: SQLiteDatabase):
        self.db = db

    def _require(self, card_id: str) -> None:
        row = self.db.execute(
            "SELECT 1 FROM cards WHERE card_id = ?", (card_id,), operation="card_exists"
        ).fetchone()
        if row is None:
            msg = f"Card not found: {card_id}"
            raise KeyError(msg)

    def _touch(self, card_id: str) -> None:
        self.db.execute(
            "UPDATE cards SET updated_at = ? WHERE card_id = ?",
            (to_iso(utc_now()), card_id),
            operation="card_touch",
        )

    def _tag_names(self, card_id: str) -> list[str]:
        rows = self.db.execute(
            """
            SELECT t.name FROM card_tags ct JOIN tags t ON t.tag_id = ct.tag_id
            WHERE ct.card_id = ? ORDER BY t.name
            """,
            (card_id,),
            operation="card_tags",
        ).fetchall()
        return [row["name"] for row in rows]

    @staticmethod
    def _scheduling_from_row(row: sqlite3.Row) -> SchedulingState | None:
        if row["scheduler"] is None:
            return None
        kind = SchedulerKind(row["scheduler"])
        params: FsrsParams | Sm2Params
        if kind is SchedulerKind.FSRS:
            params = FsrsParams(difficulty=row["difficulty"], stability=row["stability"])
        else:
            params = Sm2Params(ease=row["ease"], interval=row["interval"])
        return SchedulingState(
            params=params,
            last_reviewed_at=parse_iso(row["last_reviewed_at"]),
            next_due_at=parse_iso(row["next_due_at"]),
        )

    async def get_card(self, card_id: str) -> HostCard | None:
        row = self.db.execute(
            "SELECT * FROM cards WHERE card_id = ?", (card_id,), operation="get_card"
        ).fetchone()
        if row is None:
            return None
        return HostCard(
            card_id=row["card_id"],
            front=row["front"],
            back=row["back"],
            tags=self._tag_names(card_id),
            scheduling=self._scheduling_from_row(row),
            updated_at=parse_iso(row["updated_at"]),
            parent_id=row["parent_id"],
        )

    async def list_card_ids(self) -> list[str]:
        rows = self.db.execute(
            "SELECT card_id FROM cards ORDER BY created_at, card_id",
            operation="list_cards",
        ).fetchall()
        return [row["card_id"] for row in rows]

    async def create_card(self, card_id: str | None = None) -> str:
        now = to_iso(utc_now())
        new_id = card_id or _new_id()
        try:
            self.db.execute(
                "INSERT INTO cards (card_id, created_at, updated_at) VALUES (?, ?, ?)",
                (new_id, now, now),
                operation="create_card",
            )
        except sqlite3.IntegrityError:
            # Requested id is taken; fall back to a fresh one
            new_id = _new_id()
            self.db.execute(
                "INSERT INTO cards (card_id, created_at, updated_at) VALUES (?, ?, ?)",
                (new_id, now, now),
                operation="create_card",
            )
        logger.debug("card_created", card_id=new_id)
        return new_id

    async def add_card(
        self,
        front: str,
        back: str,
        tags: list[str] | None = None,
        scheduling: SchedulingState | None = None,
        card_id: str | None = None,
    ) -> str:
        """Create a card with content in one call."""
        new_id = await self.create_card(card_id)
        await self.set_text(new_id, front, back)
        tag_ids = [await self.get_or_create_tag(name) for name in tags or []]
        await self.set_tags(new_id, tag_ids)
        if scheduling is not None:
            await self.set_scheduling(new_id, scheduling)
        return new_id

    async def set_text(self, card_id: str, front: Any, back: Any) -> None:
        self._require(card_id)
        self.db.execute(
            "UPDATE cards SET front = ?, back = ?, updated_at = ? WHERE card_id = ?",
            (str(front), str(back), to_iso(utc_now()), card_id),
            operation="set_text",
        )

    async def set_tags(self, card_id: str, tag_ids: list[str]) -> None:
        self._require(card_id)
        with self.db.connection:
            self.db.connection.execute("DELETE FROM card_tags WHERE card_id = ?", (card_id,))
            self.db.connection.executemany(
                "INSERT OR IGNORE INTO card_tags (card_id, tag_id) VALUES (?, ?)",
                [(card_id, tag_id) for tag_id in tag_ids],
            )
        self._touch(card_id)

    async def set_scheduling(self, card_id: str, scheduling: SchedulingState) -> None:
        self._require(card_id)
        params = scheduling.params
        fsrs = params if isinstance(params, FsrsParams) else FsrsParams()
        sm2 = params if isinstance(params, Sm2Params) else Sm2Params()
        self.db.execute(
            """
            UPDATE cards SET scheduler = ?, difficulty = ?, stability = ?,
                ease = ?, interval = ?, last_reviewed_at = ?, next_due_at = ?,
                updated_at = ?
            WHERE card_id = ?
            """,
            (
                scheduling.kind.value,
                fsrs.difficulty,
                fsrs.stability,
                sm2.ease,
                sm2.interval,
                to_iso(scheduling.last_reviewed_at),
                to_iso(scheduling.next_due_at),
                to_iso(utc_now()),
                card_id,
            ),
            operation="set_scheduling",
        )

    async def set_parent_id(self, card_id: str, parent_id: str | None) -> None:
        self._require(card_id)
        self.db.execute(
            "UPDATE cards SET parent_id = ?, updated_at = ? WHERE card_id = ?",
            (parent_id, to_iso(utc_now()), card_id),
            operation="set_parent_id",
        )

    async def set_updated_at(self, card_id: str, updated_at: datetime) -> None:
        self.db.execute(
            "UPDATE cards SET updated_at = ? WHERE card_id = ?",
            (to_iso(updated_at), card_id),
            operation="set_updated_at",
        )

    async def delete_card(self, card_id: str) -> None:
        self.db.execute("DELETE FROM cards WHERE card_id = ?", (card_id,), operation="delete_card")
        logger.debug("card_deleted", card_id=card_id)

    async def find_tag(self, name: str) -> str | None:
        row = self.db.execute(
            "SELECT tag_id FROM tags WHERE name = ?", (name,), operation="find_tag"
        ).fetchone()
        return row["tag_id"] if row else None

    async def create_tag(self, name: str) -> str:
        tag_id = _new_id()
        self.db.execute(
            "INSERT INTO tags (tag_id, name) VALUES (?, ?)", (tag_id, name), operation="create_tag"
        )
        return tag_id

    async def to_markdown(self, rich_text: Any) -> str:
        return "" if rich_text is None else str(rich_text)

    async def from_markdown(self, text: str) -> Any:
        return text
