"""Interface for the host application that owns the local cards."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..entities.card import SchedulingState

# Asked before a local card is deleted or archived because its remote file
# disappeared. Receives the card id, returns True to proceed.
DeletionConfirmer = Callable[[str], Awaitable[bool]]


@dataclass
class HostCard:
    """A card as the host application stores it.

    ``front`` and ``back`` are host rich text; convert them with
    ``IHostApplication.to_markdown`` before serializing.
    """

    card_id: str
    front: Any
    back: Any
    # Tag names, not host tag ids
    tags: list[str] = field(default_factory=list)
    scheduling: SchedulingState | None = None
    updated_at: datetime | None = None
    parent_id: str | None = None


class IHostApplication(ABC):
    """Capability set the sync engine needs from the host application.

    The engine never keeps references to host objects between calls; every
    read goes through ``get_card`` and every change through the mutators.
    """

    @abstractmethod
    async def get_card(self, card_id: str) -> HostCard | None:
        """Look up a card by id.

        Returns:
            HostCard if found, None otherwise
        """

    @abstractmethod
    async def list_card_ids(self) -> list[str]:
        """Ids of every card the host currently holds."""

    @abstractmethod
    async def create_card(self, card_id: str | None = None) -> str:
        """Create an empty card.

        Args:
            card_id: Preferred id; hosts that assign their own ids may ignore it

        Returns:
            Id of the created card
        """

    @abstractmethod
    async def set_text(self, card_id: str, front: Any, back: Any) -> None:
        """Replace front and back rich text."""

    @abstractmethod
    async def set_tags(self, card_id: str, tag_ids: list[str]) -> None:
        """Replace the card's tags with the given tag ids."""

    @abstractmethod
    async def set_scheduling(self, card_id: str, scheduling: SchedulingState) -> None:
        """Replace the card's scheduling record."""

    @abstractmethod
    async def set_parent_id(self, card_id: str, parent_id: str | None) -> None:
        """Replace the id of the host object the card belongs to."""

    @abstractmethod
    async def delete_card(self, card_id: str) -> None:
        """Remove a card."""

    @abstractmethod
    async def find_tag(self, name: str) -> str | None:
        """Look up a tag by name, returning its id."""

    @abstractmethod
    async def create_tag(self, name: str) -> str:
        """Create a tag with the given name, returning its id."""

    @abstractmethod
    async def to_markdown(self, rich_text: Any) -> str:
        """Convert host rich text to markdown."""

    @abstractmethod
    async def from_markdown(self, text: str) -> Any:
        """Convert markdown to host rich text."""

    async def set_updated_at(self, card_id: str, updated_at: datetime) -> None:
        """Restore the modification time of a card after sync applied remote fields.

        Hosts that stamp every mutation should override this so that applied
        remote changes do not read as fresh local edits on the next push.
        """
        return None

    async def get_or_create_tag(self, name: str) -> str:
        tag_id = await self.find_tag(name)
        if tag_id is None:
            tag_id = await self.create_tag(name)
        return tag_id
