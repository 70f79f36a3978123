from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional

from draftcore.cards import Card, PoolEntry
from draftcore.models import DraftSession, SessionStatus

LOGGER = logging.getLogger("draft_storage")


@dataclass
class PoolRow:
    index: int
    card_id: int
    owner: Optional[str] = None
    slot: Optional[int] = None
    picked: bool = False
    custom_rarity: Optional[str] = None


class DraftStore(ABC):
    """Durable draft and pool rows, keyed by (session id, global index)."""

    @abstractmethod
    async def create_session(self, session: DraftSession) -> None:
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[DraftSession]:
        pass

    @abstractmethod
    async def update_session(
        self,
        session_id: str,
        *,
        current_player: Optional[int] = None,
        status: Optional[SessionStatus] = None,
        participants: Optional[List[str]] = None,
    ) -> None:
        pass

    @abstractmethod
    async def insert_pool(self, session_id: str, entries: Iterable[PoolEntry]) -> None:
        pass

    @abstractmethod
    async def list_pool(
        self,
        session_id: str,
        *,
        owner: Optional[str] = None,
        unowned_only: bool = False,
    ) -> List[PoolRow]:
        pass

    @abstractmethod
    async def assign_owner(self, session_id: str, indexes: Iterable[int], owner: str) -> None:
        """Set the owner and clear the pile/pack slot of each index."""

    @abstractmethod
    async def set_slots(self, session_id: str, slots: Mapping[int, Optional[int]]) -> None:
        pass

    @abstractmethod
    async def mark_picked(self, session_id: str, index: int, owner: str) -> bool:
        """Conditionally flag an entry as picked. False when it already was."""

    @abstractmethod
    async def pick_counts(self, session_id: str) -> Dict[str, int]:
        pass


class CardCatalog(ABC):
    @abstractmethod
    async def fetch_card_data(self, card_ids: Iterable[int]) -> List[Card]:
        """Batch lookup. Unknown ids are left out rather than failing the batch."""

    @abstractmethod
    def resolve_image_url(self, card_id: int, variant: str = "full") -> str:
        pass


class MemoryDraftStore(DraftStore):
    def __init__(self) -> None:
        self.sessions: Dict[str, DraftSession] = {}
        self.pools: Dict[str, Dict[int, PoolRow]] = {}
        self.lock = asyncio.Lock()

    async def create_session(self, session: DraftSession) -> None:
        self.sessions[session.id] = copy.deepcopy(session)
        self.pools.setdefault(session.id, {})

    async def get_session(self, session_id: str) -> Optional[DraftSession]:
        session = self.sessions.get(session_id)
        return copy.deepcopy(session) if session else None

    async def update_session(
        self,
        session_id: str,
        *,
        current_player: Optional[int] = None,
        status: Optional[SessionStatus] = None,
        participants: Optional[List[str]] = None,
    ) -> None:
        session = self._session(session_id)
        if current_player is not None:
            session.current_player = current_player
        if participants is not None:
            session.participants = list(participants)
        if status is not None and session.status != SessionStatus.FINISHED:
            session.status = status

    async def insert_pool(self, session_id: str, entries: Iterable[PoolEntry]) -> None:
        rows = self.pools.setdefault(session_id, {})
        for entry in entries:
            if entry.index in rows:
                raise ValueError(f"Duplicate pool index {entry.index}")
            rows[entry.index] = PoolRow(
                index=entry.index,
                card_id=entry.card.id,
                custom_rarity=entry.card.custom_rarity,
            )

    async def list_pool(
        self,
        session_id: str,
        *,
        owner: Optional[str] = None,
        unowned_only: bool = False,
    ) -> List[PoolRow]:
        rows = sorted(self.pools.get(session_id, {}).values(), key=lambda row: row.index)
        if owner is not None:
            rows = [row for row in rows if row.owner == owner]
        if unowned_only:
            rows = [row for row in rows if row.owner is None]
        return [copy.copy(row) for row in rows]

    async def assign_owner(self, session_id: str, indexes: Iterable[int], owner: str) -> None:
        rows = self.pools.get(session_id, {})
        for index in indexes:
            row = rows.get(index)
            if row is None:
                raise KeyError(f"No pool row {index} in session {session_id}")
            if row.owner is not None and row.owner != owner:
                LOGGER.warning("Row %s already owned by %s; not reassigning to %s", index, row.owner, owner)
                continue
            row.owner = owner
            row.slot = None

    async def set_slots(self, session_id: str, slots: Mapping[int, Optional[int]]) -> None:
        rows = self.pools.get(session_id, {})
        for index, slot in slots.items():
            if index in rows:
                rows[index].slot = slot

    async def mark_picked(self, session_id: str, index: int, owner: str) -> bool:
        async with self.lock:
            row = self.pools.get(session_id, {}).get(index)
            if row is None or row.picked:
                return False
            row.picked = True
            row.owner = owner
            return True

    async def pick_counts(self, session_id: str) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for row in self.pools.get(session_id, {}).values():
            if row.owner is not None:
                counts[row.owner] = counts.get(row.owner, 0) + 1
        return counts

    def _session(self, session_id: str) -> DraftSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise KeyError(f"Unknown session {session_id}")
        return session


class MemoryCardCatalog(CardCatalog):
    def __init__(self, cards: Iterable[Card] = (), image_base_url: str = "/images/cards") -> None:
        self.cards: Dict[int, Card] = {card.id: card for card in cards}
        self.image_base_url = image_base_url.rstrip("/")

    async def fetch_card_data(self, card_ids: Iterable[int]) -> List[Card]:
        found: List[Card] = []
        missing: List[int] = []
        for card_id in dict.fromkeys(card_ids):
            card = self.cards.get(card_id)
            if card is None:
                missing.append(card_id)
            else:
                found.append(card)
        if missing:
            LOGGER.warning("No card data for %s ids: %s", len(missing), missing[:10])
        return found

    def resolve_image_url(self, card_id: int, variant: str = "full") -> str:
        return f"{self.image_base_url}/{variant}/{card_id}.jpg"
