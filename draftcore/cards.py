from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Iterable, List, Optional

RARITIES = ("common", "rare", "super rare", "ultra rare")
EXTRA_DECK_MARKERS = ("fusion", "synchro", "xyz", "link", "pendulum")


@dataclass(frozen=True)
class Card:
    id: int
    name: str
    type: str = ""
    rarity: Optional[str] = None
    custom_rarity: Optional[str] = None
    quantity: int = 1
    image_url: Optional[str] = None

    def __post_init__(self) -> None:
        if self.quantity < 0:
            raise ValueError(f"Invalid quantity for card {self.id}: {self.quantity}")

    @property
    def effective_rarity(self) -> Optional[str]:
        rarity = self.custom_rarity or self.rarity
        return rarity.strip().lower() if rarity else None

    @property
    def is_extra_deck(self) -> bool:
        lowered = self.type.lower()
        return any(marker in lowered for marker in EXTRA_DECK_MARKERS)


@dataclass(frozen=True)
class PoolEntry:
    # index is the permanent global index of this copy within one draft.
    card: Card
    index: int

    def to_payload(self) -> dict[str, object]:
        return {"index": self.index, "card_id": self.card.id, "name": self.card.name}


def expand_cards(cards: Iterable[Card]) -> List[Card]:
    """One list element per physical copy."""
    expanded: List[Card] = []
    for card in cards:
        expanded.extend([card] * card.quantity)
    return expanded


def shuffle(cards: List[Card], rng: Optional[random.Random] = None) -> List[Card]:
    shuffled = list(cards)
    (rng or random.Random()).shuffle(shuffled)
    return shuffled


def deal(deck: List[PoolEntry], count: int) -> List[PoolEntry]:
    if len(deck) < count:
        raise ValueError("Not enough cards left in pool")
    entries = deck[:count]
    del deck[:count]
    return entries


def entry_indexes(entries: Iterable[PoolEntry]) -> List[int]:
    return [entry.index for entry in entries]
