from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .cards import RARITIES


class DraftMethod(str, Enum):
    WINSTON = "winston"
    ROCHESTER = "rochester"
    GRID = "grid"
    ASYNCHRONOUS = "asynchronous"


class SessionStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    FINISHED = "finished"


class ActionType(str, Enum):
    ACCEPT = "ACCEPT"
    DECLINE = "DECLINE"
    PICK = "PICK"
    SELECT_ROW = "SELECT_ROW"
    SELECT_COLUMN = "SELECT_COLUMN"


class SelectionType(str, Enum):
    ROW = "row"
    COLUMN = "column"


class ShortfallPolicy(str, Enum):
    SUBSTITUTE = "substitute"
    STRICT = "strict"


@dataclass
class RarityDistribution:
    # Fixed cards-per-pack counts, keyed by rarity name.
    per_pack: Dict[str, int] = field(default_factory=dict)
    # Percent weights for per-slot draws; used instead of per_pack when use_rates is set.
    rates: Dict[str, float] = field(default_factory=dict)
    use_rates: bool = False

    def __post_init__(self) -> None:
        for name in list(self.per_pack) + list(self.rates):
            if name not in RARITIES:
                raise ValueError(f"Unknown rarity: {name}")
        if any(count < 0 for count in self.per_pack.values()):
            raise ValueError("Per-pack rarity counts must be non-negative")
        if self.use_rates and sum(self.rates.values()) <= 0:
            raise ValueError("Rarity rates must sum to a positive value")

    @property
    def cards_per_pack(self) -> int:
        return sum(self.per_pack.values())


@dataclass
class DraftConfig:
    method: DraftMethod
    number_of_players: int
    pool_size: int
    pack_size: int = 15
    # Pile count for Winston, side length for Grid.
    number_of_piles: int = 3
    drafted_deck_size: Optional[int] = None
    picks_per_pack: int = 1
    extra_deck_at_end: bool = False
    rarity_distribution: Optional[RarityDistribution] = None
    allow_overlap: bool = False
    shortfall_policy: ShortfallPolicy = ShortfallPolicy.SUBSTITUTE

    @property
    def grid_size(self) -> int:
        return self.number_of_piles

    @property
    def target_deck_size(self) -> int:
        if self.drafted_deck_size:
            return self.drafted_deck_size
        return self.pool_size // self.number_of_players

    @property
    def total_packs(self) -> int:
        """Packs each participant opens in an asynchronous draft."""
        return math.ceil(self.target_deck_size / self.picks_per_pack)

    def validate(self) -> None:
        if self.number_of_players < 1:
            raise ValueError("At least one player is required")
        if self.pool_size < 1:
            raise ValueError("Pool size must be positive")
        if self.pack_size < 1:
            raise ValueError("Pack size must be positive")
        if self.number_of_piles < 1:
            raise ValueError("Pile/grid count must be positive")
        if self.picks_per_pack < 1 or self.picks_per_pack > self.pack_size:
            raise ValueError("Picks per pack must be between 1 and the pack size")
        if self.drafted_deck_size is not None and self.drafted_deck_size < 1:
            raise ValueError("Drafted deck size must be positive")
        if self.target_deck_size < 1:
            raise ValueError("Pool too small for the number of players")
        distribution = self.rarity_distribution
        if distribution and not distribution.use_rates and distribution.cards_per_pack > self.pack_size:
            raise ValueError("Rarity counts exceed the pack size")
        if self.allow_overlap and self.method != DraftMethod.ASYNCHRONOUS:
            raise ValueError("Overlapping pools are only supported for asynchronous drafts")
        if self.method == DraftMethod.ASYNCHRONOUS:
            # Each participant's packs span a fixed region of the pool.
            needed = self.number_of_players * self.pack_size * self.total_packs
            if needed > self.pool_size:
                raise ValueError(
                    f"Asynchronous draft needs {needed} cards for {self.number_of_players} players"
                )

    def to_payload(self) -> Dict[str, object]:
        return {
            "method": self.method.value,
            "number_of_players": self.number_of_players,
            "pool_size": self.pool_size,
            "pack_size": self.pack_size,
            "number_of_piles": self.number_of_piles,
            "drafted_deck_size": self.drafted_deck_size,
            "picks_per_pack": self.picks_per_pack,
        }


@dataclass
class DraftSession:
    id: str
    config: DraftConfig
    participants: List[str] = field(default_factory=list)
    current_player: int = 0
    status: SessionStatus = SessionStatus.WAITING

    @property
    def is_finished(self) -> bool:
        return self.status == SessionStatus.FINISHED

    def join(self, player_id: str) -> int:
        if player_id in self.participants:
            return self.participants.index(player_id)
        if self.status != SessionStatus.WAITING:
            raise RuntimeError("Draft already started")
        if len(self.participants) >= self.config.number_of_players:
            raise RuntimeError("Draft is full")
        self.participants.append(player_id)
        return len(self.participants) - 1

    def start(self) -> bool:
        if self.status != SessionStatus.WAITING:
            return False
        if len(self.participants) != self.config.number_of_players:
            raise RuntimeError("Not enough participants to start the draft")
        self.status = SessionStatus.ACTIVE
        return True

    def finish(self) -> bool:
        """Move to finished once; later calls report False."""
        if self.status == SessionStatus.FINISHED:
            return False
        self.status = SessionStatus.FINISHED
        return True
