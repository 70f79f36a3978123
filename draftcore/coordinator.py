from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Collection, Dict, Iterable, List, Optional

from .cards import PoolEntry
from .errors import DraftFinishedError, OutOfTurnError

LOGGER = logging.getLogger("draft_coordinator")

# Turn order and completion rules shared by every draft method.


def next_player(current: int, count: int, skip: Collection[int] = ()) -> Optional[int]:
    """Wrap-around successor of ``current`` that is not in ``skip``."""
    for step in range(1, count + 1):
        candidate = (current + step) % count
        if candidate not in skip:
            return candidate
    return None


def all_completed(count: int, completed: Collection[int]) -> bool:
    return all(player in completed for player in range(count))


@dataclass
class DraftProjection:
    """State every method shares: who owns what, and whether it is over."""

    number_of_players: int
    current_player: int = 0
    turn: int = 0
    finished: bool = False
    drafted: Dict[int, List[PoolEntry]] = field(default_factory=dict)
    owners: Dict[int, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for player in range(self.number_of_players):
            self.drafted.setdefault(player, [])

    def deck_size(self, player: int) -> int:
        return len(self.drafted[player])

    def claim(self, player: int, entries: Iterable[PoolEntry]) -> List[PoolEntry]:
        claimed: List[PoolEntry] = []
        for entry in entries:
            owner = self.owners.get(entry.index)
            if owner is not None:
                LOGGER.warning(
                    "Entry %s already owned by player %s; ignoring claim by %s",
                    entry.index,
                    owner,
                    player,
                )
                continue
            self.owners[entry.index] = player
            self.drafted[player].append(entry)
            claimed.append(entry)
        return claimed

    def ensure_turn(self, player: int) -> None:
        if self.finished:
            raise DraftFinishedError("Draft already finished")
        if player != self.current_player:
            raise OutOfTurnError(f"Player {player} acted out of turn")

    def mark_finished(self) -> bool:
        if self.finished:
            return False
        self.finished = True
        return True
