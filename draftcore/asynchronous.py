from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence

from .allocator import async_pack_range
from .cards import PoolEntry
from .coordinator import DraftProjection, all_completed
from .errors import DraftFinishedError, IllegalActionError

LOGGER = logging.getLogger("draft_async")

DRAFT_FINISHED = "draft-finished"

# Each participant opens fixed index ranges of the pool at their own pace.
# Picks are not broadcast; only the end of the whole draft is.


@dataclass
class AsyncState(DraftProjection):
    entries: Dict[int, PoolEntry] = field(default_factory=dict)
    pack_size: int = 15
    picks_per_pack: int = 1
    target: int = 0
    total_packs: int = 0


def initialize(
    pool: Sequence[PoolEntry],
    number_of_players: int,
    pack_size: int,
    picks_per_pack: int,
    target: int,
    total_packs: int,
) -> AsyncState:
    return AsyncState(
        number_of_players=number_of_players,
        entries={entry.index: entry for entry in pool},
        pack_size=pack_size,
        picks_per_pack=picks_per_pack,
        target=target,
        total_packs=total_packs,
    )


def is_complete(state: AsyncState, player: int) -> bool:
    return state.deck_size(player) >= state.target


def completed_players(state: AsyncState, counts: Mapping[int, int] | None = None) -> List[int]:
    """Players at or past the target, optionally using externally stored pick counts."""
    counts = counts or {}
    return [
        player
        for player in range(state.number_of_players)
        if max(counts.get(player, 0), state.deck_size(player)) >= state.target
    ]


def current_pack_number(state: AsyncState, player: int) -> int:
    return state.deck_size(player) // state.picks_per_pack + 1


def picks_remaining_in_pack(state: AsyncState, player: int) -> int:
    return state.picks_per_pack - state.deck_size(player) % state.picks_per_pack


def current_pack_range(state: AsyncState, player: int) -> range:
    return async_pack_range(player, current_pack_number(state, player), state.pack_size, state.total_packs)


def load_pack(state: AsyncState, player: int) -> List[PoolEntry]:
    if is_complete(state, player):
        return []
    return [
        state.entries[index]
        for index in current_pack_range(state, player)
        if index in state.entries and index not in state.owners
    ]


def pick(state: AsyncState, player: int, index: int) -> List[Dict[str, object]]:
    if state.finished or is_complete(state, player):
        raise DraftFinishedError(f"Player {player} has finished drafting")
    if index not in current_pack_range(state, player) or index not in state.entries:
        raise IllegalActionError(f"Card {index} is not in player {player}'s current pack")
    if index in state.owners:
        LOGGER.warning("Card %s already picked by player %s", index, state.owners[index])
        return []
    state.claim(player, [state.entries[index]])
    LOGGER.debug(
        "Player %s picked %s (pack %s, %s picks left in pack)",
        player,
        index,
        current_pack_number(state, player),
        picks_remaining_in_pack(state, player),
    )
    if all_completed(state.number_of_players, completed_players(state)) and state.mark_finished():
        return [{"ev": DRAFT_FINISHED}]
    return []
