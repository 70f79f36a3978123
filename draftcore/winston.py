from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Sequence

from .allocator import build_piles
from .cards import PoolEntry, entry_indexes
from .coordinator import DraftProjection
from .errors import IllegalActionError

LOGGER = logging.getLogger("draft_winston")

NEW_PLAYER = "new-player"
DRAFT_FINISHED = "draft-finished"

# Winston draft: accept the current pile or pass it. Declines are local until
# the turn ends; peers replay them from accepted_pile_index in new-player.


@dataclass
class WinstonState(DraftProjection):
    deck: Deque[PoolEntry] = field(default_factory=deque)
    piles: List[List[PoolEntry]] = field(default_factory=list)
    current_pile: int = 0

    @property
    def remaining(self) -> int:
        return len(self.deck) + sum(len(pile) for pile in self.piles)


def initialize(pool: Sequence[PoolEntry], number_of_players: int, number_of_piles: int) -> WinstonState:
    piles, deck = build_piles(pool, number_of_piles)
    state = WinstonState(number_of_players=number_of_players, deck=deck, piles=piles)
    state.current_pile = first_non_empty(state.piles) or 0
    if not state.remaining:
        state.mark_finished()
    return state


def first_non_empty(piles: List[List[PoolEntry]], start: int = 0) -> Optional[int]:
    for idx in range(start, len(piles)):
        if piles[idx]:
            return idx
    return None


def can_decline(state: WinstonState) -> bool:
    if state.finished or not state.piles[state.current_pile]:
        return False
    if state.deck:
        return True
    return any(pile for idx, pile in enumerate(state.piles) if idx != state.current_pile)


def accept(state: WinstonState, player: int) -> List[Dict[str, object]]:
    state.ensure_turn(player)
    pile_index = state.current_pile
    if not state.piles[pile_index]:
        raise IllegalActionError("Cannot accept an empty pile")
    taken = _take_pile(state, pile_index)
    return _end_turn(state, player, pile_index, taken)


def decline(state: WinstonState, player: int) -> List[Dict[str, object]]:
    state.ensure_turn(player)
    pile_index = state.current_pile
    if not state.piles[pile_index]:
        raise IllegalActionError("No pile to decline")
    if not can_decline(state):
        # Passing the last live pile with nothing left to draw would strand the player.
        LOGGER.warning("Player %s declined the only remaining pile; accepting it", player)
        return accept(state, player)

    if state.deck:
        state.piles[pile_index].append(state.deck.popleft())

    if pile_index == len(state.piles) - 1:
        taken = [state.deck.popleft()] if state.deck else []
        claimed = state.claim(player, taken)
        return _end_turn(state, player, len(state.piles), claimed)

    following = first_non_empty(state.piles, pile_index + 1)
    if following is None:
        following = first_non_empty(state.piles)
    state.current_pile = following if following is not None else pile_index
    LOGGER.debug("Player %s declined pile %s; now on pile %s", player, pile_index, state.current_pile)
    return []


def _take_pile(state: WinstonState, pile_index: int) -> List[PoolEntry]:
    pile = state.piles[pile_index]
    state.piles[pile_index] = [state.deck.popleft()] if state.deck else []
    return state.claim(state.current_player, pile)


def _end_turn(
    state: WinstonState,
    player: int,
    accepted_pile_index: int,
    taken: List[PoolEntry],
) -> List[Dict[str, object]]:
    finished = not state.deck and not any(state.piles)
    event: Dict[str, object] = {
        "ev": NEW_PLAYER,
        "turn": state.turn,
        "player_id": player,
        "accepted_pile_index": accepted_pile_index,
        "cards": entry_indexes(taken),
        "finished": finished,
    }
    _advance(state, finished)
    event["current_player"] = state.current_player
    events = [event]
    if finished and state.mark_finished():
        events.append({"ev": DRAFT_FINISHED})
    return events


def _advance(state: WinstonState, finished: bool) -> None:
    state.turn += 1
    if not finished:
        state.current_player = (state.current_player + 1) % state.number_of_players
    state.current_pile = first_non_empty(state.piles) or 0


def apply_new_player(state: WinstonState, event: Dict[str, object]) -> bool:
    """Replay a whole turn published by another client."""
    if event.get("turn") != state.turn or event.get("player_id") != state.current_player:
        LOGGER.warning(
            "Ignoring stale new-player event turn=%s player=%s (local turn=%s player=%s)",
            event.get("turn"),
            event.get("player_id"),
            state.turn,
            state.current_player,
        )
        return False

    player = state.current_player
    accepted = int(event["accepted_pile_index"])
    successor = int(event["current_player"])
    # len(piles) marks a blind draw past the last pile.
    if not 0 <= accepted <= len(state.piles) or not 0 <= successor < state.number_of_players:
        LOGGER.warning("Ignoring new-player event with pile %s and next player %s", accepted, successor)
        return False
    if accepted < len(state.piles) and not state.piles[accepted]:
        LOGGER.warning("Ignoring new-player event accepting empty pile %s", accepted)
        return False
    for idx in range(min(accepted, len(state.piles))):
        if state.deck:
            state.piles[idx].append(state.deck.popleft())

    if accepted < len(state.piles):
        taken = _take_pile(state, accepted)
    else:
        taken = state.claim(player, [state.deck.popleft()] if state.deck else [])

    expected = event.get("cards")
    if expected is not None and sorted(expected) != sorted(entry_indexes(taken)):
        LOGGER.warning("Replayed turn %s diverged: expected %s got %s", state.turn, expected, entry_indexes(taken))

    finished = bool(event.get("finished")) or (not state.deck and not any(state.piles))
    state.turn += 1
    if not finished:
        state.current_player = successor
    state.current_pile = first_non_empty(state.piles) or 0
    if finished:
        state.mark_finished()
    return True
