from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from .allocator import build_rounds
from .cards import PoolEntry
from .coordinator import DraftProjection
from .errors import DraftFinishedError, IllegalActionError, OutOfTurnError

LOGGER = logging.getLogger("draft_rochester")

PLAYER_SELECTED = "player-selected"
PACKS_ROTATED = "packs-rotated"
DRAFT_FINISHED = "draft-finished"

# Rochester draft: every player picks once from the pack in front of them,
# then packs rotate. Direction alternates per round (+1 even, -1 odd).


@dataclass
class RochesterState(DraftProjection):
    rounds: List[List[List[PoolEntry]]] = field(default_factory=list)
    current_round: int = 0
    pack_assignment: List[int] = field(default_factory=list)
    selected: Set[int] = field(default_factory=set)
    dropped: List[PoolEntry] = field(default_factory=list)

    @property
    def is_last_round(self) -> bool:
        return self.current_round >= len(self.rounds) - 1

    def pack_for(self, player: int) -> List[PoolEntry]:
        if not self.rounds:
            return []
        return self.rounds[self.current_round][self.pack_assignment[player]]


def initialize(pool: Sequence[PoolEntry], number_of_players: int, pack_size: int) -> RochesterState:
    rounds, dropped = build_rounds(pool, number_of_players, pack_size)
    if dropped:
        LOGGER.warning(
            "Dropping %s cards that cannot be split evenly across %s players",
            len(dropped),
            number_of_players,
        )
    state = RochesterState(
        number_of_players=number_of_players,
        rounds=rounds,
        pack_assignment=list(range(number_of_players)),
        dropped=dropped,
    )
    if not rounds:
        state.mark_finished()
    return state


def is_player_finished(state: RochesterState, player: int) -> bool:
    return state.finished or (state.is_last_round and not state.pack_for(player))


def pick(state: RochesterState, player: int, card_index: int) -> List[Dict[str, object]]:
    if state.finished:
        raise DraftFinishedError("Draft already finished")
    if player in state.selected:
        raise OutOfTurnError(f"Player {player} already picked this turn")
    pack_index = state.pack_assignment[player]
    if _find(state.rounds[state.current_round][pack_index], card_index) is None:
        raise IllegalActionError(f"Card {card_index} is not in pack {pack_index}")

    _remove_and_claim(state, player, pack_index, card_index)
    events: List[Dict[str, object]] = [
        {
            "ev": PLAYER_SELECTED,
            "turn": state.turn,
            "player_index": player,
            "pack_index": pack_index,
            "card_index": card_index,
        }
    ]
    if len(state.selected) == state.number_of_players:
        events.extend(_resolve_turn(state))
    return events


def _find(pack: List[PoolEntry], card_index: int) -> Optional[int]:
    for position, entry in enumerate(pack):
        if entry.index == card_index:
            return position
    return None


def _remove_and_claim(state: RochesterState, player: int, pack_index: int, card_index: int) -> bool:
    pack = state.rounds[state.current_round][pack_index]
    position = _find(pack, card_index)
    state.selected.add(player)
    if position is None:
        LOGGER.warning("Card %s already gone from pack %s", card_index, pack_index)
        return False
    state.claim(player, [pack.pop(position)])
    return True


def _resolve_turn(state: RochesterState) -> List[Dict[str, object]]:
    state.selected.clear()
    state.turn += 1
    packs = state.rounds[state.current_round]
    if not any(packs):
        if state.is_last_round:
            if state.mark_finished():
                return [{"ev": DRAFT_FINISHED}]
            return []
        state.current_round += 1
        state.pack_assignment = list(range(state.number_of_players))
    else:
        step = 1 if state.current_round % 2 == 0 else -1
        count = state.number_of_players
        state.pack_assignment = [(pack + step) % count for pack in state.pack_assignment]
    return [
        {
            "ev": PACKS_ROTATED,
            "round": state.current_round,
            "pack_assignments": list(state.pack_assignment),
            "turn": state.turn,
        }
    ]


def apply_player_selected(state: RochesterState, event: Dict[str, object]) -> bool:
    player = int(event["player_index"])
    if not 0 <= player < state.number_of_players:
        LOGGER.warning("Ignoring player-selected event for unknown player %s", player)
        return False
    if state.finished or event.get("turn") != state.turn or player in state.selected:
        LOGGER.warning("Ignoring stale player-selected event for player %s", player)
        return False
    pack_index = int(event["pack_index"])
    if pack_index != state.pack_assignment[player]:
        LOGGER.warning(
            "Ignoring pick by player %s from pack %s; they hold pack %s",
            player,
            pack_index,
            state.pack_assignment[player],
        )
        return False
    _remove_and_claim(state, player, pack_index, int(event["card_index"]))
    if len(state.selected) == state.number_of_players:
        _resolve_turn(state)
    return True


def apply_packs_rotated(state: RochesterState, event: Dict[str, object]) -> bool:
    # Usually already derived from the last player-selected; only newer rotations apply.
    turn = int(event.get("turn", 0))
    if turn <= state.turn:
        return False
    round_number = int(event["round"])
    assignment = [int(pack) for pack in event["pack_assignments"]]
    count = state.number_of_players
    if not 0 <= round_number < len(state.rounds) or sorted(assignment) != list(range(count)):
        LOGGER.warning(
            "Ignoring malformed rotation for turn %s: round %s packs %s",
            turn,
            round_number,
            assignment,
        )
        return False
    LOGGER.warning("Adopting rotation for turn %s from turn %s", turn, state.turn)
    state.turn = turn
    state.current_round = round_number
    state.pack_assignment = assignment
    state.selected.clear()
    return True
