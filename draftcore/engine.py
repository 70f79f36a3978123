from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Union

from . import asynchronous, grid, rochester, winston
from .asynchronous import AsyncState
from .cards import PoolEntry, entry_indexes
from .errors import IllegalActionError
from .grid import GridState
from .models import ActionType, DraftConfig, DraftMethod, SelectionType
from .rochester import RochesterState
from .winston import WinstonState

DraftState = Union[WinstonState, RochesterState, GridState, AsyncState]

DRAFT_STARTED = "draft-started"
DRAFT_FINISHED = "draft-finished"


def initialize_state(config: DraftConfig, pool: Sequence[PoolEntry]) -> DraftState:
    players = config.number_of_players
    match config.method:
        case DraftMethod.WINSTON:
            return winston.initialize(pool, players, config.number_of_piles)
        case DraftMethod.ROCHESTER:
            return rochester.initialize(pool, players, config.pack_size)
        case DraftMethod.GRID:
            return grid.initialize(pool, players, config.grid_size, config.target_deck_size)
        case DraftMethod.ASYNCHRONOUS:
            return asynchronous.initialize(
                pool,
                players,
                config.pack_size,
                config.picks_per_pack,
                config.target_deck_size,
                config.total_packs,
            )
    raise ValueError(f"Unsupported draft method {config.method}")


def apply_action(
    state: DraftState,
    player: int,
    action: ActionType,
    target: Optional[int] = None,
) -> List[Dict[str, object]]:
    """Run a local action and return the events peers need to replay it."""
    match state, action:
        case WinstonState(), ActionType.ACCEPT:
            return winston.accept(state, player)
        case WinstonState(), ActionType.DECLINE:
            return winston.decline(state, player)
        case RochesterState(), ActionType.PICK:
            return rochester.pick(state, player, _require(target, action))
        case GridState(), ActionType.SELECT_ROW:
            return grid.select(state, player, SelectionType.ROW, _require(target, action))
        case GridState(), ActionType.SELECT_COLUMN:
            return grid.select(state, player, SelectionType.COLUMN, _require(target, action))
        case AsyncState(), ActionType.PICK:
            return asynchronous.pick(state, player, _require(target, action))
    raise IllegalActionError(f"{action.value} is not valid in a {method_of(state).value} draft")


def _require(target: Optional[int], action: ActionType) -> int:
    if target is None:
        raise IllegalActionError(f"{action.value} requires a target")
    return target


def apply_event(state: DraftState, event: Dict[str, object]) -> bool:
    """Replay a remote event. Returns False when it changed nothing."""
    name = event.get("ev")
    if name == DRAFT_FINISHED:
        return state.mark_finished()
    if name == DRAFT_STARTED:
        return False
    match state, name:
        case WinstonState(), winston.NEW_PLAYER:
            return winston.apply_new_player(state, event)
        case RochesterState(), rochester.PLAYER_SELECTED:
            return rochester.apply_player_selected(state, event)
        case RochesterState(), rochester.PACKS_ROTATED:
            return rochester.apply_packs_rotated(state, event)
        case GridState(), grid.GRID_SELECTION:
            return grid.apply_grid_selection(state, event)
    raise ValueError(f"Event {name} does not apply to a {method_of(state).value} draft")


def method_of(state: DraftState) -> DraftMethod:
    match state:
        case WinstonState():
            return DraftMethod.WINSTON
        case RochesterState():
            return DraftMethod.ROCHESTER
        case GridState():
            return DraftMethod.GRID
        case AsyncState():
            return DraftMethod.ASYNCHRONOUS
    raise TypeError(f"Unknown draft state {type(state).__name__}")


def draft_finished(state: DraftState) -> bool:
    return state.finished


def acting_players(state: DraftState) -> List[int]:
    """Players allowed to act right now."""
    if state.finished:
        return []
    match state:
        case WinstonState() | GridState():
            return [state.current_player]
        case RochesterState():
            return [p for p in range(state.number_of_players) if p not in state.selected]
        case AsyncState():
            return [p for p in range(state.number_of_players) if not asynchronous.is_complete(state, p)]
    return []


def snapshot(state: DraftState) -> Dict[str, object]:
    payload: Dict[str, object] = {
        "method": method_of(state).value,
        "turn": state.turn,
        "finished": state.finished,
        "drafted": {player: entry_indexes(entries) for player, entries in state.drafted.items()},
    }
    match state:
        case WinstonState():
            payload.update(
                current_player=state.current_player,
                current_pile=state.current_pile,
                piles=[entry_indexes(pile) for pile in state.piles],
                deck_size=len(state.deck),
            )
        case RochesterState():
            payload.update(
                round=state.current_round,
                rounds=len(state.rounds),
                pack_assignments=list(state.pack_assignment),
                selected=sorted(state.selected),
            )
        case GridState():
            payload.update(
                current_player=state.current_player,
                grid=[[cell.index if cell else None for cell in row] for row in state.grid],
                deck_size=len(state.deck),
                completed_players=sorted(state.completed),
            )
        case AsyncState():
            payload.update(
                packs={
                    player: asynchronous.current_pack_number(state, player)
                    for player in range(state.number_of_players)
                },
            )
    return payload
