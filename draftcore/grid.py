from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Sequence, Set

from .allocator import build_grid
from .cards import PoolEntry, entry_indexes
from .coordinator import DraftProjection, all_completed, next_player
from .errors import IllegalActionError
from .models import SelectionType

LOGGER = logging.getLogger("draft_grid")

GRID_SELECTION = "grid-selection"
DRAFT_FINISHED = "draft-finished"


@dataclass
class GridState(DraftProjection):
    grid: List[List[Optional[PoolEntry]]] = field(default_factory=list)
    deck: Deque[PoolEntry] = field(default_factory=deque)
    completed: Set[int] = field(default_factory=set)
    target: int = 0

    @property
    def size(self) -> int:
        return len(self.grid)

    @property
    def exhausted(self) -> bool:
        return not self.deck and all(cell is None for row in self.grid for cell in row)


def initialize(pool: Sequence[PoolEntry], number_of_players: int, size: int, target: int) -> GridState:
    deck = deque(pool)
    grid = build_grid(deck, size)
    state = GridState(number_of_players=number_of_players, grid=grid, deck=deck, target=target)
    if state.exhausted:
        state.mark_finished()
    return state


def line_cells(state: GridState, selection: SelectionType, index: int) -> List[PoolEntry]:
    if not 0 <= index < state.size:
        raise IllegalActionError(f"{selection.value} {index} is outside the grid")
    if selection == SelectionType.ROW:
        cells = state.grid[index]
    else:
        cells = [row[index] for row in state.grid]
    return [cell for cell in cells if cell is not None]


def legal_lines(state: GridState) -> List[tuple[SelectionType, int]]:
    lines = []
    for selection in SelectionType:
        for index in range(state.size):
            if line_cells(state, selection, index):
                lines.append((selection, index))
    return lines


def select(state: GridState, player: int, selection: SelectionType, index: int) -> List[Dict[str, object]]:
    state.ensure_turn(player)
    if not line_cells(state, selection, index):
        raise IllegalActionError(f"{selection.value} {index} is empty")
    taken = _take_line(state, player, selection, index)
    finished = _pass_turn(state, player)
    events: List[Dict[str, object]] = [
        {
            "ev": GRID_SELECTION,
            "turn": state.turn - 1,
            "player": player,
            "next_player": state.current_player,
            "selection_type": selection.value,
            "index": index,
            "cards": entry_indexes(taken),
            "is_draft_finished": finished,
            "completed_players": sorted(state.completed),
        }
    ]
    if finished and state.mark_finished():
        events.append({"ev": DRAFT_FINISHED})
    return events


def _take_line(state: GridState, player: int, selection: SelectionType, index: int) -> List[PoolEntry]:
    taken: List[PoolEntry] = []
    for row_idx in range(state.size):
        for col_idx in range(state.size):
            on_line = row_idx == index if selection == SelectionType.ROW else col_idx == index
            cell = state.grid[row_idx][col_idx]
            if on_line and cell is not None:
                taken.append(cell)
                state.grid[row_idx][col_idx] = None
    claimed = state.claim(player, taken)
    refill(state)
    return claimed


def refill(state: GridState) -> None:
    for row in state.grid:
        for col_idx, cell in enumerate(row):
            if cell is None and state.deck:
                row[col_idx] = state.deck.popleft()


def _pass_turn(state: GridState, player: int) -> bool:
    if state.deck_size(player) >= state.target:
        state.completed.add(player)
    state.turn += 1
    if all_completed(state.number_of_players, state.completed) or state.exhausted:
        return True
    successor = next_player(player, state.number_of_players, skip=state.completed)
    if successor is None:
        return True
    state.current_player = successor
    return False


def apply_grid_selection(state: GridState, event: Dict[str, object]) -> bool:
    player = int(event["player"])
    if state.finished or event.get("turn") != state.turn or player != state.current_player:
        LOGGER.warning("Ignoring stale grid-selection event turn=%s player=%s", event.get("turn"), player)
        return False
    selection = SelectionType(event["selection_type"])
    index = int(event["index"])
    if not 0 <= index < state.size:
        LOGGER.warning("Ignoring grid-selection outside the grid: %s %s", selection.value, index)
        return False
    successor = int(event["next_player"])
    completed = {int(p) for p in event.get("completed_players", [])}
    seats = range(state.number_of_players)
    if successor not in seats or not completed.issubset(seats):
        LOGGER.warning(
            "Ignoring grid-selection naming unknown players: next %s completed %s",
            successor,
            sorted(completed),
        )
        return False
    if not line_cells(state, selection, index):
        LOGGER.warning("Replayed %s %s is already empty", selection.value, index)
    _take_line(state, player, selection, index)
    _pass_turn(state, player)
    # The sender's view of turn order and completion wins.
    state.current_player = successor
    state.completed = completed
    if event.get("is_draft_finished"):
        state.mark_finished()
    return True
