from __future__ import annotations

import random
from typing import Optional, Tuple

from . import asynchronous, grid, winston
from .asynchronous import AsyncState
from .engine import DraftState
from .grid import GridState
from .models import ActionType, SelectionType
from .rochester import RochesterState
from .winston import WinstonState

_RNG = random.Random()


def _pile_worth_taking(size: int, rng: random.Random) -> bool:
    # Bigger piles are more attractive; singletons are usually passed.
    return rng.random() < min(0.9, 0.25 + 0.2 * size)


def choose_action(
    state: DraftState,
    player: int,
    rng: Optional[random.Random] = None,
) -> Tuple[ActionType, Optional[int]]:
    """Pick a random but legal action for ``player``."""
    rng = rng or _RNG
    match state:
        case WinstonState():
            pile = state.piles[state.current_pile]
            if not winston.can_decline(state) or not state.deck or _pile_worth_taking(len(pile), rng):
                return ActionType.ACCEPT, None
            return ActionType.DECLINE, None
        case RochesterState():
            pack = state.pack_for(player)
            return ActionType.PICK, rng.choice(pack).index
        case GridState():
            selection, index = max(
                grid.legal_lines(state),
                key=lambda line: (len(grid.line_cells(state, *line)), rng.random()),
            )
            action = ActionType.SELECT_ROW if selection == SelectionType.ROW else ActionType.SELECT_COLUMN
            return action, index
        case AsyncState():
            pack = asynchronous.load_pack(state, player)
            return ActionType.PICK, rng.choice(pack).index
    raise TypeError(f"Unknown draft state {type(state).__name__}")
