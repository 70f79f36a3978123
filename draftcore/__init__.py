"""Draft rules shared by clients, the relay and simulations."""

from .allocator import allocate_pool
from .cards import Card, PoolEntry, expand_cards
from .engine import DraftState, apply_action, apply_event, initialize_state, snapshot
from .errors import (
    ActionInFlightError,
    AllocationError,
    BroadcastError,
    DraftError,
    DraftFinishedError,
    IllegalActionError,
    OutOfTurnError,
)
from .models import (
    ActionType,
    DraftConfig,
    DraftMethod,
    DraftSession,
    RarityDistribution,
    SelectionType,
    SessionStatus,
    ShortfallPolicy,
)

__all__ = [
    "allocate_pool",
    "Card",
    "PoolEntry",
    "expand_cards",
    "DraftState",
    "apply_action",
    "apply_event",
    "initialize_state",
    "snapshot",
    "ActionInFlightError",
    "AllocationError",
    "BroadcastError",
    "DraftError",
    "DraftFinishedError",
    "IllegalActionError",
    "OutOfTurnError",
    "ActionType",
    "DraftConfig",
    "DraftMethod",
    "DraftSession",
    "RarityDistribution",
    "SelectionType",
    "SessionStatus",
    "ShortfallPolicy",
]
