from __future__ import annotations

import random
from typing import List, Optional, Sequence

from draftcore.autopick import choose_action
from draftcore.cards import Card, PoolEntry
from draftcore.engine import DraftState, acting_players, apply_action, initialize_state
from draftcore.models import DraftConfig, DraftMethod


def make_cards(count: int, *, rarity: Optional[str] = None, type: str = "Effect Monster", start_id: int = 1) -> List[Card]:
    return [Card(id=start_id + idx, name=f"Card {start_id + idx}", type=type, rarity=rarity) for idx in range(count)]


def make_pool(count: int) -> List[PoolEntry]:
    """Pool entries in index order, so entry i is card i + 1."""
    return [PoolEntry(card=card, index=idx) for idx, card in enumerate(make_cards(count))]


def create_state(
    method: DraftMethod,
    *,
    players: int = 2,
    pool_size: int = 30,
    pool: Optional[Sequence[PoolEntry]] = None,
    **config_kwargs,
) -> tuple[DraftConfig, DraftState]:
    config = DraftConfig(method=method, number_of_players=players, pool_size=pool_size, **config_kwargs)
    return config, initialize_state(config, pool if pool is not None else make_pool(pool_size))


def auto_complete_draft(state: DraftState, seed: int = 7, max_actions: int = 10_000) -> List[dict]:
    """Drive a draft to completion with the auto-pick policy; returns every event."""
    rng = random.Random(seed)
    events: List[dict] = []
    for _ in range(max_actions):
        if state.finished:
            return events
        player = acting_players(state)[0]
        action, target = choose_action(state, player, rng)
        events.extend(apply_action(state, player, action, target))
    raise AssertionError("Draft did not finish")
