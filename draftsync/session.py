from __future__ import annotations

import logging
import random
import uuid
from dataclasses import replace
from typing import Iterable, List, Optional

from draftcore.allocator import allocate_pool
from draftcore.cards import Card, PoolEntry
from draftcore.models import DraftConfig, DraftSession, SessionStatus

from .channel import Channel
from .protocol import DRAFT_STARTED, event_message
from .storage import CardCatalog, DraftStore

LOGGER = logging.getLogger("draft_session")


async def create_draft(
    store: DraftStore,
    config: DraftConfig,
    cards: Iterable[Card],
    creator: str,
    rng: Optional[random.Random] = None,
) -> DraftSession:
    """Persist a waiting session and its freshly allocated pool."""
    config.validate()
    session = DraftSession(id=uuid.uuid4().hex, config=config, participants=[creator])
    pool = allocate_pool(cards, config, rng)
    await store.create_session(session)
    await store.insert_pool(session.id, pool)
    LOGGER.info(
        "Created %s draft %s with %s cards for %s players",
        config.method.value,
        session.id,
        len(pool),
        config.number_of_players,
    )
    return session


async def join_draft(store: DraftStore, session_id: str, player_id: str) -> DraftSession:
    session = await _load(store, session_id)
    seat = session.join(player_id)
    await store.update_session(session_id, participants=session.participants)
    LOGGER.info("Player %s joined draft %s in seat %s", player_id, session_id, seat)
    return session


async def start_draft(store: DraftStore, channel: Channel, session_id: str, origin: str) -> DraftSession:
    session = await _load(store, session_id)
    if not session.start():
        LOGGER.info("Draft %s already %s", session_id, session.status.value)
        return session
    await store.update_session(session_id, status=SessionStatus.ACTIVE, current_player=0)
    await channel.publish(
        event_message(session_id, origin, f"{origin}:start", {"ev": DRAFT_STARTED})
    )
    LOGGER.info("Draft %s started with %s", session_id, session.participants)
    return session


async def load_pool(
    store: DraftStore,
    catalog: CardCatalog,
    session_id: str,
    unowned_only: bool = False,
) -> List[PoolEntry]:
    """Join pool rows with card metadata, ordered by global index.

    Rows whose card data is missing from the catalog keep a placeholder card so
    the index permutation stays intact.
    """
    rows = await store.list_pool(session_id, unowned_only=unowned_only)
    cards = {card.id: card for card in await catalog.fetch_card_data(row.card_id for row in rows)}
    pool: List[PoolEntry] = []
    for row in rows:
        card = cards.get(row.card_id) or Card(id=row.card_id, name=f"Card #{row.card_id}")
        if row.custom_rarity and card.custom_rarity != row.custom_rarity:
            card = replace(card, custom_rarity=row.custom_rarity)
        pool.append(PoolEntry(card=card, index=row.index))
    return pool


async def _load(store: DraftStore, session_id: str) -> DraftSession:
    session = await store.get_session(session_id)
    if session is None:
        raise KeyError(f"Unknown draft {session_id}")
    return session
