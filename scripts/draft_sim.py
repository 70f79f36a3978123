#!/usr/bin/env python3
"""Simulate a full draft with randomly behaved bots.

This script spins up the draft relay in-process and connects one bot per
participant. Every bot keeps its own projection of the draft and only learns
about the others through relayed events, so a finished run with matching
projections exercises the whole synchronization path.

Example:
    python scripts/draft_sim.py --method rochester --players 4 --pool-size 120
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import random
from typing import Dict, List

from draftcore.autopick import choose_action
from draftcore.cards import RARITIES, Card
from draftcore.engine import acting_players, initialize_state, snapshot
from draftcore.errors import DraftError
from draftcore.models import DraftConfig, DraftMethod
from draftsync.adapter import DraftClient
from draftsync.channel import WebSocketChannel
from draftsync.server import RelayServer
from draftsync.session import create_draft, join_draft, load_pool, start_draft
from draftsync.storage import MemoryCardCatalog, MemoryDraftStore

LOGGER = logging.getLogger("draft_sim")

CARD_TYPES = ("Effect Monster", "Spell Card", "Trap Card", "Fusion Monster", "XYZ Monster", "Link Monster")


def build_cube(size: int, rng: random.Random) -> List[Card]:
    return [
        Card(
            id=1000 + idx,
            name=f"Sim Card {idx}",
            type=rng.choice(CARD_TYPES),
            rarity=rng.choice(RARITIES),
            quantity=rng.randint(1, 3),
        )
        for idx in range(size)
    ]


async def run_bot(client: DraftClient, rng: random.Random, pace: float) -> None:
    """Act whenever the bot's seat may act until the draft finishes."""
    consumer = asyncio.create_task(client.run())
    try:
        while not client.finished:
            if client.player_index in acting_players(client.state):
                action, target = choose_action(client.state, client.player_index, rng)
                try:
                    await client.act(action, target)
                except DraftError as exc:
                    LOGGER.warning("%s action rejected: %s (%s)", client.player_id, exc.msg, exc.code)
            await asyncio.sleep(pace)
    finally:
        consumer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await consumer
        await client.channel.close()


async def run_simulation(args: argparse.Namespace) -> None:
    rng = random.Random(args.seed)
    relay = RelayServer()
    server_task = asyncio.create_task(relay.start(args.host, args.port))
    await asyncio.sleep(0.5)  # give the socket time to bind

    cube = build_cube(args.cube_size, rng)
    store = MemoryDraftStore()
    catalog = MemoryCardCatalog(cube)
    config = DraftConfig(
        method=DraftMethod(args.method),
        number_of_players=args.players,
        pool_size=args.pool_size,
        pack_size=args.pack_size,
        number_of_piles=args.piles,
        drafted_deck_size=args.deck_size,
        picks_per_pack=args.picks_per_pack,
    )
    players = [f"bot{idx}" for idx in range(args.players)]
    session = await create_draft(store, config, cube, players[0], rng)
    for player_id in players[1:]:
        await join_draft(store, session.id, player_id)

    url = f"ws://{args.host}:{args.port}"
    channels: Dict[str, WebSocketChannel] = {}
    for player_id in players:
        channels[player_id] = WebSocketChannel(url, session.id, player_id)
        await channels[player_id].connect()

    session = await start_draft(store, channels[players[0]], session.id, players[0])
    pool = await load_pool(store, catalog, session.id)
    clients = [
        DraftClient(await store.get_session(session.id), player_id, initialize_state(config, pool), channels[player_id], store)
        for player_id in players
    ]

    bots = [
        asyncio.create_task(run_bot(client, random.Random(args.seed + idx), args.pace))
        for idx, client in enumerate(clients)
    ]
    try:
        await asyncio.wait_for(asyncio.gather(*bots), timeout=args.timeout)
    except asyncio.TimeoutError:
        LOGGER.warning("Simulation timed out; stopping bots")
    finally:
        for task in bots:
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await asyncio.gather(*bots, return_exceptions=True)
        server_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await server_task

    for client in clients:
        LOGGER.info(
            "%s drafted %s cards (reconcile needed: %s)",
            client.player_id,
            len(client.state.drafted[client.player_index]),
            client.needs_reconcile,
        )
    LOGGER.debug("Final state: %s", snapshot(clients[0].state))


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a local draft simulation with random bots")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=9002)
    parser.add_argument("--method", choices=[method.value for method in DraftMethod], default="winston")
    parser.add_argument("--players", type=int, default=2)
    parser.add_argument("--cube-size", type=int, default=120)
    parser.add_argument("--pool-size", type=int, default=90)
    parser.add_argument("--pack-size", type=int, default=15)
    parser.add_argument("--piles", type=int, default=3, help="Winston piles or grid side length")
    parser.add_argument("--deck-size", type=int, default=None)
    parser.add_argument("--picks-per-pack", type=int, default=1)
    parser.add_argument("--pace", type=float, default=0.01, help="seconds between bot polls")
    parser.add_argument("--timeout", type=float, default=60.0, help="max seconds to run before stopping")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    try:
        asyncio.run(run_simulation(args))
    except KeyboardInterrupt:
        LOGGER.info("Simulation interrupted; shutting down")


if __name__ == "__main__":
    main()
