import asyncio
import copy
import logging

import pytest

from draftcore.engine import initialize_state
from draftcore.errors import ActionInFlightError, BroadcastError, DraftFinishedError, IllegalActionError
from draftcore.models import ActionType, DraftConfig, DraftMethod, DraftSession, SessionStatus
from draftsync.adapter import DraftClient, slot_assignments
from draftsync.channel import Channel, LocalHub
from draftsync.protocol import event_message
from draftsync.storage import MemoryDraftStore

from .helpers import make_pool


class FlakyChannel(Channel):
    """Forwards to a real channel but fails from the ``fail_from``-th publish on."""

    def __init__(self, inner, fail_from: int = 1) -> None:
        self.inner = inner
        self.fail_from = fail_from
        self.calls = 0

    async def publish(self, message):
        self.calls += 1
        if self.calls >= self.fail_from:
            raise ConnectionError("relay unreachable")
        await self.inner.publish(message)

    def messages(self):
        return self.inner.messages()


class GatedChannel(Channel):
    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.sent = []

    async def publish(self, message):
        await self.gate.wait()
        self.sent.append(message)

    async def messages(self):
        if False:
            yield {}


def winston_config(pool_size=10, piles=3):
    return DraftConfig(method=DraftMethod.WINSTON, number_of_players=2, pool_size=pool_size, number_of_piles=piles)


def make_session(config, session_id="s1"):
    return DraftSession(id=session_id, config=config, participants=["alice", "bob"], status=SessionStatus.ACTIVE)


def make_clients(config, hub, store=None, pool=None):
    pool = pool if pool is not None else make_pool(config.pool_size)
    session = make_session(config)
    clients = []
    for player_id in session.participants:
        clients.append(
            DraftClient(
                copy.deepcopy(session),
                player_id,
                initialize_state(config, pool),
                hub.channel(session.id),
                store,
                retry_delay=0,
            )
        )
    return clients


def hub_history_len(client):
    return len(client.channel.hub.history[client.session.id])


async def drain(client):
    handled = []
    while not client.channel.queue.empty():
        handled.append(await client.handle_message(client.channel.queue.get_nowait()))
    return handled


def test_accept_is_published_and_replayed_by_peer():
    async def scenario():
        hub = LocalHub()
        alice, bob = make_clients(winston_config(), hub)

        events = await alice.act(ActionType.ACCEPT)

        assert events[0]["ev"] == "new-player"
        assert await drain(bob) == [True]
        assert await drain(alice) == [False]
        return alice, bob

    alice, bob = asyncio.run(scenario())
    assert bob.state.current_player == 1
    assert bob.state.owners == alice.state.owners == {0: 0}
    assert hub_history_len(alice) == 1


def test_failed_publish_leaves_state_untouched(caplog):
    async def scenario():
        hub = LocalHub()
        alice, _ = make_clients(winston_config(), hub)
        before = copy.deepcopy(alice.state)
        alice.channel = FlakyChannel(alice.channel, fail_from=1)
        alice.publish_retries = 2
        with pytest.raises(BroadcastError):
            await alice.act(ActionType.ACCEPT)
        return alice, before

    alice, before = asyncio.run(scenario())
    assert alice.channel.calls == 3
    assert alice.state.owners == before.owners == {}
    assert alice.state.current_player == 0
    assert not alice.needs_reconcile
    assert "Giving up on new-player" in caplog.text


def test_partial_publish_flags_reconcile_and_echo_catches_up():
    config = DraftConfig(method=DraftMethod.ROCHESTER, number_of_players=2, pool_size=8, pack_size=2)

    async def scenario():
        hub = LocalHub()
        alice, bob = make_clients(config, hub)
        await bob.act(ActionType.PICK, 2)
        await drain(alice)
        alice.channel = FlakyChannel(alice.channel, fail_from=2)
        alice.publish_retries = 0
        with pytest.raises(BroadcastError):
            await alice.act(ActionType.PICK, 0)
        assert alice.needs_reconcile
        assert 0 not in alice.state.owners
        alice.channel = alice.channel.inner
        await drain(alice)
        return alice

    alice = asyncio.run(scenario())
    assert alice.state.owners == {0: 0, 2: 1}
    assert alice.state.pack_assignment == [1, 0]


def test_finished_session_rejects_actions():
    async def scenario():
        alice, _ = make_clients(winston_config(), LocalHub())
        alice.session.finish()
        await alice.act(ActionType.ACCEPT)

    with pytest.raises(DraftFinishedError):
        asyncio.run(scenario())


def test_second_action_while_publishing_is_rejected():
    async def scenario():
        config = winston_config()
        session = make_session(config)
        channel = GatedChannel()
        alice = DraftClient(session, "alice", initialize_state(config, make_pool(10)), channel)
        first = asyncio.create_task(alice.act(ActionType.ACCEPT))
        await asyncio.sleep(0)
        with pytest.raises(ActionInFlightError):
            await alice.act(ActionType.DECLINE)
        channel.gate.set()
        await first
        return alice, channel

    alice, channel = asyncio.run(scenario())
    assert len(channel.sent) == 1
    assert alice.state.current_player == 1


def test_committed_turn_is_persisted():
    config = winston_config()
    pool = make_pool(10)

    async def scenario():
        store = MemoryDraftStore()
        await store.create_session(make_session(config))
        await store.insert_pool("s1", pool)
        alice, _ = make_clients(config, LocalHub(), store, pool)
        await alice.act(ActionType.ACCEPT)
        return store, alice

    store, alice = asyncio.run(scenario())
    rows = {row.index: row for row in store.pools["s1"].values()}
    assert rows[0].owner == "alice"
    assert rows[0].slot is None
    assert rows[3].slot == 0
    assert rows[9].slot is None
    assert store.sessions["s1"].current_player == 1
    assert slot_assignments(alice.state) == {3: 0, 1: 1, 2: 2}


def test_persistence_failure_keeps_local_state_and_flags_reconcile(caplog):
    config = winston_config()

    async def scenario():
        store = MemoryDraftStore()
        await store.create_session(make_session(config))
        alice, _ = make_clients(config, LocalHub(), store)

        async def broken(*args, **kwargs):
            raise RuntimeError("database offline")

        store.assign_owner = broken
        await alice.act(ActionType.ACCEPT)
        return alice

    with caplog.at_level(logging.ERROR, logger="draft_client"):
        alice = asyncio.run(scenario())
    assert alice.state.owners == {0: 0}
    assert alice.needs_reconcile
    assert "Failed to persist" in caplog.text


def test_async_picks_use_conditional_store_update():
    config = DraftConfig(
        method=DraftMethod.ASYNCHRONOUS,
        number_of_players=2,
        pool_size=4,
        pack_size=2,
        drafted_deck_size=1,
    )
    pool = make_pool(4)

    async def scenario():
        store = MemoryDraftStore()
        hub = LocalHub()
        await store.create_session(make_session(config))
        await store.insert_pool("s1", pool)
        alice, bob = make_clients(config, hub, store, pool)
        alice_phone = DraftClient(
            copy.deepcopy(alice.session), "alice", initialize_state(config, pool), hub.channel("s1"), store
        )

        # A row someone else already holds is never taken over.
        assert await store.mark_picked("s1", 1, "mallory")
        assert await alice.act(ActionType.PICK, 1) == []
        assert alice.state.owners == {}

        assert await alice.act(ActionType.PICK, 0) == []
        assert await alice_phone.act(ActionType.PICK, 0) == []
        # The stored pick is mirrored rather than counted twice.
        assert alice_phone.state.owners == {0: 0}

        events = await bob.act(ActionType.PICK, 3)
        assert events == [{"ev": "draft-finished"}]
        await drain(alice)
        return store, alice, bob

    store, alice, bob = asyncio.run(scenario())
    assert asyncio.run(store.pick_counts("s1")) == {"alice": 1, "bob": 1, "mallory": 1}
    assert bob.session.status == SessionStatus.FINISHED
    assert alice.finished


def test_failed_finish_broadcast_keeps_stored_pick_and_can_be_resent():
    config = DraftConfig(
        method=DraftMethod.ASYNCHRONOUS,
        number_of_players=1,
        pool_size=2,
        pack_size=2,
        drafted_deck_size=1,
    )
    pool = make_pool(2)

    async def scenario():
        store = MemoryDraftStore()
        hub = LocalHub()
        session = DraftSession(id="s1", config=config, participants=["alice"], status=SessionStatus.ACTIVE)
        await store.create_session(copy.deepcopy(session))
        await store.insert_pool("s1", pool)
        channel = FlakyChannel(hub.channel("s1"))
        alice = DraftClient(session, "alice", initialize_state(config, pool), channel, store, retry_delay=0)

        with pytest.raises(BroadcastError):
            await alice.act(ActionType.PICK, 0)
        assert alice.state.owners == {0: 0}
        assert alice.needs_reconcile
        assert await store.pick_counts("s1") == {"alice": 1}
        assert hub.history.get("s1", []) == []

        channel.fail_from = 100
        await alice.announce_finished()
        return alice, hub

    alice, hub = asyncio.run(scenario())
    assert not alice.needs_reconcile
    assert alice.session.status == SessionStatus.FINISHED
    assert [message["event"]["ev"] for message in hub.history["s1"]] == ["draft-finished"]


def test_announce_refuses_unfinished_draft():
    async def scenario():
        alice, _ = make_clients(winston_config(), LocalHub())
        with pytest.raises(IllegalActionError):
            await alice.announce_finished()

    asyncio.run(scenario())


def test_bad_duplicate_and_foreign_messages_are_ignored(caplog):
    async def scenario():
        hub = LocalHub()
        alice, bob = make_clients(winston_config(), hub)
        results = [
            await bob.handle_message(event_message("other", "alice", "alice:1", {"ev": "draft-finished"})),
            await bob.handle_message({"session_id": "s1", "event": {"ev": "draft-finished"}}),
            await bob.handle_message(event_message("s1", "alice", "alice:9", {"ev": "new-player", "turn": "x"})),
        ]
        start = event_message("s1", "alice", "alice:start", {"ev": "draft-started"})
        results.append(await bob.handle_message(start))
        results.append(await bob.handle_message(start))
        return bob, results

    bob, results = asyncio.run(scenario())
    assert results == [False, False, False, True, False]
    assert "malformed event" in caplog.text
    assert not bob.finished


def test_run_applies_messages_until_finished():
    async def scenario():
        hub = LocalHub()
        alice, bob = make_clients(winston_config(pool_size=2, piles=2), hub)
        await alice.act(ActionType.ACCEPT)
        await drain(bob)
        await bob.act(ActionType.ACCEPT)
        await asyncio.wait_for(alice.run(), timeout=1)
        return alice, bob

    alice, bob = asyncio.run(scenario())
    assert alice.finished and bob.finished
    assert alice.session.status == SessionStatus.FINISHED
    assert alice.state.owners == bob.state.owners == {0: 0, 1: 1}


def test_out_of_range_remote_events_do_not_break_the_client(caplog):
    config = DraftConfig(method=DraftMethod.ROCHESTER, number_of_players=2, pool_size=8, pack_size=2)

    async def scenario():
        hub = LocalHub()
        alice, bob = make_clients(config, hub)
        stranger = {"ev": "player-selected", "turn": 0, "player_index": 5, "pack_index": 0, "card_index": 0}
        negative = {"ev": "player-selected", "turn": 0, "player_index": -1, "pack_index": 0, "card_index": 0}
        with caplog.at_level(logging.WARNING, logger="draft_client"):
            results = [
                await bob.handle_message(event_message("s1", "alice", "alice:1", stranger)),
                await bob.handle_message(event_message("s1", "alice", "alice:2", negative)),
            ]
        # The client still applies ordinary picks afterwards.
        await alice.act(ActionType.PICK, 0)
        await drain(bob)
        return results, bob

    results, bob = asyncio.run(scenario())
    assert results == [False, False]
    assert "player_index must not be negative" in caplog.text
    assert bob.state.owners == {0: 0}
