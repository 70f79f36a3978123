from __future__ import annotations

import asyncio
import copy
import logging
from typing import Dict, List, Optional, Set

from draftcore import asynchronous
from draftcore.asynchronous import AsyncState
from draftcore.engine import DraftState, apply_action, apply_event
from draftcore.errors import ActionInFlightError, BroadcastError, DraftFinishedError, IllegalActionError
from draftcore.grid import GridState
from draftcore.models import ActionType, DraftSession, SessionStatus
from draftcore.rochester import RochesterState
from draftcore.winston import WinstonState

from .channel import Channel
from .protocol import DRAFT_FINISHED, DRAFT_STARTED, event_message, validate_event
from .storage import DraftStore

LOGGER = logging.getLogger("draft_client")

# Turn-based actions run on a copy, are published, and only then committed.
# Asynchronous picks commit once the store accepts them. Every event id is
# applied at most once.


def slot_assignments(state: DraftState) -> Dict[int, Optional[int]]:
    """Pile, pack or grid cell of every entry still on the table."""
    slots: Dict[int, Optional[int]] = {}
    match state:
        case WinstonState():
            for pile_no, pile in enumerate(state.piles):
                for entry in pile:
                    slots[entry.index] = pile_no
        case RochesterState():
            if state.rounds and not state.finished:
                for pack_no, pack in enumerate(state.rounds[state.current_round]):
                    for entry in pack:
                        slots[entry.index] = pack_no
        case GridState():
            for row_idx, row in enumerate(state.grid):
                for col_idx, cell in enumerate(row):
                    if cell is not None:
                        slots[cell.index] = row_idx * state.size + col_idx
    return slots


class DraftClient:
    def __init__(
        self,
        session: DraftSession,
        player_id: str,
        state: DraftState,
        channel: Channel,
        store: Optional[DraftStore] = None,
        *,
        publish_retries: int = 3,
        retry_delay: float = 0.05,
    ) -> None:
        self.session = session
        self.player_id = player_id
        self.player_index = session.participants.index(player_id)
        self.state = state
        self.channel = channel
        self.store = store
        self.publish_retries = publish_retries
        self.retry_delay = retry_delay
        self.needs_reconcile = False
        self.applied_ids: Set[str] = set()
        self._counter = 0
        self._in_flight = False
        self._state_lock = asyncio.Lock()

    @property
    def finished(self) -> bool:
        return self.state.finished or self.session.is_finished

    # Local actions -----------------------------------------------------

    async def act(self, action: ActionType, target: Optional[int] = None) -> List[Dict[str, object]]:
        if self.finished:
            raise DraftFinishedError("Draft already finished")
        if self._in_flight:
            raise ActionInFlightError("Previous action still being published")
        self._in_flight = True
        try:
            async with self._state_lock:
                return await self._act_locked(action, target)
        finally:
            self._in_flight = False

    async def _act_locked(self, action: ActionType, target: Optional[int]) -> List[Dict[str, object]]:
        candidate = copy.deepcopy(self.state)
        events = apply_action(candidate, self.player_index, action, target)
        if isinstance(candidate, AsyncState):
            return await self._act_async(candidate, events, target)

        event_ids: List[str] = []
        for event in events:
            event_ids.append(await self._publish(event, partial=bool(event_ids)))

        previous = self.state
        self.state = candidate
        self.applied_ids.update(event_ids)
        if candidate.finished and self.session.finish():
            LOGGER.info("Draft %s finished", self.session.id)
        LOGGER.debug("Player %s %s %s -> %s", self.player_index, action.value, target, [e["ev"] for e in events])
        if events:
            await self._persist(previous, candidate)
        return events

    async def _act_async(
        self,
        candidate: AsyncState,
        events: List[Dict[str, object]],
        index: Optional[int],
    ) -> List[Dict[str, object]]:
        if not await self._claim_async_pick(index):
            return []
        if not candidate.finished and await self._everyone_done(candidate):
            candidate.mark_finished()
            events.append({"ev": DRAFT_FINISHED})

        # The store already holds the pick, so it is committed before any broadcast.
        self.state = candidate
        LOGGER.debug("Player %s picked %s -> %s", self.player_index, index, [e["ev"] for e in events])
        if not candidate.finished:
            return events
        await self._persist(candidate, candidate)
        try:
            await self.announce_finished()
        except BroadcastError:
            self.needs_reconcile = True
            raise
        return events

    async def announce_finished(self) -> None:
        """Broadcast draft-finished; callable again after a failed broadcast."""
        if not self.state.finished:
            raise IllegalActionError("Draft is not finished")
        self.applied_ids.add(await self._publish({"ev": DRAFT_FINISHED}, partial=False))
        self.needs_reconcile = False
        if self.session.finish():
            LOGGER.info("Draft %s finished", self.session.id)

    async def _claim_async_pick(self, index: Optional[int]) -> bool:
        if self.store is None or index is None:
            return True
        if await self.store.mark_picked(self.session.id, index, self.player_id):
            return True
        mine = await self.store.list_pool(self.session.id, owner=self.player_id)
        if any(row.index == index and row.picked for row in mine):
            # Stored by an earlier attempt or another device of this player.
            LOGGER.info("Card %s is already stored as picked by %s; adopting it", index, self.player_id)
            return True
        LOGGER.warning("Card %s was already picked; ignoring duplicate pick", index)
        return False

    async def _everyone_done(self, candidate: AsyncState) -> bool:
        if self.store is None:
            return False
        stored = await self.store.pick_counts(self.session.id)
        counts = {
            seat: stored.get(player_id, 0) for seat, player_id in enumerate(self.session.participants)
        }
        done = asynchronous.completed_players(candidate, counts)
        return len(done) == candidate.number_of_players

    async def _publish(self, event: Dict[str, object], partial: bool) -> str:
        self._counter += 1
        event_id = f"{self.player_id}:{self._counter}"
        message = event_message(self.session.id, self.player_id, event_id, event)
        for attempt in range(self.publish_retries + 1):
            try:
                await self.channel.publish(message)
                return event_id
            except OSError as exc:
                LOGGER.warning("Publish of %s failed (attempt %s): %s", event["ev"], attempt + 1, exc)
                if attempt < self.publish_retries:
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))
        if partial:
            # Earlier events of this action already went out; their echoes will be replayed.
            self.needs_reconcile = True
        LOGGER.error("Giving up on %s after %s attempts", event["ev"], self.publish_retries + 1)
        raise BroadcastError(f"Could not broadcast {event['ev']}")

    async def _persist(self, previous: DraftState, current: DraftState) -> None:
        if self.store is None:
            return
        try:
            for player, entries in current.drafted.items():
                fresh = [entry.index for entry in entries if entry.index not in previous.owners]
                if fresh and not isinstance(current, AsyncState):
                    owner = self.session.participants[player]
                    await self.store.assign_owner(self.session.id, fresh, owner)
            slots = slot_assignments(current)
            if slots:
                await self.store.set_slots(self.session.id, slots)
            await self.store.update_session(
                self.session.id,
                current_player=getattr(current, "current_player", None),
                status=SessionStatus.FINISHED if current.finished else None,
            )
        except Exception:
            LOGGER.exception("Failed to persist draft %s; local state kept", self.session.id)
            self.needs_reconcile = True

    # Remote events ---------------------------------------------------

    async def handle_message(self, message: Dict[str, object]) -> bool:
        if message.get("session_id") != self.session.id:
            return False
        event_id = message.get("event_id")
        if not isinstance(event_id, str):
            LOGGER.warning("Dropping message without event id")
            return False
        async with self._state_lock:
            if event_id in self.applied_ids:
                return False
            event = message.get("event")
            problem = validate_event(event)
            if problem:
                LOGGER.warning("Dropping malformed event %s: %s", event_id, problem)
                return False
            self.applied_ids.add(event_id)
            name = event["ev"]  # type: ignore[index]
            if name == DRAFT_STARTED:
                if self.session.status == SessionStatus.WAITING:
                    self.session.status = SessionStatus.ACTIVE
                return True
            try:
                changed = apply_event(self.state, event)  # type: ignore[arg-type]
            except (ValueError, LookupError, TypeError) as exc:
                LOGGER.warning("Event %s rejected: %s", event_id, exc)
                return False
            if self.state.finished and self.session.finish():
                LOGGER.info("Draft %s finished", self.session.id)
            return changed

    async def run(self) -> None:
        """Apply channel messages until the draft finishes."""
        async for message in self.channel.messages():
            await self.handle_message(message)
            if self.finished:
                break
