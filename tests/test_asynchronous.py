import pytest

from draftcore import asynchronous
from draftcore.engine import acting_players, apply_action
from draftcore.errors import DraftFinishedError, IllegalActionError
from draftcore.models import ActionType, DraftConfig, DraftMethod

from .helpers import auto_complete_draft, create_state


def build(players=2, pack_size=5, deck_size=4, picks_per_pack=2, pool_size=40):
    return create_state(
        DraftMethod.ASYNCHRONOUS,
        players=players,
        pool_size=pool_size,
        pack_size=pack_size,
        drafted_deck_size=deck_size,
        picks_per_pack=picks_per_pack,
    )


def test_total_packs_and_pack_ranges_follow_player_offset():
    config, state = build()
    assert config.total_packs == 2
    assert [entry.index for entry in asynchronous.load_pack(state, 0)] == [0, 1, 2, 3, 4]
    assert [entry.index for entry in asynchronous.load_pack(state, 1)] == [10, 11, 12, 13, 14]


def test_pack_advances_after_picks_per_pack():
    _, state = build()
    asynchronous.pick(state, 1, 12)
    assert asynchronous.current_pack_number(state, 1) == 1
    assert asynchronous.picks_remaining_in_pack(state, 1) == 1
    assert [entry.index for entry in asynchronous.load_pack(state, 1)] == [10, 11, 13, 14]

    asynchronous.pick(state, 1, 10)

    assert asynchronous.current_pack_number(state, 1) == 2
    assert asynchronous.picks_remaining_in_pack(state, 1) == 2
    assert [entry.index for entry in asynchronous.load_pack(state, 1)] == [15, 16, 17, 18, 19]


def test_players_progress_independently():
    _, state = build()
    asynchronous.pick(state, 0, 0)
    asynchronous.pick(state, 0, 1)
    asynchronous.pick(state, 0, 5)
    assert asynchronous.current_pack_number(state, 0) == 2
    assert asynchronous.current_pack_number(state, 1) == 1
    assert set(acting_players(state)) == {0, 1}


def test_pick_outside_current_pack_is_rejected():
    _, state = build()
    with pytest.raises(IllegalActionError):
        asynchronous.pick(state, 0, 5)
    with pytest.raises(IllegalActionError):
        asynchronous.pick(state, 0, 10)


def test_duplicate_pick_is_a_no_op(caplog):
    _, state = build()
    asynchronous.pick(state, 0, 3)
    assert asynchronous.pick(state, 0, 3) == []
    assert len(state.drafted[0]) == 1
    assert "already picked" in caplog.text


def test_completion_per_player_and_session():
    _, state = build(deck_size=2, picks_per_pack=2)
    asynchronous.pick(state, 0, 0)
    assert asynchronous.pick(state, 0, 1) == []
    assert asynchronous.is_complete(state, 0)
    assert asynchronous.load_pack(state, 0) == []
    with pytest.raises(DraftFinishedError):
        asynchronous.pick(state, 0, 2)

    asynchronous.pick(state, 1, 5)
    events = asynchronous.pick(state, 1, 6)
    assert events == [{"ev": "draft-finished"}]
    assert state.finished


def test_stored_counts_count_towards_completion():
    _, state = build(deck_size=2)
    assert asynchronous.completed_players(state, {1: 2}) == [1]


def test_auto_draft_reaches_target_for_everyone():
    _, state = build(players=3, pack_size=4, deck_size=6, picks_per_pack=3, pool_size=24)
    auto_complete_draft(state, seed=2)
    assert all(len(state.drafted[player]) == 6 for player in range(3))
    for player, entries in state.drafted.items():
        region = range(player * 8, (player + 1) * 8)
        assert all(entry.index in region for entry in entries)


def test_config_rejects_pool_too_small_for_packs():
    config = DraftConfig(
        method=DraftMethod.ASYNCHRONOUS,
        number_of_players=2,
        pool_size=20,
        pack_size=5,
        drafted_deck_size=4,
        picks_per_pack=1,
    )
    with pytest.raises(ValueError, match="needs 40 cards"):
        config.validate()


def test_async_pick_needs_a_target():
    _, state = build()
    with pytest.raises(IllegalActionError):
        apply_action(state, 0, ActionType.PICK, None)
    with pytest.raises(IllegalActionError, match="not valid"):
        apply_action(state, 0, ActionType.ACCEPT, None)
