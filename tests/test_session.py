"""Tests for the persistence session layer."""

import pickle
import zlib

import pytest
from sqlmodel import Session, select

from escape.engine.errors import StateCorruption
from escape.engine.world import World
from escape.models import Player, SavedGame
from escape.session import GENERIC_FAILURE, EscapeSession, get_or_create_player


def test_get_or_create_player(db_session: Session):
    player = get_or_create_player(db_session, "abc")
    again = get_or_create_player(db_session, "abc")
    assert player.id == again.id
    assert len(db_session.exec(select(Player)).all()) == 1


def test_new_session(db_session: Session, test_player: Player, world: World):
    game = EscapeSession.load_or_create(db_session, test_player, world)
    assert game.saved_game is None
    assert game.state.in_lobby
    assert game.room_name is None


def test_save_and_load(db_session: Session, test_player: Player, world: World):
    """State saved at the end of a turn is what the next turn loads."""
    game = EscapeSession.load_or_create(db_session, test_player, world)
    game.process_command("play office")
    game.process_command("north")
    game.save()

    saved = db_session.exec(select(SavedGame)).one()
    assert saved.room_id == "1"
    assert saved.total_turns == 2

    game = EscapeSession.load_or_create(db_session, test_player, world, strict=True)
    assert game.room_name == "Office"
    assert "desk" in game.state.room_state.found_items


def test_corrupt_state_strict(db_session: Session, test_player: Player, world: World):
    game = EscapeSession.load_or_create(db_session, test_player, world)
    game.process_command("play office")
    game.state.room_state.collected_items.append("key")
    game.save()

    with pytest.raises(StateCorruption):
        EscapeSession.load_or_create(db_session, test_player, world, strict=True)


def test_corrupt_state_repaired(db_session: Session, test_player: Player, world: World):
    game = EscapeSession.load_or_create(db_session, test_player, world)
    game.process_command("play office")
    game.state.room_state.collected_items.append("key")
    game.save()

    game = EscapeSession.load_or_create(db_session, test_player, world, strict=False)
    assert game.inventory == []


def test_engine_error_is_answered(db_session: Session, test_player: Player, world: World):
    """A broken reference ends the turn with a generic line."""
    game = EscapeSession.load_or_create(db_session, test_player, world)
    game.process_command("play office")
    game.state.conversation.room_id = "99"
    response = game.process_command("north")
    assert response.text == GENERIC_FAILURE
    assert response.failed


def test_reset(db_session: Session, test_player: Player, world: World):
    game = EscapeSession.load_or_create(db_session, test_player, world)
    game.process_command("play office")
    game.save()
    game.reset()
    assert game.state.in_lobby
    assert db_session.exec(select(SavedGame)).first() is None


def test_blob_is_compressed_pickle(db_session: Session, test_player: Player, world: World):
    game = EscapeSession.load_or_create(db_session, test_player, world)
    game.save()
    saved = db_session.exec(select(SavedGame)).one()
    state = pickle.loads(zlib.decompress(saved.state_blob))
    assert state == game.state


def test_reward_through_session(db_session: Session, test_player: Player, world: World):
    """Looking at the desk earns a hint that survives a save."""
    game = EscapeSession.load_or_create(db_session, test_player, world)
    game.process_command("play office")
    game.process_command("north")
    response = game.process_command("look at the desk")
    assert response.reward is not None
    assert not response.failed
    game.save()

    game = EscapeSession.load_or_create(db_session, test_player, world, strict=True)
    assert game.state.room_state.claimed_rewards == [0]
    assert "The photo has clues to solve a puzzle." in game.process_command("hint").text


def test_failed_turn_is_not_saved(db_session: Session, test_player: Player, world: World):
    game = EscapeSession.load_or_create(db_session, test_player, world)
    game.process_command("play office")
    game.save()

    game.state.conversation.room_id = "99"
    before = pickle.dumps(game.state)
    response = game.process_command("look at the door")
    assert response.text == GENERIC_FAILURE
    assert game.state == pickle.loads(before)
    assert game.state.player.total_turns == 1
    assert game.state.conversation.raws[0] == "play office"
