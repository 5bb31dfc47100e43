"""Tests for the game state store."""

import pickle
import zlib

import pytest

from escape.engine.errors import StateCorruption
from escape.engine.state import (
    ActionRecord,
    GameState,
    RoomState,
    add_items,
    add_record,
    check_room_state,
    collect_items,
    drop_item,
    get_record,
    has_record,
    is_found,
    new_game_state,
    pick_up_dropped,
    remove_record,
    reset_room,
    reveal_items,
)
from escape.engine.world import Predicate, World


def test_new_game_state(world: World):
    """A new game starts in the lobby with an empty record per room."""
    state = new_game_state(world)
    assert state.in_lobby
    assert state.room_state is None
    assert set(state.player.rooms) == {"1", "2", "3"}
    assert state.player.rooms["1"] == RoomState()


def test_room_state_follows_conversation(world: World):
    state = new_game_state(world)
    state.conversation.room_id = "2"
    assert state.room_state is state.player.rooms["2"]


def test_add_items_most_recent_first():
    """Re-adding an item moves it to the front without duplicating it."""
    items = []
    assert add_items(items, ["desk"])
    assert add_items(items, ["drawer", "photo"])
    assert items == ["photo", "drawer", "desk"]
    assert not add_items(items, ["desk"])
    assert items == ["desk", "photo", "drawer"]


def test_reveal_remembers_direction():
    """Items remember the direction they were first found in."""
    room_state = RoomState()
    reveal_items(room_state, ["safe"], "east")
    reveal_items(room_state, ["safe"], "west")
    assert room_state.found_item_directions == {"safe": "east"}


def test_collect_implies_found():
    room_state = RoomState()
    collect_items(room_state, ["toothpick"])
    assert "toothpick" in room_state.found_items
    assert room_state.collected_items == ["toothpick"]


def test_default_items_always_found():
    room_state = RoomState()
    assert is_found(room_state, "wall", ("wall", "floor"))
    assert not is_found(room_state, "desk", ("wall", "floor"))


def test_drop_and_pick_up():
    """Dropped items leave the inventory and can be picked up again."""
    room_state = RoomState()
    collect_items(room_state, ["key"])
    assert drop_item(room_state, "key")
    assert room_state.collected_items == []
    assert room_state.dropped_items == ["key"]
    assert not drop_item(room_state, "key")

    assert pick_up_dropped(room_state, "key")
    assert room_state.collected_items == ["key"]
    assert room_state.dropped_items == []


def test_collect_removes_from_dropped():
    room_state = RoomState()
    collect_items(room_state, ["key"])
    drop_item(room_state, "key")
    collect_items(room_state, ["key"])
    assert room_state.dropped_items == []


def test_add_record_once_per_verb():
    """A target keeps at most one record per verb, the first one."""
    room_state = RoomState()
    assert add_record(room_state, "box", ActionRecord("use", "toothpick"))
    assert not add_record(room_state, "box", ActionRecord("use", "screwdriver"))
    assert room_state.records["box"] == [ActionRecord("use", "toothpick")]


def test_get_record():
    room_state = RoomState()
    add_record(room_state, "switch", ActionRecord("use", "screwdriver"))
    add_record(room_state, "switch", ActionRecord("on"))
    assert get_record(room_state, "switch", "on") == ActionRecord("on")
    assert get_record(room_state, "switch") == ActionRecord("use", "screwdriver")
    assert get_record(room_state, "switch", "off") is None
    assert get_record(room_state, "bench") is None


def test_has_record_secondary():
    """A predicate without a secondary item accepts any recorded tool."""
    room_state = RoomState()
    add_record(room_state, "box", ActionRecord("use", "toothpick"))
    assert has_record(room_state, Predicate("box", frozenset({"use"})))
    assert has_record(room_state, Predicate("box", frozenset({"use"}), "toothpick"))
    assert not has_record(room_state, Predicate("box", frozenset({"use"}), "key"))
    assert not has_record(room_state, Predicate("box", frozenset({"open"})))


def test_remove_record():
    room_state = RoomState()
    add_record(room_state, "bedlamp", ActionRecord("on"))
    add_record(room_state, "bedlamp", ActionRecord("look"))
    assert remove_record(room_state, "bedlamp", "on")
    assert room_state.records["bedlamp"] == [ActionRecord("look")]
    assert not remove_record(room_state, "bedlamp", "on")
    assert remove_record(room_state, "bedlamp")
    assert "bedlamp" not in room_state.records


def test_reset_room(world: World):
    state = new_game_state(world)
    collect_items(state.player.rooms["1"], ["key"])
    state.player.rooms["1"].win = True
    reset_room(state.player, "1")
    assert state.player.rooms["1"] == RoomState()


def test_is_finished():
    room_state = RoomState()
    assert not room_state.is_finished
    room_state.lose = True
    assert room_state.is_finished


def test_check_room_state_clean():
    room_state = RoomState()
    collect_items(room_state, ["key"])
    assert check_room_state(room_state, "1") == []


def test_check_room_state_strict():
    """An item in the inventory that was never found is corruption."""
    room_state = RoomState(collected_items=["key"])
    with pytest.raises(StateCorruption, match="never found"):
        check_room_state(room_state, "1", strict=True)


def test_check_room_state_repairs():
    """Outside strict mode the offending entries are dropped."""
    room_state = RoomState(
        found_items=["box"],
        collected_items=["key", "box"],
        dropped_items=["box"],
        win=True,
        lose=True,
    )
    problems = check_room_state(room_state, "1", strict=False)
    assert problems
    assert room_state.collected_items == ["box"]
    assert room_state.dropped_items == []
    assert not (room_state.win and room_state.lose)


def test_state_survives_pickle(world: World):
    """GameState round-trips through the storage encoding."""
    state = new_game_state(world)
    state.conversation.room_id = "1"
    add_record(state.room_state, "drawer", ActionRecord("open"))
    blob = zlib.compress(pickle.dumps(state))
    restored: GameState = pickle.loads(zlib.decompress(blob))
    assert restored == state
