"""Tests for turn handling."""

import random
from dataclasses import replace

from escape.engine.commands import handle_command
from escape.engine.state import GameState, collect_items, get_record, reveal_items
from escape.engine.world import PendingContext, World
from escape.parser import Command


def test_enter_room(world: World, send, state: GameState):
    """Entering the Office faces the door."""
    response = send("play office")
    assert response.text.startswith("You teleport into the office.")
    assert state.conversation.room_id == "1"
    assert state.conversation.direction == "south"
    assert state.room_state.found_items == ["door"]
    assert state.room_state.found_directions == ["south"]


def test_enter_by_number(send, state: GameState):
    send("2")
    assert state.conversation.room_id == "2"


def test_enter_unknown_room(world: World, send, state: GameState):
    response = send("play attic")
    assert response.failed
    assert state.in_lobby


def test_room_slot(send, state: GameState):
    """Asking to play without a room asks which one."""
    response = send("play")
    assert response.questioned
    assert state.conversation.slot is not None
    send("garage")
    assert state.conversation.room_id == "3"
    assert state.conversation.slot is None


def test_look_direction(send, office: GameState):
    response = send("north")
    assert "You see a desk against the wall." in response.text
    assert response.revealed == ["desk"]
    assert office.room_state.found_item_directions["desk"] == "north"


def test_diagonal_direction(world: World, send, office: GameState):
    response = send("northeast")
    assert response.failed
    assert response.text.split(".")[0] + "." in world.prompts["not_support_direction"]


def test_orientation(send, office: GameState):
    """Turning walks the compass from the current direction."""
    send("turn left")
    assert office.conversation.direction == "east"
    assert "painting" in office.room_state.found_items
    send("turn around")
    assert office.conversation.direction == "west"


def test_look_at_unfound_item(send, office: GameState):
    """Items must be found before anything can be done with them."""
    response = send("look safe")
    assert response.failed
    assert response.text.startswith("You haven't found the safe.")
    assert "safe" not in office.room_state.looked_items


def test_default_items_are_found(send, office: GameState):
    response = send("look wall")
    assert not response.failed


def test_look_at_item(send, office: GameState):
    send("north")
    response = send("look desk")
    assert "You see an oak desk with a drawer." in response.text
    assert office.conversation.item == "desk"
    assert office.room_state.looked_items == ["desk"]
    assert {"drawer", "photo"} <= set(office.room_state.found_items)


def test_reward_on_first_look(send, office: GameState):
    send("north")
    response = send("look desk")
    assert response.reward is not None
    assert office.room_state.hints == ["The photo has clues to solve a puzzle."]
    assert send("look desk").reward is None
    assert office.room_state.claimed_rewards == [0]


def test_hint_pops_reward(send, office: GameState):
    send("north")
    send("look desk")
    response = send("hint")
    assert "The photo has clues to solve a puzzle." in response.text
    assert office.room_state.hints == []


def test_hint_without_rewards(send, office: GameState):
    response = send("hint")
    assert "north" in response.text


def test_open_drawer_collects(send, office: GameState):
    send("north")
    send("look desk")
    response = send("open drawer")
    assert "you find a toothpick inside" in response.text
    assert office.room_state.collected_items == ["toothpick"]


def test_open_twice(send, office: GameState):
    """Repeating an action reports the new situation and changes nothing."""
    send("north")
    send("look desk")
    send("open drawer")
    response = send("open drawer")
    assert "The drawer is open and there's nothing inside." in response.text
    assert office.room_state.collected_items == ["toothpick"]


def test_take_unfound(send, office: GameState):
    response = send("take key")
    assert response.failed
    assert office.room_state.collected_items == []


def test_take_static(send, office: GameState):
    send("north")
    response = send("take desk")
    assert response.failed
    assert response.text.startswith("You can't take the desk.")


def test_take_found_item(send, office: GameState):
    reveal_items(office.room_state, ["key"])
    response = send("take key")
    assert response.text.startswith("The key has been added to your inventory.")
    assert office.room_state.collected_items == ["key"]
    assert get_record(office.room_state, "key", "take") is not None
    assert send("take key").text.startswith("The key is already in your inventory.")


def test_drop_and_pick_up(send, office: GameState):
    collect_items(office.room_state, ["key"])
    response = send("drop key")
    assert response.text.startswith("You remove the key from your inventory")
    assert office.room_state.dropped_items == ["key"]
    assert "key" in send("down").text
    response = send("take key")
    assert response.text.startswith("You reach down and pick up the key")
    assert office.room_state.collected_items == ["key"]


def test_drop_not_carried(send, office: GameState):
    response = send("drop door")
    assert response.failed


def test_inventory(send, office: GameState):
    assert not send("inventory").failed
    collect_items(office.room_state, ["key", "toothpick"])
    response = send("inventory")
    assert "a toothpick and a key" in response.text


def test_use_needs_inventory(send, office: GameState):
    send("north")
    send("look desk")
    response = send("use toothpick on drawer")
    assert response.failed
    assert response.text.startswith("The toothpick isn't in your inventory.")


def test_use_swaps_reversed_pair(send, office: GameState):
    """'use drawer on toothpick' is read as using the toothpick."""
    send("north")
    send("look desk")
    send("open drawer")
    response = send("use drawer on toothpick")
    assert response.text.startswith("The toothpick might break if you do that.")


def test_use_held_item_asks_for_target(send, office: GameState):
    send("north")
    send("look desk")
    send("open drawer")
    response = send("use toothpick")
    assert response.questioned
    assert response.text == "What do you want to use it on?"
    response = send("drawer")
    assert response.text.startswith("The toothpick might break if you do that.")
    assert office.conversation.slot is None


def test_use_single(send, office: GameState):
    send("north")
    send("look desk")
    response = send("use drawer")
    assert "You try to break the drawer" in response.text
    assert "drawer" not in office.room_state.records


def test_unsupported_verbs(send, office: GameState):
    send("north")
    assert "toe" in send("kick desk").text
    assert send("read desk").text.startswith("Mmm, you can't read the desk.")
    assert send("touch desk").text.startswith("You try")


def test_slot_abandoned_after_three_misses(send, office: GameState):
    """The fourth unanswered question closes the conversation."""
    for _ in range(3):
        assert send("look").questioned
    response = send("look")
    assert response.closed
    assert office.conversation.closed
    assert office.conversation.slot is None


def test_slot_gibberish_counts_as_a_miss(send, office: GameState):
    send("look")
    send("xyzzy")
    send("xyzzy")
    assert send("xyzzy").closed


def test_slot_answer(send, office: GameState):
    send("look")
    response = send("door")
    assert "The door is locked." in response.text
    assert office.conversation.slot is None


def test_other_command_drops_slot(send, office: GameState):
    send("look")
    send("north")
    assert office.conversation.slot is None
    assert not send("xyzzy").questioned


def test_repeat_detection(world: World, send, office: GameState):
    assert send("xyzzy").text in world.prompts["fallback1"]
    assert send("xyzzy").text in world.prompts["fallback1_stuck"]


def test_bare_item_name_looks(send, office: GameState):
    response = send("door")
    assert "The door is locked." in response.text


def test_secret_found_once(send, office: GameState):
    send("north")
    response = send("climb desk")
    assert response.secret
    assert office.player.secrets_found == 1
    assert office.player.result("1").secret

    response = send("climb desk")
    assert not response.secret
    assert response.failed
    assert office.player.secrets_found == 1


def test_wrong_turn_leaves_no_record(send, office: GameState):
    send("east")
    send("move painting")
    response = send("look safe")
    assert response.questioned
    assert office.conversation.context == PendingContext.TURNS

    response = send("left")
    assert response.failed
    assert response.questioned
    assert office.conversation.solution_index == 0
    assert "safe" not in office.room_state.records
    assert office.conversation.context == PendingContext.TURNS


def test_leaving_puzzle_disarms_it(send, office: GameState):
    send("east")
    send("move painting")
    send("look safe")
    send("north")
    assert office.conversation.context is None
    send("left")
    assert office.conversation.direction == "west"


def test_code_puzzle(send, state: GameState):
    send("play bedroom")
    send("south")
    response = send("look suitcase")
    assert response.questioned
    assert state.conversation.context == PendingContext.CODE

    response = send("1111")
    assert response.failed
    assert state.conversation.context == PendingContext.CODE
    assert state.conversation.failures["code"] == 1

    response = send("12")
    assert response.failed

    response = send("1 9 6 4")
    assert "You open the suitcase and find a key." in response.text
    assert state.room_state.collected_items == ["key"]
    assert state.conversation.context is None
    assert get_record(state.room_state, "suitcase", "code") is not None


def test_color_puzzle(send, state: GameState):
    send("play bedroom")
    reveal_items(state.room_state, ["bookcase"])
    collect_items(state.room_state, ["book"])
    response = send("use book on bookcase")
    assert response.questioned
    assert state.conversation.context == PendingContext.COLOR

    response = send("red")
    assert response.failed
    response = send("indigo")
    assert response.secret
    assert state.room_state.collected_items == []
    assert state.conversation.context is None


def test_on_off(send, state: GameState):
    send("play bedroom")
    send("north")
    send("look nightstand")
    send("turn on bedlamp")
    assert get_record(state.room_state, "bedlamp", "on") is not None
    assert send("turn on the bedlamp").text.startswith("The bedlamp is already on.")
    send("turn off bedlamp")
    assert get_record(state.room_state, "bedlamp", "on") is None
    assert send("turn off bedlamp").text.startswith("The bedlamp is already off.")


def test_lose(send, state: GameState):
    send("play bedroom")
    reveal_items(state.room_state, ["stairs"])
    response = send("climb down the stairs")
    assert response.lose
    assert state.in_lobby
    assert state.player.result("2").lose

    send("play bedroom")
    assert state.room_state.found_items == []
    assert not state.room_state.lose


def test_restart(send, office: GameState):
    send("north")
    send("look desk")
    send("open drawer")
    send("restart")
    assert office.conversation.room_id == "1"
    assert office.room_state.collected_items == []
    assert office.room_state.found_items == ["door"]


def test_lobby_keeps_progress(send, office: GameState):
    send("north")
    send("lobby")
    assert office.in_lobby
    send("play office")
    assert "desk" in office.room_state.found_items


def test_where_and_questions(world: World, send, office: GameState):
    response = send("where is the door")
    assert response.text.startswith("You've already found the door in this room.")
    assert "Just look south again." in response.text
    send("north")
    assert "one desk" in send("how many desk").text
    assert send("what do i do with the desk").text.startswith(world.prompts["whatdo_static"][0])


def test_stats(send, office: GameState):
    response = send("stats")
    assert response.text.startswith("You haven't escaped from any rooms.")


def test_quit(send, office: GameState):
    response = send("quit")
    assert response.closed
    assert "quit_first" in office.player.tips
    assert send("quit").closed


def test_turn_bookkeeping(send, office: GameState):
    """Turns and time spent are counted while in a room."""
    send("north")
    send("east")
    assert office.room_state.count == 2
    assert office.room_state.duration == 20
    assert office.player.total_turns == 3
    assert office.conversation.raws == ["east", "north"]


def test_long_gaps_not_counted(world: World, office: GameState):
    rng = random.Random(0)
    last = office.conversation.last_time
    handle_command(world, office, Command("direction", "north", raw="north"), now=last + 5, rng=rng)
    handle_command(world, office, Command("direction", "east", raw="east"), now=last + 7205, rng=rng)
    assert office.room_state.duration == 5


def test_lobby_help(world: World, send, state: GameState):
    response = send("help")
    assert response.text.startswith(world.prompts["lobby"][0]) or response.text.startswith(
        world.prompts["lobby"][1]
    )
    assert "Office" in response.text


def test_take_drop_sequence_keeps_inventory_consistent(send, office: GameState):
    """No mix of takes and drops leaves an item both carried and dropped."""
    send("north")
    send("look desk")
    send("open drawer")
    commands = [f"{verb} {item}" for verb in ("take", "drop") for item in ("toothpick", "photo", "desk")]
    rng = random.Random(7)
    for raw in rng.choices(commands, k=60):
        send(raw)
        room_state = office.room_state
        assert not set(room_state.collected_items) & set(room_state.dropped_items), raw
        assert all(item in room_state.found_items for item in room_state.collected_items)


def test_claimed_rewards_only_grow(world: World, send, office: GameState):
    room = world.rooms["1"]
    previous: list[int] = []
    for raw in [
        "north", "look desk", "look desk", "open drawer", "look drawer",
        "east", "east", "hint", "west", "south", "north", "look desk", "hint",
    ]:
        send(raw)
        claimed = office.room_state.claimed_rewards
        assert set(previous) <= set(claimed), raw
        assert len(claimed) == len(set(claimed)) <= len(room.rewards)
        previous = list(claimed)
    assert sorted(previous) == [0, 1, 2, 3]


def test_reward_for_looking(world: World, send, office: GameState):
    send("north")
    response = send("look at the desk")
    assert response.reward is not None
    assert office.room_state.claimed_rewards == [0]
    assert office.room_state.hints == ["The photo has clues to solve a puzzle."]
    assert "The photo has clues to solve a puzzle." in send("hint").text
    assert office.room_state.hints == []


def test_items(send, office: GameState):
    send("north")
    response = send("items")
    assert "You've found a desk and a door." in response.text
    assert "You've found a desk and a door." in send("what items have i found").text


def test_how_long(send, office: GameState):
    send("north")
    assert "minutes in the office." in send("how long have i been here").text
    send("lobby")
    assert "minutes in the office." in send("how long in the office").text
    assert "any time in the garage" in send("how long in the garage").text


def test_how_long_asks_for_room(send, state: GameState):
    response = send("how long")
    assert response.questioned
    response = send("bedroom")
    assert "any time in the bedroom" in response.text
    assert state.conversation.slot is None


def test_what_color(world: World, send, office: GameState):
    assert "can't make out the color of the door" in send("what color is the door").text
    assert send("what color is the vent").failed


def test_what_color_known(world: World, send, office: GameState):
    room = world.rooms["1"]
    door = replace(room.items["door"], color="brown")
    world.rooms["1"] = replace(room, items={**room.items, "door": door})
    assert "The color of the door is brown." in send("what colour is the door").text


def test_lobby_lists_levels(send, state: GameState):
    response = send("help")
    assert "Office (easy)" in response.text
    assert "Garage (super hard)" in response.text


def test_play_by_difficulty(send, state: GameState):
    send("play something super hard")
    assert state.conversation.room_id == "3"
    send("lobby")
    send("hard")
    assert state.conversation.room_id == "2"


def test_difficulty_slot(send, state: GameState):
    response = send("difficulty")
    assert response.questioned
    send("easy")
    assert state.conversation.room_id == "1"


def test_unknown_difficulty(send, state: GameState):
    response = send("difficulty impossible")
    assert response.failed
    assert state.in_lobby
