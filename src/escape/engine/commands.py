"""Turn orchestration and command handlers.

handle_command(world, state, command) -> Response is the main entry point.
It does the per-turn bookkeeping, completes a pending slot request when
the command answers it, and dispatches to a handler by verb. Handlers
mutate state in place and return a Response. run_command does the same
for a line of typed text.
"""

import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from ..logging import get_logger
from ..parser import Command, parse_command
from .prompts import fmt, oxford_list, pick_prompt, with_article
from .resolver import Outcome, Resolver
from .rewards import HINT_LIMIT, RewardEvent, RewardGrant, check_rewards, next_hint
from .slots import Slot, prompt_for, request_slot
from .state import (
    HISTORY_LENGTH,
    ActionRecord,
    GameState,
    add_items,
    add_record,
    collect_items,
    drop_item,
    get_record,
    is_found,
    pick_up_dropped,
    remove_record,
    reset_room,
)
from .world import (
    COMPASS,
    DIRECTIONS,
    OTHER_DIRECTIONS,
    SIDES,
    PendingContext,
    Room,
    TargetRef,
    World,
)

logger = get_logger(__name__)

# Gaps between turns longer than this are not counted as time in the room
SESSION_TIMEOUT = 30 * 60

# Codes too obvious to be worth a plain "wrong"
OBVIOUS_CODES = frozenset(("1234", "4321", "0000", "1111"))

# Verbs that keep an armed puzzle waiting for its answer
CONTEXT_SAFE_VERBS = frozenset(("hint", "help", "stats", "inventory"))


@dataclass
class Response:
    """The text for the player plus flags for the presentation layer."""

    text: str
    win: bool = False
    lose: bool = False
    secret: bool = False
    questioned: bool = False
    failed: bool = False
    closed: bool = False
    revealed: list[str] = field(default_factory=list)
    reward: RewardGrant | None = None


class Turn:
    """Everything a handler needs for one command."""

    def __init__(
        self,
        world: World,
        state: GameState,
        rng: random.Random,
        hint_limit: int = HINT_LIMIT,
    ):
        self.world = world
        self.state = state
        self.rng = rng
        self.hint_limit = hint_limit
        self.resolver = Resolver(world)
        self.reward: RewardGrant | None = None
        # The slot request left open by the previous turn
        self.pending_slot = state.conversation.slot

    @property
    def conversation(self):
        return self.state.conversation

    @property
    def player(self):
        return self.state.player

    @property
    def room(self) -> Room | None:
        room_id = self.conversation.room_id
        return self.world.room(room_id) if room_id else None

    @property
    def room_state(self):
        return self.state.room_state

    def say(self, name: str, *args) -> str:
        """Render a named prompt, avoiding the variant used last time."""
        template = pick_prompt(
            self.world.prompts, name, self.conversation.last_prompts, self.rng
        )
        return fmt(template, *args)

    def pick(self, variants) -> str:
        return self.rng.choice(variants)

    def is_found(self, item: str) -> bool:
        return is_found(self.room_state, item, self.world.default_items)

    def resolve(self, target: TargetRef, verb: str, secondary: str | None = None) -> Outcome:
        return self.resolver.resolve(
            self.room.id,
            target,
            verb,
            secondary,
            self.room_state,
            direction=self.conversation.direction,
        )


# -- Shared response helpers --------------------------------------------


def _next_move(turn: Turn) -> str:
    room_state = turn.room_state
    if room_state is not None and room_state.count > 5:
        return turn.say("next_move_short")
    return turn.say("next_move")


def _join(*parts: str | None) -> str:
    return " ".join(part for part in parts if part)


def _lobby_text(turn: Turn, opening: str) -> str:
    names = [f"{room.name} ({room.level.lower()})" for room in turn.world.rooms.values()]
    return _join(
        turn.say(opening),
        turn.say("lobby_pick"),
        turn.say("rooms", oxford_list(names, "and")),
        turn.say("which_room"),
    )


def _go_to_lobby(turn: Turn) -> None:
    conversation = turn.conversation
    conversation.room_id = None
    conversation.direction = None
    conversation.item = None
    _clear_context(turn)
    conversation.slot = None


def _clear_context(turn: Turn) -> None:
    conversation = turn.conversation
    conversation.context = None
    conversation.solution = None
    conversation.solution_index = 0


def _adjust_direction_for_item(turn: Turn, item: str) -> None:
    """Face the direction an item was found in, unless it is being carried."""
    room_state = turn.room_state
    if item in room_state.collected_items:
        return
    direction = room_state.found_item_directions.get(item)
    if direction:
        turn.conversation.direction = direction


def _help_tip(turn: Turn, collected: bool) -> str | None:
    """An occasional one-shot tip, based on how long the player has played."""
    if turn.reward is not None:
        return None
    player = turn.player
    tips = player.tips
    if "help_look_count" not in tips and turn.conversation.look_count > 4:
        tips.add("help_look_count")
        return turn.say("help_look_count")
    if player.total_turns % 2 == 0 and player.total_turns > 6:
        if "help_more_time" not in tips:
            tips.add("help_more_time")
            return turn.say("help_more_time")
        room, room_state = turn.room, turn.room_state
        found = [i for i in room_state.found_items if i not in turn.world.default_items]
        if found and room.hints and not room_state.help_room_hint:
            room_state.help_room_hint = True
            return turn.say("by_the_way", turn.pick(room.hints).lower())
    if player.total_turns > 5:
        for tip, needs_items in (
            ("help_item", False),
            ("help_inventory", True),
            ("help_use", True),
        ):
            if tip not in tips and (collected or not needs_items):
                tips.add(tip)
                return turn.say(tip)
    return None


def _room_prompt(turn: Turn) -> str:
    """Re-describe what the player is looking at and ask for the next move."""
    conversation = turn.conversation
    if conversation.item:
        target = TargetRef.item(conversation.item)
    elif conversation.direction in turn.room.directions:
        target = TargetRef.direction(conversation.direction)
    else:
        target = TargetRef.room(turn.room.id)
    outcome = turn.resolve(target, "look")
    if not outcome.applied:
        if "help_hint" not in turn.player.tips:
            turn.player.tips.add("help_hint")
            return _join(turn.say("help_hint"), _next_move(turn))
        return _join(turn.say("room", turn.room.name.lower()), _next_move(turn))
    if outcome.context is not None:
        conversation.context = outcome.context
    text = turn.pick(outcome.text)
    if outcome.questioned:
        return text
    return _join(text, _help_tip(turn, outcome.inventory_changed), _next_move(turn))


def _not_supported(turn: Turn) -> Response:
    return Response(
        _join(
            turn.say("action_not_supported"),
            turn.say("action_encouragement"),
            _next_move(turn),
        ),
        failed=True,
    )


def _not_found(turn: Turn, item: str) -> Response:
    turn.conversation.item = None
    return Response(
        _join(turn.say("not_found_item", item), _next_move(turn)), failed=True
    )


def _win(turn: Turn, text: str) -> Response:
    room, room_state, player = turn.room, turn.room_state, turn.player
    minutes = round(room_state.duration / 60)
    result = player.result(room.id)
    result.win = True
    if result.best_minutes is None or minutes < result.best_minutes:
        result.best_minutes = minutes
    player.rooms_won += 1
    logger.info("room_escaped", room=room.id, minutes=minutes, secret=room_state.secret)

    secret = "secret_found" if room_state.secret else "secret_not_found"
    text = _join(
        text,
        turn.say("congratulations", room.name.lower()),
        turn.say("time", minutes),
        turn.say(secret),
        _lobby_text(turn, "lobby_return"),
    )
    reset_room(player, room.id)
    _go_to_lobby(turn)
    return Response(text, win=True)


def _lose(turn: Turn, text: str) -> Response:
    room = turn.room
    turn.player.result(room.id).lose = True
    text = _join(
        text,
        turn.say("lose", room.name.lower()),
        _lobby_text(turn, "lobby_return"),
    )
    _go_to_lobby(turn)
    return Response(text, lose=True)


def _respond(
    turn: Turn,
    outcome: Outcome,
    prefix: str | None = None,
    event: RewardEvent | None = None,
) -> Response:
    """Turn an applied outcome into the player's response."""
    text = _join(prefix, turn.pick(outcome.text))
    if outcome.lose:
        return _lose(turn, text)
    if outcome.win:
        return _win(turn, text)

    if outcome.secret:
        turn.player.secrets_found += 1
        turn.player.result(turn.room.id).secret = True

    response = Response(
        text,
        secret=outcome.secret,
        questioned=outcome.questioned,
        failed=outcome.failed,
        revealed=list(outcome.revealed),
    )
    if outcome.questioned:
        if outcome.context is not None:
            _clear_context(turn)
            turn.conversation.context = outcome.context
        return response
    if outcome.failed:
        response.text = _join(text, _next_move(turn))
        return response

    if event is not None:
        turn.reward = check_rewards(turn.room, event, turn.room_state, turn.player, turn.rng)
    if turn.reward is not None:
        response.reward = turn.reward
        response.text = _join(
            turn.say("confirmation_encouragement"),
            turn.say(turn.reward.framing),
            text,
            _next_move(turn),
        )
        return response

    response.text = _join(text, _help_tip(turn, outcome.inventory_changed), _next_move(turn))
    return response


def _ask_slot(
    turn: Turn,
    slot: Slot,
    verb: str,
    held: str | None = None,
    intent: str | None = None,
) -> Response:
    """Ask for a missing parameter, escalating on each repeat."""
    conversation = turn.conversation
    request = request_slot(turn.pending_slot, slot, verb, held, intent)

    room_state = turn.room_state
    defaults: tuple[str, ...] = ()
    match slot:
        case Slot.ROOM:
            candidates = [room.name for room in turn.world.rooms.values()]
        case Slot.DIFFICULTY:
            candidates = turn.world.levels
        case Slot.DIRECTION:
            candidates = list(DIRECTIONS)
        case Slot.USE:
            candidates = room_state.collected_items
        case _:
            candidates = room_state.found_items
            if slot in (Slot.LOOK, Slot.SINGLE_USE_INTENT, Slot.USE_ON):
                defaults = turn.world.default_items

    prompt = prompt_for(request, candidates, defaults, turn.say)
    if prompt.closed:
        conversation.slot = None
        conversation.closed = True
        return Response(prompt.text, closed=True)
    conversation.slot = request
    return Response(prompt.text, questioned=True)


# -- Lobby and rooms ----------------------------------------------------


def _enter_room(turn: Turn, room: Room) -> Response:
    """Teleport into a room, restarting it if it was already finished."""
    conversation, player = turn.conversation, turn.player
    room_state = player.rooms.get(room.id)
    if room_state is None or room_state.is_finished:
        room_state = reset_room(player, room.id)

    conversation.room_id = room.id
    conversation.item = None
    conversation.direction = None
    conversation.slot = None
    conversation.failures.clear()
    conversation.solution_resets = 0
    _clear_context(turn)
    logger.info("room_entered", room=room.id)

    teleport = turn.say("teleport", room.name.lower())
    if room.intro:
        direction = room.intro_direction or "south"
        conversation.direction = direction
        add_items(room_state.found_directions, [direction])
        turn.resolve(TargetRef.direction(direction), "look")
        text = _join(teleport, turn.pick(room.intro), turn.say("which_direction"))
    else:
        text = _join(
            teleport,
            turn.say("look_around"),
            turn.say("walls"),
            turn.say("which_direction"),
        )
    return Response(text)


def _cmd_play(turn: Turn, command: Command) -> Response:
    name = command.primary or "".join(command.values)
    if not name:
        return _ask_slot(turn, Slot.ROOM, "play")
    room = turn.world.find_room(name) or turn.world.find_room_by_level(name)
    if room is None:
        return Response(
            _join(turn.say("invalid_room"), turn.say("which_room")), failed=True
        )
    return _enter_room(turn, room)


def _cmd_difficulty(turn: Turn, command: Command) -> Response:
    """Enter the first room of the named difficulty."""
    if not command.primary:
        return _ask_slot(turn, Slot.DIFFICULTY, "difficulty")
    room = turn.world.find_room_by_level(command.primary)
    if room is None:
        return Response(
            _join(turn.say("invalid_room"), _lobby_text(turn, "lobby_return")),
            failed=True,
        )
    return _enter_room(turn, room)


def _cmd_howlong(turn: Turn, command: Command) -> Response:
    """Minutes spent so far in a room, the current one by default."""
    if command.primary:
        room = turn.world.find_room(command.primary)
    else:
        room = turn.room
        if room is None:
            return _ask_slot(turn, Slot.ROOM, "howlong")
    tail = _next_move(turn) if turn.room is not None else turn.say("which_room")
    if room is None:
        return Response(_join(turn.say("invalid_room"), tail), failed=True)

    room_state = turn.player.rooms.get(room.id)
    if room_state is None or not room_state.duration:
        text = turn.say("how_long_none", room.name.lower())
    else:
        text = turn.say("how_long", round(room_state.duration / 60), room.name.lower())
    return Response(_join(text, tail))


def _cmd_restart(turn: Turn, command: Command) -> Response:
    room = turn.room
    reset_room(turn.player, room.id)
    return _enter_room(turn, room)


def _cmd_lobby(turn: Turn, command: Command) -> Response:
    _go_to_lobby(turn)
    return Response(_lobby_text(turn, "lobby_return"))


def _cmd_quit(turn: Turn, command: Command) -> Response:
    """Close the conversation with a one-shot parting line when one fits."""
    tips = turn.player.tips
    room_state = turn.room_state
    name = "quit"
    if room_state is not None:
        if "quit_encourage" not in tips and len(room_state.found_directions) >= 4:
            name = "quit_encourage"
        elif "quit_first" not in tips:
            name = "quit_first"
        elif (
            "quit_easter_egg" not in tips
            and not room_state.secret
            and room_state.count > 10
        ):
            name = "quit_easter_egg"
    if name != "quit":
        tips.add(name)
    turn.conversation.closed = True
    return Response(turn.say(name), closed=True)


def _cmd_stats(turn: Turn, command: Command) -> Response:
    player, room_state = turn.player, turn.room_state
    won = player.rooms_won
    if room_state is None:
        if won == 0:
            text = turn.say("stats_lobby_no_rooms")
        elif won == 1:
            text = turn.say("stats_lobby1")
        else:
            text = turn.say("stats_lobby", won)
    else:
        minutes = round(room_state.duration / 60)
        if won == 0:
            text = turn.say("stats_no_rooms", minutes)
        elif won == 1:
            text = turn.say("stats1", minutes)
        else:
            text = turn.say("stats", won, minutes)
    if player.secrets_found:
        secrets = turn.say("secrets_found", player.secrets_found)
    else:
        secrets = turn.say("secrets_not_found")
    tail = _next_move(turn) if room_state is not None else turn.say("which_room")
    return Response(_join(text, secrets, tail))


def _cmd_help(turn: Turn, command: Command) -> Response:
    if turn.room is None:
        return Response(_lobby_text(turn, "lobby"))
    return Response(turn.say("help"))


def _cmd_hint(turn: Turn, command: Command) -> Response:
    hint = next_hint(
        turn.room,
        turn.room_state,
        turn.conversation,
        turn.player,
        turn.say,
        default_items=turn.world.default_items,
        hint_limit=turn.hint_limit,
        rng=turn.rng,
    )
    if turn.conversation.context is not None:
        return Response(hint, questioned=True)
    return Response(_join(hint, _next_move(turn)))


# -- Looking around ------------------------------------------------------


def _cmd_direction(turn: Turn, command: Command) -> Response:
    direction = command.primary
    if direction is None:
        return _ask_slot(turn, Slot.DIRECTION, "direction")
    conversation, room, room_state = turn.conversation, turn.room, turn.room_state

    if direction in OTHER_DIRECTIONS:
        return Response(
            _join(
                turn.say("not_support_direction"),
                turn.say("walls"),
                turn.say("which_direction"),
            ),
            failed=True,
        )

    conversation.item = None
    conversation.direction = direction
    if direction not in room.directions:
        return Response(
            _join(
                turn.say("nothing_direction"),
                turn.say("walls"),
                turn.say("which_direction"),
            )
        )

    add_items(room_state.found_directions, [direction])
    outcome = turn.resolve(TargetRef.direction(direction), "look")
    if not outcome.applied:
        return Response(_join(turn.say("nothing_direction"), _next_move(turn)))

    if direction == "down" and room_state.dropped_items:
        dropped = [with_article(item) for item in room_state.dropped_items]
        text = _join(
            turn.pick(outcome.text),
            turn.say("dropped_contents", oxford_list(dropped, "and")),
            _next_move(turn),
        )
        return Response(text, revealed=list(outcome.revealed))
    return _respond(turn, outcome, event=RewardEvent("direction", direction))


def _cmd_orientation(turn: Turn, command: Command) -> Response:
    """Turn relative to the direction the player is facing."""
    orientation = command.primary
    if orientation is None:
        return _ask_slot(turn, Slot.DIRECTION, "direction")
    current = turn.conversation.direction
    if current not in COMPASS:
        current = "north"
    index = COMPASS.index(current)
    match orientation:
        case "left":
            index -= 1
        case "right":
            index += 1
        case "backwards":
            index += 2
    direction = COMPASS[index % len(COMPASS)]
    return _cmd_direction(turn, Command("direction", primary=direction, raw=command.raw))


def _cmd_look_around(turn: Turn, command: Command) -> Response:
    turn.conversation.item = None
    outcome = turn.resolve(TargetRef.room(turn.room.id), "look")
    text = turn.pick(outcome.text) if outcome.applied else turn.say("look_around")
    return Response(_join(text, turn.say("walls"), turn.say("which_direction")))


def _cmd_look(turn: Turn, command: Command) -> Response:
    item = command.primary
    if item is None:
        return _ask_slot(turn, Slot.LOOK, "look")
    if not turn.is_found(item):
        return _not_found(turn, item)

    _adjust_direction_for_item(turn, item)
    turn.conversation.item = item
    outcome = turn.resolve(TargetRef.item(item), "look")
    add_items(turn.room_state.looked_items, [item])
    if not outcome.applied:
        return _not_supported(turn)
    return _respond(turn, outcome, event=RewardEvent("look", item))


def _cmd_where(turn: Turn, command: Command) -> Response:
    item = command.primary
    if item is None:
        return _ask_slot(turn, Slot.SINGLE_USE, "where")
    room_state = turn.room_state
    if item in room_state.collected_items:
        return Response(_join(turn.say("inventory_item", item), _next_move(turn)))
    if not turn.is_found(item):
        return _not_found(turn, item)
    text = turn.say("found_item", item)
    direction = room_state.found_item_directions.get(item)
    if direction:
        text = _join(text, turn.say("look_item", direction))
    return Response(_join(text, _next_move(turn)))


def _cmd_howmany(turn: Turn, command: Command) -> Response:
    item = command.primary
    if item is None:
        return _ask_slot(turn, Slot.SINGLE_USE, "howmany")
    if not turn.is_found(item):
        return _not_found(turn, item)
    name = "multiple_items" if turn.room.item(item).multiple else "single_items"
    return Response(_join(turn.say(name, item), _next_move(turn)))


def _cmd_whatdo(turn: Turn, command: Command) -> Response:
    item = command.primary
    if item is None:
        return Response(_join(turn.say("whatdo_item"), _next_move(turn)))
    if not turn.is_found(item):
        return _not_found(turn, item)
    name = "whatdo_static" if turn.room.item(item).static else "whatdo_item"
    return Response(_join(turn.say(name), _next_move(turn)))


def _cmd_items(turn: Turn, command: Command) -> Response:
    """Everything found in the room so far, newest first."""
    found = turn.room_state.found_items
    if not found:
        return Response(_join(turn.say("no_items"), _next_move(turn)))
    items = oxford_list([with_article(item) for item in found], "and")
    return Response(
        _join(turn.say("confirmation"), turn.say("items", items), _next_move(turn))
    )


def _cmd_whatcolor(turn: Turn, command: Command) -> Response:
    item = command.primary
    if item is None:
        return _ask_slot(turn, Slot.SINGLE_USE, "whatcolor")
    if not turn.is_found(item):
        return _not_found(turn, item)
    color = turn.room.item(item).color
    if color:
        text = turn.say("whatcolor_known", item, color)
    else:
        text = turn.say("whatcolor_unknown", item)
    return Response(_join(text, _next_move(turn)))


# -- Inventory -------------------------------------------------------------


def _cmd_inventory(turn: Turn, command: Command) -> Response:
    turn.player.tips.add("help_inventory")
    collected = turn.room_state.collected_items
    if not collected:
        return Response(_join(turn.say("no_inventory"), _next_move(turn)))
    items = oxford_list([with_article(item) for item in collected], "and")
    return Response(_join(turn.say("inventory_contents", items), _next_move(turn)))


def _cmd_take(turn: Turn, command: Command) -> Response:
    item = command.primary
    if item is None:
        return _ask_slot(turn, Slot.SINGLE_USE_INTENT, "take", intent="take")
    room_state = turn.room_state
    if not turn.is_found(item):
        return _not_found(turn, item)
    turn.conversation.item = item
    if item in room_state.collected_items:
        return Response(_join(turn.say("inventory_duplicate", item), _next_move(turn)))
    if pick_up_dropped(room_state, item):
        return Response(_join(turn.say("dropped_added", item), _next_move(turn)))

    outcome = turn.resolve(TargetRef.item(item), "take")
    if outcome.applied:
        return _respond(turn, outcome)
    if turn.room.item(item).static:
        return Response(_join(turn.say("cannot_take", item), _next_move(turn)), failed=True)

    collect_items(room_state, [item])
    add_record(room_state, item, ActionRecord("take"))
    return Response(
        _join(turn.say("inventory_added", item), _help_tip(turn, True), _next_move(turn))
    )


def _cmd_drop(turn: Turn, command: Command) -> Response:
    item = command.primary
    if item is None:
        return _ask_slot(turn, Slot.SINGLE_USE_INTENT, "drop", intent="drop")
    if not turn.is_found(item):
        return _not_found(turn, item)
    if not drop_item(turn.room_state, item):
        return Response(_join(turn.say("cannot_drop", item), _next_move(turn)), failed=True)
    return Response(_join(turn.say("inventory_removed", item), _next_move(turn)))


# -- Acting on items -----------------------------------------------------


def _apply_pair(turn: Turn, verb: str, target: str, tool: str) -> Response:
    """Apply a verb to `target` using `tool` from the inventory."""
    room_state = turn.room_state
    if tool not in room_state.collected_items:
        # "use the door on the key" means the same thing
        if target in room_state.collected_items and turn.is_found(tool):
            target, tool = tool, target
        else:
            return Response(
                _join(turn.say("item_not_inventory", tool), _next_move(turn)),
                failed=True,
            )
    if not turn.is_found(target):
        return _not_found(turn, target)

    _adjust_direction_for_item(turn, target)
    turn.conversation.item = target
    outcome = turn.resolve(TargetRef.item(target), verb, tool)
    if not outcome.applied:
        return _not_supported(turn)
    return _respond(turn, outcome)


def _apply_single(turn: Turn, verb: str, item: str) -> Response:
    if not turn.is_found(item):
        return _not_found(turn, item)
    _adjust_direction_for_item(turn, item)
    turn.conversation.item = item
    outcome = turn.resolve(TargetRef.item(item), verb)
    if outcome.applied:
        return _respond(turn, outcome)

    if verb in SIDES:
        return Response(
            _join(turn.say(f"nothing_{verb}", item), _next_move(turn)), failed=True
        )
    if verb == "move" and turn.room.item(item).static:
        name = "move_static_not_supported"
    elif f"{verb}_not_supported_{item}" in turn.world.prompts:
        name = f"{verb}_not_supported_{item}"
    else:
        name = f"{verb}_not_supported"
    if name == "touch_not_supported":
        text = turn.say("touch_not_supported2", item, item)
    elif name in turn.world.prompts:
        text = turn.say(name, item)
    else:
        text = turn.say("cannot_action", verb, item)
    return Response(_join(text, _next_move(turn)), failed=True)


def _cmd_use(turn: Turn, command: Command) -> Response:
    verb, target, tool = command.verb, command.primary, command.secondary
    room_state = turn.room_state
    if target is None and tool is None:
        return _ask_slot(turn, Slot.USE, verb)
    if target is None:
        return _ask_slot(turn, Slot.USE_ON, verb, held=tool)
    if tool is None:
        if target in room_state.collected_items:
            return _ask_slot(turn, Slot.USE_ON, verb, held=target)
        return _apply_single(turn, verb, target)
    return _apply_pair(turn, verb, target, tool)


def _cmd_action(turn: Turn, command: Command) -> Response:
    """Any other verb aimed at an item: open, move, lift, climb..."""
    verb, item = command.verb, command.primary
    if item is None:
        if verb in SIDES and turn.conversation.item:
            item = turn.conversation.item
        elif verb in SIDES:
            return _ask_slot(turn, Slot.SINGLE_USE, verb)
        else:
            return _ask_slot(turn, Slot.SINGLE_USE_INTENT, verb, intent=verb)
    if command.secondary:
        return _apply_pair(turn, verb, item, command.secondary)
    return _apply_single(turn, verb, item)


def _cmd_on_off(turn: Turn, command: Command) -> Response:
    verb, item = command.verb, command.primary
    if item is None:
        return _ask_slot(turn, Slot.ON_OFF, verb)
    if not turn.is_found(item):
        return _not_found(turn, item)

    room_state = turn.room_state
    is_on = get_record(room_state, item, "on") is not None
    if verb == "on" and is_on:
        return Response(_join(turn.say("already_on", item), _next_move(turn)))
    if verb == "off" and not is_on:
        return Response(_join(turn.say("already_off", item), _next_move(turn)))

    turn.conversation.item = item
    outcome = turn.resolve(TargetRef.item(item), verb)
    if verb == "off":
        remove_record(room_state, item, "on")
        if not outcome.applied:
            return Response(_join(turn.say("turn_off", item), _next_move(turn)))
    if not outcome.applied:
        return _not_supported(turn)
    return _respond(turn, outcome)


# -- Puzzle answers --------------------------------------------------------


def _solve(turn: Turn, kind: str, prefix: str | None = None) -> Response:
    """Resolve the armed item with the puzzle verb once the answer is right."""
    conversation = turn.conversation
    item = conversation.item
    conversation.failures[kind] = 0
    _clear_context(turn)
    logger.info("puzzle_solved", room=turn.room.id, item=item, kind=kind)
    outcome = turn.resolve(TargetRef.item(item), kind)
    if not outcome.applied:
        return Response(_join(prefix, _room_prompt(turn)))
    return _respond(turn, outcome, prefix=prefix)


def _armed_rule(turn: Turn, kind: str):
    conversation = turn.conversation
    if conversation.context is None or conversation.item is None:
        return None
    if conversation.context.value != kind:
        return None
    return turn.room.puzzle_rule(conversation.item, kind)


def _cmd_turns(turn: Turn, command: Command) -> Response:
    """One left or right turn of a dial, checked step by step."""
    conversation = turn.conversation
    rule = _armed_rule(turn, PendingContext.TURNS.value)
    if rule is None:
        return _not_supported(turn)
    if len(command.values) != 1:
        return Response(turn.say("fallback1_turns_too_many"), questioned=True)

    step = command.values[0]
    if conversation.solution is None:
        conversation.solution = rule.solution
        conversation.solution_index = 0
    solution = conversation.solution

    hint = None
    failed = False
    if solution[conversation.solution_index] == step:
        conversation.solution_index += 1
    else:
        failed = True
        conversation.solution_index = 0
        conversation.solution_resets += 1
        if conversation.solution_resets > 2 and "turn_hint" not in turn.player.tips:
            turn.player.tips.add("turn_hint")
            hint = turn.say("by_the_way", turn.say("hint_turns").lower())

    index = conversation.solution_index
    if index == len(solution):
        conversation.solution_resets = 0
        return _solve(turn, PendingContext.TURNS.value)

    name = f"turn_{step}"
    if index and solution[index] != solution[index - 1]:
        name += "_click"
    return Response(_join(hint, turn.say(name)), questioned=True, failed=failed)


def _cmd_code(turn: Turn, command: Command) -> Response:
    """A four digit combination, compared all at once."""
    conversation = turn.conversation
    rule = _armed_rule(turn, PendingContext.CODE.value)
    if rule is None:
        return _not_supported(turn)
    code = "".join(command.values)
    if len(code) != 4:
        return Response(
            _join(turn.say("code_failed"), turn.say("which_code")),
            questioned=True,
            failed=True,
        )

    prefix = turn.say("try_code", oxford_list(list(code), "and"))
    if code == "".join(rule.solution):
        return _solve(turn, PendingContext.CODE.value, prefix)

    count = conversation.failures.get("code", 0) + 1
    conversation.failures["code"] = count
    if code in OBVIOUS_CODES:
        text = _join(turn.say("code_obvious"), turn.say("hint_code"), _next_move(turn))
    elif count == 1:
        text = _join(turn.say("code_failed1"), turn.say("hint_code"), _next_move(turn))
    elif count % 3 == 1:
        text = _join(turn.say("code_failed"), turn.say("hint_code"), _next_move(turn))
    elif count % 3 == 2:
        text = _join(turn.say("code_failed"), turn.say("which_code"))
    else:
        text = _join(turn.say("code_failed"), _room_prompt(turn))
    return Response(_join(prefix, text), questioned=True, failed=True)


def _cmd_sequence(turn: Turn, command: Command) -> Response:
    """Colours or directions, compared as a whole answer."""
    conversation = turn.conversation
    context = conversation.context
    if context in (PendingContext.COLOR, PendingContext.COLORS) and command.verb in (
        "color",
        "colors",
    ):
        kind = context.value
    else:
        kind = command.verb
    rule = _armed_rule(turn, kind)
    if rule is None:
        return _not_supported(turn)

    answer = tuple(command.values)
    prefix = turn.say(f"try_{kind}", oxford_list(answer, "and"))
    if answer == rule.solution:
        return _solve(turn, kind, prefix)

    count = conversation.failures.get(kind, 0) + 1
    conversation.failures[kind] = count
    failed_text = turn.say(f"{kind}_failed")
    if count % 3 == 2:
        text = _join(failed_text, turn.say(f"hint_{kind}"), _next_move(turn))
    elif count % 3 == 1:
        text = _join(failed_text, turn.say(f"which_{kind}"))
    else:
        text = _join(failed_text, _room_prompt(turn))
    return Response(_join(prefix, text), questioned=True, failed=True)


# -- Fallback -------------------------------------------------------------


def _cmd_fallback(turn: Turn, command: Command) -> Response:
    raws = turn.conversation.raws
    if len(raws) == HISTORY_LENGTH and raws[0] and raws[0] == raws[1]:
        return Response(turn.say("fallback1_stuck"), failed=True)
    if command.primary and turn.room is not None:
        # A bare item name means "look at it"
        return _cmd_look(turn, Command("look", primary=command.primary, raw=command.raw))
    return Response(turn.say("fallback1"), failed=True)


_VERB_DISPATCH: dict[str, Callable[[Turn, Command], Response]] = {
    "play": _cmd_play,
    "restart": _cmd_restart,
    "lobby": _cmd_lobby,
    "quit": _cmd_quit,
    "stats": _cmd_stats,
    "help": _cmd_help,
    "hint": _cmd_hint,
    "direction": _cmd_direction,
    "orientation": _cmd_orientation,
    "look around": _cmd_look_around,
    "look": _cmd_look,
    "where": _cmd_where,
    "howmany": _cmd_howmany,
    "whatdo": _cmd_whatdo,
    "whatcolor": _cmd_whatcolor,
    "items": _cmd_items,
    "howlong": _cmd_howlong,
    "difficulty": _cmd_difficulty,
    "inventory": _cmd_inventory,
    "take": _cmd_take,
    "drop": _cmd_drop,
    **dict.fromkeys(("use", "put"), _cmd_use),
    **dict.fromkeys(("on", "off"), _cmd_on_off),
    "turns": _cmd_turns,
    "code": _cmd_code,
    **dict.fromkeys(("color", "colors", "directions"), _cmd_sequence),
}

# Commands understood while standing in the lobby
_LOBBY_DISPATCH: dict[str, Callable[[Turn, Command], Response]] = {
    **dict.fromkeys(("play", "code"), _cmd_play),
    "difficulty": _cmd_difficulty,
    "howlong": _cmd_howlong,
    "stats": _cmd_stats,
    "quit": _cmd_quit,
    **dict.fromkeys(("help", "hint", "lobby", "items"), _cmd_help),
}


# -- Entry point ------------------------------------------------------------


def _remember(history: list[str], value: str) -> None:
    history.insert(0, value)
    del history[HISTORY_LENGTH:]


def _bookkeeping(turn: Turn, command: Command, now: float) -> None:
    """Counters, elapsed time and short history, updated once per turn."""
    conversation, player = turn.conversation, turn.player
    conversation.closed = False
    player.total_turns += 1

    room_state = turn.room_state
    if room_state is not None:
        room_state.count += 1
        if conversation.last_time is not None:
            elapsed = now - conversation.last_time
            if 0 < elapsed < SESSION_TIMEOUT:
                room_state.duration += elapsed
    conversation.last_time = now

    _remember(conversation.raws, command.raw.lower())
    verb = command.verb or ""
    _remember(conversation.verbs, verb)
    # Handlers re-open the slot when they still need it
    conversation.slot = None

    conversation.look_count = conversation.look_count + 1 if verb == "look" else 0

    context = conversation.context
    if context is not None and verb not in CONTEXT_SAFE_VERBS:
        accepted = {context.value}
        if context in (PendingContext.COLOR, PendingContext.COLORS):
            accepted |= {"color", "colors"}
        if verb not in accepted:
            _clear_context(turn)


def _fill_slot(turn: Turn, command: Command) -> Command | None:
    """The completed command if this input answers the pending slot."""
    request = turn.pending_slot
    if request is None or command.verb is not None:
        return None
    value = command.primary
    match request.slot:
        case Slot.DIRECTION:
            words = command.raw.lower().split()
            value = next((w for w in words if w in DIRECTIONS), None)
        case Slot.ROOM:
            room = turn.world.find_room(value or "")
            value = room.id if room is not None else None
        case Slot.DIFFICULTY:
            room = turn.world.find_room_by_level(command.raw)
            value = room.level.lower() if room is not None else None
    if not value:
        return None
    verb, primary, secondary = request.complete(value)
    return Command(verb, primary=primary, secondary=secondary, raw=command.raw)


def handle_command(
    world: World,
    state: GameState,
    command: Command,
    now: float | None = None,
    rng: random.Random | None = None,
    hint_limit: int = HINT_LIMIT,
) -> Response:
    """Process one command and return the response."""
    turn = Turn(world, state, rng or random.Random(), hint_limit)
    _bookkeeping(turn, command, time.time() if now is None else now)

    filled = _fill_slot(turn, command)
    if filled is not None:
        command = filled
    elif turn.pending_slot is not None and command.verb is None:
        request = turn.pending_slot
        return _ask_slot(turn, request.slot, request.verb, request.held, request.intent)

    if state.in_lobby:
        handler = _LOBBY_DISPATCH.get(command.verb or "play")
        if handler is None:
            return Response(_lobby_text(turn, "lobby"))
        return handler(turn, command)

    if command.verb is None:
        return _cmd_fallback(turn, command)
    handler = _VERB_DISPATCH.get(command.verb, _cmd_action)
    return handler(turn, command)


def run_command(
    world: World,
    state: GameState,
    raw: str,
    now: float | None = None,
    rng: random.Random | None = None,
    hint_limit: int = HINT_LIMIT,
) -> Response:
    """Parse a line of player input and process it."""
    command = parse_command(world, state, raw)
    return handle_command(world, state, command, now=now, rng=rng, hint_limit=hint_limit)
