"""Rewards earned by exploring, and the hints they unlock.

Each room lists rewards in order. Looking at an item or towards a
direction can claim the first unclaimed reward it triggers; the reward's
hint goes onto the room's hint queue, from which explicit hint requests
take the most recent first.
"""

import random
from collections.abc import Callable
from dataclasses import dataclass

from ..logging import get_logger
from .state import ConversationState, PlayerState, RoomState
from .world import DIRECTIONS, Room

logger = get_logger(__name__)

# Maximum hints handed out per session
HINT_LIMIT = 1000

# Found items considered by the "look at" heuristic
HINT_ITEM_WINDOW = 3


@dataclass(frozen=True)
class RewardEvent:
    kind: str  # "look" or "direction"
    value: str


@dataclass(frozen=True)
class RewardGrant:
    index: int
    hint: str
    framing: str  # prompt announcing the reward


def check_rewards(
    room: Room,
    event: RewardEvent,
    room_state: RoomState,
    player: PlayerState,
    rng: random.Random | None = None,
) -> RewardGrant | None:
    """Claim the first unclaimed reward triggered by `event`, if any."""
    rng = rng or random
    for index, reward in enumerate(room.rewards):
        if index in room_state.claimed_rewards:
            continue
        if not any(
            trigger.event == event.kind and event.value in trigger.values
            for trigger in reward.triggers
        ):
            continue

        hint = rng.choice(reward.hints)
        room_state.claimed_rewards.append(index)
        room_state.hints.append(hint)

        if "reward_hint" in player.tips:
            framing = "reward"
        else:
            player.tips.add("reward_hint")
            framing = "reward1"
        logger.info("reward_granted", room=room.id, index=index, trigger=event.kind)
        return RewardGrant(index=index, hint=hint, framing=framing)
    return None


def next_hint(
    room: Room,
    room_state: RoomState,
    conversation: ConversationState,
    player: PlayerState,
    say: Callable[..., str],
    default_items=(),
    hint_limit: int = HINT_LIMIT,
    rng: random.Random | None = None,
) -> str:
    """Answer an explicit hint request.

    Earned hints come first, newest first. Without one, the answer nudges
    the player towards what they have not done yet.
    """
    rng = rng or random
    conversation.hints_given += 1
    if conversation.hints_given > hint_limit:
        return say("hint_limit")

    if room_state.hints:
        room_state.hinted = True
        return f"{say('gentle_confirmation')} {room_state.hints.pop()}"

    if conversation.context is not None:
        kind = conversation.context.value
        return f"{say(f'hint_{kind}')} {say(f'hint_{kind}_next')}"

    for direction in DIRECTIONS:
        if direction in room.directions and direction not in room_state.found_directions:
            return say("hint_direction", direction)

    candidates = [
        item
        for item in room_state.found_items
        if item not in default_items and item != conversation.item
    ]
    for item in candidates[:HINT_ITEM_WINDOW]:
        if item not in room_state.looked_items and item not in room_state.collected_items:
            return say("hint_item", item)

    if not room_state.collected_items and "help_inventory" not in player.tips:
        player.tips.add("help_inventory")
        return say("hint_inventory")

    if room.hints and not room_state.help_room_hint:
        room_state.help_room_hint = True
        return rng.choice(room.hints)

    if room_state.hinted:
        return say("hint_limit")
    return say("hint")
