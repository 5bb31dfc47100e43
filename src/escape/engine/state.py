"""Mutable per-player game state and the operations that change it.

State holds only strings, numbers, lists, dicts and small dataclasses, no
World references, so it can be safely pickled for per-player persistence.
"""

import datetime as dt
import uuid
from dataclasses import dataclass, field

from ..logging import get_logger
from .errors import StateCorruption
from .slots import SlotRequest
from .world import PendingContext, Predicate, World

logger = get_logger(__name__)

# Ephemeral history kept for repeat detection
HISTORY_LENGTH = 2


@dataclass(frozen=True)
class ActionRecord:
    """A verb that was successfully applied to a target, with its tool."""

    verb: str
    secondary: str | None = None


@dataclass
class RoomState:
    """Everything a player has done in one room since entering it."""

    # Lists are most-recently-affected first
    found_items: list[str] = field(default_factory=list)
    found_item_directions: dict[str, str] = field(default_factory=dict)
    found_directions: list[str] = field(default_factory=list)
    looked_items: list[str] = field(default_factory=list)
    collected_items: list[str] = field(default_factory=list)
    dropped_items: list[str] = field(default_factory=list)
    # target key (item id, direction name or room id) -> records
    records: dict[str, list[ActionRecord]] = field(default_factory=dict)
    claimed_rewards: list[int] = field(default_factory=list)
    hints: list[str] = field(default_factory=list)
    secret: bool = False
    win: bool = False
    lose: bool = False
    duration: float = 0.0  # seconds
    count: int = 0
    help_room_hint: bool = False
    hinted: bool = False

    @property
    def is_finished(self) -> bool:
        return self.win or self.lose


@dataclass
class RoomResult:
    """Lifetime outcome of a room, kept across restarts."""

    win: bool = False
    lose: bool = False
    secret: bool = False
    best_minutes: int | None = None


@dataclass
class PlayerState:
    """Durable per-player data."""

    uuid: str = field(default_factory=lambda: uuid.uuid4().hex)
    created: dt.datetime = field(default_factory=lambda: dt.datetime.now(dt.UTC))
    rooms: dict[str, RoomState] = field(default_factory=dict)
    results: dict[str, RoomResult] = field(default_factory=dict)
    total_turns: int = 0
    rooms_won: int = 0
    secrets_found: int = 0
    # One-shot explanations already given ("help_inventory", "reward_hint", ...)
    tips: set[str] = field(default_factory=set)

    def result(self, room_id: str) -> RoomResult:
        return self.results.setdefault(room_id, RoomResult())


@dataclass
class ConversationState:
    """Session data, discarded when the player leaves."""

    room_id: str | None = None
    direction: str | None = None
    item: str | None = None
    context: PendingContext | None = None
    slot: SlotRequest | None = None

    # Stepwise puzzle progress
    solution: tuple[str, ...] | None = None
    solution_index: int = 0
    solution_resets: int = 0
    failures: dict[str, int] = field(default_factory=dict)

    raws: list[str] = field(default_factory=list)
    verbs: list[str] = field(default_factory=list)
    last_prompts: dict[str, str] = field(default_factory=dict)
    look_count: int = 0
    hints_given: int = 0
    last_time: float | None = None
    closed: bool = False


@dataclass
class GameState:
    """The value handed to and from the per-player store each turn."""

    player: PlayerState = field(default_factory=PlayerState)
    conversation: ConversationState = field(default_factory=ConversationState)

    @property
    def in_lobby(self) -> bool:
        return self.conversation.room_id is None

    @property
    def room_state(self) -> RoomState | None:
        room_id = self.conversation.room_id
        if room_id is None:
            return None
        return self.player.rooms.setdefault(room_id, RoomState())


def new_game_state(world: World) -> GameState:
    """Create a fresh game state with an empty record for every room."""
    state = GameState()
    for room_id in world.rooms:
        reset_room(state.player, room_id)
    return state


def reset_room(player: PlayerState, room_id: str) -> RoomState:
    """Forget everything done in a room. Used on first entry and restart."""
    room_state = RoomState()
    player.rooms[room_id] = room_state
    return room_state


def add_items(items: list[str], new_items) -> bool:
    """Put items at the front of a list; existing ones move to the front.

    Returns True if at least one item was not in the list before.
    """
    added = False
    for item in new_items:
        if item in items:
            items.remove(item)
        else:
            added = True
        items.insert(0, item)
    return added


def remove_items(items: list[str], old_items) -> bool:
    """Remove items from a list. Returns True if anything was removed."""
    removed = False
    for item in old_items:
        if item in items:
            items.remove(item)
            removed = True
    return removed


def reveal_items(room_state: RoomState, items, direction: str | None = None) -> bool:
    """Mark items as found, remembering which way the player was facing."""
    if direction:
        for item in items:
            if item not in room_state.found_items:
                room_state.found_item_directions[item] = direction
    return add_items(room_state.found_items, items)


def is_found(room_state: RoomState, item: str, default_items=()) -> bool:
    return item in default_items or item in room_state.found_items


def collect_items(room_state: RoomState, items) -> bool:
    """Add items to the inventory. Collecting an item also finds it."""
    items = list(items)
    add_items(room_state.found_items, [i for i in items if i not in room_state.found_items])
    remove_items(room_state.dropped_items, items)
    return add_items(room_state.collected_items, items)


def uncollect_items(room_state: RoomState, items) -> bool:
    return remove_items(room_state.collected_items, items)


def drop_item(room_state: RoomState, item: str) -> bool:
    """Move an item from the inventory to the floor."""
    if not remove_items(room_state.collected_items, [item]):
        return False
    add_items(room_state.dropped_items, [item])
    return True


def pick_up_dropped(room_state: RoomState, item: str) -> bool:
    """Move a previously dropped item back into the inventory."""
    if not remove_items(room_state.dropped_items, [item]):
        return False
    add_items(room_state.collected_items, [item])
    return True


def add_record(room_state: RoomState, target: str, record: ActionRecord) -> bool:
    """Append a record unless the target already has one for that verb."""
    records = room_state.records.setdefault(target, [])
    if any(existing.verb == record.verb for existing in records):
        return False
    records.append(record)
    return True


def get_record(
    room_state: RoomState, target: str, verb: str | None = None,
) -> ActionRecord | None:
    """Return the record for a verb, or the oldest record when verb is None."""
    records = room_state.records.get(target, [])
    if verb is None or verb == "look":
        return records[0] if records else None
    for record in records:
        if record.verb == verb:
            return record
    return None


def has_record(room_state: RoomState, predicate: Predicate) -> bool:
    """Whether a recorded action on the predicate's target satisfies it."""
    for record in room_state.records.get(predicate.target, []):
        if record.verb not in predicate.verbs:
            continue
        if predicate.secondary is None or record.secondary == predicate.secondary:
            return True
    return False


def remove_record(room_state: RoomState, target: str, verb: str | None = None) -> bool:
    """Delete the record for a verb, or the whole history when verb is None."""
    if verb is None:
        return room_state.records.pop(target, None) is not None
    records = room_state.records.get(target, [])
    for i, record in enumerate(records):
        if record.verb == verb:
            del records[i]
            return True
    return False


def find_problems(room_state: RoomState, default_items=()) -> list[str]:
    """List invariant violations in a room state."""
    problems = []
    for item in room_state.collected_items:
        if not is_found(room_state, item, default_items):
            problems.append(f"collected item {item!r} was never found")
        if item in room_state.dropped_items:
            problems.append(f"item {item!r} is both collected and dropped")
    for target, records in room_state.records.items():
        verbs = [record.verb for record in records]
        if len(verbs) != len(set(verbs)):
            problems.append(f"duplicate records on {target!r}")
    if room_state.win and room_state.lose:
        problems.append("room is both won and lost")
    if len(room_state.claimed_rewards) != len(set(room_state.claimed_rewards)):
        problems.append("reward claimed twice")
    return problems


def check_room_state(
    room_state: RoomState,
    room_id: str,
    default_items=(),
    strict: bool = True,
) -> list[str]:
    """Verify a room state loaded from storage.

    In strict mode any violation raises StateCorruption. Otherwise the
    offending entries are logged and dropped so the session can go on.
    """
    problems = find_problems(room_state, default_items)
    if not problems:
        return problems
    if strict:
        raise StateCorruption(room_id, problems)

    logger.warning("state_corruption", room=room_id, problems=problems)
    room_state.collected_items = [
        item
        for item in room_state.collected_items
        if is_found(room_state, item, default_items)
    ]
    room_state.dropped_items = [
        item
        for item in room_state.dropped_items
        if item not in room_state.collected_items
    ]
    for target, records in room_state.records.items():
        seen = set()
        kept = []
        for record in records:
            if record.verb not in seen:
                seen.add(record.verb)
                kept.append(record)
        room_state.records[target] = kept
    if room_state.win and room_state.lose:
        room_state.win = room_state.lose = False
    room_state.claimed_rewards = list(dict.fromkeys(room_state.claimed_rewards))
    return problems
