"""Immutable data structures for the escape rooms.

These are loaded once from rooms.json and prompts.json at startup and
shared across all players. Nothing in here is mutated at runtime.
"""

from dataclasses import dataclass, field
from enum import Enum

from .errors import InvalidTargetReference

# All the directions a player can look in a room
DIRECTIONS = ("north", "south", "east", "west", "up", "down")
# Diagonals are recognized only to be turned down
OTHER_DIRECTIONS = ("northeast", "southeast", "southwest", "northwest")
# Turning left/right walks this ring
COMPASS = ("north", "east", "south", "west")
ORIENTATIONS = ("left", "right", "forwards", "backwards")
SIDES = ("below", "under", "inside", "left", "behind", "right", "above")


class PendingContext(Enum):
    """Named interaction armed by a question rule for the next turn."""

    TURNS = "turns"
    CODE = "code"
    COLOR = "color"
    COLORS = "colors"
    DIRECTIONS = "directions"


PUZZLE_VERBS = frozenset(context.value for context in PendingContext)


class TargetKind(Enum):
    ROOM = "room"
    DIRECTION = "direction"
    ITEM = "item"


@dataclass(frozen=True)
class TargetRef:
    """What an action is aimed at: the room itself, a direction or an item."""

    kind: TargetKind
    key: str

    @classmethod
    def room(cls, room_id: str) -> "TargetRef":
        return cls(TargetKind.ROOM, room_id)

    @classmethod
    def direction(cls, name: str) -> "TargetRef":
        return cls(TargetKind.DIRECTION, name)

    @classmethod
    def item(cls, item_id: str) -> "TargetRef":
        return cls(TargetKind.ITEM, item_id)


@dataclass(frozen=True)
class Predicate:
    """Requires that one of `verbs` was applied to `target` before.

    When `secondary` is set, the recorded application must have used that
    item as its tool.
    """

    target: str
    verbs: frozenset[str]
    secondary: str | None = None


@dataclass(frozen=True)
class ActionRule:
    """One possible reaction of a target to a verb."""

    text: tuple[str, ...]
    verbs: frozenset[str] | None = None  # None matches any verb
    secondary: str | None = None
    requires: tuple[Predicate, ...] = ()
    reveals: tuple[str, ...] = ()
    collects: tuple[str, ...] = ()
    removes: tuple[str, ...] = ()
    question: bool = False
    failed: bool = False
    secret: bool = False
    win: bool = False
    lose: bool = False
    context: PendingContext | None = None
    save_state: bool | None = None  # None: persist every verb except look
    solution: tuple[str, ...] = ()

    def matches_verb(self, verb: str) -> bool:
        return self.verbs is None or verb in self.verbs


@dataclass(frozen=True)
class Item:
    """A thing inside a room."""

    id: str
    rules: tuple[ActionRule, ...] = ()
    static: bool = False
    multiple: bool = False
    color: str | None = None


@dataclass(frozen=True)
class RewardTrigger:
    event: str  # "look" or "direction"
    values: frozenset[str]


@dataclass(frozen=True)
class Reward:
    """A hint granted the first time one of its triggers fires."""

    hints: tuple[str, ...]
    triggers: tuple[RewardTrigger, ...]


@dataclass(frozen=True)
class Room:
    """A single escape room."""

    id: str
    names: tuple[str, ...]
    rules: tuple[ActionRule, ...] = ()
    directions: dict[str, tuple[ActionRule, ...]] = field(default_factory=dict)
    items: dict[str, Item] = field(default_factory=dict)
    rewards: tuple[Reward, ...] = ()
    hints: tuple[str, ...] = ()
    intro: tuple[str, ...] = ()
    intro_direction: str | None = None
    tagline: str = ""
    level: str = "Easy"

    @property
    def name(self) -> str:
        return self.names[0]

    def item(self, item_id: str) -> Item:
        try:
            return self.items[item_id]
        except KeyError:
            raise InvalidTargetReference("item", item_id, self.id) from None

    def rules_for(self, target: TargetRef) -> tuple[ActionRule, ...]:
        """Return the rule list attached to a target of this room."""
        match target.kind:
            case TargetKind.ROOM:
                if target.key != self.id:
                    raise InvalidTargetReference("room", target.key, self.id)
                return self.rules
            case TargetKind.DIRECTION:
                if target.key not in self.directions:
                    raise InvalidTargetReference("direction", target.key, self.id)
                return self.directions[target.key]
            case _:
                return self.item(target.key).rules

    def puzzle_rule(self, item_id: str, kind: str) -> ActionRule | None:
        """The rule of an item that carries the solution for a puzzle kind."""
        for rule in self.item(item_id).rules:
            if rule.solution and rule.verbs and kind in rule.verbs:
                return rule
        return None


@dataclass(frozen=True)
class World:
    """Every room plus the prompt catalogue."""

    rooms: dict[str, Room] = field(default_factory=dict)
    prompts: dict[str, tuple[str, ...]] = field(default_factory=dict)
    default_items: tuple[str, ...] = ("wall", "ceiling", "floor")

    def room(self, room_id: str) -> Room:
        try:
            return self.rooms[room_id]
        except KeyError:
            raise InvalidTargetReference("room", room_id) from None

    def find_room(self, text: str) -> Room | None:
        """Match a room by number or by any of its names."""
        text = text.strip().lower()
        if text in self.rooms:
            return self.rooms[text]
        for room in self.rooms.values():
            if text in (name.lower() for name in room.names):
                return room
        return None

    def find_room_by_level(self, text: str) -> Room | None:
        """The first room whose difficulty level is named in `text`."""
        text = f" {' '.join(text.lower().split())} "
        # "super hard" must win over "hard"
        rooms = sorted(self.rooms.values(), key=lambda room: len(room.level), reverse=True)
        for room in rooms:
            if f" {room.level.lower()} " in text:
                return room
        return None

    @property
    def levels(self) -> list[str]:
        return list(dict.fromkeys(room.level.lower() for room in self.rooms.values()))
