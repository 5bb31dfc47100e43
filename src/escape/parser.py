"""Turn typed input into a normalized Command.

This is a small word table, not language understanding: the first
recognized verb decides the command, item names are matched against the
current room, and "X on/with Y" splits off the secondary item. While a
puzzle is waiting for an answer, left/right, digits, colours and compass
words are read as that answer.
"""

import re
from dataclasses import dataclass

from .engine.state import GameState
from .engine.world import DIRECTIONS, OTHER_DIRECTIONS, SIDES, PendingContext, Room, World


@dataclass(frozen=True)
class Command:
    """A normalized (verb, primary, secondary) triple plus puzzle values."""

    verb: str | None
    primary: str | None = None
    secondary: str | None = None
    values: tuple[str, ...] = ()
    raw: str = ""


VERB_SYNONYMS: dict[str, str] = {
    **dict.fromkeys(
        ("look", "l", "examine", "x", "inspect", "check", "search", "see", "view"),
        "look",
    ),
    **dict.fromkeys(("take", "get", "grab", "collect", "pick"), "take"),
    **dict.fromkeys(("drop", "discard", "release"), "drop"),
    **dict.fromkeys(
        ("use", "apply", "unlock", "insert", "shine", "unscrew", "tighten", "connect"),
        "use",
    ),
    **dict.fromkeys(("put", "place"), "put"),
    **dict.fromkeys(("open", "pry"), "open"),
    **dict.fromkeys(("close", "shut"), "close"),
    **dict.fromkeys(("move", "push", "pull", "slide", "shift", "drag"), "move"),
    **dict.fromkeys(("lift", "raise"), "lift"),
    **dict.fromkeys(("climb", "stand"), "climb"),
    **dict.fromkeys(("straighten", "adjust"), "straighten"),
    **dict.fromkeys(("fix", "repair"), "fix"),
    **dict.fromkeys(("wipe", "clean", "dust"), "wipe"),
    **dict.fromkeys(("touch", "feel"), "touch"),
    "read": "read",
    "kick": "kick",
    "listen": "listen",
    **dict.fromkeys(("inventory", "inv", "i"), "inventory"),
    **dict.fromkeys(("hint", "clue"), "hint"),
    "help": "help",
    **dict.fromkeys(("stats", "score", "status"), "stats"),
    **dict.fromkeys(("restart", "reset"), "restart"),
    **dict.fromkeys(("lobby", "leave"), "lobby"),
    **dict.fromkeys(("quit", "exit", "bye"), "quit"),
    **dict.fromkeys(("play", "enter"), "play"),
    "where": "where",
    **dict.fromkeys(("items", "found"), "items"),
    **dict.fromkeys(("difficulty", "level"), "difficulty"),
}

DIRECTION_WORDS: dict[str, str] = {
    **{d: d for d in DIRECTIONS},
    "n": "north",
    "s": "south",
    "e": "east",
    "w": "west",
    "u": "up",
    "d": "down",
    "ne": "northeast",
    "se": "southeast",
    "sw": "southwest",
    "nw": "northwest",
    **{d: d for d in OTHER_DIRECTIONS},
}

ORIENTATION_WORDS: dict[str, str] = {
    "left": "left",
    "right": "right",
    "back": "backwards",
    "backwards": "backwards",
    "around": "backwards",
    "behind": "backwards",
    "forward": "forwards",
    "forwards": "forwards",
    "front": "forwards",
}

SIDE_WORDS: dict[str, str] = {
    **{side: side for side in SIDES},
    "beneath": "under",
    "underneath": "under",
    "in": "inside",
    "into": "inside",
    "over": "above",
}

COLORS = frozenset(
    (
        "red", "orange", "yellow", "green", "blue", "indigo", "violet", "purple",
        "black", "white", "pink", "brown", "gray", "grey",
    )
)

# Words dropped before matching item names
FILLER = frozenset(
    ("the", "a", "an", "at", "to", "my", "please", "up", "of", "is", "it", "this", "that")
)

# "use X on Y" names the tool first, "open Y with X" names it last
TOOL_FIRST = re.compile(r"\b(on|onto|in|into|inside|against)\b")
TOOL_LAST = re.compile(r"\b(with|using)\b")

GO_WORDS = frozenset(("go", "walk", "face", "turn", "head"))

# Dropped from "how long have I been in the office"
HOW_LONG_FILLER = frozenset(
    ("in", "have", "i", "been", "spent", "did", "you", "room", "here", "so", "far")
)


def _words(raw: str) -> list[str]:
    return re.sub(r"[^a-z0-9 ]", " ", raw.lower()).split()


def _match_item(room: Room | None, words: list[str]) -> str | None:
    """Find the room item named by `words`, preferring the longest name."""
    words = [w for w in words if w not in FILLER]
    if not words:
        return None
    text = " ".join(words)
    if room is None:
        return text

    candidates = sorted(room.items, key=len, reverse=True)
    for item_id in candidates:
        if re.search(rf"\b{re.escape(item_id)}\b", text):
            return item_id
    # Plural or singular spelling of an item name
    for item_id in candidates:
        for variant in (item_id + "s", item_id.rstrip("s")):
            if variant and re.search(rf"\b{re.escape(variant)}\b", text):
                return item_id
    return None


def _split_items(room: Room | None, words: list[str]) -> tuple[str | None, str | None]:
    """Split a two-item phrase into (target, tool); a lone name is the target."""
    text = " ".join(words)
    for pattern, tool_first in ((TOOL_LAST, False), (TOOL_FIRST, True)):
        parts = pattern.split(text, maxsplit=1)
        if len(parts) == 3 and parts[0].strip() and parts[2].strip():
            first = _match_item(room, parts[0].split())
            second = _match_item(room, parts[2].split())
            return (second, first) if tool_first else (first, second)
    return _match_item(room, words), None


def _parse_puzzle(context: PendingContext, words: list[str], raw: str) -> Command | None:
    """Read an answer to the armed puzzle, or None if it is not one."""
    match context:
        case PendingContext.TURNS:
            turns = tuple(w for w in words if w in ("left", "right"))
            if turns:
                # "right three times" counts as more than one turn
                if "times" in words or "twice" in words:
                    turns = turns * 2
                return Command("turns", values=turns, raw=raw)
        case PendingContext.DIRECTIONS:
            directions = tuple(DIRECTION_WORDS[w] for w in words if w in DIRECTION_WORDS)
            if directions:
                return Command("directions", values=directions, raw=raw)
    return None


def parse_command(world: World, state: GameState, raw: str) -> Command:
    """Parse one line of player input against the current game state."""
    raw = raw.strip()
    words = _words(raw)
    if not words:
        return Command(None, raw=raw)

    conversation = state.conversation
    room = world.rooms.get(conversation.room_id) if conversation.room_id else None

    if conversation.context is not None:
        command = _parse_puzzle(conversation.context, words, raw)
        if command is not None:
            return command

    digits = "".join(w for w in words if w.isdigit())
    if digits and all(w.isdigit() or w in FILLER or w in ("code", "enter", "try") for w in words):
        return Command("code", values=tuple(digits), raw=raw)

    colors = tuple(w for w in words if w in COLORS)
    if colors and all(w in COLORS or w in FILLER or w in ("and", "then", "try") for w in words):
        verb = "color" if len(colors) == 1 else "colors"
        return Command(verb, values=colors, raw=raw)

    first, rest = words[0], words[1:]

    # Informational questions
    if first == "what" and rest[:1] in (["color"], ["colour"]):
        return Command("whatcolor", primary=_match_item(room, rest[1:]), raw=raw)
    if first == "what" and rest[:1] == ["items"]:
        return Command("items", raw=raw)
    if first == "what" and "do" in rest:
        tail = rest[rest.index("do") + 1:]
        if tail and tail[0] == "with":
            tail = tail[1:]
        return Command("whatdo", primary=_match_item(room, [w for w in tail if w != "i"]), raw=raw)
    if first == "how" and rest[:1] == ["many"]:
        return Command("howmany", primary=_match_item(room, rest[1:]), raw=raw)
    if first == "how" and rest[:1] == ["long"]:
        name = [w for w in rest[1:] if w not in FILLER and w not in HOW_LONG_FILLER]
        return Command("howlong", primary=" ".join(name) or None, raw=raw)
    if first == "where":
        return Command("where", primary=_match_item(room, rest), raw=raw)

    # Switches
    if first in ("turn", "switch", "flip") and rest and rest[0] in ("on", "off"):
        return Command(rest[0], primary=_match_item(room, rest[1:]), raw=raw)
    if first in ("turn", "switch") and rest and rest[-1] in ("on", "off"):
        return Command(rest[-1], primary=_match_item(room, rest[:-1]), raw=raw)

    if first == "climb" and rest[:1] == ["down"]:
        return Command("climb down", primary=_match_item(room, rest[1:]), raw=raw)

    if first == "look" and rest in (["around"], ["room"]):
        return Command("look around", raw=raw)

    # Directions and orientation
    if first in GO_WORDS and not rest:
        return Command("direction", raw=raw)
    if first in DIRECTION_WORDS and not rest:
        return Command("direction", primary=DIRECTION_WORDS[first], raw=raw)
    if first in GO_WORDS | {"look"} and rest:
        target = [w for w in rest if w in DIRECTION_WORDS or w not in FILLER]
        if len(target) == 1 and target[0] in DIRECTION_WORDS:
            return Command("direction", primary=DIRECTION_WORDS[target[0]], raw=raw)
        if len(target) == 1 and target[0] in ORIENTATION_WORDS:
            return Command("orientation", primary=ORIENTATION_WORDS[target[0]], raw=raw)
    if first in ORIENTATION_WORDS and not rest and first in ("left", "right", "back", "around"):
        return Command("orientation", primary=ORIENTATION_WORDS[first], raw=raw)

    # Sides: "look behind the painting", "under the rug"
    if first == "look" and rest and rest[0] in SIDE_WORDS:
        first, rest = rest[0], rest[1:]
    if first in SIDE_WORDS and rest:
        return Command(SIDE_WORDS[first], primary=_match_item(room, rest), raw=raw)

    verb = VERB_SYNONYMS.get(first)
    if verb is None:
        if room is None:
            return Command(None, primary=" ".join(words), raw=raw)
        return Command(None, primary=_match_item(room, words), raw=raw)

    if verb == "play":
        return Command("play", primary=" ".join(rest) or None, raw=raw)
    if verb == "difficulty":
        return Command("difficulty", primary=" ".join(rest) or None, raw=raw)
    if verb == "items":
        return Command("items", raw=raw)
    if verb in ("use", "put", "open", "move"):
        primary, secondary = _split_items(room, rest)
        return Command(verb, primary=primary, secondary=secondary, raw=raw)
    if verb == "look" and not rest:
        return Command("look", raw=raw)
    return Command(verb, primary=_match_item(room, rest), raw=raw)
