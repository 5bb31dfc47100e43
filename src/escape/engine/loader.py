"""Load rooms.json and prompts.json into a World.

rooms.json holds the default items shared by every room and a mapping of
room id to room. Each room declares its directions, items and rewards;
directions, items and the room itself carry ordered lists of action rules.
"""

import json
from pathlib import Path
from typing import Any

from ..logging import get_logger
from .errors import ContentError
from .world import (
    DIRECTIONS,
    PUZZLE_VERBS,
    ActionRule,
    Item,
    PendingContext,
    Predicate,
    Reward,
    RewardTrigger,
    Room,
    World,
)

logger = get_logger(__name__)

# Verbs written differently in content than the parser emits them
VERB_ALIASES = {
    "use item": "use",
}

# Verbs whose records are written by the turn handlers, not by a rule
HANDLER_RECORDED_VERBS = frozenset({"take"})


def _verbs(raw: list[str] | None) -> frozenset[str] | None:
    if raw is None:
        return None
    return frozenset(VERB_ALIASES.get(verb, verb) for verb in raw)


def _parse_predicate(raw: dict[str, Any], own_target: str) -> Predicate:
    return Predicate(
        target=raw.get("target", own_target),
        verbs=_verbs(raw["verbs"]) or frozenset(),
        secondary=raw.get("secondary"),
    )


def _parse_context(raw: str | None, where: str) -> PendingContext | None:
    if raw is None:
        return None
    try:
        return PendingContext(raw)
    except ValueError:
        raise ContentError(f"{where}: unknown context {raw!r}") from None


def _parse_rule(raw: dict[str, Any], own_target: str, where: str) -> ActionRule:
    """Build one ActionRule from its JSON object."""
    text = raw.get("text")
    if not text:
        raise ContentError(f"{where}: rule without text")

    rule = ActionRule(
        text=tuple(text),
        verbs=_verbs(raw.get("verbs")),
        secondary=raw.get("secondary"),
        requires=tuple(
            _parse_predicate(p, own_target) for p in raw.get("requires", ())
        ),
        reveals=tuple(raw.get("reveals", ())),
        collects=tuple(raw.get("collects", ())),
        removes=tuple(raw.get("removes", ())),
        question=bool(raw.get("question", False)),
        failed=bool(raw.get("failed", False)),
        secret=bool(raw.get("secret", False)),
        win=bool(raw.get("win", False)),
        lose=bool(raw.get("lose", False)),
        context=_parse_context(raw.get("context"), where),
        save_state=raw.get("save_state"),
        solution=tuple(raw.get("solution", ())),
    )

    if rule.solution and not (rule.verbs and rule.verbs & PUZZLE_VERBS):
        raise ContentError(f"{where}: solution on a rule without a puzzle verb")
    return rule


def _parse_rules(raw: list[dict[str, Any]], own_target: str, where: str):
    return tuple(
        _parse_rule(rule, own_target, f"{where}[{i}]") for i, rule in enumerate(raw)
    )


def _parse_reward(raw: dict[str, Any]) -> Reward:
    return Reward(
        hints=tuple(raw["hint"]),
        triggers=tuple(
            RewardTrigger(event=t["event"], values=frozenset(t["values"]))
            for t in raw["triggers"]
        ),
    )


def _parse_room(room_id: str, raw: dict[str, Any]) -> Room:
    items = {
        item_id: Item(
            id=item_id,
            rules=_parse_rules(
                item.get("rules", []), item_id, f"room {room_id} item {item_id}"
            ),
            static=bool(item.get("static", False)),
            multiple=bool(item.get("multiple", False)),
            color=item.get("color"),
        )
        for item_id, item in raw.get("items", {}).items()
    }
    directions = {
        name: _parse_rules(rules, room_id, f"room {room_id} {name}")
        for name, rules in raw.get("directions", {}).items()
    }
    names = raw["name"]
    return Room(
        id=room_id,
        names=tuple(names) if isinstance(names, list) else (names,),
        rules=_parse_rules(raw.get("rules", []), room_id, f"room {room_id}"),
        directions=directions,
        items=items,
        rewards=tuple(_parse_reward(r) for r in raw.get("rewards", [])),
        hints=tuple(raw.get("hints", ())),
        intro=tuple(raw.get("intro", ())),
        intro_direction=raw.get("intro_direction"),
        tagline=raw.get("tagline", ""),
        level=raw.get("level", "Easy"),
    )


def _all_rules(room: Room):
    """Yield (target key, where, rule) for every rule in a room."""
    for i, rule in enumerate(room.rules):
        yield room.id, f"room {room.id}[{i}]", rule
    for name, rules in room.directions.items():
        for i, rule in enumerate(rules):
            yield name, f"room {room.id} {name}[{i}]", rule
    for item in room.items.values():
        for i, rule in enumerate(item.rules):
            yield item.id, f"room {room.id} item {item.id}[{i}]", rule


def _validate_room(room: Room, default_items: tuple[str, ...]) -> None:
    """Raise ContentError for references to things the room does not have."""
    known_items = set(room.items) | set(default_items)
    known_targets = known_items | set(room.directions) | {room.id}

    for name in room.directions:
        if name not in DIRECTIONS:
            raise ContentError(f"room {room.id}: unknown direction {name!r}")
    if room.intro_direction and room.intro_direction not in room.directions:
        raise ContentError(
            f"room {room.id}: intro direction {room.intro_direction!r} has no rules"
        )

    for _, where, rule in _all_rules(room):
        for item_id in (*rule.reveals, *rule.collects, *rule.removes):
            if item_id not in known_items:
                raise ContentError(f"{where}: unknown item {item_id!r}")
        if rule.secondary and rule.secondary not in known_items:
            raise ContentError(f"{where}: unknown secondary item {rule.secondary!r}")
        for predicate in rule.requires:
            if predicate.target not in known_targets:
                raise ContentError(
                    f"{where}: predicate on unknown target {predicate.target!r}"
                )
            if predicate.secondary and predicate.secondary not in known_items:
                raise ContentError(
                    f"{where}: predicate on unknown item {predicate.secondary!r}"
                )

    for reward in room.rewards:
        for trigger in reward.triggers:
            if trigger.event == "look":
                unknown = trigger.values - known_items
            elif trigger.event == "direction":
                unknown = trigger.values - set(room.directions)
            else:
                raise ContentError(
                    f"room {room.id}: unknown reward event {trigger.event!r}"
                )
            if unknown:
                raise ContentError(
                    f"room {room.id}: reward triggers on unknown {sorted(unknown)}"
                )


def _can_record(rule: ActionRule, predicate: Predicate) -> bool:
    """Whether applying `rule` could ever write a record `predicate` accepts."""
    if rule.save_state is False:
        return False
    if predicate.secondary and rule.secondary != predicate.secondary:
        return False
    if rule.verbs is None:
        return True
    verbs = rule.verbs & predicate.verbs
    if rule.save_state is None:
        verbs -= {"look"}
    return bool(verbs)


def find_unreachable_predicates(room: Room) -> list[tuple[str, Predicate]]:
    """List predicates no rule of the room can ever satisfy.

    Rules gated only by such predicates silently fall back to their
    unconditional siblings, which usually means a content mistake.
    """
    rules_by_target: dict[str, list[ActionRule]] = {}
    for key, _, rule in _all_rules(room):
        rules_by_target.setdefault(key, []).append(rule)

    unreachable = []
    for _, where, rule in _all_rules(room):
        for predicate in rule.requires:
            if predicate.verbs & HANDLER_RECORDED_VERBS and not predicate.secondary:
                continue
            candidates = rules_by_target.get(predicate.target, [])
            if not any(_can_record(c, predicate) for c in candidates):
                unreachable.append((where, predicate))
    return unreachable


def load_prompts(prompts_path: Path) -> dict[str, tuple[str, ...]]:
    """Read the prompt catalogue: name -> text variants."""
    with open(prompts_path) as fh:
        raw = json.load(fh)

    prompts = {}
    for name, variants in raw.items():
        if isinstance(variants, str):
            variants = [variants]
        if not variants:
            raise ContentError(f"prompt {name!r} has no variants")
        prompts[name] = tuple(variants)
    return prompts


def load_world(rooms_path: Path, prompts_path: Path) -> World:
    """Parse rooms.json and prompts.json and return a validated World."""
    with open(rooms_path) as fh:
        raw = json.load(fh)

    default_items = tuple(raw.get("default_items", ("wall", "ceiling", "floor")))
    rooms = {}
    for room_id, room_raw in raw["rooms"].items():
        room = _parse_room(str(room_id), room_raw)
        _validate_room(room, default_items)
        for where, predicate in find_unreachable_predicates(room):
            logger.warning(
                "unreachable_predicate",
                room=room.id,
                rule=where,
                target=predicate.target,
                verbs=sorted(predicate.verbs),
            )
        rooms[room.id] = room

    return World(
        rooms=rooms,
        prompts=load_prompts(prompts_path),
        default_items=default_items,
    )
