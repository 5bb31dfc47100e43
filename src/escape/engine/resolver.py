"""Action resolution: pick the one applicable rule for a target and apply it.

Selection narrows a target's rule list in stages:

1. secondary item: only rules declaring the supplied secondary item, or,
   with no secondary item, only rules declaring none;
2. verb: rules listing the verb, plus rules listing no verbs at all;
3. history: rules whose predicates all hold against the recorded actions.
   When none do, the stage 2 rules without predicates are used instead.

The first survivor in declaration order wins. An empty funnel is not an
error: the outcome comes back unapplied and the state is untouched.
"""

from dataclasses import dataclass, field

from ..logging import get_logger
from .errors import InvalidTargetReference
from .state import (
    ActionRecord,
    RoomState,
    add_record,
    collect_items,
    has_record,
    reveal_items,
    uncollect_items,
)
from .world import ActionRule, PendingContext, TargetKind, TargetRef, World

logger = get_logger(__name__)


@dataclass
class Outcome:
    """What resolving one command did."""

    text: tuple[str, ...] = ()
    rule: ActionRule | None = None
    questioned: bool = False
    failed: bool = False
    secret: bool = False
    win: bool = False
    lose: bool = False
    state_persisted: bool = False
    context: PendingContext | None = None
    revealed: list[str] = field(default_factory=list)
    collected: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def applied(self) -> bool:
        return self.rule is not None

    @property
    def inventory_changed(self) -> bool:
        return bool(self.collected or self.removed)


def _persists(rule: ActionRule, verb: str) -> bool:
    if rule.save_state is None:
        return verb != "look"
    return rule.save_state


class Resolver:
    """Resolves commands against the rules of one World."""

    def __init__(self, world: World):
        self.world = world

    def select(
        self,
        rules: tuple[ActionRule, ...],
        verb: str,
        secondary: str | None,
        room_state: RoomState,
    ) -> ActionRule | None:
        """Run the selection funnel and return the winning rule, if any."""
        candidates = [rule for rule in rules if rule.secondary == secondary]
        candidates = [rule for rule in candidates if rule.matches_verb(verb)]
        satisfied = [
            rule
            for rule in candidates
            if rule.requires
            and all(has_record(room_state, p) for p in rule.requires)
        ]
        if not satisfied:
            satisfied = [rule for rule in candidates if not rule.requires]
        return satisfied[0] if satisfied else None

    def resolve(
        self,
        room_id: str,
        target: TargetRef,
        verb: str,
        secondary: str | None,
        room_state: RoomState,
        direction: str | None = None,
    ) -> Outcome:
        """Apply the selected rule of `target` to `room_state`.

        Raises InvalidTargetReference when the room or target is unknown.
        """
        room = self.world.room(room_id)
        rules = room.rules_for(target)
        if secondary is not None and secondary not in room.items:
            raise InvalidTargetReference("item", secondary, room_id)

        rule = self.select(rules, verb, secondary, room_state)
        if rule is None:
            logger.debug(
                "no_rule", room=room_id, target=target.key, verb=verb,
                secondary=secondary,
            )
            return Outcome()

        logger.debug(
            "rule_selected",
            room=room_id,
            target=target.key,
            verb=verb,
            secondary=secondary,
            index=rules.index(rule),
        )
        outcome = Outcome(
            text=rule.text,
            rule=rule,
            questioned=rule.question,
            failed=rule.failed,
            context=rule.context,
        )

        new_items = [item for item in rule.reveals if item not in room_state.found_items]
        reveal_items(room_state, rule.reveals, direction)
        outcome.revealed = new_items

        if rule.collects:
            outcome.collected = [
                item for item in rule.collects if item not in room_state.collected_items
            ]
            collect_items(room_state, rule.collects)
        if rule.removes:
            outcome.removed = [
                item for item in rule.removes if item in room_state.collected_items
            ]
            uncollect_items(room_state, rule.removes)

        if rule.secret:
            if room_state.secret:
                logger.info("secret_already_claimed", room=room_id, target=target.key)
                outcome.text = self.world.prompts.get(
                    "action_not_supported", ("That didn't work.",)
                )
                outcome.failed = True
            else:
                room_state.secret = True
                outcome.secret = True
                logger.info("secret_found", room=room_id, target=target.key)

        # The first terminal flag set in a room sticks
        if rule.win and not room_state.lose:
            room_state.win = outcome.win = True
            logger.info("room_won", room=room_id, target=target.key)
        if rule.lose and not room_state.win:
            room_state.lose = outcome.lose = True
            logger.info("room_lost", room=room_id, target=target.key)

        if _persists(rule, verb):
            key = room_id if target.kind == TargetKind.ROOM else target.key
            add_record(room_state, key, ActionRecord(verb=verb, secondary=secondary))
            outcome.state_persisted = True

        return outcome
