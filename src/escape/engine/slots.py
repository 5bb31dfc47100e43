"""Multi-turn collection of a missing command parameter.

A request starts at AWAITING_FIRST and moves one stage forward on every
turn the parameter is still missing. Each stage asks more helpfully than
the last; the fourth miss abandons the request and closes the
conversation.
"""

from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum, IntEnum

from ..logging import get_logger
from .prompts import oxford_list, with_article

logger = get_logger(__name__)

# Candidates offered on the second prompt
MAX_CANDIDATES = 2


class SlotStage(IntEnum):
    AWAITING_FIRST = 1
    AWAITING_SECOND = 2
    AWAITING_THIRD = 3
    ABANDONED = 4


class Slot(Enum):
    """The parameter being collected, named after its prompt family."""

    LOOK = "slot_filling_look"
    USE = "slot_filling_use"
    USE_ON = "slot_filling_use_on"
    DIRECTION = "slot_filling_direction"
    ROOM = "slot_filling_room"
    DIFFICULTY = "slot_filling_room_difficulty"
    SINGLE_USE = "slot_filling_single_use"
    SINGLE_USE_INTENT = "slot_filling_single_use_intent"
    ON_OFF = "slot_filling_on_off"

    @property
    def prompt_id(self) -> str:
        return self.value

    @property
    def bare_candidates(self) -> bool:
        """Candidates that read naturally without an article."""
        return self in (Slot.DIRECTION, Slot.ROOM, Slot.DIFFICULTY, Slot.ON_OFF)


@dataclass(frozen=True)
class SlotRequest:
    """An outstanding request for one parameter of a command.

    `held` is the part of the command already supplied: the tool for
    USE_ON, the target for USE.
    """

    slot: Slot
    verb: str
    stage: SlotStage = SlotStage.AWAITING_FIRST
    held: str | None = None
    intent: str | None = None

    @property
    def abandoned(self) -> bool:
        return self.stage == SlotStage.ABANDONED

    def same_request(self, other: "SlotRequest") -> bool:
        return (self.slot, self.verb, self.held) == (other.slot, other.verb, other.held)

    def advance(self) -> "SlotRequest":
        return replace(self, stage=SlotStage(min(self.stage + 1, SlotStage.ABANDONED)))

    def complete(self, value: str) -> tuple[str, str | None, str | None]:
        """The (verb, primary, secondary) command once `value` is known."""
        match self.slot:
            case Slot.USE_ON:
                return self.verb, value, self.held
            case Slot.USE if self.held:
                return self.verb, self.held, value
            case _:
                return self.verb, value, None


@dataclass(frozen=True)
class SlotPrompt:
    request: SlotRequest
    text: str

    @property
    def closed(self) -> bool:
        return self.request.abandoned


def request_slot(
    current: SlotRequest | None,
    slot: Slot,
    verb: str,
    held: str | None = None,
    intent: str | None = None,
) -> SlotRequest:
    """Start a request, or advance the current one if it asks the same thing."""
    request = SlotRequest(slot=slot, verb=verb, held=held, intent=intent)
    if current is not None and current.same_request(request):
        return current.advance()
    return request


def prompt_for(
    request: SlotRequest,
    candidates,
    defaults,
    say: Callable[..., str],
) -> SlotPrompt:
    """Build the prompt for the request's current stage.

    `candidates` are the room's relevant found items, most recent first;
    `defaults` is the fallback set offered once those run out. `say(name,
    *args)` renders a named prompt.
    """
    prompt_id = request.slot.prompt_id

    def ask_again() -> str:
        if request.intent:
            return say(f"{prompt_id}2", request.intent)
        return say(f"{prompt_id}2")

    def offer_defaults() -> str:
        return say(f"{prompt_id}_try_items", oxford_list(defaults, "or"))

    match request.stage:
        case SlotStage.AWAITING_FIRST:
            if request.intent:
                text = say(f"{prompt_id}1", request.intent)
            else:
                text = say(f"{prompt_id}1")
        case SlotStage.AWAITING_SECOND:
            items = [item for item in candidates if item not in defaults]
            items = items[:MAX_CANDIDATES]
            if not request.slot.bare_candidates:
                items = [with_article(item) for item in items]
            if items:
                offer = say(f"{prompt_id}_items", oxford_list(items, "and"))
                text = f"{say('fallback1_sorry')} {offer} {ask_again()}"
            elif defaults:
                text = f"{say('fallback1_sorry')} {offer_defaults()} {ask_again()}"
            else:
                text = f"{say('fallback1_still_sorry')} {ask_again()}"
        case SlotStage.AWAITING_THIRD:
            if defaults:
                text = f"{offer_defaults()} {ask_again()}"
            else:
                text = f"{say('fallback1_still_sorry')} {ask_again()}"
        case _:
            logger.info("slot_abandoned", slot=request.slot.name, verb=request.verb)
            text = say("fallback3")
    return SlotPrompt(request=request, text=text)
