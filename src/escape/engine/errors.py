"""Exceptions raised by the escape engine."""


class EscapeError(Exception):
    """Base class for engine errors."""


class ContentError(EscapeError, ValueError):
    """Room or prompt content is malformed or references unknown entities."""


class InvalidTargetReference(EscapeError, LookupError):
    """A room, direction or item id is absent from the loaded world."""

    def __init__(self, kind: str, key: str, room_id: str | None = None):
        self.kind = kind
        self.key = key
        self.room_id = room_id
        where = f" in room {room_id}" if room_id else ""
        super().__init__(f"unknown {kind} {key!r}{where}")


class StateCorruption(EscapeError):
    """Persisted room state violates one of its invariants."""

    def __init__(self, room_id: str, problems: list[str]):
        self.room_id = room_id
        self.problems = problems
        super().__init__(f"room {room_id}: " + "; ".join(problems))
