"""Database models for Magnificent Escape."""

import datetime as dt

from sqlmodel import Field, SQLModel


class Player(SQLModel, table=True):
    """Someone playing, known only by their client certificate."""

    id: int | None = Field(default=None, primary_key=True)
    fingerprint: str = Field(unique=True, index=True)
    created_at: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(dt.UTC)
    )
    last_seen: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(dt.UTC)
    )


class SavedGame(SQLModel, table=True):
    """A player's pickled GameState plus a few columns copied out of it.

    The copied columns are for looking at saves without unpickling them;
    the blob is the only thing read back.
    """

    id: int | None = Field(default=None, primary_key=True)
    player_id: int = Field(foreign_key="player.id", unique=True, index=True)
    state_blob: bytes  # zlib-compressed pickle of GameState
    total_turns: int = 0
    rooms_won: int = 0
    secrets_found: int = 0
    room_id: str | None = None
    started_at: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(dt.UTC)
    )
    last_played: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(dt.UTC)
    )
