"""Session layer bridging the game engine and database.

A turn loads the player's GameState once, runs one command against it
and saves it once. Nothing else touches the stored state in between.
"""

import datetime as dt
import pickle
import zlib

from sqlmodel import Session, select

from .engine.commands import Response, run_command
from .engine.errors import EscapeError
from .engine.rewards import HINT_LIMIT
from .engine.state import GameState, check_room_state, new_game_state
from .engine.world import Room, World
from .logging import bind_turn, get_logger
from .models import Player, SavedGame

logger = get_logger(__name__)

# Shown instead of diagnostics when a turn cannot be resolved
GENERIC_FAILURE = "Sorry, something went wrong. Try something else."


def get_or_create_player(session: Session, fingerprint: str) -> Player:
    """Get existing player or create new one from certificate fingerprint."""
    statement = select(Player).where(Player.fingerprint == fingerprint)
    player = session.exec(statement).first()

    if player:
        player.last_seen = dt.datetime.now(dt.UTC)
        logger.debug("player_accessed", fingerprint=fingerprint)
    else:
        player = Player(fingerprint=fingerprint)
        session.add(player)
        logger.info("player_created", fingerprint=fingerprint)

    session.commit()
    session.refresh(player)
    return player


class EscapeSession:
    """Wraps a Player + SavedGame + in-memory GameState."""

    def __init__(
        self,
        db_session: Session,
        player: Player,
        saved_game: SavedGame | None,
        game_state: GameState,
        world: World,
        hint_limit: int = HINT_LIMIT,
    ):
        self.db_session = db_session
        self.player = player
        self.saved_game = saved_game
        self.state = game_state
        self.world = world
        self.hint_limit = hint_limit

    @classmethod
    def load_or_create(
        cls,
        db_session: Session,
        player: Player,
        world: World,
        strict: bool = False,
        hint_limit: int = HINT_LIMIT,
    ) -> "EscapeSession":
        """Load existing save or create a fresh game.

        Every stored room state is checked on load; `strict` makes a
        violation raise StateCorruption instead of being repaired.
        """
        statement = select(SavedGame).where(SavedGame.player_id == player.id)
        saved_game = db_session.exec(statement).first()

        if saved_game:
            game_state = pickle.loads(zlib.decompress(saved_game.state_blob))
            for room_id, room_state in game_state.player.rooms.items():
                check_room_state(room_state, room_id, world.default_items, strict=strict)
            logger.debug(
                "game_loaded",
                fingerprint=player.fingerprint,
                turns=game_state.player.total_turns,
            )
        else:
            game_state = new_game_state(world)
            logger.info("new_game_started", fingerprint=player.fingerprint)

        return cls(db_session, player, saved_game, game_state, world, hint_limit)

    def process_command(self, raw_input: str) -> Response:
        """Delegate to the engine and return its response.

        A turn the engine cannot resolve leaves no trace: the state is put
        back to what it was before the turn, so a following save() stores
        nothing from it.
        """
        before = pickle.dumps(self.state)
        turn = self.state.player.total_turns + 1
        with bind_turn(self.player.fingerprint, turn):
            try:
                return run_command(
                    self.world, self.state, raw_input, hint_limit=self.hint_limit
                )
            except EscapeError:
                logger.exception("turn_failed", room=self.state.conversation.room_id)
                self.state = pickle.loads(before)
                return Response(GENERIC_FAILURE, failed=True)

    def save(self) -> None:
        """Serialize state back to the database."""
        now = dt.datetime.now(dt.UTC)
        blob = zlib.compress(pickle.dumps(self.state))
        player = self.state.player

        if self.saved_game is None:
            self.saved_game = SavedGame(
                player_id=self.player.id,
                state_blob=blob,
                started_at=now,
            )
            self.db_session.add(self.saved_game)
        else:
            self.saved_game.state_blob = blob
        self.saved_game.total_turns = player.total_turns
        self.saved_game.rooms_won = player.rooms_won
        self.saved_game.secrets_found = player.secrets_found
        self.saved_game.room_id = self.state.conversation.room_id
        self.saved_game.last_played = now

        self.db_session.commit()
        logger.debug(
            "game_saved",
            fingerprint=self.player.fingerprint,
            turns=player.total_turns,
            room=self.state.conversation.room_id,
        )

    @property
    def room_name(self) -> str | None:
        room_id = self.state.conversation.room_id
        return self.world.room(room_id).name if room_id else None

    @property
    def rooms(self) -> list[Room]:
        """Every room in lobby order."""
        return list(self.world.rooms.values())

    @property
    def inventory(self) -> list[str]:
        room_state = self.state.room_state
        return list(room_state.collected_items) if room_state else []

    def reset(self) -> None:
        """Reset to a fresh game."""
        self.state = new_game_state(self.world)
        if self.saved_game:
            self.db_session.delete(self.saved_game)
            self.db_session.commit()
            self.saved_game = None
        logger.info("game_reset", fingerprint=self.player.fingerprint)
