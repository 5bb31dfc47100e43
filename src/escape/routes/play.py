"""Gameplay routes."""

from contextlib import contextmanager

from sqlmodel import Session
from xitzin import Redirect, Request, Xitzin
from xitzin.auth import get_identity, require_certificate

from ..engine.commands import Response
from ..engine.world import DIRECTIONS
from ..session import EscapeSession, get_or_create_player


@contextmanager
def _game_session(request: Request):
    """Load the player's game session with auto-close."""
    identity = get_identity(request)
    config = request.app.state.config
    db_session = Session(request.app.state.engine)
    try:
        player = get_or_create_player(
            db_session, identity.fingerprint,
        )
        world = request.app.state.world
        yield EscapeSession.load_or_create(
            db_session,
            player,
            world,
            strict=config.strict_state,
            hint_limit=config.hint_limit,
        )
    finally:
        db_session.close()


def _render_play(app: Xitzin, game: EscapeSession, response: Response | None = None):
    """Render the main play view."""
    return app.template(
        "play.gmi",
        message=response.text if response else "",
        closed=response.closed if response else False,
        room=game.room_name,
        rooms=game.rooms,
        directions=DIRECTIONS,
        inventory=game.inventory,
        turns=game.state.player.total_turns,
    )


def _play_turn(app: Xitzin, request: Request, raw: str):
    with _game_session(request) as game:
        response = game.process_command(raw)
        game.save()
        return _render_play(app, game, response)


def _register_action_routes(app: Xitzin) -> None:
    """Register command and movement routes."""

    @app.gemini("/play", name="play")
    @require_certificate
    def play(request: Request):
        """Main game view."""
        with _game_session(request) as game:
            game.save()
            return _render_play(app, game)

    @app.gemini("/room/{room_id}", name="room")
    @require_certificate
    def room(request: Request, room_id: str):
        """Enter a room from the lobby list."""
        return _play_turn(app, request, f"play {room_id}")

    @app.gemini("/go/{direction}", name="go")
    @require_certificate
    def go(request: Request, direction: str):
        """Look towards a direction via clickable link."""
        return _play_turn(app, request, direction)

    @app.input("/cmd", prompt="What do you want to do?", name="cmd")
    @require_certificate
    def cmd(request: Request, query: str):
        """Freeform command entry."""
        return _play_turn(app, request, query)

    @app.gemini("/look", name="look")
    @require_certificate
    def look(request: Request):
        """Look around the room."""
        return _play_turn(app, request, "look around")

    @app.gemini("/hint", name="hint")
    @require_certificate
    def hint(request: Request):
        return _play_turn(app, request, "hint")


def _register_info_routes(app: Xitzin) -> None:
    """Register inventory, stats, and game management routes."""

    @app.gemini("/inventory", name="inventory")
    @require_certificate
    def inventory(request: Request):
        """Show carried items."""
        return _play_turn(app, request, "inventory")

    @app.gemini("/stats", name="stats")
    @require_certificate
    def stats(request: Request):
        return _play_turn(app, request, "stats")

    @app.gemini("/lobby", name="lobby")
    @require_certificate
    def lobby(request: Request):
        """Leave the current room."""
        return _play_turn(app, request, "lobby")

    @app.input(
        "/new",
        prompt="Are you sure you want to forget every room? Type YES to confirm:",
        name="new_game",
    )
    @require_certificate
    def new_game(request: Request, query: str):
        """Reset game with confirmation."""
        with _game_session(request) as game:
            if query.strip().upper() == "YES":
                game.reset()
                game.save()
                return _render_play(
                    app, game, Response("Every room is locked again."),
                )
            return Redirect("/play")


def register_routes(app: Xitzin) -> None:
    """Register gameplay routes."""
    _register_action_routes(app)
    _register_info_routes(app)
