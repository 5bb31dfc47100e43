"""Xitzin application factory for Magnificent Escape."""

from importlib import resources
from pathlib import Path

from sqlmodel import SQLModel, create_engine
from xitzin import Xitzin

from .config import Config
from .engine.loader import load_world
from .engine.world import World
from .logging import get_logger

logger = get_logger(__name__)


def _get_data_path(name: str) -> Path:
    """Locate a content file via importlib.resources (works when installed in a venv)."""
    return resources.files("escape.data").joinpath(name)


def load_shipped_world() -> World:
    """Load the rooms and prompts that ship with the package."""
    return load_world(_get_data_path("rooms.json"), _get_data_path("prompts.json"))


def create_app(config: Config | None = None) -> Xitzin:
    """Create and configure the Xitzin application."""
    config = config or Config.from_env()

    templates_dir = Path(__file__).parent / "templates"

    app = Xitzin(
        title="Magnificent Escape",
        version="0.1.0",
        templates_dir=templates_dir,
    )

    engine = create_engine(config.database_url)
    app.state.engine = engine
    app.state.config = config

    @app.on_startup
    async def startup():
        """Initialize database and load the rooms."""
        SQLModel.metadata.create_all(engine)
        logger.debug("database_setup_complete")

        app.state.world = load_shipped_world()
        logger.info(
            "world_loaded",
            rooms=len(app.state.world.rooms),
            items=sum(len(room.items) for room in app.state.world.rooms.values()),
            prompts=len(app.state.world.prompts),
        )
        logger.info("startup_complete")

    from .routes import home, play

    home.register_routes(app)
    play.register_routes(app)

    return app
