"""Shared test fixtures for Magnificent Escape."""

import itertools
import random
from pathlib import Path

import pytest
from sqlmodel import Session, SQLModel, create_engine

from escape.app import create_app, load_shipped_world
from escape.config import Config
from escape.engine.commands import run_command
from escape.engine.state import GameState, new_game_state
from escape.engine.world import World
from escape.models import Player


@pytest.fixture
def world() -> World:
    return load_shipped_world()


@pytest.fixture
def state(world: World) -> GameState:
    return new_game_state(world)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


@pytest.fixture
def send(world: World, state: GameState, rng: random.Random):
    """Run typed commands against `state`, ten seconds apart."""
    clock = itertools.count(1_000_000, 10)

    def _send(raw: str):
        return run_command(world, state, raw, now=next(clock), rng=rng)

    return _send


@pytest.fixture
def office(send, state: GameState) -> GameState:
    """A game standing in the Office, facing the door."""
    send("play office")
    return state


@pytest.fixture
def db_engine(tmp_path: Path):
    db_url = f"sqlite:///{tmp_path}/test.db"
    engine = create_engine(db_url)
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine):
    with Session(db_engine) as session:
        yield session


@pytest.fixture
def test_player(db_session: Session) -> Player:
    player = Player(fingerprint="test-fingerprint-abc123")
    db_session.add(player)
    db_session.commit()
    db_session.refresh(player)
    return player


@pytest.fixture
def test_config(tmp_path: Path) -> Config:
    return Config(database_url=f"sqlite:///{tmp_path}/test.db", strict_state=True)


@pytest.fixture
def app(test_config: Config):
    return create_app(test_config)


@pytest.fixture
def client(app):
    from xitzin.testing import test_app

    with test_app(app) as client:
        yield client


@pytest.fixture
def auth_client(client):
    return client.with_certificate("test-fingerprint-abc123")
