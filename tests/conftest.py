"""Pytest configuration and fixtures."""

import os
import tempfile

# Keep test runs from littering the working directory with log files
os.environ.setdefault('LOG_DIR', os.path.join(tempfile.gettempdir(), 'flight_elo_test_logs'))

import itertools

import pytest

from flight_elo.data_models.events import (
    Aircraft, AircraftSnapshot, Death, Kill, Team, Vector3, Weapon
)
from flight_elo.data_models.settings import EloSettings
from flight_elo.data_models.user_state import UserState
from flight_elo.database.database import Database

BASE_TIME = 1_700_000_000_000
NM = 1852


@pytest.fixture
async def database(tmp_path):
    """File-backed SQLite database, fresh for every test."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
async def season(database):
    return await database.create_season(1, "Season 1")


@pytest.fixture
def settings():
    return EloSettings()


@pytest.fixture
def make_user():
    def factory(user_id: str, elo: float = 2000, name: str = None, **kwargs) -> UserState:
        user = UserState.new(user_id, elo, name or f"pilot-{user_id}")
        for key, value in kwargs.items():
            setattr(user, key, value)
        return user
    return factory


@pytest.fixture
def make_kill():
    counter = itertools.count(1)

    def factory(killer_id: str = "killer", victim_id: str = "victim", *,
                weapon: Weapon = Weapon.AIM120,
                killer_type: Aircraft = Aircraft.FA26B, victim_type: Aircraft = Aircraft.FA26B,
                killer_team: Team = Team.ALLIED, victim_team: Team = Team.ENEMY,
                distance_m: float = 1000.0, occupants=None,
                time: int = None, season: int = 1, kill_id: str = None) -> Kill:
        n = next(counter)
        return Kill(
            id=kill_id or f"kill-{n}",
            killer=AircraftSnapshot(
                owner_id=killer_id, type=killer_type, team=killer_team,
                occupants=(killer_id,), position=Vector3(0.0, 1000.0, 0.0),
            ),
            victim=AircraftSnapshot(
                owner_id=victim_id, type=victim_type, team=victim_team,
                occupants=(victim_id,) if occupants is None else tuple(occupants),
                position=Vector3(distance_m, 500.0, 0.0),
            ),
            weapon=weapon,
            time=BASE_TIME + n * 1000 if time is None else time,
            season=season,
        )
    return factory


@pytest.fixture
def make_death():
    counter = itertools.count(1)

    def factory(victim_id: str = "victim", *, kill_id: str = None,
                time: int = None, season: int = 1) -> Death:
        n = next(counter)
        return Death(
            id=f"death-{n}",
            victim=AircraftSnapshot(owner_id=victim_id, type=Aircraft.FA26B, team=Team.ENEMY,
                                    occupants=(victim_id,)),
            time=BASE_TIME + n * 1000 + 500 if time is None else time,
            season=season,
            kill_id=kill_id,
        )
    return factory
