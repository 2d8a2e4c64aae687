from datetime import timezone

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, BigInteger, Float, JSON, UniqueConstraint, event
)
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

ELO_FLOOR = 1


def _epoch_ms(moment):
    """Naive datetimes are stored as UTC"""
    if moment is None:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


class User(Base):
    __tablename__ = 'users'

    id = Column(String(64), primary_key=True)  # Steam id
    discord_id = Column(String(32), nullable=True, index=True)

    # Newest pilot name first
    pilot_names = Column(MutableList.as_mutable(JSON), default=list, nullable=False)

    # Rating
    elo = Column(Float, nullable=False, default=2000)
    max_elo = Column(Float, nullable=False, default=2000)
    rank = Column(Integer, nullable=True, index=True)  # Only set for rank-eligible users
    kills = Column(Integer, default=0, nullable=False)
    deaths = Column(Integer, default=0, nullable=False)
    team_kills = Column(Integer, default=0, nullable=False)

    # Append-only logs
    elo_history = Column(MutableList.as_mutable(JSON), default=list, nullable=False)  # [{time, elo}]
    history = Column(MutableList.as_mutable(JSON), default=list, nullable=False)      # Human-readable lines

    # Moderation
    is_banned = Column(Boolean, default=False, nullable=False)
    is_baha_banned = Column(Boolean, default=False, nullable=False)
    ignore_kills_against_users = Column(MutableList.as_mutable(JSON), default=list, nullable=False)

    # Online time
    login_times = Column(MutableList.as_mutable(JSON), default=list, nullable=False)
    logout_times = Column(MutableList.as_mutable(JSON), default=list, nullable=False)
    sessions = Column(MutableList.as_mutable(JSON), default=list, nullable=False)  # [{start_time, end_time}]

    # Metadata
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self):
        name = self.pilot_names[0] if self.pilot_names else 'Unknown'
        return f"<User(id='{self.id}', name='{name}', elo={self.elo}, rank={self.rank})>"


class KillRecord(Base):
    """Immutable kill record; ``payload`` holds the full validated event."""
    __tablename__ = 'kills'

    id = Column(String(64), primary_key=True)
    season = Column(Integer, nullable=False, index=True)
    time = Column(BigInteger, nullable=False, index=True)  # epoch ms
    killer_id = Column(String(64), nullable=False, index=True)
    victim_id = Column(String(64), nullable=False, index=True)
    weapon = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=False)

    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<KillRecord(id='{self.id}', killer='{self.killer_id}', victim='{self.victim_id}', season={self.season})>"


class DeathRecord(Base):
    """Immutable death record; ``kill_id`` links a death already priced by a kill."""
    __tablename__ = 'deaths'

    id = Column(String(64), primary_key=True)
    season = Column(Integer, nullable=False, index=True)
    time = Column(BigInteger, nullable=False, index=True)
    victim_id = Column(String(64), nullable=False, index=True)
    kill_id = Column(String(64), nullable=True)
    payload = Column(JSON, nullable=False)

    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<DeathRecord(id='{self.id}', victim='{self.victim_id}', kill_id='{self.kill_id}')>"


class Season(Base):
    __tablename__ = 'seasons'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    started = Column(DateTime, nullable=True)
    ended = Column(DateTime, nullable=True)
    active = Column(Boolean, default=False, nullable=False, index=True)
    total_ranked_users = Column(Integer, default=0, nullable=False)

    @property
    def start_ms(self):
        return _epoch_ms(self.started)

    @property
    def end_ms(self):
        return _epoch_ms(self.ended)

    def __repr__(self):
        return f"<Season(id={self.id}, name='{self.name}', active={self.active})>"


class SeasonStats(Base):
    """A pilot's final numbers for an ended season, archived by its last replay"""
    __tablename__ = 'end_of_season_stats'
    __table_args__ = (UniqueConstraint('season_id', 'user_id'),)

    id = Column(Integer, primary_key=True)
    season_id = Column(Integer, nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    elo = Column(Float, nullable=False)
    rank = Column(Integer, nullable=True)
    kills = Column(Integer, default=0, nullable=False)
    deaths = Column(Integer, default=0, nullable=False)
    team_kills = Column(Integer, default=0, nullable=False)
    history = Column(Text, default='', nullable=False)

    def __repr__(self):
        return f"<SeasonStats(season_id={self.season_id}, user_id='{self.user_id}', elo={self.elo})>"


class ReplayRun(Base):
    """One orchestrated replay cycle"""
    __tablename__ = 'replay_runs'

    id = Column(Integer, primary_key=True)
    season_id = Column(Integer, nullable=True)
    started_at = Column(DateTime, nullable=False)
    finished_at = Column(DateTime, nullable=True)
    exit_code = Column(Integer, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    multiplier_count = Column(Integer, default=0)
    users_updated = Column(Integer, default=0)
    error = Column(Text, nullable=True)

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and not self.error

    def __repr__(self):
        return f"<ReplayRun(id={self.id}, season={self.season_id}, exit_code={self.exit_code})>"


class Configuration(Base):
    """Runtime overrides, JSON-encoded values keyed like ``elo.max_steal_points``"""
    __tablename__ = 'configurations'

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Configuration(key='{self.key}', value={self.value})>"


class AuditLog(Base):
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    user_id = Column(BigInteger, nullable=False)
    action = Column(String(50), nullable=False)
    details = Column(Text)
    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<AuditLog(user_id={self.user_id}, action='{self.action}')>"


# ============================================================================
# SQLAlchemy Event Listeners for Rating Floor Enforcement
# ============================================================================

@event.listens_for(User, "before_insert")
@event.listens_for(User, "before_update")
def _apply_elo_floor(mapper, connection, target):
    """Ratings never drop below the floor, whatever path wrote them"""
    if target.elo is not None and target.elo < ELO_FLOOR:
        target.elo = ELO_FLOOR
    if target.max_elo is None or (target.elo is not None and target.max_elo < target.elo):
        target.max_elo = target.elo
