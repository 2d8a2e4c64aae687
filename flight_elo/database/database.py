from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Iterable, List, Optional

from sqlalchemy import delete, select, update, or_
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from flight_elo.config import Config
from flight_elo.data_models.events import Death, Kill
from flight_elo.data_models.user_state import UserState
from flight_elo.database.models import (
    Base, User, KillRecord, DeathRecord, Season, SeasonStats, ReplayRun
)
from flight_elo.utils.elo_exceptions import NoActiveSeasonError
from flight_elo.utils.logger import setup_logger

# Copied between the User row and UserState in both directions
_USER_FIELDS = (
    'discord_id', 'pilot_names', 'elo', 'max_elo', 'rank', 'kills', 'deaths', 'team_kills',
    'elo_history', 'history', 'is_banned', 'is_baha_banned', 'ignore_kills_against_users',
    'login_times', 'logout_times', 'sessions',
)
_LIST_FIELDS = frozenset({
    'pilot_names', 'elo_history', 'history', 'ignore_kills_against_users',
    'login_times', 'logout_times', 'sessions',
})
# Columns a season replay rebuilds; everything else belongs to the live path
_REPLAY_FIELDS = ('elo', 'max_elo', 'rank', 'kills', 'deaths', 'elo_history', 'history')


def _to_state(user: User) -> UserState:
    values = {}
    for name in _USER_FIELDS:
        value = getattr(user, name)
        values[name] = list(value or []) if name in _LIST_FIELDS else value
    return UserState(id=user.id, **values)


def _apply_state(user: User, state: UserState, fields=_USER_FIELDS):
    for name in fields:
        value = getattr(state, name)
        setattr(user, name, list(value) if name in _LIST_FIELDS else value)


class Database:
    def __init__(self, database_url: str = None):
        self.logger = setup_logger(__name__)
        self.database_url = Config.get_async_database_url(database_url)
        self.engine = None
        self.async_session = None

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        self.engine = create_async_engine(
            self.database_url,
            echo=Config.DEBUG,
            future=True
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @property
    def session_factory(self):
        return self.async_session

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        Everything done with the yielded session commits together on success
        or rolls back together on failure. Exceptions must be allowed to
        propagate out of the context for the rollback to happen.
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # User operations
    async def get_user(self, user_id: str) -> Optional[UserState]:
        """Get a user's working state by id"""
        async with self.get_session() as session:
            user = await session.get(User, user_id)
            return _to_state(user) if user else None

    async def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserState]:
        async with self.get_session() as session:
            result = await session.execute(select(User).where(User.id.in_(list(user_ids))))
            return {user.id: _to_state(user) for user in result.scalars().all()}

    async def create_user(self, user_id: str, pilot_name: str = None, base_elo: float = None) -> UserState:
        """Create a new user at the base rating"""
        state = UserState.new(user_id, Config.BASE_ELO if base_elo is None else base_elo, pilot_name)
        await self.update_user(state)
        return state

    async def update_user(self, state: UserState):
        """Insert or update one user"""
        await self.save_users([state])

    async def save_users(self, states: List[UserState], session: AsyncSession = None):
        """Upsert several users in one transaction"""
        if session is None:
            async with self.transaction() as session:
                await self._save_users(session, states)
        else:
            await self._save_users(session, states)

    async def _save_users(self, session: AsyncSession, states: List[UserState]):
        if not states:
            return
        result = await session.execute(select(User).where(User.id.in_([s.id for s in states])))
        existing = {user.id: user for user in result.scalars().all()}
        for state in states:
            user = existing.get(state.id)
            if user is None:
                user = User(id=state.id)
                session.add(user)
                existing[state.id] = user
            _apply_state(user, state)

    async def bulk_update_users(self, states: List[UserState], batch_size: int = None) -> int:
        """
        Write replay results back in batches, one transaction per batch.

        Only the rating columns are written: elo, max_elo, rank, kills, deaths,
        elo_history and history. Team kills, bans, names and sessions keep
        whatever the live path stored while the replay was running. Rows are
        re-read inside each batch transaction, so those columns are current.

        Returns:
            Number of users written
        """
        batch_size = batch_size or Config.REPLAY_BATCH_SIZE
        written = 0
        for start in range(0, len(states), batch_size):
            batch = states[start:start + batch_size]
            async with self.transaction() as session:
                result = await session.execute(select(User).where(User.id.in_([s.id for s in batch])))
                existing = {user.id: user for user in result.scalars().all()}
                for state in batch:
                    user = existing.get(state.id)
                    if user is None:
                        self.logger.warning(f"User {state.id} vanished during replay, not written")
                        continue
                    _apply_state(user, state, _REPLAY_FIELDS)
                    written += 1
            self.logger.debug(f"Wrote user batch {start // batch_size + 1} ({len(batch)} users)")
        return written

    async def load_replay_users(self, base_elo: float) -> List[UserState]:
        """Users with any activity this season, ordered by id"""
        async with self.get_session() as session:
            result = await session.execute(
                select(User)
                .where(or_(
                    User.kills > 0,
                    User.deaths > 0,
                    User.elo != base_elo,
                    User.team_kills > 0,
                ))
                .order_by(User.id)
            )
            users = {user.id: _to_state(user) for user in result.scalars().all()}

            # Session-only users matter for login/logout history lines
            result = await session.execute(select(User).order_by(User.id))
            for user in result.scalars().all():
                if user.id not in users and (user.login_times or user.logout_times or user.sessions):
                    users[user.id] = _to_state(user)

        return [users[user_id] for user_id in sorted(users)]

    # Kill and death operations
    async def add_kill(self, kill: Kill):
        async with self.transaction() as session:
            session.add(KillRecord(
                id=kill.id,
                season=kill.season,
                time=kill.time,
                killer_id=kill.killer.owner_id,
                victim_id=kill.victim.owner_id,
                weapon=int(kill.weapon),
                payload=kill.to_dict(),
            ))

    async def add_death(self, death: Death):
        async with self.transaction() as session:
            session.add(DeathRecord(
                id=death.id,
                season=death.season,
                time=death.time,
                victim_id=death.victim.owner_id,
                kill_id=death.kill_id,
                payload=death.to_dict(),
            ))

    async def stream_kills(self, season_id: int = None, batch_size: int = 1000) -> AsyncIterator[dict]:
        """Yield raw kill payloads in time order without loading them all"""
        query = select(KillRecord.payload).order_by(KillRecord.time, KillRecord.id)
        if season_id is not None:
            query = query.where(KillRecord.season == season_id)
        async for payload in self._stream(query, batch_size):
            yield payload

    async def stream_deaths(self, season_id: int = None, batch_size: int = 1000) -> AsyncIterator[dict]:
        """Yield raw death payloads in time order without loading them all"""
        query = select(DeathRecord.payload).order_by(DeathRecord.time, DeathRecord.id)
        if season_id is not None:
            query = query.where(DeathRecord.season == season_id)
        async for payload in self._stream(query, batch_size):
            yield payload

    async def _stream(self, query, batch_size: int):
        async with self.get_session() as session:
            result = await session.stream_scalars(query.execution_options(yield_per=batch_size))
            async for payload in result:
                yield payload

    # Season operations
    async def create_season(self, season_id: int, name: str, started: datetime = None,
                            active: bool = True) -> Season:
        """Create a season; an active one deactivates every other season"""
        async with self.transaction() as session:
            if active:
                await session.execute(update(Season).values(active=False))
            season = Season(id=season_id, name=name, started=started, active=active)
            session.add(season)
        return season

    async def get_active_season(self) -> Season:
        async with self.get_session() as session:
            result = await session.execute(select(Season).where(Season.active == True))
            season = result.scalars().first()
        if season is None:
            raise NoActiveSeasonError()
        return season

    async def get_season(self, season_id: int) -> Optional[Season]:
        async with self.get_session() as session:
            return await session.get(Season, season_id)

    async def end_season(self, season_id: int, ended: datetime = None) -> Optional[Season]:
        """Mark a season as over; returns None if it does not exist"""
        async with self.transaction() as session:
            season = await session.get(Season, season_id)
            if season is None:
                return None
            season.active = False
            season.ended = ended or datetime.now(timezone.utc).replace(tzinfo=None)
        self.logger.info(f"Season {season_id} ended at {season.ended}")
        return season

    async def store_season_stats(self, season_id: int, states: List[UserState]) -> int:
        """Replace the end-of-season archive for ``season_id`` with ``states``"""
        async with self.transaction() as session:
            await session.execute(delete(SeasonStats).where(SeasonStats.season_id == season_id))
            session.add_all([
                SeasonStats(
                    season_id=season_id,
                    user_id=state.id,
                    elo=state.elo,
                    rank=state.rank,
                    kills=state.kills,
                    deaths=state.deaths,
                    team_kills=state.team_kills,
                    history="\n".join(state.history),
                )
                for state in states
            ])
        return len(states)

    async def get_season_stats(self, user_id: str, season_id: int) -> Optional[SeasonStats]:
        async with self.get_session() as session:
            result = await session.execute(
                select(SeasonStats).where(SeasonStats.user_id == user_id, SeasonStats.season_id == season_id)
            )
            return result.scalar_one_or_none()

    async def set_total_ranked_users(self, season_id: int, total: int):
        async with self.transaction() as session:
            await session.execute(
                update(Season).where(Season.id == season_id).values(total_ranked_users=total)
            )

    # Replay bookkeeping
    async def record_replay_run(self, **fields) -> ReplayRun:
        async with self.transaction() as session:
            run = ReplayRun(**fields)
            session.add(run)
        return run

    async def get_replay_runs(self, limit: int = 10) -> List[ReplayRun]:
        async with self.get_session() as session:
            result = await session.execute(
                select(ReplayRun).order_by(ReplayRun.started_at.desc()).limit(limit)
            )
            return result.scalars().all()
