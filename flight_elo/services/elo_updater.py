"""
Live rating updates.

Applies one kill, death or session event at a time against persisted users,
using the most recent multiplier table produced by the hourly replay.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from flight_elo.config import Config
from flight_elo.data_models.events import Death, Kill, SessionAction, SessionActionType
from flight_elo.data_models.settings import EloSettings
from flight_elo.data_models.user_state import UserState
from flight_elo.operations.elo_rules import EloOutcome, EloRules, EloUpdateResult
from flight_elo.services.base import BaseService
from flight_elo.utils.elo_exceptions import MissingUserError
from flight_elo.utils.logger import setup_logger
from flight_elo.utils.multipliers import MultiplierTable

logger = setup_logger(__name__)


class UserLocks:
    """
    One asyncio.Lock per user id, created on demand.

    Locks for several users are always taken in sorted id order so two events
    touching the same pair cannot deadlock.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, *user_ids: str):
        locks = [self._lock_for(user_id) for user_id in sorted(set(user_ids))]
        acquired = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def __len__(self):
        return len(self._locks)


class LiveEloService(BaseService):
    """Applies live events to the user store"""

    def __init__(self, database, config_service=None, settings: EloSettings = None):
        super().__init__(database.session_factory)
        self.db = database
        self.config_service = config_service
        self._settings = settings
        self._multipliers = MultiplierTable()
        self.locks = UserLocks()

    @property
    def settings(self) -> EloSettings:
        if self._settings is not None:
            return self._settings
        if self.config_service is not None:
            return self.config_service.get_elo_settings()
        return EloSettings.from_config()

    @property
    def multipliers(self) -> MultiplierTable:
        return self._multipliers

    def set_multipliers(self, table: MultiplierTable):
        """Swap in a new multiplier table; in-flight events keep the one they started with."""
        self._multipliers = table
        logger.info(f"Multiplier table replaced ({len(table)} kill categories)")

    async def update_elo_for_kill(self, kill: Kill) -> EloUpdateResult:
        """
        Apply a kill to the killer and victim records.

        A missing killer or victim rejects the event without writing anything.
        """
        killer_id, victim_id = kill.killer.owner_id, kill.victim.owner_id
        multipliers = self._multipliers
        rules = EloRules(self.settings)

        async with self.locks.hold(killer_id, victim_id):
            users = await self.db.get_users([killer_id, victim_id])
            try:
                killer = self._require_user(users, killer_id, "killer")
                victim = self._require_user(users, victim_id, "victim")
            except MissingUserError as e:
                logger.error(f"Kill {kill.id} rejected: {e}")
                return EloUpdateResult.rejected()

            start_killer, start_victim = killer.elo, victim.elo
            result = rules.apply_kill(kill, killer, victim, multipliers, track_team_kills=True)

            if result.outcome == EloOutcome.REJECTED:
                logger.info(f"Kill {kill.id} by {killer.display_name} is not valid, ignoring")
                return result

            await self.execute_with_retry(lambda: self.db.save_users([killer, victim]))

        if result.outcome == EloOutcome.COUNTED:
            logger.info(
                f"Killer {killer.display_name} ({start_killer:.1f}) killed victim "
                f"{victim.display_name} ({start_victim:.1f}) for {result.elo_steal:.1f} ELO"
            )
        elif result.outcome == EloOutcome.TEAM_KILL:
            logger.info(f"User {killer.display_name} killed a teammate, lost {result.elo_steal:.1f} ELO")
            if killer.is_banned:
                logger.warning(f"User {killer.display_name} ({killer.id}) is banned for team killing")
        elif result.outcome == EloOutcome.DROPPED:
            logger.info(
                f"Victim {victim.display_name} was too far away from {killer.display_name}, CFIT dropped"
            )
        else:
            logger.debug(f"Kill {kill.id}: {result.outcome.value}")
        return result

    async def update_elo_for_death(self, death: Death) -> EloUpdateResult:
        """Apply a death that no kill accounts for"""
        victim_id = death.victim.owner_id
        rules = EloRules(self.settings)

        async with self.locks.hold(victim_id):
            victim = await self.db.get_user(victim_id)
            if victim is None:
                logger.error(f"Death {death.id} rejected: victim {victim_id} not found")
                return EloUpdateResult.rejected()

            result = rules.apply_death(death, victim)
            if result.outcome == EloOutcome.DUPLICATE:
                return result

            await self.execute_with_retry(lambda: self.db.update_user(victim))

        logger.info(f"User {victim.display_name} died and lost {result.elo_steal:.1f} ELO")
        return result

    async def record_login(self, user_id: str, pilot_name: str, time_ms: int) -> UserState:
        """Open a session, creating the user on first sight"""
        async with self.locks.hold(user_id):
            user = await self.db.get_user(user_id)
            if user is None:
                user = UserState.new(user_id, self.settings.base_elo)
                logger.info(f"Creating user {pilot_name} ({user_id})")

            if pilot_name and (not user.pilot_names or user.pilot_names[0] != pilot_name):
                if pilot_name in user.pilot_names:
                    user.pilot_names.remove(pilot_name)
                user.pilot_names.insert(0, pilot_name)

            user.login_times.append(time_ms)
            user.sessions.append({'start_time': time_ms, 'end_time': None})
            EloRules.apply_session_action(SessionAction(SessionActionType.LOGIN, user_id), user, time_ms)
            await self.db.update_user(user)
        return user

    async def record_logout(self, user_id: str, time_ms: int) -> Optional[UserState]:
        """Close the most recent open session"""
        async with self.locks.hold(user_id):
            user = await self.db.get_user(user_id)
            if user is None:
                logger.error(f"Logout for unknown user {user_id}")
                return None

            open_session = next((s for s in reversed(user.sessions) if s.get('end_time') is None), None)
            if open_session is not None:
                open_session['end_time'] = time_ms
            else:
                logger.warning(f"User {user.display_name} logged out without an open session")

            user.logout_times.append(time_ms)
            EloRules.apply_session_action(SessionAction(SessionActionType.LOGOUT, user_id), user, time_ms)
            await self.db.update_user(user)
        return user

    async def write_user_log(self, user_id: str, season, extra_text: str = "") -> str:
        """
        Write a user's history for ``season`` to a text file and return its absolute path.

        An ended season is served from its end-of-season archive.
        """
        user = await self.db.get_user(user_id)
        if user is None:
            text = "No data (user not found)"
        elif not season.active:
            stats = await self.db.get_season_stats(user_id, season.id)
            text = (stats.history or "No data") if stats else "No data (user joined after season end)"
        else:
            text = "\n".join(user.history) or "No data"

        log_dir = Path(Config.USER_LOG_DIR)
        path = log_dir / f"{user_id}-S{season.id}.txt"
        await asyncio.to_thread(self._write_text, path, text + extra_text)
        return str(path.resolve())

    @staticmethod
    def _write_text(path: Path, text: str):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding='utf-8')

    @staticmethod
    def _require_user(users, user_id: str, role: str) -> UserState:
        user = users.get(user_id)
        if user is None:
            raise MissingUserError(user_id, role)
        return user
