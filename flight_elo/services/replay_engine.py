"""
Season replay.

Recomputes every rating of a season from scratch: reset the touched users,
recompute multipliers from the season's own kills, then walk all kills,
deaths and login/logout actions in time order through the same EloRules the
live updater uses. Only users whose visible numbers changed are written back.

The run is deterministic. The same dumps, users and settings always produce
the same final states, which is what makes replaying safe to repeat hourly.
"""

import json
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from flight_elo.constants import ReplayConstants
from flight_elo.data_models.events import (
    Death, EventKind, Kill, ReplayEvent, SessionAction, SessionActionType
)
from flight_elo.data_models.settings import EloSettings
from flight_elo.data_models.user_state import UserState
from flight_elo.operations.elo_rules import EloRules
from flight_elo.utils.elo_exceptions import InvalidRecordError, StreamParseError
from flight_elo.utils.kill_classifier import (
    get_kill_string, is_kill_valid, should_kill_contribute_to_multipliers
)
from flight_elo.utils.logger import setup_logger
from flight_elo.utils.multipliers import MultiplierTable, calculate_multipliers
from flight_elo.utils.ndjson import iter_ndjson

logger = setup_logger(__name__)


@dataclass
class ReplaySummary:
    season_id: int
    users_loaded: int = 0
    users_updated: int = 0
    ranked_users: int = 0
    kills: int = 0
    deaths: int = 0
    actions: int = 0
    multiplier_count: int = 0
    duration_ms: int = 0
    archived: bool = False

    def to_dict(self):
        return asdict(self)


@dataclass
class ReplayResult:
    summary: ReplaySummary
    multipliers: MultiplierTable
    users: List[UserState]


def _in_window(time_ms: int, start_ms: Optional[int], end_ms: Optional[int]) -> bool:
    if start_ms is not None and time_ms < start_ms:
        return False
    if end_ms is not None and time_ms > end_ms:
        return False
    return True


class ReplayEngine:
    """Recomputes one season's ratings from the NDJSON dumps"""

    def __init__(self, database, settings: EloSettings, dump_dir, backup_dir=None, batch_size: int = 1000):
        self.db = database
        self.settings = settings
        self.rules = EloRules(settings)
        self.dump_dir = Path(dump_dir)
        self.backup_dir = Path(backup_dir) if backup_dir else None
        self.batch_size = batch_size

    async def run(self, season_id: int = None) -> ReplayResult:
        """
        Replay a season and persist the changed users.

        Replaying a season that has ended leaves the user rows alone and
        instead archives every pilot's final numbers and history for it.

        Args:
            season_id: Season to replay, the active one when omitted

        Returns:
            ReplayResult with the summary, the multiplier table and final user states

        Raises:
            StreamParseError: A dump line could not be parsed; nothing is written
            NoActiveSeasonError: No season id given and no season is active
        """
        started = time.monotonic()
        season = await self.db.get_season(season_id) if season_id is not None else await self.db.get_active_season()
        summary = ReplaySummary(season_id=season.id)
        logger.info(f"Replaying season {season.id} ({season.name})")

        users = await self.db.load_replay_users(self.settings.base_elo)
        summary.users_loaded = len(users)
        snapshot = {user.id: user.snapshot_key() for user in users}
        if self.backup_dir:
            self.backup_users(users, season.id)
        for user in users:
            user.reset_for_replay(self.settings.base_elo)
        users_by_id = {user.id: user for user in users}

        kills = self.load_kills(season.id)
        deaths = self.load_deaths(season.id)
        summary.kills, summary.deaths = len(kills), len(deaths)
        logger.info(f"Loaded {len(kills)} kills and {len(deaths)} deaths")

        multipliers = self.compute_multipliers(kills)
        summary.multiplier_count = len(multipliers)

        events = self.build_events(kills, deaths, users, season.start_ms, season.end_ms)
        summary.actions = sum(1 for e in events if e.kind == EventKind.ACTION)
        self.walk(events, users_by_id, multipliers)

        summary.ranked_users = self.assign_ranks(users)

        if season.active:
            changed = [user for user in users if user.snapshot_key() != snapshot[user.id]]
            summary.users_updated = await self.db.bulk_update_users(changed, self.batch_size)
        else:
            played = [user for user in users if user.kills or user.deaths or user.elo != self.settings.base_elo]
            summary.users_updated = await self.db.store_season_stats(season.id, played)
            summary.archived = True
            logger.info(f"Season {season.id} has ended, archived final stats for {len(played)} users")
        await self.db.set_total_ranked_users(season.id, summary.ranked_users)

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Replay done: {summary.users_updated}/{summary.users_loaded} users changed, "
            f"{summary.ranked_users} ranked, took {summary.duration_ms}ms"
        )
        return ReplayResult(summary=summary, multipliers=multipliers, users=users)

    def load_kills(self, season_id: int) -> List[Kill]:
        path = self.dump_dir / ReplayConstants.KILLS_DUMP_FILE
        kills = []
        for line_number, record in iter_ndjson(path):
            kill = self._parse(Kill, record, path, line_number)
            if kill.season == season_id and is_kill_valid(kill):
                kills.append(kill)
        return kills

    def load_deaths(self, season_id: int) -> List[Death]:
        path = self.dump_dir / ReplayConstants.DEATHS_DUMP_FILE
        deaths = []
        for line_number, record in iter_ndjson(path):
            death = self._parse(Death, record, path, line_number)
            if death.season == season_id:
                deaths.append(death)
        return deaths

    @staticmethod
    def _parse(record_cls, record, path, line_number):
        try:
            return record_cls.from_dict(record)
        except InvalidRecordError as e:
            raise StreamParseError(str(path), line_number, str(e)) from e

    def compute_multipliers(self, kills: List[Kill]) -> MultiplierTable:
        kill_strings = (get_kill_string(k) for k in kills if should_kill_contribute_to_multipliers(k))
        return calculate_multipliers(kill_strings, self.settings.multiplier_cap)

    @staticmethod
    def build_events(kills: List[Kill], deaths: List[Death], users: List[UserState],
                     start_ms: Optional[int], end_ms: Optional[int]) -> List[ReplayEvent]:
        """One time-ordered stream; equal times keep kills, then deaths, then actions"""
        events = [ReplayEvent(EventKind.KILL, k.time, k) for k in kills]
        events += [ReplayEvent(EventKind.DEATH, d.time, d) for d in deaths]
        for user in users:
            for login in user.login_times:
                if _in_window(login, start_ms, end_ms):
                    events.append(ReplayEvent(EventKind.ACTION, login, SessionAction(SessionActionType.LOGIN, user.id)))
            for logout in user.logout_times:
                if _in_window(logout, start_ms, end_ms):
                    events.append(ReplayEvent(EventKind.ACTION, logout, SessionAction(SessionActionType.LOGOUT, user.id)))
        # sorted() is stable, so insertion order breaks ties
        return sorted(events, key=lambda e: e.time)

    def walk(self, events: List[ReplayEvent], users: Dict[str, UserState], multipliers: MultiplierTable):
        for event in events:
            if event.kind == EventKind.KILL:
                kill = event.payload
                killer = users.get(kill.killer.owner_id)
                victim = users.get(kill.victim.owner_id)
                if killer is None or victim is None:
                    continue
                self.rules.apply_kill(kill, killer, victim, multipliers, track_team_kills=False)
            elif event.kind == EventKind.DEATH:
                victim = users.get(event.payload.victim.owner_id)
                if victim is None:
                    continue
                self.rules.apply_death(event.payload, victim)
            else:
                user = users.get(event.payload.user_id)
                if user is not None:
                    EloRules.apply_session_action(event.payload, user, event.time)

    def assign_ranks(self, users: List[UserState]) -> int:
        """Rank eligible users 1..N by rating, clear everyone else. Returns N."""
        eligible = [u for u in users if not u.is_banned and u.kills >= self.settings.kills_to_rank]
        eligible.sort(key=lambda u: (-u.elo, u.id))
        ranked_ids = set()
        for position, user in enumerate(eligible, start=1):
            user.rank = position
            ranked_ids.add(user.id)
        for user in users:
            if user.id not in ranked_ids:
                user.rank = None
        return len(eligible)

    def backup_users(self, users: List[UserState], season_id: int) -> Path:
        """Dump the pre-reset users so a bad run can be rolled back by hand"""
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')
        path = self.backup_dir / f"users-S{season_id}-{stamp}.json"
        with open(path, 'w', encoding='utf-8') as f:
            json.dump([user.to_dict() for user in users], f)
        logger.info(f"Backed up {len(users)} users to {path}")
        return path
