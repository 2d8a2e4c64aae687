"""
Rating rules shared by the live updater and the season replay.

Both paths feed events through EloRules so a replay converges on exactly what
the live path would have produced with the same multipliers and settings.
Rules mutate UserState objects in place and never touch storage; the caller
decides what to persist.

Outcomes of a kill, checked in this order:
- COLLISION: zero change, one log line per party, written once per pair
- REJECTED: kill fails loadout/airframe validation, nothing changes
- TEAM_KILL: killer pays ``elo * team_kill_penalty``, victim untouched
- SELF_EXCLUDED: killer opted out of rating against this victim
- DROPPED: CFIT beyond range, victim gets a death and no transfer
- COUNTED: normal steal
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from flight_elo.data_models.events import Death, Kill, SessionAction, Weapon
from flight_elo.data_models.settings import EloSettings
from flight_elo.data_models.user_state import UserState
from flight_elo.utils.ban_policy import should_user_be_banned
from flight_elo.utils.elo import EloCalculator
from flight_elo.utils.kill_classifier import get_kill_string, get_weapon_string, is_kill_valid, is_team_kill
from flight_elo.utils.logger import setup_logger
from flight_elo.utils.multipliers import MultiplierTable

logger = setup_logger(__name__)

ELO_FLOOR = 1


class EloOutcome(Enum):
    COUNTED = "counted"
    TEAM_KILL = "team_kill"
    COLLISION = "collision"
    SELF_EXCLUDED = "self_excluded"
    DROPPED = "dropped"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class EloUpdateResult:
    """What one event did to the ratings involved"""
    outcome: EloOutcome
    killer_elo: Optional[float] = None
    victim_elo: Optional[float] = None
    elo_steal: float = 0.0

    @property
    def changed_ratings(self) -> bool:
        return self.elo_steal != 0

    @classmethod
    def rejected(cls) -> 'EloUpdateResult':
        return cls(outcome=EloOutcome.REJECTED)


def format_timestamp(time_ms: int) -> str:
    """Event time (epoch ms) as an ISO-8601 UTC string for history lines"""
    moment = datetime.fromtimestamp(time_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def _record_elo(user: UserState, time_ms: int):
    user.max_elo = max(user.max_elo, user.elo)
    user.elo_history.append({'time': time_ms, 'elo': user.elo})


class EloRules:
    """Applies kills, deaths and session actions to UserState objects"""

    def __init__(self, settings: EloSettings = None):
        self.settings = settings or EloSettings()

    def apply_kill(self, kill: Kill, killer: UserState, victim: UserState,
                   multipliers: MultiplierTable, track_team_kills: bool = True) -> EloUpdateResult:
        """
        Apply one kill to its two participants.

        Args:
            kill: The kill event
            killer: Killer's working state, mutated in place
            victim: Victim's working state, mutated in place
            multipliers: Multiplier snapshot to price the kill with
            track_team_kills: Increment the team-kill counter and evaluate the
                ban rule; the replay leaves both alone

        Returns:
            EloUpdateResult describing the outcome
        """
        timestamp = format_timestamp(kill.time)

        if kill.weapon == Weapon.COLLISION:
            # Both parties report the same collision; log it from one side only
            if killer.id >= victim.id:
                killer.history.append(f"[{timestamp}] Collision with {victim.display_name}")
                victim.history.append(f"[{timestamp}] Collision with {killer.display_name}")
            return EloUpdateResult(EloOutcome.COLLISION, killer.elo, victim.elo, 0.0)

        if not is_kill_valid(kill):
            logger.debug(f"Kill {kill.id} failed validation, ignoring")
            return EloUpdateResult(EloOutcome.REJECTED, killer.elo, victim.elo, 0.0)

        if is_team_kill(kill):
            return self._apply_team_kill(kill, killer, victim, timestamp, track_team_kills)

        if victim.id in killer.ignore_kills_against_users:
            killer.history.append(f"[{timestamp}] Kill {victim.display_name} not counted (excluded pairing)")
            return EloUpdateResult(EloOutcome.SELF_EXCLUDED, killer.elo, victim.elo, 0.0)

        multiplier = multipliers.get_multiplier(get_kill_string(kill))
        info = ""
        if kill.weapon == Weapon.CFIT:
            multiplier, info = EloCalculator.get_cfit_multiplier(kill, multipliers)
            if multiplier is None:
                victim.deaths += 1
                victim.history.append(self._death_line(timestamp, victim, 0))
                return EloUpdateResult(EloOutcome.DROPPED, killer.elo, victim.elo, 0.0)

        aircraft_offset = EloCalculator.get_aircraft_offset(kill)
        elo_steal = EloCalculator.calculate_elo_steal(
            killer.elo, victim.elo, aircraft_offset, multiplier, self.settings
        )

        killer.elo += elo_steal
        victim.elo = max(victim.elo - elo_steal, ELO_FLOOR)
        killer.kills += 1
        victim.deaths += 1

        weapon_str = get_weapon_string(kill)
        detail = f"with {weapon_str} ({multiplier:.1f})" + (f" {info}" if info else "")
        killer.history.append(
            f"[{timestamp}] Kill {victim.display_name} ({round(victim.elo)}) {detail} "
            f"Elo gained: {round(elo_steal)}. New Elo: {round(killer.elo)}"
        )
        victim.history.append(
            f"[{timestamp}] Death to {killer.display_name} ({round(killer.elo)}) {detail} "
            f"Elo lost: {round(elo_steal)}. New Elo: {round(victim.elo)}"
        )
        _record_elo(killer, kill.time)
        _record_elo(victim, kill.time)

        return EloUpdateResult(EloOutcome.COUNTED, killer.elo, victim.elo, elo_steal)

    def _apply_team_kill(self, kill: Kill, killer: UserState, victim: UserState,
                         timestamp: str, track_team_kills: bool) -> EloUpdateResult:
        penalty = killer.elo * self.settings.team_kill_penalty
        killer.elo = max(killer.elo - penalty, ELO_FLOOR)
        killer.history.append(
            f"[{timestamp}] Teamkill {victim.display_name} Elo lost: {round(penalty)}. New Elo: {round(killer.elo)}"
        )
        victim.history.append(f"[{timestamp}] Death to teamkill from {killer.display_name} no elo lost")
        _record_elo(killer, kill.time)

        if track_team_kills:
            killer.team_kills += 1
            if not killer.is_banned and should_user_be_banned(killer):
                logger.info(f"Banning user {killer.display_name} ({killer.id}) for team killing")
                killer.is_banned = True

        return EloUpdateResult(EloOutcome.TEAM_KILL, killer.elo, victim.elo, penalty)

    def apply_death(self, death: Death, victim: UserState) -> EloUpdateResult:
        """
        Apply a death that no kill accounts for (crash, disconnect).

        Deaths carrying a kill id were already priced by that kill.
        """
        if death.is_duplicate_of_kill:
            return EloUpdateResult(EloOutcome.DUPLICATE, victim_elo=victim.elo)

        elo_steal = EloCalculator.calculate_elo_steal(self.settings.base_elo, victim.elo, settings=self.settings)
        victim.elo = max(victim.elo - elo_steal, ELO_FLOOR)
        victim.deaths += 1
        victim.history.append(self._death_line(format_timestamp(death.time), victim, elo_steal))
        _record_elo(victim, death.time)

        return EloUpdateResult(EloOutcome.COUNTED, victim_elo=victim.elo, elo_steal=elo_steal)

    @staticmethod
    def apply_session_action(action: SessionAction, user: UserState, time_ms: int):
        user.history.append(f"[{format_timestamp(time_ms)}] {action.action.value}")

    @staticmethod
    def _death_line(timestamp: str, victim: UserState, elo_steal: float) -> str:
        return f"[{timestamp}] Death (unknown) Elo lost: {round(elo_steal)}. New Elo: {round(victim.elo)}"
