from typing import Optional, Tuple

from flight_elo.constants import CfitConstants, EloConstants
from flight_elo.data_models.events import Kill, Weapon
from flight_elo.data_models.settings import EloSettings
from flight_elo.utils.kill_classifier import (
    get_cfit_reference_kill_string, get_cfit_weapon_equivalent, horizontal_distance
)
from flight_elo.utils.multipliers import MultiplierTable

_DEFAULT_SETTINGS = EloSettings()


class EloCalculator:
    """Handles rating transfer calculations for kills and deaths"""

    @staticmethod
    def calculate_elo_steal(killer_elo: float, victim_elo: float,
                            aircraft_offset: float = 1, multiplier: float = 1,
                            settings: EloSettings = None) -> float:
        """
        Calculate how many points move from the victim to the killer

        Args:
            killer_elo: Killer's current rating
            victim_elo: Victim's current rating
            aircraft_offset: Killer kill bonus times victim death bonus
            multiplier: Balance multiplier of the kill's category
            settings: Rating settings, defaults when omitted

        Returns:
            Points to transfer, never above ``max_steal_points``
        """
        settings = settings or _DEFAULT_SETTINGS
        elo_diff = abs(victim_elo - killer_elo)
        # Underdog kills are worth more than kills on lower rated pilots
        if killer_elo < victim_elo:
            rate = settings.steal_gain_rate
        else:
            rate = -settings.steal_loss_rate

        raw_steal = max(settings.base_steal_points + elo_diff * rate, settings.min_steal_points)
        return min(raw_steal * multiplier * aircraft_offset, settings.max_steal_points)

    @staticmethod
    def get_aircraft_offset(kill: Kill) -> float:
        """Static per-airframe balance correction for a kill"""
        killer_bonus = EloConstants.AIRCRAFT_BONUSES[kill.killer.type]
        victim_bonus = EloConstants.AIRCRAFT_BONUSES[kill.victim.type]
        return killer_bonus.kill_mult * victim_bonus.death_mult

    @staticmethod
    def get_cfit_multiplier(kill: Kill, multipliers: MultiplierTable) -> Tuple[Optional[float], str]:
        """
        Multiplier for a terrain impact, looked up as if the equivalent weapon was fired

        Returns:
            (multiplier, extra info for the history line); multiplier is None
            when the attacker was too far away for the kill to count
        """
        weapon: Optional[Weapon] = get_cfit_weapon_equivalent(kill)
        if weapon is None:
            return None, ""

        distance_nm = horizontal_distance(kill) / CfitConstants.METERS_PER_NM
        multiplier = multipliers.get_multiplier(get_cfit_reference_kill_string(weapon))
        return multiplier, f"Distance: {distance_nm:.1f}nm"

    @staticmethod
    def format_elo_change(elo_change: float) -> str:
        """Format a rating change for display"""
        rounded = round(elo_change)
        if rounded > 0:
            return f"+{rounded}"
        elif rounded < 0:
            return str(rounded)
        else:
            return "±0"
