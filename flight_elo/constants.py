"""
Static balance tables for the rating engine.

Aircraft/weapon tiers, loadouts and per-aircraft bonuses are configuration,
not data: changing them changes every replayed rating, so they only change
together with a deploy.
"""

from dataclasses import dataclass
from enum import Enum

from flight_elo.data_models.events import Aircraft, Weapon


class AircraftTier(Enum):
    INVALID = "Invalid"
    FOURTH_GEN = "FourthGen"
    FIFTH_GEN = "FifthGen"


class WeaponTier(Enum):
    INVALID = "Invalid"
    GUN = "Gun"
    LOW_TECH_IR = "LowTechIR"
    LOW_TECH_RADAR = "LowTechRadar"
    HIGH_TECH_IR = "HighTechIR"
    HIGH_TECH_RADAR = "HighTechRadar"
    HARM = "HARM"
    AGM = "AGM"


@dataclass(frozen=True)
class AircraftBonus:
    kill_mult: float
    death_mult: float


class TierConstants:
    """Mapping of concrete identities onto balance categories."""

    AIRCRAFT_TIERS = {
        Aircraft.AV42C: AircraftTier.INVALID,
        Aircraft.FA26B: AircraftTier.FOURTH_GEN,
        Aircraft.F45A: AircraftTier.FIFTH_GEN,
        Aircraft.AH94: AircraftTier.INVALID,
        Aircraft.INVALID: AircraftTier.INVALID,
        Aircraft.T55: AircraftTier.FOURTH_GEN,
        Aircraft.EF24G: AircraftTier.FOURTH_GEN,
    }

    WEAPON_TIERS = {
        Weapon.GUN: WeaponTier.GUN,
        Weapon.AIM120: WeaponTier.HIGH_TECH_RADAR,
        Weapon.AIM9: WeaponTier.LOW_TECH_IR,
        Weapon.AIM7: WeaponTier.LOW_TECH_RADAR,
        Weapon.AIM9X: WeaponTier.HIGH_TECH_IR,
        Weapon.AIRST: WeaponTier.HIGH_TECH_IR,
        Weapon.HARM: WeaponTier.HARM,
        Weapon.INVALID: WeaponTier.INVALID,
        Weapon.AIM9E: WeaponTier.LOW_TECH_IR,
        Weapon.CFIT: WeaponTier.INVALID,
        Weapon.COLLISION: WeaponTier.INVALID,
        Weapon.AIM54: WeaponTier.HIGH_TECH_RADAR,
        Weapon.AGM88: WeaponTier.HARM,
        Weapon.AGM145: WeaponTier.AGM,
        Weapon.MALD: WeaponTier.INVALID,
    }

    # Weapons each airframe can legitimately score with
    AIRCRAFT_LOADOUTS = {
        Aircraft.AV42C: frozenset(),
        Aircraft.FA26B: frozenset({
            Weapon.GUN, Weapon.AIM120, Weapon.AIM9, Weapon.AIM7, Weapon.AIRST,
            Weapon.HARM, Weapon.AIM9E, Weapon.CFIT, Weapon.COLLISION, Weapon.MALD,
        }),
        Aircraft.F45A: frozenset({
            Weapon.GUN, Weapon.AIM120, Weapon.AIM9X, Weapon.CFIT, Weapon.COLLISION,
        }),
        Aircraft.AH94: frozenset(),
        Aircraft.INVALID: frozenset(),
        Aircraft.T55: frozenset({
            Weapon.GUN, Weapon.AIM120, Weapon.AIM9, Weapon.AIM7, Weapon.AIRST,
            Weapon.HARM, Weapon.AIM9E, Weapon.CFIT, Weapon.COLLISION,
        }),
        Aircraft.EF24G: frozenset({
            Weapon.GUN, Weapon.AIM120, Weapon.AIM9, Weapon.AIM54, Weapon.AGM88,
            Weapon.AGM145, Weapon.CFIT, Weapon.COLLISION, Weapon.MALD,
        }),
    }

    # Kills that never feed multiplier statistics
    NON_STATISTICAL_WEAPONS = frozenset({Weapon.CFIT, Weapon.COLLISION, Weapon.MALD})
    NON_STATISTICAL_AIRCRAFT = frozenset({Aircraft.T55})


class EloConstants:
    """Constants related to rating transfer."""

    # Reference bucket pinned near 1x: an ordinary 4th-gen radar-missile kill
    REFERENCE_KILL_STRING = "FourthGen->HighTechRadar->FourthGen"

    AIRCRAFT_BONUSES = {
        Aircraft.AV42C: AircraftBonus(kill_mult=0, death_mult=0),
        Aircraft.FA26B: AircraftBonus(kill_mult=1, death_mult=1),
        Aircraft.F45A: AircraftBonus(kill_mult=1, death_mult=1),
        Aircraft.AH94: AircraftBonus(kill_mult=0, death_mult=0),
        Aircraft.T55: AircraftBonus(kill_mult=1.5, death_mult=0.9),
        Aircraft.EF24G: AircraftBonus(kill_mult=1, death_mult=0.8),
        Aircraft.INVALID: AircraftBonus(kill_mult=0, death_mult=0),
    }


class CfitConstants:
    """Distance bands that turn a terrain impact into a weapon equivalent."""

    METERS_PER_NM = 1852

    # (upper bound in nautical miles, equivalent weapon), checked in order
    WEAPON_EQUIVALENT_BANDS = (
        (1, Weapon.GUN),
        (5, Weapon.AIM9),
        (10, Weapon.AIM7),
        (20, Weapon.AIM120),
    )

    # Both sides of the lookup use this airframe tier, not the real ones
    REFERENCE_AIRCRAFT_TIER = AircraftTier.FOURTH_GEN


class BanConstants:
    """Team-kill thresholds for the automatic ban hook."""

    TEAM_KILL_RATIO = 2 / 10
    # (kills below, team kills allowed) for players without enough kills for a ratio
    LOW_KILL_TOLERANCES = (
        (5, 2),
        (10, 3),
    )


class ReplayConstants:
    """Constants for the replay worker protocol."""

    START_MESSAGE_TYPE = "start"
    MULTIPLIERS_MESSAGE_TYPE = "mults"
    SUMMARY_MESSAGE_TYPE = "summary"
    IPC_FD_ENV = "FLIGHT_ELO_IPC_FD"
    STREAM_CHUNK_SIZE = 64 * 1024
    KILLS_DUMP_FILE = "kills.json"
    DEATHS_DUMP_FILE = "deaths.json"
