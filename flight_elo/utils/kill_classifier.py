"""
Kill classification: collapses aircraft/weapon identities into balance categories.

A kill string such as ``FourthGen->HighTechRadar->FourthGen`` is the bucket
the multiplier statistics are gathered in.
"""

import math
from typing import Optional

from flight_elo.constants import AircraftTier, CfitConstants, TierConstants, WeaponTier
from flight_elo.data_models.events import Aircraft, Kill, Team, Weapon
from flight_elo.utils.logger import setup_logger

logger = setup_logger(__name__)


def _check_tables_are_total():
    """Every enum member must have a tier and a loadout; a gap is a configuration bug."""
    missing = [a.name for a in Aircraft if a not in TierConstants.AIRCRAFT_TIERS]
    missing += [a.name for a in Aircraft if a not in TierConstants.AIRCRAFT_LOADOUTS]
    missing += [w.name for w in Weapon if w not in TierConstants.WEAPON_TIERS]
    if missing:
        raise RuntimeError(f"Tier tables are missing entries for: {', '.join(missing)}")


_check_tables_are_total()


def format_kill_string(killer_tier: AircraftTier, weapon_tier: WeaponTier, victim_tier: AircraftTier) -> str:
    return f"{killer_tier.value}->{weapon_tier.value}->{victim_tier.value}"


def get_kill_string(kill: Kill) -> str:
    """Classify a kill into its ``killer->weapon->victim`` tier string."""
    return format_kill_string(
        TierConstants.AIRCRAFT_TIERS[kill.killer.type],
        TierConstants.WEAPON_TIERS[kill.weapon],
        TierConstants.AIRCRAFT_TIERS[kill.victim.type],
    )


def get_weapon_string(kill: Kill) -> str:
    """Concrete identities, used in human-readable history lines."""
    return f"{kill.killer.type.name}->{kill.weapon.name}->{kill.victim.type.name}"


def is_kill_valid(kill: Kill) -> bool:
    """Loadout, airframe and occupant sanity for a kill."""
    if kill.victim.type == Aircraft.INVALID:
        return False
    if kill.killer.type == Aircraft.INVALID:
        return False
    if kill.weapon == Weapon.INVALID:
        return False
    if kill.weapon not in TierConstants.AIRCRAFT_LOADOUTS[kill.killer.type]:
        return False
    # Nobody in the seat means nobody flew into the ground
    if kill.weapon == Weapon.CFIT and len(kill.victim.occupants) == 0:
        return False
    return True


def should_kill_contribute_to_multipliers(kill: Kill) -> bool:
    if kill.weapon in TierConstants.NON_STATISTICAL_WEAPONS:
        return False
    if kill.killer.type in TierConstants.NON_STATISTICAL_AIRCRAFT:
        return False
    if kill.victim.type in TierConstants.NON_STATISTICAL_AIRCRAFT:
        return False
    return is_kill_valid(kill)


def is_team_kill(kill: Kill) -> bool:
    return kill.killer.team == kill.victim.team


def horizontal_distance(kill: Kill) -> float:
    """Separation on the ground plane (x/z) in meters, altitude ignored."""
    dx = kill.killer.position.x - kill.victim.position.x
    dz = kill.killer.position.z - kill.victim.position.z
    return math.sqrt(dx * dx + dz * dz)


def get_cfit_weapon_equivalent(kill: Kill) -> Optional[Weapon]:
    """Weapon a terrain impact counts as, or None when the attacker was too far away."""
    distance_nm = horizontal_distance(kill) / CfitConstants.METERS_PER_NM
    for upper_bound_nm, weapon in CfitConstants.WEAPON_EQUIVALENT_BANDS:
        if distance_nm < upper_bound_nm:
            return weapon
    return None


def get_cfit_reference_kill_string(weapon: Weapon) -> str:
    reference = CfitConstants.REFERENCE_AIRCRAFT_TIER
    return format_kill_string(reference, TierConstants.WEAPON_TIERS[weapon], reference)


def parse_aircraft_string(aircraft: str) -> Aircraft:
    """Parse a game resource path such as ``Vehicles/FA-26B``."""
    if not aircraft:
        return Aircraft.INVALID

    name = aircraft.split("/")[1] if "/" in aircraft else aircraft
    mapping = {
        "VTOL4": Aircraft.AV42C,
        "FA-26B": Aircraft.FA26B,
        "SEVTF": Aircraft.F45A,
        "AH-94": Aircraft.AH94,
        "T-55": Aircraft.T55,
        "EF-24": Aircraft.EF24G,
    }
    if name not in mapping:
        logger.warning(f"Unknown aircraft: {aircraft}")
        return Aircraft.INVALID
    return mapping[name]


def parse_weapon_string(weapon: str) -> Weapon:
    """Parse a weapon resource path such as ``Weapons/Missiles/AIM-120``."""
    if not weapon:
        return Weapon.INVALID

    special = {"GUN": Weapon.GUN, "CFIT": Weapon.CFIT, "COLLISION": Weapon.COLLISION}
    if weapon in special:
        return special[weapon]

    parts = weapon.split("/")
    name = parts[2] if len(parts) > 2 else parts[-1]
    mapping = {
        "GUN": Weapon.GUN,
        "AIM-120": Weapon.AIM120,
        "AIM-120D": Weapon.AIM120,
        "AIM-9": Weapon.AIM9,
        "AIM-7": Weapon.AIM7,
        "AIM-9+": Weapon.AIM9X,
        "AIRS-T": Weapon.AIRST,
        "HARM": Weapon.HARM,
        "SideARM": Weapon.HARM,
        "AIM-9E": Weapon.AIM9E,
        "AIM-54": Weapon.AIM54,
        "AGM-88": Weapon.AGM88,
        "AGM-145": Weapon.AGM145,
        "ADM-160J": Weapon.MALD,
    }
    if name not in mapping:
        logger.warning(f"Unknown weapon: {weapon}")
        return Weapon.INVALID
    return mapping[name]


def parse_team_string(team: str) -> Team:
    if team == "Allied":
        return Team.ALLIED
    if team == "Enemy":
        return Team.ENEMY
    logger.warning(f"Unknown team: {team}")
    return Team.INVALID
