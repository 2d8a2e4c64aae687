import pytest

from flight_elo.constants import AircraftTier, TierConstants, WeaponTier
from flight_elo.data_models.events import Aircraft, Team, Weapon
from flight_elo.utils.kill_classifier import (
    get_cfit_reference_kill_string, get_cfit_weapon_equivalent, get_kill_string, get_weapon_string,
    is_kill_valid, is_team_kill, parse_aircraft_string, parse_team_string, parse_weapon_string,
    should_kill_contribute_to_multipliers,
)

NM = 1852


def test_every_identity_has_a_tier():
    assert set(TierConstants.AIRCRAFT_TIERS) == set(Aircraft)
    assert set(TierConstants.WEAPON_TIERS) == set(Weapon)
    assert set(TierConstants.AIRCRAFT_LOADOUTS) == set(Aircraft)


def test_reference_kill_string(make_kill):
    kill = make_kill(weapon=Weapon.AIM120)
    assert get_kill_string(kill) == "FourthGen->HighTechRadar->FourthGen"


@pytest.mark.parametrize("killer, weapon, victim, expected", [
    (Aircraft.F45A, Weapon.AIM9X, Aircraft.F45A, "FifthGen->HighTechIR->FifthGen"),
    (Aircraft.EF24G, Weapon.AGM88, Aircraft.FA26B, "FourthGen->HARM->FourthGen"),
    (Aircraft.FA26B, Weapon.GUN, Aircraft.F45A, "FourthGen->Gun->FifthGen"),
    (Aircraft.EF24G, Weapon.AGM145, Aircraft.AH94, "FourthGen->AGM->Invalid"),
])
def test_kill_string_tiers(make_kill, killer, weapon, victim, expected):
    kill = make_kill(killer_type=killer, victim_type=victim, weapon=weapon)
    assert get_kill_string(kill) == expected


def test_weapon_string_uses_concrete_names(make_kill):
    kill = make_kill(killer_type=Aircraft.F45A, weapon=Weapon.AIM9X)
    assert get_weapon_string(kill) == "F45A->AIM9X->FA26B"


def test_kill_outside_loadout_is_invalid(make_kill):
    # The F-45 carries no AIM-7
    assert not is_kill_valid(make_kill(killer_type=Aircraft.F45A, weapon=Weapon.AIM7))
    assert is_kill_valid(make_kill(killer_type=Aircraft.FA26B, weapon=Weapon.AIM7))


def test_invalid_airframes_and_weapons(make_kill):
    assert not is_kill_valid(make_kill(killer_type=Aircraft.INVALID))
    assert not is_kill_valid(make_kill(victim_type=Aircraft.INVALID))
    assert not is_kill_valid(make_kill(weapon=Weapon.INVALID))
    assert not is_kill_valid(make_kill(killer_type=Aircraft.AV42C, weapon=Weapon.GUN))


def test_cfit_needs_an_occupied_victim(make_kill):
    assert is_kill_valid(make_kill(weapon=Weapon.CFIT))
    assert not is_kill_valid(make_kill(weapon=Weapon.CFIT, occupants=()))


@pytest.mark.parametrize("weapon", [Weapon.CFIT, Weapon.COLLISION, Weapon.MALD])
def test_special_kills_do_not_feed_statistics(make_kill, weapon):
    kill = make_kill(weapon=weapon)
    assert not should_kill_contribute_to_multipliers(kill)


def test_trainer_kills_do_not_feed_statistics(make_kill):
    assert not should_kill_contribute_to_multipliers(make_kill(killer_type=Aircraft.T55))
    assert not should_kill_contribute_to_multipliers(make_kill(victim_type=Aircraft.T55))
    assert should_kill_contribute_to_multipliers(make_kill())


def test_team_kill_detection(make_kill):
    assert is_team_kill(make_kill(victim_team=Team.ALLIED))
    assert not is_team_kill(make_kill())


@pytest.mark.parametrize("distance_nm, expected", [
    (0.5, Weapon.GUN),
    (1.0, Weapon.AIM9),
    (4.9, Weapon.AIM9),
    (7, Weapon.AIM7),
    (19.9, Weapon.AIM120),
    (20, None),
    (25, None),
])
def test_cfit_weapon_equivalent(make_kill, distance_nm, expected):
    kill = make_kill(weapon=Weapon.CFIT, distance_m=distance_nm * NM)
    assert get_cfit_weapon_equivalent(kill) == expected


def test_cfit_distance_ignores_altitude(make_kill):
    # 500 m of altitude difference between the two aircraft in the factory
    kill = make_kill(weapon=Weapon.CFIT, distance_m=0.9 * NM)
    assert get_cfit_weapon_equivalent(kill) == Weapon.GUN


def test_cfit_reference_kill_string():
    assert get_cfit_reference_kill_string(Weapon.AIM9) == "FourthGen->LowTechIR->FourthGen"
    assert get_cfit_reference_kill_string(Weapon.AIM120) == "FourthGen->HighTechRadar->FourthGen"


def test_parse_raw_strings():
    assert parse_aircraft_string("Vehicles/FA-26B") == Aircraft.FA26B
    assert parse_aircraft_string("Vehicles/SEVTF") == Aircraft.F45A
    assert parse_aircraft_string("Vehicles/Nope") == Aircraft.INVALID
    assert parse_aircraft_string("") == Aircraft.INVALID
    assert parse_weapon_string("Weapons/Missiles/AIM-120") == Weapon.AIM120
    assert parse_weapon_string("Weapons/Missiles/SideARM") == Weapon.HARM
    assert parse_weapon_string("CFIT") == Weapon.CFIT
    assert parse_weapon_string("Weapons/Missiles/Unknown") == Weapon.INVALID
    assert parse_team_string("Allied") == Team.ALLIED
    assert parse_team_string("Enemy") == Team.ENEMY
    assert parse_team_string("Blue") == Team.INVALID


def test_tier_enum_values_are_display_names():
    assert AircraftTier.FOURTH_GEN.value == "FourthGen"
    assert WeaponTier.HIGH_TECH_RADAR.value == "HighTechRadar"
