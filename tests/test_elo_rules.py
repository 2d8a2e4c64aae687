import pytest

from flight_elo.data_models.events import Aircraft, SessionAction, SessionActionType, Team, Weapon
from flight_elo.data_models.settings import EloSettings
from flight_elo.operations.elo_rules import EloOutcome, EloRules, format_timestamp
from flight_elo.utils.multipliers import KillMetric, MultiplierTable

NM = 1852
EMPTY = MultiplierTable()


@pytest.fixture
def rules():
    return EloRules(EloSettings())


def test_counted_kill_between_equal_pilots(rules, make_user, make_kill):
    killer, victim = make_user("killer"), make_user("victim")
    kill = make_kill()

    result = rules.apply_kill(kill, killer, victim, EMPTY)

    assert result.outcome == EloOutcome.COUNTED
    assert result.elo_steal == pytest.approx(10)
    assert killer.elo == pytest.approx(2010)
    assert victim.elo == pytest.approx(1990)
    assert (killer.kills, killer.deaths, victim.kills, victim.deaths) == (1, 0, 0, 1)
    assert killer.max_elo == pytest.approx(2010)
    assert victim.max_elo == 2000
    assert killer.elo_history == [{'time': kill.time, 'elo': killer.elo}]
    assert victim.elo_history == [{'time': kill.time, 'elo': victim.elo}]
    assert "Kill pilot-victim (1990) with FA26B->AIM120->FA26B (1.0) Elo gained: 10. New Elo: 2010" in killer.history[0]
    assert "Death to pilot-killer (2010) with FA26B->AIM120->FA26B (1.0) Elo lost: 10. New Elo: 1990" in victim.history[0]


def test_multiplier_from_table_is_applied(rules, make_user, make_kill):
    table = MultiplierTable([KillMetric("FourthGen->HighTechRadar->FourthGen", 10, 0.5, 2.5)])
    killer, victim = make_user("killer"), make_user("victim")

    result = rules.apply_kill(make_kill(), killer, victim, table)

    assert result.elo_steal == pytest.approx(25)
    assert "(2.5)" in killer.history[0]


def test_team_kill_with_zero_penalty(rules, make_user, make_kill):
    killer, victim = make_user("killer"), make_user("victim")
    kill = make_kill(victim_team=Team.ALLIED)

    result = rules.apply_kill(kill, killer, victim, EMPTY)

    assert result.outcome == EloOutcome.TEAM_KILL
    assert result.elo_steal == 0
    assert killer.elo == 2000
    assert victim.elo == 2000
    assert killer.team_kills == 1
    assert killer.kills == 0 and victim.deaths == 0
    assert "Teamkill pilot-victim Elo lost: 0. New Elo: 2000" in killer.history[0]
    assert "Death to teamkill from pilot-killer no elo lost" in victim.history[0]
    assert victim.elo_history == []


def test_team_kill_penalty_is_a_share_of_rating(make_user, make_kill):
    rules = EloRules(EloSettings(team_kill_penalty=0.1))
    killer, victim = make_user("killer"), make_user("victim")

    result = rules.apply_kill(make_kill(victim_team=Team.ALLIED), killer, victim, EMPTY)

    assert result.elo_steal == pytest.approx(200)
    assert killer.elo == pytest.approx(1800)


def test_team_kill_counter_left_alone_when_not_tracking(rules, make_user, make_kill):
    killer, victim = make_user("killer", team_kills=2), make_user("victim")
    rules.apply_kill(make_kill(victim_team=Team.ALLIED), killer, victim, EMPTY, track_team_kills=False)
    assert killer.team_kills == 2
    assert not killer.is_banned


def test_third_team_kill_with_few_kills_bans(rules, make_user, make_kill):
    killer, victim = make_user("killer", team_kills=2), make_user("victim")
    rules.apply_kill(make_kill(victim_team=Team.ALLIED), killer, victim, EMPTY)
    assert killer.team_kills == 3
    assert killer.is_banned


def test_collision_is_logged_once_per_pair(rules, make_user, make_kill):
    a, b = make_user("a"), make_user("b")

    first = rules.apply_kill(make_kill("b", "a", weapon=Weapon.COLLISION), b, a, EMPTY)
    second = rules.apply_kill(make_kill("a", "b", weapon=Weapon.COLLISION), a, b, EMPTY)

    assert first.outcome == second.outcome == EloOutcome.COLLISION
    assert len(a.history) == 1 and len(b.history) == 1
    assert a.history[0].endswith("Collision with pilot-b")
    assert b.history[0].endswith("Collision with pilot-a")
    assert a.elo == b.elo == 2000
    assert a.deaths == b.deaths == 0


def test_excluded_victim_gives_no_rating(rules, make_user, make_kill):
    killer = make_user("killer", ignore_kills_against_users=["victim"])
    victim = make_user("victim")

    result = rules.apply_kill(make_kill(), killer, victim, EMPTY)

    assert result.outcome == EloOutcome.SELF_EXCLUDED
    assert killer.elo == victim.elo == 2000
    assert killer.kills == 0 and victim.deaths == 0
    assert len(killer.history) == 1
    assert victim.history == []


def test_cfit_at_25nm_is_dropped(rules, make_user, make_kill):
    killer, victim = make_user("killer"), make_user("victim")

    result = rules.apply_kill(make_kill(weapon=Weapon.CFIT, distance_m=25 * NM), killer, victim, EMPTY)

    assert result.outcome == EloOutcome.DROPPED
    assert result.elo_steal == 0
    assert victim.deaths == 1
    assert killer.kills == 0
    assert killer.elo == victim.elo == 2000
    assert "Death (unknown) Elo lost: 0. New Elo: 2000" in victim.history[0]


def test_cfit_uses_reference_pairing_multiplier(rules, make_user, make_kill):
    table = MultiplierTable([KillMetric("FourthGen->LowTechIR->FourthGen", 3, 0.3, 2.0)])
    killer, victim = make_user("killer"), make_user("victim")
    # Real airframes are a 5th gen on a 4th gen, the lookup still uses FourthGen on both sides
    kill = make_kill(weapon=Weapon.CFIT, killer_type=Aircraft.F45A, distance_m=3 * NM)

    result = rules.apply_kill(kill, killer, victim, table)

    assert result.outcome == EloOutcome.COUNTED
    assert result.elo_steal == pytest.approx(20)
    assert "Distance: 3.0nm" in killer.history[0]


def test_victim_rating_floors_at_one(rules, make_user, make_kill):
    table = MultiplierTable([KillMetric("FourthGen->HighTechRadar->FourthGen", 1, 1.0, 50.0)])
    killer, victim = make_user("killer", elo=2000), make_user("victim", elo=3)

    rules.apply_kill(make_kill(), killer, victim, table)

    assert victim.elo == 1


def test_invalid_kill_is_rejected(rules, make_user, make_kill):
    killer, victim = make_user("killer"), make_user("victim")
    result = rules.apply_kill(make_kill(weapon=Weapon.INVALID), killer, victim, EMPTY)
    assert result.outcome == EloOutcome.REJECTED
    assert killer.history == victim.history == []


def test_death_linked_to_kill_is_a_duplicate(rules, make_user, make_death):
    victim = make_user("victim")
    result = rules.apply_death(make_death(kill_id="kill-1"), victim)
    assert result.outcome == EloOutcome.DUPLICATE
    assert victim.deaths == 0 and victim.elo == 2000


def test_unexplained_death_costs_base_steal(rules, make_user, make_death):
    victim = make_user("victim", elo=1000)
    death = make_death()

    result = rules.apply_death(death, victim)

    # Priced as if a base-rated pilot killed them: 10 - 1000 * 0.5/100
    assert result.elo_steal == pytest.approx(5)
    assert victim.elo == pytest.approx(995)
    assert victim.deaths == 1
    assert victim.elo_history == [{'time': death.time, 'elo': victim.elo}]


def test_session_action_line(make_user):
    user = make_user("u")
    EloRules.apply_session_action(SessionAction(SessionActionType.LOGIN, "u"), user, 0)
    assert user.history == ["[1970-01-01T00:00:00.000Z] Login"]


def test_timestamps_are_utc_milliseconds():
    assert format_timestamp(1_700_000_000_123) == "2023-11-14T22:13:20.123Z"
