"""Replay cycle tests with scripted child processes and the real worker."""

import asyncio
import logging
import sys
import textwrap
from pathlib import Path

import pytest

from flight_elo.data_models.settings import EloSettings
from flight_elo.services.elo_updater import LiveEloService
from flight_elo.services.replay_orchestrator import ReplayOrchestrator
from flight_elo.utils.multipliers import KillMetric, MultiplierTable

REPO_ROOT = Path(__file__).resolve().parents[1]

REPORTING_CHILD = textwrap.dedent("""
    import json, os, sys
    start = json.loads(sys.stdin.readline())
    with os.fdopen(int(os.environ['FLIGHT_ELO_IPC_FD']), 'w') as channel:
        channel.write('garbage\\n')
        channel.write(json.dumps({'type': 'mults', 'mults': [
            {'killStr': 'FifthGen->Gun->FourthGen', 'count': 2, 'prec': 1.0, 'multiplier': 1.5},
        ]}) + '\\n')
        channel.write(json.dumps({'type': 'summary', 'season_id': start['season_id'], 'users_updated': 3}) + '\\n')
    print('replayed season', start['season_id'], 'kills at', start['dump_dir'])
""")

OLD_TABLE = MultiplierTable([KillMetric("FourthGen->HighTechRadar->FourthGen", 1, 1.0, 1.0)])


def child(script: str):
    return [sys.executable, '-c', script]


@pytest.fixture
def live_service(database):
    service = LiveEloService(database, settings=EloSettings(kills_to_rank=1))
    service.set_multipliers(OLD_TABLE)
    return service


@pytest.fixture
def make_orchestrator(database, live_service, tmp_path):
    def factory(command=None, timeout=30):
        return ReplayOrchestrator(
            database, live_service,
            dump_dir=str(tmp_path / "dumps"),
            backup_dir="",
            timeout=timeout,
            child_command=command,
        )
    return factory


async def test_multipliers_from_child_replace_the_table(make_orchestrator, live_service, season, caplog):
    orchestrator = make_orchestrator(child(REPORTING_CHILD))

    with caplog.at_level(logging.INFO):
        result = await orchestrator.run_cycle()

    assert result.succeeded
    assert result.multiplier_count == 1
    assert result.summary == {'season_id': 1, 'users_updated': 3}
    assert live_service.multipliers.get_multiplier("FifthGen->Gun->FourthGen") == 1.5
    assert live_service.multipliers.find("FourthGen->HighTechRadar->FourthGen") is None
    assert any(r.getMessage().startswith("[Replay] replayed season 1") for r in caplog.records)


async def test_dumps_are_written_before_the_child_starts(make_orchestrator, database, season,
                                                         make_kill, tmp_path):
    await database.add_kill(make_kill())
    await database.add_kill(make_kill(season=2))

    await make_orchestrator(child(REPORTING_CHILD)).run_cycle()

    lines = (tmp_path / "dumps" / "kills.json").read_text().splitlines()
    assert len(lines) == 1
    assert (tmp_path / "dumps" / "deaths.json").read_text() == ""


async def test_non_zero_exit_keeps_previous_table(make_orchestrator, live_service, database, season):
    result = await make_orchestrator(child("import sys; sys.exit(3)")).run_cycle()

    assert not result.succeeded
    assert result.exit_code == 3
    assert live_service.multipliers is OLD_TABLE

    runs = await database.get_replay_runs()
    assert len(runs) == 1
    assert runs[0].exit_code == 3
    assert not runs[0].succeeded


async def test_hung_child_is_killed(make_orchestrator, live_service, season):
    orchestrator = make_orchestrator(child("import time; time.sleep(60)"), timeout=0.5)

    result = await asyncio.wait_for(orchestrator.run_cycle(), 20)

    assert "timed out" in result.error
    assert live_service.multipliers is OLD_TABLE


async def test_overlapping_triggers_share_one_run(make_orchestrator, database, season):
    orchestrator = make_orchestrator(child("import time; time.sleep(0.5)"))

    first, second = await asyncio.gather(orchestrator.run_cycle(), orchestrator.run_cycle())

    assert first is second
    assert len(await database.get_replay_runs()) == 1


async def test_no_active_season(make_orchestrator, database, live_service):
    result = await make_orchestrator(child(REPORTING_CHILD)).run_cycle()

    assert result.season_id is None
    assert "No active season" in result.error
    assert live_service.multipliers is OLD_TABLE
    runs = await database.get_replay_runs()
    assert runs[0].error == result.error


async def test_full_cycle_with_real_worker(make_orchestrator, database, live_service, season,
                                          make_user, make_kill, monkeypatch):
    monkeypatch.setenv('PYTHONPATH', str(REPO_ROOT))
    await database.save_users([make_user("a", kills=1), make_user("b", deaths=1, elo=1500)])
    await database.add_kill(make_kill("a", "b"))

    result = await make_orchestrator().run_cycle()

    assert result.succeeded, result.error
    assert result.summary['users_updated'] == 2
    assert live_service.multipliers.get_multiplier("FourthGen->HighTechRadar->FourthGen") == pytest.approx(1.0)

    a, b = await database.get_user("a"), await database.get_user("b")
    assert a.elo == pytest.approx(2010)
    assert b.elo == pytest.approx(1990)
    assert a.rank == 1


async def test_ended_season_is_archived_without_touching_the_table(make_orchestrator, database, live_service,
                                                                  season, make_user, make_kill, monkeypatch):
    monkeypatch.setenv('PYTHONPATH', str(REPO_ROOT))
    await database.save_users([make_user("a", kills=1), make_user("b", deaths=1)])
    await database.add_kill(make_kill("a", "b"))
    await database.end_season(season.id)

    result = await make_orchestrator().run_cycle(season.id)

    assert result.succeeded, result.error
    assert result.summary['archived']
    assert live_service.multipliers is OLD_TABLE
    assert (await database.get_user("a")).elo == 2000
    assert (await database.get_season_stats("a", season.id)).elo == pytest.approx(2010)


async def test_unknown_season_is_recorded_as_failed(make_orchestrator, database):
    result = await make_orchestrator(child(REPORTING_CHILD)).run_cycle(99)

    assert not result.succeeded
    assert "season 99 does not exist" in result.error
    assert len(await database.get_replay_runs()) == 1
