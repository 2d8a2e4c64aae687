"""
Hourly replay cycle.

Dumps the active season's kills and deaths to NDJSON, runs the replay worker
as a separate OS process and feeds the multipliers it reports back into the
live updater. The parent never blocks on the child: output is relayed into the
log as it arrives and the run is bounded by REPLAY_TIMEOUT_SECONDS.

Any failure before the child reports multipliers leaves the previous table in
place; a stale table is better than none.
"""

import asyncio
import json
import os
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from flight_elo.config import Config
from flight_elo.constants import ReplayConstants
from flight_elo.utils.elo_exceptions import EloEngineError, ReplayProcessError
from flight_elo.utils.logger import CHILD_PROCESS_ENV, setup_logger
from flight_elo.utils.multipliers import MultiplierTable
from flight_elo.utils.ndjson import LineBuffer, write_ndjson
from flight_elo.services.ipc import read_messages

logger = setup_logger(__name__)

WORKER_MODULE = 'flight_elo.services.replay_worker'


@dataclass
class ReplayCycleResult:
    season_id: Optional[int] = None
    exit_code: Optional[int] = None
    duration_ms: int = 0
    multiplier_count: int = 0
    summary: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and self.error is None


class ReplayOrchestrator:
    """Runs one replay cycle at a time; overlapping triggers join the running one"""

    def __init__(self, database, live_service, dump_dir: str = None, backup_dir: str = None,
                 timeout: float = None, batch_size: int = None, child_command: Sequence[str] = None):
        self.db = database
        self.live_service = live_service
        self.dump_dir = Path(dump_dir or Config.DUMP_DIR)
        self.backup_dir = backup_dir if backup_dir is not None else Config.USER_BACKUP_DIR
        self.timeout = timeout or Config.REPLAY_TIMEOUT_SECONDS
        self.batch_size = batch_size or Config.REPLAY_BATCH_SIZE
        self.child_command: List[str] = list(child_command or [sys.executable, '-m', WORKER_MODULE])
        self._current: Optional[asyncio.Task] = None
        self.last_result: Optional[ReplayCycleResult] = None

    @property
    def is_running(self) -> bool:
        return self._current is not None and not self._current.done()

    async def run_cycle(self, season_id: int = None) -> ReplayCycleResult:
        """
        Replay the active season, or ``season_id`` when given.

        A trigger for the active season joins a cycle already in flight. A
        trigger for a specific season waits for it and then runs its own.
        """
        while self.is_running:
            logger.info("Replay already in progress, waiting for it instead of starting another")
            # Shield so a cancelled caller does not kill a cycle other callers wait on
            result = await asyncio.shield(self._current)
            if season_id is None:
                return result
        self._current = asyncio.create_task(self._run_cycle(season_id))
        return await asyncio.shield(self._current)

    async def _run_cycle(self, season_id: int = None) -> ReplayCycleResult:
        logger.info("Running hourly replay..." if season_id is None else f"Replaying season {season_id}...")
        result = ReplayCycleResult()
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()
        try:
            season = await self.db.get_active_season() if season_id is None else await self.db.get_season(season_id)
            if season is None:
                raise ReplayProcessError(f"season {season_id} does not exist")
            result.season_id = season.id
            await self.write_dumps(season.id)
            result.exit_code = await self._run_child(season.id, result)
            if result.exit_code != 0:
                raise ReplayProcessError("non-zero exit", result.exit_code)
        except (EloEngineError, OSError) as e:
            result.error = str(e)
            logger.error(f"Replay cycle failed, keeping previous multipliers: {e}", exc_info=True)
        finally:
            result.duration_ms = int((time.monotonic() - start) * 1000)
            logger.info(f"Replay process finished with code {result.exit_code} in {result.duration_ms}ms")

        await self.db.record_replay_run(
            season_id=result.season_id,
            started_at=started_at.replace(tzinfo=None),
            finished_at=datetime.now(timezone.utc).replace(tzinfo=None),
            exit_code=result.exit_code,
            duration_ms=result.duration_ms,
            multiplier_count=result.multiplier_count,
            users_updated=(result.summary or {}).get('users_updated', 0),
            error=result.error,
        )
        self.last_result = result
        return result

    async def write_dumps(self, season_id: int):
        """Replace the kill and death dumps with the season's current records"""
        self.dump_dir.mkdir(parents=True, exist_ok=True)
        kills_path = self.dump_dir / ReplayConstants.KILLS_DUMP_FILE
        deaths_path = self.dump_dir / ReplayConstants.DEATHS_DUMP_FILE
        for path in (kills_path, deaths_path):
            path.unlink(missing_ok=True)

        logger.info(f"Writing replay dumps to {self.dump_dir} for season {season_id}")
        kills = await write_ndjson(kills_path, self.db.stream_kills(season_id))
        deaths = await write_ndjson(deaths_path, self.db.stream_deaths(season_id))
        logger.info(f"Wrote {kills} kills and {deaths} deaths")

    def build_start_message(self, season_id: int) -> Dict[str, Any]:
        return {
            'type': ReplayConstants.START_MESSAGE_TYPE,
            'season_id': season_id,
            'database_url': self.db.database_url,
            'dump_dir': str(self.dump_dir.resolve()),
            'backup_dir': str(Path(self.backup_dir).resolve()) if self.backup_dir else None,
            'batch_size': self.batch_size,
            'settings': self.live_service.settings.to_dict(),
        }

    async def _run_child(self, season_id: int, result: ReplayCycleResult) -> int:
        read_fd, write_fd = os.pipe()
        env = dict(os.environ)
        env[ReplayConstants.IPC_FD_ENV] = str(write_fd)
        env[CHILD_PROCESS_ENV] = '1'
        try:
            process = await asyncio.create_subprocess_exec(
                *self.child_command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                pass_fds=(write_fd,),
                env=env,
            )
        except OSError as e:
            os.close(read_fd)
            raise ReplayProcessError(f"spawn failed: {e}")
        finally:
            # The child holds its own copy; ours must go so the reader sees EOF
            os.close(write_fd)

        logger.info(f"Started replay process (pid {process.pid})")
        try:
            process.stdin.write((json.dumps(self.build_start_message(season_id)) + "\n").encode('utf-8'))
            await process.stdin.drain()
            process.stdin.close()
        except (BrokenPipeError, ConnectionResetError):
            logger.warning("Replay process closed stdin before reading the start message")

        def on_message(message: Dict[str, Any]):
            self._handle_message(message, result)

        tasks = [
            asyncio.create_task(self._relay(process.stdout, logger.info)),
            asyncio.create_task(self._relay(process.stderr, logger.error)),
            asyncio.create_task(read_messages(read_fd, on_message)),
        ]
        try:
            return await asyncio.wait_for(self._wait(process, tasks), self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Replay process exceeded {self.timeout}s, killing it")
            if process.returncode is None:
                process.kill()
            await process.wait()
            raise ReplayProcessError("timed out", process.returncode)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    @staticmethod
    async def _wait(process, tasks) -> int:
        await asyncio.gather(*tasks)
        return await process.wait()

    def _handle_message(self, message: Dict[str, Any], result: ReplayCycleResult):
        message_type = message.get('type')
        if message_type == ReplayConstants.MULTIPLIERS_MESSAGE_TYPE:
            table = MultiplierTable.from_list(message.get('mults') or [])
            self.live_service.set_multipliers(table)
            result.multiplier_count = len(table)
            logger.info(f"Received {len(table)} multipliers from replay process")
        elif message_type == ReplayConstants.SUMMARY_MESSAGE_TYPE:
            result.summary = {k: v for k, v in message.items() if k != 'type'}
        else:
            logger.warning(f"Unknown replay message type: {message_type}")

    @staticmethod
    async def _relay(stream: asyncio.StreamReader, log):
        buffer = LineBuffer()
        while True:
            chunk = await stream.read(ReplayConstants.STREAM_CHUNK_SIZE)
            lines = buffer.feed(chunk) if chunk else buffer.flush()
            for line in lines:
                if line.strip():
                    log(f"[Replay] {line}")
            if not chunk:
                return
