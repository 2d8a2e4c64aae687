"""
Replay worker process.

Started by ReplayOrchestrator as ``python -m flight_elo.services.replay_worker``.
Reads one JSON start line from stdin, replays the season, reports the new
multipliers and a summary over the message channel and exits. Exit code 0
means the results were persisted; anything else means nothing was.
"""

import asyncio
import json
import sys
from typing import Any, Dict

from flight_elo.config import Config
from flight_elo.constants import ReplayConstants
from flight_elo.data_models.settings import EloSettings
from flight_elo.database.database import Database
from flight_elo.services.ipc import MessageChannel
from flight_elo.services.replay_engine import ReplayEngine
from flight_elo.utils.elo_exceptions import EloEngineError
from flight_elo.utils.logger import setup_logger

logger = setup_logger(__name__)


def read_start_message(stream) -> Dict[str, Any]:
    line = stream.readline()
    if not line:
        raise ValueError("stdin closed before the start message arrived")
    message = json.loads(line)
    if message.get('type') != ReplayConstants.START_MESSAGE_TYPE:
        raise ValueError(f"expected a start message, got {message.get('type')!r}")
    return message


async def run_worker(start: Dict[str, Any], channel: MessageChannel) -> int:
    database = Database(start.get('database_url'))
    await database.initialize()
    try:
        engine = ReplayEngine(
            database,
            EloSettings.from_dict(start.get('settings') or {}),
            dump_dir=start.get('dump_dir') or Config.DUMP_DIR,
            backup_dir=start.get('backup_dir'),
            batch_size=start.get('batch_size') or Config.REPLAY_BATCH_SIZE,
        )
        result = await engine.run(start.get('season_id'))
    except EloEngineError as e:
        logger.error(f"Replay aborted: {e}")
        return 1
    finally:
        await database.close()

    # An ended season's multipliers must not replace the live table
    if not result.summary.archived:
        channel.send({'type': ReplayConstants.MULTIPLIERS_MESSAGE_TYPE, 'mults': result.multipliers.to_list()})
    channel.send({'type': ReplayConstants.SUMMARY_MESSAGE_TYPE, **result.summary.to_dict()})
    return 0


def main():
    channel = MessageChannel.from_env()
    try:
        try:
            start = read_start_message(sys.stdin)
        except ValueError as e:
            logger.error(f"Bad start message: {e}")
            exit_code = 2
        else:
            exit_code = asyncio.run(run_worker(start, channel))
    finally:
        channel.close()
    sys.stdout.flush()
    sys.exit(exit_code)


if __name__ == '__main__':
    main()
