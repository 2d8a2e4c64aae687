"""
Message channel between the orchestrator and the replay worker.

The worker inherits the write end of an ``os.pipe`` (its fd number is passed
in FLIGHT_ELO_IPC_FD) and sends one JSON object per line. Stdout and stderr
stay free for plain log output.
"""

import asyncio
import json
import os
from typing import Any, Awaitable, Callable, Dict, Optional

from flight_elo.constants import ReplayConstants
from flight_elo.utils.logger import setup_logger
from flight_elo.utils.ndjson import LineBuffer

logger = setup_logger(__name__)

MessageHandler = Callable[[Dict[str, Any]], Optional[Awaitable[None]]]


class MessageChannel:
    """Child side of the channel"""

    def __init__(self, fd: int):
        self._file = os.fdopen(fd, 'w', encoding='utf-8')

    @classmethod
    def from_env(cls) -> 'MessageChannel':
        raw = os.environ.get(ReplayConstants.IPC_FD_ENV)
        if not raw:
            raise RuntimeError(f"{ReplayConstants.IPC_FD_ENV} is not set; run the worker through the orchestrator")
        return cls(int(raw))

    def send(self, message: Dict[str, Any]):
        self._file.write(json.dumps(message, separators=(',', ':')) + "\n")
        self._file.flush()

    def close(self):
        self._file.close()


async def read_messages(read_fd: int, on_message: MessageHandler,
                        chunk_size: int = ReplayConstants.STREAM_CHUNK_SIZE) -> int:
    """
    Parent side: read JSON lines from ``read_fd`` until the writer closes it.

    Each decoded object is passed to ``on_message``; lines that are not JSON
    objects are logged and skipped. Returns the number of messages delivered.
    """
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=chunk_size)
    transport, _ = await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader), os.fdopen(read_fd, 'rb', 0)
    )
    buffer = LineBuffer()
    delivered = 0
    try:
        while True:
            chunk = await reader.read(chunk_size)
            lines = buffer.feed(chunk) if chunk else buffer.flush()
            for line in lines:
                if not line.strip():
                    continue
                try:
                    message = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning(f"Ignoring malformed replay message: {line[:200]}")
                    continue
                if not isinstance(message, dict):
                    logger.warning(f"Ignoring non-object replay message: {line[:200]}")
                    continue
                outcome = on_message(message)
                if asyncio.iscoroutine(outcome):
                    await outcome
                delivered += 1
            if not chunk:
                return delivered
    finally:
        transport.close()
