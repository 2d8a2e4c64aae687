"""
Newline-delimited JSON helpers.

Dumps are read and written chunk by chunk so a season never has to fit in
memory. LineBuffer is also used to relay child process output, where a read
can end halfway through a line or halfway through a UTF-8 sequence.
"""

import codecs
import json
from pathlib import Path
from typing import Any, AsyncIterable, Dict, Iterator, List, Tuple, Union

from flight_elo.constants import ReplayConstants
from flight_elo.utils.elo_exceptions import StreamParseError


class LineBuffer:
    """Splits a stream of chunks into complete lines, holding the partial tail."""

    def __init__(self, encoding: str = 'utf-8'):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors='replace')
        self._partial = ""

    def feed(self, chunk: Union[bytes, str]) -> List[str]:
        """Add a chunk and return every line it completed (newlines stripped)."""
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        *lines, self._partial = (self._partial + chunk).split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        """Return whatever is left once the stream has ended."""
        rest = self._partial + self._decoder.decode(b"", final=True)
        self._partial = ""
        return [rest.rstrip("\r")] if rest else []

    @property
    def pending(self) -> str:
        return self._partial


def iter_ndjson(path: Union[str, Path], chunk_size: int = ReplayConstants.STREAM_CHUNK_SIZE) -> Iterator[Tuple[int, Dict[str, Any]]]:
    """
    Yield ``(line_number, record)`` for each non-blank line of an NDJSON file.

    Raises:
        StreamParseError: On the first line that is not a JSON object
    """
    buffer = LineBuffer()
    line_number = 0

    def parse(line: str) -> Dict[str, Any]:
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            raise StreamParseError(str(path), line_number, str(e))
        if not isinstance(record, dict):
            raise StreamParseError(str(path), line_number, f"expected an object, got {type(record).__name__}")
        return record

    with open(path, 'rb') as f:
        while True:
            chunk = f.read(chunk_size)
            lines = buffer.feed(chunk) if chunk else buffer.flush()
            for line in lines:
                line_number += 1
                if line.strip():
                    yield line_number, parse(line)
            if not chunk:
                break


async def write_ndjson(path: Union[str, Path], records: AsyncIterable[Dict[str, Any]]) -> int:
    """Write records one per line, returning how many were written."""
    count = 0
    with open(path, 'w', encoding='utf-8') as f:
        async for record in records:
            f.write(json.dumps(record, separators=(',', ':')))
            f.write("\n")
            count += 1
    return count
