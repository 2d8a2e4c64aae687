import json

import pytest

from flight_elo.utils.elo_exceptions import StreamParseError
from flight_elo.utils.ndjson import LineBuffer, iter_ndjson, write_ndjson


def test_line_buffer_holds_partial_lines():
    buffer = LineBuffer()
    assert buffer.feed(b'{"a": 1}\n{"b"') == ['{"a": 1}']
    assert buffer.pending == '{"b"'
    assert buffer.feed(b': 2}\n') == ['{"b": 2}']
    assert buffer.flush() == []


def test_line_buffer_handles_split_utf8():
    buffer = LineBuffer()
    encoded = "Ålesund\n".encode('utf-8')
    assert buffer.feed(encoded[:1]) == []
    assert buffer.feed(encoded[1:]) == ["Ålesund"]


def test_line_buffer_flush_returns_unterminated_tail():
    buffer = LineBuffer()
    buffer.feed("last line without newline")
    assert buffer.flush() == ["last line without newline"]


def test_reader_spans_chunk_boundaries(tmp_path):
    path = tmp_path / "kills.json"
    records = [{'id': f'k{i}', 'padding': 'x' * i} for i in range(50)]
    path.write_text("".join(json.dumps(r) + "\n" for r in records))

    parsed = [record for _, record in iter_ndjson(path, chunk_size=7)]

    assert parsed == records


def test_reader_skips_blank_lines_and_numbers_them(tmp_path):
    path = tmp_path / "deaths.json"
    path.write_text('{"id": 1}\n\n{"id": 2}')
    assert list(iter_ndjson(path)) == [(1, {'id': 1}), (3, {'id': 2})]


def test_malformed_line_raises_with_location(tmp_path):
    path = tmp_path / "kills.json"
    path.write_text('{"id": 1}\n{"id": \n')
    with pytest.raises(StreamParseError) as exc_info:
        list(iter_ndjson(path))
    assert exc_info.value.line_number == 2


def test_non_object_line_raises(tmp_path):
    path = tmp_path / "kills.json"
    path.write_text('[1, 2]\n')
    with pytest.raises(StreamParseError):
        list(iter_ndjson(path))


@pytest.mark.asyncio
async def test_writer_writes_one_record_per_line(tmp_path):
    async def records():
        for i in range(3):
            yield {'id': i}

    path = tmp_path / "out.json"
    assert await write_ndjson(path, records()) == 3
    assert path.read_text().splitlines() == ['{"id":0}', '{"id":1}', '{"id":2}']
