import io
import struct

import numpy as np
import pytest

from mbdr.errors import MalformedArchive, TruncatedArchive
from mbdr.io.cursor import ByteCursor


def test_scalar_fields_little_endian():
    raw = struct.pack("<HIQd", 0x0102, 7, 2**40 + 3, 1.5) + b"ab\x00"
    cursor = ByteCursor(raw)
    assert cursor.read_u16() == 0x0102
    assert cursor.read_u32() == 7
    assert cursor.read_u64() == 2**40 + 3
    assert cursor.read_f64() == pytest.approx(1.5)
    assert cursor.read_cstring() == "ab"
    assert cursor.position == len(raw)


def test_buffer_is_not_consumed_by_other_cursors():
    raw = struct.pack("<QQ", 11, 22)
    first = ByteCursor(raw)
    second = ByteCursor(raw, position=8)
    assert first.read_u64() == 11
    assert second.read_u64() == 22
    assert ByteCursor(raw).read_u64() == 11


def test_short_read_names_field():
    cursor = ByteCursor(b"\x01\x02")
    with pytest.raises(TruncatedArchive, match="block count"):
        cursor.read_u64("block count")


def test_unterminated_cstring_is_truncation():
    with pytest.raises(TruncatedArchive, match="unterminated"):
        ByteCursor(b"abc").read_cstring()


def test_stream_source_matches_buffer_source():
    raw = struct.pack("<H", 3) + b"name\x00" + struct.pack("<3d", 1.0, 2.0, 3.0)
    for source in (raw, io.BytesIO(raw)):
        cursor = ByteCursor(source)
        assert cursor.read_u16() == 3
        assert cursor.read_cstring() == "name"
        np.testing.assert_array_equal(cursor.read_f64_array(3), [1.0, 2.0, 3.0])


@pytest.mark.parametrize("as_stream", [False, True])
def test_read_bulk_accepts_slack_up_to_capacity(as_stream):
    raw = bytes(range(12))
    source = io.BytesIO(raw) if as_stream else raw
    view = ByteCursor(source).read_bulk(10, 12)
    assert bytes(view) == raw
    assert view.readonly


@pytest.mark.parametrize("as_stream", [False, True])
def test_read_bulk_too_short(as_stream):
    raw = bytes(8)
    source = io.BytesIO(raw) if as_stream else raw
    with pytest.raises(TruncatedArchive):
        ByteCursor(source).read_bulk(10, 12)


@pytest.mark.parametrize("as_stream", [False, True])
def test_read_bulk_overrun(as_stream):
    raw = bytes(13)
    source = io.BytesIO(raw) if as_stream else raw
    with pytest.raises(MalformedArchive):
        ByteCursor(source).read_bulk(10, 12)
