import base64
import io
import random

import pytest

from pydownloads import codec
from pydownloads.codec import (DECODE_CHUNK_SIZE, ENCODE_CHUNK_SIZE, TOO_LARGE_HINT,
                               aligned_chunk_size, decode, decoded_length, encode,
                               encode_stream, encoded_length, padding_count)
from pydownloads.errors import DecodeError, EncodeError, OversizeError

K = 400_000
SIZES = [0, 1, 2, 3, 3 * K - 1, 3 * K, 3 * K + 1]


def payload(size):
    return random.Random(size).randbytes(size)


class ShortReader(io.RawIOBase):
    """Stream that never returns more than ``limit`` bytes per read."""

    def __init__(self, data, limit):
        self._buffer = io.BytesIO(data)
        self._limit = limit

    def readable(self):
        return True

    def read(self, size=-1):
        if size is None or size < 0 or size > self._limit:
            size = self._limit
        return self._buffer.read(size)


@pytest.mark.parametrize('size', SIZES)
def test_round_trip(size):
    data = payload(size)
    assert decode(encode(data)) == data


@pytest.mark.parametrize('size', SIZES)
def test_encode_matches_standard_base64(size):
    data = payload(size)
    assert encode(data) == base64.b64encode(data).decode('ascii')


@pytest.mark.parametrize('size,padding', [(300, 0), (301, 2), (302, 1)])
def test_padding(size, padding):
    text = encode(payload(size))
    assert len(text) - len(text.rstrip('=')) == padding


def test_scenario_man_null_ff():
    data = bytes([0x4D, 0x61, 0x6E, 0x00, 0xFF])
    assert encode(data) == 'TWFuAP8='
    assert decode('TWFuAP8=') == data


def test_empty_input():
    assert encode(b'') == ''
    assert decode('') == b''


# Chunks that are not a multiple of 3 bytes would put '=' in the middle of
# the output; every chunk size must give the same text.
def test_chunk_size_does_not_change_output():
    data = payload(100_001)
    expected = encode(data, chunk_size=10 * 1024 * 1024)
    assert encode(data, chunk_size=1) == expected
    assert encode(data, chunk_size=4) == expected


def test_chunk_size_does_not_change_output_across_default_chunks():
    data = payload(3 * K + 1)
    expected = encode(data, chunk_size=10 * 1024 * 1024)
    assert encode(data, chunk_size=4) == expected
    assert encode(data) == expected


def test_default_chunk_boundary_has_no_inner_padding():
    # 1 MiB is not a multiple of 3, so naive chunking would pad mid-stream
    assert ENCODE_CHUNK_SIZE % 3 != 0
    data = payload(2 * ENCODE_CHUNK_SIZE + 5)
    text = encode(data)
    assert '=' not in text[:-2]
    assert text == base64.b64encode(data).decode('ascii')


@pytest.mark.parametrize('chunk_size,aligned', [
    (1, 3), (2, 3), (3, 3), (4, 3), (8, 6), (ENCODE_CHUNK_SIZE, ENCODE_CHUNK_SIZE - 1),
])
def test_aligned_chunk_size(chunk_size, aligned):
    assert aligned_chunk_size(chunk_size) == aligned


def test_aligned_chunk_size_rejects_non_positive():
    with pytest.raises(ValueError):
        aligned_chunk_size(0)


def test_encode_accepts_bytes_like():
    data = payload(1000)
    assert encode(bytearray(data)) == encode(data)
    assert encode(memoryview(data)) == encode(data)


def test_encode_rejects_text():
    with pytest.raises(EncodeError) as excinfo:
        encode('not bytes')
    assert excinfo.value.kind == 'encode'


def test_encode_max_size():
    with pytest.raises(OversizeError) as excinfo:
        encode(b'x' * 11, max_size=10)
    assert excinfo.value.size == 11
    assert excinfo.value.limit == 10


def test_encoded_length():
    for size in (0, 1, 2, 3, 4, 1000):
        assert encoded_length(size) == len(base64.b64encode(b'\0' * size))


# ==================== encode_stream ====================
@pytest.mark.parametrize('size', [0, 1, 2, 3, 1000, 100_000])
def test_encode_stream_matches_encode(size):
    data = payload(size)
    assert encode_stream(io.BytesIO(data), chunk_size=1024) == encode(data)


def test_encode_stream_handles_short_reads():
    data = payload(10_000)
    assert encode_stream(ShortReader(data, 7), chunk_size=4096) == encode(data)


def test_encode_stream_rejects_text_stream():
    with pytest.raises(EncodeError):
        encode_stream(io.StringIO('hello'))


def test_encode_stream_max_size():
    with pytest.raises(OversizeError):
        encode_stream(io.BytesIO(b'x' * 5000), chunk_size=1024, max_size=4096)


# ==================== decode ====================
@pytest.mark.parametrize('chunk_size', [1, 2, 3, 4, 5, 7, 13, DECODE_CHUNK_SIZE])
def test_decode_chunk_boundaries(chunk_size):
    data = payload(1001)
    text = base64.b64encode(data).decode('ascii')
    assert decode(text, chunk_size=chunk_size) == data


@pytest.mark.parametrize('text', ['TWFu', 'TWE=', 'TQ==', 'TWFuAP8=', 'TWFuAP8A'])
def test_decoded_length_formula(text):
    assert decoded_length(text) == len(text) * 3 // 4 - padding_count(text)
    assert len(decode(text)) == decoded_length(text)


def test_padding_count():
    assert padding_count('TWFu') == 0
    assert padding_count('TWE=') == 1
    assert padding_count('TQ==') == 2


@pytest.mark.parametrize('text', ['TWFu!P8=', 'TW F', 'TWF\n', 'TWFu\u00e9A==', '****'])
def test_decode_rejects_invalid_characters(text):
    with pytest.raises(DecodeError) as excinfo:
        decode(text)
    assert excinfo.value.kind == 'decode'


def test_decode_rejects_invalid_character_in_later_chunk():
    text = encode(payload(3000))
    broken = text[:2500] + '!' + text[2501:]
    with pytest.raises(DecodeError):
        decode(broken, chunk_size=512)


@pytest.mark.parametrize('text', ['TQ==TWFu', 'T=Fu', 'TWF=TWFu', 'TQ==='])
def test_decode_rejects_misplaced_padding(text):
    with pytest.raises(DecodeError):
        decode(text)


def test_decode_rejects_impossible_length():
    with pytest.raises(DecodeError):
        decode('TWFuA')


def test_decode_accepts_unpadded_text():
    assert decode('TWFuAP8') == bytes([0x4D, 0x61, 0x6E, 0x00, 0xFF])
    assert decode('TQ') == b'M'


def test_decode_rejects_partial_padding():
    with pytest.raises(DecodeError):
        decode('TWFuAP=')


def test_decode_accepts_bytes():
    assert decode(b'TWFuAP8=') == bytes([0x4D, 0x61, 0x6E, 0x00, 0xFF])


def test_decode_rejects_non_text():
    with pytest.raises(DecodeError):
        decode(12345)


def test_decode_reports_allocation_failure(monkeypatch):
    def no_memory(size):
        raise MemoryError()

    monkeypatch.setattr(codec, '_allocate', no_memory)
    with pytest.raises(DecodeError) as excinfo:
        decode('TWFuAP8=')
    assert TOO_LARGE_HINT in str(excinfo.value)


def test_decode_returns_the_preallocated_buffer(monkeypatch):
    buffers = []

    def allocate(size):
        buffers.append(bytearray(size))
        return buffers[-1]

    monkeypatch.setattr(codec, '_allocate', allocate)
    result = decode(encode(payload(5000)), chunk_size=512)
    assert result is buffers[0]
    assert len(buffers) == 1


def test_decode_makes_no_copy_of_the_result(monkeypatch):
    class NoCopyBytes(bytes):
        def __new__(cls, *args, **kwargs):
            if args and isinstance(args[0], (bytearray, memoryview)):
                raise MemoryError()
            return super().__new__(cls, *args, **kwargs)

    monkeypatch.setattr(codec, 'bytes', NoCopyBytes, raising=False)
    assert decode('TWFuAP8=') == bytes([0x4D, 0x61, 0x6E, 0x00, 0xFF])
