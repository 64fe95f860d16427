"""
Chunked base64 codec for file content stored in text columns.

Both directions work in bounded-size chunks so that large uploads and
downloads never build one giant intermediate string:

- encode() slices the input into chunks whose length is a multiple of 3
  bytes, so only the final chunk can carry '=' padding.
- decode() pre-computes the exact output size, allocates one buffer and
  writes each decoded chunk straight into it. A chunk that ends in the
  middle of a quartet borrows the missing characters from the next chunk.
"""

import base64
import logging

from .errors import DecodeError, EncodeError, OversizeError

logger = logging.getLogger(__name__)

# 1 MiB of raw bytes per encode chunk (rounded down to a multiple of 3)
ENCODE_CHUNK_SIZE = 1024 * 1024
# 8 KiB of base64 characters per decode chunk
DECODE_CHUNK_SIZE = 8 * 1024

TOO_LARGE_HINT = 'The file may be too large to download directly.'


def aligned_chunk_size(chunk_size):
    """Round an encode chunk size down to a whole number of 3-byte groups."""
    if chunk_size < 1:
        raise ValueError(f'chunk_size must be positive, got {chunk_size}')
    return max(3, chunk_size - chunk_size % 3)


def encoded_length(size):
    """Number of base64 characters needed for ``size`` bytes."""
    return 4 * ((size + 2) // 3)


def padding_count(text):
    if text.endswith('=='):
        return 2
    if text.endswith('='):
        return 1
    return 0


def decoded_length(text):
    """Exact byte length that ``text`` decodes to."""
    return len(text) * 3 // 4 - padding_count(text)


# ==================== Encoding ====================
def encode(data, chunk_size=ENCODE_CHUNK_SIZE, max_size=None):
    """
    Encode binary content as standard padded base64 text.

    The result is identical for every chunk size; chunking only bounds the
    size of each call into the base64 module.
    """
    try:
        view = memoryview(data).cast('B')
    except TypeError as exc:
        raise EncodeError(
            f'Cannot encode {type(data).__name__}: expected bytes-like content'
        ) from exc

    size = view.nbytes
    if max_size is not None and size > max_size:
        raise OversizeError(size, max_size)

    step = aligned_chunk_size(chunk_size)
    out = bytearray(encoded_length(size))
    pos = 0
    for start in range(0, size, step):
        piece = base64.b64encode(view[start:start + step])
        out[pos:pos + len(piece)] = piece
        pos += len(piece)

    return out.decode('ascii')


def encode_stream(fileobj, chunk_size=ENCODE_CHUNK_SIZE, max_size=None):
    """
    Encode a readable binary stream (e.g. an uploaded file) chunk by chunk.

    Short reads are handled by carrying the bytes that do not fill a
    3-byte group over to the next chunk.
    """
    step = aligned_chunk_size(chunk_size)
    parts = []
    carry = b''
    total = 0

    while True:
        chunk = fileobj.read(step)
        if not chunk:
            break
        if isinstance(chunk, str):
            raise EncodeError('Cannot encode a text stream: open the file in binary mode')

        total += len(chunk)
        if max_size is not None and total > max_size:
            raise OversizeError(total, max_size)

        if carry:
            chunk = carry + chunk
        usable = len(chunk) - len(chunk) % 3
        carry = chunk[usable:]
        if usable:
            parts.append(base64.b64encode(chunk[:usable]))

    if carry:
        parts.append(base64.b64encode(carry))

    return b''.join(parts).decode('ascii')


# ==================== Decoding ====================
def _check_layout(text):
    """Reject text whose length or padding cannot form whole quartets."""
    length = len(text)
    pad = padding_count(text)

    first_pad = text.find('=')
    if first_pad != -1 and first_pad < length - pad:
        raise DecodeError(f'Invalid base64 content: padding at position {first_pad}')

    remainder = length % 4
    if remainder == 1:
        raise DecodeError(f'Invalid base64 content: length {length} is not a valid quartet count')
    if remainder and pad:
        raise DecodeError('Invalid base64 content: padded text must be a whole number of quartets')


def _allocate(size):
    return bytearray(size)


def _decode_group(group):
    try:
        return base64.b64decode(group, validate=True)
    except ValueError as exc:
        # binascii.Error, or non-ASCII characters in a str
        raise DecodeError(f'Invalid base64 content: {exc}') from exc


def decode(text, chunk_size=DECODE_CHUNK_SIZE):
    """
    Decode base64 text into one pre-sized output buffer and return it.

    The result is a bytearray; it compares equal to the original bytes.

    Raises DecodeError on characters outside the base64 alphabet, misplaced
    padding, or when the buffer cannot be allocated.
    """
    if isinstance(text, (bytes, bytearray)):
        try:
            text = text.decode('ascii')
        except UnicodeDecodeError as exc:
            raise DecodeError('Invalid base64 content: non-ASCII bytes') from exc
    if not isinstance(text, str):
        raise DecodeError(f'Cannot decode {type(text).__name__}: expected base64 text')
    if chunk_size < 1:
        raise ValueError(f'chunk_size must be positive, got {chunk_size}')

    _check_layout(text)

    length = len(text)
    expected = decoded_length(text)
    try:
        out = _allocate(expected)
    except MemoryError as exc:
        raise DecodeError(f'Could not allocate {expected} bytes. {TOO_LARGE_HINT}') from exc

    write = 0

    def emit(group):
        nonlocal write
        piece = _decode_group(group)
        end = write + len(piece)
        if end > expected:
            raise DecodeError('Invalid base64 content: decoded data overruns expected size')
        out[write:end] = piece
        write = end

    try:
        pos = 0
        while pos < length:
            stop = min(pos + chunk_size, length)
            whole = stop - (stop - pos) % 4
            if whole > pos:
                emit(text[pos:whole])

            leftover = text[whole:stop]
            pos = stop
            if leftover:
                borrow = 4 - len(leftover)
                quartet = leftover + text[pos:pos + borrow]
                pos += borrow
                if len(quartet) < 4:
                    # Final group of unpadded text
                    quartet += '=' * (4 - len(quartet))
                emit(quartet)

        if write < expected:
            logger.debug('Decoded %d of %d pre-allocated bytes', write, expected)
            del out[write:]
    except MemoryError as exc:
        raise DecodeError(f'Ran out of memory while decoding. {TOO_LARGE_HINT}') from exc

    # The pre-sized buffer is the result; no second copy is made
    return out
