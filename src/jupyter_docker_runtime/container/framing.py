"""Docker exec stream framing.

Without a tty the daemon multiplexes stdout and stderr onto one stream. Every
chunk is prefixed by an 8-byte header:

    [stream_type, 0, 0, 0, size (uint32, big-endian)]

where stream_type is 0 (stdin), 1 (stdout) or 2 (stderr). A stream may hold
any number of frames, and one logical write can be split across several.
"""

from __future__ import annotations

import struct

STREAM_HEADER_SIZE = 8
STDIN, STDOUT, STDERR = 0, 1, 2

_HEADER = struct.Struct(">BxxxL")


def is_framed(raw: bytes) -> bool:
    """True if raw starts with a valid multiplexing header."""
    return (
        len(raw) >= STREAM_HEADER_SIZE
        and raw[0] in (STDIN, STDOUT, STDERR)
        and raw[1:4] == b"\x00\x00\x00"
    )


def demultiplex(raw: bytes) -> tuple[bytes, bytes]:
    """Split a raw exec stream into (stdout, stderr).

    Every frame header is stripped, not just the first. A stream that does not
    begin with a header (tty exec) is returned whole as stdout. A truncated
    final frame keeps whatever payload bytes arrived.

    Args:
        raw: Bytes as read from the exec socket.

    Returns:
        Tuple of concatenated stdout and stderr payloads.
    """
    if not is_framed(raw):
        return raw, b""

    streams = {STDOUT: bytearray(), STDERR: bytearray()}
    offset = 0
    while offset < len(raw):
        if not is_framed(raw[offset : offset + STREAM_HEADER_SIZE]):
            # Trailing garbage after the last frame: keep it visible as stdout.
            streams[STDOUT] += raw[offset:]
            break
        stream_type, size = _HEADER.unpack_from(raw, offset)
        offset += STREAM_HEADER_SIZE
        payload = raw[offset : offset + size]
        offset += size
        if stream_type in streams:
            streams[stream_type] += payload
    return bytes(streams[STDOUT]), bytes(streams[STDERR])
