"""
OSC (Open Sound Control) message parser.

Parses binary OSC messages received via UDP into structured Python data.
Every argument is decoded into an OSCArgument carrying its type tag, so
consumers can match on the tag instead of guessing from Python types.

Structural violations raise MalformedPacketError. Well-formed constructs
that this display does not implement (bundles, timetags, arrays) raise
UnsupportedPacketError so the two cases can be told apart in logs.

Reference: http://opensoundcontrol.org/spec-1_0
"""

import struct
from dataclasses import dataclass
from typing import Any, Callable, Dict, Tuple


BUNDLE_TAG = "#bundle"

# Type tags carrying no payload bytes
_NO_DATA_TAGS = {
    'T': True,
    'F': False,
    'N': None,
    'I': None,
}

_UNSUPPORTED_TAGS = {
    't': "timetag arguments",
    '[': "array arguments",
    ']': "array arguments",
}


class DecodeError(ValueError):
    """Base class for OSC decoding failures."""


class MalformedPacketError(DecodeError):
    """Packet violates the OSC binary format."""


class UnsupportedPacketError(DecodeError):
    """Packet is valid OSC but uses a construct this decoder does not handle."""


@dataclass(frozen=True)
class RGBAColor:
    """32-bit RGBA color, one byte per component."""
    r: int
    g: int
    b: int
    a: int = 255

    def __post_init__(self):
        for name in ('r', 'g', 'b', 'a'):
            value = getattr(self, name)
            if not 0 <= value <= 255:
                raise ValueError(f"Color component {name} out of range: {value}")

    @classmethod
    def from_packed(cls, value: int) -> 'RGBAColor':
        """Build a color from a packed 0xRRGGBBAA integer (signed or unsigned)."""
        value &= 0xFFFFFFFF
        return cls((value >> 24) & 0xFF, (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF)

    def to_packed(self) -> int:
        return (self.r << 24) | (self.g << 16) | (self.b << 8) | self.a

    def to_hex(self) -> str:
        """Format as #RRGGBB, or #RRGGBBAA when not fully opaque."""
        if self.a == 255:
            return f"#{self.r:02X}{self.g:02X}{self.b:02X}"
        return f"#{self.r:02X}{self.g:02X}{self.b:02X}{self.a:02X}"


@dataclass(frozen=True)
class OSCArgument:
    """A single decoded argument and the type tag it was declared with."""
    tag: str
    value: Any


@dataclass(frozen=True)
class OSCMessage:
    """Parsed OSC message."""
    address: str
    type_tags: str
    arguments: Tuple[OSCArgument, ...]

    @property
    def values(self) -> Tuple[Any, ...]:
        """Argument values without their type tags."""
        return tuple(arg.value for arg in self.arguments)


def _require(data: bytes, offset: int, size: int, what: str) -> None:
    if offset + size > len(data):
        raise MalformedPacketError(
            f"Truncated {what}: need {size} bytes at offset {offset}, "
            f"packet has {len(data)}"
        )


def _read_string(data: bytes, offset: int) -> Tuple[str, int]:
    """
    Read OSC string from bytes (null-terminated, padded to 4 bytes).

    Returns:
        Tuple of (string, new_offset)
    """
    # Find null terminator
    null_idx = data.find(b'\x00', offset)
    if null_idx == -1:
        raise MalformedPacketError(f"No null terminator for OSC string at offset {offset}")

    try:
        string = data[offset:null_idx].decode('utf-8')
    except UnicodeDecodeError as e:
        raise MalformedPacketError(f"Invalid UTF-8 in OSC string at offset {offset}") from e

    # Calculate next offset (padded to multiple of 4)
    string_len = null_idx - offset + 1  # Include null terminator
    padding = (4 - (string_len % 4)) % 4
    new_offset = null_idx + 1 + padding

    if new_offset > len(data):
        raise MalformedPacketError(f"OSC string at offset {offset} is missing its padding")
    if any(data[null_idx + 1:new_offset]):
        raise MalformedPacketError(f"Non-zero padding after OSC string at offset {offset}")

    return string, new_offset


def _read_int(data: bytes, offset: int) -> Tuple[int, int]:
    """Read OSC int32 (big-endian)."""
    _require(data, offset, 4, "int32")
    value = struct.unpack_from('>i', data, offset)[0]
    return value, offset + 4


def _read_int64(data: bytes, offset: int) -> Tuple[int, int]:
    _require(data, offset, 8, "int64")
    return struct.unpack_from('>q', data, offset)[0], offset + 8


def _read_float(data: bytes, offset: int) -> Tuple[float, int]:
    """Read OSC float32 (big-endian)."""
    _require(data, offset, 4, "float32")
    value = struct.unpack_from('>f', data, offset)[0]
    return value, offset + 4


def _read_double(data: bytes, offset: int) -> Tuple[float, int]:
    _require(data, offset, 8, "float64")
    return struct.unpack_from('>d', data, offset)[0], offset + 8


def _read_char(data: bytes, offset: int) -> Tuple[str, int]:
    """Read OSC char (ASCII character sent as 32 bits)."""
    _require(data, offset, 4, "char")
    code = struct.unpack_from('>I', data, offset)[0]
    if code > 0x10FFFF:
        raise MalformedPacketError(f"Invalid character code {code} at offset {offset}")
    return chr(code), offset + 4


def _read_blob(data: bytes, offset: int) -> Tuple[bytes, int]:
    """Read OSC blob (int32 size followed by padded bytes)."""
    size, offset = _read_int(data, offset)
    if size < 0:
        raise MalformedPacketError(f"Negative blob size {size}")
    padded = size + (4 - size % 4) % 4
    _require(data, offset, padded, "blob")
    if any(data[offset + size:offset + padded]):
        raise MalformedPacketError(f"Non-zero padding after blob at offset {offset}")
    return bytes(data[offset:offset + size]), offset + padded


def _read_color(data: bytes, offset: int) -> Tuple[RGBAColor, int]:
    _require(data, offset, 4, "color")
    r, g, b, a = data[offset:offset + 4]
    return RGBAColor(r, g, b, a), offset + 4


def _read_midi(data: bytes, offset: int) -> Tuple[bytes, int]:
    """Read OSC MIDI message (port id, status, data1, data2)."""
    _require(data, offset, 4, "MIDI message")
    return bytes(data[offset:offset + 4]), offset + 4


_READERS: Dict[str, Callable[[bytes, int], Tuple[Any, int]]] = {
    'i': _read_int,
    'h': _read_int64,
    'f': _read_float,
    'd': _read_double,
    's': _read_string,
    'S': _read_string,
    'c': _read_char,
    'b': _read_blob,
    'r': _read_color,
    'm': _read_midi,
}


def parse_osc_message(data: bytes) -> OSCMessage:
    """
    Parse binary OSC message into structured data.

    Args:
        data: Raw bytes from UDP packet

    Returns:
        OSCMessage: Parsed message with address, type tags, and arguments

    Raises:
        MalformedPacketError: If the packet violates the OSC binary format
        UnsupportedPacketError: If the packet is a bundle or uses timetags/arrays

    Example:
        >>> msg = parse_osc_message(b'/cue\\x00\\x00\\x00\\x00,s\\x00\\x00Act1\\x00\\x00\\x00\\x00')
        >>> print(msg.address, msg.values)
        /cue ('Act1',)
    """
    data = bytes(data)

    if not data:
        raise MalformedPacketError("Empty OSC packet")
    if len(data) % 4 != 0:
        raise MalformedPacketError(f"OSC packet size {len(data)} is not a multiple of 4")

    # Bundles are checked before the address so they are reported as unsupported
    if data.startswith(BUNDLE_TAG.encode('ascii') + b'\x00'):
        raise UnsupportedPacketError("OSC bundles are not supported")

    if data[:1] != b'/':
        raise MalformedPacketError(f"OSC address must start with '/': {data[:16]!r}")

    address, offset = _read_string(data, 0)

    if offset >= len(data):
        raise MalformedPacketError(f"Missing type tag string for {address}")
    if data[offset:offset + 1] != b',':
        raise MalformedPacketError(f"OSC type tags must start with ',' for {address}")

    type_tags, offset = _read_string(data, offset)
    type_tags = type_tags[1:]

    # Reject unsupported tags before reading anything so partial results never escape
    for tag in type_tags:
        if tag in _UNSUPPORTED_TAGS:
            raise UnsupportedPacketError(f"OSC {_UNSUPPORTED_TAGS[tag]} are not supported ({address})")
        if tag not in _READERS and tag not in _NO_DATA_TAGS:
            raise MalformedPacketError(f"Unknown OSC type tag {tag!r} in {address}")

    arguments = []
    for tag in type_tags:
        if tag in _NO_DATA_TAGS:
            arguments.append(OSCArgument(tag, _NO_DATA_TAGS[tag]))
            continue
        value, offset = _READERS[tag](data, offset)
        arguments.append(OSCArgument(tag, value))

    if offset != len(data):
        raise MalformedPacketError(
            f"{len(data) - offset} trailing bytes after arguments of {address}"
        )

    return OSCMessage(address=address, type_tags=type_tags, arguments=tuple(arguments))
