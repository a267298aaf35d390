"""
OSC (Open Sound Control) message builder for UDP communication.

This module provides utilities for encoding messages in the OSC protocol format.
It is the counterpart of osc_parser and is used by the sender tool and the tests
to produce packets the display understands.

Reference: http://opensoundcontrol.org/spec-1_0
"""

import struct
from typing import Any, Tuple

from .osc_parser import OSCArgument, RGBAColor


def _pad_to_multiple_of_4(data: bytes) -> bytes:
    """Pad bytes to a multiple of 4 bytes with null bytes."""
    remainder = len(data) % 4
    if remainder != 0:
        data += b'\x00' * (4 - remainder)
    return data


def _encode_string(s: str) -> bytes:
    """Encode a string as OSC string (null-terminated, padded to 4 bytes)."""
    encoded = s.encode('utf-8') + b'\x00'
    return _pad_to_multiple_of_4(encoded)


def _encode_blob(b: bytes) -> bytes:
    return struct.pack('>i', len(b)) + _pad_to_multiple_of_4(bytes(b))


def _encode_color(c: RGBAColor) -> bytes:
    return bytes((c.r, c.g, c.b, c.a))


def _encode_tagged(arg: OSCArgument) -> bytes:
    """Encode an argument whose type tag was chosen explicitly."""
    tag, value = arg.tag, arg.value
    if tag == 'i':
        return struct.pack('>i', value)
    if tag == 'h':
        return struct.pack('>q', value)
    if tag == 'f':
        return struct.pack('>f', value)
    if tag == 'd':
        return struct.pack('>d', value)
    if tag in ('s', 'S'):
        return _encode_string(value)
    if tag == 'c':
        return struct.pack('>I', ord(value))
    if tag == 'b':
        return _encode_blob(value)
    if tag == 'r':
        return _encode_color(value)
    if tag == 'm':
        return bytes(value)
    if tag in ('T', 'F', 'N', 'I'):
        return b''
    raise TypeError(f"Unsupported OSC type tag: {tag!r}")


def _infer(arg: Any) -> OSCArgument:
    """Pick the OSC type tag for a plain Python value."""
    if isinstance(arg, OSCArgument):
        return arg
    if isinstance(arg, bool):
        # Booleans use T/F tags and have no data
        return OSCArgument('T' if arg else 'F', arg)
    if arg is None:
        return OSCArgument('N', None)
    if isinstance(arg, int):
        return OSCArgument('i', arg)
    if isinstance(arg, float):
        return OSCArgument('f', arg)
    if isinstance(arg, str):
        return OSCArgument('s', arg)
    if isinstance(arg, (bytes, bytearray)):
        return OSCArgument('b', bytes(arg))
    if isinstance(arg, RGBAColor):
        return OSCArgument('r', arg)
    raise TypeError(f"Unsupported OSC argument type: {type(arg)}")


def build_osc_message(address: str, *args: Any) -> bytes:
    """
    Build an OSC message with the given address pattern and arguments.

    Args:
        address: OSC address pattern (e.g., "/cue")
        *args: int, float, str, bool, None, bytes, RGBAColor, or an
               OSCArgument to force a specific type tag

    Returns:
        bytes: Complete OSC message ready to send via UDP

    Example:
        >>> build_osc_message("/cue", "Act1Scene2")
        b'/cue\\x00\\x00\\x00\\x00,s\\x00\\x00Act1Scene2\\x00\\x00'
    """
    if not address.startswith('/'):
        raise ValueError(f"OSC address must start with '/': {address}")

    tagged = [_infer(arg) for arg in args]

    message = _encode_string(address)
    message += _encode_string(',' + ''.join(arg.tag for arg in tagged))
    for arg in tagged:
        message += _encode_tagged(arg)

    return message


def build_cue(cue: str) -> bytes:
    """Build a /cue message."""
    return build_osc_message("/cue", cue)


def build_description(text: str) -> bytes:
    """Build a /description message."""
    return build_osc_message("/description", text)


def build_color(color: RGBAColor) -> bytes:
    """Build a /color message carrying a native OSC RGBA argument."""
    return build_osc_message("/color", color)


def build_color_components(*components: Any) -> bytes:
    """Build a /color message from 3 or 4 numeric components."""
    return build_osc_message("/color", *components)


def build_bundle(*messages: bytes, timetag: Tuple[int, int] = (0, 1)) -> bytes:
    """
    Build an OSC bundle wrapping already-encoded messages.

    The display rejects bundles; this exists so tools and tests can send them.
    """
    bundle = _encode_string("#bundle") + struct.pack('>II', *timetag)
    for msg in messages:
        bundle += struct.pack('>i', len(msg)) + msg
    return bundle
