"""
UDP listener service for receiving cue updates over OSC.
"""

from .osc_parser import (
    parse_osc_message,
    OSCMessage,
    OSCArgument,
    RGBAColor,
    DecodeError,
    MalformedPacketError,
    UnsupportedPacketError,
)
from .packet_source import PacketSource, PacketSourceClosed, RawPacket, StartupError
from .listener import CueListener, ListenerHandle, ListenerState, start, stop

__all__ = [
    "parse_osc_message",
    "OSCMessage",
    "OSCArgument",
    "RGBAColor",
    "DecodeError",
    "MalformedPacketError",
    "UnsupportedPacketError",
    "PacketSource",
    "PacketSourceClosed",
    "RawPacket",
    "StartupError",
    "CueListener",
    "ListenerHandle",
    "ListenerState",
    "start",
    "stop",
]
