"""
cue-display: show the current cue, description and color received over OSC.

Typical usage:

    from cuedisplay import SharedDisplayState, start, stop

    display = SharedDisplayState()
    handle = start(9000, display=display)
    ...
    print(display.snapshot().cue)
    ...
    stop(handle)
"""

# udp_listener must be imported before state: the listener pulls in the
# state package, which in turn needs the fully loaded OSC parser.
from .udp_listener import (
    CueListener,
    ListenerHandle,
    ListenerState,
    StartupError,
    DecodeError,
    MalformedPacketError,
    UnsupportedPacketError,
    RGBAColor,
    parse_osc_message,
    start,
    stop,
)
from .state import DisplayState, SharedDisplayState, map_message

__version__ = "0.1.0"

__all__ = [
    "CueListener",
    "ListenerHandle",
    "ListenerState",
    "StartupError",
    "DecodeError",
    "MalformedPacketError",
    "UnsupportedPacketError",
    "RGBAColor",
    "parse_osc_message",
    "start",
    "stop",
    "DisplayState",
    "SharedDisplayState",
    "map_message",
]
