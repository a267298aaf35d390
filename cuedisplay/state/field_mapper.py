"""
Maps decoded OSC messages onto display field updates.

Only /cue, /description and /color are recognized. Anything else, including
a recognized address with the wrong argument shape, maps to None. Other OSC
traffic on the same port is expected, so a miss is not an error.
"""

import re
import logging
from typing import Callable, Dict, Optional, Sequence

from ..constants import OSCAddress
from ..udp_listener.osc_parser import OSCArgument, OSCMessage, RGBAColor
from .display_state import ColorUpdate, CueUpdate, DescriptionUpdate, FieldUpdate


logger = logging.getLogger(__name__)

_STRING_TAGS = frozenset('sS')
_INT_TAGS = frozenset('ih')
_FLOAT_TAGS = frozenset('fd')

_HEX_COLOR = re.compile(r'#([0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})')


def _single_string(args: Sequence[OSCArgument]) -> Optional[str]:
    if len(args) == 1 and args[0].tag in _STRING_TAGS:
        return args[0].value
    return None


def _map_cue(args: Sequence[OSCArgument]) -> Optional[FieldUpdate]:
    value = _single_string(args)
    return CueUpdate(value) if value is not None else None


def _map_description(args: Sequence[OSCArgument]) -> Optional[FieldUpdate]:
    value = _single_string(args)
    return DescriptionUpdate(value) if value is not None else None


def parse_hex_color(text: str) -> Optional[RGBAColor]:
    """Parse #RRGGBB or #RRGGBBAA. Returns None for anything else."""
    if not _HEX_COLOR.fullmatch(text):
        return None
    digits = text[1:]
    if len(digits) == 6:
        digits += "FF"
    return RGBAColor.from_packed(int(digits, 16))


def color_from_components(args: Sequence[OSCArgument]) -> Optional[RGBAColor]:
    """
    Convert 3 or 4 numeric arguments into a color.

    All-integer lists are 0-255 per component; all-float lists are 0.0-1.0.
    Mixed lists and out-of-range values are rejected rather than guessed.
    """
    if len(args) not in (3, 4):
        return None

    tags = {arg.tag for arg in args}
    values = [arg.value for arg in args]

    if tags <= _INT_TAGS:
        if len(values) == 3:
            values.append(255)
        if not all(0 <= v <= 255 for v in values):
            return None
        return RGBAColor(*values)

    if tags <= _FLOAT_TAGS:
        if len(values) == 3:
            values.append(1.0)
        # NaN fails both comparisons and is rejected here
        if not all(0.0 <= v <= 1.0 for v in values):
            return None
        return RGBAColor(*(int(round(v * 255)) for v in values))

    return None


def _map_color(args: Sequence[OSCArgument]) -> Optional[FieldUpdate]:
    color = None
    if len(args) == 1:
        arg = args[0]
        if arg.tag == 'r':
            color = arg.value
        elif arg.tag == 'i':
            color = RGBAColor.from_packed(arg.value)
        elif arg.tag in _STRING_TAGS:
            color = parse_hex_color(arg.value)
    else:
        color = color_from_components(args)

    return ColorUpdate(color) if color is not None else None


_MAPPERS: Dict[str, Callable[[Sequence[OSCArgument]], Optional[FieldUpdate]]] = {
    OSCAddress.CUE: _map_cue,
    OSCAddress.DESCRIPTION: _map_description,
    OSCAddress.COLOR: _map_color,
}


def map_message(message: OSCMessage) -> Optional[FieldUpdate]:
    """
    Convert a decoded message into a field update.

    Args:
        message: Decoded OSC message

    Returns:
        CueUpdate, DescriptionUpdate or ColorUpdate, or None when the address
        is not recognized or the arguments have the wrong shape
    """
    mapper = _MAPPERS.get(message.address)
    if mapper is None:
        logger.debug(f"Ignoring unrecognized address {message.address}")
        return None

    update = mapper(message.arguments)
    if update is None:
        logger.debug(
            f"Ignoring {message.address} with unexpected arguments ,{message.type_tags}"
        )
    return update
