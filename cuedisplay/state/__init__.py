"""Display state shared between the listener and its readers."""

from .display_state import (
    DisplayState,
    SharedDisplayState,
    FieldUpdate,
    CueUpdate,
    DescriptionUpdate,
    ColorUpdate,
)
from .field_mapper import map_message, parse_hex_color, color_from_components

__all__ = [
    "DisplayState",
    "SharedDisplayState",
    "FieldUpdate",
    "CueUpdate",
    "DescriptionUpdate",
    "ColorUpdate",
    "map_message",
    "parse_hex_color",
    "color_from_components",
]
