"""
Shared display state.

A single cell holding the latest cue, description and color. The listener
thread is the only writer; any number of readers (renderer, WebSocket
publisher) call snapshot().

Snapshots are immutable DisplayState values. apply() builds a new value and
swaps the reference under a lock, so a reader either sees the state before
or after an update, never a mix of the two.
"""

import time
import logging
from dataclasses import dataclass, replace
from threading import Lock
from typing import Any, Dict, Optional, Union

from ..udp_listener.osc_parser import RGBAColor


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CueUpdate:
    """New cue identifier."""
    value: str
    field = "cue"


@dataclass(frozen=True)
class DescriptionUpdate:
    """New description text."""
    value: str
    field = "description"


@dataclass(frozen=True)
class ColorUpdate:
    """New cue color."""
    value: RGBAColor
    field = "color"


FieldUpdate = Union[CueUpdate, DescriptionUpdate, ColorUpdate]


@dataclass(frozen=True)
class DisplayState:
    """Point-in-time copy of the display fields."""
    cue: str = ""
    description: str = ""
    color: Optional[RGBAColor] = None
    updated_at: Optional[float] = None
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cue': self.cue,
            'description': self.description,
            'color': self.color.to_hex() if self.color else None,
            'updated_at': self.updated_at,
            'version': self.version,
        }


class SharedDisplayState:
    """
    Lock-protected holder of the current DisplayState.

    Contract: one writer (the listener loop), many readers. Each apply()
    replaces exactly one field; fields are independent of each other.
    The latest write wins; there is no history.
    """

    def __init__(self, initial: Optional[DisplayState] = None):
        self._lock = Lock()
        self._current = initial or DisplayState()

    def apply(self, update: FieldUpdate) -> DisplayState:
        """
        Apply a single field update.

        Args:
            update: CueUpdate, DescriptionUpdate or ColorUpdate

        Returns:
            The snapshot that is current after the update
        """
        if not isinstance(update, (CueUpdate, DescriptionUpdate, ColorUpdate)):
            raise TypeError(f"Not a field update: {update!r}")

        now = time.time()
        with self._lock:
            self._current = replace(
                self._current,
                updated_at=now,
                version=self._current.version + 1,
                **{update.field: update.value},
            )
            new_state = self._current

        logger.debug(f"Display {update.field} -> {update.value!r} (v{new_state.version})")
        return new_state

    def snapshot(self) -> DisplayState:
        """Return the current state. Never waits on readers."""
        with self._lock:
            return self._current

    def reset(self) -> None:
        """Restore the empty default state."""
        with self._lock:
            self._current = DisplayState()
