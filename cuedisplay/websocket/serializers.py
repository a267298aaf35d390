"""Builders for the JSON messages sent to snapshot clients."""

from typing import Any, Dict, Optional

from ..constants import MessageType
from ..state.display_state import DisplayState


def create_message(msg_type: MessageType, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a WebSocket message with a type and payload.

    Args:
        msg_type: Message type (STATE, STATS, ERROR, ACK)
        payload: Message payload

    Returns:
        Message dictionary
    """
    return {
        'type': msg_type.value,
        'payload': payload,
    }


def create_state_message(state: DisplayState) -> Dict[str, Any]:
    """Create a STATE message carrying the full display snapshot."""
    return create_message(MessageType.STATE, state.to_dict())


def create_stats_message(listener_stats: Optional[Dict[str, Any]], summary: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a STATS message.

    Args:
        listener_stats: CueListener.get_stats(), or None when no listener is attached
        summary: MetricsExporter.to_summary() output
    """
    return create_message(MessageType.STATS, {
        'listener': listener_stats,
        'metrics': summary,
    })


def create_error_message(error: str, details: Optional[str] = None) -> Dict[str, Any]:
    """Create an ERROR message."""
    payload = {'error': error}
    if details:
        payload['details'] = details
    return create_message(MessageType.ERROR, payload)


def create_ack_message(request_id: Optional[str] = None) -> Dict[str, Any]:
    """Create an ACK message."""
    payload = {}
    if request_id:
        payload['request_id'] = request_id
    return create_message(MessageType.ACK, payload)
