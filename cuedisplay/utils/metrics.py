"""
Metrics collection for the cue listener.

Tracks packet intake, decode failures by kind, mapping misses, applied display
updates, per-packet processing time and connected snapshot clients.

The listener thread writes and the WebSocket publisher reads. All access goes
through one lock.
"""

import time
import logging
from collections import defaultdict, deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict, Iterator, Optional

logger = logging.getLogger(__name__)

Tags = Optional[Dict[str, str]]

APPLIED_PREFIX = 'state.update.applied[field='


@dataclass
class TimingStats:
    """Durations in seconds; p95 is taken over the last 100 samples."""
    count: int = 0
    total: float = 0.0
    fastest: Optional[float] = None
    slowest: float = 0.0
    window: deque = field(default_factory=lambda: deque(maxlen=100))

    def update(self, seconds: float) -> None:
        self.count += 1
        self.total += seconds
        self.fastest = seconds if self.fastest is None else min(self.fastest, seconds)
        self.slowest = max(self.slowest, seconds)
        self.window.append(seconds)

    def to_dict(self) -> Dict[str, Any]:
        ordered = sorted(self.window)
        p95 = ordered[min(int(len(ordered) * 0.95), len(ordered) - 1)] if ordered else 0.0
        return {
            'count': self.count,
            'mean': round(self.total / self.count, 6) if self.count else 0.0,
            'min': round(self.fastest or 0.0, 6),
            'max': round(self.slowest, 6),
            'p95': round(p95, 6),
        }


@dataclass
class CounterStats:
    value: int = 0

    def update(self, amount: int) -> None:
        self.value += amount

    def to_dict(self) -> Dict[str, Any]:
        return {'value': self.value}


@dataclass
class GaugeStats:
    """Last reported value and the peak seen so far."""
    current: float = 0.0
    peak: float = 0.0

    def update(self, value: float) -> None:
        self.current = value
        self.peak = max(self.peak, value)

    def to_dict(self) -> Dict[str, Any]:
        return {'current': self.current, 'max': self.peak}


_KINDS = {
    'timings': TimingStats,
    'counters': CounterStats,
    'gauges': GaugeStats,
}


class MetricsCollector:
    """
    Metrics shared by the listener and the snapshot publisher.

    Usage:
        metrics = MetricsCollector()

        with metrics.timer('packet.processing'):
            listener.handle_packet(data)

        metrics.increment('state.update.applied', tags={'field': 'cue'})
        metrics.gauge('websocket.clients', 2)
    """

    def __init__(self):
        self._lock = Lock()
        self._tables: Dict[str, Dict[str, Any]] = {
            kind: defaultdict(factory) for kind, factory in _KINDS.items()
        }
        self._started = time.monotonic()

    def timing(self, name: str, seconds: float, tags: Tags = None) -> None:
        self._update('timings', name, tags, seconds)

    def increment(self, name: str, amount: int = 1, tags: Tags = None) -> None:
        self._update('counters', name, tags, amount)

    def gauge(self, name: str, value: float, tags: Tags = None) -> None:
        self._update('gauges', name, tags, value)
        logger.debug(f"Gauge {metric_key(name, tags)} = {value}")

    @contextmanager
    def timer(self, name: str, tags: Tags = None) -> Iterator[None]:
        """Time the enclosed block, including blocks that raise."""
        began = time.perf_counter()
        try:
            yield
        finally:
            self.timing(name, time.perf_counter() - began, tags)

    def get_timing(self, name: str, tags: Tags = None) -> Optional[Dict[str, Any]]:
        return self._lookup('timings', name, tags)

    def get_counter(self, name: str, tags: Tags = None) -> Optional[Dict[str, Any]]:
        return self._lookup('counters', name, tags)

    def get_gauge(self, name: str, tags: Tags = None) -> Optional[Dict[str, Any]]:
        return self._lookup('gauges', name, tags)

    def get_all_metrics(self) -> Dict[str, Any]:
        """All metrics keyed by kind, plus uptime."""
        with self._lock:
            snapshot: Dict[str, Any] = {
                kind: {key: stats.to_dict() for key, stats in table.items()}
                for kind, table in self._tables.items()
            }
        snapshot['uptime_seconds'] = time.monotonic() - self._started
        return snapshot

    def reset(self) -> None:
        with self._lock:
            for table in self._tables.values():
                table.clear()
            self._started = time.monotonic()
        logger.debug("Metrics reset")

    def _update(self, kind: str, name: str, tags: Tags, value) -> None:
        key = metric_key(name, tags)
        with self._lock:
            self._tables[kind][key].update(value)

    def _lookup(self, kind: str, name: str, tags: Tags) -> Optional[Dict[str, Any]]:
        key = metric_key(name, tags)
        with self._lock:
            stats = self._tables[kind].get(key)
            return stats.to_dict() if stats is not None else None


def metric_key(name: str, tags: Tags = None) -> str:
    """Flatten name and tags, e.g. 'state.update.applied[field=cue]'."""
    if not tags:
        return name
    return name + '[' + ','.join(f"{k}={v}" for k, v in sorted(tags.items())) + ']'


class MetricsExporter:
    """Turns get_all_metrics() output into client-facing dictionaries."""

    @staticmethod
    def to_summary(metrics: Dict[str, Any]) -> Dict[str, Any]:
        """High-level listener health for STATS messages."""
        counters = metrics.get('counters', {})

        def count(key: str) -> int:
            return counters.get(key, {}).get('value', 0)

        listener = {
            'packets_received': count('udp.packet.received'),
            'malformed': count('udp.decode.malformed'),
            'unsupported': count('udp.decode.unsupported'),
            'mapping_misses': count('mapping.miss'),
        }

        processing = metrics.get('timings', {}).get('packet.processing')
        if processing:
            listener['processing_ms'] = {
                'mean': round(processing['mean'] * 1000, 3),
                'p95': round(processing['p95'] * 1000, 3),
            }

        applied = {
            key[len(APPLIED_PREFIX):-1]: stats['value']
            for key, stats in counters.items()
            if key.startswith(APPLIED_PREFIX)
        }

        websocket = {}
        clients = metrics.get('gauges', {}).get('websocket.clients')
        if clients:
            websocket['clients_connected'] = int(clients['current'])

        return {
            'uptime_seconds': round(metrics.get('uptime_seconds', 0), 1),
            'udp_listener': listener,
            'updates_applied': applied,
            'websocket': websocket,
        }
