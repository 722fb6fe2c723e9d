#!/usr/bin/env python3
"""
MACWATCH Metrics
================

Injectable counter registry.

Counters are monotonic and safe to increment from any thread (classification
loop, alert workers, persistence worker). The registry renders itself in the
Prometheus text exposition format for the /metrics endpoint.
"""

import threading
from typing import Dict, Optional


class Counter:
    """Monotonic, thread-safe counter."""

    def __init__(self, name: str, help_text: str = ""):
        self.name = name
        self.help_text = help_text
        self._value = 0
        self._lock = threading.Lock()

    def inc(self, amount: int = 1) -> None:
        if amount < 0:
            raise ValueError("Counters can only increase")
        with self._lock:
            self._value += amount

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


# name -> help text
DEFAULT_COUNTERS = {
    "mac_new_total": "new mac addresses",
    "mac_changes_total": "mac changes",
    "mac_mismatches_total": "mac mismatches",
    "arp_replies_total": "arp replies",
    "ndp_replies_total": "ndp packets",
    "arp_events_total": "arp replies that produced an alert",
    "ndp_events_total": "ndp packets that produced an alert",
    "alerts_run_total": "alert command invocations",
    "alert_failures_total": "failed alert command invocations",
    "alerts_dropped_total": "alerts dropped because the backlog was full",
    "persist_failures_total": "failed binding writes",
    "persist_dropped_total": "binding writes dropped because the queue was full",
}


class MetricsRegistry:
    """
    Explicitly constructed set of named counters.

    Usage:
        metrics = MetricsRegistry()
        metrics.inc("mac_new_total")
        metrics.value("mac_new_total")
    """

    def __init__(self, preregister: bool = True):
        self._counters: Dict[str, Counter] = {}
        self._lock = threading.Lock()

        if preregister:
            for name, help_text in DEFAULT_COUNTERS.items():
                self.counter(name, help_text)

    def counter(self, name: str, help_text: Optional[str] = None) -> Counter:
        """Get or create a counter."""
        with self._lock:
            counter = self._counters.get(name)
            if counter is None:
                counter = Counter(name, help_text or DEFAULT_COUNTERS.get(name, ""))
                self._counters[name] = counter
            return counter

    def inc(self, name: str, amount: int = 1) -> None:
        self.counter(name).inc(amount)

    def value(self, name: str) -> int:
        with self._lock:
            counter = self._counters.get(name)
        return counter.value if counter else 0

    def snapshot(self) -> Dict[str, int]:
        """Current value of every counter."""
        with self._lock:
            counters = list(self._counters.values())
        return {c.name: c.value for c in counters}

    def render(self) -> str:
        """Prometheus text exposition of all counters."""
        with self._lock:
            counters = sorted(self._counters.values(), key=lambda c: c.name)

        lines = []
        for c in counters:
            if c.help_text:
                lines.append(f"# HELP {c.name} {c.help_text}")
            lines.append(f"# TYPE {c.name} counter")
            lines.append(f"{c.name} {c.value}")
        return "\n".join(lines) + "\n"
