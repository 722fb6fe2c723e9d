#!/usr/bin/env python3
"""
MACWATCH Effect Dispatcher
==========================

Side effects for classified observations:
- outcome and family counters
- durable write-back for new and changed bindings
- alert command invocation

Unchanged outcomes have no side effects. Mismatches are alerted but never
persisted; they do not change the stored identity.
"""

from typing import Optional

from loguru import logger

from .alerting import AlertRunner
from .classifier import Outcome, OutcomeKind
from .metrics import MetricsRegistry
from .persistence import PersistenceWorker


OUTCOME_COUNTERS = {
    OutcomeKind.FIRST_SEEN: "mac_new_total",
    OutcomeKind.ADDRESS_CHANGED: "mac_changes_total",
    OutcomeKind.LINK_LAYER_MISMATCH: "mac_mismatches_total",
}

FAMILY_COUNTERS = {
    4: "arp_events_total",
    6: "ndp_events_total",
}


class EffectDispatcher:
    """
    Drives exactly one set of side effects per classified outcome.

    Args:
        metrics: MetricsRegistry to count outcomes in
        persistence: Worker receiving binding writes (None = no persistence)
        alert_runner: Runner for the alert command (None = no alerts)
    """

    def __init__(self, metrics: MetricsRegistry,
                 persistence: Optional[PersistenceWorker] = None,
                 alert_runner: Optional[AlertRunner] = None):
        self.metrics = metrics
        self.persistence = persistence
        self.alert_runner = alert_runner

    def dispatch(self, outcome: Outcome) -> None:
        """Apply side effects for one outcome."""
        if not outcome.is_alert:
            return

        obs = outcome.observation
        self.metrics.inc(OUTCOME_COUNTERS[outcome.kind])
        family_counter = FAMILY_COUNTERS.get(obs.family)
        if family_counter:
            self.metrics.inc(family_counter)

        self._log(outcome)

        if outcome.changes_binding and self.persistence is not None:
            self.persistence.submit(outcome.key, obs.claimed_link_address)

        if self.alert_runner is not None:
            try:
                self.alert_runner.submit(outcome.alert_arguments())
            except RuntimeError as e:
                # Pool already shut down
                self.metrics.inc("alert_failures_total")
                logger.error(f"Could not schedule alert for {outcome.key}: {e}")

    def _log(self, outcome: Outcome) -> None:
        obs = outcome.observation
        if outcome.kind is OutcomeKind.FIRST_SEEN:
            logger.info(f"First time seeing {outcome.key} at {obs.claimed_link_address} on {obs.interface}")
        elif outcome.kind is OutcomeKind.ADDRESS_CHANGED:
            logger.warning(
                f"ALERT! {outcome.key} has a new MAC address: "
                f"{obs.claimed_link_address} (was {outcome.previous})"
            )
        elif outcome.kind is OutcomeKind.LINK_LAYER_MISMATCH:
            logger.warning(
                f"ALERT! Claimed MAC address does not match Ethernet MAC address "
                f"{outcome.key} {obs.claimed_link_address} {outcome.conflicting}"
            )

    def close(self) -> None:
        """Flush pending writes and wait for running alerts."""
        if self.persistence is not None:
            self.persistence.stop()
        if self.alert_runner is not None:
            self.alert_runner.close(wait=True)
