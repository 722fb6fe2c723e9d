#!/usr/bin/env python3
"""
MACWATCH Reconciliation Engine
==============================

Multi-producer / single-consumer classification loop.

Capture sources call ``submit()`` from their own threads. One consumer
thread takes observations off the shared queue in arrival order, keys them,
classifies them against the ReconciliationStore, applies binding changes and
hands the outcome to the EffectDispatcher.

All reads and writes of the store happen on the consumer thread, so no lock
is needed around read-then-write of a key.
"""

import queue
import threading
from collections import deque
from typing import Deque, List, Optional

from loguru import logger

from .binding_store import ReconciliationStore
from .classifier import Outcome, classify
from .dispatcher import EffectDispatcher
from .identity import identity_key, is_reportable
from .metrics import MetricsRegistry
from .observation import Observation


_STOP = object()

RECEIVED_COUNTERS = {
    4: "arp_replies_total",
    6: "ndp_replies_total",
}


class ReconciliationEngine:
    """
    Single-writer classification loop.

    Args:
        store: ReconciliationStore (already loaded)
        dispatcher: EffectDispatcher for non-unchanged outcomes
        metrics: MetricsRegistry
        check_ipv6_mismatch: Apply the frame mismatch rule to IPv6
        queue_size: Observation queue bound (0 = unbounded)
        history_size: Number of recent alert outcomes kept for status views
    """

    def __init__(self, store: ReconciliationStore,
                 dispatcher: EffectDispatcher,
                 metrics: Optional[MetricsRegistry] = None,
                 check_ipv6_mismatch: bool = False,
                 queue_size: int = 0,
                 history_size: int = 100):
        self.store = store
        self.dispatcher = dispatcher
        self.metrics = metrics or dispatcher.metrics
        self.check_ipv6_mismatch = check_ipv6_mismatch

        self.observations: queue.Queue = queue.Queue(maxsize=queue_size)
        self.recent_outcomes: Deque[Outcome] = deque(maxlen=history_size)
        self.processed_count = 0

        self._consumer: Optional[threading.Thread] = None
        self._stopping = False
        self.is_running = False

        logger.info(f"ReconciliationEngine initialized (ipv6_mismatch={check_ipv6_mismatch})")

    def submit(self, observation: Observation) -> None:
        """Enqueue an observation from any producer thread."""
        self.observations.put(observation)

    def process(self, observation: Observation) -> Optional[Outcome]:
        """
        Classify one observation and apply its effects.

        Must only be called from the consumer thread (or directly when no
        consumer thread is running).

        Returns:
            Outcome, or None if the observation was ignored
        """
        if not is_reportable(observation.address):
            return None

        counter = RECEIVED_COUNTERS.get(observation.family)
        if counter:
            self.metrics.inc(counter)

        key = identity_key(observation)
        current, present = self.store.lookup(key)
        outcome = classify(
            observation,
            key,
            current if present else None,
            check_ipv6_mismatch=self.check_ipv6_mismatch,
        )

        if outcome.changes_binding:
            self.store.apply(key, observation.claimed_link_address)

        self.processed_count += 1
        if outcome.is_alert:
            self.recent_outcomes.append(outcome)

        self.dispatcher.dispatch(outcome)
        return outcome

    def process_all(self, observations) -> List[Optional[Outcome]]:
        """Process a sequence synchronously, in order."""
        return [self.process(obs) for obs in observations]

    def start(self) -> None:
        """Start the consumer thread."""
        if self.is_running:
            return
        self.is_running = True
        self._consumer = threading.Thread(target=self._consume_loop, daemon=True, name="Classifier")
        self._consumer.start()
        logger.info("Classification loop started")

    def _consume_loop(self):
        while True:
            item = self.observations.get()
            try:
                if item is _STOP:
                    return
                self.process(item)
            except Exception as e:
                logger.exception(f"Failed to classify {item}: {e}")
            finally:
                self.observations.task_done()

    def drain(self) -> None:
        """Block until everything submitted so far has been classified."""
        self.observations.join()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stop the consumer after it has classified everything queued.

        Producers must be stopped first so nothing lands behind the sentinel.
        With no timeout this waits for the whole backlog.

        Returns:
            True once the consumer has exited, False if it is still draining
        """
        if not self.is_running:
            return True
        if not self._stopping:
            self.observations.put(_STOP)
            self._stopping = True
        if self._consumer is not None:
            self._consumer.join(timeout=timeout)
            if self._consumer.is_alive():
                logger.warning(f"Classification loop still draining ({self.observations.qsize()} queued)")
                return False
        self._consumer = None
        self._stopping = False
        self.is_running = False
        logger.info(f"Classification loop stopped ({self.processed_count} observations processed)")
        return True

    def get_recent_outcomes(self, limit: int = 50) -> List[dict]:
        """Recent alert-worthy outcomes, newest last."""
        if limit <= 0:
            return []
        outcomes = list(self.recent_outcomes)[-limit:]
        return [
            {
                "kind": o.kind.value,
                "key": o.key,
                "previous": o.previous,
                "conflicting": o.conflicting,
                **o.observation.to_dict(),
            }
            for o in outcomes
        ]
