"""
MACWATCH Core Modules
=====================

Passive ARP / NDP watcher that tracks which link-layer address answers for
each network address and alerts when that changes.

Modules:
- observation: ARP / NDP frames -> Observation
- identity: identity keys (interface-scoped for IPv6 link-local)
- binding_store: SQLite bindings and the in-memory reconciliation map
- classifier: first-seen / changed / mismatch classification
- dispatcher: counters, persistence and alert side effects
- engine: single-consumer classification loop
- capture: per-interface scapy sniffers
"""

from .observation import Observation, FrameKind, normalize
from .identity import identity_key
from .binding_store import BindingDatabase, BindingStoreError, ReconciliationStore
from .classifier import Outcome, OutcomeKind, classify
from .metrics import MetricsRegistry
from .persistence import PersistenceWorker
from .alerting import AlertRunner, AlertResult
from .dispatcher import EffectDispatcher
from .engine import ReconciliationEngine
from .capture import CaptureSource, CaptureError, build_capture_filter, open_capture_sources
from .config import DEFAULT_CONFIG, load_config, merge_config

__all__ = [
    "Observation",
    "FrameKind",
    "normalize",
    "identity_key",
    "BindingDatabase",
    "BindingStoreError",
    "ReconciliationStore",
    "Outcome",
    "OutcomeKind",
    "classify",
    "MetricsRegistry",
    "PersistenceWorker",
    "AlertRunner",
    "AlertResult",
    "EffectDispatcher",
    "ReconciliationEngine",
    "CaptureSource",
    "CaptureError",
    "build_capture_filter",
    "open_capture_sources",
    "DEFAULT_CONFIG",
    "load_config",
    "merge_config",
]

__version__ = "1.0.0"
