"""
MACWATCH Test Fixtures
======================

Shared pytest fixtures for normalizer, classifier, store, dispatcher,
engine and API tests.
"""

import pytest
import sys
from pathlib import Path
from unittest.mock import Mock

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from scapy.layers.inet6 import (
    IPv6,
    ICMPv6ND_NA,
    ICMPv6ND_NS,
    ICMPv6ND_RA,
    ICMPv6ND_RS,
    ICMPv6NDOptDstLLAddr,
    ICMPv6NDOptSrcLLAddr,
)
from scapy.layers.l2 import ARP, Ether

from macwatch.binding_store import BindingDatabase, ReconciliationStore
from macwatch.config import DEFAULT_CONFIG, merge_config
from macwatch.dispatcher import EffectDispatcher
from macwatch.engine import ReconciliationEngine
from macwatch.metrics import MetricsRegistry


MAC_A = "aa:aa:aa:aa:aa:aa"


@pytest.fixture
def test_config(tmp_path):
    """Basic test configuration."""
    return merge_config(DEFAULT_CONFIG, {
        "general": {
            "debug": True,
            "log_level": "DEBUG"
        },
        "logging": {
            "file": str(tmp_path / "logs" / "macwatch.log")
        },
        "capture": {
            "interfaces": ["eth0", "eth1"],
            "ndp": True
        },
        "database": {
            "path": str(tmp_path / "db" / "macs.db")
        },
        "api": {
            "enabled": False  # Disable for tests
        }
    })


@pytest.fixture
def metrics():
    return MetricsRegistry()


@pytest.fixture
def database(tmp_path):
    """Empty, initialized binding database."""
    db = BindingDatabase(str(tmp_path / "macs.db"))
    db.setup()
    return db


@pytest.fixture
def store():
    """In-memory store with no durable backing."""
    return ReconciliationStore()


@pytest.fixture
def mock_persistence():
    persistence = Mock()
    persistence.submit = Mock(return_value=True)
    return persistence


@pytest.fixture
def mock_alert_runner():
    runner = Mock()
    runner.submit = Mock()
    return runner


@pytest.fixture
def dispatcher(metrics, mock_persistence, mock_alert_runner):
    return EffectDispatcher(metrics, persistence=mock_persistence, alert_runner=mock_alert_runner)


@pytest.fixture
def engine(store, dispatcher, metrics):
    """Engine without a consumer thread; call process() directly."""
    return ReconciliationEngine(store, dispatcher, metrics=metrics)


# =============================================================================
# Packet builders
# =============================================================================

@pytest.fixture
def arp_reply():
    def build(ip="10.0.0.5", mac=MAC_A, frame_mac=None, op=2):
        return (
            Ether(src=frame_mac or mac, dst="ff:ff:ff:ff:ff:ff")
            / ARP(op=op, hwsrc=mac, psrc=ip, hwdst="00:00:00:00:00:00", pdst="10.0.0.1")
        )
    return build


@pytest.fixture
def neighbor_advertisement():
    def build(src="fe80::1", target="2001:db8::5", frame_mac=MAC_A, option_mac=None):
        pkt = (
            Ether(src=frame_mac, dst="33:33:00:00:00:01")
            / IPv6(src=src, dst="ff02::1")
            / ICMPv6ND_NA(tgt=target, R=0, S=1, O=1)
        )
        if option_mac:
            pkt = pkt / ICMPv6NDOptDstLLAddr(lladdr=option_mac)
        return pkt
    return build


@pytest.fixture
def neighbor_solicitation():
    def build(src="fe80::2", target="fe80::1", frame_mac=MAC_A, option_mac=None):
        pkt = (
            Ether(src=frame_mac, dst="33:33:ff:00:00:01")
            / IPv6(src=src, dst="ff02::1:ff00:1")
            / ICMPv6ND_NS(tgt=target)
        )
        if option_mac:
            pkt = pkt / ICMPv6NDOptSrcLLAddr(lladdr=option_mac)
        return pkt
    return build


@pytest.fixture
def router_advertisement():
    def build(src="fe80::1", frame_mac=MAC_A, option_mac=None):
        pkt = (
            Ether(src=frame_mac, dst="33:33:00:00:00:01")
            / IPv6(src=src, dst="ff02::1")
            / ICMPv6ND_RA()
        )
        if option_mac:
            pkt = pkt / ICMPv6NDOptSrcLLAddr(lladdr=option_mac)
        return pkt
    return build


@pytest.fixture
def router_solicitation():
    def build(src="fe80::3", frame_mac=MAC_A, option_mac=None):
        pkt = (
            Ether(src=frame_mac, dst="33:33:00:00:00:02")
            / IPv6(src=src, dst="ff02::2")
            / ICMPv6ND_RS()
        )
        if option_mac:
            pkt = pkt / ICMPv6NDOptSrcLLAddr(lladdr=option_mac)
        return pkt
    return build
