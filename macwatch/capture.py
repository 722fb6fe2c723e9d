#!/usr/bin/env python3
"""
MACWATCH Capture Sources
========================

One capture source per interface, each running a scapy AsyncSniffer thread
that normalizes frames and submits observations to the engine.

The capture socket is opened synchronously in ``start()`` so a missing
interface or insufficient privileges fail at startup rather than inside a
background thread.
"""

from typing import Callable, List, Optional

from loguru import logger
from scapy.all import AsyncSniffer, conf
from scapy.error import Scapy_Exception

from .observation import Observation, normalize


BASE_FILTER = "arp or rarp"


class CaptureError(RuntimeError):
    """Capture source cannot be opened."""


def build_capture_filter(bpf: str = "", ndp_enabled: bool = False) -> str:
    """
    Build the BPF expression for a capture source.

    Args:
        bpf: Auxiliary filter ANDed with the base filter
        ndp_enabled: Also capture ICMPv6

    Returns:
        BPF filter string
    """
    base = BASE_FILTER
    if ndp_enabled:
        base = f"{base} or icmp6"

    bpf = (bpf or "").strip()
    if bpf:
        return f"({base}) and not vlan and ({bpf})"
    return f"({base}) and not vlan"


class CaptureSource:
    """
    Passive discovery listener for a single interface.

    Args:
        interface: Interface to capture on
        on_observation: Called with each normalized Observation
        bpf: Auxiliary BPF filter
        ndp_enabled: Normalize NDP messages as well as ARP
        promiscuous: Put the interface in promiscuous mode
    """

    def __init__(self, interface: str,
                 on_observation: Callable[[Observation], None],
                 bpf: str = "",
                 ndp_enabled: bool = False,
                 promiscuous: bool = False):
        self.interface = interface
        self.on_observation = on_observation
        self.ndp_enabled = ndp_enabled
        self.promiscuous = promiscuous
        self.filter = build_capture_filter(bpf, ndp_enabled)

        self.is_running = False
        self.frames_seen = 0
        self._socket = None
        self._sniffer: Optional[AsyncSniffer] = None

    def handle_packet(self, packet) -> Optional[Observation]:
        """Normalize a frame and forward the observation, if any."""
        self.frames_seen += 1
        try:
            observation = normalize(packet, self.interface, ndp_enabled=self.ndp_enabled)
            if observation is not None:
                self.on_observation(observation)
            return observation
        except Exception as e:
            logger.error(f"Capture callback error on {self.interface}: {e}")
            return None

    def start(self) -> None:
        """
        Open the capture socket and start sniffing.

        Raises:
            CaptureError: If the interface cannot be opened
        """
        if self.is_running:
            return

        conf.verb = 0
        try:
            self._socket = conf.L2listen(
                iface=self.interface,
                filter=self.filter,
                promisc=self.promiscuous,
            )
        except (OSError, Scapy_Exception) as e:
            raise CaptureError(f"Error setting up capture on interface {self.interface}: {e}") from e

        self._sniffer = AsyncSniffer(
            opened_socket=self._socket,
            prn=self.handle_packet,
            store=False,
        )
        self._sniffer.start()
        self.is_running = True

        logger.info(f"Beginning capture on {self.interface} (filter={self.filter!r}, promisc={self.promiscuous})")

    def stop(self) -> None:
        """Stop sniffing and close the capture socket."""
        if not self.is_running:
            return
        self.is_running = False

        if self._sniffer is not None:
            try:
                self._sniffer.stop(join=True)
            except Scapy_Exception as e:
                logger.debug(f"Sniffer on {self.interface} already stopped: {e}")
            self._sniffer = None

        if self._socket is not None:
            try:
                self._socket.close()
            except OSError as e:
                logger.debug(f"Error closing capture socket on {self.interface}: {e}")
            self._socket = None

        logger.info(f"Capture stopped on {self.interface} ({self.frames_seen} frames seen)")


def open_capture_sources(interfaces: List[str],
                         on_observation: Callable[[Observation], None],
                         bpf: str = "",
                         ndp_enabled: bool = False,
                         promiscuous: bool = False) -> List[CaptureSource]:
    """
    Create and start a capture source per interface.

    Already-started sources are stopped again if a later interface fails.

    Raises:
        CaptureError: If any interface cannot be opened
    """
    sources: List[CaptureSource] = []
    try:
        for iface in interfaces:
            source = CaptureSource(iface, on_observation, bpf=bpf,
                                   ndp_enabled=ndp_enabled, promiscuous=promiscuous)
            source.start()
            sources.append(source)
    except CaptureError:
        for source in sources:
            source.stop()
        raise
    return sources
