#!/usr/bin/env python3
"""
MACWATCH Observation Normalizer
===============================

Turns decoded discovery frames into one canonical Observation shape.

Accepted frames:
- ARP replies (is-at), IPv4
- ICMPv6 Neighbor Advertisement / Neighbor Solicitation
- ICMPv6 Router Advertisement / Router Solicitation

Anything else, including frames without an Ethernet header, yields None.
Normalization never raises into the capture thread.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from loguru import logger
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

from .identity import canonical_address, is_reportable, parse_address


class FrameKind(Enum):
    """Discovery message an observation was taken from."""
    ARP_REPLY = "arp_reply"
    NEIGHBOR_ADVERTISEMENT = "neighbor_advertisement"
    NEIGHBOR_SOLICITATION = "neighbor_solicitation"
    ROUTER_ADVERTISEMENT = "router_advertisement"
    ROUTER_SOLICITATION = "router_solicitation"


# ICMPv6 layer -> (kind, link-layer option carrying the claimed address)
NDP_MESSAGES = (
    (ICMPv6ND_NA, FrameKind.NEIGHBOR_ADVERTISEMENT, ICMPv6NDOptDstLLAddr),
    (ICMPv6ND_NS, FrameKind.NEIGHBOR_SOLICITATION, ICMPv6NDOptSrcLLAddr),
    (ICMPv6ND_RA, FrameKind.ROUTER_ADVERTISEMENT, ICMPv6NDOptSrcLLAddr),
    (ICMPv6ND_RS, FrameKind.ROUTER_SOLICITATION, ICMPv6NDOptSrcLLAddr),
)

ARP_REPLY_OPCODE = 2


@dataclass(frozen=True)
class Observation:
    """
    One decoded discovery event.

    Attributes:
        address: Network address in canonical text form
        claimed_link_address: Link-layer address asserted in the payload
        frame_link_address: Source address of the enclosing Ethernet frame
        interface: Interface the frame was captured on
        family: 4 or 6
        kind: Discovery message the observation came from
        seen_at: Capture time
    """
    address: str
    claimed_link_address: str
    frame_link_address: str
    interface: str
    family: int
    kind: FrameKind = FrameKind.ARP_REPLY
    seen_at: datetime = field(default_factory=datetime.now, compare=False)

    @classmethod
    def create(
        cls,
        address: str,
        claimed_link_address: str,
        frame_link_address: Optional[str] = None,
        interface: str = "",
        kind: Optional[FrameKind] = None,
    ) -> "Observation":
        """
        Build an observation from loosely formatted values.

        The address is canonicalized and the family derived from it. The
        frame address defaults to the claimed one.
        """
        ip = parse_address(address)
        if kind is None:
            kind = FrameKind.ARP_REPLY if ip.version == 4 else FrameKind.NEIGHBOR_ADVERTISEMENT
        return cls(
            address=str(ip),
            claimed_link_address=claimed_link_address.strip(),
            frame_link_address=(frame_link_address or claimed_link_address).strip(),
            interface=interface,
            family=ip.version,
            kind=kind,
        )

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "claimed_link_address": self.claimed_link_address,
            "frame_link_address": self.frame_link_address,
            "interface": self.interface,
            "family": self.family,
            "frame_kind": self.kind.value,
            "seen_at": self.seen_at.isoformat(),
        }


def normalize_arp(packet, interface: str) -> Optional[Observation]:
    """
    Normalize an ARP reply.

    Args:
        packet: Decoded scapy packet
        interface: Capture interface name

    Returns:
        Observation, or None if the frame is not a usable ARP reply
    """
    if ARP not in packet or Ether not in packet:
        return None

    arp = packet[ARP]
    if arp.op != ARP_REPLY_OPCODE:
        return None

    address = canonical_address(arp.psrc)
    if not is_reportable(address):
        return None

    return Observation(
        address=address,
        claimed_link_address=str(arp.hwsrc),
        frame_link_address=str(packet[Ether].src),
        interface=interface,
        family=4,
        kind=FrameKind.ARP_REPLY,
    )


def normalize_ndp(packet, interface: str) -> Optional[Observation]:
    """
    Normalize an NDP neighbor or router message.

    The IPv6 source is the observed address unless a Neighbor Advertisement
    names a specified target. The claimed link-layer address comes from the
    message's link-layer option and falls back to the frame source.

    Args:
        packet: Decoded scapy packet
        interface: Capture interface name

    Returns:
        Observation, or None if the frame is not a usable NDP message
    """
    if Ether not in packet or IPv6 not in packet:
        return None

    for layer, kind, option in NDP_MESSAGES:
        if layer in packet:
            break
    else:
        return None

    frame_mac = str(packet[Ether].src)
    ip = parse_address(packet[IPv6].src)

    if kind is FrameKind.NEIGHBOR_ADVERTISEMENT:
        target = packet[ICMPv6ND_NA].tgt
        if target:
            target_ip = parse_address(target)
            if not target_ip.is_unspecified:
                ip = target_ip

    claimed_mac = frame_mac
    if option in packet:
        lladdr = packet[option].lladdr
        if lladdr:
            claimed_mac = str(lladdr)

    if not is_reportable(ip):
        return None

    return Observation(
        address=str(ip),
        claimed_link_address=claimed_mac,
        frame_link_address=frame_mac,
        interface=interface,
        family=6,
        kind=kind,
    )


def normalize(packet, interface: str, ndp_enabled: bool = False) -> Optional[Observation]:
    """
    Normalize any captured frame.

    Args:
        packet: Decoded scapy packet
        interface: Capture interface name
        ndp_enabled: Whether NDP messages are considered at all

    Returns:
        Observation or None
    """
    try:
        if ARP in packet:
            return normalize_arp(packet, interface)
        if ndp_enabled and IPv6 in packet:
            return normalize_ndp(packet, interface)
    except (ValueError, AttributeError, IndexError) as e:
        logger.debug(f"Dropping undecodable frame on {interface}: {e}")
    return None
