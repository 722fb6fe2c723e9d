#!/usr/bin/env python3
"""
MACWATCH Identity Keys
======================

Canonical rendering of network and link-layer addresses, and the identity
key used to deduplicate observations.

IPv6 link-local addresses are only meaningful on the link they were seen on,
so they are scoped by interface: ``eth0%fe80::1``. Everything else is keyed
by the bare canonical address.
"""

import ipaddress
from typing import Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def parse_address(address: Union[str, IPAddress]) -> IPAddress:
    """
    Parse an address into an ``ipaddress`` object.

    Args:
        address: Textual or already parsed IPv4/IPv6 address

    Returns:
        IPv4Address or IPv6Address

    Raises:
        ValueError: If the address is not a valid IP address
    """
    if isinstance(address, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return address
    return ipaddress.ip_address(str(address).strip())


def canonical_address(address: Union[str, IPAddress]) -> str:
    """Standard textual form of an address (compressed, lowercase)."""
    return str(parse_address(address))


def canonical_link_address(mac: str) -> str:
    """Trimmed, lowercase link-layer address used for comparisons."""
    return str(mac).strip().lower()


def same_link_address(first: str, second: str) -> bool:
    """Compare two link-layer addresses ignoring case and whitespace."""
    return canonical_link_address(first) == canonical_link_address(second)


def is_reportable(address: Union[str, IPAddress]) -> bool:
    """False for unspecified and loopback addresses."""
    ip = parse_address(address)
    return not (ip.is_unspecified or ip.is_loopback)


def scoped_key(address: Union[str, IPAddress], interface: str) -> str:
    """
    Build the identity key for an address seen on an interface.

    Args:
        address: Network address
        interface: Interface the address was observed on

    Returns:
        ``interface%address`` for IPv6 link-local, ``address`` otherwise
    """
    ip = parse_address(address)
    text = str(ip)
    if ip.version == 6 and ip.is_link_local:
        return f"{interface}%{text}"
    return text


def identity_key(observation) -> str:
    """Identity key of an Observation."""
    return scoped_key(observation.address, observation.interface)
