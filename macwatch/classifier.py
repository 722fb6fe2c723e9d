#!/usr/bin/env python3
"""
MACWATCH Classifier
===================

Classifies an observation against the last-known link-layer address for its
identity key.

Rules, first match wins:
1. Unknown key                                  -> FIRST_SEEN
2. Known, stored address differs from claimed   -> ADDRESS_CHANGED (old)
3. IPv4, claimed differs from frame source      -> LINK_LAYER_MISMATCH
4. Otherwise                                    -> UNCHANGED

The mismatch rule is IPv4-only by default. NDP link-layer options are often
absent or legitimately differ from the frame source.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .identity import same_link_address
from .observation import Observation


class OutcomeKind(Enum):
    """Classification result. Values are the alert command verbs."""
    UNCHANGED = "unchanged"
    FIRST_SEEN = "new"
    ADDRESS_CHANGED = "changed"
    LINK_LAYER_MISMATCH = "mismatch"


@dataclass(frozen=True)
class Outcome:
    """Classified observation."""
    kind: OutcomeKind
    key: str
    observation: Observation
    previous: Optional[str] = None
    conflicting: Optional[str] = None

    @property
    def changes_binding(self) -> bool:
        """Whether the stored link-layer address must be replaced."""
        return self.kind in (OutcomeKind.FIRST_SEEN, OutcomeKind.ADDRESS_CHANGED)

    @property
    def is_alert(self) -> bool:
        return self.kind is not OutcomeKind.UNCHANGED

    def alert_arguments(self) -> List[str]:
        """
        Positional arguments for the alert command.

        new:      new <address> <mac> <iface>
        changed:  changed <address> <mac> <iface> <old mac>
        mismatch: mismatch <address> <mac> <iface> <frame mac>
        """
        obs = self.observation
        args = [self.kind.value, obs.address, obs.claimed_link_address, obs.interface]
        if self.kind is OutcomeKind.ADDRESS_CHANGED:
            args.append(self.previous or "")
        elif self.kind is OutcomeKind.LINK_LAYER_MISMATCH:
            args.append(self.conflicting or "")
        return args


def classify(
    observation: Observation,
    key: str,
    current: Optional[str],
    check_ipv6_mismatch: bool = False,
) -> Outcome:
    """
    Classify one observation.

    Pure: the caller applies any binding change.

    Args:
        observation: Normalized observation
        key: Identity key of the observation
        current: Last-known link-layer address, None if the key is unknown
        check_ipv6_mismatch: Apply the frame mismatch rule to IPv6 as well

    Returns:
        Outcome
    """
    claimed = observation.claimed_link_address

    if current is None:
        return Outcome(OutcomeKind.FIRST_SEEN, key, observation)

    if not same_link_address(current, claimed):
        return Outcome(OutcomeKind.ADDRESS_CHANGED, key, observation, previous=current)

    mismatch_applies = observation.family == 4 or check_ipv6_mismatch
    if mismatch_applies and not same_link_address(claimed, observation.frame_link_address):
        return Outcome(
            OutcomeKind.LINK_LAYER_MISMATCH,
            key,
            observation,
            conflicting=observation.frame_link_address,
        )

    return Outcome(OutcomeKind.UNCHANGED, key, observation)
