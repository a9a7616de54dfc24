"""
Domain Tags for Verified State Transitions

All tags are domain-separated to prevent cross-protocol collisions.
"""

from enum import IntEnum
import hashlib


class Tag(IntEnum):
    """Domain separation tags for the transition protocol."""

    # Commitments
    COMMITMENT = 0x10      # Digest binding a diff to its context
    AGGREGATE_KEY = 0x11   # Aggregate public key commitment

    # Storage locations
    LOCATION = 0x20        # Well-known storage slot derivation

    # Parameters
    PARAMS = 0x30          # Gate parameter hash


def tag_bytes(tag: Tag) -> bytes:
    """Convert tag to canonical bytes."""
    return tag.to_bytes(2, 'big')


def tagged_hash(tag: Tag, *parts: bytes) -> bytes:
    """
    Domain-separated hash using SHAKE256.

    H(tag ‖ len(p_0) ‖ p_0 ‖ ... ‖ len(p_n) ‖ p_n), each length an 8-byte
    big-endian prefix. This is the only hash construction in the protocol.
    """
    h = hashlib.shake_256()
    h.update(tag_bytes(tag))
    for part in parts:
        h.update(len(part).to_bytes(8, 'big'))
        h.update(part)
    return h.digest(32)
