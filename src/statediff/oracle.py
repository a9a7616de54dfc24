"""
Power Oracle

Deterministic pure function over a snapshot:

    power  = Σ value(p) · index   (mod 2^256)
    passed = power is even

Linear in the snapshot size, which is what makes running it on the ledger
expensive and motivates the off-ledger compute / on-ledger verify split.
"""

from typing import Iterable, NamedTuple

from .codec import encode
from .ledger import Participant

WORD_BITS = 256
WORD_MODULUS = 1 << WORD_BITS


class PowerResult(NamedTuple):
    """Output of the oracle."""
    power: int
    passed: bool


def compute_power(snapshot: Iterable[Participant], index: int) -> PowerResult:
    """
    Compute aggregate power for a snapshot at a transition index.

    Arithmetic wraps at the word width; overflow is not an error.
    """
    if index < 0:
        raise ValueError(f"Index must be non-negative, got {index}")

    power = 0
    for participant in snapshot:
        power = (power + participant.value * index) % WORD_MODULUS

    return PowerResult(power=power, passed=power % 2 == 0)


def canonical_diff(snapshot: Iterable[Participant], index: int) -> bytes:
    """The storage diff an honest operator submits for `index`."""
    power, passed = compute_power(snapshot, index)
    return encode(power, passed)
