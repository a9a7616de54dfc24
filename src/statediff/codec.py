"""
Storage Diff Codec

Wire format, repeated:

    [opcode (1)] [location (32)] [value (32)]     = 65 bytes per record

Only WRITE (0x00) is defined. A diff is well-formed iff its length is a
multiple of 65 and every opcode is WRITE. Decoding validates the whole diff
before any write is staged; applying goes through a single store
transaction, so a failure leaves no partial writes behind.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import List, NamedTuple, Optional, Tuple

from .errors import MalformedDiff
from .store import SLOT_SIZE, SlotStore
from .tags import Tag, tagged_hash


class DiffOpcode(IntEnum):
    """Diff record opcodes."""
    WRITE = 0x00


RECORD_SIZE = 1 + SLOT_SIZE + SLOT_SIZE  # 65

POWER_LOCATION = tagged_hash(Tag.LOCATION, b'statediff.power')
"""Slot holding current total power."""

PASSED_LOCATION = tagged_hash(Tag.LOCATION, b'statediff.passed')
"""Slot holding the last pass/fail verdict (1 or 0)."""


class PowerState(NamedTuple):
    """Ledger power state."""
    current_total_power: int
    last_verdict_passed: bool


@dataclass(frozen=True)
class DiffOp:
    """A single storage write."""
    location: bytes
    value: bytes
    opcode: DiffOpcode = DiffOpcode.WRITE

    def __post_init__(self):
        if len(self.location) != SLOT_SIZE:
            raise ValueError(f"Location must be {SLOT_SIZE} bytes, got {len(self.location)}")
        if len(self.value) != SLOT_SIZE:
            raise ValueError(f"Value must be {SLOT_SIZE} bytes, got {len(self.value)}")

    def serialize(self) -> bytes:
        """Serialize to one 65-byte record."""
        return bytes([self.opcode]) + self.location + self.value

    @classmethod
    def deserialize(cls, data: bytes, offset: int = 0) -> 'DiffOp':
        """Deserialize the record starting at `offset`."""
        if len(data) - offset < RECORD_SIZE:
            raise MalformedDiff(
                f"Truncated record at offset {offset}: "
                f"need {RECORD_SIZE} bytes, got {len(data) - offset}",
                offset=offset,
            )
        opcode = data[offset]
        if opcode != DiffOpcode.WRITE:
            raise MalformedDiff(
                f"Unsupported opcode {opcode:#04x} at offset {offset}",
                offset=offset,
            )
        location = bytes(data[offset+1:offset+1+SLOT_SIZE])
        value = bytes(data[offset+1+SLOT_SIZE:offset+RECORD_SIZE])
        return cls(location=location, value=value)

    @property
    def int_value(self) -> int:
        return int.from_bytes(self.value, 'big')


def word(value: int) -> bytes:
    """Encode an unsigned 256-bit integer as a 32-byte big-endian slot value."""
    if value < 0 or value >= 1 << (8 * SLOT_SIZE):
        raise ValueError(f"Value does not fit in a {SLOT_SIZE}-byte word: {value}")
    return value.to_bytes(SLOT_SIZE, 'big')


def encode_ops(ops: List[DiffOp]) -> bytes:
    """Concatenate records."""
    return b''.join(op.serialize() for op in ops)


def encode(power: int, passed: bool) -> bytes:
    """
    Encode a power state as a storage diff.

    Emits exactly two writes: power, then the pass flag.
    """
    return encode_ops([
        DiffOp(POWER_LOCATION, word(power)),
        DiffOp(PASSED_LOCATION, word(1 if passed else 0)),
    ])


def decode(diff: bytes) -> List[DiffOp]:
    """
    Decode a storage diff into its records.

    Raises:
        MalformedDiff: if the length is not a multiple of 65 or any opcode
            is not WRITE
    """
    if len(diff) % RECORD_SIZE:
        whole = len(diff) - len(diff) % RECORD_SIZE
        raise MalformedDiff(
            f"Diff length {len(diff)} is not a multiple of {RECORD_SIZE}",
            offset=whole,
        )

    return [
        DiffOp.deserialize(diff, offset)
        for offset in range(0, len(diff), RECORD_SIZE)
    ]


def decode_and_apply(diff: bytes, store: SlotStore,
                     expected_version: Optional[int] = None) -> int:
    """
    Decode a diff and apply every write in one transaction.

    Args:
        diff: Storage diff bytes
        store: Target store
        expected_version: Version the diff was computed against
            (defaults to the current version)

    Returns:
        The store version after the commit
    """
    ops = decode(diff)
    with store.transaction(expected_version) as txn:
        for op in ops:
            txn.write(op.location, op.value)
    return txn.new_version


def decode_power_state(diff: bytes) -> Tuple[int, bool]:
    """
    Read (power, passed) back out of a diff.

    Later writes to the same location win, as they would when applied.
    Missing locations read as zero.
    """
    slots = {op.location: op.int_value for op in decode(diff)}
    return slots.get(POWER_LOCATION, 0), slots.get(PASSED_LOCATION, 0) == 1


def read_power_state(store: SlotStore) -> PowerState:
    """Current power state held by a store."""
    return PowerState(
        current_total_power=int.from_bytes(store.read(POWER_LOCATION), 'big'),
        last_verdict_passed=int.from_bytes(store.read(PASSED_LOCATION), 'big') == 1,
    )
