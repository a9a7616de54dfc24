"""
Snapshot Ledger

Records, for each transition index, the full ordered participant set that
existed at that point:

    snapshot_i = snapshot_{i-1} ‖ participant

Snapshots are sparse. Transitions that mutate power without adding a
participant record nothing, so lookups fall back to the nearest lower
recorded index.
"""

from bisect import bisect_right
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import logging

from .params import IDENTITY_SIZE
from .store import SlotStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Participant:
    """A 160-bit participant identifier."""

    raw: bytes

    def __post_init__(self):
        if len(self.raw) != IDENTITY_SIZE:
            raise ValueError(
                f"Participant must be {IDENTITY_SIZE} bytes, got {len(self.raw)}"
            )

    @classmethod
    def from_int(cls, value: int) -> 'Participant':
        """Build a participant from its numeric value."""
        if value < 0 or value >= 1 << (8 * IDENTITY_SIZE):
            raise ValueError(f"Participant value out of range: {value:#x}")
        return cls(value.to_bytes(IDENTITY_SIZE, 'big'))

    @classmethod
    def from_hex(cls, text: str) -> 'Participant':
        """Build a participant from 0x-prefixed or bare hex."""
        if text.startswith(('0x', '0X')):
            text = text[2:]
        return cls.from_int(int(text, 16))

    @property
    def value(self) -> int:
        """Numeric value of the identifier."""
        return int.from_bytes(self.raw, 'big')

    def __repr__(self) -> str:
        return f"Participant(0x{self.raw.hex()})"


Snapshot = Tuple[Participant, ...]
EMPTY_SNAPSHOT: Snapshot = ()


class SnapshotLedger:
    """
    Append-only, versioned record of participant sets.

    The ledger shares its TransitionCounter with the slot store: appending a
    participant is a state-mutating transition like any other.
    """

    def __init__(self, store: Optional[SlotStore] = None):
        self.store = store if store is not None else SlotStore()
        self._snapshots: Dict[int, Snapshot] = {}
        self._indices: List[int] = []  # Sorted recorded indices

    @property
    def counter(self) -> int:
        """Current TransitionCounter."""
        return self.store.version

    def append_participant(self, participant: Participant) -> int:
        """
        Record a new snapshot with `participant` appended.

        Returns:
            The index the new snapshot was stored under (post-increment counter)
        """
        with self.store.lock:
            snapshot = self.current_snapshot() + (participant,)
            with self.store.transaction() as txn:
                index = txn.new_version
            self._snapshots[index] = snapshot
            self._indices.append(index)

        logger.debug("Appended %r at index %d (%d participants)",
                     participant, index, len(snapshot))
        return index

    def advance(self) -> int:
        """Advance the counter without recording a snapshot. Returns the new counter."""
        with self.store.lock:
            return self.store.transaction().commit()

    def snapshot_at(self, index: int) -> Snapshot:
        """
        Snapshot recorded at `index`, or at the nearest lower recorded index.

        Returns the empty snapshot if nothing is recorded at or below `index`.
        """
        if index < 0:
            raise ValueError(f"Index must be non-negative, got {index}")

        snapshot = self._snapshots.get(index)
        if snapshot is not None:
            return snapshot

        pos = bisect_right(self._indices, index)
        if pos == 0:
            return EMPTY_SNAPSHOT
        return self._snapshots[self._indices[pos - 1]]

    def current_snapshot(self) -> Snapshot:
        """Snapshot in effect at the current counter."""
        return self.snapshot_at(self.counter)

    def recorded_indices(self) -> List[int]:
        """Indices with a directly recorded snapshot, ascending."""
        return list(self._indices)

    def __len__(self) -> int:
        """Number of recorded snapshots."""
        return len(self._indices)
