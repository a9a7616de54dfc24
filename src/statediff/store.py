"""
Versioned Slot Store

A flat map of 32-byte locations to 32-byte values with a single version
number. Writes are staged in a Transaction and land all-or-nothing through a
compare-and-swap on the version the transaction was opened against.

The version is the ledger's TransitionCounter: every committed transaction
advances it by exactly one, whether or not it carries writes.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple
import threading

from .errors import StaleTransition


SLOT_SIZE = 32
EMPTY_SLOT = b'\x00' * SLOT_SIZE


def _check_slot(name: str, data: bytes):
    if len(data) != SLOT_SIZE:
        raise ValueError(f"{name} must be {SLOT_SIZE} bytes, got {len(data)}")


@dataclass
class Transaction:
    """
    Staged writes against a fixed store version.

    Nothing is visible in the store until commit. Reads see the staged
    value first, then the committed one.
    """
    store: 'SlotStore'
    expected_version: int
    writes: List[Tuple[bytes, bytes]] = field(default_factory=list)
    committed: bool = False

    @property
    def new_version(self) -> int:
        """Version the store will have once this transaction commits."""
        return self.expected_version + 1

    def write(self, location: bytes, value: bytes):
        """Stage a write."""
        _check_slot("Location", location)
        _check_slot("Value", value)
        if self.committed:
            raise RuntimeError("Cannot write to a committed transaction")
        self.writes.append((location, value))

    def read(self, location: bytes) -> bytes:
        """Read through staged writes."""
        for loc, value in reversed(self.writes):
            if loc == location:
                return value
        return self.store.read(location)

    def commit(self) -> int:
        """Apply staged writes atomically. Returns the new version."""
        if self.committed:
            raise RuntimeError("Transaction already committed")
        self.store._commit(self.expected_version, self.writes)
        self.committed = True
        return self.new_version

    def __enter__(self) -> 'Transaction':
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None and not self.committed:
            self.commit()
        # Staged writes are dropped on error
        return False


class SlotStore:
    """
    Versioned key/value store with optimistic concurrency.

    Properties:
    - Unwritten slots read as 32 zero bytes
    - Version strictly increases, one step per committed transaction
    - A transaction opened against a stale version fails to commit
    """

    def __init__(self, slots: Optional[Dict[bytes, bytes]] = None, version: int = 0):
        if version < 0:
            raise ValueError(f"Version must be non-negative, got {version}")
        self._slots: Dict[bytes, bytes] = dict(slots or {})
        self._version = version
        self.lock = threading.RLock()

    @property
    def version(self) -> int:
        """Current version (the TransitionCounter)."""
        return self._version

    def read(self, location: bytes) -> bytes:
        """Read a slot."""
        _check_slot("Location", location)
        return self._slots.get(location, EMPTY_SLOT)

    def transaction(self, expected_version: Optional[int] = None) -> Transaction:
        """
        Open a transaction.

        Args:
            expected_version: Version the caller computed against
                (defaults to the current version)
        """
        if expected_version is None:
            expected_version = self._version
        return Transaction(store=self, expected_version=expected_version)

    def _commit(self, expected_version: int, writes: List[Tuple[bytes, bytes]]):
        with self.lock:
            if self._version != expected_version:
                raise StaleTransition(expected=self._version, actual=expected_version)
            for location, value in writes:
                self._slots[location] = value
            self._version += 1

    def items(self) -> Iterator[Tuple[bytes, bytes]]:
        """Iterate over written slots in location order."""
        for location in sorted(self._slots):
            yield location, self._slots[location]

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, location: bytes) -> bool:
        return location in self._slots
