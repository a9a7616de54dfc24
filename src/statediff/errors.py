"""
Rejection Taxonomy

Every way a submission can fail. The gate raises these; the auditor turns
them into a boolean verdict instead.

    StateDiffError
    ├── MalformedDiff
    └── TransitionRejected
        ├── StaleTransition
        ├── InsufficientPayment
        ├── HashMismatch
        └── InvalidSignature
"""

from typing import Optional


class StateDiffError(Exception):
    """Base class for all protocol errors."""


class MalformedDiff(StateDiffError, ValueError):
    """A storage diff is truncated or carries an unsupported opcode."""

    def __init__(self, message: str, offset: Optional[int] = None):
        super().__init__(message)
        self.offset = offset


class TransitionRejected(StateDiffError):
    """A submitted envelope was refused by the transition gate."""


class StaleTransition(TransitionRejected):
    """
    The envelope targets a slot other than the one the ledger stands at.

    Recoverable: recompute the envelope against the current index.
    """

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Stale transition: ledger expects index {expected}, envelope targets {actual}"
        )
        self.expected = expected
        self.actual = actual


class InsufficientPayment(TransitionRejected):
    """The accompanying fee does not equal the exact required amount."""

    def __init__(self, required: int, paid: int):
        super().__init__(f"Fee must be exactly {required}, got {paid}")
        self.required = required
        self.paid = paid


class HashMismatch(TransitionRejected):
    """The declared digest does not match the recomputed binding."""

    def __init__(self, expected: bytes, declared: bytes):
        super().__init__(
            f"Digest mismatch: computed {expected.hex()[:16]}..., "
            f"declared {declared.hex()[:16]}..."
        )
        self.expected = expected
        self.declared = declared


class InvalidSignature(TransitionRejected):
    """The aggregate signature failed the pairing or validity check."""

    def __init__(self, pairing_ok: bool, valid: bool):
        super().__init__(
            f"Aggregate signature rejected (pairing_ok={pairing_ok}, valid={valid})"
        )
        self.pairing_ok = pairing_ok
        self.valid = valid
