"""
Slashing Auditor

Independently replays oracle → codec → binder for a submitted envelope and
decides whether its operator misbehaved:

1. Recomputed digest differs from the declared one     → misbehaved
2. Aggregate signature fails either check              → misbehaved
3. Canonical diff for the index differs byte-for-byte  → misbehaved

An honest envelope, byte-identical to the canonical recomputation, always
audits clean. The auditor only produces the verdict; penalties are someone
else's job. Power state is never touched; each audit advances the
TransitionCounter by one for replay bookkeeping.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import logging

from .envelope import SignedDiffEnvelope
from .errors import HashMismatch
from .ledger import SnapshotLedger
from .oracle import canonical_diff
from .params import PARAMS_DEFAULT, GateParams
from .signature import CommitteeVerifier, SignatureVerifier

logger = logging.getLogger(__name__)


class Misbehavior(Enum):
    """Why an envelope failed its audit."""
    NONE = "none"
    HASH_MISMATCH = "hash_mismatch"
    INVALID_SIGNATURE = "invalid_signature"
    DIFF_MISMATCH = "diff_mismatch"


@dataclass
class AuditReport:
    """Result of auditing one envelope."""
    misbehaved: bool
    reason: Misbehavior
    transition_index: int
    canonical_diff: Optional[bytes] = None
    error: Optional[str] = None


class SlashingAuditor:
    """
    Audit envelopes against the canonical recomputation.

    Never raises on a bad envelope; every failure becomes a verdict.
    """

    def __init__(
        self,
        ledger: SnapshotLedger,
        verifier: Optional[SignatureVerifier] = None,
        params: GateParams = PARAMS_DEFAULT,
    ):
        self.ledger = ledger
        self.verifier = verifier if verifier is not None else CommitteeVerifier()
        self.params = params

    @classmethod
    def for_gate(cls, gate) -> 'SlashingAuditor':
        """Auditor sharing a gate's ledger, verifier and parameters."""
        return cls(gate.ledger, gate.verifier, gate.params)

    def audit(self, envelope: SignedDiffEnvelope) -> bool:
        """True iff the envelope's operator misbehaved."""
        return self.inspect(envelope).misbehaved

    def inspect(self, envelope: SignedDiffEnvelope) -> AuditReport:
        """Audit an envelope and explain the verdict."""
        with self.ledger.store.lock:
            report = self._evaluate(envelope)
            self.ledger.advance()

        if report.misbehaved:
            logger.warning("Misbehavior at index %d: %s%s",
                           report.transition_index, report.reason.value,
                           f" ({report.error})" if report.error else "")
        return report

    def _evaluate(self, envelope: SignedDiffEnvelope) -> AuditReport:
        index = envelope.transition_index

        try:
            envelope.check_binding(self.params)
        except HashMismatch as e:
            cause = e.__cause__ or e
            return AuditReport(True, Misbehavior.HASH_MISMATCH, index, error=str(cause))

        try:
            pairing_ok, valid = self.verifier.verify(
                envelope.message_digest,
                envelope.aggregate_public_key_g1,
                envelope.aggregate_public_key_g2,
                envelope.signature,
            )
        except Exception as e:
            return AuditReport(True, Misbehavior.INVALID_SIGNATURE, index,
                               error=f"Verifier failed: {e}")
        if not (pairing_ok and valid):
            return AuditReport(True, Misbehavior.INVALID_SIGNATURE, index,
                               error=f"pairing_ok={pairing_ok}, valid={valid}")

        expected_diff = canonical_diff(self.ledger.snapshot_at(index), index)
        if expected_diff != envelope.diff_bytes:
            return AuditReport(True, Misbehavior.DIFF_MISMATCH, index,
                               canonical_diff=expected_diff)

        return AuditReport(False, Misbehavior.NONE, index, canonical_diff=expected_diff)
