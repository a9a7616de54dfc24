"""
Transition Gate

The ledger-side authority that accepts a signed diff only after it checks
out, then applies it atomically:

    IDLE → VERIFYING → APPLIED  → IDLE
                     ↘ REJECTED ↗

Checks run cheapest first so stale or duplicate submissions are refused
before any hashing or signature work:

1. Freshness: envelope.transition_index + 1 must be the counter this
   transition produces
2. Exact fee
3. Commitment digest rebuilt from the gate's own parameters and compared
4. Aggregate signature (pairing check and validity)
5. Apply diff, advance counter, credit fee

Every rejection leaves store, counter and fee ledger untouched.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional
import logging

from .codec import PowerState, decode_and_apply, encode, read_power_state
from .envelope import SignedDiffEnvelope
from .errors import (
    InsufficientPayment,
    InvalidSignature,
    StaleTransition,
    TransitionRejected,
)
from .ledger import Participant, Snapshot, SnapshotLedger
from .oracle import canonical_diff, compute_power
from .params import IDENTITY_SIZE, PARAMS_DEFAULT, GateParams
from .signature import CommitteeVerifier, SignatureVerifier

logger = logging.getLogger(__name__)

ANONYMOUS_PAYER = b'\x00' * IDENTITY_SIZE


class GatePhase(Enum):
    """Gate state machine phases."""
    IDLE = "idle"
    VERIFYING = "verifying"
    APPLIED = "applied"
    REJECTED = "rejected"


@dataclass
class FeeLedger:
    """Escrow of fees collected from accepted submissions."""
    balances: Dict[bytes, int] = field(default_factory=dict)

    def credit(self, payer: bytes, amount: int):
        if amount < 0:
            raise ValueError(f"Cannot credit a negative amount: {amount}")
        self.balances[payer] = self.balances.get(payer, 0) + amount

    def balance(self, payer: bytes) -> int:
        return self.balances.get(payer, 0)

    @property
    def total(self) -> int:
        return sum(self.balances.values())


class TransitionGate:
    """
    Verify-then-apply gate over a snapshot ledger.

    Owns the ledger's store for the duration of each submission; all
    mutating operations hold the store lock.
    """

    def __init__(
        self,
        ledger: Optional[SnapshotLedger] = None,
        verifier: Optional[SignatureVerifier] = None,
        params: GateParams = PARAMS_DEFAULT,
    ):
        self.ledger = ledger if ledger is not None else SnapshotLedger()
        self.verifier = verifier if verifier is not None else CommitteeVerifier()
        self.params = params
        self.fees = FeeLedger()
        self.last_phase = GatePhase.IDLE

    @property
    def store(self):
        return self.ledger.store

    # =========================================================================
    # Queries
    # =========================================================================

    def current_transition_index(self) -> int:
        """Current TransitionCounter."""
        return self.ledger.counter

    def power_state(self) -> PowerState:
        """Current power state."""
        return read_power_state(self.store)

    def snapshot_at(self, index: int) -> Snapshot:
        """Participant set in effect at `index`."""
        return self.ledger.snapshot_at(index)

    def recompute_canonical_diff(self, index: int) -> bytes:
        """The diff an honest operator would submit for `index`."""
        return canonical_diff(self.ledger.snapshot_at(index), index)

    # =========================================================================
    # Mutations
    # =========================================================================

    def append_participant(self, participant: Participant) -> int:
        """Add a participant. Returns the index of the new snapshot."""
        return self.ledger.append_participant(participant)

    def compute_direct(self) -> PowerState:
        """
        Run the oracle on the ledger itself and store the result.

        Uses the snapshot at the current counter, writes through the same
        codec as a submitted diff and advances the counter.
        """
        with self.store.lock:
            index = self.ledger.counter
            power, passed = compute_power(self.ledger.snapshot_at(index), index)
            decode_and_apply(encode(power, passed), self.store, expected_version=index)
            state = self.power_state()

        logger.debug("Direct computation at index %d: power=%#x passed=%s",
                     index, power, passed)
        return state

    def submit(
        self,
        envelope: SignedDiffEnvelope,
        payment: int,
        payer: bytes = ANONYMOUS_PAYER,
    ) -> PowerState:
        """
        Verify and apply a signed diff.

        Args:
            envelope: The signed diff
            payment: Fee accompanying the call (must equal params.fee exactly)
            payer: Account the fee is credited from

        Returns:
            The power state after the diff is applied

        Raises:
            StaleTransition, InsufficientPayment, HashMismatch,
            InvalidSignature, MalformedDiff
        """
        with self.store.lock:
            self.last_phase = GatePhase.VERIFYING
            try:
                state = self._verify_and_apply(envelope, payment, payer)
            except Exception as e:
                self.last_phase = GatePhase.REJECTED
                if isinstance(e, TransitionRejected):
                    logger.warning("Rejected envelope for index %d: %s",
                                   envelope.transition_index, e)
                raise
            self.last_phase = GatePhase.APPLIED
            return state

    def _verify_and_apply(
        self,
        envelope: SignedDiffEnvelope,
        payment: int,
        payer: bytes,
    ) -> PowerState:
        observed = self.ledger.counter
        next_counter = observed + 1

        if envelope.transition_index + 1 != next_counter:
            raise StaleTransition(expected=observed, actual=envelope.transition_index)

        if payment != self.params.fee:
            raise InsufficientPayment(required=self.params.fee, paid=payment)

        envelope.check_binding(self.params)

        pairing_ok, valid = self.verifier.verify(
            envelope.message_digest,
            envelope.aggregate_public_key_g1,
            envelope.aggregate_public_key_g2,
            envelope.signature,
        )
        if not (pairing_ok and valid):
            raise InvalidSignature(pairing_ok=pairing_ok, valid=valid)

        # Compare-and-swap on the counter observed above
        decode_and_apply(envelope.diff_bytes, self.store, expected_version=observed)
        self.fees.credit(payer, payment)

        state = self.power_state()
        logger.debug("Applied envelope for index %d: power=%#x passed=%s",
                     envelope.transition_index,
                     state.current_total_power, state.last_verdict_passed)
        return state
