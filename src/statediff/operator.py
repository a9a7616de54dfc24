"""
Operator

The off-ledger side: runs the power oracle over a snapshot, encodes the
result as a storage diff, binds it and has the committee sign it.
"""

from typing import Optional

from .binder import Binding
from .envelope import SignedDiffEnvelope
from .ledger import SnapshotLedger
from .oracle import canonical_diff
from .params import PARAMS_DEFAULT, GateParams
from .signature import Committee


class Operator:
    """Produce signed diff envelopes for a ledger."""

    def __init__(
        self,
        ledger: SnapshotLedger,
        committee: Committee,
        params: GateParams = PARAMS_DEFAULT,
    ):
        """
        Args:
            ledger: Ledger (or a replica of it) to read snapshots from
            committee: Signing committee
            params: Parameters of the gate the envelopes are meant for
        """
        self.ledger = ledger
        self.committee = committee
        self.params = params

    def prepare(self, index: Optional[int] = None) -> SignedDiffEnvelope:
        """
        Build a signed envelope for `index` (defaults to the ledger's current
        counter, the only index a gate will accept next).
        """
        if index is None:
            index = self.ledger.counter

        diff = canonical_diff(self.ledger.snapshot_at(index), index)
        return self.sign(Binding.for_params(self.params, index, diff))

    def prepare_for(self, gate) -> SignedDiffEnvelope:
        """Envelope for the index `gate` will accept next."""
        return self.prepare(gate.current_transition_index())

    def sign(self, binding: Binding) -> SignedDiffEnvelope:
        """Sign an arbitrary binding."""
        digest = binding.digest()
        aggregate = self.committee.sign(digest)
        return SignedDiffEnvelope(
            message_digest=digest,
            aggregate_public_key_g1=aggregate.public_key_g1,
            aggregate_public_key_g2=aggregate.public_key_g2,
            signature=aggregate.signature,
            diff_bytes=binding.diff_bytes,
            transition_index=binding.transition_index,
            target_identity=binding.target_identity,
            operation_selector=binding.operation_selector,
        )
