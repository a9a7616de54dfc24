"""
statediff: Verified Off-Ledger State Transitions

An untrusted operator computes aggregate power over a large participant set
off-ledger, compresses the result into a binary storage diff, binds it to
its exact context and has a committee sign it. The transition gate applies
the diff only after checking freshness, fee, digest and signature; the
auditor can replay the computation at any time and flag a bad submission.

Usage:
    from statediff import (
        TransitionGate, SlashingAuditor, Operator, Committee,
        Participant, PARAMS_TEST,
    )

    gate = TransitionGate(params=PARAMS_TEST)
    gate.append_participant(Participant.from_int(0x222))

    operator = Operator(gate.ledger, Committee.generate(3), PARAMS_TEST)
    envelope = operator.prepare_for(gate)
    state = gate.submit(envelope, payment=PARAMS_TEST.fee)

    auditor = SlashingAuditor.for_gate(gate)
    assert not auditor.audit(envelope)
"""

# Errors
from .errors import (
    StateDiffError,
    MalformedDiff,
    TransitionRejected,
    StaleTransition,
    InsufficientPayment,
    HashMismatch,
    InvalidSignature,
)

# Parameters
from .params import GateParams, PARAMS_DEFAULT, PARAMS_TEST, selector_for

# Storage
from .store import SlotStore, Transaction

# Ledger and oracle
from .ledger import Participant, Snapshot, SnapshotLedger
from .oracle import PowerResult, compute_power, canonical_diff

# Codec
from .codec import (
    DiffOp,
    DiffOpcode,
    PowerState,
    POWER_LOCATION,
    PASSED_LOCATION,
    encode,
    decode,
    decode_and_apply,
    decode_power_state,
    read_power_state,
)

# Commitments and signatures
from .binder import Binding, bind
from .signature import (
    SignatureVerifier,
    CommitteeVerifier,
    Committee,
    AggregateSignature,
)
from .envelope import SignedDiffEnvelope

# Protocol roles
from .operator import Operator
from .gate import TransitionGate, GatePhase, FeeLedger
from .auditor import SlashingAuditor, AuditReport, Misbehavior

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Errors
    "StateDiffError",
    "MalformedDiff",
    "TransitionRejected",
    "StaleTransition",
    "InsufficientPayment",
    "HashMismatch",
    "InvalidSignature",
    # Parameters
    "GateParams",
    "PARAMS_DEFAULT",
    "PARAMS_TEST",
    "selector_for",
    # Storage
    "SlotStore",
    "Transaction",
    # Ledger and oracle
    "Participant",
    "Snapshot",
    "SnapshotLedger",
    "PowerResult",
    "compute_power",
    "canonical_diff",
    # Codec
    "DiffOp",
    "DiffOpcode",
    "PowerState",
    "POWER_LOCATION",
    "PASSED_LOCATION",
    "encode",
    "decode",
    "decode_and_apply",
    "decode_power_state",
    "read_power_state",
    # Commitments and signatures
    "Binding",
    "bind",
    "SignatureVerifier",
    "CommitteeVerifier",
    "Committee",
    "AggregateSignature",
    "SignedDiffEnvelope",
    # Protocol roles
    "Operator",
    "TransitionGate",
    "GatePhase",
    "FeeLedger",
    "SlashingAuditor",
    "AuditReport",
    "Misbehavior",
]
