"""
Tests for the verified transition protocol

- Transition gate: freshness, fee, digest, signature, atomic apply
- Direct computation vs. signed diff application
- Slashing auditor verdicts
- End-to-end ledger scenarios
"""

from dataclasses import replace

import pytest
from statediff import (
    # Errors
    MalformedDiff,
    StaleTransition,
    InsufficientPayment,
    HashMismatch,
    InvalidSignature,
    TransitionRejected,

    # Parameters
    GateParams,
    PARAMS_TEST,

    # Ledger and codec
    Participant,
    PowerState,
    encode,

    # Protocol roles
    Binding,
    Committee,
    Operator,
    SignatureVerifier,
    TransitionGate,
    GatePhase,
    SlashingAuditor,
    Misbehavior,
)
from statediff.codec import RECORD_SIZE
from statediff.gate import ANONYMOUS_PAYER


P1 = Participant.from_int(0x222)
P2 = Participant.from_int(0x123)

SEEDS = [bytes([i]) * 32 for i in range(1, 4)]
FEE = PARAMS_TEST.fee


class StubVerifier(SignatureVerifier):
    """Signature service with canned answers."""

    def __init__(self, pairing_ok: bool, valid: bool):
        self.answer = (pairing_ok, valid)
        self.calls = 0

    def verify(self, digest, public_key_g1, public_key_g2, signature):
        self.calls += 1
        return self.answer


class ExplodingVerifier(SignatureVerifier):
    def verify(self, digest, public_key_g1, public_key_g2, signature):
        raise RuntimeError("pairing backend unavailable")


def make_gate(verifier=None, params=PARAMS_TEST):
    gate = TransitionGate(verifier=verifier, params=params)
    operator = Operator(gate.ledger, Committee.from_seeds(SEEDS), params)
    return gate, operator


def snapshot_of(gate):
    """Everything a rejected submission must leave untouched."""
    return (
        gate.current_transition_index(),
        gate.power_state(),
        dict(gate.store.items()),
        gate.fees.total,
    )


class TestTransitionGate:
    """Tests for the submission path."""

    def test_accepts_honest_envelope(self):
        gate, operator = make_gate()
        gate.append_participant(P1)

        state = gate.submit(operator.prepare(), payment=FEE)

        assert state == PowerState(0x222, True)
        assert gate.power_state() == state
        assert gate.current_transition_index() == 2
        assert gate.last_phase == GatePhase.APPLIED

    def test_initial_state(self):
        gate, _ = make_gate()
        assert gate.current_transition_index() == 0
        assert gate.power_state() == PowerState(0, False)
        assert gate.last_phase == GatePhase.IDLE

    def test_fee_credited_to_payer(self):
        gate, operator = make_gate()
        gate.append_participant(P1)
        payer = b'\xaa' * 20

        gate.submit(operator.prepare(), payment=FEE, payer=payer)

        assert gate.fees.balance(payer) == FEE
        assert gate.fees.total == FEE


    def test_fee_defaults_to_anonymous_payer(self):
        gate, operator = make_gate()
        gate.append_participant(P1)

        gate.submit(operator.prepare(), payment=FEE)

        assert gate.fees.balance(ANONYMOUS_PAYER) == FEE
        assert gate.fees.balances == {ANONYMOUS_PAYER: FEE}

    def test_prepare_for_targets_current_index(self):
        gate, operator = make_gate()
        gate.append_participant(P1)
        gate.append_participant(P2)

        envelope = operator.prepare_for(gate)
        assert envelope.transition_index == gate.current_transition_index() == 2

        gate.submit(envelope, payment=FEE)
        gate.compute_direct()

        # Counter moved twice; a fresh envelope still lands
        follow_up = operator.prepare_for(gate)
        assert follow_up.transition_index == 4
        state = gate.submit(follow_up, payment=FEE)
        assert state == PowerState((0x222 + 0x123) * 4, True)

    def test_stale_index_rejected(self):
        gate, operator = make_gate()
        gate.append_participant(P1)
        envelope = operator.prepare()
        gate.append_participant(P2)  # Counter moved on
        before = snapshot_of(gate)

        with pytest.raises(StaleTransition) as exc:
            gate.submit(envelope, payment=FEE)

        assert exc.value.expected == 2
        assert exc.value.actual == 1
        assert snapshot_of(gate) == before
        assert gate.last_phase == GatePhase.REJECTED

    def test_future_index_rejected(self):
        gate, operator = make_gate()
        gate.append_participant(P1)
        with pytest.raises(StaleTransition):
            gate.submit(operator.prepare(index=5), payment=FEE)

    def test_freshness_checked_before_signature(self):
        """Stale envelopes never reach the signature service."""
        verifier = StubVerifier(True, True)
        gate, operator = make_gate(verifier=verifier)
        gate.append_participant(P1)
        envelope = operator.prepare(index=0)

        with pytest.raises(StaleTransition):
            gate.submit(envelope, payment=FEE)
        assert verifier.calls == 0

    @pytest.mark.parametrize("payment", [0, FEE - 1, FEE + 1])
    def test_inexact_fee_rejected(self, payment):
        gate, operator = make_gate()
        gate.append_participant(P1)
        before = snapshot_of(gate)

        with pytest.raises(InsufficientPayment) as exc:
            gate.submit(operator.prepare(), payment=payment)

        assert exc.value.required == FEE
        assert exc.value.paid == payment
        assert snapshot_of(gate) == before

    def test_digest_mismatch_rejected(self):
        gate, operator = make_gate()
        gate.append_participant(P1)
        envelope = operator.prepare().with_diff(encode(0x999, True))
        before = snapshot_of(gate)

        with pytest.raises(HashMismatch):
            gate.submit(envelope, payment=FEE)
        assert snapshot_of(gate) == before

    def test_foreign_namespace_rejected(self):
        gate, _ = make_gate()
        gate.append_participant(P1)
        foreign = GateParams(
            namespace=b'someone.else.v1',
            fee=PARAMS_TEST.fee,
            target_identity=PARAMS_TEST.target_identity,
        )
        operator = Operator(gate.ledger, Committee.from_seeds(SEEDS), foreign)

        with pytest.raises(HashMismatch):
            gate.submit(operator.prepare(), payment=FEE)

    def test_foreign_target_rejected(self):
        """An envelope signed for another ledger cannot be replayed here."""
        gate, _ = make_gate()
        gate.append_participant(P1)
        foreign = GateParams(target_identity=b'\x11' * 20, fee=PARAMS_TEST.fee)
        envelope = Operator(gate.ledger, Committee.from_seeds(SEEDS), foreign).prepare()
        before = snapshot_of(gate)

        with pytest.raises(HashMismatch):
            gate.submit(envelope, payment=FEE)
        assert snapshot_of(gate) == before
        assert gate.last_phase == GatePhase.REJECTED

    def test_foreign_selector_rejected(self):
        gate, _ = make_gate()
        gate.append_participant(P1)
        foreign = replace(PARAMS_TEST, operation_selector=b'\xde\xad\xbe\xef')
        envelope = Operator(gate.ledger, Committee.from_seeds(SEEDS), foreign).prepare()

        with pytest.raises(HashMismatch):
            gate.submit(envelope, payment=FEE)
        assert gate.current_transition_index() == 1

    @pytest.mark.parametrize("changes", [
        {"target_identity": b'\x00' * 3},
        {"operation_selector": b'\x00'},
    ])
    def test_unbindable_fields_rejected(self, changes):
        gate, operator = make_gate()
        gate.append_participant(P1)
        envelope = replace(operator.prepare(), **changes)
        before = snapshot_of(gate)

        with pytest.raises(TransitionRejected) as exc:
            gate.submit(envelope, payment=FEE)

        assert isinstance(exc.value, HashMismatch)
        assert snapshot_of(gate) == before
        assert gate.last_phase == GatePhase.REJECTED

    @pytest.mark.parametrize("pairing_ok,valid", [
        (False, True),
        (True, False),
        (False, False),
    ])
    def test_signature_failure_rejected(self, pairing_ok, valid):
        gate, operator = make_gate(verifier=StubVerifier(pairing_ok, valid))
        gate.append_participant(P1)
        before = snapshot_of(gate)

        with pytest.raises(InvalidSignature) as exc:
            gate.submit(operator.prepare(), payment=FEE)

        assert exc.value.pairing_ok == pairing_ok
        assert exc.value.valid == valid
        assert snapshot_of(gate) == before

    def test_signature_from_other_committee_rejected(self):
        gate, operator = make_gate()
        gate.append_participant(P1)
        envelope = operator.prepare()
        impostor = Committee.from_seeds([b'\x77' * 32] * 3).sign(envelope.message_digest)
        forged = type(envelope)(
            message_digest=envelope.message_digest,
            aggregate_public_key_g1=envelope.aggregate_public_key_g1,
            aggregate_public_key_g2=envelope.aggregate_public_key_g2,
            signature=impostor.signature,
            diff_bytes=envelope.diff_bytes,
            transition_index=envelope.transition_index,
            target_identity=envelope.target_identity,
            operation_selector=envelope.operation_selector,
        )

        with pytest.raises(InvalidSignature):
            gate.submit(forged, payment=FEE)

    def test_malformed_diff_rolls_back(self):
        """A correctly signed but malformed diff applies nothing."""
        gate, operator = make_gate()
        gate.append_participant(P1)
        bad = bytearray(encode(0x222, True))
        bad[RECORD_SIZE] = 0x02
        envelope = operator.sign(Binding.for_params(PARAMS_TEST, 1, bytes(bad)))
        before = snapshot_of(gate)

        with pytest.raises(MalformedDiff):
            gate.submit(envelope, payment=FEE)
        assert snapshot_of(gate) == before
        assert gate.last_phase == GatePhase.REJECTED

    def test_rejections_share_a_base_class(self):
        for cls in (StaleTransition, InsufficientPayment, HashMismatch, InvalidSignature):
            assert issubclass(cls, TransitionRejected)

    def test_recovers_after_stale_rejection(self):
        """Caller recomputes against the new counter and succeeds."""
        gate, operator = make_gate()
        gate.append_participant(P1)
        stale = operator.prepare()
        gate.append_participant(P2)

        with pytest.raises(StaleTransition):
            gate.submit(stale, payment=FEE)

        state = gate.submit(operator.prepare(), payment=FEE)
        assert state == PowerState((0x222 + 0x123) * 2, True)
        assert gate.current_transition_index() == 3

    def test_queries(self):
        gate, _ = make_gate()
        gate.append_participant(P1)
        assert gate.snapshot_at(1) == (P1,)
        assert gate.recompute_canonical_diff(1) == encode(0x222, True)
        assert gate.recompute_canonical_diff(0) == encode(0, True)


class TestDirectComputation:
    """Direct on-ledger computation must agree with signed diff application."""

    @pytest.mark.parametrize("participants", [
        [P1],
        [P2],
        [P1, P2],
        [P2, P2, P1],
        [Participant.from_int((1 << 160) - 1)] * 4,
    ])
    def test_paths_agree(self, participants):
        direct_gate, _ = make_gate()
        signed_gate, operator = make_gate()
        for p in participants:
            direct_gate.append_participant(p)
            signed_gate.append_participant(p)

        direct = direct_gate.compute_direct()
        applied = signed_gate.submit(operator.prepare(), payment=FEE)

        assert direct == applied
        assert dict(direct_gate.store.items()) == dict(signed_gate.store.items())
        assert (direct_gate.current_transition_index()
                == signed_gate.current_transition_index())

    def test_direct_advances_counter(self):
        gate, _ = make_gate()
        gate.append_participant(P1)
        gate.compute_direct()
        assert gate.current_transition_index() == 2

    def test_direct_on_empty_ledger(self):
        gate, _ = make_gate()
        assert gate.compute_direct() == PowerState(0, True)
        assert gate.current_transition_index() == 1

    def test_direct_invalidates_pending_envelope(self):
        gate, operator = make_gate()
        gate.append_participant(P1)
        envelope = operator.prepare()
        gate.compute_direct()

        with pytest.raises(StaleTransition):
            gate.submit(envelope, payment=FEE)


class TestSlashingAuditor:
    """Tests for audit verdicts."""

    def _submitted(self):
        gate, operator = make_gate()
        gate.append_participant(P1)
        envelope = operator.prepare()
        gate.submit(envelope, payment=FEE)
        return gate, operator, envelope

    def test_honest_envelope_clean(self):
        gate, _, envelope = self._submitted()
        auditor = SlashingAuditor.for_gate(gate)

        report = auditor.inspect(envelope)
        assert report.misbehaved is False
        assert report.reason == Misbehavior.NONE
        assert report.canonical_diff == envelope.diff_bytes

    def test_audit_advances_counter_only(self):
        gate, _, envelope = self._submitted()
        state = gate.power_state()
        auditor = SlashingAuditor.for_gate(gate)

        assert auditor.audit(envelope) is False
        assert gate.current_transition_index() == 3
        assert gate.power_state() == state

    def test_single_byte_tamper_detected(self):
        gate, _, envelope = self._submitted()
        auditor = SlashingAuditor.for_gate(gate)
        tampered = bytearray(envelope.diff_bytes)
        tampered[40] ^= 0x01

        report = auditor.inspect(envelope.with_diff(bytes(tampered)))
        assert report.misbehaved is True
        assert report.reason == Misbehavior.HASH_MISMATCH

    def test_wrong_diff_correctly_signed(self):
        """A committee signing a wrong result is still caught."""
        gate, operator = make_gate()
        gate.append_participant(P1)
        lie = operator.sign(Binding.for_params(PARAMS_TEST, 1, encode(0x224, True)))

        # The gate cannot tell; the auditor can
        gate.submit(lie, payment=FEE)
        report = SlashingAuditor.for_gate(gate).inspect(lie)

        assert report.misbehaved is True
        assert report.reason == Misbehavior.DIFF_MISMATCH
        assert report.canonical_diff == encode(0x222, True)

    def test_bad_signature_detected(self):
        gate, _, envelope = self._submitted()
        auditor = SlashingAuditor(gate.ledger, StubVerifier(True, False), PARAMS_TEST)

        report = auditor.inspect(envelope)
        assert report.misbehaved is True
        assert report.reason == Misbehavior.INVALID_SIGNATURE

    def test_verifier_exception_becomes_verdict(self):
        gate, _, envelope = self._submitted()
        auditor = SlashingAuditor(gate.ledger, ExplodingVerifier(), PARAMS_TEST)

        report = auditor.inspect(envelope)
        assert report.misbehaved is True
        assert "unavailable" in report.error

    def test_unbindable_envelope_becomes_verdict(self):
        gate, _, envelope = self._submitted()
        broken = type(envelope)(**{
            **envelope.__dict__,
            "operation_selector": b'\x00',
        })
        assert SlashingAuditor.for_gate(gate).audit(broken) is True


    def test_foreign_target_becomes_verdict(self):
        gate, _, _ = self._submitted()
        foreign = GateParams(target_identity=b'\x11' * 20, fee=PARAMS_TEST.fee)
        envelope = Operator(gate.ledger, Committee.from_seeds(SEEDS), foreign).prepare(index=1)

        report = SlashingAuditor.for_gate(gate).inspect(envelope)
        assert report.misbehaved is True
        assert report.reason == Misbehavior.HASH_MISMATCH

    def test_wrong_width_target_becomes_verdict(self):
        gate, _, envelope = self._submitted()
        broken = replace(envelope, target_identity=b'\x00' * 3)

        report = SlashingAuditor.for_gate(gate).inspect(broken)
        assert report.misbehaved is True
        assert report.reason == Misbehavior.HASH_MISMATCH
        assert report.error

    def test_hash_checked_before_signature(self):
        gate, _, envelope = self._submitted()
        verifier = StubVerifier(True, True)
        auditor = SlashingAuditor(gate.ledger, verifier, PARAMS_TEST)

        auditor.audit(envelope.with_diff(b''))
        assert verifier.calls == 0

    def test_audit_of_historic_index(self):
        """Audits replay against the snapshot at the envelope's index."""
        gate, _, envelope = self._submitted()
        gate.append_participant(P2)
        gate.append_participant(P2)
        assert SlashingAuditor.for_gate(gate).audit(envelope) is False

    def test_audit_never_raises_on_stale_envelope(self):
        gate, operator = make_gate()
        gate.append_participant(P1)
        envelope = operator.prepare()
        gate.append_participant(P2)
        # Never submitted, but honest for its index
        assert SlashingAuditor.for_gate(gate).audit(envelope) is False


class TestScenarios:
    """End-to-end ledger scenarios."""

    def test_even_participant(self):
        gate, operator = make_gate()
        assert gate.current_transition_index() == 0
        assert gate.snapshot_at(0) == ()

        index = gate.append_participant(P1)
        assert index == 1
        assert gate.snapshot_at(1) == (P1,)

        envelope = operator.prepare()
        assert envelope.transition_index == 1
        state = gate.submit(envelope, payment=FEE)

        assert state == PowerState(0x222, True)
        assert gate.current_transition_index() == 2

    def test_odd_participant(self):
        gate, operator = make_gate()
        gate.append_participant(P2)

        state = gate.submit(operator.prepare(), payment=FEE)

        assert state == PowerState(0x123, False)
        assert gate.current_transition_index() == 2

    def test_replay_rejected(self):
        gate, operator = make_gate()
        gate.append_participant(P1)
        envelope = operator.prepare()
        gate.submit(envelope, payment=FEE)
        before = snapshot_of(gate)

        with pytest.raises(StaleTransition):
            gate.submit(envelope, payment=FEE)

        second = operator.prepare(index=1)
        with pytest.raises(StaleTransition):
            gate.submit(second, payment=FEE)

        assert snapshot_of(gate) == before
        assert gate.power_state() == PowerState(0x222, True)

    def test_successive_transitions(self):
        gate, operator = make_gate()
        gate.append_participant(P1)
        gate.submit(operator.prepare(), payment=FEE)      # index 1
        state = gate.submit(operator.prepare(), payment=FEE)  # index 2, same snapshot

        assert state == PowerState(0x222 * 2, True)
        assert gate.current_transition_index() == 3
        assert gate.fees.total == 2 * FEE
