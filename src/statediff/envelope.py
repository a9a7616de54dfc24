"""
Signed Diff Envelope

What an operator hands to the gate: a storage diff, the context it was
bound to, the commitment digest and the aggregate signature over it.
Constructed off-ledger and consumed once.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict

from .binder import INDEX_SIZE, Binding, bind
from .errors import HashMismatch
from .params import IDENTITY_SIZE, SELECTOR_SIZE, GateParams


@dataclass(frozen=True)
class SignedDiffEnvelope:
    """
    A signed state diff.

    Fields:
    - message_digest: Declared commitment digest
    - aggregate_public_key_g1 / aggregate_public_key_g2: Aggregate key
    - signature: Aggregate signature over message_digest
    - diff_bytes: Storage diff
    - transition_index: Index the diff was computed for
    - target_identity: Ledger the diff targets (20 bytes)
    - operation_selector: Authorized operation (4 bytes)
    """
    message_digest: bytes
    aggregate_public_key_g1: bytes
    aggregate_public_key_g2: bytes
    signature: bytes
    diff_bytes: bytes
    transition_index: int
    target_identity: bytes
    operation_selector: bytes

    def recompute_digest(self, namespace: bytes) -> bytes:
        """Bind this envelope's fields under `namespace`."""
        return bind(
            namespace,
            self.transition_index,
            self.target_identity,
            self.operation_selector,
            self.diff_bytes,
        )

    def check_binding(self, params: GateParams) -> bytes:
        """
        Verify the declared digest against a binding rebuilt from `params`.

        The target identity and selector come from the gate's parameters,
        never from the envelope, so an envelope bound for another ledger or
        operation cannot pass.

        Returns:
            The expected digest

        Raises:
            HashMismatch: if the envelope is bound to anything else, or its
                fields cannot be bound at all
        """
        try:
            expected = Binding.for_params(params, self.transition_index, self.diff_bytes).digest()
        except ValueError as e:
            raise HashMismatch(expected=b'', declared=self.message_digest) from e

        if (
            self.target_identity != params.target_identity
            or self.operation_selector != params.operation_selector
            or expected != self.message_digest
        ):
            raise HashMismatch(expected=expected, declared=self.message_digest)
        return expected

    def with_diff(self, diff_bytes: bytes) -> 'SignedDiffEnvelope':
        """Copy with a different diff; digest and signature are kept as-is."""
        return replace(self, diff_bytes=diff_bytes)

    def serialize(self) -> bytes:
        """
        Serialize envelope for transmission.

        Format:
            index(32) || target(20) || selector(4) ||
            then, each with a 4-byte length prefix:
            digest, pk_g1, pk_g2, signature, diff
        """
        parts = [
            self.transition_index.to_bytes(INDEX_SIZE, 'big'),
            self.target_identity,
            self.operation_selector,
        ]
        for blob in (
            self.message_digest,
            self.aggregate_public_key_g1,
            self.aggregate_public_key_g2,
            self.signature,
            self.diff_bytes,
        ):
            parts.append(len(blob).to_bytes(4, 'big'))
            parts.append(blob)
        return b''.join(parts)

    @classmethod
    def deserialize(cls, data: bytes) -> 'SignedDiffEnvelope':
        """Deserialize envelope from bytes."""
        header = INDEX_SIZE + IDENTITY_SIZE + SELECTOR_SIZE
        if len(data) < header:
            raise ValueError(f"Data too short: need {header} bytes, got {len(data)}")

        offset = 0

        transition_index = int.from_bytes(data[offset:offset+INDEX_SIZE], 'big')
        offset += INDEX_SIZE

        target_identity = data[offset:offset+IDENTITY_SIZE]
        offset += IDENTITY_SIZE

        operation_selector = data[offset:offset+SELECTOR_SIZE]
        offset += SELECTOR_SIZE

        blobs = []
        for _ in range(5):
            if offset + 4 > len(data):
                raise ValueError("Truncated envelope")
            length = int.from_bytes(data[offset:offset+4], 'big')
            offset += 4
            if offset + length > len(data):
                raise ValueError("Truncated envelope")
            blobs.append(data[offset:offset+length])
            offset += length

        if offset != len(data):
            raise ValueError(f"Trailing bytes in envelope: {len(data) - offset}")

        digest, pk_g1, pk_g2, signature, diff_bytes = blobs
        return cls(
            message_digest=digest,
            aggregate_public_key_g1=pk_g1,
            aggregate_public_key_g2=pk_g2,
            signature=signature,
            diff_bytes=diff_bytes,
            transition_index=transition_index,
            target_identity=target_identity,
            operation_selector=operation_selector,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message_digest": self.message_digest.hex(),
            "aggregate_public_key_g1": self.aggregate_public_key_g1.hex(),
            "aggregate_public_key_g2": self.aggregate_public_key_g2.hex(),
            "signature": self.signature.hex(),
            "diff_bytes": self.diff_bytes.hex(),
            "transition_index": self.transition_index,
            "target_identity": self.target_identity.hex(),
            "operation_selector": self.operation_selector.hex(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SignedDiffEnvelope':
        return cls(
            message_digest=bytes.fromhex(data["message_digest"]),
            aggregate_public_key_g1=bytes.fromhex(data["aggregate_public_key_g1"]),
            aggregate_public_key_g2=bytes.fromhex(data["aggregate_public_key_g2"]),
            signature=bytes.fromhex(data["signature"]),
            diff_bytes=bytes.fromhex(data["diff_bytes"]),
            transition_index=int(data["transition_index"]),
            target_identity=bytes.fromhex(data["target_identity"]),
            operation_selector=bytes.fromhex(data["operation_selector"]),
        )
