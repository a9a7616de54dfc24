"""
Gate Parameters

GateParams defines the public parameters shared by the operator, the
transition gate and the auditor. Signer and verifier must agree on every
field byte-for-byte, so the set is immutable and hashable.
"""

from dataclasses import dataclass
import hashlib

from .tags import Tag, tag_bytes


DEFAULT_NAMESPACE = b'statediff.transition.v1'
"""ASCII domain namespace prefixed into every commitment digest."""

IDENTITY_SIZE = 20
SELECTOR_SIZE = 4


def selector_for(signature: str) -> bytes:
    """
    Derive a 4-byte operation selector from a textual operation signature.

    selector = SHAKE256(signature)[:4]
    """
    return hashlib.shake_256(signature.encode('ascii')).digest(SELECTOR_SIZE)


@dataclass(frozen=True)
class GateParams:
    """
    Public parameters of a transition gate.

    All parameters are immutable and hashable.
    """

    namespace: bytes = DEFAULT_NAMESPACE
    """Domain separation namespace (ASCII)."""

    fee: int = 10**15
    """Exact payment required with every submission."""

    target_identity: bytes = b'\x00' * IDENTITY_SIZE
    """Identity of the ledger the diffs are applied to (20 bytes)."""

    operation_selector: bytes = selector_for('commitDiff(bytes)')
    """Selector of the state-mutating operation being authorized."""

    version: int = 1
    """Protocol version."""

    def __post_init__(self):
        """Validate parameters."""
        try:
            self.namespace.decode('ascii')
        except UnicodeDecodeError:
            raise ValueError("Namespace must be ASCII")
        if not self.namespace:
            raise ValueError("Namespace must be non-empty")
        if self.fee < 0:
            raise ValueError(f"Fee must be non-negative, got {self.fee}")
        if len(self.target_identity) != IDENTITY_SIZE:
            raise ValueError(
                f"Target identity must be {IDENTITY_SIZE} bytes, got {len(self.target_identity)}"
            )
        if len(self.operation_selector) != SELECTOR_SIZE:
            raise ValueError(
                f"Selector must be {SELECTOR_SIZE} bytes, got {len(self.operation_selector)}"
            )

    def serialize(self) -> bytes:
        """
        Canonical serialization.

        Format:
            TAG(2) || version(2) || fee(32) || target(20) || selector(4) ||
            namespace_len(2) || namespace
        """
        return b''.join([
            tag_bytes(Tag.PARAMS),
            self.version.to_bytes(2, 'big'),
            self.fee.to_bytes(32, 'big'),
            self.target_identity,
            self.operation_selector,
            len(self.namespace).to_bytes(2, 'big'),
            self.namespace,
        ])

    @classmethod
    def deserialize(cls, data: bytes) -> 'GateParams':
        """Deserialize from bytes."""
        offset = 2  # Skip tag

        version = int.from_bytes(data[offset:offset+2], 'big')
        offset += 2

        fee = int.from_bytes(data[offset:offset+32], 'big')
        offset += 32

        target_identity = data[offset:offset+IDENTITY_SIZE]
        offset += IDENTITY_SIZE

        operation_selector = data[offset:offset+SELECTOR_SIZE]
        offset += SELECTOR_SIZE

        ns_len = int.from_bytes(data[offset:offset+2], 'big')
        offset += 2
        namespace = data[offset:offset+ns_len]

        return cls(
            namespace=namespace,
            fee=fee,
            target_identity=target_identity,
            operation_selector=operation_selector,
            version=version,
        )

    def hash(self) -> bytes:
        """Hash of parameters for binding."""
        return hashlib.shake_256(self.serialize()).digest(32)


# =============================================================================
# Preset Configurations
# =============================================================================

# Default: production namespace, 0.001 unit fee
PARAMS_DEFAULT = GateParams()

# Test: small fee, recognizable target identity
PARAMS_TEST = GateParams(
    fee=1000,
    target_identity=bytes.fromhex('00000000000000000000000000000000000d1ff0'),
)
