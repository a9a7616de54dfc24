"""
Commitment Binder

Derives the digest the aggregate signature authenticates:

    digest = SHAKE256(COMMITMENT ‖ len‖namespace ‖ len‖index ‖ len‖target
                      ‖ len‖selector ‖ len‖diff)[:32]

Packing rule: every field carries an 8-byte big-endian length prefix and the
transition index is a 32-byte big-endian unsigned word. Length-prefixing
makes the concatenation injective, so no two distinct field tuples share an
input. Signer, gate and auditor all go through `bind`.
"""

from dataclasses import dataclass

from .params import IDENTITY_SIZE, SELECTOR_SIZE, GateParams
from .tags import Tag, tagged_hash

INDEX_SIZE = 32


def bind(
    namespace: bytes,
    transition_index: int,
    target_identity: bytes,
    operation_selector: bytes,
    diff_bytes: bytes,
) -> bytes:
    """
    Bind a diff to its context.

    Args:
        namespace: ASCII domain namespace
        transition_index: Index the diff was computed for
        target_identity: Ledger identity (20 bytes)
        operation_selector: Authorized operation (4 bytes)
        diff_bytes: Raw storage diff

    Returns:
        32-byte commitment digest
    """
    if transition_index < 0 or transition_index >= 1 << (8 * INDEX_SIZE):
        raise ValueError(f"Transition index out of range: {transition_index}")
    if len(target_identity) != IDENTITY_SIZE:
        raise ValueError(
            f"Target identity must be {IDENTITY_SIZE} bytes, got {len(target_identity)}"
        )
    if len(operation_selector) != SELECTOR_SIZE:
        raise ValueError(
            f"Selector must be {SELECTOR_SIZE} bytes, got {len(operation_selector)}"
        )

    return tagged_hash(
        Tag.COMMITMENT,
        namespace,
        transition_index.to_bytes(INDEX_SIZE, 'big'),
        target_identity,
        operation_selector,
        diff_bytes,
    )


@dataclass(frozen=True)
class Binding:
    """The fields a commitment digest covers."""
    namespace: bytes
    transition_index: int
    target_identity: bytes
    operation_selector: bytes
    diff_bytes: bytes

    @classmethod
    def for_params(cls, params: GateParams, transition_index: int, diff_bytes: bytes) -> 'Binding':
        """Binding for a diff under a gate's parameters."""
        return cls(
            namespace=params.namespace,
            transition_index=transition_index,
            target_identity=params.target_identity,
            operation_selector=params.operation_selector,
            diff_bytes=diff_bytes,
        )

    def digest(self) -> bytes:
        return bind(
            self.namespace,
            self.transition_index,
            self.target_identity,
            self.operation_selector,
            self.diff_bytes,
        )
