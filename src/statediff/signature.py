"""
Aggregate Signature Service

The gate and the auditor consume signature verification as an opaque
service: given a digest, an aggregate public key (two components) and a
signature, it answers two questions:

- pairing_ok: does the aggregate key/signature structure check out?
- valid: does the signature actually authenticate the digest?

`CommitteeVerifier` is the reference scheme, an Ed25519 committee:

    pk_g1     = pk_1 ‖ pk_2 ‖ ... ‖ pk_n          (32 bytes each)
    pk_g2     = H(AGGREGATE_KEY ‖ pk_g1)           (aggregate key commitment)
    signature = sig_1 ‖ sig_2 ‖ ... ‖ sig_n        (64 bytes each)

Any pairing-curve scheme can be dropped in behind `SignatureVerifier`.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Tuple
import logging

from cryptography.exceptions import InvalidSignature as _CryptoInvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from .tags import Tag, tagged_hash

logger = logging.getLogger(__name__)

PUBLIC_KEY_SIZE = 32
SIGNATURE_SIZE = 64


class SignatureVerifier(ABC):
    """Abstract aggregate signature verification service."""

    @abstractmethod
    def verify(
        self,
        digest: bytes,
        public_key_g1: bytes,
        public_key_g2: bytes,
        signature: bytes,
    ) -> Tuple[bool, bool]:
        """
        Verify an aggregate signature over a digest.

        MUST be total: malformed input yields (False, False), never raises.

        Returns:
            (pairing_ok, valid)
        """
        pass


def aggregate_key_commitment(public_key_g1: bytes) -> bytes:
    """Commitment to a committee's concatenated public keys."""
    return tagged_hash(Tag.AGGREGATE_KEY, public_key_g1)


def _split(data: bytes, size: int) -> List[bytes]:
    return [data[i:i+size] for i in range(0, len(data), size)]


class CommitteeVerifier(SignatureVerifier):
    """
    Verify Ed25519 committee signatures.

    Every committee member must sign; there is no threshold.
    """

    def verify(
        self,
        digest: bytes,
        public_key_g1: bytes,
        public_key_g2: bytes,
        signature: bytes,
    ) -> Tuple[bool, bool]:
        if (
            not public_key_g1
            or len(public_key_g1) % PUBLIC_KEY_SIZE
            or len(signature) != len(public_key_g1) // PUBLIC_KEY_SIZE * SIGNATURE_SIZE
        ):
            return False, False

        if aggregate_key_commitment(public_key_g1) != public_key_g2:
            return False, False

        for raw_key, sig in zip(_split(public_key_g1, PUBLIC_KEY_SIZE),
                                _split(signature, SIGNATURE_SIZE)):
            try:
                Ed25519PublicKey.from_public_bytes(raw_key).verify(sig, digest)
            except (_CryptoInvalidSignature, ValueError) as e:
                logger.debug("Committee member %s rejected: %r", raw_key.hex()[:16], e)
                return True, False

        return True, True


@dataclass
class AggregateSignature:
    """Signature material carried by an envelope."""
    public_key_g1: bytes
    public_key_g2: bytes
    signature: bytes


@dataclass
class Committee:
    """
    Off-ledger signing committee.

    Holds the members' private keys; only ever used by the operator.
    """
    members: List[Ed25519PrivateKey] = field(default_factory=list)

    @classmethod
    def generate(cls, size: int = 3) -> 'Committee':
        """Create a committee of `size` fresh keys."""
        if size < 1:
            raise ValueError(f"Committee needs at least one member, got {size}")
        return cls([Ed25519PrivateKey.generate() for _ in range(size)])

    @classmethod
    def from_seeds(cls, seeds: List[bytes]) -> 'Committee':
        """Deterministic committee from 32-byte private key seeds."""
        return cls([Ed25519PrivateKey.from_private_bytes(seed) for seed in seeds])

    def public_key_g1(self) -> bytes:
        """Concatenated raw member public keys."""
        return b''.join(
            key.public_key().public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw,
            )
            for key in self.members
        )

    def public_key_g2(self) -> bytes:
        """Aggregate key commitment."""
        return aggregate_key_commitment(self.public_key_g1())

    def sign(self, digest: bytes) -> AggregateSignature:
        """Every member signs the digest."""
        if not self.members:
            raise ValueError("Cannot sign with an empty committee")
        return AggregateSignature(
            public_key_g1=self.public_key_g1(),
            public_key_g2=self.public_key_g2(),
            signature=b''.join(key.sign(digest) for key in self.members),
        )
