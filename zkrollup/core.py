"""
Core data structures for the rollup: transfers, batch records and payouts.
"""
from dataclasses import dataclass
from typing import Optional

import rlp
from rlp.exceptions import DecodingError

from .crypto import generate_hash, public_key_hash, sign, verify_signature
from .utils.encoding import encode_packed, UINT256_MAX


class Transaction:
    """A transfer between two rollup accounts, consumed once by a batch."""

    def __init__(self,
                 from_index: int,
                 to_index: int,
                 amount: int,
                 fee: int,
                 nonce: int,
                 signature: Optional[bytes] = None):
        self.from_index = from_index
        self.to_index = to_index
        self.amount = amount
        self.fee = fee
        self.nonce = nonce
        self.signature = signature or b''

    def get_signing_data(self) -> bytes:
        """Returns the canonical byte representation for signing."""
        return encode_packed(self.from_index, self.to_index, self.amount, self.fee, self.nonce)

    def sign(self, private_key, public_key_pem: str):
        """
        Signs the transaction.

        The signature field carries rlp([public_key_pem, ecdsa_signature]) so a
        verifier can match the key against the sender's public key hash.
        """
        der_signature = sign(private_key, self.get_signing_data())
        self.signature = rlp.encode([public_key_pem.encode('utf-8'), der_signature])

    def signer(self) -> Optional[tuple[str, bytes]]:
        """Unpack the signature envelope into (public_key_pem, signature)."""
        if not self.signature:
            return None
        try:
            envelope = rlp.decode(self.signature)
        except DecodingError:
            return None
        if not isinstance(envelope, list) or len(envelope) != 2:
            return None
        pem, der_signature = envelope
        if not isinstance(pem, bytes) or not isinstance(der_signature, bytes):
            return None
        try:
            return pem.decode('utf-8'), der_signature
        except UnicodeDecodeError:
            return None

    @property
    def hash(self) -> bytes:
        """Digest over (from, to, amount, fee, nonce, signature), in that order."""
        return generate_hash(self.get_signing_data() + self.signature)

    def validate_basic(self) -> tuple[bool, str]:
        """
        Performs shape checks that need no ledger state.
        Returns (is_valid, error_message)
        """
        for name in ("from_index", "to_index", "amount", "fee", "nonce"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                return False, f"{name} must be an integer"
            if value < 0 or value > UINT256_MAX:
                return False, f"{name} out of uint256 range"
        if not isinstance(self.signature, (bytes, bytearray)):
            return False, "signature must be bytes"
        return True, ""

    def __repr__(self) -> str:
        return (
            f"Transaction({self.from_index}->{self.to_index}, "
            f"amount={self.amount}, fee={self.fee}, nonce={self.nonce})"
        )


class ECDSASignatureVerifier:
    """Checks a transfer was signed by the key its sender account commits to."""

    def verify(self, tx: Transaction, account) -> bool:
        signer = tx.signer()
        if signer is None:
            return False
        public_key_pem, der_signature = signer
        if public_key_hash(public_key_pem) != account.public_key_hash:
            return False
        return verify_signature(public_key_pem, der_signature, tx.get_signing_data())


@dataclass(frozen=True)
class BatchRecord:
    state_root: bytes
    tx_root: bytes
    timestamp: float
    verified: bool
    total_fees: int

    @classmethod
    def from_dict(cls, data: dict):
        """Creates a BatchRecord from its stored form."""
        return cls(
            state_root=bytes.fromhex(data["state_root"]),
            tx_root=bytes.fromhex(data["tx_root"]),
            timestamp=data["timestamp"],
            verified=data["verified"],
            total_fees=int(data["total_fees"]),
        )

    def to_dict(self):
        return {
            "state_root": self.state_root.hex(),
            "tx_root": self.tx_root.hex(),
            "timestamp": self.timestamp,
            "verified": self.verified,
            "total_fees": str(self.total_fees),
        }


@dataclass(frozen=True)
class TransferInstruction:
    """Value the hosting environment must send to an identity."""
    recipient: bytes
    amount: int
