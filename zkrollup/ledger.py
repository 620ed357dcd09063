"""
Account ledger: the index -> account table and the identity registry.
"""
import logging
from dataclasses import dataclass

import msgpack

from .errors import AccountExists, InvalidAccount, InvalidAmount, InsufficientBalance
from .utils.encoding import index_key, UINT256_MAX

logger = logging.getLogger(__name__)

ACCOUNT_PREFIX = b"ACCOUNT:"
INDEX_PREFIX = b"INDEX:"
OWNER_PREFIX = b"OWNER:"
TOTAL_ACCOUNTS_KEY = b"meta:total_accounts"


@dataclass
class Account:
    balance: int = 0
    nonce: int = 0
    public_key_hash: bytes = b'\x00' * 32

    @classmethod
    def from_dict(cls, data: dict) -> 'Account':
        return cls(
            balance=int(data['balance']),
            nonce=int(data['nonce']),
            public_key_hash=data['public_key_hash'],
        )

    def to_dict(self) -> dict:
        # uint256 values do not fit msgpack integers
        return {
            'balance': str(self.balance),
            'nonce': str(self.nonce),
            'public_key_hash': self.public_key_hash,
        }


class AccountLedger:
    """
    Owns account records and the identity <-> index mapping.

    Balance mutations here have no digest side effect; callers fold the
    changed account into the state tree themselves.
    """

    def __init__(self, db, capacity: int = None):
        """
        Args:
            db: Store holding the account tables
            capacity: Number of leaf positions in the state tree; index 0 is
                never assigned, so at most capacity - 1 accounts fit
        """
        self.db = db
        self.capacity = capacity

    @property
    def total_accounts(self) -> int:
        raw = self.db.get(TOTAL_ACCOUNTS_KEY)
        return msgpack.unpackb(raw) if raw else 0

    def create_account(self, owner: bytes, public_key_hash: bytes) -> int:
        """Register a new zero-balance account for an identity."""
        if not owner:
            raise InvalidAccount("Owner identity must not be empty")
        if not isinstance(public_key_hash, bytes) or len(public_key_hash) != 32:
            raise ValueError("public_key_hash must be 32 bytes")
        if self.index_of(owner):
            raise AccountExists(f"Account already exists for {owner.hex()}")

        index = self.total_accounts + 1
        if self.capacity is not None and index >= self.capacity:
            raise InvalidAccount(f"State tree is full ({self.capacity - 1} accounts)")
        self._set_account(index, Account(public_key_hash=public_key_hash))
        self.db.put(INDEX_PREFIX + owner, msgpack.packb(index))
        self.db.put(index_key(OWNER_PREFIX, index), owner)
        self.db.put(TOTAL_ACCOUNTS_KEY, msgpack.packb(index))
        return index

    def get(self, index: int) -> Account:
        self._check_index(index)
        raw = self.db.get(index_key(ACCOUNT_PREFIX, index))
        if raw is None:
            raise InvalidAccount(f"Account {index} has no record")
        return Account.from_dict(msgpack.unpackb(raw, raw=False))

    def exists(self, index: int) -> bool:
        return isinstance(index, int) and 0 < index <= self.total_accounts

    def credit(self, index: int, amount: int) -> Account:
        account = self.get(index)
        if account.balance + amount > UINT256_MAX:
            raise InvalidAmount(f"Credit of {amount} overflows account {index}")
        account.balance += amount
        self._set_account(index, account)
        return account

    def debit(self, index: int, amount: int) -> Account:
        account = self.get(index)
        if amount > account.balance:
            raise InsufficientBalance(
                f"Account {index} holds {account.balance}, needs {amount}"
            )
        account.balance -= amount
        self._set_account(index, account)
        return account

    def increment_nonce(self, index: int) -> Account:
        account = self.get(index)
        account.nonce += 1
        self._set_account(index, account)
        return account

    def index_of(self, owner: bytes) -> int:
        """Account index registered to an identity, or 0."""
        raw = self.db.get(INDEX_PREFIX + owner)
        return msgpack.unpackb(raw) if raw else 0

    def resolve_owner(self, index: int) -> bytes:
        """Identity that created an account."""
        self._check_index(index)
        owner = self.db.get(index_key(OWNER_PREFIX, index))
        if owner is None:
            raise InvalidAccount(f"Account {index} has no owner record")
        return owner

    def _set_account(self, index: int, account: Account):
        self.db.put(index_key(ACCOUNT_PREFIX, index), msgpack.packb(account.to_dict(), use_bin_type=True))

    def _check_index(self, index: int):
        if not self.exists(index):
            raise InvalidAccount(f"Invalid account index: {index}")
