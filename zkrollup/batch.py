"""
Batch processing: validate transfers, apply them, and commit the result.
"""
import time
import logging
from typing import Sequence

import msgpack

from .config import RollupConfig
from .core import Transaction, BatchRecord, ECDSASignatureVerifier
from .errors import (
    BatchTooLarge,
    EmptyBatch,
    InvalidAccount,
    InvalidAmount,
    InvalidNonce,
    InvalidSignature,
    InsufficientBalance,
    StateRootMismatch,
)
from .ledger import AccountLedger
from .merkle import merkle_root
from .trie import SparseMerkleTree
from .utils.encoding import index_key, UINT256_MAX

logger = logging.getLogger(__name__)

BATCH_PREFIX = b"BATCH:"
CURRENT_BATCH_KEY = b"meta:current_batch"


class BatchProcessor:
    """
    Applies ordered transfer batches to the ledger.

    A batch is accepted only if replaying its transactions on the current
    ledger reproduces the state root the submitter declared.
    """

    def __init__(self, db, ledger: AccountLedger, tree: SparseMerkleTree,
                 config: RollupConfig = None, verifier=None):
        self.db = db
        self.ledger = ledger
        self.tree = tree
        self.config = config or RollupConfig()
        self.verifier = verifier or ECDSASignatureVerifier()

    @property
    def current_batch(self) -> int:
        """Id the next accepted batch will receive."""
        raw = self.db.get(CURRENT_BATCH_KEY)
        return msgpack.unpackb(raw) if raw else 0

    def get_batch(self, batch_id: int) -> BatchRecord | None:
        if not isinstance(batch_id, int) or batch_id < 0:
            return None
        raw = self.db.get(index_key(BATCH_PREFIX, batch_id))
        if raw is None:
            return None
        return BatchRecord.from_dict(msgpack.unpackb(raw, raw=False))

    def submit_batch(self, transactions: Sequence[Transaction], new_state_root: bytes) -> tuple[int, BatchRecord]:
        """Validate, apply and record a batch. Returns (batch_id, record)."""
        with self.db.atomic(), self.tree.rollback_on_error():
            tx_root, total_fees, computed_root = self._apply(transactions)

            if computed_root != new_state_root:
                raise StateRootMismatch(
                    f"State root mismatch. Expected: {computed_root.hex()}, "
                    f"Got: {new_state_root.hex() if isinstance(new_state_root, bytes) else new_state_root!r}"
                )

            batch_id = self.current_batch
            record = BatchRecord(
                state_root=computed_root,
                tx_root=tx_root,
                timestamp=time.time(),
                # TODO: gate on an independent validity proof once one exists
                verified=True,
                total_fees=total_fees,
            )
            self.db.put(index_key(BATCH_PREFIX, batch_id), msgpack.packb(record.to_dict(), use_bin_type=True))
            self.db.put(CURRENT_BATCH_KEY, msgpack.packb(batch_id + 1))

        logger.info(
            f"Batch {batch_id} applied: {len(transactions)} txs, "
            f"fees={total_fees}, root={computed_root.hex()[:16]}"
        )
        return batch_id, record

    def compute_state_root(self, transactions: Sequence[Transaction]) -> bytes:
        """The root a batch must declare; leaves the ledger untouched."""
        saved_root = self.tree.root_hash
        with self.db.dry_run():
            try:
                _, _, root = self._apply(transactions)
            finally:
                self.tree.root_hash = saved_root
        return root

    def _apply(self, transactions: Sequence[Transaction]) -> tuple[bytes, int, bytes]:
        if len(transactions) > self.config.batch_size:
            raise BatchTooLarge(
                f"Batch too large: {len(transactions)} > {self.config.batch_size}"
            )
        if not transactions:
            raise EmptyBatch("Batch contains no transactions")

        for position, tx in enumerate(transactions):
            is_valid, error = tx.validate_basic()
            if not is_valid:
                raise InvalidAmount(f"Transaction {position}: {error}")

        tx_root = merkle_root([tx.hash for tx in transactions])

        total_fees = 0
        for position, tx in enumerate(transactions):
            self._apply_transaction(position, tx)
            total_fees += tx.fee
        if total_fees > UINT256_MAX:
            raise InvalidAmount("Total batch fees overflow uint256")

        return tx_root, total_fees, self.tree.root_hash

    def _apply_transaction(self, position: int, tx: Transaction):
        if not self.ledger.exists(tx.from_index):
            raise InvalidAccount(f"Transaction {position}: invalid sender {tx.from_index}")
        if not self.ledger.exists(tx.to_index):
            raise InvalidAccount(f"Transaction {position}: invalid recipient {tx.to_index}")
        if tx.amount == 0 or tx.amount > self.config.max_amount:
            raise InvalidAmount(f"Transaction {position}: invalid amount {tx.amount}")
        if tx.fee > self.config.max_amount:
            raise InvalidAmount(f"Transaction {position}: invalid fee {tx.fee}")

        sender = self.ledger.get(tx.from_index)
        if tx.nonce != sender.nonce:
            raise InvalidNonce(
                f"Transaction {position}: invalid nonce. Expected {sender.nonce}, got {tx.nonce}"
            )
        if not self.verifier.verify(tx, sender):
            raise InvalidSignature(f"Transaction {position}: invalid signature")
        if sender.balance < tx.amount + tx.fee:
            raise InsufficientBalance(
                f"Transaction {position}: account {tx.from_index} holds {sender.balance}, "
                f"needs {tx.amount + tx.fee}"
            )

        self.ledger.debit(tx.from_index, tx.amount + tx.fee)
        sender = self.ledger.increment_nonce(tx.from_index)
        self.tree.fold_account_update(tx.from_index, sender)

        recipient = self.ledger.credit(tx.to_index, tx.amount)
        self.tree.fold_account_update(tx.to_index, recipient)
