"""
Rollup controller: the externally callable surface of the ledger.

Each operation runs alone under a non-reentrant guard. Writes go to a
journal over the persistent store and are flushed in one write batch when
the operation succeeds; any exception discards them and restores the root.
"""
import time
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Optional, Sequence

import msgpack

from .batch import BatchProcessor
from .config import Config
from .core import Transaction, BatchRecord, TransferInstruction
from .db import DB, JournaledDB
from .errors import (
    ContractPaused,
    InvalidAccount,
    InvalidAmount,
    NotOwner,
    NotPaused,
    ReentrantCall,
)
from .ledger import Account, AccountLedger
from .monitoring import Monitor
from .trie import SparseMerkleTree
from .withdrawal import WithdrawalVerifier

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

OWNER_KEY = b"meta:owner"
PAUSED_KEY = b"meta:paused"
STATE_ROOT_KEY = b"meta:state_root"
TREE_DEPTH_KEY = b"meta:tree_depth"


class RollupController:
    def __init__(self, db_path: str = None, db: DB = None, owner: bytes = None,
                 config: Config = None, verifier=None,
                 payout: Optional[Callable[[bytes, int], None]] = None):
        """
        Open (or initialise) a rollup.

        Args:
            db_path: LevelDB directory to open
            db: An already opened DB, used instead of db_path
            owner: Owner identity; required when the store is new
            config: Limits, storage and monitoring settings
            verifier: Transaction signature verifier (ECDSA by default)
            payout: Hosting-environment value transfer, called as
                payout(recipient, amount); raising aborts the withdrawal
        """
        self.config = config or Config.default()
        if db:
            self.db = db
            self._owns_db = False
        elif db_path:
            self.db = DB(
                db_path,
                write_buffer_size=self.config.database.write_buffer_size,
                max_open_files=self.config.database.max_open_files,
                compression=self.config.database.compression,
            )
            self._owns_db = True
        else:
            raise ValueError("Either db_path or a DB object must be provided.")

        self.journal = JournaledDB(self.db)
        self.payout = payout
        self._guard = threading.Lock()

        depth = self.config.rollup.tree_depth
        stored_depth = self.journal.get(TREE_DEPTH_KEY)
        if stored_depth is not None and msgpack.unpackb(stored_depth) != depth:
            if self._owns_db:
                self.db.close()
            raise ValueError(
                f"Store was created with tree depth {msgpack.unpackb(stored_depth)}, config has {depth}"
            )

        self.tree = SparseMerkleTree(self.journal, depth=depth, root_hash=self.journal.get(STATE_ROOT_KEY))
        self.ledger = AccountLedger(self.journal, capacity=self.tree.capacity)
        self.batch_processor = BatchProcessor(self.journal, self.ledger, self.tree, self.config.rollup, verifier)
        self.withdrawal_verifier = WithdrawalVerifier(self.journal, self.ledger, self.tree, self.config.rollup)

        if self.journal.get(OWNER_KEY) is None:
            if not owner:
                raise ValueError("An owner identity is required to initialise a new rollup")
            self.journal.put(OWNER_KEY, owner)
            self.journal.put(PAUSED_KEY, msgpack.packb(False))
            self.journal.put(STATE_ROOT_KEY, self.tree.root_hash)
            self.journal.put(TREE_DEPTH_KEY, msgpack.packb(depth))
            self.journal.commit()
            logger.info(f"Rollup initialised with owner {owner.hex()}")

        self.monitor = Monitor(self, host=self.config.monitoring.host, port=self.config.monitoring.port)
        if self.config.monitoring.enabled:
            self.monitor.start_server()

    # ==========================================================================
    # OPERATION SCOPE
    # ==========================================================================

    @contextmanager
    def _operation(self, name: str, require_active: bool = True):
        if not self._guard.acquire(blocking=False):
            raise ReentrantCall(f"{name} called while another operation is in progress")
        saved_root = self.tree.root_hash
        try:
            if require_active and self.paused:
                raise ContractPaused(f"{name} not allowed while paused")
            yield
            self.journal.put(STATE_ROOT_KEY, self.tree.root_hash)
            self.journal.commit()
        except Exception as e:
            self.journal.discard()
            self.tree.root_hash = saved_root
            logger.warning(f"{name} rejected: {e}")
            self.monitor.record_operation(name, "failed")
            raise
        else:
            self.monitor.record_operation(name, "success")
            self.monitor.update()
        finally:
            self._guard.release()

    def _require_owner(self, caller: bytes):
        if caller != self.owner:
            raise NotOwner("Caller is not the owner")

    # ==========================================================================
    # ACCOUNT OPERATIONS
    # ==========================================================================

    def create_account(self, caller: bytes, public_key_hash: bytes) -> int:
        with self._operation("create_account"):
            index = self.ledger.create_account(caller, public_key_hash)
            self.tree.fold_account_update(index, self.ledger.get(index))
        logger.info(f"Account {index} created for {caller.hex()}")
        return index

    def deposit(self, index: int, amount: int):
        """Credit value received from the hosting environment to an account."""
        with self._operation("deposit"):
            if not self.ledger.exists(index):
                raise InvalidAccount(f"Invalid account index: {index}")
            if not isinstance(amount, int) or amount <= 0 or amount > self.config.rollup.max_amount:
                raise InvalidAmount(f"Invalid deposit amount: {amount}")
            account = self.ledger.credit(index, amount)
            self.tree.fold_account_update(index, account)
        logger.info(f"Deposit of {amount} to account {index}")

    def submit_batch(self, caller: bytes, transactions: Sequence[Transaction], new_state_root: bytes) -> int:
        start = time.time()
        with self._operation("submit_batch"):
            self._require_owner(caller)
            batch_id, _ = self.batch_processor.submit_batch(transactions, new_state_root)
        self.monitor.record_batch(len(transactions), time.time() - start)
        return batch_id

    def withdraw(self, caller: bytes, index: int, amount: int, proof: Sequence[bytes]) -> TransferInstruction:
        """
        Withdraw to the account owner.

        The ledger is debited and re-folded before the payout runs, and the
        guard is still held, so a payout that calls back in is rejected.
        A failing payout rolls the whole withdrawal back.
        """
        with self._operation("withdraw"):
            instruction = self.withdrawal_verifier.withdraw(caller, index, amount, proof)
            if self.payout is not None:
                self.payout(instruction.recipient, instruction.amount)
        return instruction

    # ==========================================================================
    # ADMINISTRATION
    # ==========================================================================

    def pause(self, caller: bytes):
        with self._operation("pause", require_active=False):
            self._require_owner(caller)
            if self.paused:
                raise ContractPaused("Rollup is already paused")
            self.journal.put(PAUSED_KEY, msgpack.packb(True))
        logger.info(f"Rollup paused by {caller.hex()}")

    def unpause(self, caller: bytes):
        with self._operation("unpause", require_active=False):
            self._require_owner(caller)
            if not self.paused:
                raise NotPaused("Rollup is not paused")
            self.journal.put(PAUSED_KEY, msgpack.packb(False))
        logger.info(f"Rollup unpaused by {caller.hex()}")

    def transfer_ownership(self, caller: bytes, new_owner: bytes):
        with self._operation("transfer_ownership", require_active=False):
            self._require_owner(caller)
            if not new_owner or not any(new_owner):
                raise InvalidAccount("New owner is the null identity")
            self.journal.put(OWNER_KEY, new_owner)
        logger.info(f"Ownership transferred from {caller.hex()} to {new_owner.hex()}")

    # ==========================================================================
    # QUERIES
    # ==========================================================================

    def accounts(self, index: int) -> Account:
        return self.ledger.get(index)

    def account_indices(self, identity: bytes) -> int:
        return self.ledger.index_of(identity)

    def batches(self, batch_id: int) -> BatchRecord | None:
        return self.batch_processor.get_batch(batch_id)

    def get_proof(self, index: int) -> list[bytes]:
        return self.withdrawal_verifier.prove(index)

    def compute_state_root(self, transactions: Sequence[Transaction]) -> bytes:
        return self.batch_processor.compute_state_root(transactions)

    @property
    def total_accounts(self) -> int:
        return self.ledger.total_accounts

    @property
    def current_batch(self) -> int:
        return self.batch_processor.current_batch

    @property
    def current_state_root(self) -> bytes:
        return self.tree.root_hash

    @property
    def paused(self) -> bool:
        raw = self.journal.get(PAUSED_KEY)
        return bool(msgpack.unpackb(raw)) if raw else False

    @property
    def owner(self) -> bytes:
        return self.journal.get(OWNER_KEY)

    def close(self):
        self.monitor.stop_server()
        if self._owns_db:
            self.db.close()
