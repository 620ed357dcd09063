"""
Withdrawals proven against the committed state root.
"""
import logging
from typing import Sequence

from .config import RollupConfig
from .core import TransferInstruction
from .errors import NotAccountOwner, InvalidAmount, InsufficientBalance, InvalidProof
from .ledger import AccountLedger
from .merkle import account_leaf, verify_inclusion
from .trie import SparseMerkleTree

logger = logging.getLogger(__name__)


class WithdrawalVerifier:
    def __init__(self, db, ledger: AccountLedger, tree: SparseMerkleTree, config: RollupConfig = None):
        self.db = db
        self.ledger = ledger
        self.tree = tree
        self.config = config or RollupConfig()

    def prove(self, index: int) -> list[bytes]:
        """Current inclusion proof for an account's leaf."""
        self.ledger.get(index)
        return self.tree.get_proof(index)

    def withdraw(self, caller: bytes, index: int, amount: int, proof: Sequence[bytes]) -> TransferInstruction:
        """
        Debit an account after checking its claimed state against the root.

        The returned instruction tells the hosting environment what to pay
        out; the ledger has already been debited and re-folded by then.
        """
        owner = self.ledger.resolve_owner(index)
        if owner != caller:
            raise NotAccountOwner(f"Caller does not own account {index}")
        if not isinstance(amount, int) or amount <= 0 or amount > self.config.max_amount:
            raise InvalidAmount(f"Invalid withdrawal amount: {amount}")

        account = self.ledger.get(index)
        if account.balance < amount:
            raise InsufficientBalance(
                f"Account {index} holds {account.balance}, requested {amount}"
            )

        leaf = account_leaf(account.balance, account.nonce)
        if (not isinstance(proof, (list, tuple)) or len(proof) != self.tree.depth
                or not verify_inclusion(proof, self.tree.root_hash, leaf, index)):
            raise InvalidProof(f"Merkle proof does not match state root for account {index}")

        with self.db.atomic(), self.tree.rollback_on_error():
            self.ledger.debit(index, amount)
            account = self.ledger.increment_nonce(index)
            self.tree.fold_account_update(index, account)

        logger.info(f"Withdrawal of {amount} from account {index}")
        return TransferInstruction(recipient=owner, amount=amount)
