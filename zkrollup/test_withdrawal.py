"""
Tests for proof-checked withdrawals.
"""
import unittest
import tempfile
import shutil
from zkrollup.config import RollupConfig
from zkrollup.db import DB, JournaledDB
from zkrollup.errors import NotAccountOwner, InvalidAccount, InvalidAmount, InsufficientBalance, InvalidProof
from zkrollup.ledger import AccountLedger
from zkrollup.merkle import account_leaf, verify_inclusion
from zkrollup.trie import SparseMerkleTree
from zkrollup.withdrawal import WithdrawalVerifier

ALICE = b'\xa1' * 20
BOB = b'\xb0' * 20
PKH = b'\x11' * 32


class TestWithdrawalVerifier(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.db = DB(self.test_dir)
        self.journal = JournaledDB(self.db)
        self.ledger = AccountLedger(self.journal)
        self.tree = SparseMerkleTree(self.journal, depth=16)
        self.verifier = WithdrawalVerifier(self.journal, self.ledger, self.tree, RollupConfig(tree_depth=16))

        self.alice = self.ledger.create_account(ALICE, PKH)
        self.bob = self.ledger.create_account(BOB, PKH)
        self.tree.fold_account_update(self.alice, self.ledger.credit(self.alice, 1000))
        self.tree.fold_account_update(self.bob, self.ledger.credit(self.bob, 50))

    def tearDown(self):
        self.db.close()
        shutil.rmtree(self.test_dir)

    def test_withdraw(self):
        proof = self.verifier.prove(self.alice)
        instruction = self.verifier.withdraw(ALICE, self.alice, 400, proof)

        self.assertEqual(instruction.recipient, ALICE)
        self.assertEqual(instruction.amount, 400)
        account = self.ledger.get(self.alice)
        self.assertEqual(account.balance, 600)
        self.assertEqual(account.nonce, 1)

    def test_root_refolded(self):
        root_before = self.tree.root_hash
        self.verifier.withdraw(ALICE, self.alice, 400, self.verifier.prove(self.alice))

        self.assertNotEqual(self.tree.root_hash, root_before)
        proof = self.tree.get_proof(self.alice)
        self.assertTrue(verify_inclusion(proof, self.tree.root_hash, account_leaf(600, 1), self.alice))

    def test_proof_survives_own_leaf_update(self):
        # siblings are unchanged, the leaf is rebuilt from the current account
        proof = self.verifier.prove(self.alice)
        self.verifier.withdraw(ALICE, self.alice, 100, proof)
        self.verifier.withdraw(ALICE, self.alice, 100, proof)

        account = self.ledger.get(self.alice)
        self.assertEqual(account.balance, 800)
        self.assertEqual(account.nonce, 2)

    def test_full_balance(self):
        self.verifier.withdraw(ALICE, self.alice, 1000, self.verifier.prove(self.alice))
        self.assertEqual(self.ledger.get(self.alice).balance, 0)

    def test_not_owner(self):
        with self.assertRaises(NotAccountOwner):
            self.verifier.withdraw(BOB, self.alice, 1, self.verifier.prove(self.alice))

    def test_invalid_account(self):
        with self.assertRaises(InvalidAccount):
            self.verifier.withdraw(ALICE, 3, 1, [])

    def test_insufficient_balance(self):
        with self.assertRaises(InsufficientBalance):
            self.verifier.withdraw(ALICE, self.alice, 1001, self.verifier.prove(self.alice))
        self.assertEqual(self.ledger.get(self.alice).balance, 1000)

    def test_invalid_amounts(self):
        proof = self.verifier.prove(self.alice)
        for amount in (0, -1, 2**128):
            with self.assertRaises(InvalidAmount):
                self.verifier.withdraw(ALICE, self.alice, amount, proof)

    def test_tampered_proof_rejected(self):
        proof = self.verifier.prove(self.alice)
        for level in range(len(proof)):
            tampered = list(proof)
            tampered[level] = bytes([tampered[level][0] ^ 0xff]) + tampered[level][1:]
            with self.assertRaises(InvalidProof):
                self.verifier.withdraw(ALICE, self.alice, 1, tampered)
        self.assertEqual(self.ledger.get(self.alice).balance, 1000)

    def test_proof_of_other_account_rejected(self):
        with self.assertRaises(InvalidProof):
            self.verifier.withdraw(ALICE, self.alice, 1, self.verifier.prove(self.bob))

    def test_truncated_proof_rejected(self):
        proof = self.verifier.prove(self.alice)
        with self.assertRaises(InvalidProof):
            self.verifier.withdraw(ALICE, self.alice, 1, proof[:-1])

    def test_malformed_proof_rejected(self):
        proof = self.verifier.prove(self.alice)
        for bad in (None, [p.hex() for p in proof], [0] * len(proof), b"".join(proof)):
            with self.assertRaises(InvalidProof):
                self.verifier.withdraw(ALICE, self.alice, 1, bad)
        self.assertEqual(self.ledger.get(self.alice).balance, 1000)

    def test_stale_proof_after_other_update(self):
        proof = self.verifier.prove(self.alice)
        self.tree.fold_account_update(self.bob, self.ledger.credit(self.bob, 1))
        with self.assertRaises(InvalidProof):
            self.verifier.withdraw(ALICE, self.alice, 1, proof)


if __name__ == '__main__':
    unittest.main()
