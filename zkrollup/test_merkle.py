"""
Tests for Merkle roots, sibling paths and inclusion verification.
"""
import unittest
from zkrollup.crypto import generate_hash
from zkrollup.errors import EmptyBatch
from zkrollup.merkle import hash_pair, account_leaf, merkle_root, merkle_proof, verify_inclusion
from zkrollup.utils.encoding import int_to_uint256


def leaves(n):
    return [generate_hash(bytes([i])) for i in range(n)]


class TestDigests(unittest.TestCase):
    def test_hash_pair_is_ordered(self):
        a, b = leaves(2)
        self.assertEqual(hash_pair(a, b), generate_hash(a + b))
        self.assertNotEqual(hash_pair(a, b), hash_pair(b, a))

    def test_account_leaf_packs_uint256_words(self):
        expected = generate_hash(int_to_uint256(5) + int_to_uint256(7))
        self.assertEqual(account_leaf(5, 7), expected)

    def test_account_leaf_distinguishes_fields(self):
        self.assertNotEqual(account_leaf(1, 0), account_leaf(0, 1))


class TestMerkleRoot(unittest.TestCase):
    def test_single_leaf_is_root(self):
        [leaf] = leaves(1)
        self.assertEqual(merkle_root([leaf]), leaf)

    def test_two_leaves(self):
        a, b = leaves(2)
        self.assertEqual(merkle_root([a, b]), hash_pair(a, b))

    def test_odd_level_duplicates_last_node(self):
        a, b, c = leaves(3)
        expected = hash_pair(hash_pair(a, b), hash_pair(c, c))
        self.assertEqual(merkle_root([a, b, c]), expected)

    def test_duplicate_rule_collides_with_explicit_duplicate(self):
        """Known weakness: [a, b, c] and [a, b, c, c] commit to the same root."""
        a, b, c = leaves(3)
        self.assertEqual(merkle_root([a, b, c]), merkle_root([a, b, c, c]))

    def test_deterministic(self):
        items = leaves(7)
        self.assertEqual(merkle_root(items), merkle_root(list(items)))

    def test_order_sensitive(self):
        items = leaves(5)
        swapped = [items[1], items[0]] + items[2:]
        self.assertNotEqual(merkle_root(items), merkle_root(swapped))

    def test_input_not_mutated(self):
        items = leaves(3)
        merkle_root(items)
        self.assertEqual(len(items), 3)

    def test_empty_rejected(self):
        with self.assertRaises(EmptyBatch):
            merkle_root([])


class TestInclusion(unittest.TestCase):
    def test_authentic_paths_verify(self):
        for n in (1, 2, 3, 5, 8, 13):
            items = leaves(n)
            root = merkle_root(items)
            for i, leaf in enumerate(items):
                proof = merkle_proof(items, i)
                self.assertTrue(verify_inclusion(proof, root, leaf, i), f"n={n} i={i}")

    def test_tampered_sibling_rejected(self):
        items = leaves(8)
        root = merkle_root(items)
        proof = merkle_proof(items, 3)
        for level in range(len(proof)):
            tampered = list(proof)
            tampered[level] = bytes([tampered[level][0] ^ 1]) + tampered[level][1:]
            self.assertFalse(verify_inclusion(tampered, root, items[3], 3))

    def test_mutated_leaf_rejected(self):
        items = leaves(4)
        root = merkle_root(items)
        self.assertFalse(verify_inclusion(merkle_proof(items, 2), root, items[1], 2))

    def test_wrong_index_rejected(self):
        items = leaves(4)
        root = merkle_root(items)
        proof = merkle_proof(items, 2)
        self.assertFalse(verify_inclusion(proof, root, items[2], 3))

    def test_index_beyond_proof_rejected(self):
        items = leaves(4)
        root = merkle_root(items)
        proof = merkle_proof(items, 1)
        self.assertFalse(verify_inclusion(proof, root, items[1], 1 + 4))
        self.assertFalse(verify_inclusion(proof, root, items[1], -1))

    def test_malformed_sibling_rejected(self):
        items = leaves(2)
        root = merkle_root(items)
        self.assertFalse(verify_inclusion([b'short'], root, items[0], 0))
        self.assertFalse(verify_inclusion(None, root, items[0], 0))
        self.assertFalse(verify_inclusion([items[1].hex()], root, items[0], 0))
        self.assertFalse(verify_inclusion([7], root, items[0], 0))

    def test_proof_index_out_of_range(self):
        with self.assertRaises(IndexError):
            merkle_proof(leaves(3), 3)


if __name__ == '__main__':
    unittest.main()
