"""
Merkle commitments shared by batch transaction roots and account proofs.

Every root built here, and every root built by the indexed account tree in
trie.py, hashes a node pair as keccak(left || right). verify_inclusion() walks
a sibling path in the same order, so one verifier serves both.
"""
from typing import Sequence

from .crypto import generate_hash
from .errors import EmptyBatch
from .utils.encoding import encode_packed

HASH_SIZE = 32


def hash_pair(left: bytes, right: bytes) -> bytes:
    """Parent digest of two child digests."""
    return generate_hash(left + right)

def account_leaf(balance: int, nonce: int) -> bytes:
    """Leaf digest committing to an account's balance and nonce."""
    return generate_hash(encode_packed(balance, nonce))

def merkle_root(leaves: Sequence[bytes]) -> bytes:
    """
    Calculate the Merkle root of an ordered list of digests.

    An unpaired node at the end of a level is hashed with itself. This means
    [a, b, c] and [a, b, c, c] share a root; callers that need to tell them
    apart must commit to the leaf count separately.
    """
    if not leaves:
        raise EmptyBatch("Cannot build a Merkle root over zero leaves")

    level = list(leaves)
    while len(level) > 1:
        # Pad to even number
        if len(level) % 2 == 1:
            level.append(level[-1])
        level = [hash_pair(level[i], level[i + 1]) for i in range(0, len(level), 2)]
    return level[0]

def merkle_proof(leaves: Sequence[bytes], index: int) -> list[bytes]:
    """Sibling path, leaf to root, for leaves[index] in merkle_root(leaves)."""
    if not leaves:
        raise EmptyBatch("Cannot build a Merkle proof over zero leaves")
    if index < 0 or index >= len(leaves):
        raise IndexError(f"Leaf index {index} out of range for {len(leaves)} leaves")

    proof = []
    level = list(leaves)
    while len(level) > 1:
        if len(level) % 2 == 1:
            level.append(level[-1])
        proof.append(level[index ^ 1])
        level = [hash_pair(level[i], level[i + 1]) for i in range(0, len(level), 2)]
        index //= 2
    return proof

def verify_inclusion(proof: Sequence[bytes], root: bytes, leaf: bytes, index: int) -> bool:
    """
    Check that `leaf` sits at position `index` under `root`.

    The index must be addressable by the proof length; otherwise its high bits
    would be ignored and several indices would share one proof.
    """
    if not isinstance(proof, (list, tuple)) or not isinstance(index, int):
        return False
    if index < 0 or index >= 1 << len(proof):
        return False

    current = leaf
    for sibling in proof:
        if not isinstance(sibling, bytes) or len(sibling) != HASH_SIZE:
            return False
        if index % 2 == 0:
            current = hash_pair(current, sibling)
        else:
            current = hash_pair(sibling, current)
        index //= 2
    return current == root
