"""
A fixed-depth indexed sparse Merkle tree over account leaves.
"""
import logging
from contextlib import contextmanager
from functools import lru_cache

import rlp

from .config import TREE_DEPTH
from .merkle import hash_pair, account_leaf

logger = logging.getLogger(__name__)

EMPTY_LEAF = b'\x00' * 32


@lru_cache(maxsize=None)
def empty_subtree_hashes(depth: int) -> tuple[bytes, ...]:
    """Digest of an all-empty subtree at each height 0..depth."""
    hashes = [EMPTY_LEAF]
    for _ in range(depth):
        hashes.append(hash_pair(hashes[-1], hashes[-1]))
    return tuple(hashes)


class SparseMerkleTree:
    """
    Leaf position i holds the commitment of account index i.

    Internal nodes are content addressed: a node's key in the store is its own
    digest and its value is rlp([left, right]). Stale nodes are never deleted,
    so any earlier root_hash can be reopened against the same store.
    """

    def __init__(self, db, depth: int = TREE_DEPTH, root_hash: bytes = None):
        self.db = db
        self.depth = depth
        self._empty = empty_subtree_hashes(depth)
        self.root_hash = root_hash or self._empty[depth]

    @property
    def empty_root(self) -> bytes:
        return self._empty[self.depth]

    @property
    def capacity(self) -> int:
        return 1 << self.depth

    def get(self, index: int) -> bytes:
        """Get the leaf digest at an index."""
        self._check_index(index)
        node_hash = self.root_hash
        for height in range(self.depth, 0, -1):
            left, right = self._children(node_hash, height)
            node_hash = right if self._bit(index, height) else left
        return node_hash

    def set(self, index: int, leaf: bytes) -> bytes:
        """Replace the leaf at an index, returning the new root hash."""
        self._check_index(index)
        if len(leaf) != 32:
            raise ValueError(f"Leaf must be 32 bytes, got {len(leaf)}")
        self.root_hash = self._set(self.root_hash, self.depth, index, leaf)
        return self.root_hash

    def fold_account_update(self, index: int, account) -> bytes:
        """Fold an account's current balance and nonce into the root."""
        root = self.set(index, account_leaf(account.balance, account.nonce))
        logger.debug(f"Folded account {index} into root {root.hex()[:16]}")
        return root

    def get_proof(self, index: int) -> list[bytes]:
        """Sibling digests for an index, ordered from leaf to root."""
        self._check_index(index)
        siblings = []
        node_hash = self.root_hash
        for height in range(self.depth, 0, -1):
            left, right = self._children(node_hash, height)
            if self._bit(index, height):
                siblings.append(left)
                node_hash = right
            else:
                siblings.append(right)
                node_hash = left
        siblings.reverse()
        return siblings

    @contextmanager
    def rollback_on_error(self):
        """Restore the root hash if the block raises."""
        saved = self.root_hash
        try:
            yield self
        except Exception:
            self.root_hash = saved
            raise

    def _set(self, node_hash: bytes, height: int, index: int, leaf: bytes) -> bytes:
        if height == 0:
            return leaf
        left, right = self._children(node_hash, height)
        if self._bit(index, height):
            right = self._set(right, height - 1, index, leaf)
        else:
            left = self._set(left, height - 1, index, leaf)
        return self._put_node(left, right, height)

    def _children(self, node_hash: bytes, height: int) -> tuple[bytes, bytes]:
        if node_hash == self._empty[height]:
            empty_child = self._empty[height - 1]
            return empty_child, empty_child

        node_data = self.db.get(node_hash)
        if not node_data:
            raise KeyError(f"Missing tree node {node_hash.hex()} at height {height}")

        node = rlp.decode(node_data)
        if len(node) != 2:
            raise ValueError(f"Invalid node structure: {len(node)} elements")
        return node[0], node[1]

    def _put_node(self, left: bytes, right: bytes, height: int) -> bytes:
        node_hash = hash_pair(left, right)
        if node_hash != self._empty[height]:
            self.db.put(node_hash, rlp.encode([left, right]))
        return node_hash

    def _bit(self, index: int, height: int) -> int:
        return (index >> (height - 1)) & 1

    def _check_index(self, index: int):
        if not isinstance(index, int) or index < 0 or index >= self.capacity:
            raise IndexError(f"Leaf index {index} outside tree of depth {self.depth}")
