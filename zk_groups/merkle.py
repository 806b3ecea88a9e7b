"""
Incremental Merkle tree for group membership.

Fixed-depth binary tree whose leaves are identity commitments (integers in
the SNARK scalar field). Empty positions hold per-level zero values derived
from an optional group seed, so two empty trees of the same depth but
different groups have different roots.

Uses SHA-256 with domain separation for leaf/node hashing, reduced into the
scalar field.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .constants import (
    DOMAIN_SEPARATORS,
    SNARK_SCALAR_FIELD,
    is_valid_tree_depth,
)
from .exceptions import TreeFullError


def _to_bytes32(value: int) -> bytes:
    return value.to_bytes(32, "big")


def hash_leaf(value: int) -> int:
    """
    Hash a single field element (used for zero values).

    Args:
        value: Field element to hash

    Returns:
        Field element
    """
    digest = hashlib.sha256(
        DOMAIN_SEPARATORS["merkle_leaf"] + _to_bytes32(value)
    ).digest()
    return int.from_bytes(digest, "big") % SNARK_SCALAR_FIELD


def hash_node(left: int, right: int) -> int:
    """
    Hash two Merkle node values.

    Args:
        left: Left child value
        right: Right child value

    Returns:
        Parent value, reduced into the scalar field

    Note:
        Uses fixed left||right ordering (no sorting).
        Domain separation applied.
    """
    digest = hashlib.sha256(
        DOMAIN_SEPARATORS["merkle_node"] + _to_bytes32(left) + _to_bytes32(right)
    ).digest()
    return int.from_bytes(digest, "big") % SNARK_SCALAR_FIELD


def _require_field_element(value: int, name: str = "leaf") -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be an integer")
    if value < 0 or value >= SNARK_SCALAR_FIELD:
        raise ValueError(f"{name} must be in the snark scalar field")
    return value


@dataclass(frozen=True)
class MerkleProof:
    """Inclusion proof for one leaf."""

    root: int
    leaf: int
    siblings: List[int] = field(default_factory=list)
    # 0: the running node is the left child at that level, 1: right child
    path_indices: List[int] = field(default_factory=list)
    group_id: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "root": str(self.root),
            "leaf": str(self.leaf),
            "siblings": [str(s) for s in self.siblings],
            "pathIndices": list(self.path_indices),
            "groupId": None if self.group_id is None else str(self.group_id),
        }


def verify_proof(proof: MerkleProof) -> bool:
    """
    Recompute the root from a leaf and its authentication path.

    Args:
        proof: Proof produced by IncrementalMerkleTree.generate_merkle_proof

    Returns:
        True if the recomputed root matches proof.root
    """
    if len(proof.siblings) != len(proof.path_indices):
        return False

    node = proof.leaf
    for sibling, position in zip(proof.siblings, proof.path_indices):
        if position == 0:
            node = hash_node(node, sibling)
        else:
            node = hash_node(sibling, node)

    return node == proof.root


class IncrementalMerkleTree:
    """
    Append-only Merkle tree of fixed depth.

    Insertion order determines leaf index (first inserted = index 0).
    Capacity is 2**depth; inserting past capacity raises TreeFullError.

    Example:
        tree = IncrementalMerkleTree(20, group_id=group_id("voters"))
        tree.add_member(commitment)
        proof = tree.generate_merkle_proof(tree.index_of(commitment))
        assert verify_proof(proof)
    """

    def __init__(self, depth: int, group_id: Optional[int] = None) -> None:
        if not is_valid_tree_depth(depth):
            raise ValueError(f"Invalid tree depth: {depth!r}")

        self._depth = depth
        self._group_id = group_id

        zero = 0 if group_id is None else hash_leaf(
            _require_field_element(group_id, "group_id")
        )
        self._zeroes: List[int] = [zero]
        for _ in range(depth):
            zero = hash_node(zero, zero)
            self._zeroes.append(zero)

        # _nodes[0] are the leaves, _nodes[depth] holds the root once non-empty
        self._nodes: List[List[int]] = [[] for _ in range(depth + 1)]
        self._positions: Dict[int, int] = {}
        self._root = self._zeroes[depth]

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def group_id(self) -> Optional[int]:
        return self._group_id

    @property
    def capacity(self) -> int:
        return 2 ** self._depth

    @property
    def root(self) -> int:
        return self._root

    @property
    def leaves(self) -> List[int]:
        return list(self._nodes[0])

    @property
    def zero_value(self) -> int:
        return self._zeroes[0]

    def __len__(self) -> int:
        return len(self._nodes[0])

    def index_of(self, leaf: int) -> int:
        """Return the index of a leaf, or -1 if it is not in the tree."""
        return self._positions.get(leaf, -1)

    def add_member(self, leaf: int) -> None:
        leaf = _require_field_element(leaf)
        index = len(self._nodes[0])
        if index >= self.capacity:
            raise TreeFullError(
                f"Tree of depth {self._depth} is full ({self.capacity} leaves)"
            )

        self._nodes[0].append(leaf)
        self._positions.setdefault(leaf, index)

        node = leaf
        for level in range(self._depth):
            if index % 2 == 0:
                node = hash_node(node, self._zeroes[level])
            else:
                node = hash_node(self._nodes[level][index - 1], node)

            index //= 2
            parents = self._nodes[level + 1]
            if index < len(parents):
                parents[index] = node
            else:
                parents.append(node)

        self._root = node

    def add_members(self, leaves: Iterable[int]) -> None:
        for leaf in leaves:
            self.add_member(leaf)

    def generate_merkle_proof(self, index: int) -> MerkleProof:
        """
        Build the authentication path for the leaf at ``index``.

        Raises:
            ValueError: If the index is out of range
        """
        if index < 0 or index >= len(self._nodes[0]):
            raise ValueError(f"Leaf index {index} is out of range")

        leaf = self._nodes[0][index]
        siblings: List[int] = []
        path_indices: List[int] = []

        for level in range(self._depth):
            position = index % 2
            sibling_index = index + 1 if position == 0 else index - 1
            level_nodes = self._nodes[level]
            if sibling_index < len(level_nodes):
                siblings.append(level_nodes[sibling_index])
            else:
                siblings.append(self._zeroes[level])
            path_indices.append(position)
            index //= 2

        return MerkleProof(
            root=self._root,
            leaf=leaf,
            siblings=siblings,
            path_indices=path_indices,
            group_id=self._group_id,
        )
