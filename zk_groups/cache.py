"""In-memory forest of per-group Merkle trees."""

from __future__ import annotations

import logging
from typing import Dict, List

import trio

from .exceptions import ConflictError, NotFoundError, NotMemberError, NotReadyError
from .identity import group_id, parse_commitment
from .merkle import IncrementalMerkleTree, MerkleProof
from .store import MerkleGroupStore

logger = logging.getLogger("zk_groups.cache")


class GroupCache:
    """
    Owns one IncrementalMerkleTree per group name.

    The cache mirrors the record store: ``bootstrap`` rebuilds every tree
    from persisted members, and afterwards trees change only through
    ``create_tree`` and ``add_member``. Until bootstrap has completed every
    operation raises NotReadyError; use ``wait_ready`` to block instead.
    """

    def __init__(self) -> None:
        self._trees: Dict[str, IncrementalMerkleTree] = {}
        self._ready = trio.Event()

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    async def wait_ready(self) -> None:
        await self._ready.wait()

    def __contains__(self, name: str) -> bool:
        return name in self._trees

    def __len__(self) -> int:
        return len(self._trees)

    def names(self) -> List[str]:
        return list(self._trees)

    async def bootstrap(self, store: MerkleGroupStore) -> int:
        """
        Rebuild every tree from the store.

        Idempotent: the map is replaced wholesale, so a cache left stale by
        a crash between a store write and a cache write is healed.

        Returns:
            Number of cached groups
        """
        groups = await store.find()

        trees: Dict[str, IncrementalMerkleTree] = {}
        for group in groups:
            tree = IncrementalMerkleTree(group.tree_depth, group_id=group_id(group.name))
            tree.add_members(parse_commitment(member) for member in group.members)
            trees[group.name] = tree

        self._trees = trees
        self._ready.set()

        logger.info("%d groups have been cached", len(groups))
        return len(groups)

    def require_ready(self) -> None:
        if not self._ready.is_set():
            raise NotReadyError("Group cache has not been bootstrapped yet")

    def _tree(self, name: str) -> IncrementalMerkleTree:
        self.require_ready()
        tree = self._trees.get(name)
        if tree is None:
            raise NotFoundError(f"Group '{name}' does not exist")
        return tree

    def create_tree(self, name: str, depth: int) -> IncrementalMerkleTree:
        self.require_ready()
        if name in self._trees:
            raise ConflictError(f"Group '{name}' already has a cached tree")

        tree = IncrementalMerkleTree(depth, group_id=group_id(name))
        self._trees[name] = tree
        return tree

    def depth_of(self, name: str) -> int:
        return self._tree(name).depth

    def is_member(self, name: str, leaf: int) -> bool:
        return self._tree(name).index_of(leaf) != -1

    def add_member(self, name: str, leaf: int) -> None:
        tree = self._tree(name)
        if tree.index_of(leaf) != -1:
            raise ConflictError(f"Member '{leaf}' already exists in the group '{name}'")
        tree.add_member(leaf)

    def proof_for(self, name: str, leaf: int) -> MerkleProof:
        tree = self._tree(name)
        index = tree.index_of(leaf)
        if index == -1:
            raise NotMemberError(f"Member '{leaf}' does not exist in the group '{name}'")
        return tree.generate_merkle_proof(index)

    def root_of(self, name: str) -> int:
        return self._tree(name).root

    def size_of(self, name: str) -> int:
        return len(self._tree(name))

    def leaves_of(self, name: str) -> List[int]:
        return self._tree(name).leaves

    def is_full(self, name: str) -> bool:
        tree = self._tree(name)
        return len(tree) >= tree.capacity
