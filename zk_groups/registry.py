"""Group lifecycle, membership mutation and proof queries."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

import trio

from .cache import GroupCache
from .constants import MAX_TREE_DEPTH, MIN_TREE_DEPTH, is_valid_tree_depth
from .exceptions import (
    ConflictError,
    NotFoundError,
    NotMemberError,
    TreeFullError,
    UnauthorizedError,
    ValidationError,
)
from .identity import Commitment, format_commitment, group_id, parse_commitment
from .invites import InviteRedeemer
from .merkle import MerkleProof
from .models import Group
from .store import MerkleGroupStore
from .sync import BatchPublisher

logger = logging.getLogger("zk_groups.registry")


def _validate_depth(tree_depth: int) -> None:
    if not is_valid_tree_depth(tree_depth):
        raise ValidationError(
            f"Tree depth must be an integer between {MIN_TREE_DEPTH} and "
            f"{MAX_TREE_DEPTH}, got {tree_depth!r}"
        )


class GroupRegistry:
    """
    Public operation surface for groups.

    Every mutation writes the record store first and the cache second.
    Mutations of one group are serialized by a per-group lock; different
    groups proceed independently. Root changes are queued on the
    publisher's SyncQueue and published in the background.
    """

    def __init__(
        self,
        store: MerkleGroupStore,
        invites: InviteRedeemer,
        publisher: BatchPublisher,
        cache: Optional[GroupCache] = None,
    ) -> None:
        self._store = store
        self._invites = invites
        self._publisher = publisher
        self._cache = cache if cache is not None else GroupCache()
        self._locks: Dict[str, trio.Lock] = {}

    @property
    def cache(self) -> GroupCache:
        return self._cache

    @property
    def publisher(self) -> BatchPublisher:
        return self._publisher

    async def bootstrap(self) -> int:
        return await self._cache.bootstrap(self._store)

    @asynccontextmanager
    async def _group_lock(self, name: str) -> AsyncIterator[None]:
        """
        Serialize mutations of one group.

        Locks of names without a cached tree are dropped once released, so
        requests for unknown groups leave nothing behind.
        """
        lock = self._locks.setdefault(name, trio.Lock())
        try:
            async with lock:
                yield
        finally:
            if (
                name not in self._cache
                and not lock.locked()
                and self._locks.get(name) is lock
            ):
                del self._locks[name]

    async def create_group(
        self,
        name: str,
        description: str,
        tree_depth: int,
        tag: str,
        admin: str,
    ) -> Group:
        """
        Creates a new group.

        Args:
            name: Unique group name.
            description: Free-form description.
            tree_depth: Merkle tree depth (capacity 2**tree_depth).
            tag: Opaque classification string.
            admin: Admin username.

        Returns:
            Created group.
        """
        _validate_depth(tree_depth)
        self._cache.require_ready()

        async with self._group_lock(name):
            if await self._store.find_one_by(name) is not None:
                raise ConflictError(f"Group '{name}' already exists")

            group = await self._store.create(
                name=name,
                description=description,
                tree_depth=tree_depth,
                tag=tag,
                admin=admin,
                members=[],
            )

            self._cache.create_tree(name, tree_depth)

        logger.info("Group '%s' has been created", name)
        return group

    async def update_group(
        self,
        name: str,
        description: str,
        tree_depth: int,
        tag: str,
        admin: str,
    ) -> Group:
        """
        Updates some parameters of the group.

        The cached tree is not resized when the depth changes.

        Returns:
            Updated group.
        """
        _validate_depth(tree_depth)

        async with self._group_lock(name):
            group = await self.get_group(name)

            if group.admin != admin:
                raise UnauthorizedError(
                    f"You are not the admin of the group '{name}'"
                )

            if group.tree_depth != tree_depth and name in self._cache:
                logger.warning(
                    "Group '%s' depth changed from %d to %d; cached tree keeps depth %d",
                    name,
                    group.tree_depth,
                    tree_depth,
                    self._cache.depth_of(name),
                )

            group.description = description
            group.tree_depth = tree_depth
            group.tag = tag

            await self._store.save(group)

        logger.info("Group '%s' has been updated", name)
        return group

    async def add_member(
        self, name: str, member: Commitment, invite_code: str
    ) -> Group:
        """
        If a member does not exist in the group, they are added.

        The invite is redeemed before anything is written, so a rejected
        invite leaves both the record and the tree untouched.

        Args:
            name: Group name.
            member: Member's identity commitment.
            invite_code: One-time invite code scoped to the group.

        Returns:
            Group data with added member.
        """
        commitment = parse_commitment(member)

        async with self._group_lock(name):
            if self._cache.is_member(name, commitment):
                raise ConflictError(
                    f"Member '{member}' already exists in the group '{name}'"
                )

            if self._cache.is_full(name):
                raise TreeFullError(
                    f"Group '{name}' is full ({2 ** self._cache.depth_of(name)} members)"
                )

            await self._invites.redeem_invite(invite_code, name)

            group = await self.get_group(name)
            group.members.append(format_commitment(commitment))
            await self._store.save(group)

            self._cache.add_member(name, commitment)

            root = self._cache.root_of(name)
            self._publisher.queue.enqueue(group_id(name), root)

        logger.info("Member '%s' has been added to the group '%s'", member, name)

        self._publisher.schedule_publication()

        return group

    async def list_groups(self) -> List[Group]:
        return await self._store.find()

    async def list_groups_by_admin(self, admin: str) -> List[Group]:
        return await self._store.find_by(admin=admin)

    async def get_group(self, name: str) -> Group:
        group = await self._store.find_one_by(name)

        if group is None:
            raise NotFoundError(f"Group '{name}' does not exist")

        return group

    def is_member(self, name: str, member: Commitment) -> bool:
        return self._cache.is_member(name, parse_commitment(member))

    def generate_proof(self, name: str, member: Commitment) -> MerkleProof:
        """
        Generates a proof of membership.

        Raises:
            NotMemberError: If the member does not belong to the group
        """
        commitment = parse_commitment(member)

        if not self._cache.is_member(name, commitment):
            raise NotMemberError(
                f"Member '{member}' does not exist in the group '{name}'"
            )

        return self._cache.proof_for(name, commitment)

    def root_of(self, name: str) -> int:
        return self._cache.root_of(name)
