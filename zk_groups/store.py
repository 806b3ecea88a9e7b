"""Durable group record stores."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

import cbor2
import trio

from .exceptions import ConflictError, NotFoundError, ValidationError
from .models import Group

logger = logging.getLogger("zk_groups.store")

STORE_FORMAT_VERSION = 1


class MerkleGroupStore(Protocol):
    async def find(self) -> List[Group]:
        ...

    async def find_one_by(self, name: str) -> Optional[Group]:
        ...

    async def find_by(self, **criteria: Any) -> List[Group]:
        ...

    async def create(self, **fields: Any) -> Group:
        ...

    async def save(self, group: Group) -> Group:
        ...


class InMemoryGroupStore:
    """
    Group records keyed by name.

    Records are copied on the way in and out, so callers can only change
    persisted state through ``create`` and ``save``.
    """

    def __init__(self, groups: Optional[List[Group]] = None) -> None:
        self._groups: Dict[str, Group] = {}
        for group in groups or []:
            self._groups[group.name] = group.copy()

    def __len__(self) -> int:
        return len(self._groups)

    async def find(self) -> List[Group]:
        return [group.copy() for group in self._groups.values()]

    async def find_one_by(self, name: str) -> Optional[Group]:
        group = self._groups.get(name)
        return group.copy() if group is not None else None

    async def find_by(self, **criteria: Any) -> List[Group]:
        return [
            group.copy()
            for group in self._groups.values()
            if all(getattr(group, key) == value for key, value in criteria.items())
        ]

    async def create(self, **fields: Any) -> Group:
        group = Group(**fields)
        if group.name in self._groups:
            raise ConflictError(f"Group '{group.name}' already exists")
        self._groups[group.name] = group.copy()
        await self._persist()
        return group

    async def save(self, group: Group) -> Group:
        if group.name not in self._groups:
            raise NotFoundError(f"Group '{group.name}' does not exist")
        self._groups[group.name] = group.copy()
        await self._persist()
        return group

    async def _persist(self) -> None:
        pass


def encode_store(groups: List[Group]) -> bytes:
    return cbor2.dumps(
        {
            "version": STORE_FORMAT_VERSION,
            "groups": [group.to_dict() for group in groups],
        }
    )


def decode_store(blob: bytes) -> List[Group]:
    try:
        payload = cbor2.loads(blob)
    except Exception as exc:
        raise ValidationError("group store is not valid CBOR") from exc

    if not isinstance(payload, dict):
        raise ValidationError("group store must be a CBOR map")
    if payload.get("version") != STORE_FORMAT_VERSION:
        raise ValidationError(
            f"unsupported group store version: {payload.get('version')!r}"
        )

    groups = payload.get("groups", [])
    if not isinstance(groups, list):
        raise ValidationError("groups must be a list")
    try:
        return [Group.from_dict(entry) for entry in groups]
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(f"invalid group record: {exc}") from exc


class CborFileGroupStore(InMemoryGroupStore):
    """
    Group store persisted as a single CBOR document.

    Every write rewrites the whole file through a temporary sibling and an
    atomic rename.
    """

    def __init__(self, path: str) -> None:
        super().__init__()
        self._path = trio.Path(path)
        self._write_lock = trio.Lock()

    @property
    def path(self) -> str:
        return str(self._path)

    async def load(self) -> "CborFileGroupStore":
        if not await self._path.exists():
            logger.info("Group store %s does not exist yet, starting empty", self._path)
            return self

        groups = decode_store(await self._path.read_bytes())
        self._groups = {group.name: group for group in groups}
        logger.info("Loaded %d groups from %s", len(groups), self._path)
        return self

    async def _persist(self) -> None:
        # one writer at a time; concurrent writers share the .tmp sibling
        async with self._write_lock:
            await self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_name(self._path.name + ".tmp")
            await tmp.write_bytes(encode_store(list(self._groups.values())))
            await tmp.replace(self._path)
