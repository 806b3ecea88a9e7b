"""Group records and synchronization payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class Group:
    """Persisted group record. ``name`` is unique and immutable."""

    name: str
    description: str
    tree_depth: int
    tag: str
    admin: str
    members: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "tree_depth": self.tree_depth,
            "tag": self.tag,
            "admin": self.admin,
            "members": list(self.members),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Group":
        return cls(
            name=payload["name"],
            description=payload.get("description", ""),
            tree_depth=int(payload["tree_depth"]),
            tag=payload.get("tag", ""),
            admin=payload["admin"],
            members=[str(m) for m in payload.get("members", [])],
        )

    def copy(self) -> "Group":
        return Group.from_dict(self.to_dict())


@dataclass(frozen=True)
class PendingUpdate:
    """A root change awaiting publication to the ledger."""

    group_id: int
    fingerprint: int


@dataclass(frozen=True)
class LedgerEvent:
    group_id: int
    fingerprint: int


@dataclass(frozen=True)
class LedgerReceipt:
    status: bool
    events: List[LedgerEvent] = field(default_factory=list)
