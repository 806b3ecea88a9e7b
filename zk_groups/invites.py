"""One-time invite redemption."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

import cbor2
import trio

from .exceptions import InviteRejectedError, ValidationError

logger = logging.getLogger("zk_groups.invites")


class InviteRedeemer(Protocol):
    async def redeem_invite(self, code: str, group_name: str) -> None:
        """Consume ``code`` for ``group_name`` or raise InviteRejectedError."""
        ...


class InviteBook:
    """
    Invite codes scoped to a group, each redeemable once.

    Codes are seeded with ``add``; issuing and distributing them is the
    caller's concern. With a ``path`` the book is kept in a CBOR file.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self._path = trio.Path(path) if path is not None else None
        self._write_lock = trio.Lock()
        # code -> {"group": name, "redeemed": bool}
        self._invites: Dict[str, Dict[str, object]] = {}

    def __contains__(self, code: str) -> bool:
        return code in self._invites

    def is_redeemed(self, code: str) -> bool:
        invite = self._invites.get(code)
        return bool(invite and invite["redeemed"])

    async def load(self) -> "InviteBook":
        if self._path is None or not await self._path.exists():
            return self
        try:
            payload = cbor2.loads(await self._path.read_bytes())
        except Exception as exc:
            raise ValidationError("invite book is not valid CBOR") from exc
        if not isinstance(payload, dict):
            raise ValidationError("invite book must be a CBOR map")
        self._invites = payload
        return self

    async def add(self, code: str, group_name: str) -> None:
        if code in self._invites:
            raise ValidationError(f"Invite '{code}' already exists")
        self._invites[code] = {"group": group_name, "redeemed": False}
        await self._persist()

    async def redeem_invite(self, code: str, group_name: str) -> None:
        invite = self._invites.get(code)

        if invite is None:
            raise InviteRejectedError(f"Invite '{code}' does not exist")
        if invite["redeemed"]:
            raise InviteRejectedError(f"Invite '{code}' has already been redeemed")
        if invite["group"] != group_name:
            raise InviteRejectedError(
                f"Invite '{code}' is not valid for group '{group_name}'"
            )

        invite["redeemed"] = True
        await self._persist()
        logger.info("Invite '%s' has been redeemed for group '%s'", code, group_name)

    async def _persist(self) -> None:
        if self._path is None:
            return
        # one writer at a time; concurrent writers share the .tmp sibling
        async with self._write_lock:
            await self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_name(self._path.name + ".tmp")
            await tmp.write_bytes(cbor2.dumps(self._invites))
            await tmp.replace(self._path)
