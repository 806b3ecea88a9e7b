"""Ledger clients that accept batched group root updates."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol, Sequence

import cbor2
import trio

from .exceptions import ValidationError
from .models import LedgerEvent, LedgerReceipt, PendingUpdate

logger = logging.getLogger("zk_groups.ledger")


class LedgerClient(Protocol):
    async def update_groups(self, batch: Sequence[PendingUpdate]) -> LedgerReceipt:
        ...


class InMemoryLedger:
    """
    Ledger contract emulation keeping the latest root per group id.

    One event is emitted per batch item whose fingerprint differs from the
    root the ledger holds at that point in the batch.
    """

    def __init__(self, roots: Optional[Dict[int, int]] = None) -> None:
        self.roots: Dict[int, int] = dict(roots or {})
        self.batches: List[List[PendingUpdate]] = []
        self._fail_next = 0

    def fail_next(self, count: int = 1) -> None:
        """Report failure for the next ``count`` submissions."""
        self._fail_next += count

    async def update_groups(self, batch: Sequence[PendingUpdate]) -> LedgerReceipt:
        items = list(batch)
        self.batches.append(items)

        if self._fail_next > 0:
            self._fail_next -= 1
            return LedgerReceipt(status=False, events=[])

        events: List[LedgerEvent] = []
        for update in items:
            if self.roots.get(update.group_id) == update.fingerprint:
                continue
            self.roots[update.group_id] = update.fingerprint
            events.append(LedgerEvent(update.group_id, update.fingerprint))

        await self._persist()
        return LedgerReceipt(status=True, events=events)

    async def _persist(self) -> None:
        pass


class CborFileLedger(InMemoryLedger):
    """InMemoryLedger whose roots survive restarts in a CBOR file."""

    def __init__(self, path: str) -> None:
        super().__init__()
        self._path = trio.Path(path)
        self._write_lock = trio.Lock()

    async def load(self) -> "CborFileLedger":
        if not await self._path.exists():
            return self
        try:
            payload = cbor2.loads(await self._path.read_bytes())
        except Exception as exc:
            raise ValidationError("ledger file is not valid CBOR") from exc
        if not isinstance(payload, dict):
            raise ValidationError("ledger file must be a CBOR map")
        self.roots = {int(k): int(v) for k, v in payload.items()}
        logger.info("Loaded %d group roots from %s", len(self.roots), self._path)
        return self

    async def _persist(self) -> None:
        # one writer at a time; concurrent writers share the .tmp sibling
        async with self._write_lock:
            await self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_name(self._path.name + ".tmp")
            await tmp.write_bytes(cbor2.dumps(self.roots))
            await tmp.replace(self._path)
