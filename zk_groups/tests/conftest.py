"""Shared fixtures for zk_groups tests."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from zk_groups.invites import InviteBook
from zk_groups.ledger import InMemoryLedger
from zk_groups.registry import GroupRegistry
from zk_groups.store import InMemoryGroupStore
from zk_groups.sync import BatchPublisher, SyncQueue


@dataclass
class Harness:
    store: InMemoryGroupStore
    invites: InviteBook
    ledger: InMemoryLedger
    publisher: BatchPublisher
    registry: GroupRegistry


@pytest.fixture
async def make_harness(nursery):
    """Build an un-bootstrapped registry over in-memory collaborators."""

    def _make(store=None, delay: float = 60.0) -> Harness:
        store = store if store is not None else InMemoryGroupStore()
        invites = InviteBook()
        ledger = InMemoryLedger()
        publisher = BatchPublisher(SyncQueue(), ledger, nursery, delay=delay)
        registry = GroupRegistry(store, invites, publisher)
        return Harness(store, invites, ledger, publisher, registry)

    return _make


@pytest.fixture
async def harness(make_harness):
    h = make_harness()
    await h.registry.bootstrap()
    return h
