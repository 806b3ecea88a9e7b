"""Tests for the group cache lifecycle"""

import pytest
import trio
import trio.testing

from zk_groups.cache import GroupCache
from zk_groups.exceptions import ConflictError, NotFoundError, NotReadyError
from zk_groups.models import Group
from zk_groups.store import InMemoryGroupStore


@pytest.mark.trio
async def test_wait_ready_released_by_bootstrap(nursery):
    cache = GroupCache()
    store = InMemoryGroupStore([Group("voters", "", 4, "", "alice", ["1"])])
    released = trio.Event()

    async def _query():
        await cache.wait_ready()
        assert cache.is_member("voters", 1)
        released.set()

    nursery.start_soon(_query)
    await trio.testing.wait_all_tasks_blocked()

    assert not released.is_set()
    with pytest.raises(NotReadyError):
        cache.root_of("voters")

    await cache.bootstrap(store)
    with trio.fail_after(1):
        await released.wait()


@pytest.mark.trio
async def test_create_tree_and_capacity():
    cache = GroupCache()
    await cache.bootstrap(InMemoryGroupStore())

    cache.create_tree("pair", 1)
    with pytest.raises(ConflictError):
        cache.create_tree("pair", 1)

    cache.add_member("pair", 1)
    assert not cache.is_full("pair")
    cache.add_member("pair", 2)
    assert cache.is_full("pair")

    with pytest.raises(ConflictError):
        cache.add_member("pair", 2)
    with pytest.raises(NotFoundError):
        cache.is_full("ghost")
