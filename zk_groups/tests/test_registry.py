"""Tests for group lifecycle, membership and proofs"""

import pytest
import trio

from zk_groups.exceptions import (
    ConflictError,
    InviteRejectedError,
    NotFoundError,
    NotMemberError,
    NotReadyError,
    TreeFullError,
    UnauthorizedError,
    ValidationError,
)
from zk_groups.identity import group_id, parse_commitment
from zk_groups.merkle import IncrementalMerkleTree, verify_proof
from zk_groups.models import Group
from zk_groups.store import CborFileGroupStore, InMemoryGroupStore


async def _voters(harness, depth=4):
    return await harness.registry.create_group(
        "voters", "Eligible voters", depth, "poll", "alice"
    )


@pytest.mark.trio
async def test_voters_scenario(harness):
    registry = harness.registry
    await _voters(harness)
    await harness.invites.add("inv-1", "voters")
    await harness.invites.add("inv-2", "voters")

    group = await registry.add_member("voters", "0xab01", "inv-1")

    assert group.members == [str(0xAB01)]
    assert registry.is_member("voters", "0xab01")
    assert [g.name for g in await registry.list_groups_by_admin("alice")] == ["voters"]

    with pytest.raises(ConflictError):
        await registry.add_member("voters", "0xab01", "inv-2")
    assert len((await registry.get_group("voters")).members) == 1
    # membership is checked before the invite is consumed
    assert not harness.invites.is_redeemed("inv-2")

    with pytest.raises(UnauthorizedError):
        await registry.update_group("voters", "hijacked", 4, "x", "bob")


@pytest.mark.trio
async def test_proof_matches_root(harness):
    registry = harness.registry
    await _voters(harness)
    for i, member in enumerate([101, 202, 303]):
        await harness.invites.add(f"c{i}", "voters")
        await registry.add_member("voters", member, f"c{i}")

    for member in [101, 202, 303]:
        proof = registry.generate_proof("voters", member)
        assert proof.leaf == member
        assert proof.root == registry.root_of("voters")
        assert proof.group_id == group_id("voters")
        assert verify_proof(proof)


@pytest.mark.trio
async def test_invite_failure_leaves_state_untouched(harness):
    registry = harness.registry
    await _voters(harness)
    await registry.create_group("other", "", 4, "", "alice")
    await harness.invites.add("for-other", "other")
    await harness.invites.add("ok", "voters")
    await registry.add_member("voters", 1, "ok")

    before_members = list((await registry.get_group("voters")).members)
    before_root = registry.root_of("voters")
    queued = len(harness.publisher.queue)

    for code in ["missing", "for-other", "ok"]:
        with pytest.raises(InviteRejectedError):
            await registry.add_member("voters", 2, code)

    assert (await registry.get_group("voters")).members == before_members
    assert registry.root_of("voters") == before_root
    assert not registry.is_member("voters", 2)
    assert len(harness.publisher.queue) == queued


@pytest.mark.trio
async def test_invite_reason_passes_through(harness):
    await _voters(harness)

    with pytest.raises(InviteRejectedError) as excinfo:
        await harness.registry.add_member("voters", 1, "nope")

    assert excinfo.value.reason == "Invite 'nope' does not exist"


@pytest.mark.trio
async def test_create_duplicate_group(harness):
    await _voters(harness)

    with pytest.raises(ConflictError):
        await _voters(harness)
    assert len(await harness.registry.list_groups()) == 1


@pytest.mark.trio
async def test_create_rejects_bad_depth(harness):
    with pytest.raises(ValidationError):
        await harness.registry.create_group("deep", "", 40, "", "alice")
    with pytest.raises(NotFoundError):
        await harness.registry.get_group("deep")


@pytest.mark.trio
async def test_unknown_group(harness):
    registry = harness.registry

    with pytest.raises(NotFoundError):
        await registry.get_group("ghost")
    with pytest.raises(NotFoundError):
        await registry.add_member("ghost", 1, "code")
    with pytest.raises(NotFoundError):
        registry.is_member("ghost", 1)
    with pytest.raises(NotFoundError):
        await registry.update_group("ghost", "", 4, "", "alice")

    # unknown names do not leave per-group locks behind
    assert "ghost" not in registry._locks


@pytest.mark.trio
async def test_proof_for_non_member(harness):
    await _voters(harness)

    with pytest.raises(NotMemberError):
        harness.registry.generate_proof("voters", 12345)


@pytest.mark.trio
async def test_invalid_commitment(harness):
    await _voters(harness)
    await harness.invites.add("c", "voters")

    with pytest.raises(ValidationError):
        await harness.registry.add_member("voters", "not-a-number", "c")
    assert not harness.invites.is_redeemed("c")


@pytest.mark.trio
async def test_update_by_admin(harness):
    await _voters(harness)

    group = await harness.registry.update_group("voters", "New", 4, "t2", "alice")

    assert group.description == "New"
    stored = await harness.registry.get_group("voters")
    assert stored.description == "New"
    assert stored.tag == "t2"


@pytest.mark.trio
async def test_unauthorized_update_leaves_record(harness):
    original = await _voters(harness)

    with pytest.raises(UnauthorizedError):
        await harness.registry.update_group("voters", "x", 8, "y", "bob")

    assert (await harness.registry.get_group("voters")).to_dict() == original.to_dict()


@pytest.mark.trio
async def test_depth_change_does_not_resize_cached_tree(harness):
    await _voters(harness, depth=4)

    await harness.registry.update_group("voters", "", 8, "", "alice")

    assert (await harness.registry.get_group("voters")).tree_depth == 8
    assert harness.registry.cache.depth_of("voters") == 4


@pytest.mark.trio
async def test_same_group_updates_are_not_collapsed(harness, autojump_clock):
    registry = harness.registry
    await _voters(harness)
    await registry.create_group("other", "", 4, "", "bob")
    for i in range(3):
        await harness.invites.add(f"v{i}", "voters")
        await registry.add_member("voters", 10 + i, f"v{i}")
    await harness.invites.add("o", "other")
    await registry.add_member("other", 10, "o")

    ids = [update.group_id for update in harness.publisher.queue.snapshot()]
    assert ids == [group_id("voters")] * 3 + [group_id("other")]

    await trio.sleep(61)

    assert len(harness.ledger.batches) == 1
    assert len(harness.ledger.batches[0]) == 4
    assert harness.ledger.roots[group_id("voters")] == registry.root_of("voters")
    assert harness.ledger.roots[group_id("other")] == registry.root_of("other")
    assert len(harness.publisher.queue) == 0


@pytest.mark.trio
async def test_mutation_returns_before_publication(harness, autojump_clock):
    await _voters(harness)
    await harness.invites.add("c", "voters")

    await harness.registry.add_member("voters", 1, "c")

    assert harness.publisher.pending
    assert harness.ledger.batches == []


@pytest.mark.trio
async def test_concurrent_adds_keep_store_and_cache_aligned(harness):
    registry = harness.registry
    await _voters(harness)
    members = list(range(1, 9))
    for member in members:
        await harness.invites.add(f"c{member}", "voters")

    async with trio.open_nursery() as nursery:
        for member in members:
            nursery.start_soon(registry.add_member, "voters", member, f"c{member}")

    stored = (await registry.get_group("voters")).members
    assert sorted(int(m) for m in stored) == members
    assert [int(m) for m in stored] == registry.cache.leaves_of("voters")


@pytest.mark.trio
async def test_queries_rejected_before_bootstrap(make_harness):
    h = make_harness()

    with pytest.raises(NotReadyError):
        h.registry.is_member("voters", 1)
    with pytest.raises(NotReadyError):
        await h.registry.create_group("voters", "", 4, "", "alice")

    await h.registry.bootstrap()
    await h.registry.create_group("voters", "", 4, "", "alice")


@pytest.mark.trio
async def test_bootstrap_fidelity(make_harness):
    groups = [
        Group("a", "", 3, "", "alice", ["1", "2", "3"]),
        Group("b", "", 5, "", "bob", [str(0xFF), "7"]),
        Group("c", "", 2, "", "alice", []),
    ]
    h = make_harness(store=InMemoryGroupStore(groups))

    assert await h.registry.bootstrap() == 3

    for group in groups:
        tree = IncrementalMerkleTree(group.tree_depth, group_id=group_id(group.name))
        tree.add_members(parse_commitment(m) for m in group.members)
        assert h.registry.root_of(group.name) == tree.root


@pytest.mark.trio
async def test_runtime_tree_matches_rebuilt_tree(harness, make_harness):
    await _voters(harness)
    for member in [5, 6]:
        await harness.invites.add(f"c{member}", "voters")
        await harness.registry.add_member("voters", member, f"c{member}")

    rebuilt = make_harness(store=harness.store)
    await rebuilt.registry.bootstrap()

    assert rebuilt.registry.root_of("voters") == harness.registry.root_of("voters")


@pytest.mark.trio
async def test_bootstrap_heals_stale_cache(harness):
    # record written to the store without reaching the cache
    await harness.store.create(
        name="orphan", description="", tree_depth=4, tag="", admin="alice", members=["9"]
    )
    assert "orphan" not in harness.registry.cache

    await harness.registry.bootstrap()

    assert harness.registry.is_member("orphan", 9)


@pytest.mark.trio
async def test_full_group_rejects_before_any_write(harness, make_harness):
    registry = harness.registry
    await _voters(harness, depth=1)
    for code in ["a", "b", "c"]:
        await harness.invites.add(code, "voters")
    await registry.add_member("voters", 1, "a")
    await registry.add_member("voters", 2, "b")
    root = registry.root_of("voters")
    queued = len(harness.publisher.queue)

    with pytest.raises(TreeFullError):
        await registry.add_member("voters", 3, "c")

    assert (await registry.get_group("voters")).members == ["1", "2"]
    assert registry.root_of("voters") == root
    assert not harness.invites.is_redeemed("c")
    assert len(harness.publisher.queue) == queued
    assert "voters" in registry._locks

    restarted = make_harness(store=harness.store)
    assert await restarted.registry.bootstrap() == 1
    assert restarted.registry.root_of("voters") == root


@pytest.mark.trio
async def test_concurrent_cross_group_adds_on_file_store(make_harness, tmp_path):
    path = str(tmp_path / "groups.cbor")
    h = make_harness(store=await CborFileGroupStore(path).load())
    await h.registry.bootstrap()
    names = [f"g{i}" for i in range(20)]
    for name in names:
        await h.registry.create_group(name, "", 4, "", "alice")
        await h.invites.add(f"code-{name}", name)

    async with trio.open_nursery() as nursery:
        for name in names:
            nursery.start_soon(h.registry.add_member, name, 7, f"code-{name}")

    reloaded = await CborFileGroupStore(path).load()
    for name in names:
        assert h.registry.cache.leaves_of(name) == [7]
        assert (await h.store.find_one_by(name)).members == ["7"]
        assert (await reloaded.find_one_by(name)).members == ["7"]
