"""Policy constants for group membership and ledger synchronization."""

from __future__ import annotations

# BN254 scalar field order; leaves and roots live in this field
SNARK_SCALAR_FIELD = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)

MIN_TREE_DEPTH = 1
MAX_TREE_DEPTH = 32
DEFAULT_TREE_DEPTH = 20

# Delay between the first queued root change and the batched ledger update
DEFAULT_PUBLISH_DELAY = 60.0

PUBLISH_TASK_NAME = "update-contract-groups"

DOMAIN_SEPARATOR_PREFIX = b"ZK_GROUPS_V1_"
DOMAIN_SEPARATORS = {
    "merkle_leaf": DOMAIN_SEPARATOR_PREFIX + b"MERKLE_LEAF",
    "merkle_node": DOMAIN_SEPARATOR_PREFIX + b"MERKLE_NODE",
    "group_id": DOMAIN_SEPARATOR_PREFIX + b"GROUP_ID",
}


def is_valid_tree_depth(depth: int) -> bool:
    return (
        isinstance(depth, int)
        and not isinstance(depth, bool)
        and MIN_TREE_DEPTH <= depth <= MAX_TREE_DEPTH
    )
