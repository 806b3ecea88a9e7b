"""zk-groups: Merkle membership groups with batched ledger synchronization."""

from __future__ import annotations

__version__ = "0.1.0"

from .cache import GroupCache
from .config import GroupsConfig, load_config
from .exceptions import (
    BadRequestError,
    ConfigurationError,
    ConflictError,
    GroupsError,
    InviteRejectedError,
    LedgerSubmissionFailed,
    NotFoundError,
    NotMemberError,
    NotReadyError,
    TreeFullError,
    UnauthorizedError,
    ValidationError,
)
from .identity import group_id, parse_commitment
from .invites import InviteBook, InviteRedeemer
from .ledger import CborFileLedger, InMemoryLedger, LedgerClient
from .merkle import IncrementalMerkleTree, MerkleProof, verify_proof
from .models import Group, LedgerEvent, LedgerReceipt, PendingUpdate
from .registry import GroupRegistry
from .store import CborFileGroupStore, InMemoryGroupStore, MerkleGroupStore
from .sync import (
    BatchPublisher,
    DropFailedBatches,
    RequeueFailedBatches,
    RetryPolicy,
    SyncQueue,
    TaskRegistry,
)

__all__ = [
    "__version__",
    "GroupCache",
    "GroupsConfig",
    "load_config",
    "BadRequestError",
    "ConfigurationError",
    "ConflictError",
    "GroupsError",
    "InviteRejectedError",
    "LedgerSubmissionFailed",
    "NotFoundError",
    "NotMemberError",
    "NotReadyError",
    "TreeFullError",
    "UnauthorizedError",
    "ValidationError",
    "group_id",
    "parse_commitment",
    "InviteBook",
    "InviteRedeemer",
    "CborFileLedger",
    "InMemoryLedger",
    "LedgerClient",
    "IncrementalMerkleTree",
    "MerkleProof",
    "verify_proof",
    "Group",
    "LedgerEvent",
    "LedgerReceipt",
    "PendingUpdate",
    "GroupRegistry",
    "CborFileGroupStore",
    "InMemoryGroupStore",
    "MerkleGroupStore",
    "BatchPublisher",
    "DropFailedBatches",
    "RequeueFailedBatches",
    "RetryPolicy",
    "SyncQueue",
    "TaskRegistry",
]
