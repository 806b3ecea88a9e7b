"""
Custom exceptions for zk-groups.

Synchronous validation errors (not found, unauthorized, conflict, invite
rejection) abort a mutation before any persisted or cached state changes.
Ledger submission failures stay on the asynchronous publication path.
"""


class GroupsError(Exception):
    """Base exception for group membership errors."""

    pass


class NotFoundError(GroupsError):
    """Unknown group name."""

    pass


class UnauthorizedError(GroupsError):
    """Caller is not the admin of the group."""

    pass


class ConflictError(GroupsError):
    """Duplicate group name or duplicate member."""

    pass


class BadRequestError(GroupsError):
    """Request is malformed or refers to a non-existent member."""

    pass


class ValidationError(BadRequestError):
    """A field value is out of bounds or unparsable."""

    pass


class NotMemberError(BadRequestError):
    """Leaf is not a member of the group."""

    pass


class InviteRejectedError(GroupsError):
    """Invite redemption failed; the reason is passed through verbatim."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class NotReadyError(GroupsError):
    """Group cache has not been bootstrapped yet."""

    pass


class LedgerSubmissionFailed(GroupsError):
    """Batched ledger update failed. Logged, never raised to mutation callers."""

    pass


class TreeFullError(GroupsError):
    """Merkle tree capacity (2**depth leaves) exhausted. Fatal."""

    pass


class ConfigurationError(GroupsError):
    """Configuration error."""

    pass
