"""Error types for the arena settlement engine."""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Machine-readable error codes surfaced to callers."""
    INVALID_STAKE_AMOUNT = "INVALID_STAKE_AMOUNT"
    COOLDOWN_ACTIVE = "COOLDOWN_ACTIVE"
    VELOCITY_FLAGGED = "VELOCITY_FLAGGED"
    LEDGER_COMMIT_FAILED = "LEDGER_COMMIT_FAILED"
    POOL_NOT_FOUND = "POOL_NOT_FOUND"
    DISTRIBUTION_FAILED = "DISTRIBUTION_FAILED"
    INVALID_POOL_TRANSITION = "INVALID_POOL_TRANSITION"
    POOL_STATE_AMBIGUOUS = "POOL_STATE_AMBIGUOUS"
    CONFIG_INVALID = "CONFIG_INVALID"


class ArenaError(Exception):
    """Base class for all arena errors."""
    kind: ErrorKind = ErrorKind.LEDGER_COMMIT_FAILED

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigError(ArenaError):
    kind = ErrorKind.CONFIG_INVALID


class InvalidStakeAmount(ArenaError):
    kind = ErrorKind.INVALID_STAKE_AMOUNT

    def __init__(self, amount, min_stake: int, max_stake: int):
        super().__init__(
            f"INVALID_STAKE_AMOUNT: Must be between {min_stake} and {max_stake} diamonds"
        )
        self.amount = amount


class CooldownActive(ArenaError):
    kind = ErrorKind.COOLDOWN_ACTIVE

    def __init__(self, identity: str, remaining_ms: int):
        super().__init__(f"COOLDOWN_ACTIVE: {remaining_ms}ms remaining")
        self.identity = identity
        self.remaining_ms = remaining_ms


class LedgerError(Exception):
    """Raised by ledger implementations when a commit is rejected.

    This is the external collaborator's error; the core never raises it
    itself, it only wraps it in :class:`LedgerCommitFailed`.
    """

    def __init__(self, code: str, message: Optional[str] = None):
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.message = message or code


class LedgerCommitFailed(ArenaError):
    """An atomic ledger operation failed, timed out or was rejected."""
    kind = ErrorKind.LEDGER_COMMIT_FAILED

    PREFIXES = {
        "stake": "ATOMIC_STAKE_FAILED",
        "refund": "REFUND_FAILED",
        "settle": "SETTLEMENT_FAILED",
        "distribute": "DISTRIBUTION_FAILED",
    }

    def __init__(self, operation: str, cause: BaseException):
        prefix = self.PREFIXES.get(operation, "LEDGER_COMMIT_FAILED")
        detail = str(cause) or type(cause).__name__
        super().__init__(f"{prefix}: {detail}")
        self.operation = operation
        self.cause = cause

    @property
    def code(self) -> Optional[str]:
        """Ledger error code, when the ledger supplied one."""
        return getattr(self.cause, "code", None)


class PoolNotFound(ArenaError):
    kind = ErrorKind.POOL_NOT_FOUND

    def __init__(self, pool_id: str):
        super().__init__(f"POOL_NOT_FOUND: {pool_id}")
        self.pool_id = pool_id


class InvalidPoolTransition(ArenaError):
    kind = ErrorKind.INVALID_POOL_TRANSITION

    def __init__(self, pool_id: str, current, target):
        super().__init__(
            f"INVALID_POOL_TRANSITION: {pool_id} cannot move from {current} to {target}"
        )
        self.pool_id = pool_id
        self.current = current
        self.target = target


class PoolStateAmbiguous(ArenaError):
    """Rollback after a failed distribution did not succeed.

    The pool's real status is unknown and needs an operator.
    """
    kind = ErrorKind.POOL_STATE_AMBIGUOUS

    def __init__(self, pool_id: str, cause: BaseException):
        super().__init__(f"POOL_STATE_AMBIGUOUS: rollback of {pool_id} failed: {cause}")
        self.pool_id = pool_id
        self.cause = cause
