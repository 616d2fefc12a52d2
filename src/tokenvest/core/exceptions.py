"""
Vesting-specific exception hierarchy for tokenvest.

Provides typed exceptions for ledger and vesting operations so callers can
tell a misconfigured deployment from a claim made in the wrong lifecycle
phase, and so the CLI can report failures with precise context.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class VestingError(Exception):
    """Base exception for all tokenvest errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried
    """

    recoverable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if recoverable is not None:
            self.recoverable = recoverable


# ==================== Configuration & Input Errors ====================


class ConfigurationError(VestingError):
    """Raised when a zero address is supplied or a required setting is missing."""
    recoverable = False


class InvalidInputError(VestingError):
    """Raised when a caller passes a malformed argument (empty or zero address)."""
    pass


# ==================== Lifecycle Errors ====================


class StateError(VestingError):
    """Raised when an operation is invoked in the wrong lifecycle phase."""
    pass


class AlreadyStartedError(StateError):
    """Raised when schedules are initialized a second time."""
    pass


class AlreadyFullyClaimedError(StateError):
    """Raised when a beneficiary claims from a record that is fully paid out."""
    pass


# ==================== Lookup Errors ====================


class RecordNotFoundError(VestingError):
    """Raised when no vesting record exists for a beneficiary."""
    pass


class VestingNotStartedError(RecordNotFoundError, StateError):
    """Raised when records are requested before schedules were initialized."""
    pass


# ==================== Authorization Errors ====================


class AuthorizationError(VestingError):
    """Raised when a privileged operation is invoked by a non-owner."""
    pass


# ==================== Resource Errors ====================


class InsufficientBalanceError(VestingError):
    """Raised when the vesting account lacks the balance an operation needs."""
    pass


class TransferFailedError(VestingError):
    """Raised when the asset ledger rejects a transfer for a reason other than balance."""
    recoverable = True  # e.g. paused ledger, retry once it resumes


class NoOpError(VestingError):
    """Raised when a configuration change would leave the value unchanged."""
    pass


# ==================== Asset Ledger Errors ====================


class TokenError(VestingError):
    """Raised when a fungible token operation fails."""
    pass


class TokenBalanceError(TokenError):
    """Raised when a token transfer exceeds the sender's balance."""
    pass


# ==================== Storage Errors ====================


class StorageError(VestingError):
    """Raised when persisted state cannot be read or written."""
    pass


class CorruptedStateError(StorageError):
    """Raised when the state file fails its checksum or cannot be decoded."""
    pass


# ==================== Utility Functions ====================


def is_recoverable_error(exc: Exception) -> bool:
    """Check if an exception represents a recoverable error.

    Args:
        exc: The exception to check

    Returns:
        True if the error is recoverable and the operation can be retried
    """
    if isinstance(exc, VestingError):
        return exc.recoverable
    return isinstance(exc, (ConnectionError, TimeoutError, OSError))


def get_error_context(exc: Exception) -> Dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, VestingError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    return context
