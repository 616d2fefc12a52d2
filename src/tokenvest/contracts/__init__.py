"""
tokenvest contracts.

This module provides:
- FungibleToken: fixed-supply token with a one-time premint
- TokenRegistry: deploys tokens and resolves addresses to instances
- VestingLedger: per-beneficiary vesting schedules and claims
"""

from .asset_ledger import FungibleToken, TokenEvent, TokenRegistry
from .vesting import (
    AllocationPlan,
    VestingEvent,
    VestingLedger,
    VestingLifecycle,
    VestingRecord,
    VestingStatus,
)

__all__ = [
    "AllocationPlan",
    "FungibleToken",
    "TokenEvent",
    "TokenRegistry",
    "VestingEvent",
    "VestingLedger",
    "VestingLifecycle",
    "VestingRecord",
    "VestingStatus",
]
