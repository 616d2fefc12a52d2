"""
tokenvest - Fixed-supply token distribution with time-locked vesting

Main Components:
- Contracts: fungible token premint and the vesting ledger
- Deployment: local genesis writing per-network deploy output
- CLI: click/rich commands driving the ledger from persisted state
"""

__version__ = "0.1.0"
__author__ = "tokenvest Development Team"

__all__ = []
