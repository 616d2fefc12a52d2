"""
tokenvest - Persistent State Store

Keeps the token registry and vesting ledger on disk between CLI invocations:
- Atomic writes (temp file + fsync + rename)
- SHA-256 checksum over the serialized state
- Single backup of the previous state file
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from tokenvest.contracts.asset_ledger import TokenRegistry
from tokenvest.contracts.vesting import VestingLedger
from tokenvest.core.clock import TimeProvider
from tokenvest.core.exceptions import CorruptedStateError, StorageError, VestingError
from tokenvest.core.metrics import VestingMetrics

logger = logging.getLogger(__name__)

STATE_VERSION = "1.0"


class VestingStateStore:
    """
    JSON file holding ``{"metadata": {...}, "state": {"registry", "ledger"}}``.

    Args:
        path: State file location; parent directories are created on save
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self.backup_path = self.path.with_name(self.path.name + ".bak")

    def exists(self) -> bool:
        return self.path.exists()

    @staticmethod
    def _checksum(data: str) -> str:
        return hashlib.sha256(data.encode("utf-8")).hexdigest()

    def save(self, registry: TokenRegistry, ledger: VestingLedger) -> str:
        """
        Write registry and ledger state atomically.

        Returns:
            Checksum of the stored state

        Raises:
            StorageError: If the file cannot be written
        """
        state = {"registry": registry.to_dict(), "ledger": ledger.to_dict()}
        state_json = json.dumps(state, sort_keys=True)
        checksum = self._checksum(state_json)
        package = {
            "metadata": {
                "version": STATE_VERSION,
                "timestamp": time.time(),
                "checksum": checksum,
            },
            "state": state,
        }

        temp_file = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if self.path.exists():
                shutil.copy2(self.path, self.backup_path)

            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(package, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())

            os.replace(temp_file, self.path)
        except OSError as exc:
            logger.error(
                "Failed to save vesting state",
                extra={"event": "storage.save_failed", "path": str(self.path), "error": str(exc)},
            )
            raise StorageError(
                f"Failed to save state to {self.path}: {exc}",
                details={"path": str(self.path)},
            ) from exc

        logger.debug(
            "Vesting state saved",
            extra={"event": "storage.saved", "path": str(self.path), "checksum": checksum[:8]},
        )
        return checksum

    def load_raw(self) -> Dict[str, Any]:
        """
        Read and verify the stored state dictionary.

        Raises:
            StorageError: If no state file exists or it cannot be read
            CorruptedStateError: If decoding or checksum verification fails
        """
        if not self.path.exists():
            raise StorageError(
                f"No state file at {self.path}; run 'tokenvest deploy' first",
                details={"path": str(self.path)},
            )

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                package = json.load(f)
        except json.JSONDecodeError as exc:
            raise CorruptedStateError(
                f"State file {self.path} is not valid JSON: {exc}",
                details={"path": str(self.path), "backup": str(self.backup_path)},
            ) from exc
        except OSError as exc:
            raise StorageError(f"Failed to read state from {self.path}: {exc}") from exc

        state = package.get("state")
        if not isinstance(state, dict):
            raise CorruptedStateError(f"State file {self.path} has no state section")

        expected = package.get("metadata", {}).get("checksum")
        if expected and self._checksum(json.dumps(state, sort_keys=True)) != expected:
            raise CorruptedStateError(
                f"Checksum mismatch in {self.path}",
                details={"path": str(self.path), "backup": str(self.backup_path)},
            )
        return state

    def load(
        self,
        time_provider: Optional[TimeProvider] = None,
        metrics: Optional[VestingMetrics] = None,
    ) -> Tuple[TokenRegistry, VestingLedger]:
        """Rebuild the registry and ledger from disk."""
        state = self.load_raw()
        try:
            registry = TokenRegistry.from_dict(state["registry"])
            ledger = VestingLedger.from_dict(
                state["ledger"],
                registry=registry,
                time_provider=time_provider,
                metrics=metrics,
            )
        except (KeyError, TypeError, ValueError, VestingError) as exc:
            raise CorruptedStateError(
                f"State file {self.path} is malformed: {exc}",
                details={"path": str(self.path)},
            ) from exc
        return registry, ledger
