import os
import sys
from pathlib import Path

import pytest

# Ensure the src directory and the shared test helpers are importable before
# collection runs.
project_root = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(project_root / "src"))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from tokenvest.contracts.asset_ledger import TokenRegistry
from tokenvest.contracts.vesting import VestingLedger
from tokenvest.core.clock import ManualClock
from vesting_fixtures import HOLDERS, OWNER, PARTNERS, START, TEAM, genesis_allocations


@pytest.fixture(autouse=True)
def _isolate_tokenvest_env(monkeypatch):
    """Keep host TOKENVEST_* variables out of configuration tests."""
    for key in list(os.environ):
        if key.startswith("TOKENVEST_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def registry():
    return TokenRegistry()


@pytest.fixture
def ledger(registry, clock):
    """Vesting ledger with no token configured."""
    return VestingLedger(
        owner=OWNER,
        initial_holders=HOLDERS,
        team=TEAM,
        partners=PARTNERS,
        registry=registry,
        time_provider=clock,
    )


@pytest.fixture
def token(registry, ledger):
    """Genesis token premint with the vesting share held by ``ledger``."""
    token = registry.create_token(OWNER, genesis_allocations(ledger.address))
    ledger.set_asset_ledger(OWNER, token.address)
    return token


@pytest.fixture
def started_ledger(ledger, token):
    ledger.initialize_schedules(OWNER)
    return ledger
