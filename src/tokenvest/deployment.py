"""
Local genesis deployment.

Mirrors the production rollout order:

1. deploy the vesting ledger (its address must exist before the premint);
2. deploy the token, preminting the supply split across the vesting ledger
   and the liquidity pool, exchange listing, marketing, treasury and rewards
   wallets;
3. point the ledger at the token and, unless disabled, start vesting;
4. record both addresses in the deploy-output JSON under the network name,
   keeping entries for other networks, then persist state.

Verification links are derived from the configured block explorer; nothing
is submitted to it.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from tokenvest.contracts.asset_ledger import FungibleToken, TokenRegistry
from tokenvest.contracts.vesting import VestingLedger
from tokenvest.core.addresses import normalize_address, short
from tokenvest.core.clock import TimeProvider
from tokenvest.core.config_manager import ConfigManager
from tokenvest.core.exceptions import ConfigurationError, StorageError
from tokenvest.core.metrics import VestingMetrics
from tokenvest.core.storage import VestingStateStore

logger = logging.getLogger(__name__)

VESTING_CONTRACT_NAME = "Vesting"


@dataclass
class DeploymentAddresses:
    """Accounts named by the deployer."""

    initial_holders: List[str]
    team: str
    partners: str
    liquidity_pool: str
    exchange_listing: str
    marketing: str
    treasury: str
    rewards: str

    ENV_VARS = {
        "team": "TEAM_ADDRESS",
        "partners": "PARTNERS_ADDRESS",
        "liquidity_pool": "LIQUIDITY_POOL_ADDRESS",
        "exchange_listing": "EXCHANGE_LISTING_ADDRESS",
        "marketing": "MARKETING_ADDRESS",
        "treasury": "TREASURY_ADDRESS",
        "rewards": "REWARDS_ADDRESS",
    }

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DeploymentAddresses":
        """
        Read addresses from the environment.

        ``INITIAL_HOLDERS`` is a comma separated list; blanks around each
        entry are ignored.

        Raises:
            ConfigurationError: If any variable is missing
        """
        environ = os.environ if environ is None else environ
        required = ["INITIAL_HOLDERS", *cls.ENV_VARS.values()]
        missing = [name for name in required if name not in environ]
        if missing:
            raise ConfigurationError(
                f"Missing deployment variables: {', '.join(missing)}",
                details={"missing": missing},
            )

        holders = [h.strip() for h in environ["INITIAL_HOLDERS"].split(",") if h.strip()]
        values = {field_name: environ[var].strip() for field_name, var in cls.ENV_VARS.items()}
        return cls(initial_holders=holders, **values)

    def wallet_allocations(self) -> Dict[str, str]:
        """Premint recipients other than the vesting ledger, keyed by distribution field."""
        return {
            "liquidity_pool_bp": self.liquidity_pool,
            "exchange_listing_bp": self.exchange_listing,
            "marketing_bp": self.marketing,
            "treasury_bp": self.treasury,
            "rewards_bp": self.rewards,
        }


@dataclass
class DeploymentResult:
    registry: TokenRegistry
    ledger: VestingLedger
    token: FungibleToken
    network: str
    output: Dict[str, Any]
    state_path: Optional[Path] = None
    output_path: Optional[Path] = None


def build_allocations(
    config: ConfigManager, ledger_address: str, addresses: DeploymentAddresses
) -> Dict[str, int]:
    """
    Premint split ``{address: basis_points}``.

    Wallets that appear more than once have their shares added together.
    """
    allocations: Dict[str, int] = {
        normalize_address(ledger_address): config.distribution.vesting_contract_bp
    }
    for field_name, address in addresses.wallet_allocations().items():
        account = normalize_address(address)
        allocations[account] = allocations.get(account, 0) + getattr(config.distribution, field_name)
    return allocations


def build_output_entry(config: ConfigManager, ledger: VestingLedger, token: FungibleToken) -> Dict[str, Any]:
    return {
        VESTING_CONTRACT_NAME: {
            "address": ledger.address,
            "verification": config.network.verification_url(ledger.address),
        },
        token_contract_name(token): {
            "address": token.address,
            "verification": config.network.verification_url(token.address),
        },
    }


def token_contract_name(token: FungibleToken) -> str:
    return token.name.capitalize()


def write_deploy_output(path: Path, network: str, entry: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge ``entry`` under ``network`` into the JSON file at ``path``.

    Returns:
        The full document written
    """
    document: Dict[str, Any] = {}
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as exc:
            raise StorageError(f"Deploy output {path} is not valid JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise StorageError(f"Deploy output {path} must contain an object")

    document[network] = entry

    path.parent.mkdir(parents=True, exist_ok=True)
    temp_file = path.with_name(path.name + ".tmp")
    with open(temp_file, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2)
        f.flush()
        os.fsync(f.fileno())
    os.replace(temp_file, path)
    return document


def deploy(
    config: ConfigManager,
    addresses: Optional[DeploymentAddresses] = None,
    time_provider: Optional[TimeProvider] = None,
    metrics: Optional[VestingMetrics] = None,
    start_vesting: Optional[bool] = None,
    persist: bool = True,
    force: bool = False,
) -> DeploymentResult:
    """
    Run the genesis deployment.

    Args:
        config: Loaded configuration
        addresses: Deployment accounts; read from the environment when omitted
        time_provider: Clock used by the ledger
        metrics: Optional metrics collector attached to the ledger
        start_vesting: Override ``vesting.start_on_deploy``
        persist: Write the state file and deploy output
        force: Replace an existing state file

    Raises:
        ConfigurationError: Missing or invalid addresses
        StorageError: State already exists (without ``force``) or cannot be written
    """
    addresses = addresses or DeploymentAddresses.from_env()
    network = config.network.name
    deployer = config.network.deployer
    store = VestingStateStore(config.storage.state_path)

    if persist and store.exists() and not force:
        raise StorageError(
            f"State already exists at {store.path}; pass --force to redeploy",
            details={"path": str(store.path)},
        )

    logger.info(
        "Deployment started",
        extra={"event": "deploy.started", "network": network, "deployer": short(normalize_address(deployer))},
    )

    registry = TokenRegistry()
    ledger = VestingLedger(
        owner=deployer,
        initial_holders=addresses.initial_holders,
        team=addresses.team,
        partners=addresses.partners,
        registry=registry,
        time_provider=time_provider,
        plan=config.allocation_plan(),
        metrics=metrics,
    )

    token = registry.create_token(
        creator=deployer,
        allocations=build_allocations(config, ledger.address, addresses),
        name=config.token.name,
        symbol=config.token.symbol,
        decimals=config.token.decimals,
        max_supply=config.token.max_supply,
    )

    ledger.set_asset_ledger(deployer, token.address)

    should_start = config.vesting.start_on_deploy if start_vesting is None else start_vesting
    if should_start:
        ledger.initialize_schedules(deployer)

    entry = build_output_entry(config, ledger, token)
    result = DeploymentResult(
        registry=registry,
        ledger=ledger,
        token=token,
        network=network,
        output=entry,
    )

    if persist:
        # A state file exists only once the deploy output is written
        output_path = config.storage.deploy_output_path
        try:
            write_deploy_output(output_path, network, entry)
        except OSError as exc:
            raise StorageError(f"Failed to write deploy output {output_path}: {exc}") from exc
        store.save(registry, ledger)
        result.state_path = store.path
        result.output_path = output_path

    logger.info(
        "Deployment finished",
        extra={
            "event": "deploy.finished",
            "network": network,
            "vesting": ledger.address,
            "token": token.address,
            "started": ledger.is_started,
        }
    )
    return result
