"""
Fixed-supply fungible token used as the vesting engine's asset ledger.

This module provides the collaborator the vesting contract draws from:
- Integer balances in base units (18 decimals)
- One-time genesis premint that splits the max supply by basis points
- ``transfer`` that fails on insufficient balance or while paused
- Transfer events
- A registry resolving token addresses to token instances

Fee-on-transfer and whitelist mechanics are intentionally absent.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Mapping

from tokenvest.core.addresses import (
    derive_contract_address,
    is_zero_address,
    normalize_address,
    short,
)
from tokenvest.core.constants import (
    BP_CONVERTER,
    MAX_TOTAL_SUPPLY,
    TOKEN_DECIMALS,
    TOKEN_NAME,
    TOKEN_SYMBOL,
    UINT256_MAX,
    ZERO_ADDRESS,
)
from tokenvest.core.exceptions import TokenBalanceError, TokenError
from tokenvest.core.units import apply_bp

logger = logging.getLogger(__name__)


@dataclass
class TokenEvent:
    """Represents a token event."""

    event_type: str  # "Transfer"
    from_address: str
    to_address: str
    value: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict:
        return {
            "event_type": self.event_type,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "value": self.value,
            "timestamp": self.timestamp,
        }


@dataclass
class FungibleToken:
    """
    Fixed-supply token with integer balances.

    The whole supply is minted once through ``mint_distribution``; afterwards
    the supply never changes. All balances live in memory and round-trip
    through ``to_dict`` / ``from_dict``.
    """

    # Token metadata
    name: str = TOKEN_NAME
    symbol: str = TOKEN_SYMBOL
    decimals: int = TOKEN_DECIMALS
    total_supply: int = 0
    max_supply: int = MAX_TOTAL_SUPPLY

    # Contract address
    address: str = ""

    # Owner (may pause transfers)
    owner: str = ""

    # State
    balances: dict[str, int] = field(default_factory=dict)
    events: list[TokenEvent] = field(default_factory=list)
    paused: bool = False

    def __post_init__(self) -> None:
        self.address = normalize_address(self.address)
        self.owner = normalize_address(self.owner)

    # ==================== View Functions ====================

    def balance_of(self, account: str) -> int:
        """
        Get the token balance of an account.

        Args:
            account: Address to check

        Returns:
            Token balance in base units
        """
        return self.balances.get(normalize_address(account), 0)

    # ==================== State-Changing Functions ====================

    def mint_distribution(self, allocations: Mapping[str, int]) -> Dict[str, int]:
        """
        Premint the max supply split by basis points.

        Args:
            allocations: ``{address: basis_points}``; must sum to 10,000.
                Rounding dust is credited to the first address.

        Returns:
            ``{address: minted_amount}``

        Raises:
            TokenError: If already minted, an address is zero, or the split
                does not cover the whole supply
        """
        if self.total_supply:
            raise TokenError(f"{self.name}: supply already minted")
        if sum(allocations.values()) != BP_CONVERTER:
            raise TokenError(
                f"{self.name}: allocations must sum to {BP_CONVERTER} basis points",
                details={"allocated_bp": sum(allocations.values())},
            )

        minted: Dict[str, int] = {}
        for account, basis_points in allocations.items():
            if is_zero_address(account):
                raise TokenError(f"{self.name}: cannot mint to zero address")
            if basis_points < 0:
                raise TokenError(f"{self.name}: negative allocation for {account}")
            account_norm = normalize_address(account)
            minted[account_norm] = minted.get(account_norm, 0) + (
                apply_bp(self.max_supply, basis_points)
            )

        dust = self.max_supply - sum(minted.values())
        first = next(iter(minted))
        minted[first] += dust

        for account_norm, amount in minted.items():
            self.balances[account_norm] = self.balances.get(account_norm, 0) + amount
            self._emit_transfer(ZERO_ADDRESS, account_norm, amount)
        self.total_supply = self.max_supply

        logger.info(
            "Token supply minted",
            extra={
                "event": "token.minted",
                "token": self.symbol,
                "recipients": len(minted),
                "total_supply": self.total_supply,
            }
        )
        return minted

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Transfer tokens from sender to recipient.

        Args:
            sender: Address sending tokens (msg.sender)
            recipient: Address receiving tokens
            amount: Amount to transfer

        Returns:
            True if successful

        Raises:
            TokenBalanceError: If the sender balance is too low
            TokenError: If the token is paused or arguments are invalid
        """
        self._require_not_paused()
        sender_norm = normalize_address(sender)
        recipient_norm = normalize_address(recipient)

        if is_zero_address(recipient_norm):
            raise TokenError(f"{self.name}: transfer to the zero address")
        self._validate_amount(amount)

        sender_balance = self.balances.get(sender_norm, 0)
        if sender_balance < amount:
            raise TokenBalanceError(
                f"{self.name}: transfer amount exceeds balance "
                f"({amount} > {sender_balance})",
                details={"sender": sender_norm, "balance": sender_balance, "amount": amount},
            )

        self.balances[sender_norm] = sender_balance - amount
        self.balances[recipient_norm] = self.balances.get(recipient_norm, 0) + amount
        self._emit_transfer(sender_norm, recipient_norm, amount)

        logger.debug(
            "Token transfer",
            extra={
                "event": "token.transfer",
                "token": self.symbol,
                "from": short(sender_norm),
                "to": short(recipient_norm),
                "amount": amount,
            }
        )

        return True

    # ==================== Admin Functions ====================

    def pause(self, caller: str) -> bool:
        """Pause token transfers (owner only)."""
        self._require_owner(caller)
        self.paused = True
        return True

    def unpause(self, caller: str) -> bool:
        """Unpause token transfers (owner only)."""
        self._require_owner(caller)
        self.paused = False
        return True

    # ==================== Helpers ====================

    def _validate_amount(self, amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise TokenError(f"{self.name}: amount must be an integer")
        if amount < 0:
            raise TokenError(f"{self.name}: amount cannot be negative")
        if amount > UINT256_MAX:
            raise TokenError(f"{self.name}: amount exceeds uint256")

    def _require_owner(self, caller: str) -> None:
        if normalize_address(caller) != self.owner:
            raise TokenError("Ownable: caller is not the owner")

    def _require_not_paused(self) -> None:
        if self.paused:
            raise TokenError(f"{self.name}: token is paused")

    def _emit_transfer(self, from_addr: str, to_addr: str, amount: int) -> None:
        self.events.append(
            TokenEvent(
                event_type="Transfer",
                from_address=from_addr,
                to_address=to_addr,
                value=amount,
            )
        )

    # ==================== Serialization ====================

    def to_dict(self) -> Dict:
        """Serialize token state to dictionary."""
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "total_supply": self.total_supply,
            "max_supply": self.max_supply,
            "address": self.address,
            "owner": self.owner,
            "balances": dict(self.balances),
            "paused": self.paused,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "FungibleToken":
        """Deserialize token state from dictionary. Events are not persisted."""
        token = cls(
            name=data.get("name", TOKEN_NAME),
            symbol=data.get("symbol", TOKEN_SYMBOL),
            decimals=data.get("decimals", TOKEN_DECIMALS),
            total_supply=int(data.get("total_supply", 0)),
            max_supply=int(data.get("max_supply", MAX_TOTAL_SUPPLY)),
            address=data.get("address", ""),
            owner=data.get("owner", ""),
            paused=data.get("paused", False),
        )
        token.balances = {k: int(v) for k, v in data.get("balances", {}).items()}
        return token


class TokenRegistry:
    """
    Registry of deployed tokens.

    Plays the role of the chain's address space: the vesting contract only
    stores a token address and resolves it here whenever it needs balances.
    """

    def __init__(self) -> None:
        self.deployed_tokens: dict[str, FungibleToken] = {}
        self.deploy_nonces: dict[str, int] = {}

    def next_address(self, deployer: str) -> str:
        """Reserve the next deterministic contract address for ``deployer``."""
        deployer_norm = normalize_address(deployer)
        nonce = self.deploy_nonces.get(deployer_norm, 0)
        self.deploy_nonces[deployer_norm] = nonce + 1
        return derive_contract_address(deployer_norm, nonce)

    def create_token(
        self,
        creator: str,
        allocations: Mapping[str, int] | None = None,
        name: str = TOKEN_NAME,
        symbol: str = TOKEN_SYMBOL,
        decimals: int = TOKEN_DECIMALS,
        max_supply: int = MAX_TOTAL_SUPPLY,
    ) -> FungibleToken:
        """
        Deploy a token and optionally premint its supply.

        Args:
            creator: Deployer address (becomes owner)
            allocations: ``{address: basis_points}`` premint split; ``None``
                deploys an empty token
            name: Token name
            symbol: Token symbol
            decimals: Token decimals
            max_supply: Fixed supply in base units

        Returns:
            The deployed token
        """
        if is_zero_address(creator):
            raise TokenError("TokenRegistry: invalid creator address")
        if max_supply <= 0:
            raise TokenError("TokenRegistry: invalid max supply")

        token = FungibleToken(
            name=name,
            symbol=symbol,
            decimals=decimals,
            max_supply=max_supply,
            address=self.next_address(creator),
            owner=creator,
        )
        if allocations:
            token.mint_distribution(allocations)

        self.deployed_tokens[token.address] = token

        logger.info(
            "Token deployed",
            extra={
                "event": "token.created",
                "address": token.address,
                "symbol": symbol,
                "total_supply": token.total_supply,
                "creator": short(normalize_address(creator)),
            }
        )
        return token

    def register(self, token: FungibleToken) -> FungibleToken:
        """Register an externally built token under its address."""
        if is_zero_address(token.address):
            raise TokenError("TokenRegistry: token has no address")
        self.deployed_tokens[token.address] = token
        return token

    def get_token(self, address: str) -> FungibleToken | None:
        """
        Get a deployed token by address.

        Returns:
            Token instance or None
        """
        return self.deployed_tokens.get(normalize_address(address))

    def to_dict(self) -> Dict:
        return {
            "tokens": {address: token.to_dict() for address, token in self.deployed_tokens.items()},
            "deploy_nonces": dict(self.deploy_nonces),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "TokenRegistry":
        registry = cls()
        for token_data in data.get("tokens", {}).values():
            registry.register(FungibleToken.from_dict(token_data))
        registry.deploy_nonces = {k: int(v) for k, v in data.get("deploy_nonces", {}).items()}
        return registry
