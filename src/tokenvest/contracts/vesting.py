"""
Vesting Ledger: per-beneficiary time-locked token release.

The ledger holds one ``VestingRecord`` per beneficiary. Records are created
once, in bulk, by ``initialize_schedules`` from the token balance the ledger
owns, and are afterwards only touched by ``claim``:

- initial holders share the vesting pool evenly and unlock it over three
  monthly periods;
- team and partners each get a single record that unlocks in one cliff after
  24 months.

Periods are discrete. Each period releases ``total_amount // claimable_periods``
and the final period pays whatever is left, so the sum of all releases equals
``total_amount`` exactly.

Every public mutating call is atomic: it either commits completely or raises
with the ledger unchanged. Caller identity is always an explicit argument.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum, IntEnum
from typing import Any, Dict, Iterable, List, Optional

from tokenvest.contracts.asset_ledger import FungibleToken, TokenRegistry
from tokenvest.core.addresses import is_zero_address, normalize_address, short
from tokenvest.core.clock import SystemClock, TimeProvider, read_clock
from tokenvest.core.constants import (
    BP_CONVERTER,
    HOLDER_CLAIMABLE_PERIODS,
    HOLDER_PERIOD_DURATION,
    LOCK_CLAIMABLE_PERIODS,
    LOCK_PERIOD_DURATION,
    TO_LOCK_PARTNERS_BP,
    TO_LOCK_TEAM_BP,
    TO_VESTING_BP,
)
from tokenvest.core.exceptions import (
    AlreadyFullyClaimedError,
    AlreadyStartedError,
    AuthorizationError,
    ConfigurationError,
    InsufficientBalanceError,
    InvalidInputError,
    NoOpError,
    RecordNotFoundError,
    TokenBalanceError,
    TokenError,
    TransferFailedError,
    VestingNotStartedError,
)
from tokenvest.core.metrics import VestingMetrics

logger = logging.getLogger(__name__)

# Event names
SCHEDULES_INITIALIZED = "SchedulesInitialized"
VESTING_CLAIMED = "VestingClaimed"
ASSET_LEDGER_CHANGED = "AssetLedgerChanged"


class VestingStatus(IntEnum):
    ACTIVE = 0
    FULLY_CLAIMED = 1


class VestingLifecycle(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"


@dataclass
class VestingRecord:
    """Allocation and claim progress of one beneficiary."""

    status: VestingStatus
    beneficiary: str
    total_amount: int
    claimed_amount: int
    start_time: int
    claimable_periods: int
    period_duration: int
    last_claimed_period: int

    def __post_init__(self) -> None:
        self.status = VestingStatus(self.status)
        self.beneficiary = normalize_address(self.beneficiary)
        if is_zero_address(self.beneficiary):
            raise InvalidInputError("Vesting: Invalid user address")
        if self.total_amount <= 0:
            raise InvalidInputError(
                "Vesting: total amount must be positive",
                details={"beneficiary": self.beneficiary, "total_amount": self.total_amount},
            )
        if self.claimable_periods < 1:
            raise InvalidInputError("Vesting: at least one claimable period is required")
        if self.period_duration <= 0:
            raise InvalidInputError("Vesting: period duration must be positive")
        if not 0 <= self.claimed_amount <= self.total_amount:
            raise InvalidInputError("Vesting: claimed amount out of range")
        if not 0 <= self.last_claimed_period <= self.claimable_periods:
            raise InvalidInputError("Vesting: last claimed period out of range")

    @property
    def per_period_amount(self) -> int:
        return self.total_amount // self.claimable_periods

    @property
    def unlock_time(self) -> int:
        """Timestamp at which the whole allocation becomes claimable."""
        return self.start_time + self.claimable_periods * self.period_duration

    def periods_elapsed(self, now: int) -> int:
        """Whole periods since ``start_time``, capped at ``claimable_periods``."""
        elapsed = max(0, now - self.start_time)
        return min(elapsed // self.period_duration, self.claimable_periods)

    def releasable(self, now: int) -> tuple[int, int]:
        """
        Compute what a claim at ``now`` would release.

        Returns:
            ``(periods_elapsed, release_amount)``; the amount is 0 when no new
            period has completed since the last claim.
        """
        periods = self.periods_elapsed(now)
        if periods <= self.last_claimed_period:
            return self.last_claimed_period, 0

        if periods == self.claimable_periods:
            # Final period absorbs the integer-division remainder
            return periods, self.total_amount - self.claimed_amount

        newly_claimable = periods - self.last_claimed_period
        return periods, newly_claimable * self.per_period_amount

    def as_tuple(self) -> tuple:
        """Field order of the on-chain getter."""
        return (
            int(self.status),
            self.beneficiary,
            self.total_amount,
            self.claimed_amount,
            self.start_time,
            self.claimable_periods,
            self.period_duration,
            self.last_claimed_period,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.name,
            "beneficiary": self.beneficiary,
            "total_amount": self.total_amount,
            "claimed_amount": self.claimed_amount,
            "start_time": self.start_time,
            "claimable_periods": self.claimable_periods,
            "period_duration": self.period_duration,
            "last_claimed_period": self.last_claimed_period,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VestingRecord":
        return cls(
            status=VestingStatus[data["status"]],
            beneficiary=data["beneficiary"],
            total_amount=int(data["total_amount"]),
            claimed_amount=int(data["claimed_amount"]),
            start_time=int(data["start_time"]),
            claimable_periods=int(data["claimable_periods"]),
            period_duration=int(data["period_duration"]),
            last_claimed_period=int(data["last_claimed_period"]),
        )


@dataclass
class VestingEvent:
    """Notification emitted by the ledger."""

    event_type: str
    timestamp: int
    beneficiary: str = ""
    amount: int = 0
    old_address: str = ""
    new_address: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "timestamp": self.timestamp,
            "beneficiary": self.beneficiary,
            "amount": self.amount,
            "old_address": self.old_address,
            "new_address": self.new_address,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VestingEvent":
        return cls(
            event_type=data["event_type"],
            timestamp=int(data["timestamp"]),
            beneficiary=data.get("beneficiary", ""),
            amount=int(data.get("amount", 0)),
            old_address=data.get("old_address", ""),
            new_address=data.get("new_address", ""),
        )


@dataclass(frozen=True)
class AllocationPlan:
    """
    How the ledger's balance is split at initialization.

    Pool weights are basis points of the token supply; only their ratio
    matters because the split is applied to the balance actually held.
    """

    holders_bp: int = TO_VESTING_BP
    team_bp: int = TO_LOCK_TEAM_BP
    partners_bp: int = TO_LOCK_PARTNERS_BP
    holder_periods: int = HOLDER_CLAIMABLE_PERIODS
    holder_period_duration: int = HOLDER_PERIOD_DURATION
    lock_periods: int = LOCK_CLAIMABLE_PERIODS
    lock_period_duration: int = LOCK_PERIOD_DURATION

    def __post_init__(self) -> None:
        for name in ("holders_bp", "team_bp", "partners_bp"):
            value = getattr(self, name)
            if value <= 0 or value > BP_CONVERTER:
                raise ConfigurationError(f"Vesting: {name} must be in 1..{BP_CONVERTER}")
        if self.holder_periods < 1 or self.lock_periods < 1:
            raise ConfigurationError("Vesting: claimable periods must be >= 1")
        if self.holder_period_duration <= 0 or self.lock_period_duration <= 0:
            raise ConfigurationError("Vesting: period durations must be positive")

    @property
    def total_bp(self) -> int:
        return self.holders_bp + self.team_bp + self.partners_bp

    def split(self, balance: int) -> tuple[int, int, int]:
        """
        Split ``balance`` into ``(holders_pool, team, partners)``.

        Team and partners are rounded down; the holders pool takes the rest so
        the three parts always sum to ``balance``.
        """
        team = balance * self.team_bp // self.total_bp
        partners = balance * self.partners_bp // self.total_bp
        return balance - team - partners, team, partners


class VestingLedger:
    """
    Vesting contract holding schedules for initial holders, team and partners.

    Args:
        owner: Privileged account (may initialize and reconfigure)
        initial_holders: Accounts sharing the vesting pool
        team: Account receiving the team lock
        partners: Account receiving the partners lock
        registry: Token registry used to resolve the configured token address
        address: Ledger's own account on the asset ledger; derived from the
            owner's deploy nonce when omitted
        time_provider: Callable returning the current timestamp
        plan: Allocation split and schedule shape
        metrics: Optional metrics collector
    """

    def __init__(
        self,
        owner: str,
        initial_holders: Iterable[str],
        team: str,
        partners: str,
        registry: TokenRegistry,
        address: Optional[str] = None,
        time_provider: Optional[TimeProvider] = None,
        plan: Optional[AllocationPlan] = None,
        metrics: Optional[VestingMetrics] = None,
    ) -> None:
        holders = [normalize_address(holder) for holder in initial_holders]
        if not holders:
            raise InvalidInputError("Vesting: No initial holders")
        if any(is_zero_address(holder) for holder in holders):
            raise InvalidInputError("Vesting: Invalid initial holder address")
        if is_zero_address(team):
            raise InvalidInputError("Vesting: Invalid team address")
        if is_zero_address(partners):
            raise InvalidInputError("Vesting: Invalid partners address")
        if is_zero_address(owner):
            raise InvalidInputError("Vesting: Invalid owner address")

        beneficiaries = holders + [normalize_address(team), normalize_address(partners)]
        if len(set(beneficiaries)) != len(beneficiaries):
            raise InvalidInputError(
                "Vesting: Duplicate beneficiary address",
                details={"beneficiaries": beneficiaries},
            )

        self.owner = normalize_address(owner)
        self.initial_holders: List[str] = holders
        self.team = normalize_address(team)
        self.partners = normalize_address(partners)
        self.registry = registry
        self.address = normalize_address(address) or registry.next_address(self.owner)
        self.plan = plan or AllocationPlan()
        self.metrics = metrics
        self._time_provider = time_provider or SystemClock()

        self.lifecycle = VestingLifecycle.UNINITIALIZED
        self._token_address = ""
        self._records: Dict[str, VestingRecord] = {}
        self.initial_balance = 0
        self.events: List[VestingEvent] = []

        logger.debug(
            "Vesting ledger created",
            extra={
                "event": "vesting.created",
                "address": self.address,
                "holders": len(holders),
                "owner": short(self.owner),
            }
        )

    # ==================== View Functions ====================

    @property
    def token_address(self) -> str:
        return self._token_address

    @property
    def is_started(self) -> bool:
        return self.lifecycle is VestingLifecycle.INITIALIZED

    def now(self) -> int:
        return read_clock(self._time_provider)

    def beneficiaries(self) -> List[str]:
        return list(self._records)

    def records(self) -> List[VestingRecord]:
        """Copies of every stored record, in creation order."""
        return [replace(record) for record in self._records.values()]

    def get_vesting_record(self, beneficiary: str) -> VestingRecord:
        """
        Return the stored record of ``beneficiary``.

        The returned object is a copy; it reflects what the last claim
        persisted and is never recomputed against the current time.

        Raises:
            InvalidInputError: Empty or zero address
            VestingNotStartedError: Schedules not initialized yet
            RecordNotFoundError: No record for this address
        """
        return replace(self._require_record(beneficiary))

    def preview_claim(self, beneficiary: str, at: Optional[int] = None) -> int:
        """Amount a claim would release at ``at`` (defaults to now). Read-only."""
        record = self._require_record(beneficiary)
        if record.status is VestingStatus.FULLY_CLAIMED:
            return 0
        _, amount = record.releasable(self.now() if at is None else int(at))
        return amount

    def distribution_summary(self) -> Dict[str, Any]:
        """Balances and allocation totals, with the locked share of supply in bp."""
        # An unregistered token address reports zero balance and supply
        token = self.registry.get_token(self._token_address) if self._token_address else None
        balance = token.balance_of(self.address) if token else 0
        total_supply = token.total_supply if token else 0
        allocated = sum(record.total_amount for record in self._records.values())
        claimed = sum(record.claimed_amount for record in self._records.values())
        return {
            "address": self.address,
            "token": self._token_address,
            "lifecycle": self.lifecycle.value,
            "balance": balance,
            "initial_balance": self.initial_balance,
            "total_allocated": allocated,
            "total_claimed": claimed,
            "outstanding": allocated - claimed,
            "total_supply": total_supply,
            "locked_share_bp": balance * BP_CONVERTER // total_supply if total_supply else 0,
            "records": len(self._records),
        }

    # ==================== Admin Functions ====================

    def set_asset_ledger(self, caller: str, new_address: str) -> None:
        """
        Point the ledger at a different token.

        Existing records keep their amounts; only future transfers are drawn
        from the new token.

        Raises:
            AuthorizationError: Caller is not the owner
            ConfigurationError: Zero or empty address
            NoOpError: Address equals the current token
        """
        self._require_owner(caller)
        if is_zero_address(new_address):
            raise ConfigurationError("Vesting: Invalid token address")
        new_norm = normalize_address(new_address)
        if new_norm == self._token_address:
            raise NoOpError("Vesting: Same token", details={"token": new_norm})

        old = self._token_address
        self._token_address = new_norm
        self._emit(VestingEvent(
            event_type=ASSET_LEDGER_CHANGED,
            timestamp=self.now(),
            old_address=old,
            new_address=new_norm,
        ))

        if self.is_started:
            # Recorded entitlements are not rescaled against the new token
            logger.warning(
                "Token changed after vesting started",
                extra={
                    "event": "vesting.token_changed_after_start",
                    "old": old,
                    "new": new_norm,
                    "outstanding": sum(
                        r.total_amount - r.claimed_amount for r in self._records.values()
                    ),
                }
            )
        else:
            logger.info(
                "Vesting token changed",
                extra={"event": "vesting.token_changed", "old": old, "new": new_norm},
            )

    def initialize_schedules(self, caller: str) -> List[VestingRecord]:
        """
        Create every vesting record from the balance the ledger holds.

        Callable exactly once, by the owner.

        Returns:
            Copies of the created records

        Raises:
            AuthorizationError: Caller is not the owner
            AlreadyStartedError: Schedules were already initialized
            ConfigurationError: Token not configured or not deployed
            InsufficientBalanceError: Ledger balance is zero or too small to
                give every beneficiary a non-zero amount
        """
        self._require_owner(caller)
        if self.is_started:
            raise AlreadyStartedError("Vesting: Initial vestings already started")
        if not self._token_address:
            raise ConfigurationError("Vesting: Invalid token address")

        token = self._resolve_token()
        balance = token.balance_of(self.address)
        if balance == 0:
            raise InsufficientBalanceError(
                "Vesting: Insufficient balance",
                details={"address": self.address, "token": self._token_address},
            )

        start_time = self.now()
        holders_pool, team_amount, partners_amount = self.plan.split(balance)
        share, remainder = divmod(holders_pool, len(self.initial_holders))

        records: Dict[str, VestingRecord] = {}
        try:
            for index, holder in enumerate(self.initial_holders):
                records[holder] = self._new_record(
                    holder,
                    share + (1 if index < remainder else 0),
                    start_time,
                    self.plan.holder_periods,
                    self.plan.holder_period_duration,
                )
            for account, amount in ((self.team, team_amount), (self.partners, partners_amount)):
                records[account] = self._new_record(
                    account,
                    amount,
                    start_time,
                    self.plan.lock_periods,
                    self.plan.lock_period_duration,
                )
        except InvalidInputError as exc:
            raise InsufficientBalanceError(
                "Vesting: Insufficient balance",
                details={"balance": balance, "reason": exc.message},
            ) from exc

        self._records = records
        self.initial_balance = balance
        self.lifecycle = VestingLifecycle.INITIALIZED
        self._emit(VestingEvent(event_type=SCHEDULES_INITIALIZED, timestamp=start_time))

        if self.metrics:
            self.metrics.record_initialization(len(records))

        logger.info(
            "Vesting schedules initialized",
            extra={
                "event": "vesting.initialized",
                "balance": balance,
                "holders_pool": holders_pool,
                "holder_share": share,
                "team": team_amount,
                "partners": partners_amount,
                "start_time": start_time,
            }
        )
        return self.records()

    # ==================== Claims ====================

    def claim(self, beneficiary: str) -> int:
        """
        Release whatever ``beneficiary`` has newly unlocked.

        A claim before the next period completes is not an error: it returns
        0 and transfers nothing.

        Returns:
            Amount transferred, in base units

        Raises:
            InvalidInputError: Empty or zero address
            VestingNotStartedError: Schedules not initialized yet
            RecordNotFoundError: No record for this address
            AlreadyFullyClaimedError: Record already paid out
            ConfigurationError: Token not resolvable
            InsufficientBalanceError: Ledger balance below the release
            TransferFailedError: Token rejected the transfer
        """
        try:
            record = self._require_record(beneficiary)
            if record.status is VestingStatus.FULLY_CLAIMED:
                raise AlreadyFullyClaimedError(
                    "Vesting: Vesting already claimed",
                    details={"beneficiary": record.beneficiary},
                )
        except (InvalidInputError, RecordNotFoundError, AlreadyFullyClaimedError):
            self._record_claim_metric("rejected")
            raise

        now = self.now()
        periods, amount = record.releasable(now)
        if amount == 0:
            self._record_claim_metric("empty")
            logger.debug(
                "Nothing to claim",
                extra={
                    "event": "vesting.claim_empty",
                    "beneficiary": short(record.beneficiary),
                    "last_claimed_period": record.last_claimed_period,
                }
            )
            return 0

        token = self._resolve_token()
        snapshot = replace(record)

        record.claimed_amount += amount
        record.last_claimed_period = periods
        if record.claimed_amount == record.total_amount:
            record.status = VestingStatus.FULLY_CLAIMED

        try:
            token.transfer(self.address, record.beneficiary, amount)
        except TokenBalanceError as exc:
            self._records[record.beneficiary] = snapshot
            self._record_claim_metric("failed")
            raise InsufficientBalanceError(
                "Vesting: Insufficient balance",
                details={"beneficiary": record.beneficiary, "amount": amount, **exc.details},
            ) from exc
        except TokenError as exc:
            self._records[record.beneficiary] = snapshot
            self._record_claim_metric("failed")
            raise TransferFailedError(
                f"Vesting: Transfer failed: {exc.message}",
                details={"beneficiary": record.beneficiary, "amount": amount},
            ) from exc

        self._emit(VestingEvent(
            event_type=VESTING_CLAIMED,
            timestamp=now,
            beneficiary=record.beneficiary,
            amount=amount,
        ))
        if self.metrics:
            self.metrics.record_claim(
                "released",
                amount=amount,
                fully_claimed=record.status is VestingStatus.FULLY_CLAIMED,
            )

        logger.info(
            "Vesting claimed",
            extra={
                "event": "vesting.claimed",
                "beneficiary": short(record.beneficiary),
                "amount": amount,
                "period": periods,
                "claimed_amount": record.claimed_amount,
                "status": record.status.name,
            }
        )
        return amount

    # ==================== Helpers ====================

    def _new_record(
        self, beneficiary: str, amount: int, start_time: int, periods: int, duration: int
    ) -> VestingRecord:
        return VestingRecord(
            status=VestingStatus.ACTIVE,
            beneficiary=beneficiary,
            total_amount=amount,
            claimed_amount=0,
            start_time=start_time,
            claimable_periods=periods,
            period_duration=duration,
            last_claimed_period=0,
        )

    def _require_owner(self, caller: str) -> None:
        if normalize_address(caller) != self.owner:
            raise AuthorizationError(
                "Ownable: caller is not the owner",
                details={"caller": normalize_address(caller)},
            )

    def _require_record(self, beneficiary: str) -> VestingRecord:
        if is_zero_address(beneficiary):
            raise InvalidInputError("Vesting: Invalid user address")
        if not self.is_started:
            raise VestingNotStartedError("Vesting: Vestings not started")
        beneficiary_norm = normalize_address(beneficiary)
        record = self._records.get(beneficiary_norm)
        if record is None:
            raise RecordNotFoundError(
                "Vesting: No vesting for user",
                details={"beneficiary": beneficiary_norm},
            )
        return record

    def _resolve_token(self) -> FungibleToken:
        token = self.registry.get_token(self._token_address)
        if token is None:
            raise ConfigurationError(
                "Vesting: Invalid token address",
                details={"token": self._token_address},
            )
        return token

    def _emit(self, event: VestingEvent) -> None:
        self.events.append(event)

    def _record_claim_metric(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_claim(outcome)

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        """Serialize ledger state to dictionary."""
        return {
            "address": self.address,
            "owner": self.owner,
            "initial_holders": list(self.initial_holders),
            "team": self.team,
            "partners": self.partners,
            "token": self._token_address,
            "lifecycle": self.lifecycle.value,
            "initial_balance": self.initial_balance,
            "plan": {
                "holders_bp": self.plan.holders_bp,
                "team_bp": self.plan.team_bp,
                "partners_bp": self.plan.partners_bp,
                "holder_periods": self.plan.holder_periods,
                "holder_period_duration": self.plan.holder_period_duration,
                "lock_periods": self.plan.lock_periods,
                "lock_period_duration": self.plan.lock_period_duration,
            },
            "records": [record.to_dict() for record in self._records.values()],
            "events": [event.to_dict() for event in self.events],
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        registry: TokenRegistry,
        time_provider: Optional[TimeProvider] = None,
        metrics: Optional[VestingMetrics] = None,
    ) -> "VestingLedger":
        """Deserialize ledger state from dictionary."""
        ledger = cls(
            owner=data["owner"],
            initial_holders=data["initial_holders"],
            team=data["team"],
            partners=data["partners"],
            registry=registry,
            address=data["address"],
            time_provider=time_provider,
            plan=AllocationPlan(**data.get("plan", {})),
            metrics=metrics,
        )
        ledger._token_address = data.get("token", "")
        ledger.lifecycle = VestingLifecycle(data.get("lifecycle", VestingLifecycle.UNINITIALIZED.value))
        ledger.initial_balance = int(data.get("initial_balance", 0))
        ledger._records = {
            record.beneficiary: record
            for record in (VestingRecord.from_dict(item) for item in data.get("records", []))
        }
        ledger.events = [VestingEvent.from_dict(item) for item in data.get("events", [])]
        if metrics:
            metrics.observe_records(
                len(ledger._records),
                sum(1 for r in ledger._records.values() if r.status is VestingStatus.FULLY_CLAIMED),
            )
        return ledger
