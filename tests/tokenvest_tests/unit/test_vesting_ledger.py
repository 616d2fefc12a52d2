import logging

import pytest

from tokenvest.contracts.vesting import (
    ASSET_LEDGER_CHANGED,
    SCHEDULES_INITIALIZED,
    VESTING_CLAIMED,
    AllocationPlan,
    VestingLedger,
    VestingLifecycle,
    VestingRecord,
    VestingStatus,
)
from tokenvest.core.constants import (
    HOLDER_PERIOD_DURATION,
    LOCK_PERIOD_DURATION,
    SECONDS_PER_DAY,
    SECONDS_PER_30_DAYS,
    ZERO_ADDRESS,
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
    StateError,
    TransferFailedError,
    VestingNotStartedError,
)
from tokenvest.core.metrics import VestingMetrics
from vesting_fixtures import HOLDERS, OUTSIDER, OWNER, PARTNERS, START, TEAM


def _fund(registry, ledger, max_supply):
    """Deploy a token whose whole supply sits on the ledger."""
    token = registry.create_token(OWNER, {ledger.address: 10_000}, max_supply=max_supply)
    ledger.set_asset_ledger(OWNER, token.address)
    return token


# ==================== Construction ====================


def test_constructor_rejects_empty_holders(registry):
    with pytest.raises(InvalidInputError, match="No initial holders"):
        VestingLedger(OWNER, [], TEAM, PARTNERS, registry)


def test_constructor_rejects_zero_team_and_partners(registry):
    with pytest.raises(InvalidInputError, match="Invalid team address"):
        VestingLedger(OWNER, HOLDERS, ZERO_ADDRESS, PARTNERS, registry)
    with pytest.raises(InvalidInputError, match="Invalid partners address"):
        VestingLedger(OWNER, HOLDERS, TEAM, "", registry)


def test_constructor_rejects_zero_holder_and_duplicates(registry):
    with pytest.raises(InvalidInputError):
        VestingLedger(OWNER, [HOLDERS[0], ZERO_ADDRESS], TEAM, PARTNERS, registry)
    with pytest.raises(InvalidInputError, match="Duplicate"):
        VestingLedger(OWNER, [HOLDERS[2], HOLDERS[2].upper()], TEAM, PARTNERS, registry)
    with pytest.raises(InvalidInputError, match="Duplicate"):
        VestingLedger(OWNER, HOLDERS, TEAM, TEAM, registry)


def test_new_ledger_is_uninitialized(ledger):
    assert ledger.lifecycle is VestingLifecycle.UNINITIALIZED
    assert not ledger.is_started
    assert ledger.token_address == ""
    assert ledger.beneficiaries() == []
    assert ledger.address.startswith("0x") and len(ledger.address) == 42


# ==================== Initialization ====================


def test_initialize_splits_balance_into_records(ledger, token):
    balance = token.balance_of(ledger.address)

    records = ledger.initialize_schedules(OWNER)

    assert ledger.lifecycle is VestingLifecycle.INITIALIZED
    assert ledger.is_started
    assert len(records) == 5
    assert ledger.beneficiaries() == HOLDERS + [TEAM, PARTNERS]
    assert sum(r.total_amount for r in records) == balance

    team = ledger.get_vesting_record(TEAM)
    partners = ledger.get_vesting_record(PARTNERS)
    assert team.total_amount == balance * 375 // 5750
    assert partners.total_amount == team.total_amount
    assert team.claimable_periods == 1
    assert team.period_duration == LOCK_PERIOD_DURATION

    pool = balance - team.total_amount - partners.total_amount
    holder_totals = [ledger.get_vesting_record(h).total_amount for h in HOLDERS]
    assert sum(holder_totals) == pool
    assert max(holder_totals) - min(holder_totals) <= 1
    for holder in HOLDERS:
        record = ledger.get_vesting_record(holder)
        assert record.status is VestingStatus.ACTIVE
        assert record.claimed_amount == 0
        assert record.start_time == START
        assert record.claimable_periods == 3
        assert record.period_duration == HOLDER_PERIOD_DURATION
        assert record.last_claimed_period == 0


def test_initialize_distributes_remainder_to_first_holders(registry, ledger):
    _fund(registry, ledger, max_supply=1001)

    ledger.initialize_schedules(OWNER)

    totals = [ledger.get_vesting_record(h).total_amount for h in HOLDERS]
    assert totals == [291, 290, 290]
    assert ledger.get_vesting_record(TEAM).total_amount == 65
    assert ledger.get_vesting_record(PARTNERS).total_amount == 65
    assert sum(r.total_amount for r in ledger.records()) == 1001


def test_initialize_emits_event_and_keeps_getter_order(started_ledger):
    assert [e.event_type for e in started_ledger.events] == [
        ASSET_LEDGER_CHANGED,
        SCHEDULES_INITIALIZED,
    ]
    record = started_ledger.get_vesting_record(HOLDERS[2])
    assert record.as_tuple() == (
        0,
        HOLDERS[2],
        record.total_amount,
        0,
        START,
        3,
        HOLDER_PERIOD_DURATION,
        0,
    )


def test_initialize_twice_fails_and_leaves_state(started_ledger, clock):
    before = started_ledger.to_dict()
    clock.advance(SECONDS_PER_DAY)

    with pytest.raises(AlreadyStartedError, match="already started") as exc_info:
        started_ledger.initialize_schedules(OWNER)

    assert isinstance(exc_info.value, StateError)
    assert started_ledger.to_dict() == before


def test_initialize_requires_owner(ledger, token):
    with pytest.raises(AuthorizationError):
        ledger.initialize_schedules(OUTSIDER)
    assert not ledger.is_started


def test_initialize_requires_token(ledger):
    with pytest.raises(ConfigurationError, match="Invalid token address"):
        ledger.initialize_schedules(OWNER)


def test_initialize_rejects_zero_balance(registry, ledger):
    empty = registry.create_token(OWNER)
    ledger.set_asset_ledger(OWNER, empty.address)

    with pytest.raises(InsufficientBalanceError, match="Insufficient balance"):
        ledger.initialize_schedules(OWNER)
    assert ledger.lifecycle is VestingLifecycle.UNINITIALIZED


def test_initialize_rejects_balance_too_small_to_split(registry, ledger):
    _fund(registry, ledger, max_supply=10)

    with pytest.raises(InsufficientBalanceError):
        ledger.initialize_schedules(OWNER)
    assert not ledger.is_started
    assert ledger.beneficiaries() == []


def test_initialize_with_unregistered_token(ledger):
    ledger.set_asset_ledger(OWNER, OUTSIDER)
    with pytest.raises(ConfigurationError):
        ledger.initialize_schedules(OWNER)


# ==================== Claims ====================


def test_holder_claims_each_month(started_ledger, token, clock):
    """Three monthly periods; the last one pays the remainder."""
    holder = HOLDERS[0]
    record = started_ledger.get_vesting_record(holder)
    total = record.total_amount
    per_period = total // 3

    clock.advance(10 * SECONDS_PER_DAY)
    assert started_ledger.claim(holder) == 0
    assert token.balance_of(holder) == 0

    clock.set(START + SECONDS_PER_30_DAYS)
    assert started_ledger.claim(holder) == per_period
    assert token.balance_of(holder) == per_period

    clock.set(START + 2 * SECONDS_PER_30_DAYS)
    assert started_ledger.claim(holder) == per_period

    clock.set(START + 3 * SECONDS_PER_30_DAYS)
    assert started_ledger.claim(holder) == total - 2 * per_period

    record = started_ledger.get_vesting_record(holder)
    assert token.balance_of(holder) == total
    assert record.claimed_amount == total
    assert record.last_claimed_period == 3
    assert record.status is VestingStatus.FULLY_CLAIMED

    with pytest.raises(AlreadyFullyClaimedError, match="already claimed"):
        started_ledger.claim(holder)


def test_no_double_claim_within_period(started_ledger, clock):
    holder = HOLDERS[1]
    clock.set(START + SECONDS_PER_30_DAYS)
    first = started_ledger.claim(holder)
    assert first > 0

    clock.advance(20 * SECONDS_PER_DAY)
    assert started_ledger.claim(holder) == 0
    assert started_ledger.get_vesting_record(holder).claimed_amount == first


def test_skipped_periods_are_released_together(started_ledger, clock):
    holder = HOLDERS[2]
    total = started_ledger.get_vesting_record(holder).total_amount

    clock.set(START + 2 * SECONDS_PER_30_DAYS + 5)
    assert started_ledger.claim(holder) == 2 * (total // 3)
    assert started_ledger.get_vesting_record(holder).last_claimed_period == 2

    clock.set(START + 10 * SECONDS_PER_30_DAYS)
    assert started_ledger.claim(holder) == total - 2 * (total // 3)


def test_late_first_claim_releases_everything(started_ledger, clock):
    holder = HOLDERS[0]
    total = started_ledger.get_vesting_record(holder).total_amount
    clock.set(START + 365 * SECONDS_PER_DAY)

    assert started_ledger.claim(holder) == total
    assert started_ledger.get_vesting_record(holder).status is VestingStatus.FULLY_CLAIMED


def test_small_balance_final_period_absorbs_remainder(registry, ledger, clock):
    token = _fund(registry, ledger, max_supply=1000)
    ledger.initialize_schedules(OWNER)
    holder = HOLDERS[0]
    assert ledger.get_vesting_record(holder).total_amount == 290

    released = []
    for period in (1, 2, 3):
        clock.set(START + period * SECONDS_PER_30_DAYS)
        released.append(ledger.claim(holder))

    assert released == [96, 96, 98]
    assert token.balance_of(holder) == 290


def test_claims_are_monotonic(started_ledger, clock):
    holder = HOLDERS[0]
    previous = started_ledger.get_vesting_record(holder)
    for days in (1, 29, 30, 31, 59, 60, 75, 90, 120):
        clock.set(START + days * SECONDS_PER_DAY)
        started_ledger.claim(holder)
        current = started_ledger.get_vesting_record(holder)
        assert current.claimed_amount >= previous.claimed_amount
        assert current.last_claimed_period >= previous.last_claimed_period
        assert current.claimed_amount <= current.total_amount
        previous = current
        if current.status is VestingStatus.FULLY_CLAIMED:
            break
    assert previous.status is VestingStatus.FULLY_CLAIMED


def test_team_cliff(started_ledger, token, clock):
    total = started_ledger.get_vesting_record(TEAM).total_amount

    clock.set(START + 6 * SECONDS_PER_30_DAYS)
    assert started_ledger.claim(TEAM) == 0

    clock.set(START + LOCK_PERIOD_DURATION - 1)
    assert started_ledger.claim(TEAM) == 0
    assert token.balance_of(TEAM) == 0

    clock.set(START + 24 * SECONDS_PER_30_DAYS)
    assert started_ledger.claim(TEAM) == total
    assert token.balance_of(TEAM) == total
    assert started_ledger.get_vesting_record(TEAM).status is VestingStatus.FULLY_CLAIMED


def test_partners_cliff_after_holders_finish(started_ledger, token, clock):
    clock.set(START + LOCK_PERIOD_DURATION)
    for holder in HOLDERS:
        started_ledger.claim(holder)
    started_ledger.claim(TEAM)
    started_ledger.claim(PARTNERS)

    assert token.balance_of(started_ledger.address) == 0
    assert all(r.status is VestingStatus.FULLY_CLAIMED for r in started_ledger.records())


def test_claim_without_record_does_not_touch_token(started_ledger, registry, monkeypatch):
    def _fail(*_args, **_kwargs):
        raise AssertionError("token looked up")

    monkeypatch.setattr(registry, "get_token", _fail)

    with pytest.raises(RecordNotFoundError):
        started_ledger.claim(OUTSIDER)


def test_claim_before_start(ledger, token):
    with pytest.raises(VestingNotStartedError, match="not started") as exc_info:
        ledger.claim(HOLDERS[0])
    assert isinstance(exc_info.value, RecordNotFoundError)
    assert isinstance(exc_info.value, StateError)


def test_claim_rejects_empty_address(started_ledger):
    with pytest.raises(InvalidInputError):
        started_ledger.claim("")
    with pytest.raises(InvalidInputError):
        started_ledger.claim(ZERO_ADDRESS)


def test_paused_token_rolls_back_claim(started_ledger, token, clock):
    holder = HOLDERS[0]
    before = started_ledger.get_vesting_record(holder)
    vesting_balance = token.balance_of(started_ledger.address)
    token.pause(OWNER)
    clock.set(START + SECONDS_PER_30_DAYS)

    with pytest.raises(TransferFailedError) as exc_info:
        started_ledger.claim(holder)

    assert exc_info.value.recoverable is True
    assert started_ledger.get_vesting_record(holder) == before
    assert token.balance_of(started_ledger.address) == vesting_balance
    assert not any(e.event_type == VESTING_CLAIMED for e in started_ledger.events)

    token.unpause(OWNER)
    assert started_ledger.claim(holder) == before.total_amount // 3


def test_drained_balance_rolls_back_claim(started_ledger, token, clock):
    holder = HOLDERS[1]
    before = started_ledger.get_vesting_record(holder)
    token.transfer(started_ledger.address, OUTSIDER, token.balance_of(started_ledger.address))
    clock.set(START + SECONDS_PER_30_DAYS)

    with pytest.raises(InsufficientBalanceError):
        started_ledger.claim(holder)

    assert started_ledger.get_vesting_record(holder) == before


def test_claim_after_token_points_nowhere(started_ledger, clock):
    holder = HOLDERS[0]
    before = started_ledger.get_vesting_record(holder)
    started_ledger.set_asset_ledger(OWNER, OUTSIDER)
    clock.set(START + SECONDS_PER_30_DAYS)

    with pytest.raises(ConfigurationError):
        started_ledger.claim(holder)
    assert started_ledger.get_vesting_record(holder) == before


def test_claim_emits_event(started_ledger, clock):
    clock.set(START + SECONDS_PER_30_DAYS)
    amount = started_ledger.claim(HOLDERS[0])

    event = started_ledger.events[-1]
    assert event.event_type == VESTING_CLAIMED
    assert event.beneficiary == HOLDERS[0]
    assert event.amount == amount
    assert event.timestamp == START + SECONDS_PER_30_DAYS


# ==================== Queries ====================


def test_get_vesting_record_returns_copy(started_ledger):
    record = started_ledger.get_vesting_record(HOLDERS[0])
    record.claimed_amount = record.total_amount

    assert started_ledger.get_vesting_record(HOLDERS[0]).claimed_amount == 0


def test_get_vesting_record_is_case_insensitive(started_ledger):
    upper = "0x" + HOLDERS[2][2:].upper()
    assert started_ledger.get_vesting_record(upper).beneficiary == HOLDERS[2]


def test_get_vesting_record_errors(ledger, token):
    with pytest.raises(VestingNotStartedError):
        ledger.get_vesting_record(HOLDERS[0])
    ledger.initialize_schedules(OWNER)
    with pytest.raises(RecordNotFoundError):
        ledger.get_vesting_record(OUTSIDER)
    with pytest.raises(InvalidInputError):
        ledger.get_vesting_record(ZERO_ADDRESS)


def test_record_is_not_recomputed_on_read(started_ledger, clock):
    clock.set(START + 3 * SECONDS_PER_30_DAYS)
    record = started_ledger.get_vesting_record(HOLDERS[0])
    assert record.claimed_amount == 0
    assert record.last_claimed_period == 0


def test_preview_claim_is_read_only(started_ledger, clock):
    holder = HOLDERS[0]
    total = started_ledger.get_vesting_record(holder).total_amount

    assert started_ledger.preview_claim(holder) == 0
    assert started_ledger.preview_claim(holder, at=START + SECONDS_PER_30_DAYS) == total // 3
    assert started_ledger.preview_claim(holder, at=START + 3 * SECONDS_PER_30_DAYS) == total
    assert started_ledger.get_vesting_record(holder).claimed_amount == 0

    clock.set(START + 3 * SECONDS_PER_30_DAYS)
    started_ledger.claim(holder)
    assert started_ledger.preview_claim(holder) == 0


def test_distribution_summary(started_ledger, token, clock):
    summary = started_ledger.distribution_summary()
    assert summary["lifecycle"] == "initialized"
    assert summary["token"] == token.address
    assert summary["locked_share_bp"] == 5750
    assert summary["total_allocated"] == summary["initial_balance"] == summary["balance"]
    assert summary["records"] == 5

    clock.set(START + SECONDS_PER_30_DAYS)
    amount = started_ledger.claim(HOLDERS[0])
    summary = started_ledger.distribution_summary()
    assert summary["total_claimed"] == amount
    assert summary["balance"] == summary["initial_balance"] - amount
    assert summary["outstanding"] == summary["total_allocated"] - amount


def test_distribution_summary_without_token(ledger):
    summary = ledger.distribution_summary()
    assert summary["balance"] == 0
    assert summary["locked_share_bp"] == 0
    assert summary["lifecycle"] == "uninitialized"


def test_distribution_summary_after_token_moved_to_unknown_address(started_ledger):
    started_ledger.set_asset_ledger(OWNER, OUTSIDER)

    summary = started_ledger.distribution_summary()
    assert summary["token"] == OUTSIDER
    assert summary["balance"] == 0
    assert summary["total_supply"] == 0
    assert summary["locked_share_bp"] == 0
    assert summary["outstanding"] == summary["total_allocated"]


# ==================== Token Reconfiguration ====================


def test_set_asset_ledger_validation(ledger, token):
    with pytest.raises(AuthorizationError):
        ledger.set_asset_ledger(OUTSIDER, token.address)
    with pytest.raises(ConfigurationError, match="Invalid token address"):
        ledger.set_asset_ledger(OWNER, ZERO_ADDRESS)
    with pytest.raises(NoOpError, match="Same token"):
        ledger.set_asset_ledger(OWNER, token.address.upper().replace("0X", "0x"))


def test_set_asset_ledger_after_start_warns(started_ledger, caplog):
    before = [r.total_amount for r in started_ledger.records()]

    with caplog.at_level(logging.WARNING, logger="tokenvest"):
        started_ledger.set_asset_ledger(OWNER, OUTSIDER)

    assert started_ledger.token_address == OUTSIDER
    assert [r.total_amount for r in started_ledger.records()] == before
    assert any(
        getattr(record, "event", None) == "vesting.token_changed_after_start"
        for record in caplog.records
    )
    event = started_ledger.events[-1]
    assert event.event_type == ASSET_LEDGER_CHANGED
    assert event.new_address == OUTSIDER


# ==================== Plans, Records, Serialization ====================


def test_custom_plan_shapes_schedules(registry, clock):
    plan = AllocationPlan(holder_periods=4, holder_period_duration=100, lock_periods=2, lock_period_duration=1000)
    ledger = VestingLedger(OWNER, HOLDERS[:1], TEAM, PARTNERS, registry, time_provider=clock, plan=plan)
    _fund(registry, ledger, max_supply=11_500)
    ledger.initialize_schedules(OWNER)

    holder = ledger.get_vesting_record(HOLDERS[0])
    team = ledger.get_vesting_record(TEAM)
    assert holder.total_amount == 10_000
    assert (holder.claimable_periods, holder.period_duration) == (4, 100)
    assert (team.claimable_periods, team.period_duration) == (2, 1000)

    clock.set(START + 1000)
    assert ledger.claim(TEAM) == team.total_amount // 2


def test_allocation_plan_validation():
    with pytest.raises(ConfigurationError):
        AllocationPlan(holders_bp=0)
    with pytest.raises(ConfigurationError):
        AllocationPlan(holder_periods=0)
    with pytest.raises(ConfigurationError):
        AllocationPlan(lock_period_duration=0)
    assert AllocationPlan().split(5750) == (5000, 375, 375)


def test_vesting_record_validation():
    base = dict(
        status=VestingStatus.ACTIVE,
        beneficiary=HOLDERS[0],
        total_amount=100,
        claimed_amount=0,
        start_time=START,
        claimable_periods=3,
        period_duration=10,
        last_claimed_period=0,
    )
    VestingRecord(**base)
    for field_name, value in (
        ("beneficiary", ZERO_ADDRESS),
        ("total_amount", 0),
        ("claimable_periods", 0),
        ("period_duration", 0),
        ("claimed_amount", 101),
        ("last_claimed_period", 4),
    ):
        with pytest.raises(InvalidInputError):
            VestingRecord(**{**base, field_name: value})


def test_ledger_survives_serialization(started_ledger, registry, clock):
    clock.set(START + SECONDS_PER_30_DAYS)
    started_ledger.claim(HOLDERS[0])

    restored = VestingLedger.from_dict(started_ledger.to_dict(), registry, time_provider=clock)

    assert restored.address == started_ledger.address
    assert restored.lifecycle is VestingLifecycle.INITIALIZED
    assert restored.token_address == started_ledger.token_address
    assert restored.records() == started_ledger.records()
    assert [e.to_dict() for e in restored.events] == [e.to_dict() for e in started_ledger.events]
    assert restored.claim(HOLDERS[0]) == 0


# ==================== Metrics ====================


def test_metrics_track_claim_outcomes(registry, clock):
    metrics = VestingMetrics()
    ledger = VestingLedger(OWNER, HOLDERS, TEAM, PARTNERS, registry, time_provider=clock, metrics=metrics)
    _fund(registry, ledger, max_supply=1000)
    ledger.initialize_schedules(OWNER)

    ledger.claim(HOLDERS[0])
    with pytest.raises(RecordNotFoundError):
        ledger.claim(OUTSIDER)
    clock.set(START + 3 * SECONDS_PER_30_DAYS)
    ledger.claim(HOLDERS[0])

    sample = metrics.registry.get_sample_value
    assert sample("tokenvest_schedules_initialized_total") == 1.0
    assert sample("tokenvest_records") == 5.0
    assert sample("tokenvest_claims_total", {"outcome": "empty"}) == 1.0
    assert sample("tokenvest_claims_total", {"outcome": "rejected"}) == 1.0
    assert sample("tokenvest_claims_total", {"outcome": "released"}) == 1.0
    assert sample("tokenvest_tokens_released_base_units_total") == 290.0
    assert sample("tokenvest_records_fully_claimed") == 1.0
    assert b"tokenvest_claims_total" in metrics.export()


def test_restored_ledger_seeds_record_gauges(started_ledger, registry, clock):
    clock.set(START + 3 * SECONDS_PER_30_DAYS)
    started_ledger.claim(HOLDERS[0])

    metrics = VestingMetrics()
    VestingLedger.from_dict(started_ledger.to_dict(), registry, time_provider=clock, metrics=metrics)

    sample = metrics.registry.get_sample_value
    assert sample("tokenvest_records") == 5.0
    assert sample("tokenvest_records_fully_claimed") == 1.0
    assert sample("tokenvest_schedules_initialized_total") == 0.0
