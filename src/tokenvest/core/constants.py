"""
tokenvest Constants

Magic numbers used by the token genesis and the vesting engine, organized by
category. All percentages are integer basis points where BP_CONVERTER (10,000)
means 100%.

NOTE: Changes to allocation constants (marked with [GENESIS]) change how the
fixed supply is split. They must stay summed to BP_CONVERTER.
"""

from typing import Final

# =============================================================================
# TIME CONSTANTS (in seconds)
# =============================================================================

SECONDS_PER_MINUTE: Final[int] = 60
SECONDS_PER_HOUR: Final[int] = 3600  # 60 * 60
SECONDS_PER_DAY: Final[int] = 86400  # 60 * 60 * 24
SECONDS_PER_30_DAYS: Final[int] = 2592000  # 60 * 60 * 24 * 30

# =============================================================================
# ADDRESS CONSTANTS
# =============================================================================

ZERO_ADDRESS: Final[str] = "0x" + "0" * 40

# =============================================================================
# TOKEN CONSTANTS
# =============================================================================

TOKEN_NAME: Final[str] = "BORROE"
TOKEN_SYMBOL: Final[str] = "$ROE"
TOKEN_DECIMALS: Final[int] = 18  # Standard ERC20 decimals
WEI_PER_TOKEN: Final[int] = 10**18  # 1 token = 10^18 base units
MAX_TOTAL_SUPPLY: Final[int] = 1_000_000_000 * WEI_PER_TOKEN
UINT256_MAX: Final[int] = 2**256 - 1

# =============================================================================
# GENESIS ALLOCATION (basis points of max supply) [GENESIS]
# =============================================================================

BP_CONVERTER: Final[int] = 10_000  # 100.00%

TO_VESTING_BP: Final[int] = 5000  # 50% vested for initial holders
TO_LOCK_TEAM_BP: Final[int] = 375  # 3.75% locked for the team
TO_LOCK_PARTNERS_BP: Final[int] = 375  # 3.75% locked for partners
TO_LIQUIDITY_POOL_BP: Final[int] = 1000
TO_EXCHANGE_LISTING_BP: Final[int] = 1000
TO_MARKETING_BP: Final[int] = 1000
TO_TREASURY_BP: Final[int] = 1000
TO_REWARDS_BP: Final[int] = 250

# Everything the vesting contract receives at genesis
TO_VESTING_CONTRACT_BP: Final[int] = TO_VESTING_BP + TO_LOCK_TEAM_BP + TO_LOCK_PARTNERS_BP

# =============================================================================
# VESTING SCHEDULE CONSTANTS
# =============================================================================

HOLDER_CLAIMABLE_PERIODS: Final[int] = 3
HOLDER_PERIOD_DURATION: Final[int] = SECONDS_PER_30_DAYS  # one month
LOCK_CLAIMABLE_PERIODS: Final[int] = 1  # cliff
LOCK_PERIOD_DURATION: Final[int] = 24 * SECONDS_PER_30_DAYS  # 24 months


__all__ = [
    'SECONDS_PER_MINUTE', 'SECONDS_PER_HOUR', 'SECONDS_PER_DAY', 'SECONDS_PER_30_DAYS',
    'ZERO_ADDRESS',
    'TOKEN_NAME', 'TOKEN_SYMBOL', 'TOKEN_DECIMALS', 'WEI_PER_TOKEN', 'MAX_TOTAL_SUPPLY',
    'UINT256_MAX',
    'BP_CONVERTER', 'TO_VESTING_BP', 'TO_LOCK_TEAM_BP', 'TO_LOCK_PARTNERS_BP',
    'TO_LIQUIDITY_POOL_BP', 'TO_EXCHANGE_LISTING_BP', 'TO_MARKETING_BP', 'TO_TREASURY_BP',
    'TO_REWARDS_BP', 'TO_VESTING_CONTRACT_BP',
    'HOLDER_CLAIMABLE_PERIODS', 'HOLDER_PERIOD_DURATION', 'LOCK_CLAIMABLE_PERIODS',
    'LOCK_PERIOD_DURATION',
]
