"""Protocol constants and parameter defaults."""

# Ray (1e27), Aave's fixed-point unit for rates
RAY = 10**27

# Basis points per 100%
BPS = 10_000

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Safe operation types
SAFE_OPERATION_CALL = 0

# Aave referral code (unused by the protocol, must be 0)
AAVE_REFERRAL_CODE = 0

# Rebalance parameter defaults, in bps
DEFAULT_MIN_REBALANCE_THRESHOLD = 100
DEFAULT_SAFETY_MARGIN_APPLIED = 10

# Seconds to wait on an execution adapter before giving up
DEFAULT_EXECUTION_TIMEOUT = 120.0

# Aave accrues per second; used to compound the supply rate into an APY
SECONDS_PER_YEAR = 365 * 24 * 3600

# Rebalance attempts kept in the in-memory journal
DEFAULT_HISTORY_SIZE = 10_000
