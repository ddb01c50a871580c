import os
from decimal import Decimal

# Redis Connection (local persistence)

REDIS_HOST              = "localhost"
REDIS_PORT              = 6379
REDIS_LOCAL_DB          = 2          # Logical DB for share links / backup settings
REDIS_SETTLEMENT_DB     = 3          # Logical DB for the mock settlement ledger
REDIS_SOCKET_TIMEOUT    = 5          # seconds

# Key Namespace Prefixes

SHARE_KEY_PREFIX        = "share:v1:link"        # share:v1:link:{link_id}
SHARE_IDX_KEY           = "share:v1:idx"         # zset of link ids by created_at
BACKUP_SETTINGS_KEY     = "backup:v1:settings"
SETTLE_KEY_PREFIX       = "settle:v1:deal"       # settle:v1:deal:{deal_id}
SETTLE_IDX_KEY          = "settle:v1:idx"

# Deal Economics

BYTES_PER_GB                = 1024 ** 3
DEFAULT_PRICE_PER_GB        = Decimal("0.0001")
RETRIEVAL_FEE               = Decimal("0.0001")
COST_QUANTUM                = Decimal("1e-18")  # NUMERIC(38,18)
DEAL_DURATION_DAYS          = 30
REPLICATION_FACTOR          = 3
COLLATERAL_RATIO            = Decimal("0.1")
RETRIEVAL_PRICE_RATIO       = Decimal("0.01")
INITIAL_WALLET_BALANCE      = Decimal("10")

# Deal Statuses

VALID_STATUSES      = {"pending", "active", "completed", "failed", "expired"}
RETRIEVABLE_STATUSES = {"active", "completed"}

# Activation

# Original behaviour: a failed settlement call still activates the deal.
ACTIVATE_ON_SETTLEMENT_FAILURE = True

# Batch Admission

BATCH_PACING_SECONDS    = 0.5

# Settlement Backend

SETTLEMENT_BACKEND      = os.environ.get("DSC_SETTLEMENT_BACKEND", "mock")
SETTLEMENT_RPC_URL      = os.environ.get("DSC_SETTLEMENT_RPC_URL", "http://localhost:8545")
SETTLEMENT_CONTRACT     = "0x1234567890123456789012345678901234567890"
SETTLEMENT_TIMEOUT      = 30.0
MOCK_SETTLE_DELAY       = 2.0       # seconds, simulated block confirmation
MOCK_RETRIEVE_DELAY     = 1.0
MOCK_VERIFY_SUCCESS_RATE = 0.8
MOCK_CLIENT_ADDRESS     = "mock-client-address"

# Share Links

SHARE_BASE_URL          = "https://decosecure.io/s"
SHARE_DEFAULT_EXPIRY_DAYS = 7
SHARE_ID_LENGTH         = 9
SHARE_OPTIMISTIC_LOCK_RETRIES = 3

# Backup Settings Bounds

VALID_BACKUP_FREQUENCIES = {"hourly", "daily", "weekly", "monthly"}
VALID_RETENTION_PERIODS  = {"30days", "90days", "1year", "forever"}
REPLICATION_RANGE        = (1, 10)
COMPRESSION_RANGE        = (0, 9)
MAX_VERSIONS_RANGE       = (1, 100)
