
# Default target (BApp manager on the Pectra devnet)
DEFAULT_RPC_URL = "https://rpc.pectra-devnet-7.ethpandaops.io/"
DEFAULT_CONTRACT_ADDRESS = "0x5217C9034048B1Fa9Fb1e300F94fCd7002138Ea5"
DEFAULT_CHAIN_ID = 7032118028
DEFAULT_ABI_PATH = "contract-abi.json"
DEFAULT_DATA_DIR = "data"

# Scan tuning
DEFAULT_BATCH_SIZE = 25
DEFAULT_START_BLOCK = 0
DEFAULT_PROGRESS_INTERVAL = 5.0  # seconds between progress reports
DEFAULT_BATCH_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_SEARCH_WINDOW = 5000
DEFAULT_RECENT_COUNT = 10

# JSON-RPC transport
DEFAULT_RPC_TIMEOUT = 30
DEFAULT_RPC_MAX_ATTEMPTS = 6
MAX_BACKOFF = 8.0

UNKNOWN_FUNCTION = "unknown"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# function name -> "Event.field" copied into TransactionRecord.extra
DEFAULT_ANNOTATIONS = {
    "createStrategy": "StrategyCreated.strategyId",
}
