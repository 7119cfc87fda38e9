from decimal import Decimal
import os
from dotenv import load_dotenv
load_dotenv()
# ---- Etherscan ----
ETHERSCAN_API_KEY = os.environ.get("ETHERSCAN_API_KEY")
ETHERSCAN_CHAIN_ID = 1          # Ethereum mainnet
ETHERSCAN_BASE_URL = os.environ.get("ETHERSCAN_BASE_URL", "https://api.etherscan.io/v2/api")
ETHERSCAN_REQUESTS_PER_SEC = float(os.environ.get("ETHERSCAN_REQUESTS_PER_SEC", "4.0"))

# Interactive wallet lookups (balance, wallet sync)
WALLET_TIMEOUT_SEC = 5
WALLET_MAX_RETRIES = 3
WALLET_RETRY_DELAY_SEC = 1.0
WALLET_PAGE_SIZE = 10

# Background batch fetches (node expansion)
FETCH_TIMEOUT_SEC = 15
FETCH_MAX_RETRIES = 5
FETCH_RETRY_DELAY_SEC = 2.0
FETCH_MAX_JITTER_SEC = 5.0
FETCH_WORKERS = int(os.environ.get("FETCH_WORKERS", "4"))
BATCH_PAGE_SIZE = 10

# ---- Graph store ----
GRAPH_DB_URL = os.environ.get("GRAPH_DB_URL", "sqlite:///walletgraph.db")

# Counterparties are stored with these until their real balance is fetched
PLACEHOLDER_BALANCE = Decimal(os.environ.get("PLACEHOLDER_BALANCE", "100"))
PLACEHOLDER_TX_COUNT = int(os.environ.get("PLACEHOLDER_TX_COUNT", "100"))

# ---- Layout ----
CANVAS_WIDTH = 800.0
CANVAS_HEIGHT = 600.0
CANVAS_PADDING = 50.0
NODE_RADIUS = 40.0
LINK_DISTANCE = 200.0
CHARGE_STRENGTH = -600.0
CHARGE_DISTANCE_MAX = 600.0
CENTER_STRENGTH = 0.05
COLLIDE_RADIUS = NODE_RADIUS + 10.0
ANCHOR_RELEASE_TICKS = 120
EXPANSION_BASE_RADIUS = 150.0
EXPANSION_RADIUS_STEP = 20.0

# ---- Logging ----
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
