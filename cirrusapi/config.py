import os
from dotenv import load_dotenv

load_dotenv()

PG_HOST = os.getenv("PG_HOST", "localhost")
PG_PORT = int(os.getenv("PG_PORT", "5432"))
PG_DATABASE = os.getenv("PG_DATABASE", "postgres")
PG_USER = os.getenv("PG_USER", "postgres")
PG_PASSWORD = os.getenv("PG_PASSWORD", "")
PG_MIN_CONNECTIONS = int(os.getenv("PG_MIN_CONNECTIONS", "10"))
PG_MAX_CONNECTIONS = int(os.getenv("PG_MAX_CONNECTIONS", "50"))
PG_COMMAND_TIMEOUT = float(os.getenv("PG_COMMAND_TIMEOUT", "60"))

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DEFAULT_PAGE_LIMIT = int(os.getenv("DEFAULT_PAGE_LIMIT", "10"))
MAX_PAGE_LIMIT = int(os.getenv("MAX_PAGE_LIMIT", "50"))

# Use one transaction for a retraction when the store can do it
ATOMIC_RETRACTION = os.getenv("ATOMIC_RETRACTION", "true").lower() in ("1", "true", "yes")

# Every table holding rows tied to a block height
RETRACTION_TABLES = (
    "contract_calls",
    "contract_code",
    "token_holder_changes",
    "non_fungible_assets",
    "non_fungible_sales",
)
