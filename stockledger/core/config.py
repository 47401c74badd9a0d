import os

# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/stockledger_db")

# Application Metadata
PROJECT_NAME = "Duka Stock Ledger"
VERSION = "1.0.0"

# Ledger Configuration
LEDGER_MAX_ATTEMPTS = int(os.getenv("LEDGER_MAX_ATTEMPTS", 3)) # Compare-and-swap attempts per operation
LEDGER_TX_TIMEOUT = float(os.getenv("LEDGER_TX_TIMEOUT", 5.0)) # Seconds a single transaction may hold the row
ALLOW_UNRESERVED_SALE = os.getenv("ALLOW_UNRESERVED_SALE", "true").lower() in ("1", "true", "yes")
RECENT_ENTRY_LIMIT = int(os.getenv("RECENT_ENTRY_LIMIT", 10)) # Ledger entries returned with a record

# Outbox Poller Configuration
POLLING_INTERVAL = int(os.getenv("POLLING_INTERVAL", 1)) # Poller checks for new events every N seconds
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", 5)) # Max retries for an event
BATCH_SIZE = int(os.getenv("BATCH_SIZE", 50)) # How many events to fetch per poll
