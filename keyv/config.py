# keyv/config.py
import os

# Table / collection / database name used when a builder is not given one.
DEFAULT_NAMESPACE = os.getenv("KEYV_DEFAULT_NAMESPACE", "keyv")

# Echo SQL emitted by engines the SQL builder creates from a URI.
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

# Redis: keys fetched per SCAN round trip when clearing a namespace.
REDIS_SCAN_COUNT = int(os.getenv("KEYV_REDIS_SCAN_COUNT", "500"))

# MongoDB: how long a client built from a URI waits for a usable server.
MONGO_SERVER_SELECTION_TIMEOUT_MS = int(os.getenv("KEYV_MONGO_TIMEOUT_MS", "5000"))
