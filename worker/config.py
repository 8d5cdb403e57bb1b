"""
Settings for the worker process.

The coordinator passes the worker's index, ports and its own control URL
through the environment when it spawns the process.
"""
from common.utils import get_env_float, get_env_int, get_env_str


# Node identity (0 when running standalone)
WORKER_INDEX = get_env_int("WORKER_INDEX", 0)

# Server settings
HOST = get_env_str("HOST", "127.0.0.1")
PORT = get_env_int("PORT", 4000)
CONTROL_PORT = get_env_int("CONTROL_PORT", 5000)

# Replication; no coordinator means no events are published
COORDINATOR_URL = get_env_str("COORDINATOR_URL", "")
REPLICATION_TIMEOUT = get_env_float("REPLICATION_TIMEOUT", 2.0)  # seconds
REPLICATION_QUEUE_SIZE = get_env_int("REPLICATION_QUEUE_SIZE", 100)

USERS_ENDPOINT = "/api/users"
