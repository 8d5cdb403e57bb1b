"""
Settings for the coordinator process.
"""
import os

from common.utils import get_env_float, get_env_int, get_env_str


# Server settings
HOST = get_env_str("HOST", "127.0.0.1")
PORT = get_env_int("PORT", 4000)
CONTROL_PORT = get_env_int("CONTROL_PORT", 5000)

# Pool size is read once; the same value bounds spawning and the round-robin cursor
WORKERS = get_env_int("WORKERS", os.cpu_count() or 1)

# Timeouts
PROXY_TIMEOUT = get_env_float("PROXY_TIMEOUT", 30.0)  # seconds
REPLICATION_TIMEOUT = get_env_float("REPLICATION_TIMEOUT", 2.0)  # seconds
REPLICATION_QUEUE_SIZE = get_env_int("REPLICATION_QUEUE_SIZE", 100)

# Waiting for workers to come up
WORKER_STARTUP_ATTEMPTS = get_env_int("WORKER_STARTUP_ATTEMPTS", 50)
WORKER_STARTUP_WAIT = get_env_float("WORKER_STARTUP_WAIT", 0.2)  # seconds
MONITOR_INTERVAL = get_env_float("MONITOR_INTERVAL", 1.0)  # seconds
