import asyncio
import logging
import os
import re
import time
import uuid
from typing import Any

import uvicorn

logger = logging.getLogger(__name__)

# Canonical 8-4-4-4-12 form with version and variant bits, plus nil and max
UUID_PATTERN = re.compile(
    r"(?:[0-9a-f]{8}-[0-9a-f]{4}-[1-8][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}"
    r"|00000000-0000-0000-0000-000000000000"
    r"|ffffffff-ffff-ffff-ffff-ffffffffffff)",
    re.IGNORECASE,
)


def get_env_var(var_name: str, default: Any = None) -> Any:
    """
    Get an environment variable with an optional default.

    Args:
        var_name: Name of the environment variable
        default: Value returned when the variable is not set

    Returns:
        The variable's value or the default
    """
    return os.environ.get(var_name, default)


def get_env_str(var_name: str, default: str = "") -> str:
    return str(get_env_var(var_name, default))


def get_env_int(var_name: str, default: int = 0) -> int:
    value = get_env_var(var_name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid integer in {var_name}={value!r}, using {default}")
        return default


def get_env_float(var_name: str, default: float = 0.0) -> float:
    value = get_env_var(var_name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Invalid number in {var_name}={value!r}, using {default}")
        return default


def get_debug_mode() -> bool:
    """
    Check whether debug mode is enabled.

    Returns:
        bool: True if DEBUG is set to true, 1 or yes
    """
    debug_env = get_env_var("DEBUG", "false").lower()
    return debug_env in ("true", "1", "yes")


def generate_id() -> str:
    """
    Generate a unique id using UUID4.

    Returns:
        str: The generated id
    """
    return str(uuid.uuid4())


def is_valid_uuid(value: str) -> bool:
    """
    Check that a string is a textual UUID in canonical form.

    Args:
        value: Candidate identifier

    Returns:
        bool: True if the identifier is well-formed
    """
    return isinstance(value, str) and UUID_PATTERN.fullmatch(value) is not None


def current_timestamp() -> int:
    """
    Current time in milliseconds.

    Returns:
        int: Unix timestamp in milliseconds
    """
    return int(time.time() * 1000)


async def run_servers(*servers: uvicorn.Server) -> None:
    """
    Serve several uvicorn servers on the same event loop.

    Used to run a public app and a private control app side by side in
    one single-threaded process.
    """
    await asyncio.gather(*(server.serve() for server in servers))
