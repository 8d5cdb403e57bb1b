"""
File: common/logging.py
Unified logging for the coordinator and the workers.
JSON lines on stdout, configurable debug levels and an optional rotating log file.
"""
import datetime
import json
import logging
import os
import sys
import time
from logging.handlers import RotatingFileHandler
from typing import Optional

# Debug configuration with multiple levels
DEBUG = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")
DEBUG_LEVEL = os.getenv("DEBUG_LEVEL", "basic").lower()  # Levels: basic, advanced, trace
LOG_DIR = os.getenv("LOG_DIR", "")

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "IMPORTANT": 25,  # Between INFO and WARNING
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL
}

logging.addLevelName(LEVELS["IMPORTANT"], "IMPORTANT")


def _important(self, message, *args, **kwargs):
    if self.isEnabledFor(LEVELS["IMPORTANT"]):
        self._log(LEVELS["IMPORTANT"], message, args, **kwargs)


logging.Logger.important = _important

start_time = time.time()


class NodeFilter(logging.Filter):
    """Stamps every record with the node id of the current process."""

    def __init__(self, node_id: Optional[int]):
        super().__init__()
        self.node_id = node_id

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "node_id", None) is None:
            record.node_id = self.node_id
        return True


def setup_logging(component_name: str, debug: bool = None, debug_level: str = None,
                  log_dir: str = None, node_id: Optional[int] = None) -> logging.Logger:
    """
    Configure logging for a component.

    Args:
        component_name: Component name ("coordinator", "worker-3", ...)
        debug: If True, enables DEBUG logs (overrides the environment)
        debug_level: Debug level (basic, advanced, trace) (overrides the environment)
        log_dir: Directory for log files; console only when empty
        node_id: Worker index, 0 for the coordinator

    Returns:
        logging.Logger: Logger named after the component
    """
    debug_enabled = debug if debug is not None else DEBUG
    debug_level_value = debug_level if debug_level is not None else DEBUG_LEVEL
    logs_directory = log_dir if log_dir is not None else LOG_DIR
    level = logging.DEBUG if debug_enabled else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    detailed = debug_enabled and debug_level_value in ("advanced", "trace")
    node_filter = NodeFilter(node_id)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(JsonFormatter(component_name, detailed=detailed))
    console_handler.addFilter(node_filter)
    root_logger.addHandler(console_handler)

    if logs_directory:
        os.makedirs(logs_directory, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(logs_directory, f"{component_name}.log"),
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5
        )
        file_handler.setLevel(level)
        # Always detailed on disk
        file_handler.setFormatter(JsonFormatter(component_name, detailed=True))
        file_handler.addFilter(node_filter)
        root_logger.addHandler(file_handler)

    logger = logging.getLogger(component_name)
    logger.info(f"Logging initialized for {component_name}. Debug: {debug_enabled}, Level: {debug_level_value}")
    return logger


def get_uptime() -> float:
    """Seconds since this process imported the logging module."""
    return time.time() - start_time


class JsonFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON.
    """

    def __init__(self, component: str, detailed: bool = False):
        super().__init__()
        self.component = component
        self.detailed = detailed

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": int(record.created * 1000),  # milliseconds
            "datetime": datetime.datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": self.component,
            "node_id": getattr(record, "node_id", None),
            "message": record.getMessage()
        }

        if self.detailed:
            log_data.update({
                "logger": record.name,
                "module": record.module,
                "function": record.funcName,
                "lineno": record.lineno,
                "process": record.process
            })

        context = getattr(record, "context", None)
        if context:
            log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        return json.dumps(log_data, default=str)
