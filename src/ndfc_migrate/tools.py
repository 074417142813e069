"""
Shared helpers: logging setup, script naming and file permissions.
"""

import logging
import os
import stat
import sys
from datetime import datetime
from pathlib import Path

from rich.logging import RichHandler


def getScriptName():
    """
    Get the name of the current script without path and extension.

    Returns:
        str: Script name without path and .py extension
    """
    script_path = os.path.basename(sys.argv[0])
    script_name = os.path.splitext(script_path)[0]
    return script_name or "ndfc-migrate"


def setupLogging(log_level=logging.INFO, log_file=None, log_dir="logs"):
    """
    Set up logging with rich console output and a plain file handler.

    Args:
        log_level: Logging level (default: INFO)
        log_file: Optional log file name. If None, uses script name with timestamp
        log_dir: Directory for the log file. None disables file logging

    Returns:
        logger: Configured logger instance
    """
    if isinstance(log_level, str):
        log_level = getattr(logging, log_level.upper(), logging.INFO)

    handlers = [RichHandler(rich_tracebacks=True, show_path=False)]
    log_path = None

    if log_dir is not None:
        if log_file is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = f"{getScriptName()}_{timestamp}.log"

        Path(log_dir).mkdir(parents=True, exist_ok=True)
        log_path = os.path.join(log_dir, log_file)

        file_handler = logging.FileHandler(log_path, mode='w')
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(levelname)s - %(name)s:%(funcName)s:%(lineno)d - %(message)s'
        ))
        handlers.append(file_handler)

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True,
    )

    # netmiko/paramiko are chatty at INFO
    logging.getLogger("paramiko").setLevel(logging.WARNING)
    logging.getLogger("netmiko").setLevel(logging.WARNING)

    logger = logging.getLogger("ndfc_migrate")
    if log_path:
        logger.debug(f"Logging initialized. Log file: {log_path}")
    return logger


def set_file_permissions(file_path, permissions=0o644):
    """
    Set file permissions for a given file.

    Returns:
        bool: True if successful, False otherwise
    """
    try:
        os.chmod(file_path, permissions)
        return True
    except OSError as e:
        logging.getLogger(__name__).warning(f"Error setting permissions for {file_path}: {e}")
        return False


def get_file_permissions_string(file_path):
    """Permission string like ls -l without the type column, e.g. 'rw-r--r--'."""
    return stat.filemode(os.stat(file_path).st_mode)[1:]
