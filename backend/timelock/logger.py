import json
import logging
import os
import sys
import time

ROOT = "timelock"


def _formatter() -> logging.Formatter:
    formatter = logging.Formatter(
        fmt=json.dumps({
            "ts": "%(asctime)s",
            "level": "%(levelname)s",
            "name": "%(name)s",
            "msg": "%(message)s",
        }),
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    formatter.converter = time.gmtime  # UTC timestamps
    return formatter


def get_logger(name: str = ROOT, level=None, to_file=None) -> logging.Logger:
    """
    Unified structured logger for all timelock components.

    Handlers live on the package root logger only; `timelock.*` children
    propagate to it, so asking for a child never duplicates output.
    """
    root = logging.getLogger(ROOT)

    if level is not None:
        root.setLevel(str(level).upper() if isinstance(level, str) else level)
    elif not root.handlers:
        root.setLevel(os.getenv("TIMELOCK_LOG_LEVEL", "INFO").upper())

    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(_formatter())
        root.addHandler(handler)

    to_file = to_file or os.getenv("TIMELOCK_LOG_FILE")
    if to_file and not any(isinstance(h, logging.FileHandler) for h in root.handlers):
        # Ensure the directory exists before writing
        os.makedirs(os.path.dirname(to_file) or ".", exist_ok=True)
        file_handler = logging.FileHandler(to_file)
        file_handler.setFormatter(_formatter())
        root.addHandler(file_handler)

    return logging.getLogger(name)
