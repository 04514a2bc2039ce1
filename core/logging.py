"""Process-wide logging for the Telas Luciana API.

``configure_logging`` runs once from ``main`` at import time. Handlers go on
the root logger so module loggers (``routers.*``, ``core.*``) only need
``logging.getLogger(__name__)``.
"""

import logging
import os
import sys
from contextvars import ContextVar
from logging.handlers import WatchedFileHandler
from typing import Callable, Optional

# Set by the request middleware, read by utils.logging_helpers
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_FORMAT = "[%(asctime)s.%(msecs)03d] [%(levelname)-5s] [%(name)-24s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that drown request logs at INFO
NOISY_LOGGERS = (
    "urllib3",
    "httpx",
    "httpcore",
    "botocore",
    "boto3",
    "s3transfer",
    "pg8000",
    "apscheduler",
)
UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _install_handler(
    root: logging.Logger,
    handler_type: type,
    build: Callable[[], logging.Handler],
    *,
    level: int,
    formatter: logging.Formatter,
    filename: Optional[str] = None,
) -> Optional[logging.Handler]:
    """Add a handler unless one of the same type (and file) is already there.

    Returns the new handler, or ``None`` when an existing one was kept.
    """
    for existing in root.handlers:
        if not isinstance(existing, handler_type):
            continue
        if filename is None or getattr(existing, "baseFilename", None) == filename:
            return None
    handler = build()
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    return handler


def _install_file_handler(root: logging.Logger, log_path: str, *, level: int, formatter: logging.Formatter) -> None:
    path = os.path.abspath(log_path)
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        _install_handler(
            root,
            WatchedFileHandler,
            lambda: WatchedFileHandler(path, encoding="utf-8"),
            level=level,
            formatter=formatter,
            filename=path,
        )
    except OSError as exc:
        root.warning(f"Log file {path} unavailable, logging to stdout only: {exc}")


def configure_logging(*, environment: str, log_level: str, log_path: str = "") -> int:
    """Route API, uvicorn and library logs through the root logger.

    Safe to call more than once; handlers are never duplicated. Returns the
    numeric level in effect.
    """
    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    root = logging.getLogger()
    root.setLevel(level)
    _install_handler(
        root,
        logging.StreamHandler,
        lambda: logging.StreamHandler(sys.stdout),
        level=level,
        formatter=formatter,
    )
    if log_path.strip():
        _install_file_handler(root, log_path.strip(), level=level, formatter=formatter)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for name in UVICORN_LOGGERS:
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = True
        uv_logger.setLevel(level)
    # The request middleware already logs every request
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    if environment != "production":
        root.debug(f"Logging configured | environment={environment} | level={logging.getLevelName(level)}")
    return level
