"""Logging setup shared by the API process and scripts."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _build_file_handler(path: Path, level: int, max_bytes: int = 5_000_000, backups: int = 3) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=backups,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def setup_logging(level: int = logging.INFO, *, log_file: Optional[Union[str, Path]] = None) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler()]

    file_handler: Optional[RotatingFileHandler] = None
    if log_file:
        file_handler = _build_file_handler(Path(log_file), level)
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    if file_handler:
        for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
            logger = logging.getLogger(logger_name)
            logger.setLevel(level)
            logger.addHandler(file_handler)
