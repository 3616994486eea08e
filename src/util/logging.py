"""
Logging setup for the ``formula_ocr`` logger tree.

Modules log through ``get_logger(__name__)``. ``setup_logging`` attaches a
console handler and, when ``log_dir`` is set, a size-rotated log file.
Records may carry pipeline context (``stage``, ``region``, ``elapsed_ms``)
through ``extra``; the JSON formatter emits it as top-level fields.
"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

ROOT_LOGGER_NAME = 'formula_ocr'
LOG_FILE_NAME = 'formula_ocr.log'

TEXT_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

CONTEXT_FIELDS = ('stage', 'region', 'elapsed_ms')


class JSONLFormatter(logging.Formatter):
    """One JSON object per line, plus any pipeline context fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'ts': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
            'at': f"{record.module}:{record.funcName}:{record.lineno}",
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value

        if record.exc_info:
            entry['exc'] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def _formatter(log_format: str) -> logging.Formatter:
    if log_format == 'json':
        return JSONLFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)


def _handlers(log_dir: Optional[Path], max_bytes: int, backup_count: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if log_dir:
        directory = Path(log_dir).expanduser()
        directory.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(
            directory / LOG_FILE_NAME,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8',
        ))

    return handlers


def setup_logging(
    log_level: str = 'INFO',
    log_dir: Optional[Path] = None,
    log_format: str = 'text',
    rotation_size_mb: int = 10,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the package logger tree.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_dir: Directory for the rotated log file (None: console only)
        log_format: 'text' or 'json' (one object per line)
        rotation_size_mb: Size at which the log file is rotated
        backup_count: Rotated files kept

    Returns:
        The ``formula_ocr`` logger
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(log_level.upper())

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = _formatter(log_format)
    for handler in _handlers(log_dir, rotation_size_mb * 1024 * 1024, backup_count):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    return root


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, nested under ``formula_ocr``."""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + '.'):
        return logging.getLogger(name)
    return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')
