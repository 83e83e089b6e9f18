"""Logger setup: plain one-line records to stdout and optionally a rotating file."""

from __future__ import annotations

import gzip
import logging
import os
import shutil
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from logging.handlers import RotatingFileHandler

_DEFAULT_MAX_SIZE_MB = 100
_MB = 1024 * 1024


def _level_desc(levelno: int) -> str:
    if levelno > logging.CRITICAL:
        return "PANC"
    if levelno >= logging.CRITICAL:
        return "FATL"
    if levelno >= logging.ERROR:
        return "ERRO"
    if levelno >= logging.WARNING:
        return "WARN"
    if levelno >= logging.INFO:
        return "INFO"
    return "DEBG"


class PlainFormatter(logging.Formatter):
    """Formats records as ``LEVL YYYY-MM-DD HH:MM:SS message``."""

    def __init__(self, timestamp_format: str = "%Y-%m-%d %H:%M:%S") -> None:
        super().__init__()
        self.timestamp_format = timestamp_format

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, self.timestamp_format)
        return f"{_level_desc(record.levelno)} {timestamp} {record.getMessage()}"


class _RotatingFileHandler(RotatingFileHandler):
    """Size-rotated log file with timestamped backups, pruned by count and age."""

    def __init__(
        self,
        filename: str,
        max_bytes: int,
        max_backups: int,
        max_age_days: int,
        compress: bool,
    ) -> None:
        self.max_backups = max_backups
        self.max_age_days = max_age_days
        self.compress = compress
        super().__init__(filename, mode="a", maxBytes=max_bytes, backupCount=0, encoding="utf-8")

    def _parts(self) -> tuple[str, str, str]:
        directory, base = os.path.split(self.baseFilename)
        stem, ext = os.path.splitext(base)
        return directory, stem, ext

    def _backup_name(self) -> str:
        directory, stem, ext = self._parts()
        stamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S.%f")[:-3]
        return os.path.join(directory, f"{stem}-{stamp}{ext}")

    def _backups(self) -> list[str]:
        directory, stem, ext = self._parts()
        prefix = f"{stem}-"
        found = [
            name
            for name in os.listdir(directory)
            if name.startswith(prefix) and (name.endswith(ext) or name.endswith(ext + ".gz"))
            and os.path.join(directory, name) != self.baseFilename
        ]
        return [os.path.join(directory, name) for name in sorted(found, reverse=True)]

    def _prune(self) -> None:
        backups = self._backups()
        doomed: set[str] = set()
        if self.max_backups > 0:
            doomed.update(backups[self.max_backups:])
        if self.max_age_days > 0:
            cutoff = time.time() - self.max_age_days * 86400
            doomed.update(path for path in backups if os.path.getmtime(path) < cutoff)
        for path in doomed:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass

    def doRollover(self) -> None:
        if self.stream:
            self.stream.close()
            self.stream = None  # type: ignore[assignment]
        if os.path.exists(self.baseFilename):
            backup = self._backup_name()
            os.rename(self.baseFilename, backup)
            if self.compress:
                with open(backup, "rb") as src, gzip.open(backup + ".gz", "wb") as dst:
                    shutil.copyfileobj(src, dst)
                os.remove(backup)
        self._prune()
        self.stream = self._open()


@dataclass
class LogConfig:
    """Logging settings. A file is written only when both directory and filename are set."""

    debug: bool = False
    filename: str = ""
    log_dir: str = ""
    max_size_mb: int = 0
    max_backups: int = 0
    max_age_days: int = 0
    compress: bool = False
    logger_name: str = "fletchling"

    def file_path(self) -> str:
        return os.path.join(self.log_dir, self.filename)

    def validate(self) -> None:
        """Sizes, counts and ages must not be negative."""
        for label, value in (
            ("max_size", self.max_size_mb),
            ("max_backups", self.max_backups),
            ("max_age", self.max_age_days),
        ):
            if value < 0:
                raise ValueError(f"invalid {label} '{value}': must not be negative")

    def create_logger(self, rotate: bool = False, wrap_stdlib_default: bool = False) -> logging.Logger:
        """Configure and return the logger named by ``logger_name``.

        Records go to stdout and, if configured, to a rotating file. With
        ``rotate`` the existing file is rotated out first. With
        ``wrap_stdlib_default`` the root logger writes to the same places.
        """
        level = logging.DEBUG if self.debug else logging.INFO
        handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

        if self.filename and self.log_dir:
            os.makedirs(self.log_dir, exist_ok=True)
            file_handler = _RotatingFileHandler(
                self.file_path(),
                max_bytes=(self.max_size_mb or _DEFAULT_MAX_SIZE_MB) * _MB,
                max_backups=self.max_backups,
                max_age_days=self.max_age_days,
                compress=self.compress,
            )
            if rotate:
                file_handler.doRollover()
            handlers.append(file_handler)

        formatter = PlainFormatter()
        for handler in handlers:
            handler.setFormatter(formatter)

        logger = logging.getLogger(self.logger_name)
        for old in list(logger.handlers):
            logger.removeHandler(old)
            old.close()
        for handler in handlers:
            logger.addHandler(handler)
        logger.setLevel(level)
        logger.propagate = False

        if wrap_stdlib_default:
            root = logging.getLogger()
            for old in list(root.handlers):
                root.removeHandler(old)
            for handler in handlers:
                root.addHandler(handler)
            root.setLevel(level)

        return logger