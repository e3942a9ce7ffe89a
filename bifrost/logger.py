"""
Bifrost Logging
===============

Process-wide logging setup on top of the standard `logging` module, with
`rich` rendering for the console and an optional rotating log file.

Usage:
    >>> from bifrost.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Schedule cache started")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_DATE_FORMAT,
    LOG_FILE_OUTPUT,
    LOG_FORMAT,
    LOG_LEVEL,
    LOG_MAX_FILE_SIZE,
)


LOG_FILE_PATH = Path(__file__).parent.parent / "logs" / "bifrost.log"

SCHEDULE_THEME = Theme({
    "bifrost.epoch":     "bold cyan",
    "bifrost.slot":      "cyan",
    "bifrost.pubkey":    "magenta",
    "bifrost.duration":  "bold white",
    "bifrost.warning":   "bold yellow",
    "bifrost.error":     "bold red",
})


class BifrostLogHighlighter(RegexHighlighter):
    """Highlights epochs, slots, base58 identities and build durations."""

    base_style = "bifrost."
    highlights = [
        r"(?P<epoch>\bepochs? \[?\d+)",
        r"(?P<slot>\bslots? \d+\b)",
        r"(?P<pubkey>\b[1-9A-HJ-NP-Za-km-z]{32,44}\b)",
        r"(?P<duration>\b\d+(?:\.\d+)?ms\b)",
        r"(?P<warning>\bWARNING\b)",
        r"(?P<error>\b(?:ERROR|CRITICAL)\b)",
    ]


class TerminalSafeFormatter(logging.Formatter):
    """
    Formatter that drops terminal escape sequences and control characters.

    Identities and stake-file fragments end up in log lines; none of them may
    move the cursor or recolor the terminal.
    """

    _unsafe = re.compile(
        r"\x1b\[[0-?]*[ -/]*[@-~]"      # CSI sequences
        r"|\x1b[@-Z\\-_]"               # two-byte escapes
        r"|[\x00-\x08\x0b-\x1f\x7f]"    # controls other than tab and newline
    )

    @classmethod
    def sanitize(cls, text: str) -> str:
        return cls._unsafe.sub("", text) if text else text

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


def _utc_formatter() -> TerminalSafeFormatter:
    formatter = TerminalSafeFormatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT + " UTC")
    formatter.converter = time.gmtime
    return formatter


class LogManager:
    """
    Singleton owning the root logger's handlers.

    The first `get_logger` call configures logging from the environment
    unless `configure` was called explicitly before.
    """

    _instance: Optional["LogManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        with cls._lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._configured = False
                cls._instance = instance
        return cls._instance

    @property
    def is_configured(self) -> bool:
        return self._configured

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Install handlers on the root logger. Later calls are no-ops.

        Args:
            log_level: Level name, defaults to LOG_LEVEL
            log_file: Rotating log file path, defaults to logs/bifrost.log
            console_output: Log to stderr
            file_output: Log to a rotating file, defaults to LOG_FILE_OUTPUT
        """
        with self._lock:
            if self._configured:
                return

            level = getattr(logging, str(log_level or LOG_LEVEL).upper(), logging.INFO)
            root = logging.getLogger()
            root.setLevel(level)
            root.handlers.clear()

            handlers = []
            if console_output:
                handlers.append(self._console_handler())
            if LOG_FILE_OUTPUT if file_output is None else file_output:
                handlers.append(self._file_handler(log_file or LOG_FILE_PATH))

            formatter = _utc_formatter()
            for handler in handlers:
                handler.setLevel(level)
                handler.setFormatter(formatter)
                root.addHandler(handler)

            self._configured = True

    @staticmethod
    def _console_handler() -> logging.Handler:
        # Logs go to stderr so CLI output on stdout stays machine readable
        if not LOG_CONSOLE_HIGHLIGHTING:
            return logging.StreamHandler(sys.stderr)
        return RichHandler(
            console=Console(theme=SCHEDULE_THEME, highlight=False, stderr=True),
            highlighter=BifrostLogHighlighter(),
            rich_tracebacks=True,
            show_time=False,
            show_level=False,
            show_path=False,
            markup=False,
        )

    @staticmethod
    def _file_handler(path: Path) -> logging.Handler:
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.handlers.RotatingFileHandler(
            filename=str(path),
            maxBytes=LOG_MAX_FILE_SIZE,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Module logger, configuring the logging system on first use."""
    return _manager.get_logger(name)
