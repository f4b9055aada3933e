import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

# -------------------- Configuration --------------------
LOGS_DIR: Path = Path(os.getenv("AUTOMOD_LOG_DIR") or Path(__file__).parents[3] / "logs").resolve()
LOGS_DIR.mkdir(parents=True, exist_ok=True)

# Console verbosity; the log file always records DEBUG
CONSOLE_LEVEL: int = logging.getLevelName(os.getenv("AUTOMOD_LOG_LEVEL", "INFO").upper())
if not isinstance(CONSOLE_LEVEL, int):
    CONSOLE_LEVEL = logging.INFO

LOG_FORMAT: str = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H-%M-%S"

LOG_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[38;5;88m",
}
RESET_COLOR = "\033[0m"

LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# Reused by a restart that happens within this many seconds of the last write
SESSION_REUSE_SECONDS = 60

_session_log: Path | None = None


# -------------------- Formatters and handlers --------------------
class ColorFormatter(logging.Formatter):
    """Log formatter that wraps each record in an ANSI colour for its level."""

    def format(self, record: logging.LogRecord) -> str:
        color = LOG_COLORS.get(record.levelname, "")
        message = super().format(record)
        return f"{color}{message}{RESET_COLOR}" if color else message


class PromptToolkitHandler(logging.Handler):
    """
    Logging handler that prints through prompt_toolkit.

    Using ``print_formatted_text`` keeps log lines from tearing through an
    active prompt when the bot is run from an interactive terminal.
    """

    def __init__(self, formatter: logging.Formatter | None = None):
        super().__init__()
        if formatter:
            self.setFormatter(formatter)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print_formatted_text(ANSI(self.format(record)))
        except Exception:
            self.handleError(record)


def should_use_color() -> bool:
    """Return True when stderr is a TTY and ANSI colours can be used."""
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


plain_formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
console_formatter = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT) if should_use_color() else plain_formatter


def get_log_filepath() -> Path:
    """
    Return the log file shared by every logger in this process.

    The newest log of today is reused when it was written within the last
    minute (a quick restart); otherwise a new file named after the current
    time is started.
    """
    global _session_log

    if _session_log is None:
        now = datetime.now()
        todays_logs = sorted(
            LOGS_DIR.glob(f"{now:%Y-%m-%d}*.log"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        if todays_logs and now.timestamp() - todays_logs[0].stat().st_mtime < SESSION_REUSE_SECONDS:
            _session_log = todays_logs[0]
        else:
            _session_log = LOGS_DIR / f"{now.strftime(DATE_FORMAT)}.log"

    return _session_log


def _console_handler() -> logging.Handler:
    handler = PromptToolkitHandler(formatter=console_formatter)
    handler.setLevel(CONSOLE_LEVEL)
    return handler


def _file_handler() -> logging.Handler:
    handler = RotatingFileHandler(
        get_log_filepath(),
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(plain_formatter)
    return handler


# -------------------- Logger Setup --------------------
def setup_logger(logger_name: str) -> logging.Logger:
    """Attach the console and rotating file handlers to ``logger_name`` once.

    Calling it again for the same name returns the already configured logger.
    """
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    logger.addHandler(_console_handler())
    logger.addHandler(_file_handler())
    return logger


def get_logger(logger_name: str) -> logging.Logger:
    """Retrieve an automod logger, creating it on first use."""
    return setup_logger(logger_name)


def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """
    ``sys.excepthook`` replacement that logs uncaught exceptions.

    KeyboardInterrupt goes to the default hook so Ctrl+C still exits quietly.
    """
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
        return
    logging.error("Uncaught exception", exc_info=(exception_type, exception_instance, exception_traceback))


# -------------------- Quiet third-party loggers --------------------
NOISY_LOGGERS = (
    "discord", "discord.gateway", "discord.client", "discord.http",
    "websockets", "aiohttp", "aiosqlite", "asyncio",
)


def silence_loggers(names=NOISY_LOGGERS, level: int = logging.ERROR) -> None:
    """Raise library loggers to ``level`` and drop any handlers they installed."""
    for name in names:
        library_logger = logging.getLogger(name)
        library_logger.setLevel(level)
        library_logger.propagate = False
        library_logger.handlers = []


silence_loggers()
