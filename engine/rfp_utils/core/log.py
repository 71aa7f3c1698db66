import os
import json
import logging
import pathlib
import datetime
import logging.config
from typing import Union
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler


_logger_var: ContextVar[Union[logging.Logger, logging.LoggerAdapter]] = ContextVar(
    "auto_score_logger", default=None
)

RED = "\033[31m"
GREEN = "\033[32m"
BLUE = "\033[34m"
ORANGE = "\033[33m"
GREY = "\033[90m"
WHITE = "\033[97m"
PURPLE = "\033[35m"
RESET = "\033[0m"

_CONTEXT_DEFAULTS = {
    "tool_name": "N/A",
    "rfp_id": "N/A",
    "supplier_id": "N/A",
    "request_type": "N/A",
    "user_id": "system",
}


def set_logger(logger: logging.Logger, **extra):
    _logger_var.set(logging.LoggerAdapter(logger, extra))


def get_logger() -> logging.Logger:
    logger = _logger_var.get()
    if logger is None:
        raise RuntimeError("Tool-specific logger not set in this context")
    return logger


class NoDebugFilter(logging.Filter):
    """Filter that blocks DEBUG messages"""

    def filter(self, record):
        return record.levelno > logging.DEBUG


def setup_logging():
    config_file = pathlib.Path(__file__).resolve().parent.parent / "logging_config.json"
    with open(config_file) as f_in:
        config = json.load(f_in)

    # Relative log files live under the process log root; make sure folders exist
    if "handlers" in config:
        for handler in config["handlers"].values():
            if "filename" in handler:
                path = pathlib.Path(handler["filename"]).expanduser()
                if not path.is_absolute():
                    path = _process_log_root() / path
                handler["filename"] = str(path)
                path.parent.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(config)
    noisy_libs = [
        "httpx",
        "httpcore",
        "hpack",
        "slack_sdk",
        "urllib3",
    ]

    for name in noisy_libs:
        lib_logger = logging.getLogger(name)
        lib_logger.setLevel(logging.ERROR)
        lib_logger.propagate = False

    context_filter = ContextFilter()
    no_debug_filter = NoDebugFilter()
    root_logger = logging.getLogger()
    root_logger.addFilter(context_filter)
    for handler in root_logger.handlers:
        handler.addFilter(context_filter)
        handler.addFilter(no_debug_filter)


class ContextFilter(logging.Filter):
    def filter(self, record):
        try:
            current = _logger_var.get()
            if isinstance(current, logging.LoggerAdapter):
                extra = getattr(current, "extra", {}) or {}
                for k in _CONTEXT_DEFAULTS:
                    if not hasattr(record, k) and k in extra:
                        setattr(record, k, extra[k])
        except LookupError:
            pass

        for k, default in _CONTEXT_DEFAULTS.items():
            if not hasattr(record, k):
                setattr(record, k, default)
        return True


class PidToolHandlerFilter(logging.Filter):
    """Filter for per-RFP file handler - only allows DEBUG, ERROR, CRITICAL"""

    def filter(self, record):
        return record.levelno == logging.DEBUG or record.levelno >= logging.ERROR


def _process_log_root() -> pathlib.Path:
    configured = os.getenv("PROCESS_LOG_DIR", "").strip()
    if configured:
        return pathlib.Path(configured).expanduser()
    return pathlib.Path.home() / "process_logs"


def pid_tool_logger(rfp_id: str, tool_name: str):
    """Return a logger that mirrors DEBUG and ERROR records into a per-RFP file."""
    log_dir = _process_log_root() / (rfp_id or "unknown")
    log_dir.mkdir(parents=True, exist_ok=True)

    log_name = log_dir / f"{tool_name}.log"
    handler = RotatingFileHandler(filename=log_name, maxBytes=5_000_000, backupCount=1)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    handler.addFilter(PidToolHandlerFilter())

    logger_name = f"{rfp_id}.{tool_name}"
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG)

    # Avoid duplicate handlers if this is called multiple times
    for old in list(logger.handlers):
        old.close()
    logger.handlers.clear()
    logger.addHandler(handler)

    logger.propagate = True

    return logger


class DynamicPrefixFormatter(logging.Formatter):
    """
    Color-aware formatter. Pass color=True/False from logging config.
    """

    RFP_W = 20
    SUP_W = 16
    USER_W = 15
    PROC_W = 6  # RUN/REGEN/WORKER
    FUNC_W = 22
    LEVEL_W = 7

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = bool(color)

    def _c(self, code: str) -> str:
        """Return ANSI code only if color mode is enabled."""
        return code if self.color else ""

    def format(self, record: logging.LogRecord) -> str:
        is_error_or_warn = record.levelno >= logging.WARNING
        is_error = record.levelno >= logging.ERROR
        process = (getattr(record, "request_type", "N/A") or "N/A")[: self.PROC_W]
        rfp_id = (getattr(record, "rfp_id", "N/A") or "N/A")[: self.RFP_W]
        supplier_id = (getattr(record, "supplier_id", "N/A") or "N/A")[: self.SUP_W]
        user_id = (getattr(record, "user_id", "system") or "system")[: self.USER_W]
        func_name = (getattr(record, "tool_name", "N/A") or "N/A")[: self.FUNC_W]
        ts = datetime.datetime.fromtimestamp(record.created).strftime(
            "%Y-%m-%d %H:%M:%S"
        )

        prefix = "[-]" if is_error_or_warn else "[+]"
        if prefix == "[+]":
            prefix_colored = f"{self._c(GREEN)}{prefix}"
        else:
            prefix_colored = f"{self._c(RED)}{prefix}"

        ts_colored = f"{self._c(WHITE)}{ts}"
        rfp_colored = f"{self._c(BLUE)}{rfp_id:<{self.RFP_W}}"
        sup_colored = f"{self._c(ORANGE)}{supplier_id:<{self.SUP_W}}"
        user_colored = f"{self._c(BLUE)}{user_id:<{self.USER_W}}"
        proc_colored = f"{self._c(WHITE)}{process:<{self.PROC_W}}"

        dash = f"{self._c(RED)} - "

        if is_error:
            level_colored = f"{self._c(RED)}{record.levelname:<{self.LEVEL_W}}"
        else:
            level_colored = f"{self._c(PURPLE)}{record.levelname:<{self.LEVEL_W}}"

        func_colored = f"{self._c(GREY)}{func_name:<{self.FUNC_W}}"
        tail_msg_colored = f"{self._c(GREY)}{record.getMessage()}"

        line = (
            f"{prefix_colored} "
            f"{ts_colored} "
            f"{rfp_colored} "
            f"{sup_colored} "
            f"{user_colored} "
            f"{proc_colored}"
            f"{dash}"
            f"{level_colored}"
            f"{dash}"
            f"AUTO_SCORE: {func_colored} "
            f"{tail_msg_colored}"
        )
        if self.color:
            line += RESET

        if record.exc_info:
            line += "\n" + super().formatException(record.exc_info)
            if self.color:
                line += RESET
        if record.stack_info:
            line += "\n" + self.formatStack(record.stack_info)
            if self.color:
                line += RESET

        return line
