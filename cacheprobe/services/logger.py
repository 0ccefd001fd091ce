"""loguru setup and structured log lines for oracle calls, tool calls and run events."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from cacheprobe.config import settings

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"

# stdlib loggers of the SDKs we call; they log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "anthropic", "openai", "asyncio")


def configure_logging(verbose: bool = False) -> None:
    """Install the console sink, plus a daily file sink when LOG_TO_FILE is set."""
    logger.remove()
    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level="DEBUG" if verbose else settings.app_log_level.upper(),
        colorize=True,
    )

    if settings.log_to_file:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_dir / "cacheprobe_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT,
            level="DEBUG",
            rotation="00:00",
            retention="7 days",
            compression="zip",
        )

    noisy_level = settings.noisy_log_level.upper()
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)


def _emit(tag: str, level: str, fields: dict[str, Any]) -> None:
    record = {"timestamp": datetime.now(timezone.utc).isoformat(), **fields}
    logger.opt(depth=2).log(level, f"{tag}: {record}")


def log_llm_call(
    model: str,
    caller: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    _emit(
        "LLM_CALL_FAILED" if error else "LLM_CALL",
        "ERROR" if error else "INFO",
        {
            "model": model,
            "caller": caller,
            "tokens": {"input": input_tokens, "output": output_tokens},
            "duration_ms": duration_ms,
            "status": status,
            "error": error,
        },
    )


def log_tool_call(
    tool: str,
    iteration: int,
    status: str,
    duration_ms: int = 0,
    input_data: Optional[dict[str, Any]] = None,
    error: Optional[str] = None,
) -> None:
    _emit(
        "TOOL_FAILED" if error else "TOOL",
        "WARNING" if error else "INFO",
        {
            "tool": tool,
            "iteration": iteration,
            "status": status,
            "duration_ms": duration_ms,
            "input": input_data,
            "error": error,
        },
    )


def log_event(event_type: str, message: str, **fields: Any) -> None:
    _emit("EVENT", "INFO", {"event_type": event_type, "message": message, **fields})
