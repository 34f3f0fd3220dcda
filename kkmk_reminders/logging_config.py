"""Root logger wiring for the reminder service.

Two handlers are installed: a human readable console stream and a machine
readable ``app.log`` with one JSON document per record. Records emitted
through :func:`get_category_logger` carry a ``category`` attribute so both
outputs can be filtered by pipeline stage.
"""

from __future__ import annotations

import json
import logging
import sys
from logging import LogRecord
from pathlib import Path
from typing import Dict, Tuple

CATEGORIES: Tuple[str, ...] = ("sweep", "reminder_sent", "notification", "schema", "error")

_DEFAULT_CATEGORY = "general"
_RESET = "\x1b[0m"
_ANSI_BY_CATEGORY: Dict[str, str] = {
    "sweep": "\x1b[38;5;39m",
    "reminder_sent": "\x1b[38;5;70m",
    "notification": "\x1b[38;5;178m",
    "schema": "\x1b[38;5;244m",
    "error": "\x1b[38;5;196m",
}

# quiet by default, their INFO output repeats what the sweep already logs
_NOISY_LOGGERS = ("apscheduler", "httpx", "httpcore")


def _category_of(record: LogRecord) -> str:
    return getattr(record, "category", _DEFAULT_CATEGORY)


def _stdout_is_terminal() -> bool:
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


class CategoryConsoleFormatter(logging.Formatter):
    """``<time> <LEVEL> [category] message``, colouring the label on a tty."""

    def __init__(self, *, colour: bool | None = None) -> None:
        super().__init__("%(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        self._colour = colour

    def _label(self, category: str) -> str:
        label = f"[{category}]"
        colour = self._colour if self._colour is not None else _stdout_is_terminal()
        ansi = _ANSI_BY_CATEGORY.get(category)
        if colour and ansi:
            return f"{ansi}{label}{_RESET}"
        return label

    def format(self, record: LogRecord) -> str:
        line = " ".join(
            (
                self.formatTime(record, self.datefmt),
                record.levelname,
                self._label(_category_of(record)),
                record.getMessage(),
            )
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class JsonLinesFormatter(logging.Formatter):
    def format(self, record: LogRecord) -> str:
        document = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "category": _category_of(record),
            "message": record.getMessage(),
        }
        if record.exc_info:
            document["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(document, ensure_ascii=False)


def setup_logging(
    logs_dir: Path | str = "logs",
    *,
    console_level: int = logging.INFO,
    file_level: int = logging.INFO,
    force: bool = True,
) -> None:
    """Attach the console and JSON file handlers to the root logger.

    ``logs_dir`` is created when missing. With ``force`` any handlers
    installed earlier are detached and closed first, so calling this twice
    does not duplicate output.
    """

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    if force:
        for existing in list(root.handlers):
            root.removeHandler(existing)
            existing.close()

    directory = Path(logs_dir)
    directory.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(CategoryConsoleFormatter())

    json_file = logging.FileHandler(directory / "app.log", encoding="utf-8")
    json_file.setLevel(file_level)
    json_file.setFormatter(JsonLinesFormatter())

    root.addHandler(console)
    root.addHandler(json_file)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_category_logger(category: str) -> logging.LoggerAdapter:
    """Logger for one pipeline stage; ``category`` must be in :data:`CATEGORIES`."""

    if category not in CATEGORIES:
        raise ValueError(f"Unsupported log category: {category!r}")
    return logging.LoggerAdapter(logging.getLogger(f"kkmk_reminders.{category}"), {"category": category})


__all__ = [
    "CATEGORIES",
    "CategoryConsoleFormatter",
    "JsonLinesFormatter",
    "get_category_logger",
    "setup_logging",
]
