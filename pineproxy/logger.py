"""
PineProxy Logging
=================
Builds the single logger the proxy writes to. Lines look like::

    [2024-05-01 12:00:00] [INF] [10.0.0.2] GET http://example.com/ ( text/html ) [200 OK]

The console copy is coloured through the rich console; a logfile, when
configured, gets the same lines uncoloured.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.text import Text

from pineproxy import ui

LOGGER_NAME = "pineproxy"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LEVEL_TAGS = {
    logging.CRITICAL: "ERR",
    logging.ERROR: "ERR",
    logging.WARNING: "WAR",
    logging.INFO: "INF",
    logging.DEBUG: "DBG",
}

LEVEL_STYLES = {
    logging.CRITICAL: "log.error",
    logging.ERROR: "log.error",
    logging.WARNING: "log.warning",
    logging.INFO: "log.info",
    logging.DEBUG: "log.debug",
}

_STATUS_PATTERNS = (
    (r"\[2\d\d\b[^\]]*\]", "status.2xx"),
    (r"\[3\d\d\b[^\]]*\]", "status.3xx"),
    (r"\[4\d\d\b[^\]]*\]", "status.4xx"),
    (r"\[5\d\d\b[^\]]*\]", "status.5xx"),
)
_VERB_PATTERN = r"(?<=\] )(GET|POST|PUT|DELETE|PATCH|HEAD|OPTIONS|TRACE)(?= )"


class PineFormatter(logging.Formatter):
    """``[time] [TAG] message`` with the three-letter level tag."""

    def __init__(self):
        super().__init__(datefmt=DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        tag = LEVEL_TAGS.get(record.levelno, record.levelname[:3])
        line = f"[{self.formatTime(record, self.datefmt)}] [{tag}] {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ConsoleHandler(logging.Handler):
    """Writes formatted records to a rich console with level colours."""

    def __init__(self, console: Optional[Console] = None):
        super().__init__()
        self.console = console or ui.console
        self.setFormatter(PineFormatter())

    def render(self, record: logging.LogRecord) -> Text:
        text = Text(self.format(record), style=LEVEL_STYLES.get(record.levelno, ""))
        if record.levelno == logging.INFO:
            text.highlight_regex(_VERB_PATTERN, "log.verb")
            for pattern, style in _STATUS_PATTERNS:
                text.highlight_regex(pattern, style)
        return text

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.console.print(self.render(record), highlight=False, soft_wrap=True)
        except Exception:
            self.handleError(record)


def build_logger(
    verbose: bool = False,
    logfile: Optional[Union[str, Path]] = None,
    name: str = LOGGER_NAME,
    console: Optional[Console] = None,
) -> logging.Logger:
    """Create (or reconfigure) the proxy logger.

    Args:
        verbose: Emit DEBUG lines when set, INFO and above otherwise.
        logfile: Optional path that receives an uncoloured copy.
        name: Logger name.
        console: Rich console for the coloured copy.
    """
    log = logging.getLogger(name)
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()

    log.setLevel(logging.DEBUG if verbose else logging.INFO)
    log.propagate = False
    log.addHandler(ConsoleHandler(console))

    if logfile:
        path = Path(logfile).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(PineFormatter())
        log.addHandler(file_handler)

    return log
