import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

import structlog

_LOGGING_CONFIGURED = False

LOG_LEVEL_ENV = "SYSEXTBOOT_LOG_LEVEL"


def _foreign_pre_chain():
    return [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def setup_logging(
    log_level_name: str = "INFO",
    log_file_path: Optional[Path] = None,
    console_output: bool = True,
) -> None:
    """
    Configure logging for the boot step.

    - structlog on top of the stdlib logging handlers.
    - A log file ending in .json gets JSON lines, any other name gets the
      plain console rendering without colors.
    - Console output goes to stderr so that it lands in the journal.
    - SYSEXTBOOT_LOG_LEVEL overrides the level argument.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    effective_level_name = os.environ.get(LOG_LEVEL_ENV, log_level_name).upper()
    log_level = getattr(logging, effective_level_name, logging.INFO)

    handlers: list[logging.Handler] = []

    if log_file_path:
        try:
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file_path,
                maxBytes=1024 * 1024,
                backupCount=3,
            )
        except OSError as e:
            # Read-only /var early in boot; the journal still gets the console stream.
            print(f"sysextboot: cannot open log file {log_file_path}: {e}", file=sys.stderr)
        else:
            renderer = (
                structlog.processors.JSONRenderer()
                if log_file_path.name.endswith(".json")
                else structlog.dev.ConsoleRenderer(colors=False)
            )
            file_handler.setFormatter(structlog.stdlib.ProcessorFormatter(
                processor=renderer,
                foreign_pre_chain=_foreign_pre_chain(),
            ))
            handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
            foreign_pre_chain=_foreign_pre_chain(),
        ))
        handlers.append(console_handler)

    if not handlers:
        handlers.append(logging.NullHandler())

    logging.getLogger("urllib3").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(log_level)
    for handler in handlers:
        root.addHandler(handler)
    _LOGGING_CONFIGURED = True


def get_logger(name: Optional[str] = None):
    return structlog.get_logger(name)
