"""Logging setup: console output with structured extras, optional Application Insights."""

import logging
import os
import sys
from typing import Union

# Attributes every LogRecord carries; anything else arrived through `extra=`
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


class ExtraFormatter(logging.Formatter):
    """Append `extra={...}` fields as key=value pairs after the message."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = {k: v for k, v in vars(record).items()
                  if k not in _RECORD_ATTRS and not k.startswith("_")}
        if not extras:
            return line
        return line + " | " + " ".join(f"{k}={v}" for k, v in sorted(extras.items()))


def _parse_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: Union[int, str] = logging.INFO):
    """Configure console logging and, when a connection string is set, Azure Monitor.

    Call once at process startup. Safe to call again; handlers are replaced.
    """
    level = _parse_level(level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ExtraFormatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    root_logger.addHandler(console_handler)

    connection_string = os.getenv("APPLICATIONINSIGHTS_CONNECTION_STRING")
    if connection_string:
        try:
            from azure.monitor.opentelemetry import configure_azure_monitor

            configure_azure_monitor(
                connection_string=connection_string,
                enable_live_metrics=False,
            )
            logging.getLogger(__name__).info("Application Insights configured")
        except ImportError:
            logging.getLogger(__name__).warning(
                "azure-monitor-opentelemetry not installed (pip install .[telemetry])"
            )
        except Exception as e:
            logging.getLogger(__name__).warning(
                f"Failed to configure Application Insights: {e}"
            )

    for noisy in ("azure", "httpx", "multipart", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Usage: logger = get_logger(__name__); logger.info("Renamed", extra={"old": a, "new": b})"""
    return logging.getLogger(name)
