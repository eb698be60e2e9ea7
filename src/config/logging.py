"""
Structured logging for the expat news scraper.

Every record is a single JSON document carrying the message, a UTC
timestamp, the logger's scraping context (request, source, run state)
and any keyword fields passed by the caller. Worker threads of one run
share their module logger, so timing bookkeeping is lock protected.
"""

import itertools
import json
import logging
import logging.config
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Dict, Any, Iterator, Optional, Union


@dataclass
class LogContext:
    """Scraping context attached to every record of a logger."""

    request_id: Optional[str] = None
    source_id: Optional[str] = None
    run_state: Optional[str] = None
    component: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class TimingInfo:
    """Duration of one timed operation."""

    operation: str
    started_at: datetime
    start_clock: float
    duration_ms: Optional[int] = None

    def finish(self) -> None:
        self.duration_ms = int((time.monotonic() - self.start_clock) * 1000)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms
        }


class StructuredLogger:
    """
    JSON logger with scraping context and operation timing.

    Wraps a stdlib ``logging.Logger``; the output format and level are
    decided by ``configure_logging``.
    """

    _timing_ids = itertools.count(1)

    def __init__(self, name: str, context: Optional[LogContext] = None):
        """
        Initialize structured logger.

        Args:
            name: Logger name (typically module name)
            context: Optional context information
        """
        self.logger = logging.getLogger(name)
        self.context = context or LogContext()
        self._active_timings: Dict[str, TimingInfo] = {}
        self._timings_lock = threading.Lock()

    def set_context(self, **kwargs) -> None:
        """Update context fields, unknown names are ignored."""
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)

    def _emit(self, level: int, message: str, exc: Optional[BaseException] = None, **fields) -> None:
        if not self.logger.isEnabledFor(level):
            return

        record = {
            "message": message,
            "level": logging.getLevelName(level),
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "context": self.context.to_dict()
        }
        record.update(fields)

        if exc is not None:
            record["error"] = {
                "type": type(exc).__name__,
                "message": str(exc),
                "kind": getattr(getattr(exc, "kind", None), "value", None),
                "retryable": getattr(exc, "retryable", None)
            }

        self.logger.log(level, json.dumps(record, default=str, ensure_ascii=False))

    def debug(self, message: str, **kwargs) -> None:
        self._emit(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._emit(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._emit(logging.WARNING, message, **kwargs)

    def error(self, message: str, error: Optional[BaseException] = None, **kwargs) -> None:
        """Log an error, with type, kind and retryability of ``error`` when given."""
        self._emit(logging.ERROR, message, exc=error, **kwargs)

    def start_timing(self, operation: str) -> str:
        """Start timing an operation and return its timing id."""
        timing_id = f"{operation}_{next(self._timing_ids)}"
        timing = TimingInfo(operation=operation, started_at=datetime.now(), start_clock=time.monotonic())
        with self._timings_lock:
            self._active_timings[timing_id] = timing

        self.debug(f"Started {operation}", timing_id=timing_id)
        return timing_id

    def end_timing(self, timing_id: str, success: bool = True, **kwargs) -> Optional[TimingInfo]:
        """Finish a timing started with ``start_timing`` and log its duration."""
        with self._timings_lock:
            timing = self._active_timings.pop(timing_id, None)

        if timing is None:
            self.warning("Unknown timing id", timing_id=timing_id)
            return None

        timing.finish()
        self._emit(
            logging.INFO if success else logging.WARNING,
            f"Operation {timing.operation} {'completed' if success else 'failed'}",
            timing=timing.to_dict(),
            success=success,
            **kwargs
        )
        return timing

    @contextmanager
    def timed_operation(self, operation: str, **kwargs) -> Iterator[None]:
        """Time the enclosed block; an escaping exception marks it failed."""
        timing_id = self.start_timing(operation)
        try:
            yield
        except Exception as e:
            self.end_timing(timing_id, success=False, error_message=str(e), **kwargs)
            raise
        self.end_timing(timing_id, success=True, **kwargs)

    def log_metrics(self, metrics: Dict[str, Union[int, float, str]], operation: Optional[str] = None) -> None:
        """Log run counters such as articles found, processed and filtered."""
        self.info(
            f"Metrics for {operation or 'operation'}",
            metrics=metrics,
            metric_type="scraping"
        )

    def log_http_request(
        self,
        method: str,
        url: str,
        status_code: int,
        duration_ms: int,
        success: bool,
        **kwargs
    ) -> None:
        """Log one completed HTTP exchange; failures are logged at warning."""
        self._emit(
            logging.DEBUG if success else logging.WARNING,
            f"HTTP {method} {url} -> {status_code}",
            http_method=method,
            http_url=url,
            http_status=status_code,
            duration_ms=duration_ms,
            success=success,
            **kwargs
        )


def configure_logging(log_level: str = "INFO", enable_structured: bool = True) -> None:
    """
    Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_structured: Emit bare JSON documents, otherwise prefix them
            with time, logger name and level
    """
    formatter = "json" if enable_structured else "plain"
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"format": "%(message)s"},
            "plain": {"format": "%(asctime)s %(name)s [%(threadName)s] %(levelname)s %(message)s"}
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": formatter,
                "stream": "ext://sys.stdout"
            }
        },
        "root": {"level": log_level, "handlers": ["console"]},
        # Third-party HTTP loggers stay at WARNING
        "loggers": {
            "urllib3": {"level": "WARNING"},
            "requests": {"level": "WARNING"}
        }
    })


def get_logger(name: str, context: Optional[LogContext] = None) -> StructuredLogger:
    """Get a structured logger, usually with ``__name__``."""
    return StructuredLogger(name, context)


configure_logging()
