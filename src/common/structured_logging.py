import os, sys, json, logging, time, uuid
from typing import Optional, Dict, Any
from contextvars import ContextVar

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SERVICE_NAME = os.getenv("SERVICE_NAME") or "book-recommender"
# "stdout" or "stderr"
LOG_STREAM = os.getenv("LOG_STREAM", "stdout").lower()
_log_stream = None

# --- Request context --------------------------------------------------------
# Request-scoped values that follow the request across awaited strategy calls
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)

_BUILTIN_KEYS = set(logging.LogRecord(None, 0, "", 0, "", (), None, None).__dict__.keys())


def set_request_context(request_id: str = None, user_id: str = None) -> str:
    """Set request-scoped context variables for logging correlation.

    Args:
        request_id: Unique identifier for the request (generated when omitted)
        user_id: Identifier of the user the recommendations are built for
            (cleared when omitted)
    """
    if request_id is None:
        request_id = str(uuid.uuid4())

    request_id_var.set(request_id)
    user_id_var.set(user_id)

    return request_id


def get_request_context() -> Dict[str, Any]:
    """Get current request context for logging."""
    return {
        "request_id": request_id_var.get(),
        "user_id": user_id_var.get(),
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields are merged into the payload."""

    def format(self, record):
        payload = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "event": record.getMessage(),
            "logger": record.name,
            **{k: v for k, v in get_request_context().items() if v is not None}
        }

        for key, value in record.__dict__.items():
            if key not in _BUILTIN_KEYS and key not in payload:
                payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


def _json_default(value):
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


class PerformanceLogger:
    """Context manager for performance logging."""

    def __init__(self, logger: logging.Logger, operation: str, **context):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.debug(f"Starting {self.operation}", extra={
            "operation": self.operation,
            "phase": "start",
            **self.context
        })
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.perf_counter() - self.start_time
        level = logging.ERROR if exc_type else logging.INFO
        status = "error" if exc_type else "success"

        self.logger.log(level, f"Completed {self.operation}", extra={
            "operation": self.operation,
            "phase": "complete",
            "duration_seconds": round(duration, 3),
            "status": status,
            "error_type": exc_type.__name__ if exc_type else None,
            **self.context
        })
        return False


def _default_stream():
    if _log_stream is not None:
        return _log_stream
    return sys.stderr if LOG_STREAM == "stderr" else sys.stdout


def set_log_stream(stream) -> None:
    """Point every JSON handler, existing and future, at *stream*."""
    global _log_stream
    _log_stream = stream
    for item in list(logging.Logger.manager.loggerDict.values()):
        for handler in getattr(item, "handlers", []):
            if isinstance(handler, logging.StreamHandler) and isinstance(handler.formatter, JsonFormatter):
                handler.setStream(stream)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a JSON-logging logger writing to stdout (or ``LOG_STREAM``)."""
    logger = logging.getLogger(name or SERVICE_NAME)
    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        ch = logging.StreamHandler(_default_stream())
        ch.setFormatter(JsonFormatter())
        logger.addHandler(ch)

    logger.propagate = False
    return logger


def log_error_with_context(logger: logging.Logger, error: Exception, operation: str, **context):
    """Log errors with full context for debugging."""
    logger.error(f"Error in {operation}: {str(error)}", extra={
        "operation": operation,
        "error_type": type(error).__name__,
        "error_message": str(error),
        "category": "error",
        **context
    }, exc_info=error)
