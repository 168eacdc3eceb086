import functools
import logging
import os
import time
from typing import Any, Callable, Optional, TypeVar

F = TypeVar("F", bound=Callable[..., Any])

PACKAGE_LOGGER = "seromix"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Set the package log level from ``level`` or ``SEROMIX_LOG_LEVEL`` (default WARNING)."""
    name = (level or os.getenv("SEROMIX_LOG_LEVEL", "WARNING")).upper()
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, name, logging.WARNING))
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
        logger.addHandler(handler)
    return logger


def _describe(value: Any) -> str:
    """Short description of an argument; arrays are summarised by shape."""
    shape = getattr(value, "shape", None)
    if shape is not None:
        return f"<array shape={tuple(shape)}>"
    return type(value).__name__


def log_call(func: F) -> F:
    """Decorator that logs function entry, exit and runtime at DEBUG level."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        logger = logging.getLogger(func.__module__)
        log_debug = logger.isEnabledFor(logging.DEBUG)
        if log_debug:
            logger.debug("Entering %s", func.__qualname__)
            logger.debug(
                "args=%s kwargs=%s",
                [_describe(a) for a in args],
                {k: _describe(v) for k, v in kwargs.items()},
            )
        start = time.perf_counter()
        result = func(*args, **kwargs)
        runtime_ms = (time.perf_counter() - start) * 1000.0
        if log_debug:
            logger.debug("Exiting %s (%.2fms)", func.__qualname__, runtime_ms)
        return result

    return wrapper  # type: ignore[return-value]
