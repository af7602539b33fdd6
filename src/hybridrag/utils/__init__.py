"""Shared utilities for hybridrag."""

from .locks import KeyedLock
from .logging import get_logger, set_log_level
from .retry import RetryConfig, call_with_retry

__all__ = [
    "KeyedLock",
    "get_logger",
    "set_log_level",
    "RetryConfig",
    "call_with_retry",
]
