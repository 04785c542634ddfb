"""Shared utilities and infrastructure.

This module contains common utilities used throughout the client.
"""

from __future__ import annotations

from btnclient.utils.backoff import ExponentialBackoff
from btnclient.utils.exceptions import (
    BtnError,
    BtnHttpError,
    ConfigurationError,
    NetworkError,
    RuleParseError,
    TransportError,
    ValidationError,
)
from btnclient.utils.logging_config import setup_logging
from btnclient.utils.scheduler import PeriodicJob, Scheduler

__all__ = [
    # Exceptions
    "BtnError",
    "BtnHttpError",
    "ConfigurationError",
    "NetworkError",
    "RuleParseError",
    "TransportError",
    "ValidationError",
    # Retry
    "ExponentialBackoff",
    # Logging
    "setup_logging",
    # Scheduling
    "PeriodicJob",
    "Scheduler",
]
