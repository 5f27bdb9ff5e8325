"""
Utility functions and helpers.
"""
from lottery_ingest.utils.logging import LogContext, setup_logging

__all__ = [
    "setup_logging",
    "LogContext",
]
