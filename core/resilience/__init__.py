"""
Storefront Core Resilience — Fault Tolerance Primitives.

Provides reliability patterns for store operations:
- RetryPolicy: Bounded retry with exponential backoff
- DeadLetterQueue: Capture failed side effects for later inspection
"""
from core.resilience.dlq import (
    DeadLetter,
    DeadLetterQueue,
    DLQStats,
    DLQStatus,
)
from core.resilience.retry import RetryPolicy

__all__ = [
    # DLQ
    "DeadLetter",
    "DeadLetterQueue",
    "DLQStats",
    "DLQStatus",
    # Retry
    "RetryPolicy",
]
