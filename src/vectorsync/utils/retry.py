"""
Exponential backoff for deferred job retries.

The pipeline never retries an adapter call itself; a failed deferred job
is handed back to the queue with a delay computed here.
"""

import random
from dataclasses import dataclass


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        initial_delay_ms: Initial delay in milliseconds
        max_delay_ms: Maximum delay in milliseconds
        backoff_multiplier: Multiplier for exponential backoff
        jitter: Whether to add random jitter to delay
    """
    initial_delay_ms: float = 30000.0
    max_delay_ms: float = 900000.0
    backoff_multiplier: float = 2.0
    jitter: bool = True


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay for a given attempt with exponential backoff.

    Args:
        attempt: Attempt number (0-based)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay_ms = min(
        config.initial_delay_ms * (config.backoff_multiplier ** attempt),
        config.max_delay_ms
    )

    # ±25% random variation
    if config.jitter:
        jitter_factor = 0.75 + (random.random() * 0.5)
        delay_ms *= jitter_factor

    return delay_ms / 1000.0
