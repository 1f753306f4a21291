"""
Shared utilities.
"""

from .retry import RetryConfig, calculate_delay

__all__ = ["RetryConfig", "calculate_delay"]
