"""Runtime harness — resilience helpers around external calls."""
from pawnmem.harness.retry import RetryConfig, SummaryAPIError, is_retryable_error, with_retries

__all__ = ["RetryConfig", "SummaryAPIError", "is_retryable_error", "with_retries"]
