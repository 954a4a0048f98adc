"""Weather Chat utilities."""

from .logging import get_logger, setup_logging, setup_logging_from_dict
from .rate_limit import MessageRateLimiter, RateLimitConfig
from .retry import RetryConfig, retry_async
from .validation import MessageValidationError, sanitize_input, validate_message

__all__ = [
    "get_logger",
    "setup_logging",
    "setup_logging_from_dict",
    "MessageRateLimiter",
    "RateLimitConfig",
    "RetryConfig",
    "retry_async",
    "MessageValidationError",
    "sanitize_input",
    "validate_message",
]
