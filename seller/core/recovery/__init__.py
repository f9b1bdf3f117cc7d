"""
Error Recovery Module

Provides the error taxonomy and retry/backoff used by every outbound call
of the job pipeline.
"""

from .errors import (
    RETRYABLE_STATUS_CODES,
    AmountError,
    BroadcastUnconfirmedError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    FundsTimeoutError,
    NetworkError,
    OnChainRevertError,
    ParseError,
    QuoteError,
    ReceiptTimeoutError,
    RpcError,
    SellerError,
    ValidationError,
    digest_body,
    is_retryable,
    to_failure,
)
from .retry import RetryConfig, RetryPolicy, retry_with_backoff

__all__ = [
    # Errors
    "RETRYABLE_STATUS_CODES",
    "AmountError",
    "BroadcastUnconfirmedError",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "FundsTimeoutError",
    "NetworkError",
    "OnChainRevertError",
    "ParseError",
    "QuoteError",
    "ReceiptTimeoutError",
    "RpcError",
    "SellerError",
    "ValidationError",
    "digest_body",
    "is_retryable",
    "to_failure",
    # Retry
    "RetryConfig",
    "RetryPolicy",
    "retry_with_backoff",
]
