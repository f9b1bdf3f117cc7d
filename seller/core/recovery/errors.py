"""
Error Classification

Defines the error taxonomy for the job pipeline.
Errors are classified as recoverable (transient, retried) or unrecoverable
(surfaced to the buyer or operator as a structured failure).
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx

# Transient HTTP status codes worth another attempt
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

_DIGEST_LIMIT = 300


class ErrorCategory(str, Enum):
    """Categories of errors for recovery decisions."""

    PARSE = "parse"                       # Malformed command/request
    VALIDATION = "validation"             # Semantic rejection
    CONFIG = "config"                     # Operator configuration invalid
    FUNDS_TIMEOUT = "funds_timeout"       # Buyer funds never arrived
    NETWORK = "network"                   # Transport failure / transient status
    QUOTE = "quote"                       # Routing service rejected the request
    RPC = "rpc"                           # Chain node returned an error
    TRANSACTION_REVERTED = "transaction_reverted"  # Confirmed but reverted
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = False
    status_code: Optional[int] = None
    tx_hash: Optional[str] = None
    chain_id: Optional[int] = None
    suggested_action: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class SellerError(Exception):
    """Base class for every error raised by the job pipeline."""

    code = "seller_error"
    category = ErrorCategory.UNKNOWN
    recoverable = False

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext(category=self.category, recoverable=self.recoverable)

    def to_failure(self) -> Dict[str, Any]:
        """Structured, credential-free failure payload."""
        details: Dict[str, Any] = {"category": self.context.category.value}
        if self.context.status_code is not None:
            details["status"] = self.context.status_code
        if self.context.tx_hash:
            details["txHash"] = self.context.tx_hash
        if self.context.chain_id is not None:
            details["chainId"] = self.context.chain_id
        if self.context.suggested_action:
            details["hint"] = self.context.suggested_action
        details.update(self.context.details)
        return {"ok": False, "error": self.message, "code": self.code, "details": details}


class ParseError(SellerError):
    """Command or structured request could not be decoded."""

    code = "parse_error"
    category = ErrorCategory.PARSE

    def __init__(self, message: str, usage: Optional[str] = None):
        super().__init__(
            message,
            ErrorContext(
                category=ErrorCategory.PARSE,
                suggested_action=f"Example: {usage}" if usage else None,
            ),
        )
        self.usage = usage


class AmountError(ParseError):
    """Human decimal amount could not be converted to integer units."""

    code = "amount_error"


class ValidationError(SellerError):
    """Intent is well-formed but semantically unacceptable."""

    code = "validation_error"
    category = ErrorCategory.VALIDATION


class ConfigError(SellerError):
    """Fee, chain or signer configuration is invalid. Operator must fix."""

    code = "config_error"
    category = ErrorCategory.CONFIG


class FundsTimeoutError(SellerError):
    """Balance watcher exhausted its wait."""

    code = "funds_timeout"
    category = ErrorCategory.FUNDS_TIMEOUT

    def __init__(
        self,
        message: str = "Insufficient executor token balance",
        needed: Optional[int] = None,
        have: Optional[int] = None,
        token: Optional[str] = None,
    ):
        super().__init__(
            message,
            ErrorContext(
                category=ErrorCategory.FUNDS_TIMEOUT,
                suggested_action="Ensure the funds transfer reached the executor, then resubmit the job.",
                details={
                    "needed": str(needed) if needed is not None else None,
                    "have": str(have) if have is not None else None,
                    "token": token,
                },
            ),
        )
        self.needed = needed
        self.have = have


class NetworkError(SellerError):
    """Transport failure or transient upstream status."""

    code = "network_error"
    category = ErrorCategory.NETWORK
    recoverable = True

    def __init__(self, message: str = "Network error", status_code: Optional[int] = None, body: Optional[str] = None):
        details: Dict[str, Any] = {}
        if body:
            details["body"] = body
        super().__init__(
            message,
            ErrorContext(
                category=self.category,
                recoverable=True,
                status_code=status_code,
                details=details,
            ),
        )
        self.status_code = status_code
        self.body = body


class QuoteError(NetworkError):
    """Routing service answered with a non-2xx status."""

    code = "quote_error"
    category = ErrorCategory.QUOTE


class RpcError(NetworkError):
    """Chain node answered with a JSON-RPC error object."""

    code = "rpc_error"
    category = ErrorCategory.RPC


class ReceiptTimeoutError(SellerError):
    """Broadcast transaction produced no receipt within the wait window."""

    code = "receipt_timeout"
    category = ErrorCategory.NETWORK

    def __init__(self, tx_hash: str, chain_id: Optional[int] = None, waited_s: Optional[float] = None):
        super().__init__(
            f"No receipt for {tx_hash} after {waited_s:.0f}s" if waited_s is not None else f"No receipt for {tx_hash}",
            ErrorContext(
                category=ErrorCategory.NETWORK,
                tx_hash=tx_hash,
                chain_id=chain_id,
                suggested_action="The transaction may still confirm; check it on a block explorer before resubmitting",
            ),
        )
        self.tx_hash = tx_hash


class BroadcastUnconfirmedError(ReceiptTimeoutError):
    """A send may have reached the node but its acceptance was never confirmed."""

    code = "broadcast_unconfirmed"

    def __init__(self, tx_hash: str, chain_id: Optional[int] = None, reason: Optional[str] = None):
        SellerError.__init__(
            self,
            f"Broadcast of {tx_hash} was not acknowledged" + (f": {reason}" if reason else ""),
            ErrorContext(
                category=ErrorCategory.NETWORK,
                tx_hash=tx_hash,
                chain_id=chain_id,
                suggested_action="The transaction may still confirm; check it on a block explorer before resubmitting",
            ),
        )
        self.tx_hash = tx_hash


class OnChainRevertError(SellerError):
    """Transaction was mined but its receipt reports failure."""

    code = "onchain_revert"
    category = ErrorCategory.TRANSACTION_REVERTED

    def __init__(self, message: str = "Transaction reverted", tx_hash: Optional[str] = None, chain_id: Optional[int] = None):
        super().__init__(
            message,
            ErrorContext(
                category=ErrorCategory.TRANSACTION_REVERTED,
                tx_hash=tx_hash,
                chain_id=chain_id,
                suggested_action="Inspect the transaction on a block explorer",
            ),
        )
        self.tx_hash = tx_hash
        self.chain_id = chain_id


def digest_body(body: Any, limit: int = _DIGEST_LIMIT) -> str:
    """Reduce an upstream response body to a short, header-free message."""

    if body is None:
        return ""
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        text = body.strip()
        lowered = text[:64].lower()
        if lowered.startswith("<!doctype") or lowered.startswith("<html"):
            return "upstream returned HTML (likely a gateway error page)"
        try:
            body = json.loads(text)
        except ValueError:
            return text[:limit]
    if isinstance(body, dict):
        message = body.get("message") or body.get("error") or body.get("detail")
        if isinstance(message, dict):
            message = message.get("message")
        if message:
            return str(message)[:limit]
    return json.dumps(body, default=str)[:limit]


def is_retryable(error: BaseException) -> bool:
    """True for transport failures (no response) and transient HTTP statuses."""

    if isinstance(error, NetworkError):
        if error.status_code is None:
            return not isinstance(error, RpcError)
        return error.status_code in RETRYABLE_STATUS_CODES
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(error, httpx.TransportError):
        return True
    return False


def to_failure(error: BaseException, summary: Optional[str] = None) -> Dict[str, Any]:
    """Convert any exception into the structured failure shape."""

    if isinstance(error, SellerError):
        failure = error.to_failure()
        if summary:
            failure["details"]["reason"] = failure["error"]
            failure["error"] = summary
        return failure
    details: Dict[str, Any] = {"category": ErrorCategory.UNKNOWN.value, "reason": type(error).__name__}
    # httpx messages embed request URLs, which may carry RPC credentials
    if not isinstance(error, httpx.HTTPError):
        details["message"] = str(error)[:_DIGEST_LIMIT]
    return {
        "ok": False,
        "error": summary or "Execution failed",
        "code": "internal_error",
        "details": details,
    }
