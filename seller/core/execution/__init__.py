"""
Transaction Execution Layer

Provides the building blocks for executing one trade intent on-chain:
- Models for routes, plans, receipts and results
- TransactionBuilder: encodes the executor's own contract calls
- BalanceWatcher: waits for buyer funds to arrive
- AllowanceReconciler: raises token allowances a route needs

The Quote Resolver and Transaction Executor live in ``.resolver`` and
``.executor`` and are imported from there directly.
"""

from .models import (
    ApprovalState,
    BalanceWaitResult,
    ExecutionMode,
    ExecutionResult,
    JobState,
    Quote,
    QuoteEstimate,
    QuoteStep,
    TokenMetadata,
    TransactionRequest,
    TransactionStatus,
    TransactionType,
    TxPlan,
    TxReceipt,
)
from .tx_builder import MAX_UINT256, TransactionBuilder
from .balance import BalanceWatcher
from .allowances import AllowanceReconciler, extract_spenders

__all__ = [
    # Models
    "ApprovalState",
    "BalanceWaitResult",
    "ExecutionMode",
    "ExecutionResult",
    "JobState",
    "Quote",
    "QuoteEstimate",
    "QuoteStep",
    "TokenMetadata",
    "TransactionRequest",
    "TransactionStatus",
    "TransactionType",
    "TxPlan",
    "TxReceipt",
    # Builder
    "MAX_UINT256",
    "TransactionBuilder",
    # Watchers
    "BalanceWatcher",
    "AllowanceReconciler",
    "extract_spenders",
]
