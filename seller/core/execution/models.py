"""
Transaction execution models and types.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def to_int(value: Union[str, int, None], default: int = 0) -> int:
    """Parse an int from an int, a decimal string or a 0x-hex string."""
    if value is None or value == "":
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lower().startswith("0x"):
        return int(text, 16) if len(text) > 2 else default
    return int(text)


class TransactionType(str, Enum):
    """Types of transactions."""
    SWAP = "swap"
    BRIDGE = "bridge"
    WRAP = "wrap"
    UNWRAP = "unwrap"
    TRANSFER = "transfer"
    APPROVE = "approve"


class TransactionStatus(str, Enum):
    """Transaction lifecycle status."""
    CONFIRMED = "confirmed"      # Receipt status 0x1
    REVERTED = "reverted"        # Receipt status 0x0


class JobState(str, Enum):
    """States of one job. CONFIRMED and FAILED are terminal."""
    PARSED = "parsed"
    VALIDATED = "validated"
    AWAITING_FUNDS = "awaiting_funds"
    QUOTED = "quoted"
    APPROVING = "approving"
    EXECUTING = "executing"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class ExecutionMode(str, Enum):
    DRY_RUN = "dryRun"
    EXECUTED = "executed"
    QUOTE_ONLY = "quote_only"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Routing service payloads
# ---------------------------------------------------------------------------


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)


class TokenMetadata(_WireModel):
    address: str
    decimals: int
    symbol: str
    chain_id: Optional[int] = Field(default=None, alias="chainId")
    name: Optional[str] = None
    price_usd: Optional[str] = Field(default=None, alias="priceUSD")


class QuoteEstimate(_WireModel):
    approval_address: Optional[str] = Field(default=None, alias="approvalAddress")
    from_amount: Optional[str] = Field(default=None, alias="fromAmount")
    to_amount: Optional[str] = Field(default=None, alias="toAmount")
    to_amount_min: Optional[str] = Field(default=None, alias="toAmountMin")


class QuoteStep(_WireModel):
    id: Optional[str] = None
    type: Optional[str] = None
    tool: Optional[str] = None
    estimate: Optional[QuoteEstimate] = None


class TransactionRequest(_WireModel):
    to: str
    data: str = "0x"
    value: Optional[str] = None
    gas_limit: Optional[str] = Field(default=None, alias="gasLimit")
    gas_price: Optional[str] = Field(default=None, alias="gasPrice")
    chain_id: Optional[int] = Field(default=None, alias="chainId")


class Quote(_WireModel):
    """Executable route returned by the routing service."""

    id: Optional[str] = None
    tool: Optional[str] = None
    estimate: QuoteEstimate = Field(default_factory=QuoteEstimate)
    included_steps: List[QuoteStep] = Field(default_factory=list, alias="includedSteps")
    transaction_request: Optional[TransactionRequest] = Field(default=None, alias="transactionRequest")
    action: Dict[str, Any] = Field(default_factory=dict)

    def approval_addresses(self) -> List[Optional[str]]:
        addresses = [self.estimate.approval_address]
        addresses.extend(step.estimate.approval_address for step in self.included_steps if step.estimate)
        return addresses


# ---------------------------------------------------------------------------
# Execution artifacts
# ---------------------------------------------------------------------------


@dataclass
class TxPlan:
    """A transaction ready to be signed and broadcast."""
    tx_type: TransactionType
    chain_id: int
    to_address: str
    data: str = "0x"
    value: int = 0
    gas_limit: Optional[int] = None
    gas_price: Optional[int] = None
    description: str = ""

    @classmethod
    def from_request(
        cls,
        request: TransactionRequest,
        chain_id: int,
        tx_type: TransactionType,
        description: str = "",
    ) -> "TxPlan":
        return cls(
            tx_type=tx_type,
            chain_id=request.chain_id or chain_id,
            to_address=request.to,
            data=request.data or "0x",
            value=to_int(request.value),
            gas_limit=to_int(request.gas_limit) or None,
            gas_price=to_int(request.gas_price) or None,
            description=description,
        )

    def to_dict(self) -> Dict[str, Any]:
        plan: Dict[str, Any] = {
            "type": self.tx_type.value,
            "chainId": self.chain_id,
            "to": self.to_address,
            "data": self.data,
            "value": str(self.value),
        }
        if self.gas_limit:
            plan["gasLimit"] = str(self.gas_limit)
        if self.gas_price:
            plan["gasPrice"] = str(self.gas_price)
        if self.description:
            plan["description"] = self.description
        return plan


@dataclass
class TxReceipt:
    """Confirmation receipt for a broadcast transaction."""
    tx_hash: str
    status: TransactionStatus
    chain_id: int
    block_number: Optional[int] = None
    gas_used: Optional[int] = None

    @property
    def is_success(self) -> bool:
        return self.status == TransactionStatus.CONFIRMED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.tx_hash,
            "status": "success" if self.is_success else "reverted",
            "blockNumber": str(self.block_number) if self.block_number is not None else None,
        }


@dataclass
class BalanceWaitResult:
    ok: bool
    balance: int
    polls: int = 0


@dataclass
class ApprovalState:
    """Allowances observed and approvals issued during one execution."""
    allowances: Dict[str, int] = field(default_factory=dict)
    approve_tx_hashes: List[str] = field(default_factory=list)
    report: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"approveTxs": list(self.approve_tx_hashes), "allowanceReport": list(self.report)}


@dataclass
class ExecutionResult:
    """Tagged outcome of one job; the only artifact returned to the caller."""
    mode: ExecutionMode
    executor: Optional[str] = None
    input: Dict[str, Any] = field(default_factory=dict)
    resolved: Dict[str, Any] = field(default_factory=dict)
    approvals: ApprovalState = field(default_factory=ApprovalState)
    route: Optional[Dict[str, Any]] = None
    plan: List[TxPlan] = field(default_factory=list)
    receipts: List[TxReceipt] = field(default_factory=list)
    note: Optional[str] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.mode != ExecutionMode.FAILED

    @property
    def final_receipt(self) -> Optional[TxReceipt]:
        return self.receipts[-1] if self.receipts else None

    def to_dict(self) -> Dict[str, Any]:
        if self.mode == ExecutionMode.FAILED:
            failure = dict(self.error or {"ok": False, "error": "Execution failed"})
            failure.setdefault("ok", False)
            if self.executor:
                failure.setdefault("executor", self.executor)
            if self.input:
                failure.setdefault("input", self.input)
            return failure

        payload: Dict[str, Any] = {
            "ok": True,
            "mode": self.mode.value,
            "executor": self.executor,
            "input": self.input,
            "resolved": self.resolved,
            "approvals": self.approvals.to_dict(),
        }
        if self.route is not None:
            payload["route"] = self.route
        if self.mode == ExecutionMode.DRY_RUN:
            payload["plan"] = [tx.to_dict() for tx in self.plan]
        receipt = self.final_receipt
        if receipt is not None:
            payload["tx"] = receipt.to_dict()
            if len(self.receipts) > 1:
                payload["txs"] = [r.to_dict() for r in self.receipts]
        if self.note:
            payload["note"] = self.note
        return payload
