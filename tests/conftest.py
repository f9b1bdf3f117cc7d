"""
Shared fakes for the job pipeline tests.

Chain and routing clients are replaced with in-memory stand-ins so tests can
script balances, allowances, quotes and receipts without network access.
"""

from typing import Any, Dict, List, Optional

import pytest

from seller.core.events import EventEmitter
from seller.core.execution.models import (
    Quote,
    TokenMetadata,
    TransactionStatus,
    TransactionType,
    TxPlan,
    TxReceipt,
)
from seller.core.recovery.errors import BroadcastUnconfirmedError, QuoteError, ReceiptTimeoutError, RpcError
from seller.providers.rpc import SigningContext
from seller.services.chains import NATIVE_PLACEHOLDER

EXECUTOR = "0x" + "e" * 40
RECEIVER = "0x" + "A" * 40
SPENDER = "0x" + "5" * 40
ROUTER = "0x" + "7" * 40

BASE_USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
BASE_WETH = "0x4200000000000000000000000000000000000006"
ARB_USDC = "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"

TOKENS = {
    (8453, "USDC"): TokenMetadata(address=BASE_USDC, decimals=6, symbol="USDC", chainId=8453),
    (8453, "ETH"): TokenMetadata(address=NATIVE_PLACEHOLDER, decimals=18, symbol="ETH", chainId=8453),
    (8453, "WETH"): TokenMetadata(address=BASE_WETH, decimals=18, symbol="WETH", chainId=8453),
    (42161, "USDC"): TokenMetadata(address=ARB_USDC, decimals=6, symbol="USDC", chainId=42161),
}


def make_quote(
    approval: Optional[str] = SPENDER,
    step_approvals: Optional[List[Optional[str]]] = None,
    transaction_request: Optional[Dict[str, Any]] = None,
    with_request: bool = True,
) -> Quote:
    payload: Dict[str, Any] = {
        "id": "quote-1",
        "tool": "uniswap",
        "estimate": {"approvalAddress": approval, "fromAmount": "5000000", "toAmount": "1200000000000000"},
        "includedSteps": [
            {"id": f"step-{i}", "tool": "uniswap", "estimate": {"approvalAddress": address}}
            for i, address in enumerate(step_approvals or [])
        ],
    }
    if with_request:
        payload["transactionRequest"] = transaction_request or {
            "to": ROUTER,
            "data": "0xdeadbeef",
            "value": "0x0",
            "gasLimit": "0x30d40",
            "gasPrice": "0x3b9aca00",
        }
    return Quote.model_validate(payload)


class SleepRecorder:
    """Awaitable stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class EventRecorder:
    def __init__(self) -> None:
        self.events = []

    def __call__(self, event) -> None:
        self.events.append(event)

    def names(self) -> List[str]:
        return [event.name for event in self.events]

    def states(self) -> List[str]:
        return [event.data["state"] for event in self.events if event.name == "state_changed"]


class FakeChainClient:
    """Scripted chain client.

    ``balances`` is consumed one value per read until a single value is left,
    which then repeats.
    Failures are scripted by transaction type or, where types collide (a
    wrap route and its direct deposit), by destination address.
    """

    def __init__(
        self,
        chain_id: int = 8453,
        balances: Optional[List[int]] = None,
        allowances: Optional[Dict[str, int]] = None,
        revert_types: Optional[set] = None,
        timeout_types: Optional[set] = None,
        revert_to: Optional[set] = None,
        reject_to: Optional[set] = None,
        unacknowledged_to: Optional[set] = None,
    ) -> None:
        self.chain_id = chain_id
        self.balances = list(balances if balances is not None else [0])
        self.allowances = {k.lower(): v for k, v in (allowances or {}).items()}
        self.revert_types = set(revert_types or ())
        self.timeout_types = set(timeout_types or ())
        self.revert_to = {address.lower() for address in revert_to or ()}
        self.reject_to = {address.lower() for address in reject_to or ()}
        self.unacknowledged_to = {address.lower() for address in unacknowledged_to or ()}
        self.balance_reads: List[Optional[str]] = []
        self.allowance_reads: List[str] = []
        self.sent: List[TxPlan] = []

    async def get_balance(self, owner: str, token: Optional[str] = None) -> int:
        self.balance_reads.append(token)
        if len(self.balances) > 1:
            return self.balances.pop(0)
        return self.balances[0]

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        self.allowance_reads.append(spender)
        return self.allowances.get(spender.lower(), 0)

    async def send_transaction(self, plan: TxPlan, signer) -> str:
        if plan.to_address.lower() in self.reject_to:
            raise RpcError("RPC eth_sendRawTransaction error: insufficient funds for gas")
        self.sent.append(plan)
        tx_hash = "0x%064x" % len(self.sent)
        if plan.to_address.lower() in self.unacknowledged_to:
            raise BroadcastUnconfirmedError(tx_hash, chain_id=self.chain_id, reason="ReadTimeout")
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str, *, timeout_s: float = 300.0, poll_interval_s: float = 2.0):
        plan = self.sent[int(tx_hash, 16) - 1]
        if plan.tx_type in self.timeout_types:
            raise ReceiptTimeoutError(tx_hash, chain_id=self.chain_id, waited_s=timeout_s)
        reverted = plan.tx_type in self.revert_types or plan.to_address.lower() in self.revert_to
        status = TransactionStatus.REVERTED if reverted else TransactionStatus.CONFIRMED
        return TxReceipt(tx_hash=tx_hash, status=status, chain_id=self.chain_id, block_number=100 + len(self.sent))

    def sent_types(self) -> List[TransactionType]:
        return [plan.tx_type for plan in self.sent]


class FakeChains:
    """ChainClients stand-in serving one client for every chain id."""

    def __init__(self, client: FakeChainClient) -> None:
        self.client = client
        self.requested: List[int] = []

    def for_chain(self, chain_id: int) -> FakeChainClient:
        self.requested.append(chain_id)
        return self.client


class FakeLifi:
    def __init__(self, quote: Optional[Quote] = None, quote_error: Optional[BaseException] = None) -> None:
        self.quote_value = quote if quote is not None else make_quote()
        self.quote_error = quote_error
        self.token_lookups: List[tuple] = []
        self.quote_requests = []

    async def get_token(self, chain, token: str) -> TokenMetadata:
        self.token_lookups.append((chain, token))
        key = (int(chain), token.upper())
        if key not in TOKENS:
            raise QuoteError(f"LI.FI /token failed (404): Token {token} not found", status_code=404)
        return TOKENS[key]

    async def quote(self, request) -> Quote:
        self.quote_requests.append(request)
        if self.quote_error is not None:
            raise self.quote_error
        return self.quote_value


@pytest.fixture
def signer() -> SigningContext:
    return SigningContext(address=EXECUTOR, _account=None)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def events(recorder) -> EventEmitter:
    return EventEmitter(recorder)
