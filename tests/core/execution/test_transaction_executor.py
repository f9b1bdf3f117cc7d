"""
Tests for route resolution and the transaction executor.

Routing and chain clients are in-memory fakes; the executor is exercised
through the same QuoteResolver the pipeline uses.
"""

import pytest

from conftest import (
    BASE_USDC,
    BASE_WETH,
    EXECUTOR,
    RECEIVER,
    ROUTER,
    FakeChainClient,
    FakeChains,
    FakeLifi,
    make_quote,
)
from seller.core.execution.executor import DIRECT, ROUTE, TransactionExecutor
from seller.core.execution.models import JobState, TransactionType
from seller.core.execution.resolver import QuoteResolver
from seller.core.intents.parser import parse_command
from seller.core.recovery.errors import (
    AmountError,
    OnChainRevertError,
    QuoteError,
    ReceiptTimeoutError,
)
from seller.services.chains import NATIVE_PLACEHOLDER, ChainRegistry


def build(lifi=None, client=None, events=None):
    lifi = lifi or FakeLifi()
    client = client or FakeChainClient()
    resolver = QuoteResolver(lifi, ChainRegistry())
    executor = TransactionExecutor(resolver, FakeChains(client), events=events)
    return resolver, executor, client


# =============================================================================
# Resolver
# =============================================================================

class TestQuoteResolver:

    @pytest.mark.asyncio
    async def test_swap_route(self):
        resolver, _, _ = build()

        route = await resolver.resolve(parse_command(f"swap 5 USDC to ETH on base receiver {RECEIVER}"), EXECUTOR)

        assert route.from_chain_id == route.to_chain_id == 8453
        assert route.from_token.address == BASE_USDC
        assert route.to_token.address == NATIVE_PLACEHOLDER
        assert route.from_amount == 5_000_000
        assert route.from_address == EXECUTOR
        assert route.to_address == RECEIVER
        assert route.slippage == pytest.approx(0.005)
        assert not route.is_native_source

    @pytest.mark.asyncio
    async def test_bridge_route_and_request(self):
        resolver, _, _ = build()
        intent = parse_command(f"bridge 2.5 USDC from base to arbitrum slippage 1 receiver {RECEIVER}")

        route = await resolver.resolve(intent, EXECUTOR)
        params = route.to_request().to_params("lifi-api")

        assert route.to_chain_id == 42161
        assert route.to_dict()["fromChainId"] == 8453
        assert route.to_dict()["toChainId"] == 42161
        assert params["fromAmount"] == "2500000"
        assert params["slippage"] == pytest.approx(0.01)
        assert params["fromAddress"] == EXECUTOR

    @pytest.mark.asyncio
    async def test_wrap_route_uses_chain_descriptor(self):
        lifi = FakeLifi()
        resolver, _, _ = build(lifi=lifi)

        route = await resolver.resolve(parse_command(f"wrap 0.01 ETH on base receiver {RECEIVER}"), EXECUTOR)

        assert lifi.token_lookups == []
        assert route.is_native_source
        assert route.to_token.address == BASE_WETH
        assert route.from_amount == 10**16

    @pytest.mark.asyncio
    async def test_transfer_prefers_registry(self):
        lifi = FakeLifi()
        resolver, _, _ = build(lifi=lifi)

        route = await resolver.resolve(parse_command(f"transfer 250 USDC on base receiver {RECEIVER}"), EXECUTOR)

        assert lifi.token_lookups == []
        assert route.from_token.address == BASE_USDC
        assert route.from_amount == 250_000_000

    @pytest.mark.asyncio
    async def test_amount_precision_enforced_at_conversion(self):
        resolver, _, _ = build()

        with pytest.raises(AmountError):
            await resolver.resolve(parse_command(f"swap 1.1234567 USDC to ETH on base receiver {RECEIVER}"), EXECUTOR)

    @pytest.mark.asyncio
    async def test_unknown_token_surfaces_quote_error(self):
        resolver, _, _ = build()

        with pytest.raises(QuoteError) as excinfo:
            await resolver.resolve(parse_command(f"swap 5 DEGEN to ETH on base receiver {RECEIVER}"), EXECUTOR)

        assert excinfo.value.status_code == 404


# =============================================================================
# Route strategy
# =============================================================================

class TestRouteExecution:

    @pytest.mark.asyncio
    async def test_swap_approves_then_executes(self, signer, events, recorder):
        resolver, executor, client = build(events=events)
        intent = parse_command(f"swap 5 USDC to ETH on base receiver {RECEIVER}")
        route = await resolver.resolve(intent, signer.address)
        states = []

        outcome = await executor.execute(intent, route, signer, on_state=states.append)

        assert outcome.strategy == ROUTE
        assert client.sent_types() == [TransactionType.APPROVE, TransactionType.SWAP]
        assert client.sent[1].to_address == ROUTER
        assert client.sent[1].data == "0xdeadbeef"
        assert client.sent[1].gas_limit == 200_000
        assert len(outcome.receipts) == 1
        assert len(outcome.approvals.approve_tx_hashes) == 1
        assert states == [JobState.QUOTED, JobState.APPROVING, JobState.EXECUTING]
        assert recorder.names()[-1] == "tx_confirmed"

    @pytest.mark.asyncio
    async def test_dry_run_returns_plan_without_sending(self, signer):
        resolver, executor, client = build()
        intent = parse_command(f"swap 5 USDC to ETH on base receiver {RECEIVER}")
        route = await resolver.resolve(intent, signer.address)

        outcome = await executor.execute(intent, route, signer, dry_run=True)

        assert client.sent == []
        assert outcome.receipts == []
        assert outcome.plans[0].to_address == ROUTER
        assert outcome.approvals.report[0]["action"] == "would_approve"

    @pytest.mark.asyncio
    async def test_missing_transaction_request(self, signer):
        resolver, executor, client = build(lifi=FakeLifi(quote=make_quote(with_request=False)))
        intent = parse_command(f"swap 5 USDC to ETH on base receiver {RECEIVER}")
        route = await resolver.resolve(intent, signer.address)

        with pytest.raises(QuoteError) as excinfo:
            await executor.execute(intent, route, signer)

        assert excinfo.value.message == "LI.FI quote missing transactionRequest"
        assert client.sent == []

    @pytest.mark.asyncio
    async def test_reverted_route_transaction(self, signer):
        client = FakeChainClient(allowances={"0x" + "5" * 40: 10**30}, revert_types={TransactionType.BRIDGE})
        resolver, executor, _ = build(client=client)
        intent = parse_command(f"bridge 5 USDC from base to arbitrum receiver {RECEIVER}")
        route = await resolver.resolve(intent, signer.address)

        with pytest.raises(OnChainRevertError) as excinfo:
            await executor.execute(intent, route, signer)

        assert excinfo.value.tx_hash == "0x%064x" % 1
        assert client.sent_types() == [TransactionType.BRIDGE]


# =============================================================================
# Wrap fallback and direct transfers
# =============================================================================

class TestDirectExecution:

    @pytest.mark.asyncio
    async def test_wrap_uses_route_when_available(self, signer):
        resolver, executor, client = build()
        intent = parse_command(f"wrap 0.01 ETH on base receiver {RECEIVER}")
        route = await resolver.resolve(intent, signer.address)

        outcome = await executor.execute(intent, route, signer)

        assert outcome.strategy == ROUTE
        assert outcome.fallback_reason is None
        # Native source: no allowance to reconcile
        assert client.sent_types() == [TransactionType.WRAP]
        assert client.sent[0].to_address == ROUTER

    @pytest.mark.asyncio
    async def test_wrap_falls_back_to_deposit(self, signer, events, recorder):
        lifi = FakeLifi(quote_error=QuoteError("LI.FI /quote failed (404): No available quotes", status_code=404))
        resolver, executor, client = build(lifi=lifi, events=events)
        intent = parse_command(f"wrap 0.01 ETH on base receiver {signer.address}")
        route = await resolver.resolve(intent, signer.address)

        outcome = await executor.execute(intent, route, signer)

        assert outcome.strategy == DIRECT
        assert outcome.fallback_reason["code"] == "quote_error"
        assert client.sent_types() == [TransactionType.WRAP]
        deposit = client.sent[0]
        assert deposit.to_address == BASE_WETH
        assert deposit.data == "0xd0e30db0"
        assert deposit.value == 10**16
        assert "fallback_triggered" in recorder.names()

    @pytest.mark.asyncio
    async def test_wrap_fallback_forwards_to_receiver(self, signer):
        lifi = FakeLifi(quote=make_quote(with_request=False))
        resolver, executor, client = build(lifi=lifi)
        intent = parse_command(f"wrap 0.01 ETH on base receiver {RECEIVER}")
        route = await resolver.resolve(intent, signer.address)

        outcome = await executor.execute(intent, route, signer)

        assert client.sent_types() == [TransactionType.WRAP, TransactionType.TRANSFER]
        transfer = client.sent[1]
        assert transfer.to_address == BASE_WETH
        assert transfer.data.startswith("0xa9059cbb" + "0" * 24 + RECEIVER[2:].lower())
        assert len(outcome.receipts) == 2

    @pytest.mark.asyncio
    async def test_unwrap_fallback_sends_native_to_receiver(self, signer):
        lifi = FakeLifi(quote_error=QuoteError("no route", status_code=404))
        resolver, executor, client = build(lifi=lifi)
        intent = parse_command(f"unwrap 0.5 WETH on base receiver {RECEIVER}")
        route = await resolver.resolve(intent, signer.address)

        await executor.execute(intent, route, signer)

        assert client.sent_types() == [TransactionType.UNWRAP, TransactionType.TRANSFER]
        assert client.sent[0].data == "0x2e1a7d4d" + format(5 * 10**17, "064x")
        assert client.sent[1].to_address == RECEIVER
        assert client.sent[1].value == 5 * 10**17

    @pytest.mark.asyncio
    async def test_receipt_timeout_does_not_trigger_fallback(self, signer):
        client = FakeChainClient(timeout_types={TransactionType.WRAP})
        resolver, executor, _ = build(client=client)
        intent = parse_command(f"wrap 0.01 ETH on base receiver {RECEIVER}")
        route = await resolver.resolve(intent, signer.address)

        with pytest.raises(ReceiptTimeoutError):
            await executor.execute(intent, route, signer)

        assert len(client.sent) == 1

    @pytest.mark.asyncio
    async def test_reverted_route_wrap_falls_back_to_deposit(self, signer):
        client = FakeChainClient(revert_to={ROUTER})
        resolver, executor, _ = build(client=client)
        intent = parse_command(f"wrap 0.01 ETH on base receiver {signer.address}")
        route = await resolver.resolve(intent, signer.address)

        outcome = await executor.execute(intent, route, signer)

        assert [plan.to_address for plan in client.sent] == [ROUTER, BASE_WETH]
        assert client.sent[1].data == "0xd0e30db0"
        assert outcome.strategy == DIRECT
        assert outcome.fallback_reason["code"] == "onchain_revert"
        assert outcome.receipts[0].is_success

    @pytest.mark.asyncio
    async def test_rejected_route_send_falls_back_to_deposit(self, signer):
        client = FakeChainClient(reject_to={ROUTER})
        resolver, executor, _ = build(client=client)
        intent = parse_command(f"wrap 0.01 ETH on base receiver {signer.address}")
        route = await resolver.resolve(intent, signer.address)

        outcome = await executor.execute(intent, route, signer)

        assert [plan.to_address for plan in client.sent] == [BASE_WETH]
        assert outcome.fallback_reason["code"] == "rpc_error"

    @pytest.mark.asyncio
    async def test_unacknowledged_send_waits_for_receipt_without_fallback(self, signer, events, recorder):
        client = FakeChainClient(unacknowledged_to={ROUTER})
        resolver, executor, _ = build(client=client, events=events)
        intent = parse_command(f"wrap 0.01 ETH on base receiver {signer.address}")
        route = await resolver.resolve(intent, signer.address)

        outcome = await executor.execute(intent, route, signer)

        assert outcome.strategy == ROUTE
        assert outcome.fallback_reason is None
        assert [plan.to_address for plan in client.sent] == [ROUTER]
        assert outcome.receipts[0].tx_hash == "0x%064x" % 1
        assert "fallback_triggered" not in recorder.names()

    @pytest.mark.asyncio
    async def test_unacknowledged_send_that_never_lands_does_not_fall_back(self, signer):
        client = FakeChainClient(unacknowledged_to={ROUTER}, timeout_types={TransactionType.WRAP})
        resolver, executor, _ = build(client=client)
        intent = parse_command(f"wrap 0.01 ETH on base receiver {signer.address}")
        route = await resolver.resolve(intent, signer.address)

        with pytest.raises(ReceiptTimeoutError):
            await executor.execute(intent, route, signer)

        assert [plan.to_address for plan in client.sent] == [ROUTER]

    @pytest.mark.asyncio
    async def test_erc20_transfer(self, signer):
        resolver, executor, client = build()
        intent = parse_command(f"transfer 250 USDC on base receiver {RECEIVER}")
        route = await resolver.resolve(intent, signer.address)
        states = []

        outcome = await executor.execute(intent, route, signer, on_state=states.append)

        assert outcome.strategy == DIRECT
        assert client.sent_types() == [TransactionType.TRANSFER]
        assert client.sent[0].to_address == BASE_USDC
        assert client.sent[0].data.endswith(format(250_000_000, "064x"))
        assert states == [JobState.EXECUTING]
