"""
End-to-end tests for the offering handlers and the job pipeline.

Handlers are wired with build_offerings, the same as in production, with the
routing service, the chain client and sleeping replaced by fakes.
"""

import logging
from decimal import Decimal

import pytest

from conftest import BASE_USDC, EXECUTOR, RECEIVER, FakeChainClient, FakeChains, FakeLifi
from seller.config import OfferingConfig, Settings
from seller.core.offerings import OfferingHandlers, build_offerings
from seller.core.recovery import ConfigError, QuoteError, ValidationError

SWAP = f"swap 5 USDC to ETH on base receiver {RECEIVER}"


def wire(signer, recorder, sleeps, *, lifi=None, client=None, settings=None):
    lifi = lifi or FakeLifi()
    client = client or FakeChainClient(balances=[5_000_000])
    offerings = build_offerings(
        settings or Settings(_env_file=None),
        signer=signer,
        event_hook=recorder,
        lifi=lifi,
        chains=FakeChains(client),
        sleep=sleeps,
    )
    return offerings, lifi, client


# =============================================================================
# Produced interface: validation, payment and funds requests
# =============================================================================

class TestRequirements:

    def test_valid_request(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps)

        assert offerings["swap"].validate_requirements(SWAP) == {"valid": True}

    def test_bridge_to_same_chain(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps)

        result = offerings["bridge"].validate_requirements(f"bridge 5 USDC from base to base receiver {RECEIVER}")

        assert result == {"valid": False, "reason": "fromChain and toChain must be different"}

    def test_parse_failure_is_a_rejection(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps)

        result = offerings["swap"].validate_requirements("swap 5 USDC to ETH on base")

        assert result["valid"] is False
        assert result["reason"].startswith("Missing receiver")

    def test_payment_message(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps)

        message = offerings["swap"].request_payment(SWAP)

        assert "transfer 5 USDC on base" in message
        assert f"receiver={RECEIVER}" in message

    def test_payment_message_falls_back_on_garbage(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps)

        assert offerings["swap"].request_payment("???") == "Swap request accepted."

    def test_additional_funds_include_percentage_fee(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps)

        funds = offerings["swap"].request_additional_funds(f"swap 99 USDC to ETH on base receiver {RECEIVER}")

        assert funds["amount"] == 100.0
        assert funds["tokenAddress"] == BASE_USDC
        assert funds["recipient"] == EXECUTOR
        assert funds["chainId"] == 8453
        assert "Send 100 USDC" in funds["content"]

    def test_additional_funds_include_fixed_fee(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps)

        funds = offerings["transfer"].request_additional_funds({"amount": 10, "addressToTip": RECEIVER})

        assert funds["amount"] == 260.0

    def test_additional_funds_for_unknown_funding_token(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps)

        with pytest.raises(ValidationError):
            offerings["swap"].request_additional_funds(f"swap 5 DEGEN to ETH on base receiver {RECEIVER}")

    def test_swap_off_the_funding_chain_is_rejected(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps)
        request = f"swap 5 USDC to ETH on arbitrum receiver {RECEIVER}"

        result = offerings["swap"].validate_requirements(request)

        assert result == {"valid": False, "reason": "Unsupported chain: arbitrum. Supported: base"}
        with pytest.raises(ValidationError):
            offerings["swap"].request_additional_funds(request)

    def test_bridge_must_start_on_the_funding_chain(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps)

        result = offerings["bridge"].validate_requirements(f"bridge 5 USDC from arbitrum to base receiver {RECEIVER}")

        assert result == {"valid": False, "reason": "Unsupported fromChain: arbitrum. Supported: base"}


# =============================================================================
# Job execution
# =============================================================================

class TestExecuteJob:

    @pytest.mark.asyncio
    async def test_swap_happy_path(self, signer, recorder, sleeps):
        offerings, _, client = wire(signer, recorder, sleeps)

        deliverable = (await offerings["swap"].execute_job(SWAP, job_id="job-42"))["deliverable"]

        assert deliverable["ok"] is True
        assert deliverable["mode"] == "executed"
        assert deliverable["executor"] == EXECUTOR
        assert deliverable["route"] == {"tool": "uniswap", "quoteId": "quote-1"}
        assert deliverable["tx"] == {"hash": "0x%064x" % 2, "status": "success", "blockNumber": "102"}
        assert len(deliverable["approvals"]["approveTxs"]) == 1
        assert deliverable["resolved"]["fromAmount"] == "5000000"
        assert deliverable["note"] == "Same-chain swap confirmed."
        assert recorder.states() == [
            "parsed",
            "validated",
            "awaiting_funds",
            "quoted",
            "approving",
            "executing",
            "confirmed",
        ]
        assert {event.job_id for event in recorder.events} == {"job-42"}
        assert sleeps.calls == []

    @pytest.mark.asyncio
    async def test_funds_timeout(self, signer, recorder, sleeps):
        offerings, _, client = wire(signer, recorder, sleeps, client=FakeChainClient(balances=[0]))

        deliverable = (await offerings["swap"].execute_job(SWAP))["deliverable"]

        assert deliverable["ok"] is False
        assert deliverable["error"] == "Insufficient executor token balance"
        assert deliverable["code"] == "funds_timeout"
        assert deliverable["details"]["needed"] == "5000000"
        assert deliverable["input"]["tokenIn"] == "USDC"
        assert sleeps.calls == [5.0] * 12
        assert client.sent == []
        assert recorder.states()[-1] == "failed"

    @pytest.mark.asyncio
    async def test_parse_failure_never_raises(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps)

        deliverable = (await offerings["swap"].execute_job("swap five USDC to ETH on base"))["deliverable"]

        assert deliverable["ok"] is False
        assert deliverable["code"] == "parse_error"

    @pytest.mark.asyncio
    async def test_validation_failure(self, signer, recorder, sleeps):
        offerings, _, client = wire(signer, recorder, sleeps)

        deliverable = (await offerings["swap"].execute_job(f"swap 5 USDC to usdc on base receiver {RECEIVER}"))[
            "deliverable"
        ]

        assert deliverable["error"] == "tokenIn and tokenOut must be different"
        assert client.balance_reads == []

    @pytest.mark.asyncio
    async def test_wrong_chain_never_waits_for_funds(self, signer, recorder, sleeps):
        offerings, lifi, client = wire(signer, recorder, sleeps)

        deliverable = (await offerings["swap"].execute_job(f"swap 5 USDC to ETH on arbitrum receiver {RECEIVER}"))[
            "deliverable"
        ]

        assert deliverable["code"] == "validation_error"
        assert deliverable["error"] == "Unsupported chain: arbitrum. Supported: base"
        assert client.balance_reads == []
        assert lifi.quote_requests == []

    @pytest.mark.asyncio
    async def test_quote_rejection_is_summarized(self, signer, recorder, sleeps):
        lifi = FakeLifi(quote_error=QuoteError("LI.FI /quote failed (400): No available quotes", status_code=400))
        offerings, _, _ = wire(signer, recorder, sleeps, lifi=lifi)

        deliverable = (await offerings["swap"].execute_job(SWAP))["deliverable"]

        assert deliverable["error"] == "Swap execution failed"
        assert deliverable["code"] == "quote_error"
        assert deliverable["details"]["status"] == 400
        assert "No available quotes" in deliverable["details"]["reason"]

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_failure(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps, lifi=FakeLifi(quote_error=RuntimeError("kaboom")))

        deliverable = (await offerings["swap"].execute_job(SWAP))["deliverable"]

        assert deliverable["ok"] is False
        assert deliverable["code"] == "internal_error"
        assert deliverable["error"] == "Swap execution failed"

    @pytest.mark.asyncio
    async def test_bridge_dry_run(self, signer, recorder, sleeps):
        offerings, _, client = wire(signer, recorder, sleeps)
        request = {"command": f"bridge 5 USDC from base to arbitrum receiver {RECEIVER}", "dryRun": True}

        deliverable = (await offerings["bridge"].execute_job(request))["deliverable"]

        assert deliverable["mode"] == "dryRun"
        assert deliverable["plan"][0]["type"] == "bridge"
        assert deliverable["approvals"]["allowanceReport"][0]["action"] == "would_approve"
        assert deliverable["note"] == "Dry run: nothing was broadcast."
        assert "tx" not in deliverable
        assert client.sent == []
        assert "confirmed" not in recorder.states()

    @pytest.mark.asyncio
    async def test_bridge_note(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps)

        deliverable = (await offerings["bridge"].execute_job(f"bridge 5 USDC from base to arbitrum receiver {RECEIVER}"))[
            "deliverable"
        ]

        assert deliverable["resolved"]["toChainId"] == 42161
        assert deliverable["note"].startswith("Source tx confirmed.")

    @pytest.mark.asyncio
    async def test_transfer(self, signer, recorder, sleeps):
        offerings, _, client = wire(signer, recorder, sleeps, client=FakeChainClient(balances=[250_000_000]))

        deliverable = (await offerings["transfer"].execute_job({"amount": 250, "addressToTip": RECEIVER}))[
            "deliverable"
        ]

        assert deliverable["note"] == f"Successfully sent 250 USDC to {RECEIVER}"
        assert deliverable["resolved"]["strategy"] == "direct"
        assert len(client.sent) == 1

    @pytest.mark.asyncio
    async def test_wrap_fallback_note(self, signer, recorder, sleeps):
        lifi = FakeLifi(quote_error=QuoteError("LI.FI /quote failed (404): No available quotes", status_code=404))
        client = FakeChainClient(balances=[10**16])
        offerings, _, _ = wire(signer, recorder, sleeps, lifi=lifi, client=client)

        deliverable = (await offerings["wrap"].execute_job(f"wrap 0.01 ETH on base receiver {EXECUTOR}"))["deliverable"]

        assert deliverable["ok"] is True
        assert deliverable["resolved"]["strategy"] == "direct"
        assert deliverable["note"] == "Routing unavailable (quote_error); used direct wrap call. Wrap confirmed."
        assert client.balance_reads == [None]

    @pytest.mark.asyncio
    async def test_failing_event_hook_does_not_break_the_job(self, signer, sleeps):
        def broken_hook(event):
            raise RuntimeError("sink down")

        offerings, _, _ = wire(signer, broken_hook, sleeps)

        deliverable = (await offerings["swap"].execute_job(SWAP))["deliverable"]

        assert deliverable["ok"] is True


# =============================================================================
# Quote-only mode
# =============================================================================

class TestQuoteJob:

    @pytest.mark.asyncio
    async def test_bridge_quote_for_buyer_signing(self, signer, recorder, sleeps):
        offerings, lifi, client = wire(signer, recorder, sleeps)

        deliverable = (await offerings["bridge"].quote_job(f"bridge 5 USDC from base to arbitrum receiver {RECEIVER}"))[
            "deliverable"
        ]

        assert deliverable["mode"] == "quote_only"
        assert deliverable["quote"]["transactionRequest"]["data"] == "0xdeadbeef"
        assert deliverable["quote"]["includedSteps"] == []
        assert "/status" in deliverable["next"]
        assert lifi.quote_requests[0].from_address == RECEIVER
        assert client.balance_reads == []

    @pytest.mark.asyncio
    async def test_quote_may_start_on_any_supported_chain(self, signer, recorder, sleeps):
        offerings, lifi, _ = wire(signer, recorder, sleeps)

        deliverable = (await offerings["bridge"].quote_job(f"bridge 5 USDC from arbitrum to base receiver {RECEIVER}"))[
            "deliverable"
        ]

        assert deliverable["mode"] == "quote_only"
        assert deliverable["resolved"]["fromChainId"] == 42161

    @pytest.mark.asyncio
    async def test_wrap_is_not_quotable(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps)

        deliverable = (await offerings["wrap"].quote_job(f"wrap 0.01 ETH on base receiver {RECEIVER}"))["deliverable"]

        assert deliverable["ok"] is False
        assert deliverable["error"] == "Quote-only mode supports swap and bridge requests only"

    @pytest.mark.asyncio
    async def test_quote_failure(self, signer, recorder, sleeps):
        lifi = FakeLifi(quote_error=QuoteError("LI.FI /quote failed (500): busy", status_code=500))
        offerings, _, _ = wire(signer, recorder, sleeps, lifi=lifi)

        deliverable = (await offerings["swap"].quote_job(SWAP))["deliverable"]

        assert deliverable["error"] == "Quote failed"
        assert deliverable["details"]["status"] == 500


# =============================================================================
# Wiring
# =============================================================================

class TestBuildOfferings:

    def test_every_kind_is_wired(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps)

        assert sorted(offerings) == ["bridge", "swap", "transfer", "wrap"]
        assert offerings["transfer"].offering.job_fee_type == "fixed"

    def test_missing_key_is_config_error(self, monkeypatch):
        monkeypatch.delenv("EXECUTOR_PRIVATE_KEY", raising=False)

        with pytest.raises(ConfigError):
            build_offerings(Settings(_env_file=None), lifi=FakeLifi(), chains=FakeChains(FakeChainClient()))

    def test_unusable_fee_is_config_error(self, signer, recorder, sleeps):
        settings = Settings(_env_file=None, swap_fee=OfferingConfig(job_fee=Decimal("1")))

        with pytest.raises(ConfigError):
            wire(signer, recorder, sleeps, settings=settings)

    def test_log_level_is_applied(self, signer, recorder, sleeps):
        wire(signer, recorder, sleeps, settings=Settings(_env_file=None, log_level="WARNING"))

        assert logging.getLogger().level == logging.WARNING

    def test_unknown_kind(self, signer, recorder, sleeps):
        offerings, _, _ = wire(signer, recorder, sleeps)

        with pytest.raises(ConfigError):
            OfferingHandlers("stake", offerings["swap"].pipeline)
