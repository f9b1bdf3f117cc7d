"""
Job pipeline.

One job, one logical thread of control:

    Parsed -> Validated -> AwaitingFunds -> Quoted -> Approving* -> Executing -> Confirmed | Failed

Every step waits for the previous one's network or on-chain effect. The
pipeline holds no lock across jobs; running two jobs against the same signer
at once needs mutual exclusion outside this module.
"""

import logging
import uuid
from typing import Any, Dict, Optional

from ...logging_config import bind_job_context, clear_job_context
from ...providers.rpc import ChainClients, SigningContext
from ..amounts import format_units
from ..events import STATE_CHANGED, EventEmitter
from ..execution.balance import DEFAULT_INTERVAL_S, DEFAULT_TIMEOUT_S, BalanceWatcher
from ..execution.executor import ROUTE, ExecutionOutcome, TransactionExecutor
from ..execution.models import ExecutionMode, ExecutionResult, JobState
from ..execution.resolver import QuoteResolver, ResolvedRoute
from ..intents.models import BridgeIntent, SwapIntent, TransferIntent, WrapIntent
from ..intents.validator import IntentValidator
from ..recovery.errors import (
    ConfigError,
    FundsTimeoutError,
    ParseError,
    ValidationError,
    to_failure,
)

logger = logging.getLogger(__name__)

FAILURE_SUMMARY = {
    "swap": "Swap execution failed",
    "bridge": "Bridge execution failed",
    "wrap": "Wrap execution failed",
    "transfer": "Transfer execution failed",
}

# Errors whose own message is the best summary for the buyer
_SELF_DESCRIBING = (ParseError, ValidationError, FundsTimeoutError, ConfigError)

BRIDGE_NOTE = (
    "Source tx confirmed. Destination arrival can be delayed; track using LI.FI status "
    "endpoints or the bridge tool explorer."
)


class JobPipeline:
    """Drives one decoded intent from validation to a structured result."""

    def __init__(
        self,
        *,
        signer: SigningContext,
        resolver: QuoteResolver,
        executor: TransactionExecutor,
        chains: ChainClients,
        validator: Optional[IntentValidator] = None,
        watcher: Optional[BalanceWatcher] = None,
        events: Optional[EventEmitter] = None,
        funds_timeout_s: float = DEFAULT_TIMEOUT_S,
        funds_interval_s: float = DEFAULT_INTERVAL_S,
    ) -> None:
        self.signer = signer
        self.resolver = resolver
        self.executor = executor
        self.chains = chains
        self.validator = validator or IntentValidator(resolver.registry)
        self.events = events or EventEmitter()
        self.watcher = watcher or BalanceWatcher(events=self.events)
        self.funds_timeout_s = funds_timeout_s
        self.funds_interval_s = funds_interval_s

    async def run(self, intent, job_id: Optional[str] = None) -> ExecutionResult:
        """Execute ``intent``. Never raises: failures come back as a FAILED result."""

        job_id = job_id or uuid.uuid4().hex[:12]
        emitter = self.events.bind(job_id=job_id, kind=intent.kind)
        bind_job_context(job_id, kind=intent.kind)
        state = {"current": JobState.PARSED}

        def transition(new_state: JobState) -> None:
            emitter.emit(STATE_CHANGED, previous=state["current"].value, state=new_state.value)
            state["current"] = new_state

        emitter.emit(STATE_CHANGED, previous=None, state=JobState.PARSED.value)
        try:
            self.validator.validate_or_raise(intent)
            transition(JobState.VALIDATED)

            route = await self.resolver.resolve(intent, self.signer.address)

            transition(JobState.AWAITING_FUNDS)
            await self._await_funds(route)

            outcome = await self.executor.execute(
                intent,
                route,
                self.signer,
                dry_run=intent.dry_run,
                on_state=transition,
            )
            if not intent.dry_run:
                transition(JobState.CONFIRMED)
            return self._result(intent, route, outcome)
        except Exception as exc:
            transition(JobState.FAILED)
            if not isinstance(exc, _SELF_DESCRIBING):
                logger.exception("Job failed in state %s", state["current"].value)
            summary = None if isinstance(exc, _SELF_DESCRIBING) else FAILURE_SUMMARY.get(intent.kind)
            return ExecutionResult(
                mode=ExecutionMode.FAILED,
                executor=self.signer.address,
                input=intent.to_payload(),
                error=to_failure(exc, summary),
            )
        finally:
            clear_job_context()

    async def _await_funds(self, route: ResolvedRoute) -> None:
        client = self.chains.for_chain(route.from_chain_id)
        token = None if route.is_native_source else route.from_token.address
        result = await self.watcher.wait_for(
            client,
            self.signer.address,
            token,
            route.from_amount,
            timeout_s=self.funds_timeout_s,
            interval_s=self.funds_interval_s,
        )
        if not result.ok:
            raise FundsTimeoutError(needed=route.from_amount, have=result.balance, token=route.from_token.symbol)

    def _result(self, intent, route: ResolvedRoute, outcome: ExecutionOutcome) -> ExecutionResult:
        mode = ExecutionMode.DRY_RUN if intent.dry_run else ExecutionMode.EXECUTED
        resolved: Dict[str, Any] = route.to_dict()
        if isinstance(intent, (WrapIntent, TransferIntent)):
            resolved["strategy"] = outcome.strategy

        route_info = None
        if outcome.strategy == ROUTE and outcome.quote is not None:
            route_info = {"tool": outcome.quote.tool, "quoteId": outcome.quote.id}

        return ExecutionResult(
            mode=mode,
            executor=self.signer.address,
            input=intent.to_payload(),
            resolved=resolved,
            approvals=outcome.approvals,
            route=route_info,
            plan=outcome.plans,
            receipts=outcome.receipts,
            note=self._note(intent, route, outcome, mode),
        )

    @staticmethod
    def _note(intent, route: ResolvedRoute, outcome: ExecutionOutcome, mode: ExecutionMode) -> Optional[str]:
        fallback = ""
        if outcome.fallback_reason:
            fallback = f"Routing unavailable ({outcome.fallback_reason['code']}); used direct {intent.action} call. "
        if mode == ExecutionMode.DRY_RUN:
            return (fallback + "Dry run: nothing was broadcast.").strip()

        if isinstance(intent, SwapIntent):
            return "Same-chain swap confirmed."
        if isinstance(intent, BridgeIntent):
            return BRIDGE_NOTE
        if isinstance(intent, WrapIntent):
            return f"{fallback}{intent.action.capitalize()} confirmed.".strip()
        if isinstance(intent, TransferIntent):
            amount = format_units(route.from_amount, route.from_token.decimals)
            return f"Successfully sent {amount} {route.from_token.symbol} to {intent.receiver}"
        return None

    async def quote_only(self, intent) -> Dict[str, Any]:
        """Resolve and quote without waiting for funds or broadcasting.

        The buyer signs the returned transaction, so the route is quoted from
        the intent's own sender (defaulting to the receiver).

        Raises:
            ValidationError: invalid intent, or a kind other than swap/bridge.
            QuoteError / NetworkError: routing failure after retries.
        """

        if not isinstance(intent, (SwapIntent, BridgeIntent)):
            raise ValidationError("Quote-only mode supports swap and bridge requests only")
        # The buyer signs and pays on any supported chain
        self.validator.validate_or_raise(intent, funded=False)

        route = await self.resolver.resolve(intent, intent.effective_sender, from_address=intent.effective_sender)
        quote = await self.resolver.quote(route)

        quote_payload: Dict[str, Any] = {
            "quoteId": quote.id,
            "tool": quote.tool,
            "estimate": quote.estimate.model_dump(by_alias=True, exclude_none=True),
            "transactionRequest": (
                quote.transaction_request.model_dump(by_alias=True, exclude_none=True)
                if quote.transaction_request
                else None
            ),
        }
        next_step = "Buyer should sign & broadcast transactionRequest on source chain."
        if isinstance(intent, BridgeIntent):
            quote_payload["includedSteps"] = [
                step.model_dump(by_alias=True, exclude_none=True) for step in quote.included_steps
            ]
            next_step += " After broadcast, check /status with txHash."

        return {
            "ok": True,
            "mode": ExecutionMode.QUOTE_ONLY.value,
            "input": intent.to_payload(),
            "resolved": route.to_dict(),
            "route": {"tool": quote.tool, "quoteId": quote.id},
            "quote": quote_payload,
            "next": next_step,
        }
