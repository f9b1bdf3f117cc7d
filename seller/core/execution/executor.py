"""
Transaction executor for on-chain execution.

Handles the broadcast half of a job:
- Route quoting and transaction-payload checks
- Allowance reconciliation before the route transaction
- Sequential broadcast, each step confirmed by its receipt
- The direct deposit/withdraw fallback for wrap and unwrap
- Dry runs, which return the plan without sending anything
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ...providers.rpc import ChainClients, SigningContext
from ...services.address import same_address
from ..events import FALLBACK_TRIGGERED, TX_BROADCAST, TX_CONFIRMED, EventEmitter
from ..intents.models import BridgeIntent, TransferIntent, WrapIntent
from ..recovery.errors import OnChainRevertError, QuoteError, ReceiptTimeoutError, SellerError
from .allowances import AllowanceReconciler
from .broadcast import send_committed
from .models import ApprovalState, JobState, Quote, TransactionType, TxPlan, TxReceipt
from .resolver import QuoteResolver, ResolvedRoute
from .tx_builder import TransactionBuilder

logger = logging.getLogger(__name__)

StateCallback = Callable[[JobState], None]

ROUTE = "route"
DIRECT = "direct"


def _noop_state(state: JobState) -> None:
    return None


@dataclass
class ExecutionOutcome:
    """What the executor did (or, in a dry run, would do) for one intent."""
    strategy: str
    quote: Optional[Quote] = None
    approvals: ApprovalState = field(default_factory=ApprovalState)
    plans: List[TxPlan] = field(default_factory=list)
    receipts: List[TxReceipt] = field(default_factory=list)
    fallback_reason: Optional[Dict[str, Any]] = None


class TransactionExecutor:
    """
    Executes one resolved intent with the injected signer.

    Exactly one top-level transaction is sent per strategy step, after any
    approvals it needs; nothing is sent before the previous receipt is in.
    """

    def __init__(
        self,
        resolver: QuoteResolver,
        chains: ChainClients,
        *,
        reconciler: Optional[AllowanceReconciler] = None,
        events: Optional[EventEmitter] = None,
        receipt_timeout_s: float = 300.0,
        receipt_poll_interval_s: float = 2.0,
    ):
        self.resolver = resolver
        self.chains = chains
        self.events = events or EventEmitter()
        self.receipt_timeout_s = receipt_timeout_s
        self.receipt_poll_interval_s = receipt_poll_interval_s
        self.reconciler = reconciler or AllowanceReconciler(
            events=self.events,
            receipt_timeout_s=receipt_timeout_s,
            receipt_poll_interval_s=receipt_poll_interval_s,
        )

    async def execute(
        self,
        intent,
        route: ResolvedRoute,
        signer: SigningContext,
        *,
        dry_run: bool = False,
        on_state: Optional[StateCallback] = None,
    ) -> ExecutionOutcome:
        """Run the strategy for ``intent``'s kind.

        Raises:
            QuoteError / NetworkError: routing or RPC failure after retries.
            OnChainRevertError: a confirmed transaction reverted.
            ReceiptTimeoutError: a broadcast transaction never produced a receipt.
        """

        on_state = on_state or _noop_state
        if isinstance(intent, TransferIntent):
            return await self._execute_direct(self.transfer_plans(route), route.from_chain_id, signer, dry_run, on_state)
        if isinstance(intent, WrapIntent):
            return await self._execute_wrap(intent, route, signer, dry_run, on_state)
        tx_type = TransactionType.BRIDGE if isinstance(intent, BridgeIntent) else TransactionType.SWAP
        return await self._execute_route(route, signer, tx_type, dry_run, on_state)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _execute_route(
        self,
        route: ResolvedRoute,
        signer: SigningContext,
        tx_type: TransactionType,
        dry_run: bool,
        on_state: StateCallback,
    ) -> ExecutionOutcome:
        quote = await self.resolver.quote(route)
        on_state(JobState.QUOTED)

        request = quote.transaction_request
        if request is None or not request.to or not request.data or request.data == "0x":
            raise QuoteError("LI.FI quote missing transactionRequest")
        plan = TxPlan.from_request(request, route.from_chain_id, tx_type, description=f"{tx_type.value} via {quote.tool}")

        client = self.chains.for_chain(route.from_chain_id)
        on_state(JobState.APPROVING)
        approvals = await self.reconciler.reconcile(
            client,
            signer,
            quote,
            None if route.is_native_source else route.from_token.address,
            route.from_amount,
            dry_run=dry_run,
        )

        outcome = ExecutionOutcome(strategy=ROUTE, quote=quote, approvals=approvals, plans=[plan])
        if dry_run:
            return outcome

        on_state(JobState.EXECUTING)
        outcome.receipts.append(await self._broadcast(client, plan, signer))
        return outcome

    async def _execute_direct(
        self,
        plans: List[TxPlan],
        chain_id: int,
        signer: SigningContext,
        dry_run: bool,
        on_state: StateCallback,
    ) -> ExecutionOutcome:
        outcome = ExecutionOutcome(strategy=DIRECT, plans=plans)
        if dry_run:
            return outcome

        client = self.chains.for_chain(chain_id)
        on_state(JobState.EXECUTING)
        for plan in plans:
            outcome.receipts.append(await self._broadcast(client, plan, signer))
        return outcome

    async def _execute_wrap(
        self,
        intent: WrapIntent,
        route: ResolvedRoute,
        signer: SigningContext,
        dry_run: bool,
        on_state: StateCallback,
    ) -> ExecutionOutcome:
        tx_type = TransactionType.WRAP if intent.action == "wrap" else TransactionType.UNWRAP
        try:
            return await self._execute_route(route, signer, tx_type, dry_run, on_state)
        except ReceiptTimeoutError:
            # Covers unacknowledged sends too. The route transaction may still land.
            raise
        except SellerError as exc:
            reason = {"code": exc.code, "message": exc.message}
            logger.warning("Route %s failed (%s), falling back to direct contract call", intent.action, exc.code)
            self.events.emit(FALLBACK_TRIGGERED, action=intent.action, reason=exc.code, message=exc.message)

        outcome = await self._execute_direct(
            self.wrap_plans(intent, route, signer.address),
            route.from_chain_id,
            signer,
            dry_run,
            on_state,
        )
        outcome.fallback_reason = reason
        return outcome

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    def wrap_plans(self, intent: WrapIntent, route: ResolvedRoute, signer_address: str) -> List[TxPlan]:
        """``deposit``/``withdraw`` on the wrapped-native contract, then a transfer if the receiver is someone else."""

        descriptor = self.resolver.registry.by_id(route.from_chain_id)
        chain_id = descriptor.chain_id
        wrapped = descriptor.wrapped_native_address
        amount = route.from_amount
        forward = not same_address(intent.receiver, signer_address)

        if intent.action == "wrap":
            plans = [TransactionBuilder.build_wrap(chain_id, wrapped, amount)]
            if forward:
                plans.append(TransactionBuilder.build_erc20_transfer(chain_id, wrapped, intent.receiver, amount))
        else:
            plans = [TransactionBuilder.build_unwrap(chain_id, wrapped, amount)]
            if forward:
                plans.append(TransactionBuilder.build_native_transfer(chain_id, intent.receiver, amount))
        return plans

    def transfer_plans(self, route: ResolvedRoute) -> List[TxPlan]:
        if route.is_native_source:
            return [TransactionBuilder.build_native_transfer(route.from_chain_id, route.to_address, route.from_amount)]
        return [
            TransactionBuilder.build_erc20_transfer(
                route.from_chain_id,
                route.from_token.address,
                route.to_address,
                route.from_amount,
            )
        ]

    # ------------------------------------------------------------------
    # Broadcast
    # ------------------------------------------------------------------

    async def _broadcast(self, client, plan: TxPlan, signer: SigningContext) -> TxReceipt:
        tx_hash = await send_committed(client, plan, signer)
        self.events.emit(TX_BROADCAST, tx_type=plan.tx_type.value, tx_hash=tx_hash, chain_id=plan.chain_id)

        receipt = await client.wait_for_receipt(
            tx_hash,
            timeout_s=self.receipt_timeout_s,
            poll_interval_s=self.receipt_poll_interval_s,
        )
        if not receipt.is_success:
            raise OnChainRevertError(
                f"{plan.tx_type.value.capitalize()} transaction reverted",
                tx_hash=tx_hash,
                chain_id=plan.chain_id,
            )

        self.events.emit(
            TX_CONFIRMED,
            tx_type=plan.tx_type.value,
            tx_hash=tx_hash,
            block_number=receipt.block_number,
        )
        return receipt
