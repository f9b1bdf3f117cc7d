"""
Allowance Reconciler.

Collects every spender a route needs, and raises allowances that do not
cover the required amount. Approvals go out one at a time: each is
confirmed before the next is signed, since they share the signer's nonce.
"""

import logging
from typing import List, Optional

from ...services.address import dedupe_addresses
from ...services.chains import NATIVE_PLACEHOLDER
from ..events import APPROVAL_ISSUED, APPROVAL_SKIPPED, TX_BROADCAST, TX_CONFIRMED, EventEmitter
from ..recovery.errors import OnChainRevertError
from .broadcast import send_committed
from .models import ApprovalState, Quote
from .tx_builder import MAX_UINT256, TransactionBuilder

logger = logging.getLogger(__name__)


def extract_spenders(quote: Quote) -> List[str]:
    """Distinct, valid, lower-cased approval addresses of a quote and its steps."""

    return dedupe_addresses(quote.approval_addresses())


def is_native_token(token_address: Optional[str]) -> bool:
    return not token_address or token_address.lower() == NATIVE_PLACEHOLDER


class AllowanceReconciler:
    def __init__(
        self,
        *,
        events: Optional[EventEmitter] = None,
        receipt_timeout_s: float = 300.0,
        receipt_poll_interval_s: float = 2.0,
    ) -> None:
        self.events = events or EventEmitter()
        self.receipt_timeout_s = receipt_timeout_s
        self.receipt_poll_interval_s = receipt_poll_interval_s

    async def reconcile(
        self,
        client,
        signer,
        quote: Quote,
        token_address: Optional[str],
        required: int,
        *,
        dry_run: bool = False,
    ) -> ApprovalState:
        """Ensure every spender of ``quote`` may move ``required`` of ``token_address``.

        In dry-run mode allowances are read and reported, but nothing is sent.

        Raises:
            OnChainRevertError: an approval transaction reverted.
        """

        state = ApprovalState()
        if is_native_token(token_address):
            return state

        for spender in extract_spenders(quote):
            current = await client.allowance(token_address, signer.address, spender)
            state.allowances[spender] = current

            if current >= required:
                state.report.append({"spender": spender, "allowance": str(current), "action": "none"})
                self.events.emit(APPROVAL_SKIPPED, spender=spender, allowance=str(current), required=str(required))
                continue

            if dry_run:
                state.report.append({"spender": spender, "allowance": str(current), "action": "would_approve"})
                continue

            plan = TransactionBuilder.build_erc20_approve(
                chain_id=client.chain_id,
                token_address=token_address,
                spender_address=spender,
                amount=MAX_UINT256,
            )
            tx_hash = await send_committed(client, plan, signer)
            self.events.emit(TX_BROADCAST, tx_type=plan.tx_type.value, tx_hash=tx_hash, spender=spender)

            receipt = await client.wait_for_receipt(
                tx_hash,
                timeout_s=self.receipt_timeout_s,
                poll_interval_s=self.receipt_poll_interval_s,
            )
            if not receipt.is_success:
                raise OnChainRevertError("Approval transaction reverted", tx_hash=tx_hash, chain_id=client.chain_id)

            self.events.emit(TX_CONFIRMED, tx_type=plan.tx_type.value, tx_hash=tx_hash)
            self.events.emit(APPROVAL_ISSUED, spender=spender, tx_hash=tx_hash, previous=str(current))
            logger.info("Approved %s for spender %s (%s)", token_address, spender, tx_hash)

            state.allowances[spender] = MAX_UINT256
            state.approve_tx_hashes.append(tx_hash)
            state.report.append(
                {"spender": spender, "allowance": str(current), "action": "approved", "txHash": tx_hash}
            )

        return state
