"""Sending a planned transaction once the job is committed to it."""

import logging

from ..recovery.errors import BroadcastUnconfirmedError
from .models import TxPlan

logger = logging.getLogger(__name__)


async def send_committed(client, plan: TxPlan, signer) -> str:
    """Broadcast ``plan`` and return its hash.

    A send the node never acknowledged still returns the locally computed
    hash: the transaction may be in the mempool, so only its receipt can say
    whether it landed. Callers wait for that receipt instead of failing or
    sending again.
    """

    try:
        return await client.send_transaction(plan, signer)
    except BroadcastUnconfirmedError as exc:
        logger.warning(
            "Send of %s tx %s not acknowledged (%s), waiting for its receipt",
            plan.tx_type.value,
            exc.tx_hash,
            exc.message,
        )
        return exc.tx_hash
