"""JSON-RPC chain client and the executor's local signer."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from eth_account import Account

from ..core.execution.models import TransactionStatus, TxPlan, TxReceipt, to_int
from ..core.execution.tx_builder import decode_uint256, encode_allowance, encode_balance_of
from ..core.recovery.errors import (
    BroadcastUnconfirmedError,
    ConfigError,
    NetworkError,
    ReceiptTimeoutError,
    RpcError,
    digest_body,
    is_retryable,
)
from ..core.recovery.retry import RetryPolicy
from ..services.address import checksum
from ..services.chains import NATIVE_PLACEHOLDER, ChainRegistry

logger = logging.getLogger(__name__)

# Headroom applied to eth_estimateGas results
GAS_LIMIT_MULTIPLIER = 1.2

# Node replies to a resend of bytes it already holds
_ALREADY_KNOWN = ("already known", "known transaction", "already imported")
_NONCE_USED = ("nonce too low", "nonce is too low")


@dataclass(frozen=True)
class SigningContext:
    """The executor account, constructed once at the boundary and passed in explicitly."""

    address: str
    _account: Any = field(repr=False, compare=False)

    @classmethod
    def from_private_key(cls, private_key: str) -> "SigningContext":
        key = (private_key or "").strip()
        if not key:
            raise ConfigError("Executor private key is not configured")
        if not key.startswith("0x"):
            key = "0x" + key
        try:
            account = Account.from_key(key)
        except (ValueError, TypeError):
            raise ConfigError("Executor private key is invalid") from None
        return cls(address=account.address, _account=account)

    def sign_transaction(self, tx: Dict[str, Any]) -> "SignedTransaction":
        signed = self._account.sign_transaction(tx)
        return SignedTransaction(
            raw="0x" + bytes(signed.raw_transaction).hex(),
            tx_hash="0x" + bytes(signed.hash).hex(),
        )


@dataclass(frozen=True)
class SignedTransaction:
    raw: str
    tx_hash: str


class RpcClient:
    """Minimal async JSON-RPC client for one EVM chain."""

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        *,
        timeout_s: float = 30,
        retry: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.timeout_s = timeout_s
        self.retry = retry or RetryPolicy()
        self._transport = transport
        self._sleep = sleep or asyncio.sleep

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                response = await client.post(self.rpc_url, json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise NetworkError(
                f"RPC {payload['method']} failed ({status}) on chain {self.chain_id}",
                status_code=status,
                body=digest_body(exc.response.text),
            ) from None
        except httpx.RequestError as exc:
            raise NetworkError(
                f"RPC {payload['method']} unreachable on chain {self.chain_id}: {type(exc).__name__}"
            ) from None
        except ValueError:
            raise NetworkError(f"RPC {payload['method']} returned a non-JSON body on chain {self.chain_id}") from None

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        """Make an RPC call to the chain."""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": 1,
        }
        result = await self.retry.run(lambda: self._post(payload))

        if "error" in result:
            raise RpcError(f"RPC {method} error: {digest_body(result['error'])}", body=digest_body(result["error"]))

        return result.get("result")

    # -- reads ------------------------------------------------------------

    async def eth_call(self, to: str, data: str) -> str:
        return await self._rpc_call("eth_call", [{"to": to, "data": data}, "latest"])

    async def get_native_balance(self, owner: str) -> int:
        return to_int(await self._rpc_call("eth_getBalance", [owner, "latest"]))

    async def erc20_balance_of(self, token: str, owner: str) -> int:
        return decode_uint256(await self.eth_call(token, encode_balance_of(owner)))

    async def get_balance(self, owner: str, token: Optional[str] = None) -> int:
        """Native balance when ``token`` is None or the native placeholder."""
        if not token or token.lower() == NATIVE_PLACEHOLDER:
            return await self.get_native_balance(owner)
        return await self.erc20_balance_of(token, owner)

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        return decode_uint256(await self.eth_call(token, encode_allowance(owner, spender)))

    async def get_nonce(self, address: str) -> int:
        return to_int(await self._rpc_call("eth_getTransactionCount", [address, "pending"]))

    async def gas_price(self) -> int:
        return to_int(await self._rpc_call("eth_gasPrice", []))

    async def estimate_gas(self, call: Dict[str, Any]) -> int:
        return to_int(await self._rpc_call("eth_estimateGas", [call]))

    # -- writes -----------------------------------------------------------

    async def send_transaction(self, plan: TxPlan, signer: SigningContext) -> str:
        """Sign ``plan`` with ``signer`` and broadcast it. Returns the tx hash."""

        call = {
            "from": signer.address,
            "to": plan.to_address,
            "data": plan.data or "0x",
            "value": hex(plan.value),
        }
        gas_limit = plan.gas_limit or int(await self.estimate_gas(call) * GAS_LIMIT_MULTIPLIER)
        gas_price = plan.gas_price or await self.gas_price()
        nonce = await self.get_nonce(signer.address)

        tx = {
            "to": checksum(plan.to_address),
            "data": plan.data or "0x",
            "value": plan.value,
            "gas": gas_limit,
            "gasPrice": gas_price,
            "nonce": nonce,
            "chainId": self.chain_id,
        }
        signed = signer.sign_transaction(tx)
        tx_hash = await self.broadcast(signed)
        logger.info("Broadcast %s tx %s on chain %s (nonce %s)", plan.tx_type.value, tx_hash, self.chain_id, nonce)
        return tx_hash

    async def broadcast(self, signed: SignedTransaction) -> str:
        """Send signed bytes, resending the same bytes on transient failures.

        The hash is computed locally, so a send whose reply was lost is still
        tracked. Once an attempt may have reached the node, any later failure
        raises BroadcastUnconfirmedError instead of a plain send error.

        Raises:
            RpcError: the node rejected the transaction outright.
            BroadcastUnconfirmedError: acceptance is unknown; the tx may still land.
        """

        payload = {"jsonrpc": "2.0", "method": "eth_sendRawTransaction", "params": [signed.raw], "id": 1}
        attempts = {"count": 0, "uncertain": False}

        async def send() -> Dict[str, Any]:
            attempts["count"] += 1
            try:
                return await self._post(payload)
            except NetworkError as exc:
                if is_retryable(exc):
                    attempts["uncertain"] = True
                raise

        try:
            result = await self.retry.run(send)
        except NetworkError as exc:
            if attempts["uncertain"]:
                raise BroadcastUnconfirmedError(signed.tx_hash, chain_id=self.chain_id, reason=exc.message) from None
            raise

        if "error" not in result:
            returned = result.get("result")
            if returned and str(returned).lower() != signed.tx_hash.lower():
                logger.warning("Node returned hash %s for tx %s on chain %s", returned, signed.tx_hash, self.chain_id)
            return signed.tx_hash

        message = digest_body(result["error"])
        lowered = message.lower()
        resent = attempts["count"] > 1
        if any(marker in lowered for marker in _ALREADY_KNOWN) or (
            resent and any(marker in lowered for marker in _NONCE_USED)
        ):
            logger.info("Node already holds tx %s on chain %s (%s)", signed.tx_hash, self.chain_id, message)
            return signed.tx_hash
        if attempts["uncertain"]:
            raise BroadcastUnconfirmedError(signed.tx_hash, chain_id=self.chain_id, reason=message)
        raise RpcError(f"RPC eth_sendRawTransaction error: {message}", body=message)

    async def wait_for_receipt(
        self,
        tx_hash: str,
        *,
        timeout_s: float = 300.0,
        poll_interval_s: float = 2.0,
    ) -> TxReceipt:
        """Poll until the receipt is available; status comes from the receipt, not the node's acceptance."""

        waited = 0.0
        while True:
            receipt = await self._rpc_call("eth_getTransactionReceipt", [tx_hash])
            if receipt:
                status = receipt.get("status")
                return TxReceipt(
                    tx_hash=tx_hash,
                    status=TransactionStatus.CONFIRMED if to_int(status) == 1 else TransactionStatus.REVERTED,
                    chain_id=self.chain_id,
                    block_number=to_int(receipt.get("blockNumber")) if receipt.get("blockNumber") else None,
                    gas_used=to_int(receipt.get("gasUsed")) if receipt.get("gasUsed") else None,
                )
            if waited >= timeout_s:
                raise ReceiptTimeoutError(tx_hash, chain_id=self.chain_id, waited_s=waited)
            await self._sleep(poll_interval_s)
            waited += poll_interval_s


class ChainClients:
    """Builds one ``RpcClient`` per chain id from the registry's RPC endpoints."""

    def __init__(
        self,
        registry: ChainRegistry,
        *,
        timeout_s: float = 30,
        retry: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ) -> None:
        self.registry = registry
        self.timeout_s = timeout_s
        self.retry = retry or RetryPolicy()
        self._transport = transport
        self._sleep = sleep
        self._clients: Dict[int, RpcClient] = {}

    def for_chain(self, chain_id: int) -> RpcClient:
        client = self._clients.get(chain_id)
        if client is None:
            descriptor = self.registry.by_id(chain_id)
            if descriptor is None:
                raise ConfigError(f"No RPC endpoint configured for chain {chain_id}")
            client = RpcClient(
                descriptor.rpc_url,
                chain_id,
                timeout_s=self.timeout_s,
                retry=self.retry,
                transport=self._transport,
                sleep=self._sleep,
            )
            self._clients[chain_id] = client
        return client
