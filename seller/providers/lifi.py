"""Async client for the LI.FI routing/quoting API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..core.execution.models import Quote, TokenMetadata
from ..core.recovery.errors import NetworkError, QuoteError, digest_body
from ..core.recovery.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://li.quest/v1"
DEFAULT_INTEGRATOR = "lifi-api"


@dataclass(frozen=True)
class QuoteRequest:
    """Parameters of one ``GET /quote`` call. ``from_amount`` is in smallest units."""

    from_chain: int
    to_chain: int
    from_token: str
    to_token: str
    from_amount: int
    from_address: str
    to_address: str
    slippage: float

    def to_params(self, integrator: Optional[str]) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "fromChain": self.from_chain,
            "toChain": self.to_chain,
            "fromToken": self.from_token,
            "toToken": self.to_token,
            "fromAmount": str(self.from_amount),
            "fromAddress": self.from_address,
            "toAddress": self.to_address,
            "slippage": self.slippage,
        }
        if integrator:
            params["integrator"] = integrator
        return params


class LifiClient:
    """Thin wrapper around the https://li.quest/v1 endpoints.

    Every call goes through the retry policy. Upstream failures surface as
    ``QuoteError`` (non-2xx, carries status and a body digest) or
    ``NetworkError`` (no response); raw httpx errors never escape because
    they carry request headers.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        integrator: Optional[str] = DEFAULT_INTEGRATOR,
        timeout_s: float = 60,
        retry: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.api_key = (api_key or "").strip()
        self.integrator = integrator
        self.timeout_s = timeout_s
        self.retry = retry or RetryPolicy()
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"accept": "application/json"}
        if self.api_key:
            headers["x-lifi-api-key"] = self.api_key
        return headers

    async def _request(self, method: str, path: str, *, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_s,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, params=params, headers=self._headers())
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            digest = digest_body(exc.response.text)
            logger.warning("LI.FI %s %s failed: status=%s message=%s", method, path, status, digest)
            raise QuoteError(f"LI.FI {path} failed ({status}): {digest}", status_code=status, body=digest) from None
        except httpx.RequestError as exc:
            logger.warning("LI.FI %s %s unreachable: %s", method, path, type(exc).__name__)
            raise NetworkError(f"LI.FI {path} unreachable: {type(exc).__name__}") from None

    async def _get_json(self, path: str, params: Dict[str, Any]) -> Any:
        response = await self.retry.run(lambda: self._request("GET", path, params=params))
        try:
            return response.json()
        except ValueError:
            raise QuoteError(
                f"LI.FI {path} returned a non-JSON body",
                status_code=response.status_code,
                body=digest_body(response.text),
            ) from None

    async def get_token(self, chain: Union[int, str], token: str) -> TokenMetadata:
        """Resolve token metadata (address, decimals, symbol) by symbol or address."""

        data = await self._get_json("/token", {"chain": chain, "token": token})
        if not isinstance(data, dict) or "address" not in data or "decimals" not in data:
            raise QuoteError(f"LI.FI token lookup for {token} on {chain} returned no metadata")
        try:
            return TokenMetadata.model_validate(data)
        except PydanticValidationError:
            raise QuoteError(f"LI.FI token lookup for {token} on {chain} returned malformed metadata") from None

    async def quote(self, request: QuoteRequest) -> Quote:
        data = await self._get_json("/quote", request.to_params(self.integrator))
        if not isinstance(data, dict):
            raise QuoteError("LI.FI quote returned an unexpected payload")
        try:
            return Quote.model_validate(data)
        except PydanticValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
            raise QuoteError(f"LI.FI quote is malformed: {fields}") from None

    async def status(
        self,
        tx_hash: str,
        *,
        from_chain: Optional[Union[int, str]] = None,
        to_chain: Optional[Union[int, str]] = None,
        bridge: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Cross-chain transfer status: ``NOT_FOUND``, ``PENDING``, ``DONE`` or ``FAILED``."""

        params: Dict[str, Any] = {"txHash": tx_hash}
        if from_chain is not None:
            params["fromChain"] = from_chain
        if to_chain is not None:
            params["toChain"] = to_chain
        if bridge:
            params["bridge"] = bridge
        data = await self._get_json("/status", params)
        return data if isinstance(data, dict) else {"status": "NOT_FOUND"}
