"""
Quote Resolver.

Resolves an intent's chains, tokens and integer amount, then asks the
routing service for an executable route. Nothing is cached between jobs.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ...providers.lifi import LifiClient, QuoteRequest
from ...services.chains import NATIVE_PLACEHOLDER, ChainRegistry
from ..amounts import parse_units
from ..intents.models import BridgeIntent, SwapIntent, TransferIntent, WrapIntent
from ..intents.validator import normalize_slippage
from ..recovery.errors import ValidationError
from .models import Quote, TokenMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedRoute:
    """Concrete, per-job parameters of one intent."""

    from_chain_id: int
    to_chain_id: int
    from_token: TokenMetadata
    to_token: TokenMetadata
    from_amount: int
    from_address: str
    to_address: str
    slippage: float

    @property
    def is_native_source(self) -> bool:
        return self.from_token.address.lower() == NATIVE_PLACEHOLDER

    def to_request(self) -> QuoteRequest:
        return QuoteRequest(
            from_chain=self.from_chain_id,
            to_chain=self.to_chain_id,
            from_token=self.from_token.address,
            to_token=self.to_token.address,
            from_amount=self.from_amount,
            from_address=self.from_address,
            to_address=self.to_address,
            slippage=self.slippage,
        )

    def to_dict(self) -> Dict[str, Any]:
        resolved: Dict[str, Any] = {
            "chainId": self.from_chain_id,
            "fromToken": self.from_token.model_dump(by_alias=True, exclude_none=True),
            "toToken": self.to_token.model_dump(by_alias=True, exclude_none=True),
            "fromAmount": str(self.from_amount),
            "slippage": self.slippage,
        }
        if self.to_chain_id != self.from_chain_id:
            resolved["fromChainId"] = resolved.pop("chainId")
            resolved["toChainId"] = self.to_chain_id
        return resolved


class QuoteResolver:
    def __init__(self, lifi: LifiClient, registry: ChainRegistry):
        self.lifi = lifi
        self.registry = registry

    def _chain_id(self, chain: str) -> int:
        chain_id = self.registry.chain_id_of(chain)
        if chain_id is None:
            raise ValidationError(f"Unsupported chain: {chain}")
        return chain_id

    def _native(self, chain_id: int) -> TokenMetadata:
        descriptor = self.registry.by_id(chain_id)
        return TokenMetadata(
            address=NATIVE_PLACEHOLDER,
            decimals=descriptor.native_decimals,
            symbol=descriptor.native_symbol,
            chainId=chain_id,
        )

    def _wrapped(self, chain_id: int) -> TokenMetadata:
        descriptor = self.registry.by_id(chain_id)
        return TokenMetadata(
            address=descriptor.wrapped_native_address,
            decimals=descriptor.native_decimals,
            symbol=descriptor.wrapped_native_symbol,
            chainId=chain_id,
        )

    async def resolve_token(self, chain_id: int, token: str) -> TokenMetadata:
        """Token metadata by symbol or address, per chain, from the routing service."""
        return await self.lifi.get_token(chain_id, token)

    async def resolve_transfer_token(self, chain_id: int, token: str) -> TokenMetadata:
        """Registry first for well-known tokens, routing service otherwise."""
        known = self.registry.common_token(chain_id, token)
        if known is not None:
            return TokenMetadata(address=known.address, decimals=known.decimals, symbol=known.symbol, chainId=chain_id)
        return await self.resolve_token(chain_id, token)

    async def resolve(self, intent, executor_address: str, *, from_address: Optional[str] = None) -> ResolvedRoute:
        """Build the ResolvedRoute for ``intent``.

        ``from_address`` defaults to the executor, which holds the buyer's
        funds; quote-only mode passes the buyer's own address instead.

        Raises:
            AmountError: the amount has more fractional digits than the token.
            QuoteError / NetworkError: token lookup failed.
        """

        sender = from_address or executor_address
        slippage = normalize_slippage(intent.slippage)

        if isinstance(intent, SwapIntent):
            chain_id = self._chain_id(intent.chain)
            from_token = await self.resolve_token(chain_id, intent.token_in)
            to_token = await self.resolve_token(chain_id, intent.token_out)
            to_chain_id = chain_id
        elif isinstance(intent, BridgeIntent):
            chain_id = self._chain_id(intent.from_chain)
            to_chain_id = self._chain_id(intent.to_chain)
            from_token = await self.resolve_token(chain_id, intent.token)
            to_token = await self.resolve_token(to_chain_id, intent.destination_token)
        elif isinstance(intent, WrapIntent):
            chain_id = to_chain_id = self._chain_id(intent.chain)
            if intent.action == "wrap":
                from_token, to_token = self._native(chain_id), self._wrapped(chain_id)
            else:
                from_token, to_token = self._wrapped(chain_id), self._native(chain_id)
        elif isinstance(intent, TransferIntent):
            chain_id = to_chain_id = self._chain_id(intent.chain)
            from_token = to_token = await self.resolve_transfer_token(chain_id, intent.token)
        else:
            raise ValidationError(f"Unsupported intent: {type(intent).__name__}")

        return ResolvedRoute(
            from_chain_id=chain_id,
            to_chain_id=to_chain_id,
            from_token=from_token,
            to_token=to_token,
            from_amount=parse_units(intent.amount, from_token.decimals),
            from_address=sender,
            to_address=intent.receiver,
            slippage=slippage,
        )

    async def quote(self, route: ResolvedRoute) -> Quote:
        quote = await self.lifi.quote(route.to_request())
        logger.info(
            "Quote %s via %s for %s %s (chain %s -> %s)",
            quote.id,
            quote.tool,
            route.from_amount,
            route.from_token.symbol,
            route.from_chain_id,
            route.to_chain_id,
        )
        return quote
