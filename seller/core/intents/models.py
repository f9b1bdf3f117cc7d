"""
Trade intent models.

A TradeIntent is one of the frozen variants below, discriminated by ``kind``.
Field aliases follow the camelCase wire shape used by buyers' structured
requests (``tokenIn``, ``fromChain``, ``dryRun`` ...).
"""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _IntentBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    amount: str = Field(..., description="Human decimal amount, kept as a string")
    receiver: str = Field(..., description="Address receiving the output")
    sender: Optional[str] = Field(default=None, description="Funds owner; defaults to receiver")
    slippage: Optional[float] = Field(default=None, description="Fraction or percentage, normalized later")
    dry_run: bool = Field(default=False, alias="dryRun")

    @property
    def effective_sender(self) -> str:
        return self.sender or self.receiver

    def to_payload(self) -> dict:
        """camelCase dict, as echoed back in results."""
        return self.model_dump(by_alias=True, exclude_none=True)


class SwapIntent(_IntentBase):
    kind: Literal["swap"] = "swap"
    token_in: str = Field(..., alias="tokenIn")
    token_out: str = Field(..., alias="tokenOut")
    chain: str


class BridgeIntent(_IntentBase):
    kind: Literal["bridge"] = "bridge"
    token: str
    from_chain: str = Field(..., alias="fromChain")
    to_chain: str = Field(..., alias="toChain")
    to_token: Optional[str] = Field(default=None, alias="toToken")

    @property
    def destination_token(self) -> str:
        return self.to_token or self.token


class WrapIntent(_IntentBase):
    kind: Literal["wrap"] = "wrap"
    action: Literal["wrap", "unwrap"] = "wrap"
    symbol: Optional[str] = Field(default=None, description="Native symbol for wrap, wrapped symbol for unwrap")
    chain: str


class TransferIntent(_IntentBase):
    """Fixed-amount token transfer (e.g. a tip) from the executor."""

    kind: Literal["transfer"] = "transfer"
    token: str = "USDC"
    chain: str


TradeIntent = Annotated[
    Union[SwapIntent, BridgeIntent, WrapIntent, TransferIntent],
    Field(discriminator="kind"),
]

INTENT_MODELS = {
    "swap": SwapIntent,
    "bridge": BridgeIntent,
    "wrap": WrapIntent,
    "transfer": TransferIntent,
}


def source_chain(intent) -> str:
    if isinstance(intent, BridgeIntent):
        return intent.from_chain
    return intent.chain


def source_token(intent) -> str:
    if isinstance(intent, SwapIntent):
        return intent.token_in
    if isinstance(intent, WrapIntent):
        return intent.symbol
    return intent.token
