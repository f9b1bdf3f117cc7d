"""
Static chain registry.

Maps canonical chain keys to chain ids, public RPC endpoints, native-token
symbols and wrapped-native addresses, plus a small per-chain table of
commonly funded tokens. Everything here is read-only and process-wide.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional

NATIVE_PLACEHOLDER = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class TokenInfo:
    """Token metadata known ahead of any routing lookup."""

    symbol: str
    address: str
    decimals: int

    @property
    def is_native(self) -> bool:
        return self.address.lower() == NATIVE_PLACEHOLDER


@dataclass(frozen=True)
class ChainDescriptor:
    key: str
    chain_id: int
    name: str
    rpc_url: str
    native_symbol: str
    wrapped_native_symbol: str
    wrapped_native_address: str
    native_decimals: int = 18
    aliases: FrozenSet[str] = field(default_factory=frozenset)

    def with_rpc(self, rpc_url: str) -> "ChainDescriptor":
        return ChainDescriptor(
            key=self.key,
            chain_id=self.chain_id,
            name=self.name,
            rpc_url=rpc_url,
            native_symbol=self.native_symbol,
            wrapped_native_symbol=self.wrapped_native_symbol,
            wrapped_native_address=self.wrapped_native_address,
            native_decimals=self.native_decimals,
            aliases=self.aliases,
        )


CHAINS: Dict[str, ChainDescriptor] = {
    "ethereum": ChainDescriptor(
        key="ethereum",
        chain_id=1,
        name="Ethereum",
        rpc_url="https://cloudflare-eth.com",
        native_symbol="ETH",
        wrapped_native_symbol="WETH",
        wrapped_native_address="0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
        aliases=frozenset({"ethereum", "eth", "mainnet"}),
    ),
    "base": ChainDescriptor(
        key="base",
        chain_id=8453,
        name="Base",
        rpc_url="https://mainnet.base.org",
        native_symbol="ETH",
        wrapped_native_symbol="WETH",
        wrapped_native_address="0x4200000000000000000000000000000000000006",
        aliases=frozenset({"base"}),
    ),
    "arbitrum": ChainDescriptor(
        key="arbitrum",
        chain_id=42161,
        name="Arbitrum",
        rpc_url="https://arb1.arbitrum.io/rpc",
        native_symbol="ETH",
        wrapped_native_symbol="WETH",
        wrapped_native_address="0x82aF49447D8a07e3bd95BD0d56f35241523fBab1",
        aliases=frozenset({"arbitrum", "arb", "arbitrum-one"}),
    ),
    "polygon": ChainDescriptor(
        key="polygon",
        chain_id=137,
        name="Polygon",
        rpc_url="https://polygon-rpc.com",
        native_symbol="POL",
        wrapped_native_symbol="WPOL",
        wrapped_native_address="0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270",
        aliases=frozenset({"polygon", "pol", "matic"}),
    ),
    "bsc": ChainDescriptor(
        key="bsc",
        chain_id=56,
        name="BNB Smart Chain",
        rpc_url="https://bsc-dataseed.binance.org",
        native_symbol="BNB",
        wrapped_native_symbol="WBNB",
        wrapped_native_address="0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c",
        aliases=frozenset({"bsc", "binance", "binance-smart-chain", "bnb"}),
    ),
}

CHAIN_ALIAS_TO_KEY: Dict[str, str] = {
    alias: key
    for key, descriptor in CHAINS.items()
    for alias in descriptor.aliases
}

CHAIN_ID_TO_KEY: Dict[int, str] = {descriptor.chain_id: key for key, descriptor in CHAINS.items()}

# Symbol aliases accepted for the native/wrapped pair
NATIVE_SYMBOL_ALIASES: Dict[str, FrozenSet[str]] = {
    "POL": frozenset({"POL", "MATIC"}),
    "WPOL": frozenset({"WPOL", "WMATIC"}),
}

# Commonly funded tokens keyed by chain id -> upper-case symbol.
COMMON_TOKENS: Dict[int, Dict[str, TokenInfo]] = {
    1: {
        "ETH": TokenInfo("ETH", NATIVE_PLACEHOLDER, 18),
        "WETH": TokenInfo("WETH", "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", 18),
        "USDC": TokenInfo("USDC", "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", 6),
        "USDT": TokenInfo("USDT", "0xdAC17F958D2ee523a2206206994597C13D831ec7", 6),
    },
    8453: {
        "ETH": TokenInfo("ETH", NATIVE_PLACEHOLDER, 18),
        "WETH": TokenInfo("WETH", "0x4200000000000000000000000000000000000006", 18),
        "USDC": TokenInfo("USDC", "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", 6),
    },
    42161: {
        "ETH": TokenInfo("ETH", NATIVE_PLACEHOLDER, 18),
        "WETH": TokenInfo("WETH", "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1", 18),
        "USDC": TokenInfo("USDC", "0xaf88d065e77c8cC2239327C5EDb3A432268e5831", 6),
        "USDT": TokenInfo("USDT", "0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9", 6),
    },
    137: {
        "POL": TokenInfo("POL", NATIVE_PLACEHOLDER, 18),
        "WPOL": TokenInfo("WPOL", "0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270", 18),
        "USDC": TokenInfo("USDC", "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359", 6),
        "USDT": TokenInfo("USDT", "0xc2132D05D31c914a87C6611C10748AEb04B58e8F", 6),
    },
    56: {
        "BNB": TokenInfo("BNB", NATIVE_PLACEHOLDER, 18),
        "WBNB": TokenInfo("WBNB", "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c", 18),
        # Binance-peg stablecoins use 18 decimals on BSC
        "USDC": TokenInfo("USDC", "0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d", 18),
        "USDT": TokenInfo("USDT", "0x55d398326f99059fF775485246999027B3197955", 18),
    },
}


class ChainRegistry:
    """Lookup surface over the static chain table.

    RPC endpoints can be overridden per chain key (operator configuration);
    everything else is fixed.
    """

    def __init__(self, rpc_overrides: Optional[Mapping[str, str]] = None) -> None:
        overrides = dict(rpc_overrides or {})
        self._chains: Dict[str, ChainDescriptor] = {
            key: (descriptor.with_rpc(overrides[key]) if key in overrides else descriptor)
            for key, descriptor in CHAINS.items()
        }

    def normalize(self, chain: Optional[str]) -> Optional[str]:
        """Collapse a user-provided chain name into its canonical key."""
        if not chain:
            return None
        return CHAIN_ALIAS_TO_KEY.get(str(chain).strip().lower())

    def resolve(self, chain: Optional[str]) -> Optional[ChainDescriptor]:
        key = self.normalize(chain)
        return self._chains.get(key) if key else None

    def chain_id_of(self, chain: Optional[str]) -> Optional[int]:
        descriptor = self.resolve(chain)
        return descriptor.chain_id if descriptor else None

    def by_id(self, chain_id: int) -> Optional[ChainDescriptor]:
        key = CHAIN_ID_TO_KEY.get(chain_id)
        return self._chains.get(key) if key else None

    def supported_keys(self) -> List[str]:
        return list(self._chains.keys())

    def common_token(self, chain_id: int, symbol: str) -> Optional[TokenInfo]:
        tokens = COMMON_TOKENS.get(chain_id, {})
        wanted = (symbol or "").strip().upper()
        if wanted in tokens:
            return tokens[wanted]
        for canonical, aliases in NATIVE_SYMBOL_ALIASES.items():
            if wanted in aliases and canonical in tokens:
                return tokens[canonical]
        return None

    def known_decimals(self, chain_id: int, symbol: str) -> Optional[int]:
        token = self.common_token(chain_id, symbol)
        return token.decimals if token else None

    def is_native_symbol(self, descriptor: ChainDescriptor, symbol: str) -> bool:
        wanted = (symbol or "").strip().upper()
        return wanted in NATIVE_SYMBOL_ALIASES.get(descriptor.native_symbol, frozenset({descriptor.native_symbol}))

    def is_wrapped_symbol(self, descriptor: ChainDescriptor, symbol: str) -> bool:
        wanted = (symbol or "").strip().upper()
        return wanted in NATIVE_SYMBOL_ALIASES.get(
            descriptor.wrapped_native_symbol, frozenset({descriptor.wrapped_native_symbol})
        )


__all__ = [
    "NATIVE_PLACEHOLDER",
    "TokenInfo",
    "ChainDescriptor",
    "CHAINS",
    "CHAIN_ALIAS_TO_KEY",
    "CHAIN_ID_TO_KEY",
    "COMMON_TOKENS",
    "ChainRegistry",
]
