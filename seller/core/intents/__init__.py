"""
Trade intents: models, command parsing, structured decode and validation.
"""

from .models import (
    INTENT_MODELS,
    BridgeIntent,
    SwapIntent,
    TradeIntent,
    TransferIntent,
    WrapIntent,
    source_chain,
    source_token,
)
from .parser import USAGE, decode_request, parse_command, tokenize
from .validator import (
    DEFAULT_SLIPPAGE,
    IntentValidator,
    ValidationResult,
    normalize_slippage,
    validate,
)

__all__ = [
    "INTENT_MODELS",
    "BridgeIntent",
    "SwapIntent",
    "TradeIntent",
    "TransferIntent",
    "WrapIntent",
    "source_chain",
    "source_token",
    "USAGE",
    "decode_request",
    "parse_command",
    "tokenize",
    "DEFAULT_SLIPPAGE",
    "IntentValidator",
    "ValidationResult",
    "normalize_slippage",
    "validate",
]
