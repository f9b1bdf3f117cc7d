"""
Intent Validator.

``validate`` never raises: every rejection, including unexpected failures
while deriving values from the intent, comes back as ``ValidationResult``
with ``valid=False`` and a human-readable reason.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from ...services.address import is_valid_evm_address
from ...services.chains import ChainRegistry
from ..amounts import fraction_digits, is_decimal_string, to_decimal
from ..recovery.errors import AmountError, ValidationError
from .models import BridgeIntent, SwapIntent, TransferIntent, WrapIntent, source_chain, source_token

logger = logging.getLogger(__name__)

DEFAULT_SLIPPAGE = 0.005


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.valid:
            return {"valid": True}
        return {"valid": False, "reason": self.reason}


_OK = ValidationResult(valid=True)


def _reject(reason: str) -> ValidationResult:
    return ValidationResult(valid=False, reason=reason)


def normalize_slippage(value: Any) -> float:
    """Map a user slippage value onto a fraction.

    ``> 1`` and ``[0.1, 1]`` are read as percentages; anything below 0.1 is
    already a fraction. Missing, non-finite or non-positive input falls back
    to 0.5%.
    """

    if value is None or isinstance(value, bool):
        return DEFAULT_SLIPPAGE
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_SLIPPAGE
    if not math.isfinite(number) or number <= 0:
        return DEFAULT_SLIPPAGE
    if number >= 0.1:
        return number / 100
    return number


class IntentValidator:
    """Semantic checks over a decoded TradeIntent."""

    def __init__(self, registry: Optional[ChainRegistry] = None, funding_chain: Optional[str] = None):
        self.registry = registry or ChainRegistry()
        # Executed jobs are paid for and run on this chain only
        self.funding_chain = self.registry.normalize(funding_chain) if funding_chain else None

    def _supported(self) -> str:
        return ", ".join(self.registry.supported_keys())

    def _check_chains(self, intent) -> Optional[ValidationResult]:
        if isinstance(intent, BridgeIntent):
            for label, chain in (("fromChain", intent.from_chain), ("toChain", intent.to_chain)):
                if self.registry.chain_id_of(chain) is None:
                    return _reject(f"Unsupported {label}: {chain}. Supported: {self._supported()}")
            return None
        if self.registry.chain_id_of(intent.chain) is None:
            return _reject(f"Unsupported chain: {intent.chain}. Supported: {self._supported()}")
        return None

    def _check_funding_chain(self, intent) -> Optional[ValidationResult]:
        if self.funding_chain is None:
            return None
        chain = source_chain(intent)
        if self.registry.normalize(chain) == self.funding_chain:
            return None
        label = "fromChain" if isinstance(intent, BridgeIntent) else "chain"
        return _reject(f"Unsupported {label}: {chain}. Supported: {self.funding_chain}")

    def _check_addresses(self, addresses: Iterable[tuple]) -> Optional[ValidationResult]:
        for role, address in addresses:
            if address is not None and not is_valid_evm_address(address):
                return _reject(f"{role} must be a 0x address")
        return None

    def _check_wrap_symbol(self, intent: WrapIntent) -> Optional[ValidationResult]:
        if not intent.symbol:
            return None
        descriptor = self.registry.resolve(intent.chain)
        if intent.action == "wrap" and not self.registry.is_native_symbol(descriptor, intent.symbol):
            return _reject(f"wrap expects {descriptor.native_symbol} on {descriptor.key}, got {intent.symbol}")
        if intent.action == "unwrap" and not self.registry.is_wrapped_symbol(descriptor, intent.symbol):
            return _reject(
                f"unwrap expects {descriptor.wrapped_native_symbol} on {descriptor.key}, got {intent.symbol}"
            )
        return None

    def _check_amount(self, intent) -> Optional[ValidationResult]:
        try:
            amount = to_decimal(intent.amount)
        except AmountError:
            return _reject("amount must be a positive number")
        if amount <= Decimal(0):
            return _reject("amount must be a positive number")
        if not is_decimal_string(intent.amount):
            return _reject("amount must be a plain decimal number")

        symbol = source_token(intent)
        if isinstance(intent, WrapIntent) and not symbol:
            decimals: Optional[int] = 18
        else:
            chain_id = self.registry.chain_id_of(source_chain(intent))
            decimals = self.registry.known_decimals(chain_id, symbol) if chain_id and symbol else None
        # Unknown tokens are checked again when converted to units
        if decimals is not None and fraction_digits(intent.amount) > decimals:
            return _reject(f"amount has more than {decimals} decimal places for {symbol or 'this token'}")
        return None

    def _run_checks(self, intent, funded: bool) -> ValidationResult:
        rejection = self._check_chains(intent)
        if rejection:
            return rejection
        if funded:
            rejection = self._check_funding_chain(intent)
            if rejection:
                return rejection

        if isinstance(intent, SwapIntent) and intent.token_in.strip().lower() == intent.token_out.strip().lower():
            return _reject("tokenIn and tokenOut must be different")

        if isinstance(intent, BridgeIntent):
            if self.registry.normalize(intent.from_chain) == self.registry.normalize(intent.to_chain):
                return _reject("fromChain and toChain must be different")

        rejection = self._check_addresses((("receiver", intent.receiver), ("sender", intent.sender)))
        if rejection:
            return rejection

        if isinstance(intent, WrapIntent):
            rejection = self._check_wrap_symbol(intent)
            if rejection:
                return rejection

        if isinstance(intent, TransferIntent) and not intent.token.strip():
            return _reject("token is required")

        rejection = self._check_amount(intent)
        if rejection:
            return rejection
        return _OK

    def validate(self, intent, funded: bool = True) -> ValidationResult:
        """Check ``intent``. ``funded=False`` skips the funding-chain rule for quote-only requests."""

        try:
            return self._run_checks(intent, funded)
        except Exception as exc:
            logger.debug("Intent validation failed unexpectedly", exc_info=True)
            return _reject(str(exc) or "Invalid request")

    def validate_or_raise(self, intent, funded: bool = True) -> None:
        result = self.validate(intent, funded)
        if not result.valid:
            raise ValidationError(result.reason or "Invalid request")


def validate(intent, registry: Optional[ChainRegistry] = None) -> ValidationResult:
    """Module-level shortcut for :meth:`IntentValidator.validate`."""

    return IntentValidator(registry).validate(intent)
