"""
Offering handlers: the interface the job runtime calls for each offering.

    validate_requirements(request) -> {valid, reason?}
    request_payment(request)       -> str
    request_additional_funds(request) -> {content, amount, tokenAddress, recipient, chainId}
    execute_job(request, job_id)   -> {deliverable}
    quote_job(request)             -> {deliverable}

``request`` is whatever the runtime received: a command string or an object.
Only ``request_additional_funds`` may raise; ``execute_job`` and ``quote_job``
always resolve to a deliverable.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from ...config import OfferingConfig, Settings
from ...logging_config import setup_logging
from ...providers.lifi import LifiClient
from ...providers.rpc import ChainClients, SigningContext
from ...services.chains import ChainRegistry
from ..amounts import format_amount
from ..events import EventEmitter, EventHook
from ..execution.balance import BalanceWatcher
from ..execution.executor import TransactionExecutor
from ..execution.resolver import QuoteResolver
from ..fees import gross_amount
from ..intents.models import BridgeIntent, SwapIntent, TransferIntent, WrapIntent, source_chain
from ..intents.parser import decode_request
from ..intents.validator import IntentValidator
from ..recovery.errors import ConfigError, SellerError, ValidationError, to_failure
from ..recovery.retry import RetryConfig, RetryPolicy
from .pipeline import JobPipeline

logger = logging.getLogger(__name__)

OFFERING_KINDS = ("swap", "bridge", "wrap", "transfer")


class OfferingHandlers:
    """Handlers for one offering kind, sharing one pipeline and signer."""

    def __init__(
        self,
        kind: str,
        pipeline: JobPipeline,
        *,
        offering: Optional[OfferingConfig] = None,
        funding_chain: str = "base",
    ) -> None:
        if kind not in OFFERING_KINDS:
            raise ConfigError(f"Unknown offering kind: {kind}")
        self.kind = kind
        self.pipeline = pipeline
        self.offering = offering
        self.funding_chain = funding_chain

    @property
    def registry(self) -> ChainRegistry:
        return self.pipeline.resolver.registry

    @property
    def validator(self) -> IntentValidator:
        return self.pipeline.validator

    @property
    def executor_address(self) -> str:
        return self.pipeline.signer.address

    def decode(self, request: Any):
        return decode_request(request, self.kind, default_chain=self.funding_chain)

    # ------------------------------------------------------------------
    # Produced interface
    # ------------------------------------------------------------------

    def validate_requirements(self, request: Any) -> Dict[str, Any]:
        try:
            intent = self.decode(request)
        except SellerError as exc:
            return {"valid": False, "reason": exc.message}
        return self.validator.validate(intent).to_dict()

    def request_payment(self, request: Any) -> str:
        try:
            intent = self.decode(request)
        except SellerError:
            return f"{self.kind.capitalize()} request accepted."
        return self._payment_message(intent)

    def request_additional_funds(self, request: Any) -> Dict[str, Any]:
        """Funds the buyer must send to the executor, fee included.

        Raises:
            ParseError: the request cannot be decoded.
            ValidationError: the intent is invalid, or its source token is not payable
                on the funding chain.
            ConfigError: the offering's fee configuration is invalid.
        """

        intent = self.decode(request)
        self.validator.validate_or_raise(intent)
        funding = self.registry.resolve(self.funding_chain)
        if funding is None:
            raise ConfigError(f"Unsupported funding chain: {self.funding_chain}")

        symbol = self._funding_symbol(intent)
        token = self.registry.common_token(funding.chain_id, symbol)
        if token is None:
            raise ValidationError(f"Token {symbol} not found on {funding.name}. Funds are accepted on {funding.name} only.")

        gross = gross_amount(intent.amount, self.offering, precision=token.decimals)
        shown = format_amount(gross)
        return {
            "content": (
                f"Send {shown} {token.symbol} ({funding.key}) to executor={self.executor_address} so the "
                f"{self.kind} can be executed. This includes {intent.amount} {token.symbol} for the "
                f"{self.kind} plus the job fee."
            ),
            "amount": float(gross),
            "tokenAddress": token.address,
            "recipient": self.executor_address,
            "chainId": funding.chain_id,
        }

    async def execute_job(self, request: Any, job_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            intent = self.decode(request)
        except SellerError as exc:
            return {"deliverable": exc.to_failure()}
        result = await self.pipeline.run(intent, job_id=job_id)
        return {"deliverable": result.to_dict()}

    async def quote_job(self, request: Any) -> Dict[str, Any]:
        try:
            intent = self.decode(request)
            return {"deliverable": await self.pipeline.quote_only(intent)}
        except Exception as exc:
            if not isinstance(exc, SellerError):
                logger.exception("Quote-only job failed")
            return {"deliverable": to_failure(exc, None if isinstance(exc, ValidationError) else "Quote failed")}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _funding_symbol(self, intent) -> str:
        if isinstance(intent, SwapIntent):
            return intent.token_in
        if isinstance(intent, WrapIntent):
            descriptor = self.registry.resolve(intent.chain)
            if intent.symbol:
                return intent.symbol
            if descriptor is None:
                raise ValidationError(f"Unsupported chain: {intent.chain}")
            return descriptor.native_symbol if intent.action == "wrap" else descriptor.wrapped_native_symbol
        return intent.token

    def _payment_message(self, intent) -> str:
        chain = source_chain(intent)
        if isinstance(intent, SwapIntent):
            return (
                f"To execute swap: please transfer {intent.amount} {intent.token_in} on {chain} to the executor "
                f"wallet (Funds Transfer). Then I will swap to {intent.token_out} and deliver to "
                f"receiver={intent.receiver}."
            )
        if isinstance(intent, BridgeIntent):
            return (
                f"To execute bridge: please transfer {intent.amount} {intent.token} to the executor wallet "
                f"(Funds Transfer). Then I will bridge from {intent.from_chain} to {intent.to_chain} and deliver "
                f"{intent.destination_token} to receiver={intent.receiver}."
            )
        if isinstance(intent, WrapIntent):
            return (
                f"To execute {intent.action}: please transfer {intent.amount} {self._funding_symbol(intent)} to "
                f"the executor wallet (Funds Transfer). Then I will {intent.action} on {chain} and deliver to "
                f"receiver={intent.receiver}."
            )
        if isinstance(intent, TransferIntent):
            return (
                f"To execute transfer: please transfer the required funds to the executor wallet (Funds "
                f"Transfer). Then I will send {intent.amount} {intent.token} to {intent.receiver}."
            )
        return f"{self.kind.capitalize()} request accepted."


def build_offerings(
    settings: Settings,
    *,
    signer: Optional[SigningContext] = None,
    event_hook: Optional[EventHook] = None,
    lifi: Optional[LifiClient] = None,
    chains: Optional[ChainClients] = None,
    sleep=None,
) -> Dict[str, OfferingHandlers]:
    """Wire every offering from settings. The only place configuration is read.

    Raises:
        ConfigError: the executor key is missing or invalid, or a fee is unusable.
    """

    setup_logging(settings.log_level)
    signer = signer or SigningContext.from_private_key(settings.executor_private_key)
    events = EventEmitter(event_hook)
    retry = RetryPolicy(
        RetryConfig(max_retries=settings.retry_max_retries, initial_delay_ms=settings.retry_initial_delay_ms),
        sleep=sleep,
        on_retry=events.on_retry,
    )
    registry = ChainRegistry(settings.rpc_overrides())
    if registry.resolve(settings.funding_chain) is None:
        raise ConfigError(f"Unsupported funding chain: {settings.funding_chain}")

    if lifi is None and not settings.has_lifi_key:
        logger.warning("LIFI_API_KEY is not set; routing requests use the public rate limit")
    lifi = lifi or LifiClient(
        base_url=settings.lifi_base_url,
        api_key=settings.lifi_api_key,
        integrator=settings.lifi_integrator,
        timeout_s=settings.request_timeout_seconds,
        retry=retry,
    )
    chains = chains or ChainClients(
        registry,
        timeout_s=settings.request_timeout_seconds,
        retry=retry,
        sleep=sleep,
    )
    resolver = QuoteResolver(lifi, registry)
    executor = TransactionExecutor(
        resolver,
        chains,
        events=events,
        receipt_timeout_s=settings.receipt_timeout_seconds,
        receipt_poll_interval_s=settings.receipt_poll_interval_seconds,
    )
    pipeline = JobPipeline(
        signer=signer,
        resolver=resolver,
        executor=executor,
        chains=chains,
        validator=IntentValidator(registry, funding_chain=settings.funding_chain),
        watcher=BalanceWatcher(sleep=sleep, events=events),
        events=events,
        funds_timeout_s=settings.funds_wait_timeout_seconds,
        funds_interval_s=settings.funds_poll_interval_seconds,
    )

    offerings = {}
    for kind in OFFERING_KINDS:
        offering = settings.offering_config(kind)
        # Fail at startup rather than on the first payment request
        gross_amount(Decimal("1"), offering)
        offerings[kind] = OfferingHandlers(kind, pipeline, offering=offering, funding_chain=settings.funding_chain)
    logger.info("Offerings ready for executor %s: %s", signer.address, ", ".join(offerings))
    return offerings
