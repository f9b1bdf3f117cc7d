"""
Fee gross-up for buyer payment requests.

The marketplace deducts the job fee from what the buyer sends, so the
requested amount is inflated until the remainder equals the amount the
executor actually needs:

- fixed fee ``c``:       gross = net + c
- percentage fee ``f``:  gross = net / (1 - f)      (0 <= f < 1)

Results are rounded *up* at the requested precision so the net is never short.
"""

from decimal import ROUND_CEILING, Decimal
from typing import Optional, Tuple, Union

from .amounts import to_decimal
from .recovery.errors import AmountError, ConfigError

FIXED = "fixed"
PERCENTAGE = "percentage"

DEFAULT_PRECISION = 6


def _fee_fields(offering) -> Tuple[str, Decimal]:
    if offering is None:
        return PERCENTAGE, Decimal("0")
    fee_type = (getattr(offering, "job_fee_type", None) or PERCENTAGE).lower()
    raw_fee = getattr(offering, "job_fee", 0)
    try:
        fee = to_decimal(raw_fee)
    except AmountError as exc:
        raise ConfigError(f"Invalid job fee: {raw_fee!r}") from exc
    return fee_type, fee


def gross_amount(
    net: Union[str, int, Decimal],
    offering=None,
    precision: Optional[int] = DEFAULT_PRECISION,
) -> Decimal:
    """Amount the buyer must send so that ``net`` remains after the job fee.

    Args:
        net: Amount the job needs, in human units.
        offering: Object with ``job_fee`` and ``job_fee_type`` attributes
            (``OfferingConfig``); ``None`` means no fee.
        precision: Decimal places to round up to; ``None`` keeps full precision.

    Raises:
        ConfigError: fee type unknown, negative fee, or percentage ``f >= 1``.
    """

    fee_type, fee = _fee_fields(offering)
    net_value = to_decimal(net)

    if fee < 0:
        raise ConfigError(f"Job fee must be non-negative, got {fee}")

    if fee_type == FIXED:
        gross = net_value + fee
    elif fee_type == PERCENTAGE:
        if fee >= 1:
            raise ConfigError(f"Percentage job fee must be below 1, got {fee}")
        gross = net_value / (Decimal(1) - fee)
    else:
        raise ConfigError(f"Unknown job fee type: {fee_type}")

    if precision is None:
        return gross
    quantum = Decimal(1).scaleb(-precision)
    return gross.quantize(quantum, rounding=ROUND_CEILING)

