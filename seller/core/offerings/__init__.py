"""
Offerings

The handlers the job runtime calls, and the pipeline behind them.

Usage:
    from seller.config import settings
    from seller.core.offerings import build_offerings

    offerings = build_offerings(settings)
    result = await offerings["swap"].execute_job("swap 5 USDC to ETH on base receiver 0x...")
"""

from .handlers import OFFERING_KINDS, OfferingHandlers, build_offerings
from .pipeline import JobPipeline

__all__ = [
    "OFFERING_KINDS",
    "OfferingHandlers",
    "build_offerings",
    "JobPipeline",
]
