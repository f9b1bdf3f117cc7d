"""Seller agent: executes buyer trade intents (swap, bridge, wrap, transfer)."""

__version__ = "0.1.0"
