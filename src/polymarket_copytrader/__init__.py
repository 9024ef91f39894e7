"""Polymarket Copytrader - mirror source wallets into risk-bounded orders."""

__version__ = "0.1.0"
