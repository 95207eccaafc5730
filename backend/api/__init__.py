"""API route handlers."""
from . import pnl, wallets

__all__ = ["pnl", "wallets"]
