"""API routes.

All route modules for the Trade Spine API.
"""

from trade_spine.api.routes import health, trades

__all__ = [
    "health",
    "trades",
]
