"""Currency conversion utilities.

Internal storage unit: cents (smallest currency unit, 100 cents = 1.00).
API / display unit: decimal major units (e.g. Decimal("3.50")).

All arithmetic inside the service happens on integer cents; conversion to
decimal amounts happens only at the API boundary.
"""

from __future__ import annotations

from decimal import Decimal

# ─── constants ───────────────────────────────────────────────────────────────

CENTS_PER_UNIT: int = 100
_QUANTUM = Decimal("0.01")


# ─── conversion helpers ───────────────────────────────────────────────────────


def from_cents(cents: int) -> Decimal:
    """Convert cents to a two-decimal major-unit amount. 350 cents = 3.50."""
    return (Decimal(cents) / CENTS_PER_UNIT).quantize(_QUANTUM)


def line_total(quantity: int, unit_price_cents: int) -> int:
    """Exact line total in cents."""
    return quantity * unit_price_cents


def format_amount(cents: int, currency: str) -> str:
    """Human readable amount, e.g. ``7.00 EUR``."""
    return f"{from_cents(cents)} {currency}"
