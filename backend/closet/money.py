"""
Money helpers.

All amounts are integer cents. Reais only exist at the edges: parsed from
request payloads and formatted for operator-facing messages.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")


def reais_to_cents(value) -> int:
    """
    Convert a reais amount ("100.50", 100.5, Decimal("100.5")) to cents.

    Floats go through str() first so 0.1 + 0.2 style drift never leaks in.
    Rounds half-up to the cent. Raises ValueError on anything else, including
    amounts too large to quantize.
    """
    if value is None or isinstance(value, bool):
        raise ValueError("amount is required")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace("R$", "").strip()
        # Brazilian notation: "1.234,56"
        if "," in text:
            text = text.replace(".", "").replace(",", ".")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"invalid amount: {value!r}")
    else:
        raise ValueError(f"invalid amount: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"invalid amount: {value!r}")

    try:
        return int((amount.quantize(CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())
    except InvalidOperation:
        # Too many digits for the decimal context
        raise ValueError(f"invalid amount: {value!r}")


def cents_to_reais(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def format_brl(cents: int) -> str:
    """Format cents as "R$ 1.234,56"."""
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    grouped = f"{whole:,}".replace(",", ".")
    return f"{sign}R$ {grouped},{frac:02d}"


def split_evenly(total_cents: int, parts: int) -> list[int]:
    """
    Split total_cents into `parts` amounts that sum to total_cents exactly.

    Every part gets the floor of the even share; the rounding remainder is
    added to the last part.
    """
    if parts <= 0:
        raise ValueError("parts must be positive")
    base = total_cents // parts
    amounts = [base] * parts
    amounts[-1] += total_cents - base * parts
    return amounts
