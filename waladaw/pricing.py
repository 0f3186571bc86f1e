from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import invalid_data

CENT = Decimal("0.01")
# Numeric(18, 2) leaves 16 integer digits
MAX_PRICE = Decimal("1e16")


def parse_price(value) -> Decimal:
    """Parse a price typed by a user.

    Accepts either a comma or a dot as decimal separator ("12,50", "12.50")
    but rejects values carrying more than one separator ("1.234,50").
    """
    if isinstance(value, Decimal):
        return _to_cents(value, value)
    if isinstance(value, (int, float)):
        return _to_cents(Decimal(str(value)), value)

    text = (value or "").strip()
    if not text:
        raise invalid_data("Price is required")
    if text.count(",") + text.count(".") > 1:
        raise invalid_data(f"'{text}' is not a valid decimal number")

    try:
        parsed = Decimal(text.replace(",", "."))
    except InvalidOperation:
        raise invalid_data(f"'{text}' is not a valid decimal number")
    return _to_cents(parsed, text)


def _to_cents(parsed: Decimal, shown) -> Decimal:
    if not parsed.is_finite():
        raise invalid_data(f"'{shown}' is not a valid decimal number")
    if abs(parsed) >= MAX_PRICE:
        raise invalid_data(f"'{shown}' is too large for a price")
    try:
        return parsed.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise invalid_data(f"'{shown}' is not a valid decimal number")


def format_price(value) -> str:
    """Format with Spanish separators and the euro sign: 1999.99 -> '1.999,99 €'."""
    amount = Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    grouped = f"{amount:,.2f}"
    # swap separators: 1,999.99 -> 1.999,99
    swapped = grouped.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{swapped} €"
