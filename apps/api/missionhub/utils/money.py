"""Decimal <-> integer minor-unit conversion.

Amounts are stored and compared as integers in the currency's smallest unit
(cents for EUR). Values carrying more precision than the currency allows are
rejected rather than rounded.
"""

from decimal import Decimal, InvalidOperation

CURRENCY_MINOR_UNITS: dict[str, int] = {
    "EUR": 2,
    "USD": 2,
    "GBP": 2,
    "CHF": 2,
    "JPY": 0,
}


def normalize_currency(currency: str) -> str:
    code = (currency or "").strip().upper()
    if code not in CURRENCY_MINOR_UNITS:
        raise ValueError(f"Unsupported currency: {currency!r}")
    return code


def minor_unit_exponent(currency: str) -> int:
    return CURRENCY_MINOR_UNITS[normalize_currency(currency)]


def to_decimal(amount: Decimal | int | float | str) -> Decimal:
    """Coerce user input to Decimal without binary float drift."""
    if isinstance(amount, Decimal):
        value = amount
    else:
        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    return value


def to_minor_units(amount: Decimal | int | float | str, currency: str) -> int:
    """Convert a decimal amount to integer minor units (e.g. 45.10 EUR -> 4510)."""
    exponent = minor_unit_exponent(currency)
    scaled = to_decimal(amount).scaleb(exponent)
    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"Amount {amount} has more than {exponent} decimal places for {currency}"
        )
    return int(scaled)


def from_minor_units(minor: int, currency: str) -> Decimal:
    """Convert integer minor units back to a Decimal with the currency's precision."""
    exponent = minor_unit_exponent(currency)
    quantum = Decimal(1).scaleb(-exponent)
    return Decimal(int(minor)).scaleb(-exponent).quantize(quantum)


def format_amount(minor: int, currency: str) -> str:
    return f"{from_minor_units(minor, currency)} {normalize_currency(currency)}"
