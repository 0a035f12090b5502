"""
Money helpers.

Every monetary value is a decimal.Decimal. round_money is the one place
precision is decided; to_decimal is the one place foreign values
(floats, strings, DB numerics) are coerced.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

ZERO = Decimal("0")
HUNDRED = Decimal("100")

FIAT_DECIMALS = 2
CRYPTO_DECIMALS = 8

CRYPTO_CURRENCIES = frozenset(
    {"BTC", "ETH", "USDT", "USDC", "SOL", "XRP", "ADA", "DOT", "MATIC", "AVAX"}
)


def to_decimal(value) -> Decimal:
    """
    Coerce a numeric value to Decimal.

    Floats go through their shortest repr, so 0.1 becomes Decimal("0.1")
    rather than the binary expansion.

    Raises:
        ValueError: For None, booleans, non-numeric strings, NaN or infinity.
    """
    if value is None:
        raise ValueError("Amount is required")
    if isinstance(value, bool):
        raise ValueError("Amount must be numeric, got bool")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Amount must be numeric, got {value!r}")
    else:
        raise ValueError(f"Amount must be numeric, got {type(value).__name__}")

    if not result.is_finite():
        raise ValueError(f"Amount must be finite, got {value!r}")
    return result


def round_money(amount, decimals: int = FIAT_DECIMALS) -> Decimal:
    """
    Round to a fixed number of decimal places, half away from zero.

    round_money(Decimal("2.345")) == Decimal("2.35")
    round_money(Decimal("-2.345")) == Decimal("-2.35")
    """
    if decimals < 0:
        raise ValueError("decimals must be non-negative")
    quantum = Decimal(1).scaleb(-decimals)
    return to_decimal(amount).quantize(quantum, rounding=ROUND_HALF_UP)


def decimals_for_currency(currency: str | None) -> int:
    """Crypto currencies carry 8 places; everything else is fiat (2)."""
    if currency and currency.strip().upper() in CRYPTO_CURRENCIES:
        return CRYPTO_DECIMALS
    return FIAT_DECIMALS


def format_money(amount, currency: str) -> str:
    """Human-readable amount for PDFs and emails: '1,234.50 USD'."""
    decimals = decimals_for_currency(currency)
    value = round_money(amount, decimals)
    return f"{value:,.{decimals}f} {currency.upper()}"
