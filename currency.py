"""USD-based exchange rates for multi-currency display."""
from decimal import Decimal
from typing import Mapping, Optional

import requests

from logger import get_logger

logger = get_logger(__name__)

BASE_CURRENCY = "USD"

# Tried in order; both answer {"rates": {...}} for base USD.
RATE_PROVIDERS = (
    "https://open.er-api.com/v6/latest/USD",
    "https://api.frankfurter.app/latest?from=USD",
)

# Used when every provider fails
FALLBACK_RATES = {
    "USD": 1.0,
    "EUR": 0.92,
    "GBP": 0.79,
    "JPY": 151.62,
    "INR": 83.12,
    "AUD": 1.52,
    "CAD": 1.35,
    "CHF": 0.90,
    "CNY": 7.23,
    "AED": 3.67,
}


def _fetch(url: str, timeout: float) -> Optional[dict[str, float]]:
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        rates = response.json().get("rates")
    except (requests.RequestException, ValueError) as exc:
        logger.warning("rate_provider_failed", url=url, error=str(exc))
        return None

    if not isinstance(rates, dict) or not rates:
        logger.warning("rate_provider_empty", url=url)
        return None

    # frankfurter omits the base currency itself
    rates = {code: float(value) for code, value in rates.items()}
    rates.setdefault(BASE_CURRENCY, 1.0)
    return rates


def get_exchange_rates(timeout: float = 5.0) -> tuple[dict[str, float], str]:
    """Return (rates, source) where source is "live" or "fallback"."""
    for url in RATE_PROVIDERS:
        rates = _fetch(url, timeout)
        if rates is not None:
            return rates, "live"

    logger.warning("using_fallback_rates")
    return dict(FALLBACK_RATES), "fallback"


def convert_amount(
    amount,
    from_currency: str,
    to_currency: str,
    rates: Mapping[str, float],
) -> float:
    """Convert via USD. Unknown currencies are treated as rate 1."""
    value = Decimal(str(amount))
    from_rate = Decimal(str(rates.get(from_currency, 1) or 1))
    to_rate = Decimal(str(rates.get(to_currency, 1) or 1))
    return float(value / from_rate * to_rate)
