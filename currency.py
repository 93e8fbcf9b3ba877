import logging

import requests

from config import settings
from errors import CurrencyConversionError

logger = logging.getLogger(__name__)

# rates against USD; used whenever USE_EXTERNAL is off
MOCK_USD_RATES = {'USD': 1.0, 'EUR': 0.9, 'GBP': 0.78, 'INR': 82.0, 'JPY': 150.0}


def get_exchange_rates(base: str) -> dict:
    base = base.upper()
    if not settings.USE_EXTERNAL:
        if base not in MOCK_USD_RATES:
            return {}
        # cross rates through USD
        return {code: rate / MOCK_USD_RATES[base] for code, rate in MOCK_USD_RATES.items()}
    url = f'{settings.EXCHANGE_RATE_API.rstrip("/")}/{base}'
    resp = requests.get(url, timeout=settings.EXCHANGE_RATE_TIMEOUT)
    resp.raise_for_status()
    return resp.json().get('rates', {})


def convert_currency(amount: float, from_currency: str, to_currency: str):
    """Return ``(converted_amount, rate)`` for ``amount`` in ``from_currency``."""
    from_currency = from_currency.upper()
    to_currency = to_currency.upper()
    if from_currency == to_currency:
        return amount, 1.0
    try:
        rates = get_exchange_rates(from_currency)
    except requests.RequestException as e:
        logger.error(f"Exchange rate lookup for {from_currency} failed: {e}")
        raise CurrencyConversionError(f'exchange rate lookup for {from_currency} failed') from e
    rate = rates.get(to_currency)
    if not rate or rate <= 0:
        raise CurrencyConversionError(f'conversion rate not found for {from_currency} to {to_currency}')
    return amount * rate, float(rate)
