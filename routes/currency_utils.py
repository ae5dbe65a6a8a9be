from decimal import Decimal, ROUND_HALF_UP

from routes.utils import to_number

# Units per 1 USD
EXCHANGE_RATES = {
    'USD': Decimal('1'),
    'EUR': Decimal('0.92'),
    'GBP': Decimal('0.79'),
    'INR': Decimal('83.12'),
    'JPY': Decimal('150.45'),
    'CAD': Decimal('1.35'),
    'AUD': Decimal('1.53'),
}


def available_currencies():
    return list(EXCHANGE_RATES.keys())


def rate_for(code):
    """Unknown codes count as 1."""
    return EXCHANGE_RATES.get((code or '').strip().upper(), Decimal('1'))


def convert(amount, from_code, to_code):
    """Convert via USD. Same code in and out returns the amount unchanged."""
    amount = to_number(amount)
    if (from_code or '').strip().upper() == (to_code or '').strip().upper():
        return amount
    converted = amount / rate_for(from_code) * rate_for(to_code)
    return converted.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
