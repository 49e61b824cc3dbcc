import math
import re

from domain.models.quotes import FiatAmount

# ASCII digits with an optional sign and decimal point.
DECIMAL_PATTERN = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)")

# Recognized fiat codes. Keeps tokens like `1inch` or `3btc` out of calc mode.
FIAT_NAMES: dict[str, str] = {
    "USD": "US Dollar",
    "EUR": "Euro",
    "GBP": "British Pound",
    "JPY": "Japanese Yen",
    "CNY": "Chinese Yuan",
    "CAD": "Canadian Dollar",
    "AUD": "Australian Dollar",
    "CHF": "Swiss Franc",
    "KRW": "South Korean Won",
    "INR": "Indian Rupee",
    "BRL": "Brazilian Real",
    "RUB": "Russian Ruble",
    "TRY": "Turkish Lira",
    "ZAR": "South African Rand",
    "MXN": "Mexican Peso",
    "SGD": "Singapore Dollar",
    "HKD": "Hong Kong Dollar",
    "NOK": "Norwegian Krone",
    "SEK": "Swedish Krona",
    "DKK": "Danish Krone",
    "NZD": "New Zealand Dollar",
    "PLN": "Polish Zloty",
    "THB": "Thai Baht",
    "TWD": "New Taiwan Dollar",
    "CZK": "Czech Koruna",
    "HUF": "Hungarian Forint",
    "ILS": "Israeli Shekel",
    "PHP": "Philippine Peso",
    "MYR": "Malaysian Ringgit",
    "ARS": "Argentine Peso",
    "CLP": "Chilean Peso",
    "COP": "Colombian Peso",
    "IDR": "Indonesian Rupiah",
    "SAR": "Saudi Riyal",
    "AED": "UAE Dirham",
    "NGN": "Nigerian Naira",
    "VND": "Vietnamese Dong",
    "PKR": "Pakistani Rupee",
    "BDT": "Bangladeshi Taka",
    "EGP": "Egyptian Pound",
}

KNOWN_FIAT = frozenset(FIAT_NAMES)


def is_known_fiat(code: str) -> bool:
    return code.strip().upper() in KNOWN_FIAT


def fiat_name(code: str) -> str:
    return FIAT_NAMES.get(code.strip().upper(), code)


def parse_fiat_amount(raw: str) -> FiatAmount | None:
    """Parse `3.5EUR` / `100usd` into a FiatAmount.

    Returns None when the token is not `<number><fiat code>`, so the caller can
    treat it as a plain symbol instead.
    """
    value = raw.strip()
    alpha_start = next((i for i, ch in enumerate(value) if ch.isascii() and ch.isalpha()), None)
    if not alpha_start:
        return None

    number_part, code_part = value[:alpha_start], value[alpha_start:].upper()
    if code_part not in KNOWN_FIAT:
        return None

    if not DECIMAL_PATTERN.fullmatch(number_part):
        return None

    amount = float(number_part)
    if amount <= 0 or not math.isfinite(amount):
        return None

    return FiatAmount(amount=amount, currency=code_part)
