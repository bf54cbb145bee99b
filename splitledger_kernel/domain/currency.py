"""
Currency registry for the group ledger.

Every ledger row carries its own currency; amounts are never converted.
The supported set is configurable (``ledger.supported_currencies``) and
defaults to the currencies the product offers.
"""

from collections.abc import Iterable

DEFAULT_SUPPORTED_CURRENCIES: frozenset[str] = frozenset({"USD", "EUR", "GBP", "INR"})


def normalize_currencies(currencies: Iterable[str] | None) -> frozenset[str]:
    """Upper-case a configured currency list, or fall back to the default set."""
    if currencies is None:
        return DEFAULT_SUPPORTED_CURRENCIES
    return frozenset(code.strip().upper() for code in currencies)


def is_supported_currency(
    currency: object,
    supported: Iterable[str] | None = None,
) -> bool:
    """True when ``currency`` is a string in the supported set (case-sensitive)."""
    if not isinstance(currency, str):
        return False
    return currency in normalize_currencies(supported)
