"""Locale service for currency formatting and local time.

Uses babel with system timezone auto-detection. The locale comes from the
LOCALE setting (default: en_US); the currency is derived from its territory.

Example:
    >>> from encore.services.locale_service import format_amount
    >>> format_amount(Decimal("1234.5"))
    '$1,234.50'
"""

import logging
from datetime import datetime, tzinfo
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from babel import Locale, UnknownLocaleError
from babel.dates import LOCALTZ
from babel.numbers import format_currency as babel_format_currency
from babel.numbers import get_territory_currencies

from encore.config import settings

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en_US"
DEFAULT_CURRENCY = "USD"


def _get_locale() -> str:
    """Get configured locale with validation and fallback."""
    try:
        Locale.parse(settings.locale)
        return settings.locale
    except (UnknownLocaleError, ValueError) as e:
        logger.warning(
            "Invalid LOCALE '%s': %s. Falling back to '%s'", settings.locale, e, DEFAULT_LOCALE
        )
        return DEFAULT_LOCALE


def _get_currency_from_locale(locale_str: str) -> str:
    """Derive currency code from locale territory (e.g. 'en_US' -> 'USD')."""
    try:
        territory = Locale.parse(locale_str).territory
        if territory:
            currencies = get_territory_currencies(territory)
            if currencies:
                return currencies[0]
    except (UnknownLocaleError, ValueError) as e:
        logger.warning("Could not derive currency from locale '%s': %s", locale_str, e)
    return DEFAULT_CURRENCY


# Module-level constants (computed once at import)
LOCALE = _get_locale()
CURRENCY = _get_currency_from_locale(LOCALE)


def get_business_timezone() -> tzinfo:
    """Timezone used for business-hours checks.

    Returns the configured IANA zone, or the system timezone detected by babel.
    """
    if settings.timezone:
        try:
            return ZoneInfo(settings.timezone)
        except ZoneInfoNotFoundError:
            logger.warning("Unknown TIMEZONE '%s', using system timezone", settings.timezone)
    return LOCALTZ


def to_local(value: datetime, tz: tzinfo | None = None) -> datetime:
    """Convert an aware datetime to the business timezone."""
    return value.astimezone(tz or get_business_timezone())


def format_amount(amount: float | Decimal) -> str:
    """Format monetary amount according to locale (e.g. '$1,234.50')."""
    return babel_format_currency(Decimal(str(amount)), CURRENCY, locale=LOCALE)


__all__ = ["format_amount", "get_business_timezone", "to_local", "LOCALE", "CURRENCY"]
