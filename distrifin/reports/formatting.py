"""Amount display helpers driven by the deployment's currency settings."""

from decimal import Decimal
from typing import Optional

from distrifin.engine.models import GlobalSettings


def format_currency(amount: Decimal, settings: Optional[GlobalSettings] = None) -> str:
    """Format an amount as e.g. "LKR 5,000.00"."""
    code = (settings or GlobalSettings()).currency_code
    return f"{code} {Decimal(amount):,.2f}"


def excel_number_format(settings: Optional[GlobalSettings] = None) -> str:
    """Excel number format showing the currency code before the amount."""
    code = (settings or GlobalSettings()).currency_code
    return f'"{code}" #,##0.00'
