"""Bulk customer import from CSV."""

import io
import logging
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

import pandas as pd

from distrifin.engine.models import Customer, CustomerStatus, GlobalSettings, Route
from distrifin.engine.validation import parse_amount

logger = logging.getLogger(__name__)


class CustomerImportError(ValueError):
    """Raised when an import file yields nothing that can be saved."""


class CustomerImporter:
    """
    Turn a customer CSV export into Customer records.

    Columns are located by header name; each field accepts a fixed set of
    aliases (compared trimmed and lower-cased). Unknown columns are ignored.
    """

    HEADER_ALIASES: Dict[str, List[str]] = {
        "business_name": ["business_name", "business name", "shop/business name", "shop name"],
        "customer_name": ["customer_name", "customer name", "contact name"],
        "phone_number": ["phone_number", "phone number", "phone", "mobile"],
        "whatsapp_number": ["whatsapp_number", "whatsapp number", "whatsapp"],
        "address": ["address", "residential address", "business address"],
        "location": ["location", "gps", "gps location"],
        "credit_limit": ["credit_limit", "credit limit", "credit limit ($)"],
        "credit_period_days": ["credit_period_days", "credit period", "credit period (days)"],
        "route_id": ["route_id", "route", "assigned route", "route name"],
    }

    def __init__(
        self,
        settings: Optional[GlobalSettings] = None,
        routes: Optional[Iterable[Route]] = None,
    ):
        """
        Args:
            settings: Supplies the default credit limit and period.
            routes: Known routes; a route cell matching a route name is
                stored as that route's id.
        """
        self.settings = settings or GlobalSettings()
        self._route_lookup: Dict[str, str] = {}
        for route in routes or []:
            self._route_lookup[route.route_id.strip().lower()] = route.route_id
            self._route_lookup[route.route_name.strip().lower()] = route.route_id

    def parse(self, file_path: str | Path) -> List[Customer]:
        """
        Parse a customer CSV file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            CustomerImportError: If the file is empty or has no usable rows.
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")
        if file_path.suffix.lower() != ".csv":
            raise ValueError(f"Unsupported file format: {file_path.suffix}. Use .csv")
        return self.parse_text(file_path.read_text(encoding="utf-8-sig"))

    def parse_text(self, text: str) -> List[Customer]:
        """
        Parse CSV text into customers.

        Returns:
            At least one Customer, each ACTIVE with a fresh identifier.

        Raises:
            CustomerImportError: If the text has no data rows, cannot be read,
                or no row carries a business name or phone number.
        """
        try:
            df = pd.read_csv(
                io.StringIO(text),
                dtype=str,
                keep_default_na=False,
                skipinitialspace=True,
                skip_blank_lines=True,
            )
        except pd.errors.EmptyDataError as e:
            raise CustomerImportError("File seems empty or invalid format.") from e
        except pd.errors.ParserError as e:
            raise CustomerImportError(f"Failed to parse CSV file: {e}") from e

        if df.empty:
            raise CustomerImportError("File seems empty or invalid format.")

        columns = self._resolve_columns(df.columns)
        customers: List[Customer] = []

        for idx, row in df.iterrows():
            values = {
                field: str(row[col]).strip() for field, col in columns.items()
            }
            business_name = values.get("business_name", "")
            customer_name = values.get("customer_name", "")
            phone = values.get("phone_number", "")

            if not business_name and not phone:
                logger.warning("Skipping import row %s: no business name or phone", idx)
                continue

            customers.append(Customer(
                customer_id=f"C-IMP-{uuid4().hex[:10].upper()}",
                business_name=business_name or customer_name,
                customer_name=customer_name or business_name,
                phone_number=phone,
                whatsapp_number=values.get("whatsapp_number", ""),
                address=values.get("address", ""),
                location=values.get("location", ""),
                credit_limit=self._credit_limit(values.get("credit_limit", "")),
                credit_period_days=self._credit_period(values.get("credit_period_days", "")),
                route_id=self._route(values.get("route_id", "")),
                status=CustomerStatus.ACTIVE,
            ))

        if not customers:
            raise CustomerImportError("No valid customer data found in file.")

        logger.info("Parsed %d customers from %d rows", len(customers), len(df))
        return customers

    def _resolve_columns(self, headers: Iterable[str]) -> Dict[str, str]:
        """Map our field names to the file's actual column names."""
        normalized = {str(h).strip().lower(): h for h in headers}
        columns: Dict[str, str] = {}
        for field, aliases in self.HEADER_ALIASES.items():
            for alias in aliases:
                if alias in normalized:
                    columns[field] = normalized[alias]
                    break
        return columns

    def _credit_limit(self, value: str) -> Decimal:
        try:
            limit = parse_amount(value)
        except ValueError:
            return self.settings.default_credit_limit
        if not limit.is_finite() or limit < 0:
            return self.settings.default_credit_limit
        return limit

    def _credit_period(self, value: str) -> int:
        try:
            period = int(value)
        except ValueError:
            return self.settings.default_credit_period
        if period < 0:
            return self.settings.default_credit_period
        return period

    def _route(self, value: str) -> Optional[str]:
        if not value:
            return None
        return self._route_lookup.get(value.lower(), value)
