"""CSV/Excel bank statement parser."""

import logging
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from distrifin.engine.models import StatementItem

logger = logging.getLogger(__name__)

# "CHQ 001234", "Cheque No: 1234", "CHK#55512", "cheque deposit 000123"
CHEQUE_PATTERN = re.compile(
    r"\b(?:CHQ|CHEQUE|CHK|CHECK)\b\.?(?:\s+DEP(?:OSIT)?\b\.?)?\s*(?:NO\.?|NUMBER|#)?\s*[:#\-]?\s*(\d{3,})",
    re.IGNORECASE,
)
DIGITS_ONLY = re.compile(r"^\d{3,}$")
AMOUNT_SUFFIX = re.compile(r"\s*(CR|DR)\.?$", re.IGNORECASE)


def extract_cheque_number(*texts: Optional[str]) -> Optional[str]:
    """
    Best-effort cheque number extraction from statement text.

    Each text is tried in order. A bare run of digits counts as a cheque
    number only when it is the whole text (typical of a reference column).
    """
    for text in texts:
        if not text:
            continue
        text = str(text).strip()
        if DIGITS_ONLY.match(text):
            return text
        found = CHEQUE_PATTERN.search(text)
        if found:
            return found.group(1)
    return None


class StatementParser:
    """Parse CSV/Excel bank statements into StatementItem objects."""

    # Default column mapping
    DEFAULT_MAPPING: Dict[str, str] = {
        "date": "date",
        "description": "description",
        "reference": "reference",
        "debit": "debit",
        "credit": "credit",
        "amount": "amount",
        "cheque_number": "cheque_number",
        "bank": "bank",
        "branch": "branch",
    }

    # Common date formats to try
    DATE_FORMATS = [
        "%Y-%m-%d",
        "%Y-%m-%d %H:%M:%S",
        "%d/%m/%Y",
        "%m/%d/%Y",
        "%d-%m-%Y",
        "%Y/%m/%d",
        "%d.%m.%Y",
        "%d-%b-%Y",
    ]

    def __init__(self, column_mapping: Optional[Dict[str, str]] = None):
        """
        Initialize parser with optional custom column mapping.

        Args:
            column_mapping: Dict mapping our field names to statement column names.
                          Unmapped fields keep their default column name.
                          Example: {"date": "Txn Date", "credit": "Deposits"}
        """
        self.column_mapping = {**self.DEFAULT_MAPPING, **(column_mapping or {})}

    def parse(self, file_path: str | Path, **kwargs) -> List[StatementItem]:
        """
        Parse a CSV or Excel statement into StatementItem objects.

        Args:
            file_path: Path to the CSV/Excel file.
            **kwargs: Additional arguments passed to pandas read function.

        Returns:
            List of StatementItem objects, in file order.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ValueError: If required columns are missing.
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        df = self._read_file(file_path, **kwargs)
        self._validate_columns(df)
        return self._convert_dataframe(df)

    def _read_file(self, file_path: Path, **kwargs) -> pd.DataFrame:
        """Read file based on extension."""
        suffix = file_path.suffix.lower()
        kwargs.setdefault("dtype", str)
        kwargs.setdefault("keep_default_na", False)

        if suffix == ".csv":
            df = pd.read_csv(file_path, **kwargs)
        elif suffix in (".xlsx", ".xls"):
            df = pd.read_excel(file_path, **kwargs)
        else:
            raise ValueError(f"Unsupported file format: {suffix}. Use .csv, .xlsx, or .xls")

        df.columns = [str(c).strip() for c in df.columns]
        return df

    def _col(self, field: str) -> str:
        return self.column_mapping.get(field, field)

    def _validate_columns(self, df: pd.DataFrame) -> None:
        """
        Validate that the date column and some amount column exist.

        Raises:
            ValueError: If required columns are missing.
        """
        missing = []

        if self._col("date") not in df.columns:
            missing.append(f"date (expected column: '{self._col('date')}')")

        has_split = self._col("credit") in df.columns
        has_signed = self._col("amount") in df.columns
        if not has_split and not has_signed:
            missing.append(
                f"credit or amount (expected column: '{self._col('credit')}' "
                f"or '{self._col('amount')}')"
            )

        if missing:
            available = ", ".join(df.columns.tolist())
            raise ValueError(
                f"Missing required columns: {', '.join(missing)}. "
                f"Available columns: {available}. "
                f"Use column_mapping parameter to map your columns."
            )

    def _convert_dataframe(self, df: pd.DataFrame) -> List[StatementItem]:
        """Convert a DataFrame to list of StatementItem objects."""
        items: List[StatementItem] = []

        for idx, row in df.iterrows():
            try:
                items.append(self._convert_row(row, idx))
            except (ValueError, InvalidOperation) as e:
                # Log warning but continue processing
                logger.warning("Skipping statement row %s: %s", idx, e)

        return items

    def _value(self, row: pd.Series, field: str) -> str:
        col = self._col(field)
        if col not in row.index:
            return ""
        value = row[col]
        if value is None or (not isinstance(value, str) and pd.isna(value)):
            return ""
        return str(value).strip()

    def _convert_row(self, row: pd.Series, idx: int) -> StatementItem:
        """Convert a single row to a StatementItem."""
        item_date = self._parse_date(row[self._col("date")])
        description = self._value(row, "description")
        reference = self._value(row, "reference") or None

        if self._col("credit") in row.index:
            signed = self._parse_amount(self._value(row, "credit"))
            debit = abs(self._parse_amount(self._value(row, "debit")))
        else:
            signed = self._parse_amount(self._value(row, "amount"))
            debit = Decimal("0")
        # A "DR" or bracketed value in the credit column is money going out
        credit = signed if signed > 0 else Decimal("0")
        debit += -signed if signed < 0 else Decimal("0")

        cheque_number = self._value(row, "cheque_number") or extract_cheque_number(
            reference, description
        )

        return StatementItem(
            id=f"ST-{idx:06d}",
            date=item_date,
            description=description,
            reference=reference,
            debit=debit,
            credit=credit,
            cheque_number=cheque_number,
            bank=self._value(row, "bank") or None,
            branch=self._value(row, "branch") or None,
            raw_data=row.to_dict(),
        )

    def _parse_date(self, value) -> datetime:
        """Parse date from various formats."""
        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()
        if isinstance(value, datetime):
            return value

        str_value = str(value).strip()

        for fmt in self.DATE_FORMATS:
            try:
                return datetime.strptime(str_value, fmt)
            except ValueError:
                continue

        raise ValueError(f"Could not parse date: {value!r}")

    def _parse_amount(self, value: str) -> Decimal:
        """
        Parse an amount cell; blanks are zero.

        "(1,000.00)" and "1,000.00 DR" are negative, "1,000.00 CR" is positive.

        Raises:
            ValueError: If the cell is not a finite number.
        """
        str_value = value.replace(",", "").replace("$", "").strip()
        if not str_value or str_value == "-":
            return Decimal("0")

        negative = str_value.startswith("(") and str_value.endswith(")")
        if negative:
            str_value = str_value[1:-1]

        suffix = AMOUNT_SUFFIX.search(str_value)
        if suffix:
            str_value = str_value[:suffix.start()]
            if suffix.group(1).upper() == "DR":
                negative = True

        amount = Decimal(str_value)
        if not amount.is_finite():
            raise ValueError(f"Amount is not a finite number: {value!r}")
        return -abs(amount) if negative else amount


def parse_statement_file(file_path: str | Path, **kwargs) -> List[StatementItem]:
    """
    Parse a bank statement, picking the parser from the file extension.

    Args:
        file_path: Path to an OFX/QFX, CSV or Excel statement.
        **kwargs: Passed to StatementParser (e.g. column_mapping).
    """
    from distrifin.parsers.ofx_parser import OFXParser

    if Path(file_path).suffix.lower() in (".ofx", ".qfx"):
        return OFXParser().parse(file_path)
    return StatementParser(**kwargs).parse(file_path)
