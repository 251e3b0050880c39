"""OFX bank statement parser."""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import List
from uuid import uuid4

from ofxparse import OfxParser as OfxLib

from distrifin.engine.models import StatementItem
from distrifin.parsers.statement_parser import extract_cheque_number


class OFXParser:
    """Parse OFX/QFX bank statement files into StatementItem objects."""

    def parse(self, file_path: str | Path) -> List[StatementItem]:
        """
        Parse an OFX file and return its statement lines.

        Args:
            file_path: Path to the OFX/QFX file.

        Returns:
            List of StatementItem objects from the bank statement.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ValueError: If the file cannot be parsed.
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"OFX file not found: {file_path}")

        if file_path.suffix.lower() not in (".ofx", ".qfx"):
            raise ValueError(f"Unsupported file format: {file_path.suffix}")

        try:
            with open(file_path, "rb") as f:
                ofx = OfxLib.parse(f)
        except Exception as e:
            raise ValueError(f"Failed to parse OFX file: {e}") from e

        items: List[StatementItem] = []

        for account in self._get_accounts(ofx):
            for stmt_txn in account.statement.transactions:
                items.append(self._convert_transaction(stmt_txn, account))

        return items

    def parse_multiple(self, file_paths: List[str | Path]) -> List[StatementItem]:
        """Parse multiple OFX files and return their combined lines."""
        all_items: List[StatementItem] = []
        for path in file_paths:
            all_items.extend(self.parse(path))
        return all_items

    def _get_accounts(self, ofx):
        """Extract accounts from parsed OFX data."""
        if getattr(ofx, "accounts", None):
            return ofx.accounts
        if getattr(ofx, "account", None):
            return [ofx.account]
        raise ValueError("No accounts found in OFX file")

    def _convert_transaction(self, stmt_txn, account) -> StatementItem:
        """Convert an OFX statement transaction to a StatementItem."""
        amount = Decimal(str(stmt_txn.amount))

        txn_date = stmt_txn.date
        if isinstance(txn_date, str):
            txn_date = datetime.strptime(txn_date[:8], "%Y%m%d")

        memo = getattr(stmt_txn, "memo", "") or ""
        payee = getattr(stmt_txn, "payee", "") or ""
        description = memo or payee
        checknum = (getattr(stmt_txn, "checknum", "") or "").strip()

        return StatementItem(
            id=getattr(stmt_txn, "id", None) or str(uuid4()),
            date=txn_date,
            description=description,
            reference=checknum or None,
            debit=-amount if amount < 0 else Decimal("0"),
            credit=amount if amount > 0 else Decimal("0"),
            cheque_number=checknum or extract_cheque_number(memo, payee),
            raw_data={
                "account_id": getattr(account, "account_id", ""),
                "bank_id": getattr(account, "routing_number", ""),
                "type": getattr(stmt_txn, "type", ""),
            },
        )
