"""Cheque reconciliation: match bank statement credits to pending cheques."""

import logging
from typing import Iterable, List, Optional, Set

from distrifin.engine.models import (
    ChequeMatch,
    Collection,
    ReconciliationResult,
    StatementItem,
)

logger = logging.getLogger(__name__)

REASON_CHEQUE_NUMBER = "Cheque number and amount match"
REASON_DESCRIPTION = "Description contains cheque number, amount matches"


class ChequeMatcher:
    """
    Match bank statement deposits against in-system pending cheques.

    Matching Strategy (per statement item, in statement order):
    1. Exact: extracted cheque number and credit amount equal the cheque's.
    2. Description fallback: amount equal and the statement description
       contains the cheque number. Can be switched off.

    The first pending cheque that qualifies wins. A cheque consumed by one
    statement line is never offered to a later line in the same run.
    """

    def __init__(self, match_description: bool = True):
        """
        Initialize the matcher.

        Args:
            match_description: Fall back to finding the cheque number inside
                the statement description when no exact number match exists.
        """
        self.match_description = match_description

    def match(
        self,
        collections: Iterable[Collection],
        statement_items: Iterable[StatementItem],
    ) -> ReconciliationResult:
        """
        Run one reconciliation pass.

        Args:
            collections: Current collection snapshot. Only pending cheques take part.
            statement_items: Parsed statement lines.

        Returns:
            ReconciliationResult with system matches, bank-direct deposits and
            the pending cheques nothing matched.
        """
        pending = [c for c in collections if c.is_pending_cheque]
        consumed: Set[str] = set()
        result = ReconciliationResult()

        for item in statement_items:
            if not item.is_deposit:
                result.ignored_count += 1
                continue

            match = self._find_match(item, pending, consumed)
            if match:
                result.matches.append(match)
                consumed.add(match.collection.collection_id)
            elif _clean(item.cheque_number):
                result.bank_direct.append(item)
            else:
                logger.debug("Credit %s has no cheque number, skipping", item.id)

        result.outstanding = [c for c in pending if c.collection_id not in consumed]

        logger.info(
            "Reconciled %d pending cheques: %d matched, %d bank-direct, %d ignored",
            len(pending), len(result.matches), len(result.bank_direct), result.ignored_count,
        )
        return result

    def _find_match(
        self,
        item: StatementItem,
        pending: List[Collection],
        consumed: Set[str],
    ) -> Optional[ChequeMatch]:
        """Find the first unconsumed pending cheque for a statement credit."""
        candidates = [
            c for c in pending
            if c.collection_id not in consumed
            and _clean(c.cheque_number)
            and c.amount == item.credit
        ]

        item_number = _clean(item.cheque_number)
        if item_number:
            for collection in candidates:
                if _clean(collection.cheque_number) == item_number:
                    return ChequeMatch(collection, item, REASON_CHEQUE_NUMBER)

        if self.match_description and item.description:
            for collection in candidates:
                if _clean(collection.cheque_number) in item.description:
                    return ChequeMatch(collection, item, REASON_DESCRIPTION)

        return None


def _clean(cheque_number: Optional[str]) -> str:
    return (cheque_number or "").strip()
