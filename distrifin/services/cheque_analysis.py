"""Cheque image analysis collaborator and form pre-fill."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from distrifin.engine.validation import CollectionDraft

logger = logging.getLogger(__name__)


@dataclass
class ChequeAnalysis:
    """Best-effort fields read off a cheque photo. Never authoritative."""
    cheque_number: Optional[str] = None
    bank: Optional[str] = None
    branch: Optional[str] = None
    amount: Optional[Decimal] = None
    date: Optional[str] = None  # ISO date as read from the cheque


class ChequeImageAnalyzer(ABC):
    """External vision service that reads cheque details from an image."""

    @abstractmethod
    def analyze(self, image_base64: str) -> Optional[ChequeAnalysis]:
        """Return extracted fields, or None when nothing could be read."""


def prefill_from_image(
    draft: CollectionDraft,
    image_base64: str,
    analyzer: Optional[ChequeImageAnalyzer],
    enabled: bool = True,
) -> bool:
    """
    Attach a cheque image to a draft and pre-fill fields read from it.

    Extracted values overwrite the draft's fields but stay editable; the
    operator still submits the draft through normal validation.

    Args:
        draft: Draft to update in place.
        image_base64: Encoded cheque image.
        analyzer: Vision service; None means no analysis is available.
        enabled: The deployment's cheque camera flag.

    Returns:
        True if any field was pre-filled. False means manual entry.
    """
    draft.cheque_image_base64 = image_base64

    if not enabled or analyzer is None:
        return False

    try:
        analysis = analyzer.analyze(image_base64)
    except Exception as e:
        logger.warning("Cheque image analysis failed, falling back to manual entry: %s", e)
        return False

    if analysis is None:
        logger.warning("Could not auto-extract cheque details. Please enter manually.")
        return False

    filled = False
    if analysis.cheque_number:
        draft.cheque_number = analysis.cheque_number
        filled = True
    if analysis.bank:
        draft.bank = analysis.bank
        filled = True
    if analysis.branch:
        draft.branch = analysis.branch
        filled = True
    if analysis.amount:
        draft.amount = str(analysis.amount)
        filled = True
    if analysis.date:
        draft.realize_date = analysis.date
        filled = True

    return filled
