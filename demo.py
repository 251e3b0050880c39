"""
Demo script for the DistriFin collections back office.

Seeds an in-memory store with a couple of routes, customers and collections,
records a cheque, reconciles a small bank statement and prints the results.

Usage:
    python demo.py
"""

import logging
import sys
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path

# Ensure the project root is in the Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from distrifin.engine.aggregation import ReportFilter, ReportType
from distrifin.engine.models import Customer, PaymentType, StatementItem
from distrifin.engine.validation import CollectionDraft, CollectionValidationError
from distrifin.reports.formatting import format_currency
from distrifin.services.state import AppState
from distrifin.store.document_store import InMemoryDocumentStore


def main():
    """Run the collections demo."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    state = AppState(InMemoryDocumentStore(), user_name="demo")
    today = date.today()

    print("=" * 60)
    print("  DISTRIFIN COLLECTIONS - DEMO")
    print("=" * 60)

    # Step 1: Master data
    print("\n  [1/4] Creating routes and customers")
    central, _ = state.add_route("Colombo Central")
    kandy, _ = state.add_route("Kandy Line")
    state.add_customer(Customer(
        customer_id="C001", business_name="City Grocers", customer_name="John Doe",
        phone_number="0771234567", credit_limit=Decimal("50000"), credit_period_days=30,
        route_id=central.route_id,
    ))
    state.add_customer(Customer(
        customer_id="C002", business_name="Smith Supermarket", customer_name="Jane Smith",
        phone_number="0719876543", credit_period_days=45, route_id=kandy.route_id,
    ))
    for c in state.customers:
        print(f"        - {c.customer_id} | {c.business_name:<20} | {c.credit_period_days} days")

    # Step 2: Collections
    print("\n  [2/4] Recording collections")
    state.add_collection(CollectionDraft(customer_id="C001", amount="5,000"))
    state.add_collection(CollectionDraft(
        customer_id="C002", payment_type=PaymentType.CHEQUE, amount="15000",
        cheque_number="998877", bank="BOC", branch="City",
        realize_date=today + timedelta(days=10),
    ))
    try:
        state.add_collection(CollectionDraft(
            customer_id="C001", payment_type=PaymentType.CHEQUE, amount="8000",
            cheque_number="123456", bank="HNB", realize_date=today + timedelta(days=90),
        ))
    except CollectionValidationError as e:
        print(f"        Rejected: {e}")

    for c in state.collections:
        print(f"        - {c.collection_id} | {c.payment_type.value:<6} | "
              f"{format_currency(c.amount, state.settings):>15} | {c.status.value}")

    # Step 3: Reconcile
    print("\n  [3/4] Reconciling bank statement")
    statement = [
        StatementItem(id="ST-1", date=datetime.now(), description="CHQ DEP 998877",
                      credit=Decimal("15000"), cheque_number="998877"),
        StatementItem(id="ST-2", date=datetime.now(), description="CHQ DEP 555001",
                      credit=Decimal("2500"), cheque_number="555001"),
        StatementItem(id="ST-3", date=datetime.now(), description="SERVICE CHARGE",
                      debit=Decimal("150")),
    ]
    result = state.reconcile(statement)
    for m in result.matches:
        print(f"        [MATCH]       {m.collection.cheque_number} -> {m.match_reason}")
    for item in result.bank_direct:
        print(f"        [BANK-DIRECT] {item.cheque_number} "
              f"{format_currency(item.credit, state.settings)}")
    outcome = state.confirm_reconciliation(result)
    print(f"        Successfully reconciled {len(outcome.doc_ids)} cheques.")

    # Step 4: Reports
    print("\n  [4/4] Reports")
    builder = state.report_builder()
    daily = builder.build(ReportFilter(report_type=ReportType.DAILY_COLLECTION))
    print(f"        Daily total ({daily.count}): {format_currency(daily.total, state.settings)}")
    for row in builder.route_summary():
        print(f"        {row.route_name:<20} {row.customer_count} customers "
              f"{format_currency(row.total, state.settings):>15}")

    stats = builder.dashboard_stats()
    print(f"        Pending cheques: {stats.pending_count}, returned: {stats.returned_count}")
    print()


if __name__ == "__main__":
    main()
