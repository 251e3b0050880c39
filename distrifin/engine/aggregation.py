"""Filtered, sorted and summed views over collections for reports and the dashboard."""

import unicodedata
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional

from distrifin.engine.models import (
    Collection,
    CollectionStatus,
    Customer,
    PaymentType,
    Route,
)

ALL_ROUTES = "ALL"
UNASSIGNED_ROUTE_ID = ""
UNASSIGNED_ROUTE_NAME = "Unassigned"


class ReportType(Enum):
    DAILY_COLLECTION = "DAILY_COLLECTION"
    PENDING_CHEQUES = "PENDING_CHEQUES"
    RETURNED_CHEQUES = "RETURNED_CHEQUES"
    ROUTE_SUMMARY = "ROUTE_SUMMARY"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class SortOrder(Enum):
    """Business-name sort state. Clicking the column header cycles it."""
    NONE = "none"
    ASC = "asc"
    DESC = "desc"

    def next(self) -> "SortOrder":
        cycle = [SortOrder.NONE, SortOrder.ASC, SortOrder.DESC]
        return cycle[(cycle.index(self) + 1) % len(cycle)]


@dataclass
class ReportFilter:
    report_type: ReportType = ReportType.DAILY_COLLECTION
    query: str = ""
    route_id: str = ALL_ROUTES
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    payment_type: Optional[PaymentType] = None
    sort: SortOrder = SortOrder.NONE


@dataclass
class ReportRow:
    collection: Collection
    customer: Optional[Customer] = None
    route: Optional[Route] = None

    @property
    def business_name(self) -> str:
        return self.customer.business_name if self.customer else "Unknown"

    @property
    def route_name(self) -> str:
        return self.route.route_name if self.route else UNASSIGNED_ROUTE_NAME


@dataclass
class CollectionReport:
    report_type: ReportType
    rows: List[ReportRow] = field(default_factory=list)
    total: Decimal = Decimal("0")

    @property
    def count(self) -> int:
        return len(self.rows)


@dataclass
class RouteSummaryRow:
    route_id: str
    route_name: str
    customer_count: int = 0
    collection_count: int = 0
    total: Decimal = Decimal("0")


@dataclass
class DashboardStats:
    total_collected: Decimal = Decimal("0")
    pending_amount: Decimal = Decimal("0")
    pending_count: int = 0
    returned_count: int = 0
    by_payment_type: Dict[str, Decimal] = field(default_factory=dict)


@dataclass
class Notification:
    id: str
    message: str
    level: str = "warning"  # "error" | "warning"


class ReportBuilder:
    """
    Derive report tables and dashboard figures from a read-only snapshot.

    Nothing here mutates the records it is given.
    """

    def __init__(
        self,
        collections: Iterable[Collection],
        customers: Iterable[Customer],
        routes: Iterable[Route],
    ):
        self.collections = list(collections)
        self.customers = {c.customer_id: c for c in customers}
        self.routes = {r.route_id: r for r in routes}

    def build(self, report_filter: Optional[ReportFilter] = None) -> CollectionReport:
        """
        Build a filtered report table.

        Args:
            report_filter: Query, route, date range, payment type, report type
                and sort order. Defaults to an unfiltered daily report.

        Returns:
            CollectionReport with the matching rows and their total.
        """
        report_filter = report_filter or ReportFilter()
        rows = [self._row(c) for c in self._filtered(report_filter)]
        rows = [r for r in rows if self._matches_report_type(r.collection, report_filter.report_type)]

        # Newest first unless the operator sorts by name
        rows.sort(key=lambda r: r.collection.collection_date or date.min, reverse=True)
        if report_filter.sort != SortOrder.NONE:
            rows = sorted(
                rows,
                key=lambda r: _name_key(r.business_name),
                reverse=report_filter.sort == SortOrder.DESC,
            )

        total = sum((r.collection.amount for r in rows), Decimal("0"))
        return CollectionReport(report_type=report_filter.report_type, rows=rows, total=total)

    def route_summary(self, report_filter: Optional[ReportFilter] = None) -> List[RouteSummaryRow]:
        """
        Sum collections per route.

        Collections whose customer is unknown or sits on a route that does not
        exist land in a trailing "Unassigned" row, so the row totals always add
        up to the total of the collections considered. The route filter of
        ``report_filter`` is ignored; query and dates apply.
        """
        summary: Dict[str, RouteSummaryRow] = {
            route_id: RouteSummaryRow(route_id, route.route_name)
            for route_id, route in self.routes.items()
        }
        unassigned = RouteSummaryRow(UNASSIGNED_ROUTE_ID, UNASSIGNED_ROUTE_NAME)

        for customer in self.customers.values():
            target = summary.get(customer.route_id or "", unassigned)
            target.customer_count += 1

        base_filter = report_filter or ReportFilter()
        scoped = ReportFilter(
            query=base_filter.query,
            start_date=base_filter.start_date,
            end_date=base_filter.end_date,
            payment_type=base_filter.payment_type,
        )
        for collection in self._filtered(scoped):
            customer = self.customers.get(collection.customer_id)
            route_id = customer.route_id if customer else None
            target = summary.get(route_id or "", unassigned)
            target.collection_count += 1
            target.total += collection.amount

        rows = list(summary.values())
        if unassigned.customer_count or unassigned.collection_count:
            rows.append(unassigned)
        return rows

    def dashboard_stats(self) -> DashboardStats:
        """Headline figures for the dashboard cards and payment-type chart."""
        stats = DashboardStats()
        by_type: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))

        for c in self.collections:
            stats.total_collected += c.amount
            by_type[c.payment_type.value] += c.amount
            if c.is_pending_cheque:
                stats.pending_count += 1
                stats.pending_amount += c.amount
            if c.status == CollectionStatus.RETURNED:
                stats.returned_count += 1

        stats.by_payment_type = dict(by_type)
        return stats

    def cheque_register(
        self,
        deposit_ready: bool = False,
        order: SortOrder = SortOrder.ASC,
    ) -> List[Collection]:
        """
        List cheques by realize date.

        Args:
            deposit_ready: Only pending cheques, i.e. the ones to take to the bank.
            order: ASC for earliest clearing date first, DESC for latest first.
        """
        cheques = [c for c in self.collections if c.payment_type == PaymentType.CHEQUE]
        if deposit_ready:
            cheques = [c for c in cheques if c.status == CollectionStatus.PENDING]

        return sorted(
            cheques,
            key=lambda c: c.realize_date or date.max,
            reverse=order == SortOrder.DESC,
        )

    def notifications(self) -> List[Notification]:
        """Alerts for returned cheques and customers over their credit limit."""
        alerts: List[Notification] = []

        returned = [c for c in self.collections if c.status == CollectionStatus.RETURNED]
        if returned:
            alerts.append(Notification(
                id="RET",
                message=f"{len(returned)} Returned Cheques require action.",
                level="error",
            ))

        exposure: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for c in self.collections:
            if c.payment_type == PaymentType.CHEQUE and c.status in (
                CollectionStatus.PENDING, CollectionStatus.RETURNED
            ):
                exposure[c.customer_id] += c.amount

        for customer_id, amount in exposure.items():
            customer = self.customers.get(customer_id)
            if customer is None or customer.credit_limit is None:
                continue
            if amount > customer.credit_limit:
                alerts.append(Notification(
                    id=f"CREDIT-{customer_id}",
                    message=f"{customer.business_name} exceeded credit limit.",
                ))

        return alerts

    def _filtered(self, report_filter: ReportFilter) -> List[Collection]:
        query = report_filter.query.strip().casefold()
        selected = []

        for c in self.collections:
            customer = self.customers.get(c.customer_id)

            if query:
                name = customer.business_name.casefold() if customer else ""
                cheque = (c.cheque_number or "").casefold()
                if query not in name and query not in cheque:
                    continue

            if report_filter.route_id != ALL_ROUTES:
                if customer is None or customer.route_id != report_filter.route_id:
                    continue

            if report_filter.start_date and (
                c.collection_date is None or c.collection_date < report_filter.start_date
            ):
                continue
            if report_filter.end_date and (
                c.collection_date is None or c.collection_date > report_filter.end_date
            ):
                continue

            if report_filter.payment_type and c.payment_type != report_filter.payment_type:
                continue

            selected.append(c)

        return selected

    def _matches_report_type(self, collection: Collection, report_type: ReportType) -> bool:
        if report_type == ReportType.PENDING_CHEQUES:
            return collection.is_pending_cheque
        if report_type == ReportType.RETURNED_CHEQUES:
            return collection.status == CollectionStatus.RETURNED
        return True

    def _row(self, collection: Collection) -> ReportRow:
        customer = self.customers.get(collection.customer_id)
        route = self.routes.get(customer.route_id) if customer and customer.route_id else None
        return ReportRow(collection=collection, customer=customer, route=route)


def _name_key(name: str):
    """
    Case- and accent-insensitive ordering, so "Émile Stores" sorts among the E's.

    Ties are broken by the accented form and then the original spelling.
    """
    folded = name.casefold()
    base = "".join(
        ch for ch in unicodedata.normalize("NFKD", folded) if not unicodedata.combining(ch)
    )
    return (base, folded, name)
