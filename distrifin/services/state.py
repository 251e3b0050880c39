"""Application state: a live-synced view of the store plus the operations on it."""

import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional, Tuple
from uuid import uuid4

from distrifin.engine.aggregation import ReportBuilder
from distrifin.engine.matcher import ChequeMatcher
from distrifin.engine.models import (
    AuditLog,
    Collection,
    CollectionStatus,
    Customer,
    GlobalSettings,
    PaymentType,
    ReconciliationResult,
    Route,
    StatementItem,
)
from distrifin.engine.validation import CollectionDraft, CollectionValidator
from distrifin.parsers.customer_import import CustomerImporter
from distrifin.services.cheque_analysis import ChequeImageAnalyzer, prefill_from_image
from distrifin.store.document_store import DocumentStore, WriteResult

logger = logging.getLogger(__name__)

CUSTOMERS = "customers"
ROUTES = "routes"
COLLECTIONS = "collections"
SETTINGS = "settings"
AUDIT_LOGS = "audit_logs"
SETTINGS_DOC_ID = "global"


class AppState:
    """
    Explicit application state shared by every screen and command.

    The working sets are read-through caches fed by store subscriptions; each
    emission replaces the cached set wholesale. Mutations update the cache
    optimistically, write through to the store and hand the store's
    WriteResult back to the caller. A failed write resyncs the cache from the
    store.
    """

    def __init__(
        self,
        store: DocumentStore,
        user_name: Optional[str] = None,
        analyzer: Optional[ChequeImageAnalyzer] = None,
    ):
        """
        Args:
            store: Persistence collaborator.
            user_name: Operator recorded against audit entries.
            analyzer: Cheque image analysis service, if one is configured.
        """
        self.store = store
        self.user_name = user_name
        self.analyzer = analyzer

        self._customers: List[Customer] = []
        self._routes: List[Route] = []
        self._collections: List[Collection] = []
        self._audit_logs: List[AuditLog] = []
        self._settings = GlobalSettings()

        self._unsubscribers = [
            store.subscribe(CUSTOMERS, self._on_customers),
            store.subscribe(ROUTES, self._on_routes),
            store.subscribe(COLLECTIONS, self._on_collections),
            store.subscribe(SETTINGS, self._on_settings),
            store.subscribe(AUDIT_LOGS, self._on_audit_logs),
        ]

    # -- Snapshots ---------------------------------------------------------

    @property
    def customers(self) -> List[Customer]:
        return list(self._customers)

    @property
    def routes(self) -> List[Route]:
        return list(self._routes)

    @property
    def collections(self) -> List[Collection]:
        return list(self._collections)

    @property
    def settings(self) -> GlobalSettings:
        return self._settings

    def find_customer(self, customer_id: str) -> Optional[Customer]:
        return next((c for c in self._customers if c.customer_id == customer_id), None)

    def find_collection(self, collection_id: str) -> Optional[Collection]:
        return next((c for c in self._collections if c.collection_id == collection_id), None)

    def report_builder(self) -> ReportBuilder:
        return ReportBuilder(self._collections, self._customers, self._routes)

    def close(self) -> None:
        """Drop all store subscriptions."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    # -- Collections -------------------------------------------------------

    def attach_cheque_image(self, draft: CollectionDraft, image_base64: str) -> bool:
        """Attach a cheque photo to a draft and pre-fill what the analyzer reads."""
        return prefill_from_image(
            draft, image_base64, self.analyzer,
            enabled=self._settings.enable_cheque_camera,
        )

    def add_collection(
        self,
        draft: CollectionDraft,
        today: Optional[date] = None,
    ) -> Tuple[Collection, WriteResult]:
        """
        Validate and record a new collection.

        Raises:
            CollectionValidationError: If the draft is rejected.
        """
        collection = CollectionValidator(self._customers).build(draft, today=today)
        self._collections.append(collection)

        result = self._write(COLLECTIONS, collection.collection_id, collection.to_dict())
        if result.ok:
            self._audit(
                "CREATE_COLLECTION",
                f"{collection.payment_type.value} {collection.amount} from {collection.customer_id}",
            )
        return collection, result

    def mark_cheque(self, collection_id: str, status: CollectionStatus) -> WriteResult:
        """
        Manually settle a pending cheque as REALIZED or RETURNED.

        Raises:
            ValueError: If the collection is unknown, not a pending cheque, or
                the target status is not a settlement status.
        """
        if status not in (CollectionStatus.REALIZED, CollectionStatus.RETURNED):
            raise ValueError(f"A cheque can only be marked REALIZED or RETURNED, not {status.value}")

        collection = self.find_collection(collection_id)
        if collection is None:
            raise ValueError(f"Unknown collection: {collection_id}")
        if not collection.is_pending_cheque:
            raise ValueError(
                f"Collection {collection_id} is not a pending cheque "
                f"({collection.payment_type.value}, {collection.status.value})"
            )

        result = self._set_status(collection, status)
        if result.ok:
            self._audit("MARK_CHEQUE", f"{collection_id} -> {status.value}")
        return result

    def delete_cheques(self, collection_ids: Iterable[str]) -> WriteResult:
        """
        Remove cheque records in one atomic batch.

        Raises:
            ValueError: If an id is unknown or does not belong to a cheque.
        """
        ids = list(dict.fromkeys(collection_ids))
        for collection_id in ids:
            collection = self.find_collection(collection_id)
            if collection is None:
                raise ValueError(f"Unknown collection: {collection_id}")
            if collection.payment_type != PaymentType.CHEQUE:
                raise ValueError(f"Collection {collection_id} is not a cheque")

        self._collections = [c for c in self._collections if c.collection_id not in ids]
        result = self.store.batch_delete(COLLECTIONS, ids)
        if not result.ok:
            self._resync(COLLECTIONS, self._on_collections)
            return result
        self._audit("DELETE_CHEQUES", ", ".join(ids))
        return result

    # -- Reconciliation ----------------------------------------------------

    def reconcile(
        self,
        statement_items: Iterable[StatementItem],
        match_description: bool = True,
    ) -> ReconciliationResult:
        """Match statement lines against the current pending cheques."""
        matcher = ChequeMatcher(match_description=match_description)
        return matcher.match(self._collections, statement_items)

    def confirm_reconciliation(self, result: ReconciliationResult) -> WriteResult:
        """
        Mark every matched cheque REALIZED.

        Cheques that are no longer pending (already settled or deleted since
        the match ran) are skipped. Bank-direct deposits are left for manual
        follow-up and never touch a collection.
        """
        outcome = WriteResult(ok=True)
        errors = []
        realized = 0

        for match in result.matches:
            current = self.find_collection(match.collection.collection_id)
            if current is None or not current.is_pending_cheque:
                logger.warning(
                    "Skipping %s: no longer a pending cheque", match.collection.collection_id
                )
                continue

            written = self._set_status(current, CollectionStatus.REALIZED)
            outcome.doc_ids.extend(written.doc_ids)
            if written.ok:
                realized += 1
            else:
                outcome.ok = False
                errors.append(written.error or "unknown error")

        outcome.error = "; ".join(errors) or None
        self._audit(
            "RECONCILE",
            f"{realized} cheques realized, "
            f"{len(result.bank_direct)} bank-direct deposits for follow-up",
        )
        return outcome

    # -- Master data -------------------------------------------------------

    def add_customer(self, customer: Customer) -> WriteResult:
        """
        Create a customer, filling missing credit terms from settings.

        Raises:
            ValueError: If the record is incomplete or the id is taken.
        """
        if self.find_customer(customer.customer_id):
            raise ValueError(f"Customer already exists: {customer.customer_id}")
        customer = self._with_defaults(customer)
        self._check_customer(customer)

        self._customers.append(customer)
        result = self._write(CUSTOMERS, customer.customer_id, customer.to_dict())
        if result.ok:
            self._audit("CREATE_CUSTOMER", customer.business_name)
        return result

    def edit_customer(self, customer: Customer) -> WriteResult:
        """Replace an existing customer record."""
        if not self.find_customer(customer.customer_id):
            raise ValueError(f"Unknown customer: {customer.customer_id}")
        customer = self._with_defaults(customer)
        self._check_customer(customer)

        self._customers = [
            customer if c.customer_id == customer.customer_id else c for c in self._customers
        ]
        result = self._write(CUSTOMERS, customer.customer_id, customer.to_dict())
        if result.ok:
            self._audit("UPDATE_CUSTOMER", customer.business_name)
        return result

    def import_customers(self, text: str) -> Tuple[List[Customer], WriteResult]:
        """
        Bulk import customers from CSV text.

        Raises:
            CustomerImportError: If nothing importable was found; nothing is written.
        """
        importer = CustomerImporter(self._settings, self._routes)
        customers = importer.parse_text(text)

        outcome = WriteResult(ok=True)
        errors = []
        imported = 0
        for customer in customers:
            self._customers.append(customer)
            written = self._write(CUSTOMERS, customer.customer_id, customer.to_dict())
            outcome.doc_ids.extend(written.doc_ids)
            if written.ok:
                imported += 1
            else:
                outcome.ok = False
                errors.append(written.error or "unknown error")

        outcome.error = "; ".join(errors) or None
        if imported:
            self._audit("IMPORT_CUSTOMERS", f"{imported} customers imported")
        return customers, outcome

    def add_route(self, route_name: str) -> Tuple[Route, WriteResult]:
        """Create an active route."""
        route_name = route_name.strip()
        if not route_name:
            raise ValueError("Route name is required.")

        route = Route(route_id=f"R-{uuid4().hex[:8].upper()}", route_name=route_name)
        self._routes.append(route)
        result = self._write(ROUTES, route.route_id, route.to_dict())
        if result.ok:
            self._audit("CREATE_ROUTE", route_name)
        return route, result

    def edit_route(self, route: Route) -> WriteResult:
        if not any(r.route_id == route.route_id for r in self._routes):
            raise ValueError(f"Unknown route: {route.route_id}")
        if not route.route_name.strip():
            raise ValueError("Route name is required.")

        self._routes = [route if r.route_id == route.route_id else r for r in self._routes]
        result = self._write(ROUTES, route.route_id, route.to_dict())
        if result.ok:
            self._audit("UPDATE_ROUTE", route.route_name)
        return result

    # -- Settings & audit --------------------------------------------------

    def save_settings(self, settings: GlobalSettings) -> WriteResult:
        if settings.default_credit_limit < 0 or settings.default_credit_period < 0:
            raise ValueError("Default credit limit and period must not be negative.")
        if not settings.currency_code.strip():
            raise ValueError("Currency code is required.")

        self._settings = settings
        result = self._write(SETTINGS, SETTINGS_DOC_ID, settings.to_dict())
        if result.ok:
            self._audit("UPDATE_SETTINGS", f"{settings.country} / {settings.currency_code}")
        return result

    def audit_log(self, query: str = "") -> List[AuditLog]:
        """Audit entries matching ``query`` (action, details or user), newest first."""
        needle = query.strip().lower()
        logs = [
            log for log in self._audit_logs
            if not needle
            or needle in log.action.lower()
            or needle in log.details.lower()
            or needle in (log.user_name or "").lower()
        ]
        return sorted(logs, key=lambda log: log.timestamp, reverse=True)

    # -- Internals ---------------------------------------------------------

    def _with_defaults(self, customer: Customer) -> Customer:
        return replace(
            customer,
            credit_limit=(
                customer.credit_limit if customer.credit_limit is not None
                else self._settings.default_credit_limit
            ),
            credit_period_days=(
                customer.credit_period_days if customer.credit_period_days is not None
                else self._settings.default_credit_period
            ),
        )

    def _check_customer(self, customer: Customer) -> None:
        if not customer.business_name.strip():
            raise ValueError("Business name is required.")
        if customer.credit_limit < 0:
            raise ValueError("Credit limit must not be negative.")
        if customer.credit_period_days < 0:
            raise ValueError("Credit period must not be negative.")

    def _set_status(self, collection: Collection, status: CollectionStatus) -> WriteResult:
        updated = replace(collection, status=status)
        self._collections = [
            updated if c.collection_id == updated.collection_id else c
            for c in self._collections
        ]
        return self._write(COLLECTIONS, updated.collection_id, updated.to_dict())

    def _write(self, collection: str, doc_id: str, document: dict) -> WriteResult:
        result = self.store.write(collection, doc_id, document)
        if not result.ok:
            logger.error("Could not save %s/%s: %s", collection, doc_id, result.error)
            self._resync(collection, self._listener_for(collection))
        return result

    def _audit(self, action: str, details: str) -> None:
        log = AuditLog(
            log_id=f"LOG-{uuid4().hex[:12].upper()}",
            timestamp=datetime.now(),
            action=action,
            details=details,
            user_name=self.user_name,
        )
        result = self.store.write(AUDIT_LOGS, log.log_id, log.to_dict())
        if not result.ok:
            logger.warning("Audit entry %s not saved: %s", action, result.error)

    def _listener_for(self, collection: str) -> Callable[[List[dict]], None]:
        return {
            CUSTOMERS: self._on_customers,
            ROUTES: self._on_routes,
            COLLECTIONS: self._on_collections,
            SETTINGS: self._on_settings,
            AUDIT_LOGS: self._on_audit_logs,
        }[collection]

    def _resync(self, collection: str, listener: Callable[[List[dict]], None]) -> None:
        listener(self.store.snapshot(collection))

    def _on_customers(self, docs: List[dict]) -> None:
        self._customers = [Customer.from_dict(d) for d in docs]

    def _on_routes(self, docs: List[dict]) -> None:
        self._routes = [Route.from_dict(d) for d in docs]

    def _on_collections(self, docs: List[dict]) -> None:
        self._collections = [Collection.from_dict(d) for d in docs]

    def _on_settings(self, docs: List[dict]) -> None:
        self._settings = GlobalSettings.from_dict(docs[0]) if docs else GlobalSettings()

    def _on_audit_logs(self, docs: List[dict]) -> None:
        self._audit_logs = [AuditLog.from_dict(d) for d in docs]
