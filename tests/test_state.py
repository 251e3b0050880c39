"""Tests for the application state service."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from distrifin.engine.models import (
    CollectionStatus,
    Customer,
    GlobalSettings,
    PaymentType,
    Route,
    StatementItem,
)
from distrifin.engine.validation import CollectionDraft, CollectionValidationError
from distrifin.parsers.customer_import import CustomerImportError
from distrifin.services.cheque_analysis import ChequeAnalysis, ChequeImageAnalyzer
from distrifin.services.state import COLLECTIONS, CUSTOMERS, AppState
from distrifin.store.document_store import InMemoryDocumentStore

TODAY = date(2025, 1, 15)


class FailingStore(InMemoryDocumentStore):
    """Store that accepts subscriptions but rejects every write."""

    def _persist(self) -> None:
        raise OSError("network unreachable")


class DeleteFailingStore(InMemoryDocumentStore):
    """Store whose batch deletes fail while single writes succeed."""

    fail_next = False

    def batch_delete(self, collection, doc_ids):
        self.fail_next = True
        return super().batch_delete(collection, doc_ids)

    def _persist(self) -> None:
        if self.fail_next:
            self.fail_next = False
            raise OSError("batch rejected")


class FixedAnalyzer(ChequeImageAnalyzer):
    def analyze(self, image_base64):
        return ChequeAnalysis(cheque_number="777001", bank="BOC", amount=Decimal("900"))


def cheque_draft(number: str = "998877", amount: str = "15000", days: int = 10) -> CollectionDraft:
    """Helper to create a cheque draft for C001."""
    return CollectionDraft(
        customer_id="C001",
        payment_type=PaymentType.CHEQUE,
        amount=amount,
        cheque_number=number,
        bank="BOC",
        realize_date=TODAY + timedelta(days=days),
    )


def deposit(id: str, credit: str, cheque: str) -> StatementItem:
    return StatementItem(
        id=id,
        date=datetime(2025, 1, 25),
        description=f"CHQ DEP {cheque}",
        credit=Decimal(credit),
        cheque_number=cheque,
    )


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def state(store):
    app = AppState(store, user_name="tester")
    app.add_customer(Customer("C001", "City Grocers", credit_period_days=30))
    yield app
    app.close()


class TestCollections:

    def test_add_cash_collection(self, state, store):
        collection, result = state.add_collection(
            CollectionDraft(customer_id="C001", amount="5,000"), today=TODAY
        )

        assert result.ok
        assert collection.status == CollectionStatus.RECEIVED
        assert [c.collection_id for c in state.collections] == [collection.collection_id]
        assert store.snapshot(COLLECTIONS)[0]["amount"] == "5000"

    def test_rejected_draft_not_saved(self, state, store):
        with pytest.raises(CollectionValidationError, match="credit period"):
            state.add_collection(cheque_draft(days=45), today=TODAY)

        assert state.collections == []
        assert store.snapshot(COLLECTIONS) == []

    def test_collections_keep_entry_order(self, state):
        for amount in ("100", "200", "300"):
            state.add_collection(CollectionDraft(customer_id="C001", amount=amount), today=TODAY)
        assert [c.amount for c in state.collections] == [
            Decimal("100"), Decimal("200"), Decimal("300"),
        ]

    def test_attach_cheque_image(self, store):
        state = AppState(store, analyzer=FixedAnalyzer())
        draft = CollectionDraft(customer_id="C001", payment_type=PaymentType.CHEQUE)

        assert state.attach_cheque_image(draft, "aW1n") is True
        assert draft.cheque_number == "777001"
        assert draft.amount == "900"

    def test_attach_cheque_image_camera_disabled(self, store):
        state = AppState(store, analyzer=FixedAnalyzer())
        state.save_settings(GlobalSettings(enable_cheque_camera=False))
        draft = CollectionDraft(customer_id="C001", payment_type=PaymentType.CHEQUE)

        assert state.attach_cheque_image(draft, "aW1n") is False
        assert draft.cheque_number == ""
        assert draft.cheque_image_base64 == "aW1n"


class TestChequeLifecycle:

    def test_mark_returned(self, state):
        cheque, _ = state.add_collection(cheque_draft(), today=TODAY)

        result = state.mark_cheque(cheque.collection_id, CollectionStatus.RETURNED)

        assert result.ok
        assert state.find_collection(cheque.collection_id).status == CollectionStatus.RETURNED

    def test_settled_cheque_cannot_be_marked_again(self, state):
        cheque, _ = state.add_collection(cheque_draft(), today=TODAY)
        state.mark_cheque(cheque.collection_id, CollectionStatus.REALIZED)

        with pytest.raises(ValueError, match="not a pending cheque"):
            state.mark_cheque(cheque.collection_id, CollectionStatus.RETURNED)

    def test_cash_cannot_be_marked(self, state):
        cash, _ = state.add_collection(CollectionDraft(customer_id="C001", amount="10"), today=TODAY)
        with pytest.raises(ValueError, match="not a pending cheque"):
            state.mark_cheque(cash.collection_id, CollectionStatus.REALIZED)

    def test_only_settlement_statuses(self, state):
        cheque, _ = state.add_collection(cheque_draft(), today=TODAY)
        with pytest.raises(ValueError, match="REALIZED or RETURNED"):
            state.mark_cheque(cheque.collection_id, CollectionStatus.RECEIVED)

    def test_unknown_collection(self, state):
        with pytest.raises(ValueError, match="Unknown collection"):
            state.mark_cheque("CL-NOPE", CollectionStatus.REALIZED)

    def test_delete_cheques(self, state, store):
        first, _ = state.add_collection(cheque_draft("111111"), today=TODAY)
        second, _ = state.add_collection(cheque_draft("222222"), today=TODAY)
        third, _ = state.add_collection(cheque_draft("333333"), today=TODAY)

        result = state.delete_cheques([first.collection_id, third.collection_id])

        assert result.ok
        assert [c.collection_id for c in state.collections] == [second.collection_id]
        assert len(store.snapshot(COLLECTIONS)) == 1

    def test_delete_refuses_non_cheques(self, state):
        cheque, _ = state.add_collection(cheque_draft(), today=TODAY)
        cash, _ = state.add_collection(CollectionDraft(customer_id="C001", amount="10"), today=TODAY)

        with pytest.raises(ValueError, match="is not a cheque"):
            state.delete_cheques([cheque.collection_id, cash.collection_id])

        assert len(state.collections) == 2


class TestReconciliation:

    def test_confirm_marks_realized(self, state):
        cheque, _ = state.add_collection(cheque_draft(), today=TODAY)

        result = state.reconcile([deposit("S1", "15000", "998877")])
        outcome = state.confirm_reconciliation(result)

        assert outcome.ok
        assert outcome.doc_ids == [cheque.collection_id]
        assert state.find_collection(cheque.collection_id).status == CollectionStatus.REALIZED

    def test_bank_direct_changes_nothing(self, state):
        cheque, _ = state.add_collection(cheque_draft(), today=TODAY)
        before = state.collections

        result = state.reconcile([deposit("S1", "2500", "555001")])
        outcome = state.confirm_reconciliation(result)

        assert len(result.bank_direct) == 1
        assert outcome.doc_ids == []
        assert state.collections == before
        assert state.find_collection(cheque.collection_id).status == CollectionStatus.PENDING

    def test_confirm_twice_is_harmless(self, state):
        state.add_collection(cheque_draft(), today=TODAY)
        result = state.reconcile([deposit("S1", "15000", "998877")])

        state.confirm_reconciliation(result)
        second = state.confirm_reconciliation(result)

        assert second.ok
        assert second.doc_ids == []

    def test_reconcile_does_not_mutate(self, state):
        cheque, _ = state.add_collection(cheque_draft(), today=TODAY)
        state.reconcile([deposit("S1", "15000", "998877")])
        assert state.find_collection(cheque.collection_id).status == CollectionStatus.PENDING

    def test_description_match_toggle(self, state):
        state.add_collection(cheque_draft(), today=TODAY)
        item = StatementItem(
            id="S1", date=datetime(2025, 1, 25), description="CLEARING 998877",
            credit=Decimal("15000"),
        )

        assert len(state.reconcile([item]).matches) == 1
        assert state.reconcile([item], match_description=False).matches == []


class TestMasterData:

    def test_customer_defaults_from_settings(self, state):
        state.save_settings(GlobalSettings(
            default_credit_limit=Decimal("80000"), default_credit_period=60,
        ))
        state.add_customer(Customer("C002", "Smith Supermarket"))

        customer = state.find_customer("C002")
        assert customer.credit_limit == Decimal("80000")
        assert customer.credit_period_days == 60

    def test_duplicate_customer(self, state):
        with pytest.raises(ValueError, match="already exists"):
            state.add_customer(Customer("C001", "Another"))

    @pytest.mark.parametrize("customer,message", [
        (Customer("C009", "  "), "Business name is required"),
        (Customer("C009", "Shop", credit_limit=Decimal("-1")), "Credit limit"),
        (Customer("C009", "Shop", credit_period_days=-3), "Credit period"),
    ])
    def test_customer_checks(self, state, customer, message):
        with pytest.raises(ValueError, match=message):
            state.add_customer(customer)

    def test_edit_customer(self, state):
        state.edit_customer(Customer("C001", "City Grocers Ltd", credit_period_days=14))
        assert state.find_customer("C001").business_name == "City Grocers Ltd"
        assert state.find_customer("C001").credit_period_days == 14

    def test_edit_unknown_customer(self, state):
        with pytest.raises(ValueError, match="Unknown customer"):
            state.edit_customer(Customer("C404", "Ghost"))

    def test_import_customers(self, state, store):
        route, _ = state.add_route("Kandy Line")

        customers, result = state.import_customers(
            "Shop Name,Phone,Route\nHill Stores,0812222222,Kandy Line\n"
        )

        assert result.ok
        assert len(customers) == 1
        imported = state.find_customer(customers[0].customer_id)
        assert imported.route_id == route.route_id
        assert imported.credit_limit == Decimal("50000")
        assert len(store.snapshot(CUSTOMERS)) == 2

    def test_failed_import_saves_nothing(self, state, store):
        with pytest.raises(CustomerImportError):
            state.import_customers("business_name,phone\n")
        assert len(store.snapshot(CUSTOMERS)) == 1

    def test_routes(self, state):
        route, result = state.add_route("  Galle Road ")
        assert result.ok
        assert route.route_id.startswith("R-")
        assert route.route_name == "Galle Road"

        state.edit_route(Route(route.route_id, "Galle Road South"))
        assert state.routes[0].route_name == "Galle Road South"

    def test_route_name_required(self, state):
        with pytest.raises(ValueError, match="Route name is required"):
            state.add_route("   ")


class TestSettings:

    def test_defaults_without_document(self, state):
        assert state.settings == GlobalSettings()

    def test_saved_settings_visible_to_other_sessions(self, state, store):
        state.save_settings(GlobalSettings(currency_code="USD", country="Maldives"))

        other = AppState(store)

        assert other.settings.currency_code == "USD"
        assert other.settings.country == "Maldives"

    @pytest.mark.parametrize("settings", [
        GlobalSettings(default_credit_limit=Decimal("-1")),
        GlobalSettings(default_credit_period=-1),
        GlobalSettings(currency_code=" "),
    ])
    def test_invalid_settings(self, state, settings):
        with pytest.raises(ValueError):
            state.save_settings(settings)


class TestLiveSync:

    def test_other_session_sees_writes(self, state, store):
        other = AppState(store)
        state.add_collection(CollectionDraft(customer_id="C001", amount="10"), today=TODAY)

        assert len(other.collections) == 1
        assert other.find_customer("C001") is not None

    def test_closed_state_stops_syncing(self, state, store):
        other = AppState(store)
        other.close()

        state.add_collection(CollectionDraft(customer_id="C001", amount="10"), today=TODAY)

        assert other.collections == []


class TestFailedWrites:
    """A failed write is reported and the cache falls back to the store."""

    @pytest.fixture
    def failing_state(self):
        store = FailingStore({
            CUSTOMERS: {"C001": Customer("C001", "City Grocers", credit_period_days=30,
                                         credit_limit=Decimal("50000")).to_dict()},
        })
        return AppState(store)

    def test_add_collection_reports_failure(self, failing_state):
        collection, result = failing_state.add_collection(
            CollectionDraft(customer_id="C001", amount="10"), today=TODAY
        )

        assert not result.ok
        assert "network unreachable" in result.error
        assert result.doc_ids == [collection.collection_id]
        assert failing_state.collections == []

    def test_add_route_rolled_back(self, failing_state):
        _, result = failing_state.add_route("Kandy Line")
        assert not result.ok
        assert failing_state.routes == []

    def test_edit_customer_rolled_back(self, failing_state):
        failing_state.edit_customer(Customer("C001", "Renamed"))
        assert failing_state.find_customer("C001").business_name == "City Grocers"


class TestAuditLog:

    def test_actions_recorded(self, state):
        state.add_route("Kandy Line")
        actions = {log.action for log in state.audit_log()}
        assert {"CREATE_CUSTOMER", "CREATE_ROUTE"} <= actions

    def test_user_recorded(self, state):
        assert all(log.user_name == "tester" for log in state.audit_log())

    def test_query(self, state):
        state.add_route("Kandy Line")
        logs = state.audit_log("kandy")
        assert [log.action for log in logs] == ["CREATE_ROUTE"]

    def test_failed_delete_not_audited(self):
        state = AppState(DeleteFailingStore(), user_name="tester")
        state.add_customer(Customer("C001", "City Grocers", credit_period_days=30))
        cheque, _ = state.add_collection(cheque_draft(), today=TODAY)

        result = state.delete_cheques([cheque.collection_id])

        assert not result.ok
        assert state.find_collection(cheque.collection_id) is not None
        assert "DELETE_CHEQUES" not in {log.action for log in state.audit_log()}

    def test_failed_write_not_audited(self):
        state = AppState(FailingStore(), user_name="tester")
        _, result = state.add_route("Kandy Line")

        assert not result.ok
        assert state.audit_log() == []
