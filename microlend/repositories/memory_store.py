"""Thread-safe in-memory repositories used when Firestore is disabled and in tests.

Documents are kept in their serialized Firestore shape so the same
``to_firestore``/``from_firestore`` round trip runs in both backends.
"""

from datetime import date
import logging
from threading import RLock
from typing import Any, Dict, List, Optional, Sequence, Tuple

from microlend.models.customers import CustomerModel
from microlend.models.enums import LoanStatus
from microlend.models.exceptions import ModelNotFoundError, VersionConflictError
from microlend.models.loans import LoanModel
from microlend.models.payments import PaymentModel
from microlend.models.repositories import CustomerRepository, LoanRepository, PaymentRepository


logger = logging.getLogger(__name__)

FilterTuple = Tuple[str, str, Any]


class InMemoryDocumentStore:
    """Collections of documents keyed by id, guarded by one re-entrant lock."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    @property
    def lock(self) -> RLock:
        return self._lock

    def set_document(self, collection_name: str, document_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            bucket = self._collections.setdefault(collection_name, {})
            bucket[document_id] = dict(payload)
            return dict(bucket[document_id])

    def get_document(self, collection_name: str, document_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            payload = self._collections.get(collection_name, {}).get(document_id)
            if payload is None:
                return None
            result = dict(payload)
            result.setdefault("id", document_id)
            return result

    def query_documents(
        self,
        collection_name: str,
        filters: Optional[Sequence[FilterTuple]] = None,
    ) -> List[Dict[str, Any]]:
        """Return copies of documents matching every filter."""
        with self._lock:
            records: List[Dict[str, Any]] = []
            for document_id, payload in self._collections.get(collection_name, {}).items():
                row = dict(payload)
                row.setdefault("id", document_id)
                if _matches_filters(row, filters or []):
                    records.append(row)
            return records


def _matches_filters(payload: Dict[str, Any], filters: Sequence[FilterTuple]) -> bool:
    """Evaluate Firestore-like filters against a stored document."""
    for field_name, operator, expected_value in filters:
        actual_value = payload.get(field_name)
        if operator == "==":
            if actual_value != expected_value:
                return False
        elif operator == "!=":
            if actual_value == expected_value:
                return False
        elif operator == ">=":
            if actual_value is None or actual_value < expected_value:
                return False
        elif operator == "<":
            if actual_value is None or actual_value >= expected_value:
                return False
        elif operator == "in":
            if actual_value not in expected_value:
                return False
        else:
            raise ValueError("Unsupported filter operator: {0}".format(operator))
    return True


def _check_loan_version(store: InMemoryDocumentStore, collection_name: str, model: LoanModel) -> None:
    current = store.get_document(collection_name, model.loan_id)
    if current is None:
        raise ModelNotFoundError("Loan not found: {0}".format(model.loan_id))
    stored_version = int(current.get("version", 1))
    if stored_version != model.version - 1:
        raise VersionConflictError(
            "Version conflict for loan_id={0}: stored={1} incoming={2}".format(
                model.loan_id, stored_version, model.version
            )
        )


class InMemoryLoanRepository(LoanRepository):
    """Loan repository over an ``InMemoryDocumentStore``."""

    def __init__(self, store: Optional[InMemoryDocumentStore] = None, collection_name: str = "loans") -> None:
        self._store = store or InMemoryDocumentStore()
        self._collection_name = collection_name

    def create(self, model: LoanModel) -> LoanModel:
        with self._store.lock:
            if self._store.get_document(self._collection_name, model.loan_id) is not None:
                raise VersionConflictError("Loan already exists: {0}".format(model.loan_id))
            stored = self._store.set_document(self._collection_name, model.loan_id, model.to_firestore())
        return LoanModel.from_firestore(stored, doc_id=model.loan_id)

    def get_by_id(self, model_id: str) -> LoanModel:
        payload = self._store.get_document(self._collection_name, model_id)
        if payload is None or payload.get("is_deleted"):
            raise ModelNotFoundError("Loan not found: {0}".format(model_id))
        return LoanModel.from_firestore(payload, doc_id=model_id)

    def update(self, model: LoanModel) -> LoanModel:
        with self._store.lock:
            _check_loan_version(self._store, self._collection_name, model)
            stored = self._store.set_document(self._collection_name, model.loan_id, model.to_firestore())
        return LoanModel.from_firestore(stored, doc_id=model.loan_id)

    def list_by_status(self, status: LoanStatus) -> List[LoanModel]:
        payloads = self._store.query_documents(
            self._collection_name,
            filters=[("is_deleted", "==", False), ("status", "==", LoanStatus(status).value)],
        )
        return [LoanModel.from_firestore(payload, doc_id=payload.get("id")) for payload in payloads]

    def count_by_number_prefix(self, prefix: str) -> int:
        return len(
            self._store.query_documents(
                self._collection_name,
                filters=[("loan_number", ">=", prefix), ("loan_number", "<", prefix + "\uf8ff")],
            )
        )


class InMemoryPaymentRepository(PaymentRepository):
    """Payment repository sharing a store with the loan repository so appends stay atomic."""

    def __init__(
        self,
        store: Optional[InMemoryDocumentStore] = None,
        collection_name: str = "payments",
        loans_collection_name: str = "loans",
    ) -> None:
        self._store = store or InMemoryDocumentStore()
        self._collection_name = collection_name
        self._loans_collection_name = loans_collection_name

    def get_by_id(self, model_id: str) -> PaymentModel:
        payload = self._store.get_document(self._collection_name, model_id)
        if payload is None:
            raise ModelNotFoundError("Payment not found: {0}".format(model_id))
        return PaymentModel.from_firestore(payload, doc_id=model_id)

    def list_for_loan(self, loan_id: str) -> List[PaymentModel]:
        payloads = self._store.query_documents(self._collection_name, filters=[("loan_id", "==", loan_id)])
        payments = [PaymentModel.from_firestore(payload, doc_id=payload.get("id")) for payload in payloads]
        payments.sort(key=lambda item: (item.payment_date, item.created_at))
        return payments

    def list_by_collector(self, collected_by: str, on: Optional[date] = None) -> List[PaymentModel]:
        filters: List[FilterTuple] = [("collected_by", "==", collected_by)]
        if on is not None:
            filters.append(("payment_date", "==", on.isoformat()))
        payloads = self._store.query_documents(self._collection_name, filters=filters)
        return [PaymentModel.from_firestore(payload, doc_id=payload.get("id")) for payload in payloads]

    def count_by_receipt_prefix(self, prefix: str) -> int:
        return len(
            self._store.query_documents(
                self._collection_name,
                filters=[("receipt_number", ">=", prefix), ("receipt_number", "<", prefix + "\uf8ff")],
            )
        )

    def append(self, payment: PaymentModel, loan: LoanModel) -> PaymentModel:
        with self._store.lock:
            _check_loan_version(self._store, self._loans_collection_name, loan)
            if self._store.get_document(self._collection_name, payment.payment_id) is not None:
                raise VersionConflictError("Payment already exists: {0}".format(payment.payment_id))
            self._store.set_document(self._loans_collection_name, loan.loan_id, loan.to_firestore())
            self._store.set_document(self._collection_name, payment.payment_id, payment.to_firestore())
        logger.info(
            "Payment stored payment_id=%s loan_id=%s receipt=%s",
            payment.payment_id,
            payment.loan_id,
            payment.receipt_number,
        )
        return payment


class InMemoryCustomerRepository(CustomerRepository):
    """Customer repository over an ``InMemoryDocumentStore``."""

    def __init__(self, store: Optional[InMemoryDocumentStore] = None, collection_name: str = "customers") -> None:
        self._store = store or InMemoryDocumentStore()
        self._collection_name = collection_name

    def create(self, model: CustomerModel) -> CustomerModel:
        with self._store.lock:
            if self._store.get_document(self._collection_name, model.customer_id) is not None:
                raise VersionConflictError("Customer already exists: {0}".format(model.customer_id))
            stored = self._store.set_document(self._collection_name, model.customer_id, model.to_firestore())
        return CustomerModel.from_firestore(stored, doc_id=model.customer_id)

    def get_by_id(self, model_id: str) -> CustomerModel:
        payload = self._store.get_document(self._collection_name, model_id)
        if payload is None or payload.get("is_deleted"):
            raise ModelNotFoundError("Customer not found: {0}".format(model_id))
        return CustomerModel.from_firestore(payload, doc_id=model_id)

    def find_by_nic(self, nic: str) -> Optional[CustomerModel]:
        payloads = self._store.query_documents(
            self._collection_name,
            filters=[("is_deleted", "==", False), ("nic", "==", nic)],
        )
        if not payloads:
            return None
        return CustomerModel.from_firestore(payloads[0], doc_id=payloads[0].get("id"))
