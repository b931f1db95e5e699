"""Firestore implementation of the append-only payment repository."""

from datetime import date
import logging
from typing import List, Optional

from microlend.core.firebase_client_manager import FirebaseClientManager
from microlend.models.exceptions import ModelNotFoundError, ModelValidationError, VersionConflictError
from microlend.models.loans import LoanModel
from microlend.models.payments import PaymentModel
from microlend.models.repositories import PaymentRepository

from .firestore_loan_repository import write_loan_in_transaction


logger = logging.getLogger(__name__)


class FirestorePaymentRepository(PaymentRepository):
    """Persist payment documents and the loan state they produce in one transaction."""

    def __init__(
        self,
        firebase_manager: FirebaseClientManager,
        collection_name: str = "payments",
        loans_collection_name: str = "loans",
    ) -> None:
        """Initialize repository with a shared client manager.

        Args:
            firebase_manager: Shared Firebase client manager instance.
            collection_name: Firestore collection name for payments.
            loans_collection_name: Collection holding the loans payments update.
        """
        self._firebase_manager = firebase_manager
        self._collection_name = collection_name
        self._loans_collection_name = loans_collection_name
        logger.info("Initialized FirestorePaymentRepository collection=%s", collection_name)

    def get_by_id(self, model_id: str) -> PaymentModel:
        """Fetch payment by identifier.

        Raises:
            ModelNotFoundError: If document does not exist.
        """
        try:
            payload = self._firebase_manager.get_document(self._collection_name, model_id)
            if payload is None:
                raise ModelNotFoundError("Payment not found: {0}".format(model_id))
            return PaymentModel.from_firestore(payload, doc_id=model_id)
        except ModelNotFoundError:
            raise
        except Exception:
            logger.exception("Failed to get payment_id=%s", model_id)
            raise

    def list_for_loan(self, loan_id: str) -> List[PaymentModel]:
        """Return the loan's payment history in payment-date order."""
        try:
            payloads = self._firebase_manager.query_documents(
                collection_name=self._collection_name,
                filters=[("loan_id", "==", loan_id)],
            )
            payments = [PaymentModel.from_firestore(payload, doc_id=payload.get("id")) for payload in payloads]
            payments.sort(key=lambda item: (item.payment_date, item.created_at))
            return payments
        except ModelValidationError:
            logger.exception("Invalid payment payload for loan_id=%s", loan_id)
            raise
        except Exception:
            logger.exception("Failed to list payments for loan_id=%s", loan_id)
            raise

    def list_by_collector(self, collected_by: str, on: Optional[date] = None) -> List[PaymentModel]:
        """Return payments collected by one agent, optionally restricted to one day."""
        filters = [("collected_by", "==", collected_by)]
        if on is not None:
            filters.append(("payment_date", "==", on.isoformat()))
        try:
            payloads = self._firebase_manager.query_documents(self._collection_name, filters=filters)
            return [PaymentModel.from_firestore(payload, doc_id=payload.get("id")) for payload in payloads]
        except Exception:
            logger.exception("Failed to list payments for collected_by=%s", collected_by)
            raise

    def count_by_receipt_prefix(self, prefix: str) -> int:
        return self._firebase_manager.count_prefix(self._collection_name, "receipt_number", prefix)

    def append(self, payment: PaymentModel, loan: LoanModel) -> PaymentModel:
        """Write ``payment`` and ``loan`` atomically.

        Raises:
            ModelNotFoundError: If the loan does not exist.
            VersionConflictError: If the loan changed since it was read.
        """
        loan_ref = self._firebase_manager.document(self._loans_collection_name, loan.loan_id)
        payment_ref = self._firebase_manager.document(self._collection_name, payment.payment_id)

        def _write(transaction) -> None:
            write_loan_in_transaction(transaction, loan_ref, loan)
            transaction.set(payment_ref, payment.to_firestore())

        try:
            self._firebase_manager.run_transaction(_write)
            logger.info(
                "Payment stored payment_id=%s loan_id=%s receipt=%s",
                payment.payment_id,
                payment.loan_id,
                payment.receipt_number,
            )
            return payment
        except (ModelNotFoundError, VersionConflictError):
            raise
        except Exception:
            logger.exception("Failed to append payment_id=%s loan_id=%s", payment.payment_id, loan.loan_id)
            raise
