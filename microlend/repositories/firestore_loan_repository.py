"""Firestore implementation of the loan repository."""

import logging
from typing import List

from google.api_core.exceptions import AlreadyExists

from microlend.core.firebase_client_manager import FirebaseClientManager
from microlend.models.enums import LoanStatus
from microlend.models.exceptions import ModelNotFoundError, ModelValidationError, VersionConflictError
from microlend.models.loans import LoanModel
from microlend.models.repositories import LoanRepository


logger = logging.getLogger(__name__)


class FirestoreLoanRepository(LoanRepository):
    """Persist and fetch loan documents from Cloud Firestore."""

    def __init__(self, firebase_manager: FirebaseClientManager, collection_name: str = "loans") -> None:
        """Initialize repository with a shared client manager.

        Args:
            firebase_manager: Shared Firebase client manager instance.
            collection_name: Firestore collection name for loans.
        """
        self._firebase_manager = firebase_manager
        self._collection_name = collection_name
        logger.info("Initialized FirestoreLoanRepository collection=%s", collection_name)

    def create(self, model: LoanModel) -> LoanModel:
        """Create and persist a loan document.

        Returns:
            LoanModel: Persisted loan keyed by ``loan_id``.

        Raises:
            VersionConflictError: If a loan with the same ``loan_id`` exists.
        """
        try:
            stored = self._firebase_manager.create_document(
                collection_name=self._collection_name,
                document_id=model.loan_id,
                payload=model.to_firestore(),
            )
            return LoanModel.from_firestore(stored, doc_id=model.loan_id)
        except AlreadyExists:
            raise VersionConflictError("Loan already exists: {0}".format(model.loan_id))
        except ModelValidationError:
            logger.exception("Loan validation failed while creating loan_id=%s", model.loan_id)
            raise
        except Exception:
            logger.exception("Failed to create loan_id=%s", model.loan_id)
            raise

    def get_by_id(self, model_id: str) -> LoanModel:
        """Fetch loan by identifier.

        Raises:
            ModelNotFoundError: If document does not exist.
        """
        try:
            payload = self._firebase_manager.get_document(self._collection_name, model_id)
            if payload is None or payload.get("is_deleted"):
                raise ModelNotFoundError("Loan not found: {0}".format(model_id))
            return LoanModel.from_firestore(payload, doc_id=model_id)
        except ModelNotFoundError:
            raise
        except Exception:
            logger.exception("Failed to get loan_id=%s", model_id)
            raise

    def update(self, model: LoanModel) -> LoanModel:
        """Replace a loan document inside a transaction when its stored version is ``model.version - 1``.

        Raises:
            ModelNotFoundError: If loan does not exist.
            VersionConflictError: If version is stale.
        """
        ref = self._firebase_manager.document(self._collection_name, model.loan_id)

        def _write(transaction) -> None:
            write_loan_in_transaction(transaction, ref, model)

        try:
            self._firebase_manager.run_transaction(_write)
            return model
        except (ModelNotFoundError, VersionConflictError):
            raise
        except Exception:
            logger.exception("Failed to update loan_id=%s", model.loan_id)
            raise

    def list_by_status(self, status: LoanStatus) -> List[LoanModel]:
        """Return non-deleted loans in ``status``."""
        try:
            payloads = self._firebase_manager.query_documents(
                collection_name=self._collection_name,
                filters=[
                    ("is_deleted", "==", False),
                    ("status", "==", LoanStatus(status).value),
                ],
            )
            return [LoanModel.from_firestore(payload, doc_id=payload.get("id")) for payload in payloads]
        except ModelValidationError:
            logger.exception("Invalid loan payload while listing status=%s", status)
            raise
        except Exception:
            logger.exception("Failed to list loans with status=%s", status)
            raise

    def count_by_number_prefix(self, prefix: str) -> int:
        return self._firebase_manager.count_prefix(self._collection_name, "loan_number", prefix)


def write_loan_in_transaction(transaction, ref, model: LoanModel) -> None:
    """Version-checked loan write shared by loan updates and payment appends."""
    snapshot = ref.get(transaction=transaction)
    if not snapshot.exists:
        raise ModelNotFoundError("Loan not found: {0}".format(model.loan_id))
    stored_version = int((snapshot.to_dict() or {}).get("version", 1))
    if stored_version != model.version - 1:
        raise VersionConflictError(
            "Version conflict for loan_id={0}: stored={1} incoming={2}".format(
                model.loan_id, stored_version, model.version
            )
        )
    transaction.set(ref, model.to_firestore())
