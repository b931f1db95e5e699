"""Firestore implementation of the customer repository."""

import logging
from typing import Optional

from google.api_core.exceptions import AlreadyExists

from microlend.core.firebase_client_manager import FirebaseClientManager
from microlend.models.customers import CustomerModel
from microlend.models.exceptions import ModelNotFoundError, ModelValidationError, VersionConflictError
from microlend.models.repositories import CustomerRepository


logger = logging.getLogger(__name__)


class FirestoreCustomerRepository(CustomerRepository):
    """Persist and fetch borrower documents from Cloud Firestore."""

    def __init__(self, firebase_manager: FirebaseClientManager, collection_name: str = "customers") -> None:
        self._firebase_manager = firebase_manager
        self._collection_name = collection_name
        logger.info("Initialized FirestoreCustomerRepository collection=%s", collection_name)

    def create(self, model: CustomerModel) -> CustomerModel:
        """Create a customer document keyed by ``customer_id``.

        Raises:
            VersionConflictError: If a customer with the same id exists.
        """
        try:
            stored = self._firebase_manager.create_document(
                collection_name=self._collection_name,
                document_id=model.customer_id,
                payload=model.to_firestore(),
            )
            return CustomerModel.from_firestore(stored, doc_id=model.customer_id)
        except AlreadyExists:
            raise VersionConflictError("Customer already exists: {0}".format(model.customer_id))
        except Exception:
            logger.exception("Failed to create customer_id=%s", model.customer_id)
            raise

    def get_by_id(self, model_id: str) -> CustomerModel:
        try:
            payload = self._firebase_manager.get_document(self._collection_name, model_id)
            if payload is None or payload.get("is_deleted"):
                raise ModelNotFoundError("Customer not found: {0}".format(model_id))
            return CustomerModel.from_firestore(payload, doc_id=model_id)
        except ModelNotFoundError:
            raise
        except Exception:
            logger.exception("Failed to get customer_id=%s", model_id)
            raise

    def find_by_nic(self, nic: str) -> Optional[CustomerModel]:
        try:
            payloads = self._firebase_manager.query_documents(
                collection_name=self._collection_name,
                filters=[("is_deleted", "==", False), ("nic", "==", nic)],
            )
            if not payloads:
                return None
            return CustomerModel.from_firestore(payloads[0], doc_id=payloads[0].get("id"))
        except ModelValidationError:
            logger.exception("Invalid customer payload for nic lookup")
            raise
        except Exception:
            logger.exception("Failed NIC lookup in collection=%s", self._collection_name)
            raise
