"""Reusable Firebase Firestore client manager for document, query and transaction operations."""

from datetime import datetime, timezone
import logging
import os
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from google.cloud import firestore
from google.oauth2 import service_account


logger = logging.getLogger(__name__)

FilterTuple = Tuple[str, str, Any]
T = TypeVar("T")

# Highest code point in the BMP private use area; closes a prefix range query.
PREFIX_RANGE_END = "\uf8ff"


def _utc_now() -> str:
    """Return current UTC timestamp as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def _snapshot_payload(snapshot: Any) -> Dict[str, Any]:
    payload = snapshot.to_dict() or {}
    payload["id"] = snapshot.id
    return payload


class FirebaseClientManager:
    """Owns the Firestore client and the create, read, range-count and transaction calls repositories use."""

    def __init__(self, project_id: Optional[str] = None, credentials_path: Optional[str] = None) -> None:
        """Initialize Firestore client.

        Args:
            project_id: Optional Google Cloud project id override.
            credentials_path: Optional path to Firebase service account json file.
        """
        try:
            if credentials_path:
                os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = credentials_path
                credentials = service_account.Credentials.from_service_account_file(credentials_path)
                self._client = firestore.Client(project=project_id, credentials=credentials)
            else:
                self._client = firestore.Client(project=project_id) if project_id else firestore.Client()
            logger.info("FirebaseClientManager initialized for project_id=%s", project_id)
        except Exception:
            logger.exception("Failed to initialize Firebase Firestore client.")
            raise

    def document(self, collection_name: str, document_id: str) -> Any:
        """Return a document reference, e.g. for reads and writes inside a transaction."""
        return self._client.collection(collection_name).document(document_id)

    def create_document(self, collection_name: str, document_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a document that must not exist yet.

        Raises:
            google.api_core.exceptions.AlreadyExists: If ``document_id`` is taken.
        """
        ref = self.document(collection_name, document_id)
        document = dict(payload)
        document.setdefault("created_at", _utc_now())
        document.setdefault("updated_at", document["created_at"])
        try:
            ref.create(document)
            return _snapshot_payload(ref.get())
        except Exception:
            logger.exception("Failed to create document collection=%s document_id=%s", collection_name, document_id)
            raise

    def get_document(self, collection_name: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Get one document by id, or None when it does not exist."""
        try:
            snapshot = self.document(collection_name, document_id).get()
        except Exception:
            logger.exception("Failed to get document collection=%s document_id=%s", collection_name, document_id)
            raise
        return _snapshot_payload(snapshot) if snapshot.exists else None

    def query_documents(
        self,
        collection_name: str,
        filters: Optional[Sequence[FilterTuple]] = None,
        order_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Run a filtered query and return document payloads.

        Args:
            collection_name: Target collection.
            filters: Sequence of tuples `(field, op, value)`.
            order_by: Optional field name for sorting.
        """
        query = self._client.collection(collection_name)
        for field_name, operator, value in filters or []:
            query = query.where(field_name, operator, value)
        if order_by:
            query = query.order_by(order_by)
        try:
            return [_snapshot_payload(snapshot) for snapshot in query.stream()]
        except Exception:
            logger.exception("Failed query for collection=%s filters=%s", collection_name, filters)
            raise

    def count_prefix(self, collection_name: str, field_name: str, prefix: str) -> int:
        """Count documents whose string ``field_name`` starts with ``prefix``."""
        documents = self.query_documents(
            collection_name,
            filters=[(field_name, ">=", prefix), (field_name, "<", prefix + PREFIX_RANGE_END)],
        )
        return len(documents)

    def run_transaction(self, callback: Callable[[Any], T]) -> T:
        """Run ``callback(transaction)`` inside a retried Firestore transaction.

        Reads in the callback must go through ``ref.get(transaction=txn)`` and
        writes through ``txn.set``; exceptions raised by the callback abort it.
        """
        transaction = self._client.transaction()

        @firestore.transactional
        def _apply(txn: Any) -> T:
            return callback(txn)

        try:
            return _apply(transaction)
        except Exception:
            logger.exception("Firestore transaction aborted.")
            raise
