"""Shared base models and common type aliases."""

from datetime import datetime, timezone
from decimal import Decimal
import logging
from typing import Any, Dict, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ModelValidationError


logger = logging.getLogger(__name__)

Money = Decimal
Rate = Decimal

ModelT = TypeVar("ModelT", bound="BaseDocumentModel")


def utc_now() -> datetime:
    """Return current UTC timestamp."""
    return datetime.now(timezone.utc)


class BaseDocumentModel(BaseModel):
    """Base document schema for Firestore-backed domain models."""

    id: Optional[str] = Field(default=None, description="Firestore document ID.")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=1, ge=1)
    is_deleted: bool = Field(default=False)

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        use_enum_values=False,
    )

    def to_firestore(self) -> Dict[str, Any]:
        """Serialize model into a Firestore-ready document dictionary.

        Money is stored as decimal strings and dates as ISO strings so no
        precision is lost to floating point.

        Raises:
            ModelValidationError: If serialization fails.
        """
        try:
            return self.model_dump(mode="json", exclude_none=True)
        except Exception as exc:
            logger.exception("Failed to serialize %s with id=%s", self.__class__.__name__, self.id)
            raise ModelValidationError(str(exc))

    @classmethod
    def from_firestore(cls, data: Dict[str, Any], doc_id: Optional[str] = None):
        """Create model instance from Firestore document data.

        Raises:
            ModelValidationError: If payload parsing fails.
        """
        try:
            payload = dict(data)
            if doc_id is not None and "id" not in payload:
                payload["id"] = doc_id
            return cls(**payload)
        except Exception as exc:
            logger.exception("Failed to parse Firestore payload for %s doc_id=%s", cls.__name__, doc_id)
            raise ModelValidationError(str(exc))

    def evolve(self: ModelT, **changes: Any) -> ModelT:
        """Return a validated copy with ``changes`` applied and the version bumped by one."""
        payload = self.model_dump()
        payload.update(changes)
        payload["version"] = self.version + 1
        payload["updated_at"] = utc_now()
        try:
            return self.__class__(**payload)
        except Exception as exc:
            logger.exception("Invalid update for %s id=%s changes=%s", self.__class__.__name__, self.id, changes)
            raise ModelValidationError(str(exc))
