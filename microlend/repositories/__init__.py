"""Repository implementations for Firestore and in-memory storage."""

from .memory_store import (
    InMemoryCustomerRepository,
    InMemoryDocumentStore,
    InMemoryLoanRepository,
    InMemoryPaymentRepository,
)

__all__ = [
    "InMemoryCustomerRepository",
    "InMemoryDocumentStore",
    "InMemoryLoanRepository",
    "InMemoryPaymentRepository",
]
