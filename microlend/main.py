"""Application entrypoint for the microlend FastAPI backend."""

from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from microlend.api.lending_router import build_lending_router
from microlend.api.routes import build_router
from microlend.core import AppSettings, get_logger, load_settings, setup_logging
from microlend.models.repositories import CustomerRepository, LoanRepository, PaymentRepository
from microlend.repositories.memory_store import (
    InMemoryCustomerRepository,
    InMemoryDocumentStore,
    InMemoryLoanRepository,
    InMemoryPaymentRepository,
)
from microlend.services.collection_service import CollectionService
from microlend.services.customer_service import CustomerService
from microlend.services.loan_service import LoanService
from microlend.services.payment_service import PaymentService
from microlend.services.report_service import ReportService


logger = get_logger(__name__)


@dataclass(frozen=True)
class Repositories:
    """Repositories sharing one storage backend."""

    loans: LoanRepository
    payments: PaymentRepository
    customers: CustomerRepository


def build_repositories(settings: AppSettings) -> Repositories:
    """Use Firestore when enabled, otherwise a process-local in-memory store."""
    if settings.firebase_enabled:
        from microlend.core.firebase_client_manager import FirebaseClientManager
        from microlend.repositories.firestore_customer_repository import FirestoreCustomerRepository
        from microlend.repositories.firestore_loan_repository import FirestoreLoanRepository
        from microlend.repositories.firestore_payment_repository import FirestorePaymentRepository

        manager = FirebaseClientManager(
            project_id=settings.firebase_project_id,
            credentials_path=settings.firebase_credentials_path,
        )
        return Repositories(
            loans=FirestoreLoanRepository(manager, settings.firebase_loans_collection),
            payments=FirestorePaymentRepository(
                manager,
                settings.firebase_payments_collection,
                loans_collection_name=settings.firebase_loans_collection,
            ),
            customers=FirestoreCustomerRepository(manager, settings.firebase_customers_collection),
        )

    logger.warning("Firebase disabled. Using in-memory storage; data is lost on restart.")
    store = InMemoryDocumentStore()
    return Repositories(
        loans=InMemoryLoanRepository(store, settings.firebase_loans_collection),
        payments=InMemoryPaymentRepository(
            store,
            settings.firebase_payments_collection,
            loans_collection_name=settings.firebase_loans_collection,
        ),
        customers=InMemoryCustomerRepository(store, settings.firebase_customers_collection),
    )


def create_app(settings: Optional[AppSettings] = None, repositories: Optional[Repositories] = None) -> FastAPI:
    """Create and configure a FastAPI application instance."""
    settings = settings or load_settings()
    setup_logging(settings.log_level)
    repositories = repositories or build_repositories(settings)

    loan_service = LoanService(settings, repositories.loans, repositories.payments)
    payment_service = PaymentService(loan_service, repositories.loans, repositories.payments)
    customer_service = CustomerService(repositories.customers)
    collection_service = CollectionService(
        settings,
        repositories.loans,
        repositories.payments,
        customer_lookup=customer_service.lookup,
    )
    report_service = ReportService(repositories.loans, repositories.payments)

    app = FastAPI(title=settings.app_name, debug=settings.debug)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:4200",
            "http://127.0.0.1:4200",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(build_router(settings))
    app.include_router(
        build_lending_router(
            loan_service,
            payment_service,
            collection_service,
            customer_service,
            report_service,
        )
    )

    logger.info("Application initialized: %s", settings.app_name)
    return app


def run() -> None:
    """Start the ASGI server for local development."""
    settings = load_settings()
    try:
        uvicorn.run(
            "microlend.main:create_app",
            factory=True,
            host=settings.host,
            port=settings.port,
            reload=settings.debug,
        )
    except Exception:
        logger.exception("Failed to start uvicorn server.")
        raise


if __name__ == "__main__":
    run()
