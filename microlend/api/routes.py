"""HTTP route declarations for service status and settings."""

from typing import Dict, Union

from fastapi import APIRouter

from microlend.core.config import AppSettings


def build_router(settings: AppSettings) -> APIRouter:
    """Build and return status routes with injected settings."""
    router = APIRouter()

    @router.get("/", summary="Root endpoint")
    def read_root() -> Dict[str, str]:
        """Return a basic message confirming service availability."""
        return {"message": "{0} is running".format(settings.app_name)}

    @router.get("/health", summary="Health check")
    def health_check() -> Dict[str, str]:
        """Return service health status for probes and monitors."""
        return {"status": "ok"}

    @router.get("/settings", summary="Settings snapshot")
    def get_settings_snapshot() -> Dict[str, Union[str, bool, int]]:
        """Expose non-sensitive lending settings useful for local verification."""
        return {
            "app_name": settings.app_name,
            "debug": settings.debug,
            "currency": settings.currency,
            "penalty_rate": str(settings.penalty_rate),
            "grace_period_days": settings.grace_period_days,
            "min_loan_amount": str(settings.min_loan_amount),
            "max_loan_amount": str(settings.max_loan_amount),
            "max_duration_weeks": settings.max_duration_weeks,
            "storage": "firestore" if settings.firebase_enabled else "memory",
        }

    return router
