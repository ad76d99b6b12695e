"""Typed errors raised by the plan catalog and store entitlement services.

Services raise these; only the HTTP layer (server.entitlement_error_handler)
turns them into status codes and response bodies.
"""
from typing import Any, Dict, Optional


class EntitlementError(Exception):
    """Base exception for plan and entitlement operations."""
    status_code = 400
    error_code = "ENTITLEMENT_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(EntitlementError):
    """Malformed plan or store input (negative price, bad limit types, empty key)."""
    status_code = 400
    error_code = "VALIDATION_ERROR"


class NotFoundError(EntitlementError):
    status_code = 404
    error_code = "NOT_FOUND"


class PlanNotFoundError(NotFoundError):
    """A store references a plan key that is not in the catalog."""
    error_code = "PLAN_NOT_FOUND"

    def __init__(self, plan_key: str):
        self.plan_key = plan_key
        super().__init__(f"Plan {plan_key} not found", {"plan_key": plan_key})


class DuplicateKeyError(EntitlementError):
    status_code = 409
    error_code = "DUPLICATE_KEY"

    def __init__(self, plan_key: str):
        self.plan_key = plan_key
        super().__init__(f"Plan with key {plan_key} already exists", {"plan_key": plan_key})


class ProtectedPlanError(EntitlementError):
    status_code = 403
    error_code = "PROTECTED_PLAN"

    def __init__(self, plan_key: str):
        self.plan_key = plan_key
        super().__init__(f"Cannot delete the {plan_key} plan", {"plan_key": plan_key})


class PlanInUseError(EntitlementError):
    """Plan is still assigned to stores and cannot be deleted."""
    status_code = 409
    error_code = "PLAN_IN_USE"

    def __init__(self, plan_key: str, store_count: int):
        self.plan_key = plan_key
        self.store_count = store_count
        super().__init__(
            f"Plan {plan_key} is assigned to {store_count} store(s); reassign them before deleting",
            {"plan_key": plan_key, "store_count": store_count},
        )


class ConflictError(EntitlementError):
    """Document changed since it was read (version mismatch)."""
    status_code = 409
    error_code = "CONFLICT"
