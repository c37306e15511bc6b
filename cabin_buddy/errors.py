"""
Domain error taxonomy.

Every error subclasses FastAPI's HTTPException so services can raise them the
same way they raise HTTPException, and the API layer renders them uniformly as
``{"success": false, "error": ..., "code": ...}``.
"""

from fastapi import HTTPException


class CabinBuddyError(HTTPException):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(status_code=status_code or self.status_code, detail=message)
        self.message = message

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class ValidationError(CabinBuddyError):
    """Bad date, amount or missing field. Raised before any write."""

    status_code = 400
    code = "validation_error"


class AuthorizationError(CabinBuddyError):
    """Caller is not a member of the organization, or lacks the required role."""

    status_code = 403
    code = "authorization_error"


class NotFoundError(CabinBuddyError):
    status_code = 404
    code = "not_found"


class RestoreConflict(CabinBuddyError):
    """Destructive restore attempted without confirmation or across organizations."""

    status_code = 409
    code = "restore_conflict"


class BillingConfigError(CabinBuddyError):
    status_code = 400
    code = "billing_config_error"


class OrganizationContextError(CabinBuddyError):
    """Data access attempted without an organization context."""

    status_code = 500
    code = "organization_context_error"


class PartialFailure(CabinBuddyError):
    """
    A multi-row write did not complete.

    ``rolled_back`` tells the caller whether nothing happened (the transaction
    was rolled back) or the database may need cleanup.
    """

    status_code = 500
    code = "partial_failure"

    def __init__(self, message: str, rolled_back: bool = True):
        super().__init__(message)
        self.rolled_back = rolled_back

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["rolledBack"] = self.rolled_back
        if self.rolled_back:
            data["error"] = f"{self.message}. No changes were saved."
        else:
            data["error"] = f"{self.message}. Some records may need cleanup."
        return data


class NotificationFailure(CabinBuddyError):
    """Best-effort notification failed. Recorded as a warning, never fails the parent operation."""

    status_code = 502
    code = "notification_failure"
