"""Domain error taxonomy.

Services raise these; ``membership_service.api.errors`` renders them as
``{"error": message, "code": code}`` with the class's HTTP status.
Messages are user-facing and must not contain storage keys.
"""

from __future__ import annotations


class MembershipServiceError(Exception):
    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnauthorizedError(MembershipServiceError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(MembershipServiceError):
    status_code = 403
    code = "forbidden"


class NotFoundError(MembershipServiceError):
    status_code = 404
    code = "not_found"


class InviteExpiredError(MembershipServiceError):
    code = "expired"


class InviteExhaustedError(MembershipServiceError):
    code = "exhausted"


class OrganizationInactiveError(MembershipServiceError):
    code = "inactive"


class SubscriptionRequiredError(MembershipServiceError):
    code = "subscription_required"


class SubscriptionInactiveError(MembershipServiceError):
    code = "subscription_inactive"


class LimitReachedError(MembershipServiceError):
    code = "limit_reached"


class InvalidOperationError(MembershipServiceError):
    code = "invalid_operation"


class ConflictError(MembershipServiceError):
    """A store precondition failed; the caller may retry."""

    status_code = 409
    code = "conflict"
