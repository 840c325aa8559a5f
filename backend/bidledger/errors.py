from __future__ import annotations


class LedgerError(Exception):
    """
    Base for errors surfaced to callers.
    `code` is the stable machine-readable reason, `message` the short user-facing text.
    """
    code = "internal"
    status_code = 500
    default_message = "Unexpected error"

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)


class Unauthenticated(LedgerError):
    code = "unauthenticated"
    status_code = 401
    default_message = "Login required"


class PermissionDenied(LedgerError):
    code = "permission-denied"
    status_code = 403
    default_message = "Not allowed for this partner"


class InvalidArgument(LedgerError):
    code = "invalid-argument"
    status_code = 400
    default_message = "Invalid request"


class NotFound(LedgerError):
    code = "not-found"
    status_code = 404
    default_message = "Partner not found"


class FailedPrecondition(LedgerError):
    code = "failed-precondition"
    status_code = 409
    default_message = "Request cannot be processed right now"


class InsufficientFunds(FailedPrecondition):
    code = "insufficient-balance"
    status_code = 402
    default_message = "Insufficient points"


class BiddingClosed(FailedPrecondition):
    code = "bidding-closed"
    default_message = "Bidding is closed for this week"


class SubscriptionNotActive(FailedPrecondition):
    code = "subscription-not-active"
    default_message = "No active subscription"
