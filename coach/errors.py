"""
Error taxonomy for the coach turn pipeline.
Each error carries the HTTP status it maps to and a human-readable detail.
"""
from typing import Optional


class CoachError(Exception):
    status_code = 500
    error = "Internal error"

    def __init__(self, details: Optional[str] = None, error: Optional[str] = None):
        super().__init__(details or error or self.error)
        self.details = details
        if error:
            self.error = error

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.details:
            body["details"] = self.details
        return body


# ============ Input ============

class InvalidRequest(CoachError):
    status_code = 400
    error = "Invalid request"


# ============ Identity ============

class IdentityError(CoachError):
    status_code = 401
    error = "Invalid JWT"


class MissingCredential(IdentityError):
    error = "Missing Authorization header"


class MalformedCredential(IdentityError):
    pass


class ExpiredCredential(IdentityError):
    pass


class MissingSubject(IdentityError):
    pass


class InvalidSignature(IdentityError):
    pass


# ============ Resolution ============

class NoCoachConfigured(CoachError):
    status_code = 400
    error = "No coach configured"


class ConversationNotFound(CoachError):
    status_code = 404
    error = "Conversation not found"


# ============ Store / completion ============

class StoreError(CoachError):
    status_code = 500
    error = "Store operation failed"


class CompletionError(CoachError):
    """Completion service failure. upstream_status is the provider's HTTP code when known."""
    status_code = 500
    error = "Failed to generate coach response"

    def __init__(self, details: Optional[str] = None, upstream_status: Optional[int] = None, model: Optional[str] = None):
        super().__init__(details)
        self.upstream_status = upstream_status
        self.model = model

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.upstream_status is not None:
            body["upstream_status"] = self.upstream_status
        return body


class EmptyCompletion(CompletionError):
    pass
