"""Domain error taxonomy for the leasing workflow.

Every error is terminal for the request that raised it. Routes never catch
these individually; ``app.main`` maps them to JSON responses through
``status_code`` and ``to_detail()``.
"""

from typing import Optional


class LeaseFlowError(Exception):
    """Base class for all leasing workflow errors."""

    status_code: int = 400
    error_code: str = "lease_flow_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_detail(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class ValidationError(LeaseFlowError):
    """Malformed input: missing required fields, unknown property, bad terms."""

    status_code = 422
    error_code = "validation_error"

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        self.errors = list(errors or [message])
        super().__init__(message)

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["errors"] = self.errors
        return detail


class NotFound(LeaseFlowError):
    """Referenced application, lease, obligation or user does not exist."""

    status_code = 404
    error_code = "not_found"


class Forbidden(LeaseFlowError):
    """Caller is not the party allowed to perform this action."""

    status_code = 403
    error_code = "forbidden"


class Conflict(LeaseFlowError):
    """Action conflicts with already-recorded state."""

    status_code = 409
    error_code = "conflict"


class PreconditionFailed(LeaseFlowError):
    """Activation attempted while signatures or payments are outstanding."""

    status_code = 412
    error_code = "precondition_failed"

    def __init__(self, message: str, outstanding: list[str]):
        self.outstanding = list(outstanding)
        super().__init__(message)

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["outstanding"] = self.outstanding
        return detail


class UpstreamFailure(LeaseFlowError):
    """The payment/signing collaborator reported a failure."""

    status_code = 502
    error_code = "upstream_failure"

    def __init__(self, message: str, retry_guidance: str):
        self.retry_guidance = retry_guidance
        super().__init__(message)

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["retry_guidance"] = self.retry_guidance
        return detail
