"""
Platform-wide exception hierarchy.

Every service and core component raises these types; a single error handler
registered in the app factory (see joinery.utils.errors) renders them as

    {"data": null, "error": {"message": ..., "code": ..., "details": ...}}

with the HTTP status carried by the exception class.

Usage:
    from joinery.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("name is required", code=E.VALIDATION_REQUIRED)
"""

from joinery.utils.errors import E


class ApiError(Exception):
    """Base class for errors that carry a stable machine-readable code.

    Args:
        message: Human-readable explanation for developers / UI.
        details: Optional structured payload. Never rendered for 401/403.
    """

    code = E.INTERNAL
    http_status = 500

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def exposes_details(self) -> bool:
        return self.http_status not in (401, 403)

    def to_dict(self) -> dict:
        body = {"message": self.message, "code": self.code}
        if self.details and self.exposes_details:
            body["details"] = self.details
        return body


class UnauthenticatedError(ApiError):
    """Missing, malformed, expired or unverifiable bearer credential."""

    code = E.UNAUTHENTICATED
    http_status = 401

    def __init__(self, message: str = "Authentication required", details: dict | None = None) -> None:
        super().__init__(message, details)


class ForbiddenError(ApiError):
    """Valid principal, disallowed table / bucket / RPC / role / path."""

    code = E.FORBIDDEN
    http_status = 403

    def __init__(self, message: str = "Forbidden", details: dict | None = None) -> None:
        super().__init__(message, details)


class NotFoundError(ApiError):
    """Raised when a requested resource does not exist within the given scope.

    Security note: Used for BOTH genuinely missing records AND cross-tenant
    access attempts. The rendered message and code are identical in both
    cases; resource_id and tenant_id are kept for logging only.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Client").
        resource_id: The id that was looked up. Logged, not rendered.
        tenant_id: The scope that was enforced. Logged, not rendered.
    """

    code = E.NOT_FOUND
    http_status = 404

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        super().__init__(f"{resource} not found")


class ConflictError(ApiError):
    """The operation is not valid for the current state of the target."""

    code = E.CONFLICT_STATE
    http_status = 409


class DuplicateKeyError(ConflictError):
    """A uniqueness constraint rejected the write.

    Args:
        resource: Table or model name.
        field: The unique column(s), when known.
        value: The conflicting value, when known.
    """

    code = E.CONFLICT_DUPLICATE

    def __init__(self, resource: str, field: str | None = None, value=None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        if field and value is not None:
            msg = f"{resource} with {field}={value!r} already exists"
        elif field:
            msg = f"{resource} already has a row with the same {field}"
        else:
            msg = f"{resource} violates a uniqueness constraint"
        super().__init__(msg, details={"field": field} if field else None)

    @property
    def columns(self) -> list[str]:
        return self.field.split(",") if self.field else []


class AmbiguousResultError(ConflictError):
    """A single-row operation matched more than one row."""

    code = E.CONFLICT_AMBIGUOUS

    def __init__(self, resource: str, matched: int) -> None:
        self.resource = resource
        self.matched = matched
        super().__init__(
            f"Expected a single {resource} row, matched {matched}",
            details={"matched": matched},
        )


class ValidationError(ApiError):
    """Input is malformed or violates a rule; rejected before any store call.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown.
        code: One of E.VALIDATION_INVALID / _REQUIRED / _CONSTRAINT.
    """

    code = E.VALIDATION_INVALID
    http_status = 400

    def __init__(self, message: str, details: dict | None = None, code: str | None = None) -> None:
        super().__init__(message, details)
        if code:
            self.code = code


class ExhaustedRetriesError(ApiError):
    """The sequence allocator kept colliding and spent its retry budget."""

    code = E.EXHAUSTED_RETRIES
    http_status = 409

    def __init__(self, kind: str, attempts: int) -> None:
        self.kind = kind
        self.attempts = attempts
        super().__init__(
            f"Could not allocate a unique {kind} number after {attempts} attempts",
            details={"sequence_kind": kind, "attempts": attempts},
        )


class UpstreamError(ApiError):
    """Backing store or blob store failure not otherwise classified."""

    code = E.UPSTREAM
    http_status = 502
