"""
Tracker-wide exception hierarchy.

Services and validators raise exactly these four kinds; nothing else is
allowed to cross the service boundary except opaque storage failures.
Handlers are registered once in ``tracker.blueprints.register_error_handlers``
so every endpoint maps the same kind to the same HTTP status.

Usage:
    from tracker.core.exceptions import ConflictError, NotFoundError, ValidationError

    raise NotFoundError(resource="TaskType", resource_id=42)
    raise ValidationError("required field missing", details={"fields": [...]})
    raise ConflictError("slug taken", resource="Organization", field="slug", value="acme")
"""


class NotFoundError(Exception):
    """Raised when a referenced entity does not exist or is inactive.

    Args:
        resource: Human-readable model/entity name (e.g. "Field", "Workflow").
        resource_id: The PK that was looked up. Included in logs and message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is malformed or semantically illegal.

    Covers missing required fields, wrong value types, illegal workflow
    transitions and cross-project assignments. Never retried: the caller
    must correct the input.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional structured breakdown. Field-value reports put the
                 offending fields under ``details["fields"]`` as a list of
                 ``{"field_id", "field_name", "error"}`` dicts.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def field_ids(self) -> list:
        """IDs of every field named in the report, in report order."""
        return [entry.get("field_id") for entry in self.details.get("fields", [])]


class ConflictError(Exception):
    """Raised when well-formed input violates a uniqueness or cardinality invariant.

    Duplicate slug, user already in an organization, last-owner removal.
    Surfaced verbatim to the end user. Maps to HTTP 409.

    Args:
        message: User-facing explanation.
        resource: Optional model name involved.
        field: Optional unique field that would be duplicated.
        value: Optional conflicting value.
    """

    def __init__(
        self,
        message: str,
        resource: str | None = None,
        field: str | None = None,
        value: str | None = None,
    ) -> None:
        self.message = message
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message)


class AuthorizationError(Exception):
    """Raised by the calling layer when the actor's role is insufficient.

    The validators never raise this; handlers consult ``ROLE_POLICY`` in
    ``tracker.services.permission`` before calling a mutation.

    Maps to HTTP 403.
    """

    def __init__(self, message: str, actor_id: int | None = None, required_role: str | None = None) -> None:
        self.message = message
        self.actor_id = actor_id
        self.required_role = required_role
        super().__init__(message)
