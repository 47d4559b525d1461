from typing import Any, Dict, Optional


class ContentError(Exception):
    """Base class for errors raised by the content services."""
    status_code = 400
    code = "CONTENT_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"detail": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class EntryValidationError(ContentError, ValueError):
    """A payload violates a field rule. `field` is the field apiKey, `rule` the rule id."""
    status_code = 422
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, rule: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
        self.rule = rule

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["field"] = self.field
        payload["rule"] = self.rule
        return payload


class NotFoundError(ContentError, LookupError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(ContentError):
    status_code = 409
    code = "CONFLICT"


class ConfigurationError(ContentError):
    """Schema is misconfigured (e.g. a RELATION field without relation config)."""
    status_code = 422
    code = "CONFIGURATION_ERROR"


class SchemaDefinitionError(ContentError, ValueError):
    """A content type or field definition is invalid."""
    status_code = 422
    code = "SCHEMA_DEFINITION_ERROR"
