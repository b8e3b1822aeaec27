# tracesdk/core/errors.py
"""
Error taxonomy for the SDK.

Precondition errors are caller-fixable and raised before any network call
where possible. Service errors are surfaced unmodified. Only the
"link config deprecated" signal is ever retried, and only once.
"""

from typing import Any, Dict, List, Optional

ERROR_CONFIG_DEPRECATED = "link config deprecated"
ERROR_CODE_CONFIG_DEPRECATED = "CONFIG_DEPRECATED"


class TraceSdkError(Exception):
    """Base class for every error raised by tracesdk."""


# ── precondition errors ──────────────────────────────────────────────

class PreconditionError(TraceSdkError, ValueError):
    pass


class MissingParentError(PreconditionError):
    def __init__(self, message: str = "Parent link must be provided"):
        super().__init__(message)


class MissingTraceOrParentError(PreconditionError):
    def __init__(self, message: str = "Previous link or trace id must be provided"):
        super().__init__(message)


class MissingActionError(PreconditionError):
    pass


class NoGroupError(PreconditionError):
    def __init__(self, message: str = "No group to select from. At least one group is required to perform an action."):
        super().__init__(message)


class AmbiguousGroupError(PreconditionError):
    def __init__(self, message: str = "Multiple groups to select from, please specify the group label you wish to perform the action with."):
        super().__init__(message)


class PaginationArgumentError(PreconditionError):
    pass


class InvalidEndpointsError(PreconditionError):
    def __init__(self, message: str = "The provided endpoints argument is not valid."):
        super().__init__(message)


class StageNotFoundError(PreconditionError):
    pass


# ── authentication errors ────────────────────────────────────────────

class AuthenticationError(TraceSdkError):
    pass


class CannotResolveKeyError(AuthenticationError):
    def __init__(self, message: str = "Cannot get signing private key"):
        super().__init__(message)


class UnsupportedSecretError(AuthenticationError):
    pass


# ── staleness ────────────────────────────────────────────────────────

class ConfigDeprecatedError(TraceSdkError):
    """The workflow config changed again after a refresh; fatal."""


# ── service errors ───────────────────────────────────────────────────

class ServiceError(TraceSdkError):
    pass


class HttpError(ServiceError):
    def __init__(self, status: int, message: str, body: Any = None):
        super().__init__(message)
        self.status = status
        if isinstance(body, dict) and "errors" in body:
            body = body["errors"]
        self.body = body

    def __str__(self):
        return f"HTTP {self.status}: {self.args[0]}"


class GraphQLError(ServiceError):
    def __init__(self, errors: List[Dict[str, Any]], status: Optional[int] = None, data: Any = None):
        messages = "; ".join(str(e.get("message", e)) for e in errors) or "GraphQL error"
        super().__init__(messages)
        self.errors = errors
        self.status = status
        self.data = data

    def has_message(self, message: str) -> bool:
        return any(e.get("message") == message for e in self.errors)

    def has_code(self, code: str) -> bool:
        return any((e.get("extensions") or {}).get("code") == code for e in self.errors)

    @property
    def is_config_deprecated(self) -> bool:
        return self.has_message(ERROR_CONFIG_DEPRECATED) or self.has_code(ERROR_CODE_CONFIG_DEPRECATED)


class TraceNotFoundError(ServiceError):
    pass


class WorkflowNotFoundError(ServiceError):
    pass


# ── data errors ──────────────────────────────────────────────────────

class FileUploadError(TraceSdkError):
    pass
