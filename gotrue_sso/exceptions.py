"""Exceptions raised by the admin client and the reconciler."""

from typing import Any, List, Optional


class AdminClientError(Exception):
    """Base exception for all admin client failures."""
    pass


class AdminAPIError(AdminClientError):
    """The admin API answered with an unexpected HTTP status.

    Attributes:
        op:        What was being attempted (e.g. ``creating new identity provider``).
        expected:  The status code the operation succeeds with.
        status:    The status code actually received.
        code:      Numeric ``code`` from the error body (defaults to ``status``).
        message:   ``msg`` from the error body, or the raw body text.
        error_id:  ``error_id`` from the error body, if any.
    """

    def __init__(
        self,
        op: str,
        expected: int,
        status: int,
        message: str = "",
        code: Optional[int] = None,
        error_id: str = "",
    ):
        self.op = op
        self.expected = expected
        self.status = status
        self.code = status if code is None else code
        self.message = message
        self.error_id = error_id
        super().__init__(
            f"adminclient: expected HTTP {expected} when {op}, got HTTP {status}: {message}"
        )

    @property
    def not_found(self) -> bool:
        return self.status == 404


class ResponseDecodeError(AdminClientError, ValueError):
    """A successful response body was not the JSON shape we expected."""
    pass


class AttributeMappingError(ValueError):
    """An attribute mapping document is not valid JSON or has the wrong shape."""
    pass


class ResourceValidationError(Exception):
    """Local validation failed; no request was sent.

    Carries the diagnostics that caused the failure so a host can attach them
    to the offending fields.
    """

    def __init__(self, diagnostics: List[Any]):
        self.diagnostics = list(diagnostics)
        summaries = "; ".join(d.summary for d in self.diagnostics) or "validation failed"
        super().__init__(summaries)
