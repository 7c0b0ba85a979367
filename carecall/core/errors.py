# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Exception types raised by the I/O side of the engine.

Pure components (schedule resolver, prompt builder) never raise; they
return ``ValidationFailure`` values. The service layer turns those into
``InputRejected`` so controllers can map them onto HTTP 400.
"""

from enum import Enum
from typing import Optional

from carecall.models.domain import ValidationFailure


class ProviderErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    UNAVAILABLE = "unavailable"
    REJECTED = "rejected"


class ProviderError(Exception):
    """The voice-AI provider could not complete a request."""

    def __init__(
        self,
        kind: ProviderErrorKind,
        detail: str,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(f"{kind.value}: {detail}")
        self.kind = kind
        self.detail = detail
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Only transport/5xx failures may be retried, and only per call attempt."""
        return self.kind is ProviderErrorKind.UNAVAILABLE


class SessionNotActive(RuntimeError):
    """A turn was sent on a session that is not in the ACTIVE state."""


class InvalidSessionTransition(RuntimeError):
    """A session state change outside CREATED -> ACTIVE -> ENDED / FAILED."""


class InputRejected(ValueError):
    """Caller input failed validation; carries the structured failure."""

    def __init__(self, failure: ValidationFailure) -> None:
        super().__init__(failure.detail)
        self.failure = failure
