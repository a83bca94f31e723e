from __future__ import annotations

from typing import Literal, Optional, Sequence

TranscriptionErrorKind = Literal["NotFound", "Unauthorized", "TooLarge", "ServiceError"]


class IntakeValidationError(ValueError):
    """Raised when a report is rejected before any case is created."""

    def __init__(self, errors: Sequence[str]):
        self.errors = [str(item) for item in errors]
        super().__init__("; ".join(self.errors) or "invalid report")


class AudioValidationError(IntakeValidationError):
    """Audio artifact is missing, oversized or of an unsupported format."""


class UpstreamAuthError(RuntimeError):
    """An upstream service rejected the provisioned credential."""

    def __init__(self, service: str, message: str):
        super().__init__(message)
        self.service = service
        self.message = message


class UpstreamTransientError(RuntimeError):
    def __init__(self, service: str, message: str):
        super().__init__(message)
        self.service = service
        self.message = message


class TranscriptionError(RuntimeError):
    def __init__(self, kind: TranscriptionErrorKind, message: str, provider_name: str):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.provider_name = provider_name

    @property
    def is_auth_failure(self) -> bool:
        return self.kind == "Unauthorized"


class CaseNotFoundError(KeyError):
    def __init__(self, case_id: str):
        super().__init__(case_id)
        self.case_id = case_id

    def __str__(self) -> str:
        return f"Case not found: {self.case_id}"


class CaseStateError(ValueError):
    """A rescuer action is not allowed from the case's current state."""


def http_status(exc: BaseException) -> Optional[int]:
    """HTTP status carried by an SDK exception, if any."""
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def short_message(message: str, limit: int = 200) -> str:
    message = " ".join(str(message or "").split())
    if len(message) > limit:
        message = message[:limit] + "..."
    return message
