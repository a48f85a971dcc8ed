"""Structured outcomes returned by the courier application services.

Services never signal "not found" or "not allowed right now" with
exceptions that escape to callers; those become an ``OperationResult``
carrying an ``ErrorKind``. Infrastructure failures are the exception:
they propagate so that the caller (HTTP layer or message consumer) can
fail the request or redeliver the message.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(Enum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    PRECONDITION = "PRECONDITION"
    INFRASTRUCTURE = "INFRASTRUCTURE"


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a lifecycle or ingestion operation.

    ``published`` is ``None`` when the operation does not publish, ``False``
    when the state change committed but its event is still pending in the
    outbox (a degraded success).
    """

    success: bool
    message: str
    error_kind: ErrorKind | None = None
    parcel_id: str | None = None
    status: str | None = None
    published: bool | None = None
    duplicate: bool = False
    violations: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **kwargs: Any) -> "OperationResult":
        return cls(success=True, message=message, **kwargs)

    @classmethod
    def failure(cls, error_kind: ErrorKind, message: str, **kwargs: Any) -> "OperationResult":
        return cls(success=False, message=message, error_kind=error_kind, **kwargs)

    @property
    def degraded(self) -> bool:
        return self.success and self.published is False

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "errorKind": self.error_kind.value if self.error_kind else None,
        }
        if self.parcel_id is not None:
            body["parcelId"] = self.parcel_id
        if self.status is not None:
            body["status"] = self.status
        if self.published is not None:
            body["published"] = self.published
        if self.duplicate:
            body["duplicate"] = True
        if self.violations:
            body["violations"] = list(self.violations)
        body.update(self.details)
        return body
