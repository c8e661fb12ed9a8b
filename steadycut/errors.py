from __future__ import annotations

from typing import Any


class SteadycutError(Exception):
    """Base for every caller-facing failure; `kind` is stable and machine-readable."""

    kind = "error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.details:
            payload["details"] = dict(self.details)
        return payload


class NotFoundError(SteadycutError):
    kind = "not_found"


class InvalidInputError(SteadycutError):
    kind = "invalid_input"


class PreconditionError(SteadycutError):
    kind = "precondition_failed"
