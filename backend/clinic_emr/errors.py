from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


class ChartError(Exception):
    kind = "error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(ChartError):
    kind = "not_found"


class Conflict(ChartError):
    kind = "conflict"


class ValidationFailed(ChartError):
    kind = "validation_error"

    def __init__(self, errors: list[FieldError], detail: str = "Invalid chart entry data"):
        super().__init__(detail)
        self.errors = list(errors)

    def as_payload(self) -> dict:
        return {
            "detail": self.detail,
            "errors": [{"field": err.field, "message": err.message} for err in self.errors],
        }
