"""Result values returned by service mutations instead of raised errors."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class OperationResult:
    success: bool
    error: str | None = None
    id: str | None = None

    @classmethod
    def ok(cls, doc_id: str | None = None) -> "OperationResult":
        return cls(success=True, id=doc_id)

    @classmethod
    def fail(cls, error: str) -> "OperationResult":
        return cls(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.error is not None:
            payload["error"] = self.error
        if self.id is not None:
            payload["id"] = self.id
        return payload


def error_message(error: BaseException, fallback: str) -> str:
    """Readable message for a caught error."""
    text = str(error).strip()
    return text or fallback
