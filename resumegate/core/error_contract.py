"""Canonical API error envelope helpers."""

from __future__ import annotations

from typing import Any


def http_status_to_code(status_code: int) -> str:
    """Map HTTP status to an envelope error code."""
    return f"E{status_code}0"


def build_error_envelope(
    *,
    code: str,
    message: str,
    request_id: str | None,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the error payload shared by every handler."""
    payload: dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
            "request_id": request_id,
        }
    }
    if extra:
        payload.update(extra)
    return payload
