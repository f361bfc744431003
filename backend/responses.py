"""The ``{success, data|error, message?}`` body every JSON endpoint returns."""

from __future__ import annotations

from typing import Any


def ok(data: Any = None, message: str | None = None, **extra: Any) -> dict:
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    body.update(extra)
    return body


def failure(error: str, **extra: Any) -> dict:
    return {"success": False, "error": error, **extra}
