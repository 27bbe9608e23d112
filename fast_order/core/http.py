from __future__ import annotations

from typing import Any, Optional

import httpx

from fast_order.core.config import Settings, get_settings


def get_async_client(
    settings: Settings | None = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    settings = settings or get_settings()
    timeout = httpx.Timeout(settings.http_timeout_seconds)
    return httpx.AsyncClient(timeout=timeout, transport=transport)


def extract_fault(response: httpx.Response) -> Any:
    """Return the upstream ``Fault`` object, or the whole body when there is none."""
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict) and body.get("Fault"):
        return body["Fault"]
    return body


def describe_fault(fault: Any) -> str:
    if isinstance(fault, dict):
        errors = fault.get("Error") or []
        if isinstance(errors, dict):
            errors = [errors]
        messages = [
            str(error.get("Detail") or error.get("Message"))
            for error in errors
            if isinstance(error, dict) and (error.get("Detail") or error.get("Message"))
        ]
        if messages:
            return "; ".join(messages)
        for key in ("error_description", "error", "message"):
            if fault.get(key):
                return str(fault[key])
    if fault is None:
        return "no response body"
    return str(fault)
