from __future__ import annotations

import logging
import logging.config
from contextvars import ContextVar
from typing import Any, Optional, Union

from pythonjsonlogger import jsonlogger


request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
realm_id_ctx: ContextVar[Optional[str]] = ContextVar("realm_id", default=None)


class RequestContextFilter(logging.Filter):
    """Injects request scoped context variables into each log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get()
        record.realm_id = realm_id_ctx.get()
        return True


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """Configure JSON structured logging."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_context": {
                    "()": RequestContextFilter,
                }
            },
            "formatters": {
                "json": {
                    "()": jsonlogger.JsonFormatter,
                    "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "level": level,
                    "formatter": "json",
                    "filters": ["request_context"],
                }
            },
            "loggers": {
                "": {
                    "handlers": ["default"],
                    "level": level,
                }
            },
        }
    )


def set_request_context(
    request_id: Optional[str] = None,
    realm_id: Optional[str] = None,
) -> None:
    if request_id is not None:
        request_id_ctx.set(request_id)
    if realm_id is not None:
        realm_id_ctx.set(realm_id)


def clear_request_context() -> None:
    request_id_ctx.set(None)
    realm_id_ctx.set(None)


def _redact_value(value: Any) -> str:
    if value is None:
        return ""
    return "***redacted***"


def sanitize_payload(payload: Any) -> Any:
    """Remove obvious secrets from a payload while keeping business fields."""

    sensitive_keys = {
        "authorization",
        "access_token",
        "refresh_token",
        "token",
        "secret",
        "password",
    }

    def _sanitize(value: Any) -> Any:
        if isinstance(value, dict):
            sanitized: dict[str, Any] = {}
            for key, val in value.items():
                key_lower = str(key).lower()
                if any(token in key_lower for token in sensitive_keys):
                    sanitized[key] = _redact_value(val)
                else:
                    sanitized[key] = _sanitize(val)
            return sanitized
        if isinstance(value, list):
            return [_sanitize(item) for item in value]
        return value

    return _sanitize(payload)


def log_document_started(
    *,
    realm_id: Optional[str],
    environment: Optional[str],
    doc_type: str,
    customer_id: Optional[str],
    line_count: int,
    payload: Any,
) -> None:
    logger = logging.getLogger("fast_order.qbo.documents")
    logger.info(
        "qbo_document_attempt_started",
        extra={
            "event": "qbo_document_attempt_started",
            "request_id": request_id_ctx.get(),
            "realm_id": realm_id,
            "environment": environment,
            "doc_type": doc_type,
            "customer_id": customer_id,
            "line_count": line_count,
            "payload": sanitize_payload(payload),
        },
    )


def log_document_finished(
    *,
    realm_id: Optional[str],
    environment: Optional[str],
    doc_type: str,
    gateway_status_code: int,
    qbo_status_code: Optional[int],
    latency_ms: Optional[float],
    result: str,
    doc_id: Optional[str] = None,
    doc_number: Optional[str] = None,
    error_message: Optional[str] = None,
) -> None:
    logger = logging.getLogger("fast_order.qbo.documents")
    logger.info(
        "qbo_document_attempt_finished",
        extra={
            "event": "qbo_document_attempt_finished",
            "request_id": request_id_ctx.get(),
            "realm_id": realm_id,
            "environment": environment,
            "doc_type": doc_type,
            "doc_id": doc_id,
            "doc_number": doc_number,
            "gateway_status_code": gateway_status_code,
            "qbo_status_code": qbo_status_code,
            "latency_ms": None if latency_ms is None else round(latency_ms, 2),
            "result": result,
            "error_message": error_message,
        },
    )
