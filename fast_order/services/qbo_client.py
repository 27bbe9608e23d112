from __future__ import annotations

import base64
import logging
from datetime import datetime, timedelta, timezone
from time import perf_counter
from typing import Any, Optional

import httpx
from fastapi import Depends

from fast_order.core.config import Settings, get_settings
from fast_order.core.http import describe_fault, extract_fault, get_async_client
from fast_order.services.credentials import QuickBooksConnection, TokenBundle


class QuickBooksOAuthError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class QuickBooksApiError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        fault: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.fault = fault


def _now() -> datetime:
    return datetime.now(timezone.utc)


class QuickBooksService:
    AUTH_URL = "https://appcenter.intuit.com/connect/oauth2"
    TOKEN_URL = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
    SANDBOX_API_BASE = "https://sandbox-quickbooks.api.intuit.com"
    PROD_API_BASE = "https://quickbooks.api.intuit.com"
    SCOPES = ["com.intuit.quickbooks.accounting"]
    MINOR_VERSION = "65"

    def __init__(
        self,
        settings: Settings | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.transport = transport
        self.logger = logging.getLogger("fast_order.services.qbo")

    @property
    def environment(self) -> str:
        return self.settings.qb_environment

    def build_authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.settings.qb_client_id,
            "redirect_uri": str(self.settings.qb_redirect_uri),
            "response_type": "code",
            "scope": " ".join(self.SCOPES),
            "state": state,
        }
        url = httpx.URL(self.AUTH_URL, params=params)
        self.logger.info(
            "oauth_authorization_url_generated",
            extra={"environment": self.environment},
        )
        return str(url)

    async def exchange_authorization_code(self, *, code: str, realm_id: str) -> TokenBundle:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": str(self.settings.qb_redirect_uri),
        }
        payload = await self._token_request(data)
        return self._parse_token_response(payload, realm_id)

    async def query(
        self,
        connection: QuickBooksConnection,
        *,
        entity: str,
        select_sql: str,
        maxresults: int | None = None,
    ) -> tuple[dict, float]:
        statement = select_sql.strip()
        if maxresults:
            statement = f"{statement} MAXRESULTS {maxresults}"
        params = {
            "query": statement,
            "minorversion": self.MINOR_VERSION,
        }
        response, latency_ms = await self._send(
            connection,
            entity=entity,
            operation="query",
            method="GET",
            url=self._build_query_url(connection),
            params=params,
        )
        return response.json(), latency_ms

    async def create(
        self,
        connection: QuickBooksConnection,
        *,
        entity: str,
        resource: str,
        payload: dict,
    ) -> tuple[dict, float, int]:
        response, latency_ms = await self._send(
            connection,
            entity=entity,
            operation="create",
            method="POST",
            url=self._build_entity_url(connection, resource),
            params={"minorversion": self.MINOR_VERSION},
            json=payload,
        )
        body = response.json()
        created = body.get(entity) if isinstance(body, dict) else None
        if not isinstance(created, dict):
            raise QuickBooksApiError(
                f"QBO create response for {entity} has no {entity} object",
                status_code=response.status_code,
                fault=body,
            )
        return created, latency_ms, response.status_code

    async def _send(
        self,
        connection: QuickBooksConnection,
        *,
        entity: str,
        operation: str,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> tuple[httpx.Response, float]:
        headers = {
            "Authorization": f"Bearer {connection.tokens.access_token}",
            "Accept": "application/json",
        }
        if method == "POST":
            headers["Content-Type"] = "application/json"
        async with get_async_client(self.settings, self.transport) as client:
            start = perf_counter()
            try:
                response = await client.request(method, url, headers=headers, **kwargs)
            except httpx.HTTPError as exc:
                self.logger.error(
                    f"qbo_{operation}_transport_error",
                    extra={
                        "entity": entity,
                        "realm_id": connection.realm_id,
                        "environment": self.environment,
                        "error": str(exc),
                    },
                )
                raise QuickBooksApiError(
                    f"QBO {operation} error for {entity}: {exc}",
                    fault={"message": str(exc)},
                ) from exc
            latency_ms = (perf_counter() - start) * 1000

        if response.status_code >= 400:
            fault = extract_fault(response)
            self.logger.error(
                f"qbo_{operation}_failed",
                extra={
                    "entity": entity,
                    "status": response.status_code,
                    "body": response.text,
                    "realm_id": connection.realm_id,
                    "environment": self.environment,
                },
            )
            raise QuickBooksApiError(
                f"QBO {operation} error for {entity}: {response.status_code} {describe_fault(fault)}",
                status_code=response.status_code,
                fault=fault,
            )
        return response, latency_ms

    def _build_query_url(self, connection: QuickBooksConnection) -> str:
        base = self._build_company_base_url(connection)
        return f"{base}/query"

    def _build_entity_url(self, connection: QuickBooksConnection, resource: str) -> str:
        base = self._build_company_base_url(connection)
        return f"{base}/{resource}"

    def _build_company_base_url(self, connection: QuickBooksConnection) -> str:
        base = self.PROD_API_BASE if self.environment == "production" else self.SANDBOX_API_BASE
        return f"{base}/v3/company/{connection.realm_id}"

    async def _token_request(self, data: dict[str, str]) -> dict:
        headers = {
            "Authorization": self._basic_auth_header(),
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }
        async with get_async_client(self.settings, self.transport) as client:
            try:
                response = await client.post(self.TOKEN_URL, data=data, headers=headers)
            except httpx.HTTPError as exc:
                self.logger.error("oauth_token_transport_error", extra={"error": str(exc)})
                raise QuickBooksOAuthError(f"Failed to reach Intuit token endpoint: {exc}") from exc
        if response.status_code >= 400:
            self.logger.error(
                "oauth_token_error",
                extra={
                    "status": response.status_code,
                    "body": response.text,
                },
            )
            raise QuickBooksOAuthError(
                f"Failed to obtain tokens from Intuit (status {response.status_code}): "
                f"{describe_fault(extract_fault(response))}",
                status_code=response.status_code,
            )
        return response.json()

    def _parse_token_response(self, payload: dict, realm_id: str) -> TokenBundle:
        now = _now()
        try:
            access_expires_in = int(payload.get("expires_in", 0))
            refresh_expires_in = int(payload.get("x_refresh_token_expires_in", 0))
            access_token = payload["access_token"]
            refresh_token = payload["refresh_token"]
            scope_raw = payload.get("scope", "")
            token_type = payload.get("token_type", "Bearer")
        except (KeyError, TypeError, ValueError) as exc:
            raise QuickBooksOAuthError("Incomplete token response") from exc

        scopes = [scope for scope in str(scope_raw).split() if scope]

        bundle = TokenBundle(
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_at=now + timedelta(seconds=access_expires_in),
            refresh_expires_at=now + timedelta(seconds=refresh_expires_in),
            scopes=scopes,
            token_type=token_type,
        )

        self.logger.info(
            "token_bundle_parsed",
            extra={
                "realm_id": realm_id,
                "access_expires_at": bundle.access_expires_at.isoformat(),
                "refresh_expires_at": bundle.refresh_expires_at.isoformat(),
            },
        )
        return bundle

    def _basic_auth_header(self) -> str:
        credentials = f"{self.settings.qb_client_id}:{self.settings.qb_client_secret}"
        encoded = base64.b64encode(credentials.encode("utf-8")).decode("utf-8")
        return f"Basic {encoded}"


def get_quickbooks_service(settings: Settings = Depends(get_settings)) -> QuickBooksService:
    return QuickBooksService(settings)
