from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from fast_order.core import logging as logging_utils
from fast_order.schemas.qbo import (
    CreatedDocument,
    CustomerSearchResponse,
    CustomerSummary,
    EstimateCreatedResponse,
    InvoiceCreatedResponse,
    ItemSearchResponse,
    ItemSummary,
    SalesDocumentCreate,
)
from fast_order.services.credentials import (
    AuthenticationRequired,
    CredentialStore,
    QuickBooksConnection,
    get_credential_store,
    resolve_connection,
)
from fast_order.services.documents import (
    build_estimate_payload,
    build_invoice_payload,
    build_sales_lines,
)
from fast_order.services.qbo_client import (
    QuickBooksApiError,
    QuickBooksService,
    get_quickbooks_service,
)
from fast_order.utils.validators import matches_search_term, normalize_search_term


router = APIRouter(prefix="/api", tags=["qbo"])
logger = logging.getLogger("fast_order.api.qbo")

# Upstream page size for both lookups. The name filter runs on this page only.
SEARCH_PAGE_SIZE = 20

ITEM_QUERY = "select * from Item where Active = true"
CUSTOMER_QUERY = "select * from Customer"


@router.get("/items", response_model=ItemSearchResponse)
async def search_items(
    q: Optional[str] = Query(default=None),
    store: CredentialStore = Depends(get_credential_store),
    qbo_service: QuickBooksService = Depends(get_quickbooks_service),
) -> ItemSearchResponse:
    term = normalize_search_term(q)
    connection = _require_connection(store)
    records = await _run_search(
        qbo_service,
        connection,
        entity="Item",
        select_sql=ITEM_QUERY,
        error_message="QuickBooks item lookup failed",
    )
    items = [
        _project_item(record)
        for record in records
        if matches_search_term(record.get("Name"), term)
    ]
    return ItemSearchResponse(items=items)


@router.get("/customers", response_model=CustomerSearchResponse)
async def search_customers(
    q: Optional[str] = Query(default=None),
    store: CredentialStore = Depends(get_credential_store),
    qbo_service: QuickBooksService = Depends(get_quickbooks_service),
) -> CustomerSearchResponse:
    term = normalize_search_term(q)
    connection = _require_connection(store)
    records = await _run_search(
        qbo_service,
        connection,
        entity="Customer",
        select_sql=CUSTOMER_QUERY,
        error_message="QuickBooks customer lookup failed",
    )
    customers = [
        _project_customer(record)
        for record in records
        if matches_search_term(record.get("DisplayName"), term)
    ]
    return CustomerSearchResponse(customers=customers)


@router.post(
    "/invoice",
    response_model=InvoiceCreatedResponse,
    summary="Create Invoice",
    description="Creates an unsent Invoice in QuickBooks Online from the ingest form.",
)
async def create_invoice(
    payload: SalesDocumentCreate,
    store: CredentialStore = Depends(get_credential_store),
    qbo_service: QuickBooksService = Depends(get_quickbooks_service),
) -> InvoiceCreatedResponse:
    created = await _create_document(
        payload,
        store=store,
        qbo_service=qbo_service,
        entity="Invoice",
        resource="invoice",
        build_payload=build_invoice_payload,
        error_message="Failed to create invoice",
    )
    return InvoiceCreatedResponse(invoice=created)


@router.post(
    "/estimate",
    response_model=EstimateCreatedResponse,
    summary="Create Estimate",
    description="Creates an Estimate in QuickBooks Online from the ingest form.",
)
async def create_estimate(
    payload: SalesDocumentCreate,
    store: CredentialStore = Depends(get_credential_store),
    qbo_service: QuickBooksService = Depends(get_quickbooks_service),
) -> EstimateCreatedResponse:
    created = await _create_document(
        payload,
        store=store,
        qbo_service=qbo_service,
        entity="Estimate",
        resource="estimate",
        build_payload=build_estimate_payload,
        error_message="Failed to create estimate",
    )
    return EstimateCreatedResponse(estimate=created)


def _require_connection(store: CredentialStore) -> QuickBooksConnection:
    result = resolve_connection(store)
    if isinstance(result, AuthenticationRequired):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=result.message,
        )
    logging_utils.set_request_context(realm_id=result.realm_id)
    return result


async def _run_search(
    qbo_service: QuickBooksService,
    connection: QuickBooksConnection,
    *,
    entity: str,
    select_sql: str,
    error_message: str,
) -> list[dict[str, Any]]:
    try:
        payload, latency_ms = await qbo_service.query(
            connection,
            entity=entity,
            select_sql=select_sql,
            maxresults=SEARCH_PAGE_SIZE,
        )
    except QuickBooksApiError as exc:
        logger.error(
            "qbo_query_error",
            extra={
                "realm_id": connection.realm_id,
                "entity": entity,
                "qbo_status_code": exc.status_code,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": error_message, "details": exc.fault},
        ) from exc

    query_response = payload.get("QueryResponse") or {}
    records = query_response.get(entity) or []
    if isinstance(records, dict):
        records = [records]

    logger.info(
        "qbo_query_success",
        extra={
            "realm_id": connection.realm_id,
            "entity": entity,
            "items": len(records),
            "latency_ms": round(latency_ms, 2),
        },
    )
    return records


async def _create_document(
    document: SalesDocumentCreate,
    *,
    store: CredentialStore,
    qbo_service: QuickBooksService,
    entity: str,
    resource: str,
    build_payload: Callable[[SalesDocumentCreate], dict[str, Any]],
    error_message: str,
) -> CreatedDocument:
    if not document.customer_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="customerId required",
        )
    if not document.lines:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="lines required",
        )

    connection = _require_connection(store)

    try:
        qbo_payload = build_payload(document)
        _, total_amount = build_sales_lines(document.lines)
        logging_utils.log_document_started(
            realm_id=connection.realm_id,
            environment=qbo_service.environment,
            doc_type=resource,
            customer_id=qbo_payload["CustomerRef"]["value"],
            line_count=len(qbo_payload["Line"]),
            payload={**qbo_payload, "computed_total": float(total_amount)},
        )
        created, latency_ms, qbo_status_code = await qbo_service.create(
            connection,
            entity=entity,
            resource=resource,
            payload=qbo_payload,
        )
    except QuickBooksApiError as exc:
        logging_utils.log_document_finished(
            realm_id=connection.realm_id,
            environment=qbo_service.environment,
            doc_type=resource,
            gateway_status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            qbo_status_code=exc.status_code,
            latency_ms=None,
            result="failure",
            error_message=str(exc),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": error_message, "details": exc.fault},
        ) from exc
    except Exception as exc:
        logging_utils.log_document_finished(
            realm_id=connection.realm_id,
            environment=qbo_service.environment,
            doc_type=resource,
            gateway_status_code=status.HTTP_400_BAD_REQUEST,
            qbo_status_code=None,
            latency_ms=None,
            result="failure",
            error_message=str(exc),
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    result = CreatedDocument(
        id=_optional_str(created.get("Id")),
        doc_number=_optional_str(created.get("DocNumber")),
        total_amount=created.get("TotalAmt"),
    )
    logging_utils.log_document_finished(
        realm_id=connection.realm_id,
        environment=qbo_service.environment,
        doc_type=resource,
        gateway_status_code=status.HTTP_200_OK,
        qbo_status_code=qbo_status_code,
        latency_ms=latency_ms,
        result="success",
        doc_id=result.id,
        doc_number=result.doc_number,
    )
    return result


def _project_item(record: dict[str, Any]) -> ItemSummary:
    qty_on_hand = record.get("QtyOnHand")
    if isinstance(qty_on_hand, bool) or not isinstance(qty_on_hand, (int, float)):
        qty_on_hand = None
    return ItemSummary(
        id=_optional_str(record.get("Id")),
        name=record.get("Name"),
        sku=record.get("Sku"),
        unit_price=record.get("UnitPrice"),
        qty_on_hand=qty_on_hand,
    )


def _project_customer(record: dict[str, Any]) -> CustomerSummary:
    name = record.get("DisplayName") or (
        f"{record.get('GivenName') or ''} {record.get('FamilyName') or ''}".strip()
    )
    email = (record.get("PrimaryEmailAddr") or {}).get("Address") or None
    return CustomerSummary(
        id=_optional_str(record.get("Id")),
        name=name,
        email=email,
    )


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)
