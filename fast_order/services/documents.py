"""Builders for the QuickBooks sales documents created from the ingest form.

Invoices and estimates share the same line and note handling. The only
difference in payload shape is that invoices are explicitly created unsent.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Optional

from fast_order.schemas.qbo import LineItemIn, SalesDocumentCreate
from fast_order.utils.validators import normalize_quantity, normalize_unit_price


AGENT_CUSTOM_FIELD_DEFINITION_ID = "1"
AGENT_CUSTOM_FIELD_NAME = "Agent"


def normalize_line(line: LineItemIn) -> tuple[int, Decimal, Decimal]:
    """Return ``(qty, unit_price, amount)`` with amount computed in Decimal."""
    qty = normalize_quantity(line.qty)
    price = normalize_unit_price(line.unit_price)
    return qty, price, price * qty


def build_sales_line(line: LineItemIn) -> dict[str, Any]:
    qty, price, amount = normalize_line(line)
    return {
        "DetailType": "SalesItemLineDetail",
        "Amount": float(amount),
        "Description": line.description or "",
        "SalesItemLineDetail": {
            "ItemRef": {"value": _as_ref_value(line.item_id)},
            "Qty": qty,
            "UnitPrice": float(price),
        },
    }


def build_sales_lines(lines: Iterable[LineItemIn]) -> tuple[list[dict[str, Any]], Decimal]:
    payload_lines: list[dict[str, Any]] = []
    total_amount = Decimal("0")
    for line in lines:
        total_amount += normalize_line(line)[2]
        payload_lines.append(build_sales_line(line))
    return payload_lines, total_amount


def compose_private_note(agent_name: Optional[str], notes: Optional[str]) -> str:
    prefix = f"Agent: {agent_name} — " if agent_name else ""
    return f"{prefix}{notes or ''}".strip()


def build_agent_custom_fields(agent_name: Optional[str]) -> list[dict[str, str]]:
    if not agent_name:
        return []
    return [
        {
            "DefinitionId": AGENT_CUSTOM_FIELD_DEFINITION_ID,
            "Name": AGENT_CUSTOM_FIELD_NAME,
            "Type": "StringType",
            "StringValue": agent_name,
        }
    ]


def _build_document(document: SalesDocumentCreate) -> dict[str, Any]:
    line_payloads, _ = build_sales_lines(document.lines or [])
    payload: dict[str, Any] = {
        "CustomerRef": {"value": _as_ref_value(document.customer_id)},
        "PrivateNote": compose_private_note(document.agent_name, document.notes),
        "Line": line_payloads,
    }
    custom_fields = build_agent_custom_fields(document.agent_name)
    if custom_fields:
        payload["CustomField"] = custom_fields
    return payload


def build_invoice_payload(document: SalesDocumentCreate) -> dict[str, Any]:
    payload = _build_document(document)
    payload["EmailStatus"] = "NotSet"
    return payload


def build_estimate_payload(document: SalesDocumentCreate) -> dict[str, Any]:
    return _build_document(document)


def _as_ref_value(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
