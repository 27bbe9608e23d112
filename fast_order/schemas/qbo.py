from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LineItemIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    item_id: Any = Field(default=None, alias="itemId")
    description: Optional[str] = None
    qty: Any = None
    unit_price: Any = Field(default=None, alias="unitPrice")

    @field_validator("description", mode="before")
    @classmethod
    def coerce_description(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class SalesDocumentCreate(BaseModel):
    """Body accepted by the invoice and estimate endpoints.

    Required fields are checked by the route so the error names the field the
    form forgot, rather than returning a generic validation report.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    customer_id: Any = Field(default=None, alias="customerId")
    notes: Optional[str] = None
    agent_name: Optional[str] = Field(default=None, alias="agentName")
    lines: Optional[list[LineItemIn]] = None

    @field_validator("lines", mode="before")
    @classmethod
    def drop_non_list_lines(cls, value: Any) -> Any:
        if isinstance(value, list):
            return value
        return None

    @field_validator("notes", "agent_name", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class ItemSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: Optional[str] = None
    sku: Optional[str] = None
    unit_price: Optional[float] = Field(default=None, alias="unitPrice")
    qty_on_hand: Optional[float] = Field(default=None, alias="qtyOnHand")


class CustomerSummary(BaseModel):
    id: Optional[str] = None
    name: str = ""
    email: Optional[str] = None


class ItemSearchResponse(BaseModel):
    items: list[ItemSummary] = Field(default_factory=list)


class CustomerSearchResponse(BaseModel):
    customers: list[CustomerSummary] = Field(default_factory=list)


class CreatedDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    doc_number: Optional[str] = Field(default=None, alias="docNumber")
    total_amount: Optional[float] = Field(default=None, alias="totalAmount")


class InvoiceCreatedResponse(BaseModel):
    ok: bool = True
    invoice: CreatedDocument


class EstimateCreatedResponse(BaseModel):
    ok: bool = True
    estimate: CreatedDocument
