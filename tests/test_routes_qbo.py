from __future__ import annotations

import pytest

from fast_order.services.credentials import NOT_CONNECTED_MESSAGE
from fast_order.services.qbo_client import QuickBooksApiError


FAULT = {"Error": [{"Message": "Invalid Reference Id", "Detail": "Item 99 not found", "code": "2500"}], "type": "ValidationFault"}


def _invoice_body(**overrides):
    body = {
        "customerId": "58",
        "notes": "rush order",
        "agentName": "Alice",
        "lines": [{"itemId": "7", "description": "Blue widget", "qty": 3, "unitPrice": 19.99}],
    }
    body.update(overrides)
    return body


@pytest.mark.parametrize(
    ("method", "path", "body"),
    [
        ("get", "/api/items", None),
        ("get", "/api/customers", None),
        ("post", "/api/invoice", _invoice_body()),
        ("post", "/api/estimate", _invoice_body()),
    ],
)
def test_endpoints_require_connection(client, fake_qbo, method, path, body) -> None:
    kwargs = {"json": body} if body is not None else {}
    response = getattr(client, method)(path, **kwargs)

    assert response.status_code == 400
    assert response.json()["error"] == NOT_CONNECTED_MESSAGE
    assert fake_qbo.queries == []
    assert fake_qbo.created == []


def test_search_items_filters_capped_page_by_name(client, connected_store, fake_qbo) -> None:
    fake_qbo.query_result = {
        "QueryResponse": {
            "Item": [
                {"Id": 1, "Name": "Widget", "Sku": "W-1", "UnitPrice": 19.99, "QtyOnHand": 12},
                {"Id": 2, "Name": "Gadget", "Sku": "G-1", "UnitPrice": 5, "Type": "Service"},
            ]
        }
    }

    response = client.get("/api/items", params={"q": "wid"})

    assert response.status_code == 200
    assert response.json() == {
        "items": [
            {"id": "1", "name": "Widget", "sku": "W-1", "unitPrice": 19.99, "qtyOnHand": 12},
        ]
    }
    assert fake_qbo.queries == [
        {
            "realm_id": "123",
            "entity": "Item",
            "select_sql": "select * from Item where Active = true",
            "maxresults": 20,
        }
    ]


def test_search_items_without_query_returns_whole_page(client, connected_store, fake_qbo) -> None:
    fake_qbo.query_result = {
        "QueryResponse": {
            "Item": [
                {"Id": "1", "Name": "Widget"},
                {"Id": "2", "Name": "Gadget", "QtyOnHand": "lots"},
            ]
        }
    }

    response = client.get("/api/items", params={"q": "   "})

    items = response.json()["items"]
    assert [item["name"] for item in items] == ["Widget", "Gadget"]
    assert items[1]["qtyOnHand"] is None


def test_search_items_with_empty_upstream_response(client, connected_store, fake_qbo) -> None:
    response = client.get("/api/items")

    assert response.status_code == 200
    assert response.json() == {"items": []}


def test_search_customers_projects_name_and_email(client, connected_store, fake_qbo) -> None:
    fake_qbo.query_result = {
        "QueryResponse": {
            "Customer": [
                {"Id": "5", "DisplayName": "Acme Rentals", "PrimaryEmailAddr": {"Address": "ap@acme.test"}},
                {"Id": "6", "GivenName": "Jane", "FamilyName": "Doe"},
                {"Id": "7", "DisplayName": "Zenith Supply"},
            ]
        }
    }

    response = client.get("/api/customers")

    assert response.status_code == 200
    assert response.json() == {
        "customers": [
            {"id": "5", "name": "Acme Rentals", "email": "ap@acme.test"},
            {"id": "6", "name": "Jane Doe", "email": None},
            {"id": "7", "name": "Zenith Supply", "email": None},
        ]
    }
    assert fake_qbo.queries[0]["select_sql"] == "select * from Customer"
    assert fake_qbo.queries[0]["maxresults"] == 20


def test_search_customers_filters_on_display_name(client, connected_store, fake_qbo) -> None:
    fake_qbo.query_result = {
        "QueryResponse": {
            "Customer": [
                {"Id": "5", "DisplayName": "Acme Rentals"},
                {"Id": "7", "DisplayName": "Zenith Supply"},
            ]
        }
    }

    response = client.get("/api/customers", params={"q": "ACME"})

    assert [c["id"] for c in response.json()["customers"]] == ["5"]


def test_search_upstream_failure_returns_fault(client, connected_store, fake_qbo) -> None:
    fake_qbo.query_error = QuickBooksApiError("QBO query error for Item: 400", status_code=400, fault=FAULT)

    response = client.get("/api/items")

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "QuickBooks item lookup failed"
    assert body["details"] == FAULT


def test_customer_search_upstream_failure_message(client, connected_store, fake_qbo) -> None:
    fake_qbo.query_error = QuickBooksApiError("boom", status_code=503, fault="Service Unavailable")

    response = client.get("/api/customers")

    assert response.status_code == 500
    assert response.json()["error"] == "QuickBooks customer lookup failed"
    assert response.json()["details"] == "Service Unavailable"


def test_create_invoice_sends_unsent_invoice(client, connected_store, fake_qbo) -> None:
    response = client.post("/api/invoice", json=_invoice_body())

    assert response.status_code == 200
    assert response.json() == {
        "ok": True,
        "invoice": {"id": "101", "docNumber": "1001", "totalAmount": 59.97},
    }
    created = fake_qbo.created[0]
    assert created["entity"] == "Invoice"
    assert created["resource"] == "invoice"
    assert created["realm_id"] == "123"
    payload = created["payload"]
    assert payload["EmailStatus"] == "NotSet"
    assert payload["PrivateNote"] == "Agent: Alice — rush order"
    assert payload["CustomerRef"] == {"value": "58"}
    assert payload["CustomField"][0]["StringValue"] == "Alice"
    assert payload["Line"][0]["Amount"] == 59.97


def test_create_estimate_has_no_email_status(client, connected_store, fake_qbo) -> None:
    fake_qbo.create_result = {"Id": "202", "DocNumber": "E-9", "TotalAmt": 10}

    response = client.post("/api/estimate", json=_invoice_body(agentName=None, notes="  hold  "))

    assert response.status_code == 200
    assert response.json() == {
        "ok": True,
        "estimate": {"id": "202", "docNumber": "E-9", "totalAmount": 10},
    }
    payload = fake_qbo.created[0]["payload"]
    assert fake_qbo.created[0]["resource"] == "estimate"
    assert "EmailStatus" not in payload
    assert "CustomField" not in payload
    assert payload["PrivateNote"] == "hold"


@pytest.mark.parametrize("path", ["/api/invoice", "/api/estimate"])
@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"customerId": None}, "customerId required"),
        ({"customerId": ""}, "customerId required"),
        ({"lines": []}, "lines required"),
        ({"lines": None}, "lines required"),
        ({"lines": "7 widgets"}, "lines required"),
    ],
)
def test_create_document_validation(client, connected_store, fake_qbo, path, overrides, message) -> None:
    response = client.post(path, json=_invoice_body(**overrides))

    assert response.status_code == 400
    assert response.json()["error"] == message
    assert fake_qbo.created == []


def test_create_document_checks_customer_before_lines(client, connected_store, fake_qbo) -> None:
    body = _invoice_body()
    del body["customerId"]
    body["lines"] = []

    response = client.post("/api/invoice", json=body)

    assert response.json()["error"] == "customerId required"


def test_validation_runs_before_connection_check(client, fake_qbo) -> None:
    response = client.post("/api/invoice", json=_invoice_body(lines=[]))

    assert response.status_code == 400
    assert response.json()["error"] == "lines required"


def test_create_invoice_coerces_line_values(client, connected_store, fake_qbo) -> None:
    body = _invoice_body(lines=[{"itemId": 7, "qty": "0", "unitPrice": "n/a"}, {"itemId": 8, "qty": 2.9, "unitPrice": "2.50"}])

    client.post("/api/invoice", json=body)

    lines = fake_qbo.created[0]["payload"]["Line"]
    assert [line["SalesItemLineDetail"]["Qty"] for line in lines] == [1, 2]
    assert [line["Amount"] for line in lines] == [0.0, 5.0]
    assert lines[0]["SalesItemLineDetail"]["ItemRef"] == {"value": "7"}


def test_create_upstream_failure_returns_fault(client, connected_store, fake_qbo) -> None:
    fake_qbo.create_error = QuickBooksApiError("QBO create error for Estimate: 400", status_code=400, fault=FAULT)

    response = client.post("/api/estimate", json=_invoice_body())

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to create estimate"
    assert response.json()["details"] == FAULT


def test_non_object_body_is_a_client_error(client, connected_store, fake_qbo) -> None:
    response = client.post("/api/invoice", json=["not", "an", "order"])

    assert response.status_code == 422
    assert fake_qbo.created == []


def test_long_text_fields_are_passed_through(client, connected_store, fake_qbo) -> None:
    body = _invoice_body(
        agentName="A" * 300,
        notes="n" * 5000,
        lines=[{"itemId": "7", "description": "d" * 5000, "qty": 1, "unitPrice": 1}],
    )

    response = client.post("/api/invoice", json=body)

    assert response.status_code == 200
    payload = fake_qbo.created[0]["payload"]
    assert payload["PrivateNote"] == f"Agent: {'A' * 300} — {'n' * 5000}"
    assert payload["CustomField"][0]["StringValue"] == "A" * 300
    assert payload["Line"][0]["Description"] == "d" * 5000


@pytest.mark.parametrize("path", ["/api/invoice", "/api/estimate"])
def test_unexpected_create_error_is_a_client_error(client, connected_store, fake_qbo, path) -> None:
    fake_qbo.create_error = ValueError("Expecting value: line 1 column 1 (char 0)")

    response = client.post(path, json=_invoice_body())

    assert response.status_code == 400
    assert response.json()["error"] == "Expecting value: line 1 column 1 (char 0)"
