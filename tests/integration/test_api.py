"""Integration tests for API endpoints"""

import logging
import pytest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock
from fastapi.testclient import TestClient


@pytest.fixture
def payment_id(client: TestClient, customer_id: str, service_id: str) -> str:
    """Installment purchase created through the API, nothing submitted"""
    response = client.post(
        "/v1/payments",
        json={"account_id": customer_id, "service_id": service_id, "payment_type": "installment"},
    )
    assert response.status_code == 201
    return response.json()["payment_id"]


def submit(client: TestClient, payment_id: str, number: int, ref: str):
    return client.post(
        f"/v1/payments/{payment_id}/tranches/{number}/submit",
        json={"transaction_ref": ref},
    )


def adjudicate(client: TestClient, payment_id: str, number: int, decision: str, notes: str | None = None):
    return client.post(
        f"/v1/admin/payments/{payment_id}/tranches/{number}/adjudicate",
        json={"decision": decision, "notes": notes},
    )


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "installment_payment_created_total" in response.text


def test_request_id_header(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_create_installment_payment(client: TestClient, payment_id: str, notifier: MagicMock):
    """Test POST /v1/payments with a 30/70 split"""
    data = client.get(f"/v1/payments/{payment_id}").json()

    assert data["payment_type"] == "installment"
    assert data["status"] == "pending"
    assert data["amount_cents"] == 1000
    assert data["amount_due_cents"] == 1000
    assert [t["amount_cents"] for t in data["tranches"]] == [300, 700]

    first_due = date.fromisoformat(data["tranches"][0]["due_date"])
    second_due = date.fromisoformat(data["tranches"][1]["due_date"])
    assert second_due - first_due == timedelta(days=15)

    notifier.send_event.assert_awaited_once()
    event, payload = notifier.send_event.await_args.args
    assert event == "payment.created"
    assert payload["payment_id"] == payment_id


def test_create_full_payment_with_reference(client: TestClient, plain_customer_id: str, service_id: str):
    response = client.post(
        "/v1/payments",
        json={"account_id": plain_customer_id, "service_id": service_id, "transaction_ref": "TXN-FULL"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["payment_type"] == "full"
    assert len(data["tranches"]) == 1
    assert data["tranches"][0]["status"] == "submitted"


def test_installments_not_enabled(client: TestClient, plain_customer_id: str, service_id: str):
    response = client.post(
        "/v1/payments",
        json={"account_id": plain_customer_id, "service_id": service_id, "payment_type": "installment"},
    )

    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"
    assert response.json()["entity_id"] == plain_customer_id


def test_request_validation(client: TestClient):
    """Test Pydantic validation errors"""
    response = client.post("/v1/payments", json={"account_id": "", "service_id": "svc"})
    assert response.status_code == 422

    response = client.post("/v1/payments", json={"account_id": "a", "service_id": "svc", "payment_type": "weekly"})
    assert response.status_code == 422


def test_unknown_payment(client: TestClient):
    response = client.get("/v1/payments/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_invalid_payment_id(client: TestClient):
    response = client.get("/v1/payments/not-a-uuid")
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid payment ID format"


def test_list_payments(client: TestClient, payment_id: str, customer_id: str):
    response = client.get("/v1/payments", params={"account_id": customer_id})
    assert response.status_code == 200
    assert [p["payment_id"] for p in response.json()["payments"]] == [payment_id]

    response = client.get("/v1/payments", params={"status": "approved"})
    assert response.json()["payments"] == []


def test_submit_and_approve_flow(client: TestClient, payment_id: str, notifier: MagicMock):
    """Test the customer/admin round trip for both tranches"""
    response = submit(client, payment_id, 1, "TXN-1")
    assert response.status_code == 200
    assert response.json()["status"] == "submitted"

    response = adjudicate(client, payment_id, 1, "approved")
    assert response.status_code == 200
    assert response.json()["status"] == "approved"

    data = client.get(f"/v1/payments/{payment_id}").json()
    assert data["status"] == "partial"
    assert data["amount_paid_cents"] == 300
    assert data["amount_due_cents"] == 700

    assert submit(client, payment_id, 2, "TXN-2").status_code == 200
    assert adjudicate(client, payment_id, 2, "approved").status_code == 200

    data = client.get(f"/v1/payments/{payment_id}").json()
    assert data["status"] == "approved"
    assert data["amount_due_cents"] == 0

    response = client.post(f"/v1/admin/payments/{payment_id}/tranches/1/paid")
    assert response.status_code == 200
    assert response.json()["status"] == "paid"

    events = [call.args[0] for call in notifier.send_event.await_args_list]
    assert events == [
        "payment.created",
        "tranche.submitted",
        "tranche.approved",
        "tranche.submitted",
        "tranche.approved",
        "tranche.paid",
    ]


def test_rejection_flow(client: TestClient, payment_id: str):
    submit(client, payment_id, 1, "TXN-1")
    response = adjudicate(client, payment_id, 1, "rejected", notes="Transaction not found")

    assert response.status_code == 200
    assert response.json()["admin_notes"] == "Transaction not found"
    assert response.json()["transaction_ref"] == "TXN-1"
    assert client.get(f"/v1/payments/{payment_id}").json()["status"] == "rejected"

    response = submit(client, payment_id, 1, "TXN-1-RETRY")
    assert response.status_code == 200
    assert response.json()["resubmission_count"] == 1


def test_illegal_transition(client: TestClient, payment_id: str):
    response = adjudicate(client, payment_id, 1, "approved")

    assert response.status_code == 409
    assert response.json()["error"] == "illegal_transition"


def test_out_of_sequence(client: TestClient, payment_id: str):
    response = submit(client, payment_id, 2, "TXN-2")

    assert response.status_code == 409
    assert response.json()["error"] == "sequence_error"


def test_duplicate_submission(client: TestClient, payment_id: str):
    submit(client, payment_id, 1, "TXN-1")
    response = submit(client, payment_id, 1, "TXN-1")

    assert response.status_code == 409
    assert response.json()["error"] == "duplicate_submission"


def test_unknown_installment(client: TestClient, payment_id: str):
    assert submit(client, payment_id, 5, "TXN-5").status_code == 404


def test_entitlement(client: TestClient, payment_id: str):
    url = f"/v1/payments/{payment_id}/entitlement"
    assert client.get(url).json()["phase"] == "pending"

    submit(client, payment_id, 1, "TXN-1")
    adjudicate(client, payment_id, 1, "approved")

    start = datetime(2025, 4, 1, tzinfo=timezone.utc)
    end = datetime(2025, 4, 30, tzinfo=timezone.utc)
    response = client.put(
        f"/v1/admin/payments/{payment_id}/service-window",
        json={"start_date": start.isoformat(), "end_date": end.isoformat()},
    )
    assert response.status_code == 200

    assert client.get(url, params={"now": "2025-03-31T23:00:00+00:00"}).json()["phase"] == "pending"
    assert client.get(url, params={"now": "2025-04-15T00:00:00+00:00"}).json()["phase"] == "active"
    assert client.get(url, params={"now": "2025-05-01T00:00:00+00:00"}).json()["phase"] == "expired"

    assert client.post(f"/v1/admin/payments/{payment_id}/complete").status_code == 200
    assert client.get(url).json()["phase"] == "completed"


def test_service_window_out_of_order(client: TestClient, payment_id: str):
    response = client.put(
        f"/v1/admin/payments/{payment_id}/service-window",
        json={"start_date": "2025-04-30T00:00:00+00:00", "end_date": "2025-04-01T00:00:00+00:00"},
    )
    assert response.status_code == 422


def test_payment_stats(client: TestClient, payment_id: str):
    submit(client, payment_id, 1, "TXN-1")
    adjudicate(client, payment_id, 1, "approved")

    data = client.get("/v1/admin/payments/stats").json()
    assert data["total_payments"] == 1
    assert data["partial"] == 1
    assert data["revenue_cents"] == 300
    assert data["outstanding_cents"] == 700


def test_installment_policy(client: TestClient, plain_customer_id: str):
    response = client.put(
        f"/v1/admin/accounts/{plain_customer_id}/installment-policy",
        json={"splits": [{"percentage": 40}, {"percentage": 60}], "enabled": True, "updated_by": "admin_1"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["installments_enabled"] is True
    assert data["splits"] == [
        {"percentage": 40, "due_offset_days": 0},
        {"percentage": 60, "due_offset_days": 15},
    ]
    assert data["policy_updated_by"] == "admin_1"


def test_installment_policy_must_total_100(client: TestClient, plain_customer_id: str):
    response = client.put(
        f"/v1/admin/accounts/{plain_customer_id}/installment-policy",
        json={"splits": [{"percentage": 40}, {"percentage": 50}]},
    )
    assert response.status_code == 422
    assert response.json()["error"] == "invalid_split"


def test_toggle_installments(client: TestClient, customer_id: str):
    response = client.patch(f"/v1/admin/accounts/{customer_id}/installments", json={"enabled": False})
    assert response.status_code == 200
    assert response.json()["installments_enabled"] is False


def test_unknown_account(client: TestClient):
    response = client.patch("/v1/admin/accounts/nobody/suspicion", json={"is_suspicious": True})
    assert response.status_code == 404


def test_suspicion_flag(client: TestClient, customer_id: str, service_id: str):
    response = client.patch(f"/v1/admin/accounts/{customer_id}/suspicion", json={"is_suspicious": True})
    assert response.status_code == 200
    assert response.json()["is_suspicious"] is True
    assert response.json()["installments_enabled"] is False

    response = client.post(
        "/v1/payments",
        json={"account_id": customer_id, "service_id": service_id, "payment_type": "installment"},
    )
    assert response.status_code == 422


def test_suspicion_scan(client: TestClient, payment_id: str, customer_id: str, notifier: MagicMock):
    """First tranche unpaid well past its due date"""
    scan_time = (datetime.now(timezone.utc) + timedelta(days=3)).isoformat()

    response = client.post("/v1/admin/suspicion-scan", json={"now": scan_time})
    assert response.status_code == 200
    assert response.json()["flagged_account_ids"] == [customer_id]
    notifier.send_event.assert_any_await("account.flagged", {"account_id": customer_id})

    response = client.post("/v1/admin/suspicion-scan", json={"now": scan_time})
    assert response.json()["flagged_account_ids"] == []


def test_suspicion_scan_without_body(client: TestClient, payment_id: str):
    response = client.post("/v1/admin/suspicion-scan")
    assert response.status_code == 200
    assert response.json()["flagged_account_ids"] == []


def test_error_body_documented(client: TestClient):
    schema = client.get("/openapi.json").json()
    submit_responses = schema["paths"]["/v1/payments/{payment_id}/tranches/{installment_number}/submit"]["post"]
    assert submit_responses["responses"]["409"]["content"]["application/json"]["schema"] == {
        "$ref": "#/components/schemas/ErrorResponse"
    }
    assert set(schema["components"]["schemas"]["ErrorResponse"]["properties"]) == {"error", "entity_id", "detail"}


def test_resubmit_approved_tranche(client: TestClient, payment_id: str):
    submit(client, payment_id, 1, "TXN-1")
    adjudicate(client, payment_id, 1, "approved")

    response = submit(client, payment_id, 1, "TXN-1")
    assert response.status_code == 409
    assert response.json()["error"] == "illegal_transition"


def test_transition_logged_with_request_id(client: TestClient, payment_id: str, caplog):
    with caplog.at_level(logging.INFO):
        response = client.post(
            f"/v1/payments/{payment_id}/tranches/1/submit",
            json={"transaction_ref": "TXN-1"},
            headers={"X-Request-ID": "req-submit-1"},
        )

    assert response.status_code == 200
    transitions = [r for r in caplog.records if r.getMessage() == "Tranche transition applied"]
    assert [r.request_id for r in transitions] == ["req-submit-1"]
