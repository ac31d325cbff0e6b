"""Integration tests for API endpoints"""

import logging
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient
from lendit_gateway.api.main import create_app
from lendit_gateway.config import Settings
from lendit_gateway.infrastructure.clients.razorpay import CapturedPayment, compute_signature

from conftest import BORROWER, LENDER, TestingSessionLocal

BORROWER_HEADERS = {"X-User-ID": BORROWER}
LENDER_HEADERS = {"X-User-ID": LENDER}


def _create(client: TestClient, amount: str = "5000", rate: int = 250) -> str:
    response = client.post(
        "/v1/agreements",
        json={"amount": amount, "purpose": "Laptop", "duration_months": 6, "interest_rate_bps": rate},
        headers=BORROWER_HEADERS,
    )
    assert response.status_code == 201
    return response.json()["id"]


def _activate(client: TestClient) -> str:
    agreement_id = _create(client)
    assert client.post(f"/v1/agreements/{agreement_id}/claim", json={}, headers=LENDER_HEADERS).status_code == 200
    client.post(f"/v1/agreements/{agreement_id}/sign", json={"signature_data": "b-sig"}, headers=BORROWER_HEADERS)
    client.post(f"/v1/agreements/{agreement_id}/sign", json={"signature_data": "l-sig"}, headers=LENDER_HEADERS)
    response = client.post(f"/v1/agreements/{agreement_id}/activate")
    assert response.status_code == 200
    return agreement_id


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "lendit_loan_requests_total" in response.text


def test_request_id_header(client: TestClient):
    response = client.get("/health")
    assert response.headers["X-Request-ID"]


def test_create_request_requires_identity(client: TestClient):
    response = client.post("/v1/agreements", json={"amount": "100", "purpose": "x", "duration_months": 1})
    assert response.status_code == 401


def test_create_request(client: TestClient):
    response = client.post(
        "/v1/agreements",
        json={"amount": "5000", "purpose": "Laptop", "duration_months": 6, "interest_rate_bps": 250},
        headers=BORROWER_HEADERS,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["lender_id"] is None
    assert Decimal(data["total_due"]) == Decimal("5062.50")
    assert Decimal(data["outstanding"]) == Decimal("5062.50")


def test_create_request_rejects_non_positive_amount(client: TestClient):
    response = client.post(
        "/v1/agreements",
        json={"amount": "0", "purpose": "Laptop", "duration_months": 6},
        headers=BORROWER_HEADERS,
    )
    assert response.status_code == 422


def test_open_requests_and_claim(client: TestClient):
    agreement_id = _create(client)
    assert [a["id"] for a in client.get("/v1/agreements/open").json()] == [agreement_id]

    response = client.post(f"/v1/agreements/{agreement_id}/claim", json={"lender_name": "Lena"}, headers=LENDER_HEADERS)

    assert response.status_code == 200
    assert response.json()["lender_id"] == LENDER
    assert client.get("/v1/agreements/open").json() == []
    assert [a["id"] for a in client.get("/v1/agreements", headers=LENDER_HEADERS).json()] == [agreement_id]


def test_second_claim_conflicts(client: TestClient):
    agreement_id = _create(client)
    client.post(f"/v1/agreements/{agreement_id}/claim", json={}, headers=LENDER_HEADERS)

    response = client.post(f"/v1/agreements/{agreement_id}/claim", json={}, headers={"X-User-ID": "late_lender"})

    assert response.status_code == 409
    assert client.get(f"/v1/agreements/{agreement_id}").json()["lender_id"] == LENDER


def test_sign_flow(client: TestClient):
    agreement_id = _create(client)
    client.post(f"/v1/agreements/{agreement_id}/claim", json={}, headers=LENDER_HEADERS)

    first = client.post(f"/v1/agreements/{agreement_id}/sign", json={"signature_data": "b"}, headers=BORROWER_HEADERS)
    second = client.post(f"/v1/agreements/{agreement_id}/sign", json={"signature_data": "l"}, headers=LENDER_HEADERS)

    assert first.json()["both_signed"] is False
    assert second.json()["both_signed"] is True
    assert second.json()["agreement"]["lender_signed"] is True


def test_sign_by_stranger_is_forbidden(client: TestClient):
    agreement_id = _create(client)

    response = client.post(
        f"/v1/agreements/{agreement_id}/sign", json={"signature_data": "x"}, headers={"X-User-ID": "stranger"}
    )
    assert response.status_code == 403


def test_activate_without_signatures_conflicts(client: TestClient):
    agreement_id = _create(client)

    response = client.post(f"/v1/agreements/{agreement_id}/activate")

    assert response.status_code == 409
    assert client.get(f"/v1/agreements/{agreement_id}").json()["status"] == "pending"


def test_activate_with_wrong_deposit_conflicts(client: TestClient):
    agreement_id = _create(client)
    client.post(f"/v1/agreements/{agreement_id}/claim", json={}, headers=LENDER_HEADERS)
    client.post(f"/v1/agreements/{agreement_id}/sign", json={"signature_data": "b"}, headers=BORROWER_HEADERS)
    client.post(f"/v1/agreements/{agreement_id}/sign", json={"signature_data": "l"}, headers=LENDER_HEADERS)

    response = client.post(f"/v1/agreements/{agreement_id}/activate", json={"deposited_amount": "10"})
    assert response.status_code == 409

    response = client.post(f"/v1/agreements/{agreement_id}/activate", json={"deposited_amount": "5000"})
    assert response.status_code == 200
    assert response.json()["status"] == "active"
    assert response.json()["ends_at"] is not None


def test_repayment_to_completion_updates_trust_scores(client: TestClient):
    agreement_id = _activate(client)

    partial = client.post(f"/v1/agreements/{agreement_id}/payments", json={"amount": "2000", "payment_reference": "UTR1"})
    final = client.post(f"/v1/agreements/{agreement_id}/payments", json={"amount": "3062.50", "payment_reference": "UTR2"})

    assert partial.status_code == 200
    assert partial.json()["status"] == "active"
    assert final.json()["completed"] is True
    assert final.json()["status"] == "completed"
    assert client.get(f"/v1/agreements/{agreement_id}").json()["status"] == "completed"

    transactions = client.get(f"/v1/agreements/{agreement_id}/transactions").json()
    assert [t["payment_reference"] for t in transactions] == ["UTR1", "UTR2"]

    borrower = client.get(f"/v1/trust-scores/{BORROWER}").json()
    assert borrower["overall_score"] > 300


def test_duplicate_payment_reference_is_rejected(client: TestClient):
    agreement_id = _activate(client)
    client.post(f"/v1/agreements/{agreement_id}/payments", json={"amount": "100", "payment_reference": "UTR1"})

    response = client.post(f"/v1/agreements/{agreement_id}/payments", json={"amount": "100", "payment_reference": "UTR1"})

    assert response.status_code == 422
    assert Decimal(client.get(f"/v1/agreements/{agreement_id}").json()["amount_repaid"]) == Decimal("100.00")


def test_default_before_end_date_conflicts(client: TestClient):
    agreement_id = _activate(client)

    response = client.post(f"/v1/agreements/{agreement_id}/default")
    assert response.status_code == 409


def test_cancel_rules(client: TestClient):
    agreement_id = _create(client)

    assert client.post(f"/v1/agreements/{agreement_id}/cancel", headers=LENDER_HEADERS).status_code == 403

    response = client.post(f"/v1/agreements/{agreement_id}/cancel", headers=BORROWER_HEADERS)
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"


def test_unknown_agreement_is_404(client: TestClient):
    assert client.get("/v1/agreements/missing").status_code == 404


def test_payment_instructions(client: TestClient):
    agreement_id = _activate(client)

    response = client.get(f"/v1/agreements/{agreement_id}/payment-instructions")

    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["amount"]) == Decimal("5062.50")
    assert data["upi_link"].startswith("upi://pay?")
    assert data["reference"].startswith("LOAN_")
    assert len(data["bank_transfer_instructions"]) == 9


def test_payment_instructions_with_unknown_transfer_method(client: TestClient):
    agreement_id = _activate(client)
    url = f"/v1/agreements/{agreement_id}/payment-instructions"

    assert client.get(url, params={"transfer_method": "imps"}).json()["estimated_time"] == "5-10 minutes"
    assert client.get(url, params={"transfer_method": "swift"}).status_code == 422


def test_rating_after_completion(client: TestClient):
    agreement_id = _activate(client)
    client.post(f"/v1/agreements/{agreement_id}/payments", json={"amount": "5062.50"})

    response = client.post(
        f"/v1/agreements/{agreement_id}/ratings",
        json={"rating": 5, "categories": {"communication": 5}, "review_text": "Paid early"},
        headers=LENDER_HEADERS,
    )

    assert response.status_code == 201
    assert response.json()["rated_user_id"] == BORROWER
    duplicate = client.post(f"/v1/agreements/{agreement_id}/ratings", json={"rating": 4}, headers=LENDER_HEADERS)
    assert duplicate.status_code == 409
    ratings = client.get(f"/v1/trust-scores/{BORROWER}/ratings").json()
    assert [r["rating"] for r in ratings] == [5]


@patch("lendit_gateway.infrastructure.clients.razorpay.RazorpayClient.fetch_payment", new_callable=AsyncMock)
def test_razorpay_capture(mock_fetch: AsyncMock, client: TestClient):
    agreement_id = _activate(client)
    mock_fetch.return_value = CapturedPayment(
        payment_id="pay_1", order_id="order_1", amount=Decimal("5062.50"), status="captured", method="card"
    )

    response = client.post(
        "/v1/payments/razorpay/verify",
        json={
            "agreement_id": agreement_id,
            "razorpay_order_id": "order_1",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": compute_signature("order_1", "pay_1", "test_secret"),
        },
    )

    assert response.status_code == 200
    assert response.json()["completed"] is True
    mock_fetch.assert_awaited_once_with("pay_1")


@patch("lendit_gateway.infrastructure.clients.razorpay.RazorpayClient.fetch_payment", new_callable=AsyncMock)
def test_razorpay_capture_with_forged_signature(mock_fetch: AsyncMock, client: TestClient):
    agreement_id = _activate(client)

    response = client.post(
        "/v1/payments/razorpay/verify",
        json={
            "agreement_id": agreement_id,
            "razorpay_order_id": "order_1",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": "forged",
        },
    )

    assert response.status_code == 400
    mock_fetch.assert_not_called()


def test_trust_score_defaults_to_neutral(client: TestClient):
    response = client.get("/v1/trust-scores/new_user")

    assert response.status_code == 200
    assert response.json()["overall_score"] == 300
    assert response.json()["score_tier"] == "bronze"


def test_trust_event_and_history(client: TestClient):
    response = client.post(
        "/v1/trust-scores/u1/events",
        json={"event_type": "verification_completed", "reason": "KYC passed", "reference_id": "kyc-1"},
        headers={"X-User-ID": "u1"},
    )

    assert response.status_code == 201
    assert response.json()["change_amount"] == 5
    history = client.get("/v1/trust-scores/u1/history", params={"limit": 5}).json()
    assert [h["event_type"] for h in history["history"]] == ["verification_completed"]


def test_unknown_trust_event_is_rejected(client: TestClient):
    response = client.post(
        "/v1/trust-scores/u1/events", json={"event_type": "bribe", "reason": "?"}, headers={"X-User-ID": "u1"}
    )
    assert response.status_code == 422


def test_trust_event_requires_identity(client: TestClient):
    response = client.post("/v1/trust-scores/u1/events", json={"event_type": "profile_updated", "reason": "Photo"})

    assert response.status_code == 401
    assert client.get("/v1/trust-scores/u1/history").json()["history"] == []


def test_trust_event_for_another_user_is_forbidden(client: TestClient):
    response = client.post(
        "/v1/trust-scores/u1/events",
        json={"event_type": "verification_completed", "reason": "KYC passed"},
        headers={"X-User-ID": "u2"},
    )

    assert response.status_code == 403
    assert client.get("/v1/trust-scores/u1/history").json()["history"] == []


@pytest.mark.parametrize("event_type", ["achievement_earned", "loan_completed", "payment_made", "rating_received"])
def test_system_trust_events_cannot_be_submitted(client: TestClient, event_type: str):
    response = client.post(
        "/v1/trust-scores/u1/events",
        json={"event_type": event_type, "reason": "Free points", "bonus": 500, "rating": 5},
        headers={"X-User-ID": "u1"},
    )

    assert response.status_code == 422
    assert client.get("/v1/trust-scores/u1").json()["overall_score"] == 300
    assert client.get("/v1/trust-scores/u1/history").json()["history"] == []


def test_recompute_and_breakdown(client: TestClient):
    assert client.post("/v1/trust-scores/u1/recompute").json()["overall_score"] == 300

    breakdown = client.get("/v1/trust-scores/u1/breakdown").json()

    assert [c["component"] for c in breakdown["components"]][0] == "repayment"
    assert breakdown["recommendations"]
    assert breakdown["achievements"] == []


def test_multiple_scores_and_platform_stats(client: TestClient):
    client.get("/v1/trust-scores/u1")
    client.get("/v1/trust-scores/u2")

    scores = client.get("/v1/trust-scores", params={"user_ids": "u1,u2,ghost"}).json()
    stats = client.get("/v1/platform/trust-stats").json()

    assert sorted(s["user_id"] for s in scores) == ["u1", "u2"]
    assert stats["total_users"] == 2
    assert stats["average_score"] == 300


@pytest.mark.parametrize("path", ["/v1/trust-scores/u1/history?limit=0", "/v1/agreements/open?limit=500"])
def test_query_limits_are_validated(client: TestClient, path: str):
    assert client.get(path).status_code == 422


@pytest.mark.parametrize("amount", ["1e30", "123456789012345678.91"])
def test_create_request_rejects_oversized_amount(client: TestClient, amount: str):
    response = client.post(
        "/v1/agreements",
        json={"amount": amount, "purpose": "Laptop", "duration_months": 6},
        headers=BORROWER_HEADERS,
    )

    assert response.status_code == 422
    assert client.get("/v1/agreements", headers=BORROWER_HEADERS).json() == []


def test_agreement_reports_informational_emi(client: TestClient):
    agreement_id = _create(client)

    data = client.get(f"/v1/agreements/{agreement_id}").json()

    assert Decimal(data["monthly_payment"]) == Decimal("833.94")
    assert Decimal(data["total_due"]) == Decimal("5062.50")


def test_loan_options_comparison(client: TestClient):
    response = client.get(
        "/v1/loan-options",
        params={"amount": "10000", "duration_months": 12, "rates_bps": [1800, 1200], "sort_by": "total"},
    )

    assert response.status_code == 200
    options = response.json()
    assert [o["interest_rate_bps"] for o in options] == [1200, 1800]
    assert Decimal(options[0]["monthly_payment"]) == Decimal("888.49")
    assert Decimal(options[0]["total_repayment"]) == Decimal("10661.85")
    assert Decimal(options[0]["total_interest"]) == Decimal("661.85")


@pytest.mark.parametrize(
    "params",
    [
        {"amount": "10000", "duration_months": 12, "rates_bps": [1200], "sort_by": "lender"},
        {"amount": "1e30", "duration_months": 12, "rates_bps": [1200]},
        {"amount": "10000", "duration_months": 0, "rates_bps": [1200]},
    ],
)
def test_loan_options_rejects_bad_input(client: TestClient, params: dict):
    assert client.get("/v1/loan-options", params=params).status_code == 422


def test_users_by_score_range(client: TestClient):
    client.get("/v1/trust-scores/u1")
    client.post(
        "/v1/trust-scores/u2/events",
        json={"event_type": "verification_completed", "reason": "KYC passed"},
        headers={"X-User-ID": "u2"},
    )

    response = client.get("/v1/platform/trust-scores", params={"min_score": 0, "max_score": 850})
    narrow = client.get("/v1/platform/trust-scores", params={"min_score": 301, "max_score": 850, "limit": 5})

    assert response.status_code == 200
    assert [s["user_id"] for s in response.json()] == ["u2", "u1"]
    assert [s["user_id"] for s in narrow.json()] == ["u2"]


@pytest.mark.parametrize(
    "params",
    [{"min_score": 500, "max_score": 400}, {"min_score": 0, "max_score": 900}, {"min_score": 0, "max_score": 850, "limit": 0}],
)
def test_users_by_score_range_rejects_bad_bounds(client: TestClient, params: dict):
    assert client.get("/v1/platform/trust-scores", params=params).status_code == 422


def test_request_id_is_logged_with_transitions_and_score_changes(client: TestClient, caplog):
    with caplog.at_level(logging.INFO, logger="lendit_gateway"):
        client.post(
            "/v1/agreements",
            json={"amount": "1000", "purpose": "Rent", "duration_months": 3},
            headers={**BORROWER_HEADERS, "X-Request-ID": "req-create"},
        )
        client.post(
            f"/v1/trust-scores/{BORROWER}/events",
            json={"event_type": "profile_updated", "reason": "Added photo"},
            headers={**BORROWER_HEADERS, "X-Request-ID": "req-event"},
        )

    transitions = [r for r in caplog.records if r.getMessage() == "Agreement transition"]
    score_changes = [r for r in caplog.records if r.getMessage() == "Trust score updated"]
    assert [r.request_id for r in transitions] == ["req-create"]
    assert score_changes and all(r.request_id == "req-event" for r in score_changes)


def test_configured_service_name_reaches_logs_and_health(db):
    app = create_app(
        Settings(service_name="lendit-staging", razorpay_key_secret="test_secret"), session_factory=TestingSessionLocal
    )

    formatters = [h.formatter for h in logging.getLogger().handlers]
    assert any(getattr(f, "service_name", None) == "lendit-staging" for f in formatters)
    assert TestClient(app).get("/health").json()["service"] == "lendit-staging"
