"""
Reconciliation API Tests

Tests for the reconciliation endpoints:
- GET /api/reconciliation/status - Module status (public)
- GET /api/reconciliation/options - Default match options (public)
- POST /api/reconciliation/match - Match statement against book transactions
- Error envelopes and status codes
- Request ID and timing headers
"""

import pytest
from fastapi.testclient import TestClient

from config import Settings, get_settings
from middleware.internal_auth import _get_valid_api_keys
from server import app

API_KEY = "test-internal-key-0123456789abcdef"


@pytest.fixture
def settings_override():
    """Install a fresh Settings instance for the duration of a test."""
    def install(**values):
        app.dependency_overrides[get_settings] = lambda: Settings(_env_file=None, **values)
    yield install
    app.dependency_overrides.pop(get_settings, None)


@pytest.fixture
def api_client(monkeypatch, settings_override):
    """Client with a known internal API key configured."""
    monkeypatch.setenv("INTERNAL_API_KEY", API_KEY)
    monkeypatch.delenv("INTERNAL_API_KEYS", raising=False)
    _get_valid_api_keys.cache_clear()
    settings_override()
    yield TestClient(app)
    _get_valid_api_keys.cache_clear()


@pytest.fixture
def authenticated_client(api_client):
    """Client sending the internal API key."""
    api_client.headers.update({"X-Internal-Api-Key": API_KEY, "X-Service-Name": "ledger-sync"})
    return api_client


def match_body(statements, books, **extra):
    return {"sessionId": "rec-001", "statementTransactions": statements, "bookTransactions": books, **extra}


class TestPublicEndpoints:
    """Tests for public endpoints (no auth required)."""

    def test_root(self, api_client):
        response = api_client.get("/api/")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.headers["X-Request-ID"].startswith("req-")
        assert float(response.headers["X-Process-Time"]) >= 0

    def test_request_id_is_echoed(self, api_client):
        response = api_client.get("/api/health/live", headers={"X-Request-ID": "trace-42"})

        assert response.status_code == 200
        assert response.json()["status"] == "alive"
        assert response.headers["X-Request-ID"] == "trace-42"

    def test_status_endpoint(self, api_client):
        response = api_client.get("/api/reconciliation/status")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["module"] == "reconciliation"
        assert data["status"] == "operational"
        assert data["features"]["custom_rules"] is True
        assert data["criteria"] == ["exact_match", "amount_date_match", "fuzzy_description_match", "rule_match"]
        assert "blended" in data["similarity_metrics"]
        assert "minConfidence" in data["default_options"]

    def test_default_options(self, api_client, settings_override):
        settings_override(MATCH_DATE_WINDOW_DAYS=5, MATCH_CURRENCY="GBP")

        response = api_client.get("/api/reconciliation/options")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["minConfidence"] == 0.5
        assert data["dateWindowDays"] == 5
        assert data["amountEpsilon"] == 1.0
        assert data["allowFuzzyAmounts"] is False
        assert data["currency"] == "GBP"
        assert data["rules"] == []

    def test_unknown_route_uses_error_envelope(self, api_client):
        response = api_client.get("/api/reconciliation/unknown")

        assert response.status_code == 404
        assert response.json()["success"] is False
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestAuthentication:

    def test_missing_api_key(self, api_client):
        response = api_client.post("/api/reconciliation/match", json=match_body([], []))

        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": {"code": "UNAUTHORIZED", "message": "Missing internal API key"},
        }

    def test_invalid_api_key(self, api_client):
        response = api_client.post(
            "/api/reconciliation/match",
            json=match_body([], []),
            headers={"X-Internal-Api-Key": "wrong"}
        )

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid internal API key"


class TestMatchEndpoint:

    def test_exact_match(self, authenticated_client):
        response = authenticated_client.post("/api/reconciliation/match", json=match_body(
            [{"id": "stmt-1", "amount": 100, "date": "2025-01-10", "reference": "REF-1"}],
            [{"id": "book-1", "amount": 100, "date": "2025-01-10", "reference": "REF-1"}],
        ))

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert len(data["matches"]) == 1
        match = data["matches"][0]
        assert match["statementTransaction"]["id"] == "stmt-1"
        assert match["bookTransaction"]["id"] == "book-1"
        assert match["criteria"] == "exact_match"
        assert match["confidence"] == 1.0
        assert match["reason"] == "Exact amount match ($100.00) with matching reference REF-1"
        assert match["explanation"].startswith("Matched on amount and reference.")
        assert data["unmatchedStatements"] == []
        assert data["unmatchedBooks"] == []
        assert data["confidence"] == 1.0
        assert data["aiInsights"][0] == "Found 1 match out of 1 statement transaction"

    def test_amount_date_match(self, authenticated_client):
        response = authenticated_client.post("/api/reconciliation/match", json=match_body(
            [{"id": "stmt-1", "amount": 100, "date": "2025-01-10"}],
            [{"id": "book-1", "amount": 100, "date": "2025-01-12"}],
        ))

        match = response.json()["data"]["matches"][0]
        assert match["criteria"] == "amount_date_match"
        assert 0.6 < match["confidence"] < 0.85
        assert match["confidenceLevel"] == "medium"

    def test_no_match(self, authenticated_client):
        response = authenticated_client.post("/api/reconciliation/match", json=match_body(
            [{"id": "stmt-1", "amount": 100, "date": "2025-01-10"}],
            [{"id": "book-1", "amount": 250, "date": "2025-02-20"}],
        ))

        data = response.json()["data"]
        assert data["matches"] == []
        assert [t["id"] for t in data["unmatchedStatements"]] == ["stmt-1"]
        assert [t["id"] for t in data["unmatchedBooks"]] == ["book-1"]
        assert data["unmatchedBooks"][0]["side"] == "book"

    def test_option_overrides(self, authenticated_client):
        response = authenticated_client.post("/api/reconciliation/match", json=match_body(
            [{"id": "s", "amount": 100, "date": "2025-01-10"}],
            [{"id": "b", "amount": 100, "date": "2025-01-13"}],
            options={"minConfidence": 0.7},
        ))

        assert response.status_code == 200
        assert response.json()["data"]["matches"] == []

    def test_malformed_transaction_is_reported(self, authenticated_client):
        response = authenticated_client.post("/api/reconciliation/match", json=match_body(
            [{"id": "s", "amount": "abc", "date": "2025-01-10"}],
            [],
        ))

        assert response.status_code == 200
        unmatched = response.json()["data"]["unmatchedStatements"][0]
        assert unmatched["issue"] == "invalid amount"
        assert unmatched["amount"] is None


class TestMatchErrors:

    def test_missing_collection(self, authenticated_client):
        response = authenticated_client.post(
            "/api/reconciliation/match",
            json={"statementTransactions": []}
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "BAD_REQUEST"
        assert error["details"]["errors"][0]["loc"] == ["body", "bookTransactions"]

    def test_collection_must_be_array(self, authenticated_client):
        response = authenticated_client.post(
            "/api/reconciliation/match",
            json={"statementTransactions": {"id": "s"}, "bookTransactions": []}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BAD_REQUEST"

    def test_null_entry(self, authenticated_client):
        response = authenticated_client.post("/api/reconciliation/match", json=match_body([None], []))

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "BAD_REQUEST"
        assert error["details"] == {"side": "statement", "index": 0}

    def test_invalid_options(self, authenticated_client):
        response = authenticated_client.post(
            "/api/reconciliation/match",
            json=match_body([], [], options={"dateWindowDays": -1})
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid match options"

    def test_too_many_transactions(self, authenticated_client, settings_override):
        settings_override(MATCH_MAX_TRANSACTIONS_PER_SIDE=2)
        books = [{"id": f"b{i}", "amount": i, "date": "2025-01-10"} for i in range(3)]

        response = authenticated_client.post("/api/reconciliation/match", json=match_body([], books))

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Too many book transactions: 3 exceeds the limit of 2"

    def test_non_finite_amount_is_server_error(self, authenticated_client):
        response = authenticated_client.post("/api/reconciliation/match", json=match_body(
            [{"id": "s1", "amount": "NaN", "date": "2025-01-10"}],
            [],
        ))

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "INTERNAL_SERVER_ERROR"
        assert error["message"] == "Non-finite amount on statement transaction s1"
        assert "X-Request-ID" in response.headers
