"""
API tests for the ledger endpoints.

Covers authentication, per-user access rules, error mapping and the
service-role operator endpoints.
"""

from datetime import datetime, timedelta

import pytest
from starlette.requests import Request

from guroute.api.rate_limit import rate_limit_key
from guroute.auth.tokens import Principal

ALICE = "000304.alice"
BOB = "000305.bob"


@pytest.fixture
def alice_initialized(api_client, user_headers):
    response = api_client.post("/api/v1/credits/initialize", json={}, headers=user_headers)
    assert response.status_code == 200
    return response.json()


# ============================================================================
# AUTHENTICATION & ACCESS
# ============================================================================

class TestAuthentication:
    """Bearer tokens and row ownership."""

    def test_health(self, api_client):
        response = api_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_requires_token(self, api_client):
        response = api_client.get("/api/v1/credits")

        assert response.status_code == 401

    def test_rejects_bad_token(self, api_client):
        response = api_client.get("/api/v1/credits", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_cannot_read_other_users_ledger(self, api_client, alice_initialized, make_headers):
        response = api_client.get(
            "/api/v1/credits", params={"user_id": ALICE}, headers=make_headers(BOB)
        )

        assert response.status_code == 403

    def test_service_role_reads_any_ledger(self, api_client, alice_initialized, service_headers):
        response = api_client.get("/api/v1/credits", params={"user_id": ALICE}, headers=service_headers)

        assert response.status_code == 200
        assert response.json()["user_id"] == ALICE

    def test_service_role_initializes_and_spends_for_user(self, api_client, service_headers, user_headers):
        init = api_client.post(
            "/api/v1/credits/initialize", json={"user_id": ALICE}, headers=service_headers
        )
        spend = api_client.post(
            "/api/v1/credits/spend", json={"trip_id": "trip-1", "user_id": ALICE}, headers=service_headers
        )

        assert init.json()["balance"] == 2
        assert spend.json() == {"success": True, "reason": "credit_spent", "balance": 1}
        assert api_client.get("/api/v1/credits", headers=user_headers).json()["balance"] == 1
        not_created = api_client.get("/api/v1/credits", params={"user_id": "ops"}, headers=service_headers)
        assert not_created.status_code == 404

    def test_service_role_monthly_and_purchase_for_user(self, api_client, alice_initialized, service_headers):
        monthly = api_client.post("/api/v1/credits/monthly", params={"user_id": ALICE}, headers=service_headers)
        purchase = api_client.post(
            "/api/v1/store/purchases",
            json={"product_id": "com.guroute.credits.3", "transaction_id": "tx-9", "user_id": ALICE},
            headers=service_headers,
        )

        assert monthly.json()["new_balance"] == 3
        assert purchase.json() == {"balance": 6}

    def test_user_cannot_mutate_other_users_ledger(self, api_client, alice_initialized, make_headers):
        bob = make_headers(BOB)

        spend = api_client.post("/api/v1/credits/spend", json={"trip_id": "t", "user_id": ALICE}, headers=bob)
        monthly = api_client.post("/api/v1/credits/monthly", params={"user_id": ALICE}, headers=bob)
        subscription = api_client.post(
            "/api/v1/store/subscription",
            json={"product_id": "com.guroute.premium.monthly", "active": True, "user_id": ALICE},
            headers=bob,
        )

        assert spend.status_code == 403
        assert monthly.status_code == 403
        assert subscription.status_code == 403

    def test_admin_endpoints_need_service_role(self, api_client, alice_initialized, user_headers):
        response = api_client.post(
            "/api/v1/admin/credits/grant",
            json={"user_id": ALICE, "amount": 100},
            headers=user_headers,
        )

        assert response.status_code == 403


# ============================================================================
# CREDITS
# ============================================================================

class TestCreditsEndpoints:
    """Ledger lifecycle over HTTP."""

    def test_initialize(self, alice_initialized):
        assert alice_initialized == {"balance": 2, "referral_applied": False, "already_exists": False}

    def test_initialize_twice(self, api_client, alice_initialized, user_headers):
        response = api_client.post("/api/v1/credits/initialize", json={}, headers=user_headers)

        assert response.json()["already_exists"] is True
        assert response.json()["balance"] == 2

    def test_initialize_with_referral(self, api_client, alice_initialized, user_headers, make_headers):
        code = api_client.get("/api/v1/referral/code", headers=user_headers).json()["code"]

        response = api_client.post(
            "/api/v1/credits/initialize",
            json={"referral_code": code.lower()},
            headers=make_headers(BOB),
        )

        assert response.json() == {"balance": 3, "referral_applied": True, "already_exists": False}
        alice = api_client.get("/api/v1/credits", headers=user_headers).json()
        assert alice["balance"] == 3

    def test_get_credits_not_initialized(self, api_client, user_headers):
        response = api_client.get("/api/v1/credits", headers=user_headers)

        assert response.status_code == 404

    def test_get_credits(self, api_client, alice_initialized, user_headers):
        data = api_client.get("/api/v1/credits", headers=user_headers).json()

        assert data["balance"] == 2
        assert data["lifetime_earned"] == 2
        assert data["lifetime_spent"] == 0
        assert data["last_free_credit_at"] is None
        assert data["eligible_for_monthly_credit"] is True

    def test_spend_until_empty(self, api_client, alice_initialized, user_headers):
        for trip, expected in (("trip-1", 1), ("trip-2", 0)):
            response = api_client.post("/api/v1/credits/spend", json={"trip_id": trip}, headers=user_headers)
            assert response.status_code == 200
            assert response.json() == {"success": True, "reason": "credit_spent", "balance": expected}

        response = api_client.post("/api/v1/credits/spend", json={"trip_id": "trip-3"}, headers=user_headers)

        assert response.status_code == 402
        assert response.json()["detail"] == {"success": False, "reason": "insufficient_credits", "balance": 0}

    def test_monthly_credit(self, api_client, alice_initialized, user_headers):
        first = api_client.post("/api/v1/credits/monthly", headers=user_headers).json()
        second = api_client.post("/api/v1/credits/monthly", headers=user_headers).json()

        assert first["granted"] is True
        assert first["new_balance"] == 3
        assert second["granted"] is False
        assert second["reason"] == "too_soon"
        assert second["next_eligible_at"] is not None

    def test_transactions(self, api_client, alice_initialized, user_headers):
        api_client.post("/api/v1/credits/spend", json={"trip_id": "trip-1"}, headers=user_headers)

        data = api_client.get("/api/v1/credits/transactions", headers=user_headers).json()

        assert data["limit"] == 50
        assert [t["type"] for t in data["transactions"]] == ["trip_generation", "welcome_bonus"]
        assert data["transactions"][0]["reference_id"] == "trip-1"

    def test_transactions_limit_validated(self, api_client, user_headers):
        response = api_client.get("/api/v1/credits/transactions", params={"limit": 0}, headers=user_headers)

        assert response.status_code == 422


# ============================================================================
# STORE
# ============================================================================

class TestStoreEndpoints:
    """Purchase and subscription reports."""

    def test_products(self, api_client):
        products = api_client.get("/api/v1/store/products").json()

        assert {p["id"] for p in products} >= {"com.guroute.credits.3", "com.guroute.premium.yearly"}

    def test_purchase(self, api_client, alice_initialized, user_headers):
        body = {"product_id": "com.guroute.credits.10", "transaction_id": "2000000123"}

        first = api_client.post("/api/v1/store/purchases", json=body, headers=user_headers)
        repeat = api_client.post("/api/v1/store/purchases", json=body, headers=user_headers)

        assert first.json() == {"balance": 12}
        assert repeat.json() == {"balance": 12}

    def test_purchase_replayed_by_other_user(self, api_client, alice_initialized, user_headers, make_headers):
        body = {"product_id": "com.guroute.credits.3", "transaction_id": "2000000123"}
        api_client.post("/api/v1/store/purchases", json=body, headers=user_headers)
        api_client.post("/api/v1/credits/initialize", json={}, headers=make_headers(BOB))

        response = api_client.post("/api/v1/store/purchases", json=body, headers=make_headers(BOB))

        assert response.status_code == 409

    def test_purchase_unknown_product(self, api_client, alice_initialized, user_headers):
        response = api_client.post(
            "/api/v1/store/purchases",
            json={"product_id": "com.example.other", "transaction_id": "1"},
            headers=user_headers,
        )

        assert response.status_code == 422

    def test_purchase_without_ledger(self, api_client, user_headers):
        response = api_client.post(
            "/api/v1/store/purchases",
            json={"product_id": "com.guroute.credits.3", "transaction_id": "1"},
            headers=user_headers,
        )

        assert response.status_code == 404

    def test_subscription_makes_spending_free(self, api_client, alice_initialized, user_headers):
        expires = (datetime.utcnow() + timedelta(days=30)).isoformat() + "Z"

        response = api_client.post(
            "/api/v1/store/subscription",
            json={"product_id": "com.guroute.premium.monthly", "active": True, "expires_at": expires},
            headers=user_headers,
        )
        assert response.json() == {"is_premium": True}
        assert api_client.get("/api/v1/store/premium", headers=user_headers).json() == {"is_premium": True}

        spend = api_client.post("/api/v1/credits/spend", json={"trip_id": "trip-1"}, headers=user_headers)
        assert spend.json() == {"success": True, "reason": "premium", "balance": -1}


# ============================================================================
# REFERRAL
# ============================================================================

class TestReferralEndpoints:
    """Codes, validation and stats."""

    def test_code_and_stats(self, api_client, alice_initialized, user_headers):
        code = api_client.get("/api/v1/referral/code", headers=user_headers).json()
        stats = api_client.get("/api/v1/referral/stats", headers=user_headers).json()

        assert code["code"].startswith("GR-")
        assert code["code"] in code["share_text"]
        assert stats["code"] == code["code"]
        assert stats["total_referrals"] == 0

    def test_stats_without_code(self, api_client, make_headers):
        response = api_client.get("/api/v1/referral/stats", headers=make_headers("fresh-user"))

        assert response.status_code == 404

    def test_validate_is_public(self, api_client, alice_initialized, user_headers):
        code = api_client.get("/api/v1/referral/code", headers=user_headers).json()["code"]

        valid = api_client.post("/api/v1/referral/validate", json={"code": code})
        invalid = api_client.post("/api/v1/referral/validate", json={"code": "GR-XXXXXX"})

        assert valid.json() == {"valid": True, "bonus_credits": 1}
        assert invalid.json()["valid"] is False

    def test_history(self, api_client, alice_initialized, user_headers, make_headers):
        code = api_client.get("/api/v1/referral/code", headers=user_headers).json()["code"]
        api_client.post("/api/v1/credits/initialize", json={"referral_code": code}, headers=make_headers(BOB))

        history = api_client.get("/api/v1/referral/history", headers=make_headers(BOB)).json()

        assert len(history) == 1
        assert history[0]["referrer_user_id"] == ALICE
        assert history[0]["referred_user_id"] == BOB


# ============================================================================
# ADMIN
# ============================================================================

class TestAdminEndpoints:
    """Service-role operations."""

    def test_grant(self, api_client, alice_initialized, service_headers):
        response = api_client.post(
            "/api/v1/admin/credits/grant",
            json={"user_id": ALICE, "amount": 5, "reason": "Beta tester"},
            headers=service_headers,
        )

        assert response.json() == {"user_id": ALICE, "balance": 7}

    def test_grant_invalid_amount(self, api_client, alice_initialized, service_headers):
        response = api_client.post(
            "/api/v1/admin/credits/grant",
            json={"user_id": ALICE, "amount": -5},
            headers=service_headers,
        )

        assert response.status_code == 422

    def test_refund(self, api_client, alice_initialized, user_headers, service_headers):
        api_client.post("/api/v1/credits/spend", json={"trip_id": "trip-1"}, headers=user_headers)
        body = {"user_id": ALICE, "trip_id": "trip-1"}

        first = api_client.post("/api/v1/admin/credits/refund", json=body, headers=service_headers)
        second = api_client.post("/api/v1/admin/credits/refund", json=body, headers=service_headers)

        assert first.json() == {"user_id": ALICE, "balance": 2}
        assert second.status_code == 409

    def test_reconcile(self, api_client, alice_initialized, service_headers):
        response = api_client.get(f"/api/v1/admin/credits/{ALICE}/reconcile", headers=service_headers)

        data = response.json()
        assert data["consistent"] is True
        assert data["balance"] == data["log_total"] == 2

    def test_reconcile_unknown_user(self, api_client, service_headers):
        response = api_client.get("/api/v1/admin/credits/ghost/reconcile", headers=service_headers)

        assert response.status_code == 404

    def test_deactivate_code(self, api_client, alice_initialized, user_headers, service_headers):
        code = api_client.get("/api/v1/referral/code", headers=user_headers).json()["code"]

        response = api_client.post(
            f"/api/v1/admin/referral/{code}/active", json={"active": False}, headers=service_headers
        )

        assert response.json() == {"code": code, "is_active": False}
        assert api_client.post("/api/v1/referral/validate", json={"code": code}).json()["valid"] is False


# ============================================================================
# REQUEST PLUMBING
# ============================================================================

def _request(client=("203.0.113.7", 5000)):
    return Request({"type": "http", "method": "GET", "path": "/", "headers": [], "client": client})


class TestRequestPlumbing:
    """Rate limit keys and request ids."""

    def test_anonymous_limited_per_address(self):
        assert rate_limit_key(_request()) == "ip:203.0.113.7"

    def test_authenticated_limited_per_user(self):
        request = _request()
        request.state.principal = Principal(user_id=ALICE, role="authenticated")

        assert rate_limit_key(request) == f"user:{ALICE}"

    def test_request_id_echoed(self, api_client):
        response = api_client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_generated(self, api_client):
        response = api_client.get("/health")

        assert len(response.headers["X-Request-ID"]) == 32
