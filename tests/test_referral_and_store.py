"""
Service layer tests for referrals, profiles and store events.
"""

from datetime import datetime, timedelta

import pytest

from guroute.credits.exceptions import LedgerNotFoundError, StoreTransactionConflictError, UnknownProductError
from guroute.credits.service import LedgerService
from guroute.referral.service import generate_code, normalize_code
from guroute.store.products import CREDIT_PACK_IDS, CREDITS_5_ID, PREMIUM_MONTHLY_ID, SUBSCRIPTION_IDS
from guroute.store.service import StoreService


# ============================================================================
# REFERRAL CODES
# ============================================================================

class TestReferralCodes:
    """Code generation, lookup and activation."""

    def test_generate_code_format(self):
        code = generate_code()

        assert code.startswith("GR-")
        suffix = code[3:]
        assert len(suffix) == 6
        assert suffix == suffix.upper()
        int(suffix, 16)

    def test_normalize_code(self):
        assert normalize_code("  gr-ab12cd ") == "GR-AB12CD"
        assert normalize_code("   ") is None
        assert normalize_code(None) is None

    def test_get_or_create_code_is_stable(self, referrals):
        first = referrals.get_or_create_code("user-1")
        second = referrals.get_or_create_code("user-1")

        assert first.code == second.code

    def test_codes_are_unique_per_user(self, referrals):
        codes = {referrals.get_or_create_code(f"user-{i}").code for i in range(20)}

        assert len(codes) == 20

    def test_validate_code(self, referrals, referrer):
        assert referrals.validate_code(referrer.code.lower()).user_id == referrer.user_id
        assert referrals.validate_code("GR-000000") is None
        assert referrals.validate_code("") is None

    def test_deactivated_code_fails_validation(self, referrals, referrer):
        updated = referrals.set_active(referrer.code, False)

        assert updated.is_active is False
        assert referrals.validate_code(referrer.code) is None

        referrals.set_active(referrer.code, True)
        assert referrals.validate_code(referrer.code) is not None

    def test_set_active_unknown_code(self, referrals):
        assert referrals.set_active("GR-FFFFFF", False) is None

    def test_stats_without_code(self, referrals):
        assert referrals.get_stats("nobody") is None

    def test_stats_link(self, referrals, referrer):
        stats = referrals.get_stats(referrer.user_id)

        assert stats["code"] == referrer.code
        assert stats["link"].endswith("/" + referrer.code)
        assert stats["total_referrals"] == 0

    def test_history_visible_to_both_sides(self, ledger, referrals, referrer):
        ledger.initialize_user_credits("user-2", referrer.code)
        ledger.initialize_user_credits("user-3", referrer.code)

        assert len(referrals.get_history(referrer.user_id)) == 2
        assert len(referrals.get_history("user-2")) == 1
        assert referrals.get_history("stranger") == []

    def test_share_text_contains_code(self, referrer):
        from guroute.referral.service import ReferralService

        text = ReferralService.share_text(referrer.code)

        assert referrer.code in text


# ============================================================================
# PROFILES
# ============================================================================

class TestPremium:
    """Premium flag and expiry."""

    def test_unknown_user_is_not_premium(self, profiles):
        assert profiles.is_premium("nobody") is False

    def test_premium_without_expiry(self, profiles):
        profiles.set_premium("user-1", True)

        assert profiles.is_premium("user-1") is True

    def test_premium_expiry(self, profiles):
        expires = datetime(2026, 6, 1)
        profiles.set_premium("user-1", True, expires_at=expires)

        assert profiles.is_premium("user-1", now=expires - timedelta(seconds=1)) is True
        assert profiles.is_premium("user-1", now=expires) is False

    def test_deactivation_clears_expiry(self, profiles):
        profiles.set_premium("user-1", True, expires_at=datetime(2030, 1, 1))
        profile = profiles.set_premium("user-1", False)

        assert profile.is_premium is False
        assert profile.premium_expires_at is None


# ============================================================================
# STORE EVENTS
# ============================================================================

class TestStore:
    """Purchases and subscriptions reported by the app."""

    def test_catalogue(self, store):
        products = {p["id"]: p for p in store.list_products()}

        assert products["com.guroute.credits.3"]["credits"] == 3
        assert products["com.guroute.credits.5"]["credits"] == 5
        assert products["com.guroute.credits.10"]["credits"] == 10
        assert set(products) == set(CREDIT_PACK_IDS) | set(SUBSCRIPTION_IDS)

    def test_credit_purchase(self, ledger, store):
        ledger.initialize_user_credits("user-1")

        balance = store.record_credit_purchase("user-1", CREDITS_5_ID, "tx-1")

        assert balance == 7
        assert store.is_transaction_processed("tx-1") is True

    def test_duplicate_transaction_credited_once(self, ledger, store):
        ledger.initialize_user_credits("user-1")
        store.record_credit_purchase("user-1", CREDITS_5_ID, "tx-1")

        balance = store.record_credit_purchase("user-1", CREDITS_5_ID, "tx-1")

        assert balance == 7
        purchases = [t for t in ledger.get_transactions("user-1") if t.type == "purchase"]
        assert len(purchases) == 1

    def test_concurrent_duplicate_report_credited_once(self, ledger, store, database, monkeypatch):
        ledger.initialize_user_credits("user-1")
        competitor = StoreService(database)
        original = LedgerService.apply_purchase
        calls = []

        def racing_purchase(self, session, user_id, amount, product_id):
            calls.append(user_id)
            if len(calls) == 1:
                # The app retried; the retry lands between the check and the insert
                competitor.record_credit_purchase(user_id, CREDITS_5_ID, "tx-1")
            return original(self, session, user_id, amount, product_id)

        monkeypatch.setattr(LedgerService, "apply_purchase", racing_purchase)

        balance = store.record_credit_purchase("user-1", CREDITS_5_ID, "tx-1")

        assert balance == 7
        assert ledger.get_balance("user-1") == 7
        purchases = [t for t in ledger.get_transactions("user-1") if t.type == "purchase"]
        assert len(purchases) == 1

    def test_transaction_of_another_user_rejected(self, ledger, store):
        ledger.initialize_user_credits("user-1")
        ledger.initialize_user_credits("user-2")
        store.record_credit_purchase("user-1", CREDITS_5_ID, "tx-1")

        with pytest.raises(StoreTransactionConflictError):
            store.record_credit_purchase("user-2", CREDITS_5_ID, "tx-1")

        assert ledger.get_balance("user-2") == 2

    def test_unknown_product(self, ledger, store):
        ledger.initialize_user_credits("user-1")

        with pytest.raises(UnknownProductError):
            store.record_credit_purchase("user-1", "com.guroute.credits.999", "tx-1")

    def test_subscription_is_not_a_credit_pack(self, ledger, store):
        ledger.initialize_user_credits("user-1")

        with pytest.raises(UnknownProductError):
            store.record_credit_purchase("user-1", PREMIUM_MONTHLY_ID, "tx-1")

    def test_purchase_without_ledger_is_not_marked_processed(self, store):
        with pytest.raises(LedgerNotFoundError):
            store.record_credit_purchase("ghost", CREDITS_5_ID, "tx-1")

        assert store.is_transaction_processed("tx-1") is False

    def test_subscription_sets_premium(self, ledger, store, profiles):
        ledger.initialize_user_credits("user-1")

        is_premium = store.record_subscription(
            "user-1", PREMIUM_MONTHLY_ID, True, expires_at=datetime.utcnow() + timedelta(days=30)
        )

        assert is_premium is True
        assert ledger.spend_credit("user-1", "trip-1").reason == "premium"

        assert store.record_subscription("user-1", PREMIUM_MONTHLY_ID, False) is False
        assert profiles.is_premium("user-1") is False

    def test_subscription_unknown_product(self, store):
        with pytest.raises(UnknownProductError):
            store.record_subscription("user-1", CREDITS_5_ID, True)
