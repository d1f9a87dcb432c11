"""Client-side credit orchestrator.

Mirrors the user's ledger state for the UI and calls the ledger API for
every mutation. Network and API failures never raise out of the public
methods; they are recorded in ``error`` and the last known state is kept.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import httpx

from guroute.logging_config import get_logger
from guroute.referral.service import ReferralService
from guroute.settings import settings

logger = get_logger(__name__)

API_PREFIX = "/api/v1"


@dataclass
class CreditsSnapshot:
    user_id: str
    balance: int
    lifetime_earned: int
    lifetime_spent: int
    last_free_credit_at: datetime | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "CreditsSnapshot":
        last = data.get("last_free_credit_at")
        return cls(
            user_id=data["user_id"],
            balance=data["balance"],
            lifetime_earned=data["lifetime_earned"],
            lifetime_spent=data["lifetime_spent"],
            last_free_credit_at=datetime.fromisoformat(last) if last else None,
        )

    def eligible_for_monthly_credit(self, now: datetime | None = None) -> bool:
        if self.last_free_credit_at is None:
            return True
        now = now or datetime.utcnow()
        return now - self.last_free_credit_at >= timedelta(days=settings.monthly_interval_days)


@dataclass
class SpendOutcome:
    success: bool
    reason: str  # premium | credit_spent | insufficient_credits | error
    balance: int


@dataclass
class CreditManager:
    """Credit state holder for one signed-in user.

    ``http`` must already carry the base URL and the user's bearer token.
    """

    http: httpx.Client
    credits: CreditsSnapshot | None = None
    referral_code: str | None = None
    transactions: list[dict[str, Any]] = field(default_factory=list)
    is_premium: bool = False
    is_loading: bool = False
    error: str | None = None

    # ==================== STATE ====================

    @property
    def balance(self) -> int:
        return self.credits.balance if self.credits else 0

    @property
    def can_generate(self) -> bool:
        """Premium users, or anyone with at least one trip's worth of credits."""
        return self.is_premium or self.balance >= settings.trip_cost

    @property
    def eligible_for_monthly_credit(self) -> bool:
        return self.credits.eligible_for_monthly_credit() if self.credits else False

    def reset(self) -> None:
        """Forget everything, e.g. on sign-out."""
        self.credits = None
        self.referral_code = None
        self.transactions = []
        self.is_premium = False
        self.error = None

    # ==================== HTTP ====================

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = self.http.request(method, API_PREFIX + path, **kwargs)
        response.raise_for_status()
        return response

    def _fail(self, action: str, exc: Exception) -> None:
        self.error = str(exc)
        logger.warning("credit_client_error", action=action, error=str(exc))

    # ==================== OPERATIONS ====================

    def load_credits(self) -> None:
        """Fetch balance and referral code; claim the monthly credit when due."""
        self.is_loading = True
        try:
            data = self._request("GET", "/credits").json()
            self.credits = CreditsSnapshot.from_api(data)

            code = self._request("GET", "/referral/code").json()
            self.referral_code = code["code"]

            if self.eligible_for_monthly_credit:
                self._grant_monthly_credit()
        except httpx.HTTPError as e:
            self._fail("load_credits", e)
        finally:
            self.is_loading = False

    def _grant_monthly_credit(self) -> None:
        result = self._request("POST", "/credits/monthly").json()
        if result["granted"]:
            data = self._request("GET", "/credits").json()
            self.credits = CreditsSnapshot.from_api(data)

    def initialize_credits(self, referral_code: str | None = None) -> bool:
        """Create the ledger after signup. Returns False on failure."""
        body: dict[str, Any] = {}
        if referral_code and referral_code.strip():
            body["referral_code"] = referral_code.strip().upper()

        try:
            self._request("POST", "/credits/initialize", json=body)
        except httpx.HTTPError as e:
            self._fail("initialize_credits", e)
            return False

        self.load_credits()
        return True

    def spend_credit(self, trip_id: str) -> SpendOutcome:
        """Pay for a trip generation.

        Premium users are let through without a call.
        """
        if self.is_premium:
            return SpendOutcome(success=True, reason="premium", balance=-1)

        try:
            response = self.http.post(API_PREFIX + "/credits/spend", json={"trip_id": trip_id})
        except httpx.HTTPError as e:
            self._fail("spend_credit", e)
            return SpendOutcome(success=False, reason="error", balance=self.balance)

        if response.status_code == httpx.codes.PAYMENT_REQUIRED:
            detail = response.json()["detail"]
            if self.credits:
                self.credits.balance = detail["balance"]
            return SpendOutcome(success=False, reason=detail["reason"], balance=detail["balance"])

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self._fail("spend_credit", e)
            return SpendOutcome(success=False, reason="error", balance=self.balance)

        result = response.json()
        if result["reason"] == "premium":
            self.is_premium = True
        elif self.credits:
            self.credits.balance = result["balance"]
        return SpendOutcome(**result)

    def add_purchased_credits(self, product_id: str, transaction_id: str) -> int:
        """Report a completed credit pack purchase. Returns the new balance."""
        try:
            result = self._request(
                "POST",
                "/store/purchases",
                json={"product_id": product_id, "transaction_id": transaction_id},
            ).json()
        except httpx.HTTPError as e:
            self._fail("add_purchased_credits", e)
            return self.balance

        if self.credits:
            self.credits.balance = result["balance"]
        return result["balance"]

    def refresh_premium(self) -> bool:
        try:
            self.is_premium = self._request("GET", "/store/premium").json()["is_premium"]
        except httpx.HTTPError as e:
            self._fail("refresh_premium", e)
        return self.is_premium

    def load_transactions(self, limit: int = 50) -> list[dict[str, Any]]:
        try:
            data = self._request("GET", "/credits/transactions", params={"limit": limit}).json()
            self.transactions = data["transactions"]
        except httpx.HTTPError as e:
            self._fail("load_transactions", e)
        return self.transactions

    def validate_referral_code(self, code: str) -> bool:
        """Check a code on the signup screen."""
        try:
            data = self._request("POST", "/referral/validate", json={"code": code.strip().upper()}).json()
        except httpx.HTTPError as e:
            self._fail("validate_referral_code", e)
            return False
        return data["valid"]

    def referral_share_text(self) -> str:
        if not self.referral_code:
            return ""
        return ReferralService.share_text(self.referral_code)
