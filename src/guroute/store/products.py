"""In-app purchase catalogue.

Product identifiers match the ones configured in App Store Connect.
"""

from dataclasses import dataclass
from enum import Enum


class ProductKind(str, Enum):
    CREDIT_PACK = "credit_pack"
    SUBSCRIPTION = "subscription"


@dataclass(frozen=True)
class Product:
    product_id: str
    kind: ProductKind
    credits: int = 0  # Only for credit packs
    period_days: int | None = None  # Only for subscriptions


PREMIUM_MONTHLY_ID = "com.guroute.premium.monthly"
PREMIUM_YEARLY_ID = "com.guroute.premium.yearly"

CREDITS_3_ID = "com.guroute.credits.3"
CREDITS_5_ID = "com.guroute.credits.5"
CREDITS_10_ID = "com.guroute.credits.10"

PRODUCTS: dict[str, Product] = {
    CREDITS_3_ID: Product(CREDITS_3_ID, ProductKind.CREDIT_PACK, credits=3),
    CREDITS_5_ID: Product(CREDITS_5_ID, ProductKind.CREDIT_PACK, credits=5),
    CREDITS_10_ID: Product(CREDITS_10_ID, ProductKind.CREDIT_PACK, credits=10),
    PREMIUM_MONTHLY_ID: Product(PREMIUM_MONTHLY_ID, ProductKind.SUBSCRIPTION, period_days=30),
    PREMIUM_YEARLY_ID: Product(PREMIUM_YEARLY_ID, ProductKind.SUBSCRIPTION, period_days=365),
}

CREDIT_PACK_IDS = [p.product_id for p in PRODUCTS.values() if p.kind is ProductKind.CREDIT_PACK]
SUBSCRIPTION_IDS = [p.product_id for p in PRODUCTS.values() if p.kind is ProductKind.SUBSCRIPTION]


def get_product(product_id: str) -> Product | None:
    return PRODUCTS.get(product_id)
