"""In-app purchase catalogue and store event handling."""

from guroute.store.products import PRODUCTS, Product, ProductKind, get_product
from guroute.store.service import StoreService, store_service

__all__ = ["PRODUCTS", "Product", "ProductKind", "StoreService", "get_product", "store_service"]
