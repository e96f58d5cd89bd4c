# catalog/__init__.py
from storefront.catalog.store import (
    CATEGORY_TO_COLLECTION,
    COLLECTIONS,
    CatalogStore,
    collection_for,
    is_collection_purchasable,
)
from storefront.catalog.validator import CartValidator, round_money

__all__ = [
    "CATEGORY_TO_COLLECTION",
    "COLLECTIONS",
    "CatalogStore",
    "CartValidator",
    "collection_for",
    "is_collection_purchasable",
    "round_money",
]
