# catalog/store.py
# ============================================================================
# STOREFRONT PAYMENTS — CATALOG STORE
# ============================================================================
# Read-only product catalog loaded once at startup from a static JSON
# document ({"products": [...]}). Purchasability is decided by the
# collection a product's category maps to.
# ============================================================================

import json
from decimal import Decimal
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import structlog
from pydantic import ValidationError

from storefront.errors import CatalogLoadError
from storefront.schemas.models import Collection, Product

logger = structlog.get_logger(component="catalog_store")


# =============================================================================
# COLLECTIONS
# =============================================================================

CATEGORY_TO_COLLECTION: Mapping[str, str] = MappingProxyType({
    "lingerie": "Lingerie",
    "accessories": "Accessories",
    "swim": "Swim 2023",
    "timeless": "Timeless",
    "bucket-hats": "Bucket Hats",
})

COLLECTIONS: Mapping[str, Collection] = MappingProxyType({
    "Lingerie": Collection(name="Lingerie", purchasable=True),
    "Accessories": Collection(name="Accessories", purchasable=True),
    "Swim 2023": Collection(name="Swim 2023", purchasable=True),
    "Bucket Hats": Collection(name="Bucket Hats", purchasable=True),
    # Archive pieces are display-only.
    "Timeless": Collection(name="Timeless", purchasable=False),
})

ARCHIVE_COLLECTION = "Timeless"


def collection_for(category: str) -> str:
    """Collection name for a category. Unmapped categories pass through by name."""
    return CATEGORY_TO_COLLECTION.get(category, category)


def is_collection_purchasable(collection: str) -> bool:
    if collection == ARCHIVE_COLLECTION:
        return False
    entry = COLLECTIONS.get(collection)
    return entry is not None and entry.purchasable


# =============================================================================
# STORE
# =============================================================================

class CatalogStore:
    """
    Immutable in-memory product catalog.

    Example:
        catalog = CatalogStore.load(Path("data/products.json"))
        product = catalog.get_product("prod-001")
    """

    def __init__(self, products: Iterable[Product]):
        by_id: Dict[str, Product] = {}
        for product in products:
            if product.id in by_id:
                raise CatalogLoadError(f"Duplicate product id in catalog: {product.id}")
            by_id[product.id] = product
        self._products: Mapping[str, Product] = MappingProxyType(by_id)

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "CatalogStore":
        products = []
        for position, record in enumerate(records):
            if not isinstance(record, dict):
                raise CatalogLoadError(f"Catalog entry {position} is not an object")
            category = record.get("category")
            if not isinstance(category, str) or not category:
                raise CatalogLoadError(f"Catalog entry {position} has no category")

            collection = collection_for(category)
            try:
                products.append(Product(
                    id=record.get("id"),
                    name=record.get("name"),
                    price=record.get("price"),
                    category=category,
                    collection=collection,
                    purchasable=is_collection_purchasable(collection),
                    description=record.get("description"),
                    in_stock=record.get("inStock", True),
                ))
            except ValidationError as e:
                raise CatalogLoadError(f"Catalog entry {position} is malformed: {e}") from e
        return cls(products)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "CatalogStore":
        """Load the catalog document. Any problem is fatal."""
        path = Path(path)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise CatalogLoadError(f"Catalog source not readable: {path}") from e

        try:
            document = json.loads(raw, parse_float=Decimal)
        except json.JSONDecodeError as e:
            raise CatalogLoadError(f"Catalog source is not valid JSON: {path}") from e

        if not isinstance(document, dict) or not isinstance(document.get("products"), list):
            raise CatalogLoadError(f"Catalog source has no products list: {path}")

        store = cls.from_records(document["products"])
        logger.info(
            "catalog_loaded",
            path=str(path),
            products=len(store),
            purchasable=sum(1 for p in store.all_products() if p.purchasable),
        )
        return store

    def __len__(self) -> int:
        return len(self._products)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._products

    def get_product(self, product_id: str) -> Optional[Product]:
        return self._products.get(product_id)

    def is_purchasable(self, category: str) -> bool:
        return is_collection_purchasable(collection_for(category))

    def collection_for(self, category: str) -> str:
        return collection_for(category)

    def all_products(self) -> List[Product]:
        return list(self._products.values())

    def products_by_category(self, category: str) -> List[Product]:
        return [p for p in self._products.values() if p.category == category]
