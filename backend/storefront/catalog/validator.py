# catalog/validator.py
# ============================================================================
# STOREFRONT PAYMENTS — CART VALIDATOR
# ============================================================================
# Pure function over the catalog snapshot and untrusted cart input.
# Any rejected line fails the whole cart; there is no partial checkout.
# ============================================================================

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, List, Optional, Tuple

from storefront.catalog.store import CatalogStore
from storefront.schemas.models import (
    CartLine,
    RejectedLine,
    RejectionReason,
    ValidationResult,
    ValidLine,
)

CENT = Decimal("0.01")


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _parse_line(raw: Any, max_quantity: int) -> Tuple[Optional[CartLine], Optional[str]]:
    """Return (line, product_id). line is None when the entry is malformed."""
    if isinstance(raw, CartLine):
        return (raw if raw.quantity <= max_quantity else None), raw.product_id

    if not isinstance(raw, dict):
        return None, None

    product_id = raw.get("id", raw.get("productId"))
    if not isinstance(product_id, str) or not product_id.strip():
        return None, None

    quantity = raw.get("quantity")
    # bool is an int subclass; reject it along with floats and strings
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        return None, product_id
    if quantity < 1 or quantity > max_quantity:
        return None, product_id

    return CartLine(product_id=product_id, quantity=quantity), product_id


class CartValidator:
    """Resolves cart lines against the catalog and totals the accepted cart."""

    def __init__(self, catalog: CatalogStore, max_quantity: int = 100):
        self.catalog = catalog
        self.max_quantity = max_quantity

    def validate(self, lines: Any) -> ValidationResult:
        if not isinstance(lines, (list, tuple)) or len(lines) == 0:
            return ValidationResult(errors=["Cart is empty or invalid"])

        valid: List[ValidLine] = []
        rejected: List[RejectedLine] = []
        errors: List[str] = []

        for index, raw in enumerate(lines):
            line, product_id = _parse_line(raw, self.max_quantity)

            if line is None:
                message = f"Invalid item format at position {index}"
                rejected.append(RejectedLine(
                    index=index,
                    product_id=product_id,
                    reason=RejectionReason.MALFORMED,
                    message=message,
                ))
                errors.append(message)
                continue

            product = self.catalog.get_product(line.product_id)
            if product is None:
                message = f"Product not found: {line.product_id}"
                rejected.append(RejectedLine(
                    index=index,
                    product_id=line.product_id,
                    reason=RejectionReason.NOT_FOUND,
                    message=message,
                ))
                errors.append(message)
                continue

            if not product.purchasable:
                message = (
                    f'Product "{product.name}" from {product.collection} collection '
                    f"is for display only and cannot be purchased"
                )
                rejected.append(RejectedLine(
                    index=index,
                    product_id=product.id,
                    reason=RejectionReason.NOT_PURCHASABLE,
                    message=message,
                    name=product.name,
                    collection=product.collection,
                ))
                errors.append(message)
                continue

            # Duplicate product ids stay separate lines.
            valid.append(ValidLine(
                product_id=product.id,
                name=product.name,
                unit_price=product.price,
                quantity=line.quantity,
                line_total=product.price * line.quantity,
            ))

        if rejected:
            return ValidationResult(rejected_lines=rejected, errors=errors)

        # Round once, on the sum.
        total = round_money(sum((line.line_total for line in valid), Decimal("0")))
        return ValidationResult(valid_lines=valid, total=total)
