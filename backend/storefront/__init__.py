"""
Storefront Payments
===================
Catalog-validated checkout for a single-seller storefront, with Stripe
Connect fee splitting and signed webhook handling.
"""

__version__ = "1.0.0"
