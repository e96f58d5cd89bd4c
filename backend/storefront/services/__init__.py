# services/__init__.py
# ============================================================================
# STOREFRONT PAYMENTS — COLLABORATOR SERVICES
# ============================================================================
# Interfaces to systems outside the payments core (order persistence and
# customer email), with in-process defaults.
# ============================================================================

from storefront.services.notifications import INotifier, LoggingNotifier
from storefront.services.orders import IOrderStatusStore, InMemoryOrderStatusStore

__all__ = [
    "INotifier",
    "LoggingNotifier",
    "IOrderStatusStore",
    "InMemoryOrderStatusStore",
]
