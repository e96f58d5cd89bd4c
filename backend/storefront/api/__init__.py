# api/__init__.py
from storefront.api.policies import SESSION_HEADER, AdminTokenPolicy, RoutePolicy, client_identity

__all__ = ["SESSION_HEADER", "AdminTokenPolicy", "RoutePolicy", "client_identity"]
