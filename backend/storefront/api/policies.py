# api/policies.py
# ============================================================================
# STOREFRONT PAYMENTS — ROUTE POLICIES
# ============================================================================
# One payment code path, with session and rate-limit requirements injected
# per route group as a FastAPI dependency. The dependency resolves to the
# caller's client identity, which also keys the payment lock. Seller account
# reads sit behind a bearer token instead.
# ============================================================================

import hmac
import time
from typing import Optional

import structlog
from fastapi import Request
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from storefront.errors import (
    AdminAccessDeniedError,
    ConfigurationError,
    RateLimitedError,
    SessionRequiredError,
)

SESSION_HEADER = "X-Session-Id"

logger = structlog.get_logger(component="route_policy")


def client_identity(request: Request) -> str:
    """Session id when the caller sent one, otherwise the peer address."""
    session_id = request.headers.get(SESSION_HEADER, "").strip()
    if session_id:
        return session_id
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"


class RoutePolicy:
    """
    Example:
        policy = RoutePolicy("payments", require_session=False, rate_limit="5/15minutes")

        @app.post("/api/create-payment-intent")
        async def create(client_id: str = Depends(policy)):
            ...
    """

    def __init__(
        self,
        name: str,
        require_session: bool = False,
        rate_limit: Optional[str] = None,
    ):
        self.name = name
        self.require_session = require_session
        self.rate_limit = rate_limit

        self._item = None
        self._limiter = None
        if rate_limit:
            try:
                self._item = parse(rate_limit)
            except ValueError as e:
                raise ConfigurationError(f"Invalid rate limit: {rate_limit}") from e
            self._limiter = MovingWindowRateLimiter(MemoryStorage())

    def _retry_after(self, client_id: str) -> int:
        stats = self._limiter.get_window_stats(self._item, self.name, client_id)
        return max(1, int(stats.reset_time - time.time()))

    def check(self, client_id: str, has_session: bool) -> None:
        if self.require_session and not has_session:
            raise SessionRequiredError()

        if self._limiter is not None and not self._limiter.hit(self._item, self.name, client_id):
            retry_after = self._retry_after(client_id)
            logger.warning(
                "rate_limited",
                policy=self.name,
                client_id=client_id,
                retry_after=retry_after,
            )
            raise RateLimitedError(retry_after)

    async def __call__(self, request: Request) -> str:
        client_id = client_identity(request)
        has_session = bool(request.headers.get(SESSION_HEADER, "").strip())
        self.check(client_id, has_session)
        return client_id


class AdminTokenPolicy:
    """
    Bearer-token guard for the seller account routes.

    With no token configured the routes stay closed.
    """

    def __init__(self, token: Optional[str]):
        self._token = token

    async def __call__(self, request: Request) -> None:
        scheme, _, supplied = request.headers.get("Authorization", "").partition(" ")
        if (
            not self._token
            or scheme.lower() != "bearer"
            or not hmac.compare_digest(supplied.strip().encode(), self._token.encode())
        ):
            logger.warning("admin_access_denied", path=request.url.path, configured=bool(self._token))
            raise AdminAccessDeniedError()
