# api/server.py
# ============================================================================
# STOREFRONT PAYMENTS — FASTAPI SERVER
# ============================================================================
# Payment intent routes (platform, destination and application-fee charges),
# Stripe webhooks, read-only seller account views, cart sync, and the
# catalog/health/config endpoints.
# ============================================================================

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import Field

from storefront.api.policies import AdminTokenPolicy, RoutePolicy, client_identity
from storefront.catalog.store import CatalogStore
from storefront.catalog.validator import CartValidator
from storefront.config import StorefrontConfig
from storefront.errors import CartRejectedError, RateLimitedError, StorefrontError
from storefront.logging_config import configure_logging
from storefront.payments.issuer import PaymentIntentIssuer
from storefront.payments.locks import PaymentLockManager
from storefront.payments.processor import IPaymentProcessor, StripeProcessor
from storefront.schemas.models import CamelModel, ChargeMode
from storefront.services.notifications import INotifier, LoggingNotifier
from storefront.services.orders import InMemoryOrderStatusStore, IOrderStatusStore
from storefront.tasks.lock_sweeper import start_lock_sweeper, stop_lock_sweeper
from storefront.webhooks.dispatcher import WebhookDispatcher
from storefront.webhooks.handlers import PaymentEventHandlers
from storefront.webhooks.idempotency import InMemoryProcessedEventStore
from storefront.webhooks.router import WebhookRouter

logger = structlog.get_logger(component="api")

VERSION = "1.0.0"


# ============================================================================
# REQUEST MODELS
# ============================================================================

class PaymentIntentBody(CamelModel):
    """Cart lines are checked by the CartValidator, not here."""

    cart_items: Any = None
    # Distinguishes deliberate repeat checkouts inside the retry window.
    checkout_id: Optional[str] = Field(default=None, max_length=128)


class MarketplaceIntentBody(PaymentIntentBody):
    amount: Optional[int] = Field(default=None, gt=0)  # minor units
    seller_account_id: Optional[str] = None
    customer_email: Optional[str] = Field(default=None, max_length=254)


# ============================================================================
# APP FACTORY
# ============================================================================

def create_app(
    config: Optional[StorefrontConfig] = None,
    processor: Optional[IPaymentProcessor] = None,
    catalog: Optional[CatalogStore] = None,
    orders: Optional[IOrderStatusStore] = None,
    notifier: Optional[INotifier] = None,
) -> FastAPI:
    config = config or StorefrontConfig.from_env()

    payment_policy = RoutePolicy(
        "payments",
        require_session=config.require_session,
        rate_limit=config.payment_rate_limit,
    )
    admin_policy = AdminTokenPolicy(config.connect_admin_token)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(config.log_level, config.log_json)
        logger.info("storefront_starting", env=config.env, version=VERSION)

        # Fatal: a misconfigured process never serves payment routes.
        config.validate()
        store = catalog if catalog is not None else CatalogStore.load(config.catalog_path)

        locks = PaymentLockManager(ttl_seconds=config.payment_lock_ttl_seconds)
        payment_processor = processor if processor is not None else StripeProcessor(config.stripe_secret_key)
        validator = CartValidator(store, max_quantity=config.max_line_quantity)
        issuer = PaymentIntentIssuer(
            validator,
            locks,
            payment_processor,
            config,
        )

        order_store = orders if orders is not None else InMemoryOrderStatusStore()
        webhook_router = PaymentEventHandlers(
            order_store, notifier if notifier is not None else LoggingNotifier()
        ).register(WebhookRouter())
        processed = InMemoryProcessedEventStore()

        app.state.config = config
        app.state.catalog = store
        app.state.validator = validator
        app.state.locks = locks
        app.state.processor = payment_processor
        app.state.issuer = issuer
        app.state.orders = order_store
        app.state.webhook_router = webhook_router
        app.state.webhook_dispatcher = WebhookDispatcher(
            payment_processor, config.stripe_webhook_secret, webhook_router, processed,
            name="platform",
        )
        app.state.connect_webhook_dispatcher = WebhookDispatcher(
            payment_processor, config.stripe_connect_webhook_secret, webhook_router, processed,
            name="connect",
        )
        app.state.started_at = datetime.now(timezone.utc)

        sweeper = start_lock_sweeper(locks, config.payment_lock_sweep_seconds)
        logger.info(
            "storefront_ready",
            products=len(store),
            webhook_events=webhook_router.supported_events,
            seller_configured=bool(config.seller_account_id),
        )

        yield

        await stop_lock_sweeper(sweeper)
        logger.info("storefront_stopped")

    app = FastAPI(
        title="Storefront Payments",
        description="Catalog-validated checkout with Stripe Connect fee splitting",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ------------------------------------------------------------------------
    # Middleware
    # ------------------------------------------------------------------------

    @app.middleware("http")
    async def add_timing_header(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration = (time.perf_counter() - start) * 1000
        response.headers["X-Response-Time-Ms"] = f"{duration:.2f}"
        return response

    # ------------------------------------------------------------------------
    # Error handlers
    # ------------------------------------------------------------------------

    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError):
        log = logger.bind(path=request.url.path, code=exc.code, status=exc.status_code)
        if exc.status_code >= 500:
            log.error("request_failed", error=exc.message)
        else:
            log.info("request_rejected", error=exc.message)

        headers = None
        if isinstance(exc, RateLimitedError):
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(status_code=exc.status_code, content=exc.to_response(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid request", "details": details},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("request_crashed", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error", "code": "INTERNAL_ERROR"},
        )

    # ------------------------------------------------------------------------
    # Payment intents
    # ------------------------------------------------------------------------

    @app.post("/api/create-payment-intent")
    async def create_payment_intent(
        body: PaymentIntentBody,
        request: Request,
        client_id: str = Depends(payment_policy),
    ):
        result = await request.app.state.issuer.create_intent(
            client_id, body.cart_items, checkout_id=body.checkout_id
        )
        return {
            "success": True,
            "clientSecret": result.client_secret,
            "amount": result.amount,
            "currency": result.currency,
        }

    @app.post("/api/connect/payment-intent")
    async def create_connect_payment_intent(
        body: PaymentIntentBody,
        request: Request,
        client_id: str = Depends(payment_policy),
    ):
        result = await request.app.state.issuer.create_intent(
            client_id, body.cart_items, ChargeMode.DESTINATION, checkout_id=body.checkout_id
        )
        return {
            "success": True,
            "clientSecret": result.client_secret,
            "amount": result.amount,
            "currency": result.currency,
            "platformFee": result.platform_fee,
            "sellerPayout": result.seller_payout,
        }

    @app.post("/api/stripe-connect/create-payment-intent")
    async def create_marketplace_payment_intent(
        body: MarketplaceIntentBody,
        request: Request,
        client_id: str = Depends(payment_policy),
    ):
        extra = {"customerEmail": body.customer_email} if body.customer_email else None
        result = await request.app.state.issuer.create_intent(
            client_id,
            body.cart_items,
            ChargeMode.APPLICATION_FEE,
            seller_account_id=body.seller_account_id,
            expected_amount=body.amount,
            metadata=extra,
            checkout_id=body.checkout_id,
        )
        return {
            "success": True,
            "clientSecret": result.client_secret,
            "paymentIntentId": result.payment_intent_id,
            "amount": result.amount,
            "currency": result.currency,
            "platformFee": result.platform_fee,
            "sellerPayout": result.seller_payout,
        }

    @app.post("/api/cart/sync")
    async def sync_cart(body: PaymentIntentBody, request: Request):
        """Validate-only: no lock, no processor call. An empty cart is accepted."""
        client_id = client_identity(request)
        total = None
        if body.cart_items:
            validation = request.app.state.validator.validate(body.cart_items)
            if not validation.accepted:
                raise CartRejectedError(validation)
            total = float(validation.total)

        item_count = len(body.cart_items) if body.cart_items else 0
        logger.info("cart_synced", client_id=client_id, line_count=item_count)
        return {
            "success": True,
            "message": "Cart synced successfully",
            "data": {
                "sessionId": client_id,
                "itemCount": item_count,
                "total": total,
                "syncedAt": datetime.now(timezone.utc).isoformat(),
            },
        }

    # ------------------------------------------------------------------------
    # Connected seller account (read-only, admin token)
    # ------------------------------------------------------------------------

    @app.get("/api/connect/account-status", dependencies=[Depends(admin_policy)])
    async def seller_account_status(request: Request):
        account = await request.app.state.processor.get_account(config.require_seller_account())
        return {"success": True, "account": account.model_dump(mode="json")}

    @app.get("/api/connect/balance", dependencies=[Depends(admin_policy)])
    async def seller_balance(request: Request):
        balance = await request.app.state.processor.get_balance(config.require_seller_account())
        return {"success": True, "balance": balance.model_dump(mode="json")}

    @app.get("/api/connect/transfers", dependencies=[Depends(admin_policy)])
    async def seller_transfers(request: Request, limit: int = Query(10, ge=1, le=100)):
        transfers = await request.app.state.processor.list_transfers(
            config.require_seller_account(), limit=limit
        )
        return {"success": True, "transfers": [t.model_dump(mode="json") for t in transfers]}

    @app.get("/api/connect/payouts", dependencies=[Depends(admin_policy)])
    async def seller_payouts(request: Request, limit: int = Query(10, ge=1, le=100)):
        payouts = await request.app.state.processor.list_payouts(
            config.require_seller_account(), limit=limit
        )
        return {"success": True, "payouts": [p.model_dump(mode="json") for p in payouts]}

    @app.get("/api/connect/dashboard-url", dependencies=[Depends(admin_policy)])
    async def seller_dashboard_url(request: Request):
        link = await request.app.state.processor.create_dashboard_link(config.require_seller_account())
        return {"success": True, "url": link.url, "expiresAt": link.expires_at.isoformat()}

    # ------------------------------------------------------------------------
    # Webhooks (raw body: the signature covers the exact bytes received)
    # ------------------------------------------------------------------------

    async def _dispatch(dispatcher: WebhookDispatcher, request: Request) -> Dict[str, Any]:
        raw_body = await request.body()
        ack = await dispatcher.handle(raw_body, request.headers.get("stripe-signature"))
        response: Dict[str, Any] = {"received": True, "type": ack.type}
        if ack.duplicate:
            response["duplicate"] = True
        return response

    @app.post("/api/webhook")
    @app.post("/api/webhooks/stripe")
    async def stripe_webhook(request: Request):
        return await _dispatch(request.app.state.webhook_dispatcher, request)

    @app.post("/api/connect/webhook")
    async def stripe_connect_webhook(request: Request):
        return await _dispatch(request.app.state.connect_webhook_dispatcher, request)

    # ------------------------------------------------------------------------
    # Catalog, health, config
    # ------------------------------------------------------------------------

    @app.get("/api/products")
    async def list_products(request: Request, category: Optional[str] = None):
        store: CatalogStore = request.app.state.catalog
        products = store.products_by_category(category) if category else store.all_products()
        return {"success": True, "products": [_product_view(p) for p in products]}

    @app.get("/api/health")
    async def health_check(request: Request):
        started_at = request.app.state.started_at
        now = datetime.now(timezone.utc)
        return {
            "success": True,
            "status": "healthy",
            "timestamp": now.isoformat(),
            "environment": config.env,
            "uptimeSeconds": round((now - started_at).total_seconds(), 3),
        }

    @app.get("/api/config")
    async def public_config():
        return {
            "success": True,
            "stripePublishableKey": config.stripe_publishable_key,
            "environment": config.env,
            "currency": config.currency,
        }

    return app


def _product_view(product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "price": float(product.price),
        "category": product.category,
        "collection": product.collection,
        "purchasable": product.purchasable,
        "description": product.description,
        "inStock": product.in_stock,
    }


app = create_app()


# ============================================================================
# MAIN
# ============================================================================

if __name__ == "__main__":
    settings = StorefrontConfig.from_env()
    uvicorn.run(
        "storefront.api.server:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )
