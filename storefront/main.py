from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
import logging
import uuid

from storefront.config import settings
from storefront.exception_handlers import register_exception_handlers
from storefront.routers import (
    account,
    admin_catalog,
    admin_coupons,
    admin_integrations,
    admin_orders,
    admin_shipping,
    auth,
    cart,
    catalog,
    checkout,
    orders,
    shipping,
    webhooks,
)
from storefront.utils.logger import logger

app = FastAPI(title="3TEK Storefront API", version="1.0.0")

origins = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]
if settings.APP_URL not in origins:
    origins.append(settings.APP_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
    max_age=3600,
)

register_exception_handlers(app)


# Request logging middleware with request ID
@app.middleware("http")
async def request_logger(request: Request, call_next):
    rid = uuid.uuid4().hex[:8]
    request.state.rid = rid
    logging.info("→ %s %s rid=%s", request.method, request.url.path, rid)
    try:
        resp = await call_next(request)
        logging.info("← %s status=%s rid=%s", request.url.path, resp.status_code, rid)
        resp.headers["X-Request-ID"] = rid
        return resp
    except Exception as e:
        logging.exception("Unhandled error rid=%s: %s", rid, str(e))
        error_resp = JSONResponse({"error": "Internal server error", "rid": rid}, status_code=500)
        error_resp.headers["X-Request-ID"] = rid
        return error_resp


app.include_router(auth.router)
app.include_router(catalog.router)
app.include_router(cart.router)
app.include_router(checkout.router)
app.include_router(shipping.router)
app.include_router(orders.router)
app.include_router(account.router)
app.include_router(webhooks.router)
app.include_router(admin_orders.router)
app.include_router(admin_catalog.router)
app.include_router(admin_coupons.router)
app.include_router(admin_shipping.router)
app.include_router(admin_integrations.router)


@app.on_event("startup")
async def startup_event():
    logger.info(
        "Storefront API starting (stripe=%s, fedex=%s, email=%s)",
        settings.stripe_configured,
        settings.fedex_configured,
        settings.email_configured,
    )


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


@app.get("/healthz/db")
async def healthz_db():
    """Database health check endpoint"""
    from fastapi import HTTPException, status
    try:
        from storefront.models_sqlalchemy import engine
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        return {"status": "ok", "database": "connected"}
    except Exception as e:
        logger.exception("Database health check failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Database unavailable: {type(e).__name__}"
        )


@app.get("/")
async def root():
    return {
        "message": "3TEK Storefront API",
        "version": "1.0.0",
        "docs": "/docs"
    }
