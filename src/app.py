"""Delivery coordination FastAPI application.

Receives store write triggers, scheduler ticks, pub/sub push deliveries and
operator calls over HTTP. Each request is wrapped in the delivery domain
context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the domain.toml overlay (memory providers in "test").
from delivery.domain import delivery
from delivery.services import build_services
from delivery.utils.logging import add_context, clear_context, configure_logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

delivery.init()
configure_logging()

# ---------------------------------------------------------------------------
# Route-to-domain mapping
# ---------------------------------------------------------------------------
_DOMAIN_PREFIXES = (
    "/triggers",
    "/events",
    "/sub-orders",
    "/transitions",
    "/orders",
)


def _resolve_domain(path: str):
    """Return the domain for the given request path, or None."""
    if path.startswith(_DOMAIN_PREFIXES):
        return delivery
    return None


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Delivery Coordination API",
    description="Sub-order aggregation, delayed transitions and worker dispatch",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.services = build_services(delivery)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the Protean domain context for each delivery request."""
    domain = _resolve_domain(request.url.path)
    if domain is not None:
        add_context(path=request.url.path, method=request.method)
        try:
            with domain.domain_context():
                response = await call_next(request)
        finally:
            clear_context()
        return response
    # Health check and docs need no domain context
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from delivery.api import install_error_handlers, router  # noqa: E402

install_error_handlers(app)
app.include_router(router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    settings = app.state.services.settings
    return JSONResponse(
        content={
            "status": "ok",
            "domain": {"name": delivery.name},
            "adapters": {
                "transport": settings.transport_adapter,
                "notifier": settings.notifier_adapter,
            },
        }
    )
