# services/reconciler/app/main.py

from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.responses import JSONResponse, Response

from shared.models import HealthResponse, WebhookResponse
from shared.logging_config import get_logger, correlation_id_middleware
from shared.health import HealthChecker
from shared.metrics import SERVICE_INFO, render_metrics

from .config import ReconcilerSettings
from .connectors.base import OAuthCredentials
from .connectors.token_store import TokenStore
from .connectors.zoho_books import ZohoBooksClient
from .reconciliation.invoice_locator import InvoiceLocator
from .reconciliation.payment_recorder import PaymentRecorder
from .reconciliation.event_handler import WebhookEventHandler

logger = get_logger(__name__)

# Global instances
settings = None  # ReconcilerSettings
http_client = None  # httpx.AsyncClient
event_handler = None  # WebhookEventHandler
health_checker = None  # HealthChecker


def build_event_handler(config: ReconcilerSettings, client: httpx.AsyncClient) -> WebhookEventHandler:
    """Wire the token store, Zoho client and reconciliation components"""
    credentials = OAuthCredentials(
        access_token=config.ZOHO_ACCESS_TOKEN,
        refresh_token=config.ZOHO_REFRESH_TOKEN,
        client_id=config.ZOHO_CLIENT_ID,
        client_secret=config.ZOHO_CLIENT_SECRET
    )
    token_store = TokenStore(credentials, config.ZOHO_ACCOUNTS_URL, client)
    zoho = ZohoBooksClient(
        base_url=config.ZOHO_API_BASE_URL,
        organization_id=config.ZOHO_ORGANIZATION_ID,
        token_store=token_store,
        http_client=client,
        invalid_token_code=config.ZOHO_INVALID_TOKEN_CODE
    )
    return WebhookEventHandler(
        locator=InvoiceLocator(zoho),
        recorder=PaymentRecorder(
            zoho,
            payment_date_format=config.PAYMENT_DATE_FORMAT,
            dedupe_check=config.PAYMENT_DEDUPE_CHECK
        ),
        default_payment_mode=config.DEFAULT_PAYMENT_MODE
    )

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown"""
    global settings, http_client, event_handler, health_checker

    logger.info("Starting payment reconciler...")

    settings = ReconcilerSettings()
    http_client = httpx.AsyncClient(timeout=settings.ZOHO_REQUEST_TIMEOUT_SECONDS)
    event_handler = build_event_handler(settings, http_client)

    health_checker = HealthChecker(service_name=settings.SERVICE_NAME, version=settings.SERVICE_VERSION)
    health_checker.add_check('zoho_token', event_handler.locator.client.token_store.health_check)

    SERVICE_INFO.info({'service': settings.SERVICE_NAME, 'version': settings.SERVICE_VERSION})
    logger.info("Reconciler started successfully", extra={'organization_id': settings.ZOHO_ORGANIZATION_ID})

    yield

    # Shutdown
    logger.info("Shutting down payment reconciler...")
    await http_client.aclose()
    settings = None
    http_client = None
    event_handler = None
    health_checker = None

# Create FastAPI app
app = FastAPI(
    title="Zoho Books Payment Reconciler",
    description="Applies webhook transaction payments to matching Zoho Books invoices",
    version="1.0.0",
    lifespan=lifespan
)

app.middleware("http")(correlation_id_middleware)

# Dependencies
def get_event_handler() -> WebhookEventHandler:
    if event_handler is None:
        raise HTTPException(status_code=503, detail="Event handler not initialized")
    return event_handler

def get_health_checker() -> HealthChecker:
    if health_checker is None:
        raise HTTPException(status_code=503, detail="Health checker not initialized")
    return health_checker

# API Endpoints

@app.post("/webhook", response_model=WebhookResponse, response_model_exclude_none=True)
async def webhook(request: Request, handler: WebhookEventHandler = Depends(get_event_handler)):
    """
    Receive a transaction event and apply its payment to the matching invoice

    Responds 200 when no invoice matches, when there is nothing to pay and
    when the payment is recorded; 500 with the error message otherwise.
    """
    payload: Any = None
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Webhook body is not valid JSON")

    logger.info("Webhook payload received", extra={'payload': payload})

    result = await handler.handle(payload)
    return JSONResponse(status_code=result.status_code, content=result.to_response_body())

@app.get("/health", response_model=HealthResponse)
async def health_check(checker: HealthChecker = Depends(get_health_checker)):
    """Health check endpoint"""
    return await checker.check_health()

@app.get("/metrics")
async def get_metrics():
    """Prometheus metrics endpoint"""
    content, content_type = render_metrics()
    return Response(content=content, media_type=content_type)

if __name__ == "__main__":
    import uvicorn
    run_settings = ReconcilerSettings()
    uvicorn.run(
        "services.reconciler.app.main:app",
        host=run_settings.HOST,
        port=run_settings.PORT,
        log_config=None
    )
