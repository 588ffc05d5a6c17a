# Copyright © 2025 Phaethon Order LLC. All rights reserved. Provided solely for evaluation. See LICENSE.

from typing import Any, Dict

from fastapi import BackgroundTasks, Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session, sessionmaker

# The models import registers the tables with SQLAlchemy's metadata.
from database import models  # noqa: F401
from database.session import Base, engine, get_db, get_session_factory
from svc.credits import process_credits_event
from svc.sales import SaleContext, handle_sale_event
from svc.events import WebhookEvent
from utils.config import Settings, get_settings
from utils.logger import setup_logger
from utils.signatures import WebhookNotConfiguredError, WebhookSignatureError, verify_event
from utils.stripe_gateway import StripeGateway, get_stripe_gateway

logger = setup_logger()

app = FastAPI(title="marketplace-webhooks", version="0.1.0")


@app.on_event("startup")
def on_startup() -> None:
    Base.metadata.create_all(bind=engine)


@app.get("/api/health")
async def health_check(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    """Health check endpoint that reports which settings are present."""
    return {
        "status": "ok",
        "stripe_configured": bool(settings.stripe_secret_key),
        "sales_webhook_secret_set": bool(settings.sales_webhook_secret),
        "sales_connect_secret_set": bool(settings.sales_connect_secret),
        "credits_webhook_secret_set": bool(settings.credits_webhook_secret),
        "credits_connect_secret_set": bool(settings.credits_connect_secret),
    }


def _acknowledge() -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_200_OK, content={"received": True})


async def _verified_event(request: Request, secrets: tuple, receiver: str) -> WebhookEvent | Response:
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    try:
        return verify_event(payload, signature, secrets)
    except WebhookNotConfiguredError:
        logger.error("%s webhook called but no signing secret is configured", receiver)
        return PlainTextResponse("webhook secret missing", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    except WebhookSignatureError:
        logger.warning("Rejected %s webhook with invalid signature", receiver)
        return PlainTextResponse("bad sig", status_code=status.HTTP_400_BAD_REQUEST)


@app.post("/api/stripe-webhook")
async def stripe_sale_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    settings: Settings = Depends(get_settings),
) -> Response:
    event = await _verified_event(request, settings.sales_secrets, "sale")
    if isinstance(event, Response):
        return event

    logger.info("Received Stripe sale webhook event %s: %s", event.id, event.type)
    ctx = SaleContext(db=db, gateway=gateway, payout_delay_minutes=settings.payout_delay_minutes)
    # Stripe refetches and store writes block; keep them off the event loop.
    await run_in_threadpool(handle_sale_event, ctx, event)
    return _acknowledge()


@app.post("/api/webhooks/stripe-credits")
async def stripe_credits_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    factory: sessionmaker = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> Response:
    event = await _verified_event(request, settings.credits_secrets, "credits")
    if isinstance(event, Response):
        return event

    logger.info("Received Stripe credits webhook event %s: %s", event.id, event.type)
    background_tasks.add_task(process_credits_event, factory, event)
    return _acknowledge()
