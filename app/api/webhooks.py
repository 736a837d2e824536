"""Inbound provider webhook endpoints"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.models.base import get_db
from app.models.integration import Provider
from app.security import authorize_webhook
from app.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def _unauthorized() -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


def _failed() -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})


def _parse(raw_body: bytes) -> dict:
    payload = json.loads(raw_body or b"{}")
    if not isinstance(payload, dict):
        raise ValueError("Webhook payload is not a JSON object")
    return payload


@router.post("/jira")
async def jira_webhook(request: Request, db: Session = Depends(get_db)):
    """Receive a Jira Cloud webhook delivery"""
    raw_body = await request.body()
    if not authorize_webhook(Provider.JIRA, request.headers, raw_body):
        return _unauthorized()
    try:
        payload = _parse(raw_body)
        outcome = await run_in_threadpool(WebhookService(db).handle_jira, payload)
    except Exception:
        logger.exception("Jira webhook processing failed")
        return _failed()
    logger.debug(f"Jira webhook outcome: {outcome}")
    return {"success": True}


@router.post("/github")
async def github_webhook(request: Request, db: Session = Depends(get_db)):
    """Receive a GitHub webhook delivery"""
    raw_body = await request.body()
    if not authorize_webhook(Provider.GITHUB, request.headers, raw_body):
        return _unauthorized()
    event = request.headers.get("x-github-event")
    try:
        payload = _parse(raw_body)
        outcome = await run_in_threadpool(WebhookService(db).handle_github, event, payload)
    except Exception:
        logger.exception("GitHub webhook processing failed")
        return _failed()
    logger.debug(f"GitHub webhook outcome: {outcome}")
    return {"success": True}


@router.post("/azure-devops")
async def azure_devops_webhook(request: Request, db: Session = Depends(get_db)):
    """Receive an Azure DevOps service hook delivery"""
    raw_body = await request.body()
    if not authorize_webhook(Provider.AZURE_DEVOPS, request.headers, raw_body):
        return _unauthorized()
    try:
        payload = _parse(raw_body)
        outcome = await run_in_threadpool(WebhookService(db).handle_azure_devops, payload)
    except Exception:
        logger.exception("Azure DevOps webhook processing failed")
        return _failed()
    logger.debug(f"Azure DevOps webhook outcome: {outcome}")
    return {"success": True}
