import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from phishscan.config import settings
from phishscan.database import get_db
from phishscan.models import Feedback
from phishscan.schemas import (
    EmailScanRequest,
    EmailScanResponse,
    ErrorResponse,
    FeedbackRequest,
    ScanRequest,
    ScanResponse,
)
from phishscan.services.aggregator import ScanTarget, SignalAggregator
from phishscan.services.email_scorer import EmailInputError, EmailScorer

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


def _error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": error})


def get_aggregator(request: Request) -> SignalAggregator:
    return request.app.state.aggregator


def get_email_scorer(request: Request) -> EmailScorer:
    return request.app.state.email_scorer

# ============================================================================
# SCAN ENDPOINTS
# ============================================================================

@router.post("/scan", response_model=ScanResponse, responses=ERROR_RESPONSES)
async def scan_url(
    payload: Optional[ScanRequest] = None,
    aggregator: SignalAggregator = Depends(get_aggregator)
):
    """Score a single URL (optionally with its anchor text and the sender's domain)."""
    payload = payload or ScanRequest()
    if not payload.url:
        return _error(400, "missing url")

    try:
        target = ScanTarget(url=payload.url, anchor_text=payload.anchorText, sender_domain=payload.senderDomain)
        result = await aggregator.aggregate(target)
    except Exception:
        logger.exception("❌ Error in /scan")
        return _error(500, "scan_failed")

    return {"ok": True, **result.to_dict()}


@router.post("/scan-email", response_model=EmailScanResponse, responses=ERROR_RESPONSES)
async def scan_email(
    payload: Optional[EmailScanRequest] = None,
    email_scorer: EmailScorer = Depends(get_email_scorer)
):
    """Score a whole email from its raw headers, body text and extracted links."""
    payload = payload or EmailScanRequest()
    if not payload.body:
        return _error(400, "missing email body")

    links = None
    if payload.links is not None:
        links = [link.model_dump() for link in payload.links]

    try:
        result = await email_scorer.score_email(payload.headers, payload.body, links)
    except EmailInputError as e:
        return _error(400, str(e))
    except Exception:
        logger.exception("❌ Error in /scan-email")
        return _error(500, "email_scan_failed")

    return {"ok": True, **result.to_dict()}

# ============================================================================
# FEEDBACK, CACHE & HEALTH
# ============================================================================

@router.post("/feedback", responses=ERROR_RESPONSES)
def submit_feedback(payload: Optional[FeedbackRequest] = None, db: Session = Depends(get_db)):
    """Record a user's opinion about a verdict."""
    payload = payload or FeedbackRequest()
    if not settings.FEEDBACK_ENABLED:
        return _error(404, "feedback_disabled")
    if not payload.url or not payload.verdict:
        return _error(400, "missing url or verdict")

    try:
        db.add(Feedback(url=payload.url, verdict=payload.verdict, comment=payload.comment or ""))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("❌ Database error saving feedback")
        return _error(500, "feedback_failed")

    logger.info(f"✓ Feedback stored for {payload.url} ({payload.verdict})")
    return {"ok": True}


@router.get("/cache/stats")
def cache_stats(aggregator: SignalAggregator = Depends(get_aggregator)):
    return {"ok": True, **aggregator.cache.get_stats()}


@router.get("/health")
def health_check():
    return {
        "ok": True,
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc),
        "service": settings.APP_NAME
    }
