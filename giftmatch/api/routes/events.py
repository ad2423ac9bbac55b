"""API routes for product interaction events."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from giftmatch.api.dependencies import get_session_tracker
from giftmatch.core.database import get_db
from giftmatch.models.database import Event
from giftmatch.models.database import Product as ProductRow
from giftmatch.models.schemas import EventResponse, EventSubmit
from giftmatch.services.session_tracker import SessionTracker

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/events", response_model=EventResponse)
def submit_event(
    request: EventSubmit,
    db: Session = Depends(get_db),
    sessions: SessionTracker = Depends(get_session_tracker),
) -> EventResponse:
    """Record a product view or click.

    Events feed the trending signal, which is recomputed periodically by the
    refresh_trending worker task. Events carrying a session id also update
    that session's inferred intent.

    Args:
        request: Event type, product id, optional user and session ids
        db: Database session
        sessions: Per-session intent tracker

    Returns:
        Event submission confirmation
    """
    exists = db.scalars(select(ProductRow.id).where(ProductRow.id == request.product_id)).first()
    if not exists:
        raise HTTPException(status_code=404, detail="Product not found")

    event = Event(
        event_type=request.event_type,
        product_id=request.product_id,
        user_id=request.user_id,
    )
    db.add(event)
    db.flush()

    if request.session_id:
        try:
            sessions.record(request.session_id, request.event_type, request.product_id, request.user_id)
        except Exception as e:
            # The event row is already stored; session intent is best effort
            logger.warning(f"Session tracking failed for {request.session_id}: {e}")

    logger.debug(f"Recorded {request.event_type} for product {request.product_id}")
    return EventResponse(success=True, event_id=event.id)
