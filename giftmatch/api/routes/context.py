"""API routes for inspecting and clearing stored conversation context."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from giftmatch.api.dependencies import get_context_store
from giftmatch.models.schemas import ContextResponse, RecipientsResponse
from giftmatch.services.context_store import ContextStore, summarize_context

router = APIRouter()


@router.get("/context/{user_id}", response_model=ContextResponse)
def get_context(
    user_id: str,
    recipient_key: Optional[str] = Query(None),
    store: ContextStore = Depends(get_context_store),
) -> ContextResponse:
    """Return the stored context for a user, optionally scoped to a recipient."""
    record = store.load(user_id, recipient_key)
    if record is None:
        raise HTTPException(status_code=404, detail="No context stored for this user")

    return ContextResponse(
        user_id=record.user_id,
        recipient_key=record.recipient_key,
        signals=record.signals,
        notes=record.notes,
        updated_at=record.updated_at,
        summary=summarize_context(record.signals),
    )


@router.delete("/context/{user_id}")
def delete_context(
    user_id: str,
    recipient_key: Optional[str] = Query(None),
    store: ContextStore = Depends(get_context_store),
) -> dict:
    """Forget one recipient scope, or everything stored for the user."""
    store.delete(user_id, recipient_key)
    return {"success": True}


@router.get("/context/{user_id}/recipients", response_model=RecipientsResponse)
def list_recipients(
    user_id: str,
    store: ContextStore = Depends(get_context_store),
) -> RecipientsResponse:
    return RecipientsResponse(user_id=user_id, recipients=sorted(store.list_recipients(user_id)))
