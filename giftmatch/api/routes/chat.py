"""API routes for the conversational gift finder."""

import logging

from fastapi import APIRouter, Depends

from giftmatch.api.dependencies import get_conversation_service
from giftmatch.models.schemas import ChatRequest, ChatResponse
from giftmatch.services.conversation import ConversationService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
def chat(
    request: ChatRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> ChatResponse:
    """Process one user message.

    Extracts signals from the message, merges them into the stored context,
    and either asks a single clarifying question or returns up to five
    ranked gift ideas.

    Args:
        request: User id, message and optional recipient scope
        service: Conversation service

    Returns:
        Reply text plus either the missing signals or the ranked items
    """
    turn = service.process_turn(request.user_id, request.message, request.recipient_key)
    return ChatResponse(
        ready=turn.ready,
        reply=turn.reply,
        items=turn.items,
        missing_signals=turn.decision.missing_signals,
        prompt_variant=turn.decision.prompt_variant,
        signals=turn.signals,
        context_summary=turn.context_summary,
        milestone=turn.milestone,
    )
