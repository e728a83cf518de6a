"""
Messages router - AI-drafted WhatsApp messages for clients
"""

from fastapi import APIRouter, Depends

from ..services.messaging import (
    MessageDraft,
    MessageRequest,
    OpenRouterTextGenerator,
    TextGenerator,
    draft_message,
)
from ..services.errors import TextGenerationUnavailable
from ..shared.auth import get_current_user

router = APIRouter()


def get_text_generator() -> TextGenerator:
    try:
        return OpenRouterTextGenerator()
    except ValueError as exc:
        raise TextGenerationUnavailable("Message drafting is not configured") from exc


@router.post("/draft", response_model=MessageDraft)
async def draft(
    request: MessageRequest,
    generator: TextGenerator = Depends(get_text_generator),
    current_user: dict = Depends(get_current_user)
):
    """Draft a short WhatsApp message for a client"""
    return await draft_message(generator, request)
