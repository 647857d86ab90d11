"""Chat API routes.

One endpoint per turn: the UI posts the message (and the PIN when the
previous reply had awaiting_pin=true) and renders the ChatReply.
"""
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from trade_chat.agents.schemas import ChatReply
from trade_chat.api.deps import get_current_user
from trade_chat.services.session_store import SessionOwnerMismatch
from trade_chat.services.trade_chat import get_trade_chat_service
from trade_chat.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


class ChatMessageRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=128)
    message: str = Field(default="", max_length=2000)
    pin: Optional[str] = Field(default=None, max_length=16)
    pending_trade_echo: Optional[Dict[str, Any]] = None


@router.post("/message", response_model=ChatReply)
def post_message(body: ChatMessageRequest, user: dict = Depends(get_current_user)):
    """Handle one chat turn. Business-rule failures come back as a normal reply."""
    service = get_trade_chat_service()
    try:
        return service.handle_message(
            session_id=body.session_id,
            owner_id=user["user_id"],
            message=body.message,
            pin=body.pin,
            pending_trade_echo=body.pending_trade_echo,
        )
    except SessionOwnerMismatch:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Session belongs to another user"
        )


@router.delete("/sessions/{session_id}")
def end_session(session_id: str, user: dict = Depends(get_current_user)):
    """End a session, discarding any pending trade."""
    try:
        ended = get_trade_chat_service().end_session(session_id, user["user_id"])
    except SessionOwnerMismatch:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Session belongs to another user"
        )
    if not ended:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return {"status": "ended", "session_id": session_id}
