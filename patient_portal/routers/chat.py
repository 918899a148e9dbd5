"""
Chat Router - support conversations over plain HTTP.

The interactive view lives on /ws/chat; these endpoints cover history,
one-shot sends (message + assistant reply in a single request) and status.
"""

from fastapi import APIRouter, HTTPException, Depends, status
from typing import List, Optional
from pydantic import BaseModel, Field
import logging

from ..auth.dependencies import get_current_user
from ..core.clock import now_iso
from ..models.database_models import (
    ConversationInfo, ConversationStatus, Message, MessageContent, MessageTimestamps, SenderType
)
from ..models.user import Session
from ..services.analytics_service import get_analytics_service
from ..services.chat_completion import get_completion_client
from ..services.chat_service import get_chat_service
from ..services.support_chat_workflow import AI_SENDER_ID

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

# ===== Request Models =====

class CreateConversationRequest(BaseModel):
    subject: str = Field(default="General Support")
    category: str = Field(default="general", description="general, appointment, billing, medical, technical, other")
    type: str = Field(default="general", description="general, medical, technical, emergency")
    priority: str = Field(default="normal")
    tags: Optional[List[str]] = None

class SendMessageRequest(BaseModel):
    message_text: str = Field(..., description="Message content")
    reply_to: Optional[str] = Field(default=None, description="ID of message being replied to")

class ConversationStatusUpdate(BaseModel):
    status: ConversationStatus

# Analytics counter bumped when a conversation enters the status
STATUS_COUNTERS = {
    ConversationStatus.RESOLVED: 'chats_resolved',
    ConversationStatus.ESCALATED: 'chats_escalated',
}

async def _require_conversation(user_id: str, conversation_id: str):
    conversation = await get_chat_service().get_conversation(user_id, conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation

# ===== Conversation Endpoints =====

@router.get("/conversations")
async def list_conversations(current_user: Session = Depends(get_current_user)):
    conversations = await get_chat_service().list_conversations(current_user.uid)
    return {
        "success": True,
        "data": [c.to_store() for c in conversations],
        "count": len(conversations)
    }

@router.post("/conversations", status_code=status.HTTP_201_CREATED)
async def create_conversation(
    request: CreateConversationRequest,
    current_user: Session = Depends(get_current_user)
):
    info = ConversationInfo(
        subject=request.subject,
        category=request.category,
        type=request.type,
        priority=request.priority,
    )
    conversation = await get_chat_service().create_conversation(current_user.uid, info=info, tags=request.tags)
    await get_analytics_service().increment('chats_total')
    return {"success": True, "data": conversation.to_store()}

@router.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str, current_user: Session = Depends(get_current_user)):
    conversation = await _require_conversation(current_user.uid, conversation_id)
    return {"success": True, "data": conversation.to_store()}

@router.put("/conversations/{conversation_id}/status")
async def update_conversation_status(
    conversation_id: str,
    request: ConversationStatusUpdate,
    current_user: Session = Depends(get_current_user)
):
    await _require_conversation(current_user.uid, conversation_id)
    await get_chat_service().update_conversation_status(current_user.uid, conversation_id, request.status)

    counter = STATUS_COUNTERS.get(request.status)
    if counter:
        await get_analytics_service().increment(counter)
    return {"success": True, "message": f"Conversation marked {request.status.value}"}

# ===== Message Endpoints =====

@router.get("/conversations/{conversation_id}/messages")
async def get_messages(conversation_id: str, current_user: Session = Depends(get_current_user)):
    await _require_conversation(current_user.uid, conversation_id)
    messages = await get_chat_service().get_messages(current_user.uid, conversation_id)
    return {
        "success": True,
        "data": [m.to_store() for m in messages],
        "count": len(messages)
    }

@router.post("/conversations/{conversation_id}/messages")
async def send_message(
    conversation_id: str,
    request: SendMessageRequest,
    current_user: Session = Depends(get_current_user)
):
    """Persist the patient's message, then the assistant's reply (or the fallback)."""
    text = request.message_text.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Message text cannot be empty")
    await _require_conversation(current_user.uid, conversation_id)

    chat_service = get_chat_service()
    sent = await chat_service.send_message(
        current_user.uid,
        conversation_id,
        Message(
            sender_id=current_user.uid,
            sender_type=SenderType.PATIENT,
            content=MessageContent(text=text),
            timestamps=MessageTimestamps(sent_at=now_iso()),
            reply_to=request.reply_to,
        )
    )

    reply_text = await get_completion_client().reply(text)
    reply = await chat_service.send_message(
        current_user.uid,
        conversation_id,
        Message(
            sender_id=AI_SENDER_ID,
            sender_type=SenderType.SUPPORT,
            content=MessageContent(text=reply_text),
            timestamps=MessageTimestamps(sent_at=now_iso()),
            reply_to=sent.id,
        )
    )

    return {
        "success": True,
        "data": {"message": sent.to_store(), "reply": reply.to_store()}
    }

@router.post("/conversations/{conversation_id}/messages/{message_id}/read")
async def mark_message_read(
    conversation_id: str,
    message_id: str,
    current_user: Session = Depends(get_current_user)
):
    await _require_conversation(current_user.uid, conversation_id)
    if not await get_chat_service().mark_message_read(current_user.uid, conversation_id, message_id):
        raise HTTPException(status_code=404, detail="Message not found")
    return {"success": True, "message": "Message marked as read"}
