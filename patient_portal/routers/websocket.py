from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
from typing import List
import logging
import json

from ..auth.session import SessionProvider
from ..core.clock import now_iso
from ..core.exceptions import AuthError
from ..models.database_models import Message
from ..services.chat_completion import get_completion_client
from ..services.chat_service import get_chat_service
from ..services.support_chat_workflow import SupportChatWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["websocket"])


# WebSocket endpoint for the live support chat view
@router.websocket("/chat")
async def websocket_chat(
    websocket: WebSocket,
    token: str = Query(..., description="Authentication token")
):
    """
    One socket is one mounted chat view. Every change to the message list is
    pushed as a `messages` frame; the client sends `{"type": "message", "text": ...}`.
    """
    try:
        session = await SessionProvider().restore(token)
    except AuthError as e:
        logger.warning(f"[Chat] WebSocket authentication failed: {e.category.value}")
        await websocket.close(code=1008, reason="Authentication failed")
        return

    await websocket.accept()

    async def push(messages: List[Message]):
        await websocket.send_text(json.dumps({
            "type": "messages",
            "conversation_id": workflow.conversation_id,
            "data": [m.to_store() for m in messages],
            "timestamp": now_iso()
        }))

    workflow = SupportChatWorkflow(session, get_chat_service(), get_completion_client(), on_update=push)

    try:
        await workflow.mount()

        while True:
            try:
                data = await websocket.receive_text()
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_text(json.dumps({
                    "type": "error",
                    "message": "Invalid JSON format",
                    "timestamp": now_iso()
                }))
                continue

            message_type = message.get("type") if isinstance(message, dict) else None
            if message_type == "message":
                await workflow.send_message(message.get("text", ""))
            elif message_type == "ping":
                await websocket.send_text(json.dumps({"type": "pong", "timestamp": now_iso()}))
            else:
                await websocket.send_text(json.dumps({
                    "type": "error",
                    "message": f"Unknown message type: {message_type}",
                    "timestamp": now_iso()
                }))

    except WebSocketDisconnect:
        logger.info(f"[Chat] WebSocket disconnected for {session.uid}")
    except Exception as e:
        logger.error(f"[Chat] WebSocket error: {str(e)}", exc_info=True)
        await websocket.close(code=1011, reason="Internal server error")
    finally:
        workflow.close()
