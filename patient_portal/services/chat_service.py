"""
Chat Service - support conversations and their messages
Conversations live at users/{userId}/chatSupport/conversations,
messages at users/{userId}/chatSupport/messages/{conversationId}
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import logging

from ..core.clock import now_iso, parse_iso
from ..database.gateway import Subscription, get_gateway
from ..database.paths import path_for
from ..models.database_models import (
    Conversation, ConversationInfo, ConversationMetadata, ConversationParticipants,
    ConversationStatus, Message, MessageStatus
)

logger = logging.getLogger(__name__)

DEFAULT_SUPPORT_AGENT = "agent_001"
_NEVER = datetime.min.replace(tzinfo=timezone.utc)


def parse_conversations(raw: Optional[Dict[str, Any]]) -> List[Conversation]:
    conversations = []
    for conversation_id, data in (raw or {}).items():
        if not isinstance(data, dict):
            continue
        try:
            conversations.append(Conversation.model_validate({**data, 'id': conversation_id}))
        except Exception as e:
            logger.warning(f"Skipping malformed conversation {conversation_id}: {e}")
    # Most recently active first
    conversations.sort(
        key=lambda c: c.timestamps.last_message_at or c.timestamps.created_at or "",
        reverse=True
    )
    return conversations


def sort_messages(messages: List[Message]) -> List[Message]:
    """The store returns children in key order, not send order."""
    return sorted(messages, key=lambda m: parse_iso(m.timestamps.sent_at) or _NEVER)


def parse_messages(raw: Optional[Dict[str, Any]]) -> List[Message]:
    messages = []
    for message_id, data in (raw or {}).items():
        if not isinstance(data, dict):
            continue
        try:
            messages.append(Message.model_validate({**data, 'id': message_id}))
        except Exception as e:
            logger.warning(f"Skipping malformed message {message_id}: {e}")
    return sort_messages(messages)


class ChatService:
    """Service for support conversations and messages"""

    def __init__(self, gateway=None):
        self.db = gateway or get_gateway()

    # ===== Conversations =====

    async def create_conversation(
        self,
        user_id: str,
        info: Optional[ConversationInfo] = None,
        tags: Optional[List[str]] = None
    ) -> Conversation:
        now = now_iso()
        conversation = Conversation(
            participants=ConversationParticipants(patient=user_id, support_agent=DEFAULT_SUPPORT_AGENT),
            conversation_info=info or ConversationInfo(),
            metadata=ConversationMetadata(tags=tags if tags is not None else ['general', 'support']),
        )
        conversation.timestamps.created_at = now
        conversation.timestamps.last_message_at = now
        conversation.timestamps.updated_at = now

        conversation_id = await self.db.create(
            path_for('conversations', user_id=user_id),
            conversation.to_store()
        )
        conversation.id = conversation_id
        logger.info(f"[Chat] Created conversation {conversation_id} for user {user_id}")
        return conversation

    async def get_conversation(self, user_id: str, conversation_id: str) -> Optional[Conversation]:
        data = await self.db.read(path_for('conversation', user_id=user_id, conversation_id=conversation_id))
        if not data:
            return None
        return Conversation.model_validate({**data, 'id': conversation_id})

    async def list_conversations(self, user_id: str) -> List[Conversation]:
        raw = await self.db.list(path_for('conversations', user_id=user_id))
        return parse_conversations(raw)

    async def update_conversation_status(
        self,
        user_id: str,
        conversation_id: str,
        status: ConversationStatus
    ) -> None:
        status = ConversationStatus(status)
        now = now_iso()
        updates = {
            'conversationInfo/status': status.value,
            'timestamps/updatedAt': now,
        }
        if status == ConversationStatus.RESOLVED:
            updates['timestamps/resolvedAt'] = now

        await self.db.update(
            path_for('conversation', user_id=user_id, conversation_id=conversation_id),
            updates
        )
        logger.info(f"[Chat] Conversation {conversation_id} -> {status.value}")

    # ===== Messages =====

    async def send_message(self, user_id: str, conversation_id: str, message: Message) -> Message:
        """Persist a message as delivered, then bump the conversation's activity timestamps."""
        now = now_iso()
        data = message.model_copy(deep=True)
        data.id = None
        data.timestamps.sent_at = data.timestamps.sent_at or now
        data.timestamps.delivered_at = now
        data.status = MessageStatus.DELIVERED

        message_id = await self.db.create(
            path_for('messages', user_id=user_id, conversation_id=conversation_id),
            data.to_store()
        )
        data.id = message_id

        await self.db.update(
            path_for('conversation', user_id=user_id, conversation_id=conversation_id),
            {
                'timestamps/lastMessageAt': now,
                'timestamps/updatedAt': now,
            }
        )
        return data

    async def get_messages(self, user_id: str, conversation_id: str) -> List[Message]:
        raw = await self.db.list(path_for('messages', user_id=user_id, conversation_id=conversation_id))
        return parse_messages(raw)

    async def mark_message_read(self, user_id: str, conversation_id: str, message_id: str) -> bool:
        """False, with nothing written, when the message does not exist."""
        path = path_for('message', user_id=user_id, conversation_id=conversation_id, message_id=message_id)
        if not await self.db.read(path):
            return False
        await self.db.update(
            path,
            {
                'status': MessageStatus.READ.value,
                'timestamps/readAt': now_iso(),
            }
        )
        return True

    async def watch_messages(
        self,
        user_id: str,
        conversation_id: str,
        on_change: Callable[[List[Message]], Any]
    ) -> Subscription:
        """Sorted message list on every change to the conversation."""
        return await self.db.subscribe(
            path_for('messages', user_id=user_id, conversation_id=conversation_id),
            lambda raw: on_change(parse_messages(raw))
        )

    async def watch_conversations(
        self,
        user_id: str,
        on_change: Callable[[List[Conversation]], Any]
    ) -> Subscription:
        return await self.db.subscribe(
            path_for('conversations', user_id=user_id),
            lambda raw: on_change(parse_conversations(raw))
        )


# Singleton instance
_chat_service = None

def get_chat_service() -> ChatService:
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService()
    return _chat_service
