"""
Support Chat Workflow - one mounted chat view for one patient.

Local state (message list + device cache) is updated optimistically and then
reconciled with every full-value push from the store. Replies from the
assistant are produced in background tasks; once the view is closed those
tasks still persist their reply but never touch local state again.
"""

import asyncio
import inspect
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Set

from ..core.clock import now_iso
from ..core.config import settings
from ..core.exceptions import PortalError
from ..database.gateway import Subscription
from ..models.database_models import (
    ConversationStatus, Message, MessageContent, MessageStatus, MessageTimestamps, SenderType
)
from ..models.user import Session
from .chat_completion import FALLBACK_REPLY
from .chat_service import sort_messages
from .local_cache import LocalCache, conversations_key, messages_key

logger = logging.getLogger(__name__)

AI_SENDER_ID = "ai_agent"

WELCOME_TEXT = (
    "Hello! Welcome to MediCare Hospital AI support. I'm here to help you with your medical "
    "inquiries, appointment scheduling, and general hospital information. How can I assist you today?"
)


def _new_message(sender_id: str, sender_type: SenderType, text: str, read: bool = False) -> Message:
    now = now_iso()
    return Message(
        id=f"local_{uuid.uuid4().hex}",
        sender_id=sender_id,
        sender_type=sender_type,
        content=MessageContent(text=text),
        timestamps=MessageTimestamps(sent_at=now, delivered_at=now, read_at=now if read else None),
        status=MessageStatus.READ if read else MessageStatus.DELIVERED,
    )


def _signature(message: Message) -> tuple:
    return message.sender_id, message.timestamps.sent_at, message.content.text


class SupportChatWorkflow:
    def __init__(
        self,
        session: Optional[Session],
        chat_service,
        completion_client,
        cache: Optional[LocalCache] = None,
        reply_delay: Optional[float] = None,
        on_update: Optional[Callable[[List[Message]], Any]] = None
    ):
        self.session = session
        self.chat = chat_service
        self.completion = completion_client
        self.cache = cache or LocalCache()
        self.reply_delay = settings.CHAT_REPLY_DELAY if reply_delay is None else reply_delay
        self.on_update = on_update

        self.conversation_id: Optional[str] = None
        self._remote: List[Message] = []
        self._pending: Dict[str, Message] = {}  # optimistic messages not yet persisted
        self._tasks: Set[asyncio.Task] = set()
        self._subscription: Optional[Subscription] = None
        self._closed = False
        self._cache_lock = asyncio.Lock()

    @property
    def messages(self) -> List[Message]:
        # A pending message echoed back by the store carries a new id
        echoed = {_signature(m) for m in self._remote}
        pending = [m for m in self._pending.values() if _signature(m) not in echoed]
        return sort_messages(self._remote + pending)

    @property
    def closed(self) -> bool:
        return self._closed

    # ===== Lifecycle =====

    async def mount(self) -> str:
        """Resume the cached active conversation or start a new one; then subscribe."""
        if self.session is None:
            raise PortalError("Please log in to start a conversation")
        uid = self.session.uid

        conversation_id = await asyncio.to_thread(self._cached_active_conversation, uid)
        if conversation_id:
            self.conversation_id = conversation_id
            self._remote = await asyncio.to_thread(self._cached_messages, conversation_id)
            logger.info(f"[Chat] Resumed conversation {conversation_id} for {uid}")
        else:
            conversation = await self.chat.create_conversation(uid)
            self.conversation_id = conversation.id
            cached = await asyncio.to_thread(self.cache.get, conversations_key(uid), []) or []
            cached.append({
                'id': conversation.id,
                'status': ConversationStatus.ACTIVE.value,
                'subject': conversation.conversation_info.subject,
                'createdAt': conversation.timestamps.created_at,
            })
            await asyncio.to_thread(self.cache.set, conversations_key(uid), cached)

            welcome = _new_message(AI_SENDER_ID, SenderType.SUPPORT, WELCOME_TEXT, read=True)
            persisted = await self.chat.send_message(uid, conversation.id, welcome)
            self._remote = [persisted]
            self._save_messages()

        self._subscription = await self.chat.watch_messages(uid, self.conversation_id, self._on_remote_messages)
        self._notify()
        return self.conversation_id

    def close(self):
        """Unmount: stop the subscription; in-flight replies stop touching local state."""
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._subscription.close()
        logger.info(f"[Chat] Closed conversation view {self.conversation_id}")

    async def wait_idle(self):
        """Wait for every outstanding persist/reply task."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ===== Sending =====

    async def send_message(self, text: str) -> Optional[Message]:
        """
        Show the patient's message immediately, then persist it and fetch a reply
        in the background. Returns the optimistic message.
        """
        text = (text or "").strip()
        if not text or self._closed:
            return None
        if self.conversation_id is None:
            raise PortalError("Conversation is not open")

        message = _new_message(self.session.uid, SenderType.PATIENT, text)
        self._add_local(message)
        self._spawn(self._deliver_and_reply(message, text))
        return message

    async def _deliver_and_reply(self, message: Message, text: str):
        uid = self.session.uid
        conversation_id = self.conversation_id

        await self._persist(uid, conversation_id, message)

        if self.reply_delay:
            await asyncio.sleep(self.reply_delay)

        try:
            reply_text = await self.completion.reply(text)
        except Exception as e:
            logger.error(f"[Chat] Reply generation failed: {e}", exc_info=True)
            reply_text = FALLBACK_REPLY

        reply = _new_message(AI_SENDER_ID, SenderType.SUPPORT, reply_text or FALLBACK_REPLY)
        if not self._closed:
            self._add_local(reply)
        await self._persist(uid, conversation_id, reply)

    async def _persist(self, uid: str, conversation_id: str, message: Message):
        local_id = message.id
        try:
            persisted = await self.chat.send_message(uid, conversation_id, message)
        except Exception as e:
            # Stays visible locally; the store may diverge from the cache
            logger.error(f"[Chat] Could not persist message in {conversation_id}: {e}")
            return
        if self._closed:
            return
        self._pending.pop(local_id, None)
        if all(m.id != persisted.id for m in self._remote):
            self._remote = sort_messages(self._remote + [persisted])
        self._save_messages()
        self._notify()

    # ===== Local state =====

    def _on_remote_messages(self, messages: List[Message]):
        if self._closed:
            return
        self._remote = list(messages)
        self._save_messages()
        self._notify()

    def _add_local(self, message: Message):
        self._pending[message.id] = message
        self._save_messages()
        self._notify()

    def _save_messages(self):
        """Snapshot now, write off the event loop; writes land in snapshot order."""
        if self.conversation_id:
            snapshot = [m.to_store() for m in self.messages]
            self._spawn(self._write_cache(messages_key(self.conversation_id), snapshot))

    async def _write_cache(self, key: str, value: Any):
        async with self._cache_lock:
            await asyncio.to_thread(self.cache.set, key, value)

    def _notify(self):
        if self.on_update is None or self._closed:
            return
        try:
            result = self.on_update(self.messages)
            if inspect.isawaitable(result):
                self._spawn(result)
        except Exception as e:
            logger.error(f"[Chat] Update listener failed: {e}", exc_info=True)

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cached_active_conversation(self, uid: str) -> Optional[str]:
        cached = self.cache.get(conversations_key(uid), []) or []
        for entry in reversed(cached):
            if isinstance(entry, dict) and entry.get('status') == ConversationStatus.ACTIVE.value and entry.get('id'):
                return entry['id']
        return None

    def _cached_messages(self, conversation_id: str) -> List[Message]:
        messages = []
        for entry in self.cache.get(messages_key(conversation_id), []) or []:
            try:
                messages.append(Message.model_validate(entry))
            except Exception as e:
                logger.debug(f"[Chat] Ignoring unreadable cached message: {e}")
        return sort_messages(messages)
