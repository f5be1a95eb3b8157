"""
Conversation store: local thread id to remote AI conversation mapping.
"""

from datetime import datetime, timedelta
from typing import Dict, Any, Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.thread import ChatThread, ChatMessage

logger = logging.getLogger(__name__)


class ConversationStore:
    """Persistent thread mappings and the optional message log."""

    def __init__(self, db: Session, store_messages: bool = False):
        self.db = db
        self.store_messages = store_messages

    def get_thread(self, thread_id: str) -> Optional[ChatThread]:
        """Get a thread mapping by local thread id."""
        return self.db.query(ChatThread).filter(ChatThread.thread_id == thread_id).first()

    def save_thread(
        self,
        thread_id: str,
        remote_conversation_id: str,
        service_id: str,
        ticket_key: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> ChatThread:
        """Create or overwrite the mapping for thread_id."""
        thread = self.get_thread(thread_id)
        now = datetime.utcnow()

        if thread is None:
            thread = ChatThread(
                thread_id=thread_id,
                remote_conversation_id=remote_conversation_id,
                service_id=service_id,
                ticket_key=ticket_key,
                user_id=user_id,
                created_at=now,
                last_activity=now
            )
            self.db.add(thread)
        else:
            if thread.remote_conversation_id != remote_conversation_id:
                logger.info(f"Remapping thread {thread_id}: {thread.remote_conversation_id} -> {remote_conversation_id}")
            thread.remote_conversation_id = remote_conversation_id
            thread.service_id = service_id
            if ticket_key:
                thread.ticket_key = ticket_key
            if user_id:
                thread.user_id = user_id
            thread.last_activity = now

        self.db.commit()
        self.db.refresh(thread)
        return thread

    def touch(self, thread_id: str) -> None:
        """Update last activity of a thread."""
        thread = self.get_thread(thread_id)
        if thread is None:
            return
        thread.last_activity = datetime.utcnow()
        self.db.commit()

    def append_message(self, thread_id: str, role: str, content: str) -> Optional[ChatMessage]:
        """Append a turn to the message log when the log is enabled."""
        if not self.store_messages:
            return None
        message = ChatMessage(thread_id=thread_id, role=role, content=content)
        self.db.add(message)
        self.db.commit()
        return message

    def cleanup_old_threads(self, days: int = 30) -> int:
        """Delete threads (and their logged messages) inactive for more than `days` days."""
        cutoff = datetime.utcnow() - timedelta(days=days)
        stale = self.db.query(ChatThread).filter(ChatThread.last_activity < cutoff).all()
        stale_ids = [thread.thread_id for thread in stale]

        if not stale_ids:
            logger.info(f"Thread cleanup: nothing older than {days} days")
            return 0

        self.db.query(ChatMessage).filter(ChatMessage.thread_id.in_(stale_ids)).delete(synchronize_session=False)
        self.db.query(ChatThread).filter(ChatThread.thread_id.in_(stale_ids)).delete(synchronize_session=False)
        self.db.commit()

        logger.info(f"Thread cleanup: deleted {len(stale_ids)} threads older than {days} days")
        return len(stale_ids)

    def get_stats(self) -> Dict[str, Any]:
        """Row counts and activity range for the thread table."""
        total = self.db.query(func.count(ChatThread.id)).scalar() or 0
        oldest, newest = self.db.query(func.min(ChatThread.last_activity), func.max(ChatThread.last_activity)).one()
        messages = self.db.query(func.count(ChatMessage.id)).scalar() or 0
        return {
            "totalThreads": total,
            "totalMessages": messages,
            "oldestActivity": oldest.isoformat() if oldest else None,
            "newestActivity": newest.isoformat() if newest else None,
        }
