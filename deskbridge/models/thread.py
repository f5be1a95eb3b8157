"""
Conversation thread and message models.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from datetime import datetime

from .base import Base


class ChatThread(Base):
    """Mapping of a local thread id to a remote AI conversation."""

    __tablename__ = "chat_threads"

    id = Column(Integer, primary_key=True, index=True)
    thread_id = Column(String, unique=True, nullable=False, index=True)
    remote_conversation_id = Column(String, nullable=False)  # OpenAI thread id
    ticket_key = Column(String, nullable=True, index=True)
    service_id = Column(String, nullable=False)
    user_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_activity = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<ChatThread(thread_id='{self.thread_id}', remote='{self.remote_conversation_id}')>"


class ChatMessage(Base):
    """Optional append-only log of conversation turns."""

    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    thread_id = Column(String, nullable=False)
    role = Column(String, nullable=False)  # 'user' or 'assistant'
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_chat_messages_thread_id', 'thread_id'),
    )

    def __repr__(self):
        return f"<ChatMessage(id={self.id}, role='{self.role}', thread_id='{self.thread_id}')>"
