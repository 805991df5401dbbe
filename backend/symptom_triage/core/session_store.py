"""
Symptom Triage - Session Store

Repository for assessment sessions and their chat messages.

The classifier never touches this store; the orchestrator does. Any backend
(in-memory, file, database) can satisfy the SessionStore protocol without
changes to the classifier.

Privacy Notes:
    - The in-memory store is ephemeral (lost on restart)
    - Message content is never logged, only counts and ids
"""

from __future__ import annotations

import asyncio
import logging
from abc import abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Protocol, runtime_checkable

from symptom_triage.config import Settings
from symptom_triage.core.exceptions import SessionLimitError, SessionNotFoundError
from symptom_triage.core.logging import mask_session_id
from symptom_triage.core.models import ChatMessage, PatientProfile, Session
from symptom_triage.core.types import SessionStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Protocol
# =============================================================================

@runtime_checkable
class SessionStore(Protocol):
    """
    Protocol for session persistence.

    Implementations must be safe for concurrent use from multiple tasks.
    """

    @abstractmethod
    async def create_session(
        self,
        user_id: str,
        chief_complaint: str,
        patient: PatientProfile,
    ) -> Session:
        """Create and store a new ACTIVE session."""
        ...

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[Session]:
        """Get a session by id, or None."""
        ...

    @abstractmethod
    async def update_session(self, session_id: str, **updates) -> Session:
        """Apply field updates and bump updated_at."""
        ...

    @abstractmethod
    async def append_message(self, message: ChatMessage) -> ChatMessage:
        """Append a message to its session."""
        ...

    @abstractmethod
    async def get_messages(self, session_id: str) -> List[ChatMessage]:
        """All messages of a session in insertion order."""
        ...

    @abstractmethod
    async def list_user_sessions(self, user_id: str) -> List[Session]:
        """Sessions of a user, newest first."""
        ...


# =============================================================================
# In-Memory Implementation
# =============================================================================

class InMemorySessionStore:
    """
    In-memory implementation of SessionStore.

    Guards its maps with an asyncio.Lock, bounds the number of ACTIVE
    sessions and evicts the oldest finished sessions when full. Returned sessions are copies, so callers cannot mutate stored
    state behind the store's back.
    """

    def __init__(self, max_active_sessions: int = 1000, max_sessions: int = 10000):
        """
        Initialize the in-memory store.

        Args:
            max_active_sessions: Maximum concurrently ACTIVE sessions
            max_sessions: Retained sessions of any status. The oldest
                finished sessions are evicted, with their messages, once
                the store is full.
        """
        self._max_active_sessions = max_active_sessions
        self._max_sessions = max_sessions
        self._lock = asyncio.Lock()
        self._sessions: Dict[str, Session] = {}
        self._messages: Dict[str, List[ChatMessage]] = {}

        logger.info(
            "InMemorySessionStore initialized: max_active_sessions=%d, max_sessions=%d",
            max_active_sessions,
            max_sessions,
        )

    @property
    def store_id(self) -> str:
        return "in-memory"

    async def create_session(
        self,
        user_id: str,
        chief_complaint: str,
        patient: PatientProfile,
    ) -> Session:
        async with self._lock:
            active_count = sum(
                1 for s in self._sessions.values()
                if s.status == SessionStatus.ACTIVE
            )
            if active_count >= self._max_active_sessions:
                raise SessionLimitError(
                    f"Maximum active sessions ({self._max_active_sessions}) reached"
                )

            self._evict_finished()

            session = Session(
                user_id=user_id,
                chief_complaint=chief_complaint,
                patient=patient,
            )
            self._sessions[session.id] = session
            self._messages[session.id] = []

            logger.info("Session created: %s", mask_session_id(session.id))
            return session.model_copy(deep=True)

    async def get_session(self, session_id: str) -> Optional[Session]:
        async with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    async def update_session(self, session_id: str, **updates) -> Session:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(f"Session not found: {mask_session_id(session_id)}")

            updated = session.model_copy(update={**updates, "updated_at": datetime.utcnow()})
            self._sessions[session_id] = updated

            if "status" in updates:
                logger.info(
                    "Session status updated: session=%s, status=%s",
                    mask_session_id(session_id),
                    updated.status.value,
                )
            return updated.model_copy(deep=True)

    async def append_message(self, message: ChatMessage) -> ChatMessage:
        async with self._lock:
            if message.session_id not in self._sessions:
                raise SessionNotFoundError(
                    f"Session not found: {mask_session_id(message.session_id)}"
                )
            self._messages[message.session_id].append(message)
            return message

    async def get_messages(self, session_id: str) -> List[ChatMessage]:
        async with self._lock:
            if session_id not in self._sessions:
                raise SessionNotFoundError(f"Session not found: {mask_session_id(session_id)}")
            return list(self._messages[session_id])

    async def list_user_sessions(self, user_id: str) -> List[Session]:
        async with self._lock:
            sessions = [
                s.model_copy(deep=True)
                for s in reversed(self._sessions.values())
                if s.user_id == user_id
            ]
        # Stable sort; ties keep newest-inserted first
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return sessions

    async def clear(self) -> None:
        """Remove all sessions and messages."""
        async with self._lock:
            self._sessions.clear()
            self._messages.clear()

    def _evict_finished(self) -> None:
        """Drop the oldest non-ACTIVE sessions until one more fits. Caller holds the lock."""
        evicted = 0
        while len(self._sessions) >= self._max_sessions:
            oldest = next(
                (sid for sid, s in self._sessions.items() if s.status != SessionStatus.ACTIVE),
                None,
            )
            if oldest is None:
                break
            del self._sessions[oldest]
            del self._messages[oldest]
            evicted += 1

        if evicted:
            logger.info("Evicted %d finished sessions", evicted)


# =============================================================================
# Factory
# =============================================================================

def create_session_store(settings: Settings) -> InMemorySessionStore:
    """Create the configured session store."""
    return InMemorySessionStore(
        max_active_sessions=settings.max_active_sessions,
        max_sessions=settings.max_sessions,
    )
