"""
Symptom Triage - Session Store Tests

Tests for the in-memory session repository.

Run with: pytest tests/test_session_store.py -v
"""

import asyncio

import pytest

from symptom_triage.core.exceptions import SessionLimitError, SessionNotFoundError
from symptom_triage.core.models import ChatMessage, PatientProfile
from symptom_triage.core.session_store import (
    InMemorySessionStore,
    SessionStore,
    create_session_store,
)
from symptom_triage.core.types import MessageRole, MessageType, Priority, SessionStatus


class TestSessionLifecycle:
    """Create, read and update sessions."""

    @pytest.mark.asyncio
    async def test_create_session(self, session_store: InMemorySessionStore, patient: PatientProfile):
        session = await session_store.create_session("user-1", "headache", patient)

        assert session.status == SessionStatus.ACTIVE
        assert session.user_id == "user-1"
        assert session.chief_complaint == "headache"
        assert session.priority_level == Priority.NON_URGENT
        assert session.risk_score == 0
        assert session.end_time is None

    @pytest.mark.asyncio
    async def test_get_unknown_session(self, session_store: InMemorySessionStore):
        assert await session_store.get_session("missing") is None

    @pytest.mark.asyncio
    async def test_update_session(self, session_store: InMemorySessionStore, patient: PatientProfile):
        session = await session_store.create_session("user-1", "fever", patient)

        updated = await session_store.update_session(
            session.id,
            status=SessionStatus.COMPLETED,
            risk_score=65,
            priority_level=Priority.URGENT,
        )

        assert updated.status == SessionStatus.COMPLETED
        assert updated.risk_score == 65
        assert updated.updated_at >= session.updated_at

        stored = await session_store.get_session(session.id)
        assert stored.priority_level == Priority.URGENT

    @pytest.mark.asyncio
    async def test_update_unknown_session(self, session_store: InMemorySessionStore):
        with pytest.raises(SessionNotFoundError):
            await session_store.update_session("missing", risk_score=10)

    @pytest.mark.asyncio
    async def test_returned_sessions_are_copies(
        self, session_store: InMemorySessionStore, patient: PatientProfile
    ):
        session = await session_store.create_session("user-1", "cough", patient)
        session.red_flags.append("tampered")

        stored = await session_store.get_session(session.id)
        assert stored.red_flags == []


class TestMessages:
    """Append-only message log."""

    @pytest.mark.asyncio
    async def test_messages_in_insertion_order(
        self, session_store: InMemorySessionStore, patient: PatientProfile
    ):
        session = await session_store.create_session("user-1", "cough", patient)
        for index in range(3):
            await session_store.append_message(ChatMessage(
                session_id=session.id,
                role=MessageRole.USER,
                message_type=MessageType.ANSWER,
                content=f"message {index}",
            ))

        messages = await session_store.get_messages(session.id)
        assert [m.content for m in messages] == ["message 0", "message 1", "message 2"]

    @pytest.mark.asyncio
    async def test_append_to_unknown_session(self, session_store: InMemorySessionStore):
        with pytest.raises(SessionNotFoundError):
            await session_store.append_message(ChatMessage(
                session_id="missing",
                role=MessageRole.USER,
                message_type=MessageType.ANSWER,
                content="hello",
            ))

    @pytest.mark.asyncio
    async def test_messages_of_unknown_session(self, session_store: InMemorySessionStore):
        with pytest.raises(SessionNotFoundError):
            await session_store.get_messages("missing")


class TestUserSessions:
    """Listing and limits."""

    @pytest.mark.asyncio
    async def test_newest_first(self, session_store: InMemorySessionStore, patient: PatientProfile):
        first = await session_store.create_session("user-1", "first", patient)
        second = await session_store.create_session("user-1", "second", patient)
        await session_store.create_session("user-2", "other user", patient)

        sessions = await session_store.list_user_sessions("user-1")
        assert [s.id for s in sessions] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_active_session_limit(self, patient: PatientProfile):
        store = InMemorySessionStore(max_active_sessions=2)
        first = await store.create_session("u", "a", patient)
        await store.create_session("u", "b", patient)

        with pytest.raises(SessionLimitError):
            await store.create_session("u", "c", patient)

        # Completed sessions no longer count
        await store.update_session(first.id, status=SessionStatus.COMPLETED)
        await store.create_session("u", "c", patient)

    @pytest.mark.asyncio
    async def test_finished_sessions_evicted_when_full(self, patient: PatientProfile):
        store = InMemorySessionStore(max_active_sessions=2, max_sessions=5)
        created = []
        for index in range(50):
            session = await store.create_session("u", f"complaint {index}", patient)
            await store.append_message(ChatMessage(
                session_id=session.id,
                role=MessageRole.USER,
                message_type=MessageType.ANSWER,
                content=f"message {index}",
            ))
            await store.update_session(session.id, status=SessionStatus.COMPLETED)
            created.append(session.id)

        remaining = await store.list_user_sessions("u")
        assert [s.id for s in remaining] == list(reversed(created[-5:]))

        assert await store.get_session(created[0]) is None
        with pytest.raises(SessionNotFoundError):
            await store.get_messages(created[0])

        messages = await store.get_messages(created[-1])
        assert [m.content for m in messages] == ["message 49"]

    @pytest.mark.asyncio
    async def test_active_sessions_never_evicted(self, patient: PatientProfile):
        store = InMemorySessionStore(max_active_sessions=2, max_sessions=3)
        kept = [await store.create_session("u", f"open {i}", patient) for i in range(2)]

        for index in range(10):
            session = await store.create_session("u", f"done {index}", patient)
            await store.update_session(session.id, status=SessionStatus.ABANDONED)

        remaining = await store.list_user_sessions("u")
        assert len(remaining) == 3
        for session in kept:
            stored = await store.get_session(session.id)
            assert stored.status == SessionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_concurrent_creates(self, session_store: InMemorySessionStore, patient: PatientProfile):
        sessions = await asyncio.gather(*[
            session_store.create_session("user-1", f"complaint {i}", patient)
            for i in range(20)
        ])

        assert len({s.id for s in sessions}) == 20
        assert len(await session_store.list_user_sessions("user-1")) == 20

    @pytest.mark.asyncio
    async def test_clear(self, session_store: InMemorySessionStore, patient: PatientProfile):
        session = await session_store.create_session("user-1", "cough", patient)
        await session_store.clear()

        assert await session_store.get_session(session.id) is None


class TestFactory:

    def test_create_session_store(self, make_settings):
        store = create_session_store(make_settings(max_sessions=7))

        assert isinstance(store, InMemorySessionStore)
        assert isinstance(store, SessionStore)
        assert store.store_id == "in-memory"
        assert store._max_sessions == 7
