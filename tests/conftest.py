"""
Test configuration and fixtures.

Provides:
- Database session on a fresh in-memory schema per test
- HTTPX AsyncClient wired to the same session
- Small builders for source records
"""
from typing import AsyncGenerator, Generator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.orm import Session

from unified_index.main import app
from unified_index.core.app_config import reset_app_config
from unified_index.core.deps import get_db
from unified_index.db.base import Base
from unified_index.db.models import MConversation, MConversationLabel, MSharedLabel, TwTag, TwTask
from unified_index.db.session import SessionLocal, engine
from unified_index.services import content_store_service


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Creates a database session over a freshly created schema.

    App code commits freely; the schema is dropped after each test.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_process_state() -> Generator[None, None, None]:
    """Process-wide config and hooks start from defaults in every test."""
    yield
    reset_app_config()
    content_store_service.register_deletion_hook(None)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Create AsyncClient for testing endpoints against the test session."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as c:
        yield c

    app.dependency_overrides.clear()


# =============================================================================
# Builders
# =============================================================================

@pytest.fixture
def make_task(db: Session):
    """Create a task carrying the given tag names (tags are created as needed)."""
    def _make(task_id: str, tag_names=(), **fields) -> TwTask:
        task = TwTask(id=task_id, name=fields.pop("name", f"Task {task_id}"), **fields)
        for tag_name in tag_names:
            tag_id = f"tag-{tag_name}"
            tag = db.get(TwTag, tag_id) or TwTag(id=tag_id, name=tag_name)
            task.tags.append(tag)
        db.add(task)
        db.flush()
        return task

    return _make


@pytest.fixture
def make_conversation(db: Session):
    """Create a conversation carrying the given shared label names."""
    def _make(conversation_id: str, label_names=(), subject=None) -> MConversation:
        conversation = MConversation(id=conversation_id, subject=subject)
        db.add(conversation)
        db.flush()
        for label_name in label_names:
            label_id = f"label-{label_name}"
            if db.get(MSharedLabel, label_id) is None:
                db.add(MSharedLabel(id=label_id, name=label_name))
                db.flush()
            db.add(MConversationLabel(conversation_id=conversation_id, label_id=label_id))
        db.flush()
        return conversation

    return _make
