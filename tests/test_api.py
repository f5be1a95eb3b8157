"""
Tests for application wiring and database initialization.
"""

import os
import tempfile
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from deskbridge.api.main import create_app
from deskbridge.config import Config, DatabaseConfig, OpenAIConfig, RetentionConfig, ServiceSeedConfig
from deskbridge.database import create_engine as create_db_engine, get_session, init_database, is_in_memory, session_scope
from deskbridge.services.conversation_store import ConversationStore
from deskbridge.services.service_registry import ServiceRegistry


def test_ping(test_client: TestClient):
    """Test the liveness endpoint."""
    response = test_client.get("/api/ping")

    assert response.status_code == 200
    assert response.json() == {"message": "DeskBridge is running"}


def test_health_check(test_client: TestClient):
    """Test health check endpoint."""
    response = test_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_app_state_is_initialized(test_app, fake_llm, fake_jira):
    """Test that injected collaborators and intake state are on app.state."""
    assert test_app.state.llm is fake_llm
    assert test_app.state.jira is fake_jira
    assert test_app.state.webhook_state.throttle.window_seconds == 10
    assert test_app.state.webhook_state.processed_comments.capacity == 100


def test_services_are_seeded(app_session):
    """Test that configured services are written to the registry at startup."""
    registry = ServiceRegistry(app_session)

    assert [service.service_id for service in registry.list_active_services()] == ["landing-page", "sales", "support"]
    assert registry.get_active_assistant("support").assistant_id == "asst_support"


def test_optional_routers_are_not_mounted(fake_llm, fake_jira):
    """Test that WhatsApp and admin routes only exist when enabled."""
    config = Config(
        database=DatabaseConfig(url="sqlite:///:memory:"),
        openai=OpenAIConfig(api_key="test-api-key")
    )
    client = TestClient(create_app(config, llm_service=fake_llm, jira_service=fake_jira))

    assert client.get("/api/whatsapp/webhook").status_code == 404
    assert client.get("/admin/webhook-stats").status_code == 404
    assert client.get("/health").status_code == 200


def test_startup_retention_sweep(fake_llm, fake_jira):
    """Test that the startup sweep runs when configured."""
    config = Config(
        database=DatabaseConfig(url="sqlite:///:memory:"),
        openai=OpenAIConfig(api_key="test-api-key"),
        retention=RetentionConfig(thread_days=30, sweep_on_startup=True),
        services=[ServiceSeedConfig(service_id="support", service_name="Support", assistant_id="asst_1")]
    )

    app = create_app(config, llm_service=fake_llm, jira_service=fake_jira)

    SessionLocal = sessionmaker(bind=app.state.engine)
    session = SessionLocal()
    try:
        assert ConversationStore(session).get_stats()["totalThreads"] == 0
        assert ServiceRegistry(session).get_active_assistant("support").assistant_id == "asst_1"
    finally:
        session.close()


class TestDatabaseInitialization:
    """Test database initialization with different database configurations."""

    def test_in_memory_initialization(self):
        """Test that in-memory databases get their tables from metadata."""
        engine = create_engine("sqlite:///:memory:")

        init_database(engine)

        with engine.connect() as conn:
            result = conn.execute(text("SELECT name FROM sqlite_master WHERE type='table' AND name='chat_threads'"))
            assert result.fetchone() is not None, "chat_threads table should exist"

    def test_sqlite_file_initialization(self):
        """Test that file databases are migrated with Alembic."""
        with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as tmp_file:
            db_path = tmp_file.name

        try:
            engine = create_engine(f"sqlite:///{db_path}")

            init_database(engine)

            with engine.connect() as conn:
                result = conn.execute(text("SELECT name FROM sqlite_master WHERE type='table' AND name='alembic_version'"))
                assert result.fetchone() is not None, "Alembic version table should exist"

                for table in ["chat_threads", "service_configurations", "disabled_tickets", "whatsapp_mappings"]:
                    result = conn.execute(text(f"SELECT name FROM sqlite_master WHERE type='table' AND name='{table}'"))
                    assert result.fetchone() is not None, f"{table} table should exist"
        finally:
            if os.path.exists(db_path):
                os.unlink(db_path)

    def test_initialization_failure_raises(self, monkeypatch):
        """Test that failed migrations raise after the configured attempts."""
        monkeypatch.setenv("DATABASE_INIT_MAX_ATTEMPTS", "1")
        engine = create_engine("sqlite:////nonexistent-dir/deskbridge.db")

        with pytest.raises(RuntimeError, match="Database initialization failed"):
            init_database(engine)

    def test_create_engine_binds_request_sessions(self):
        """Test that get_session yields sessions on the engine from create_engine."""
        engine, url = create_db_engine(DatabaseConfig(url="sqlite:///:memory:"))
        assert url == "sqlite:///:memory:"
        assert is_in_memory(engine)

        init_database(engine)
        with session_scope(engine) as session:
            ServiceRegistry(session).upsert_service("support", "Support", "asst_1")

        sessions = get_session()
        session = next(sessions)
        try:
            assert session.get_bind() is engine
            assert ServiceRegistry(session).get_active_assistant("support").assistant_id == "asst_1"
        finally:
            sessions.close()

    def test_file_database_is_not_in_memory(self):
        """Test that file databases are routed to migrations."""
        engine, _ = create_db_engine(DatabaseConfig(url="sqlite:///./deskbridge-test.db"))

        assert not is_in_memory(engine)
