"""
Pytest configuration and fixtures.
"""

import pytest
import os
from typing import Any, Dict, List, Optional
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from deskbridge.database import init_database
from deskbridge.models.base import Base
from deskbridge.config import (
    Config, DatabaseConfig, OpenAIConfig, JiraConfig, WhatsAppConfig, AdminConfig, ServiceSeedConfig
)
from deskbridge.api.main import create_app
from deskbridge.exceptions import ProviderUnavailable, TicketGatewayError
from deskbridge.services.llm import LLMService
from deskbridge.services.service_registry import ServiceRegistry
from deskbridge.services.whatsapp import WhatsAppService

# Set fast test timeouts for all tests
os.environ.setdefault("DATABASE_INIT_MAX_ATTEMPTS", "1")
os.environ.setdefault("DATABASE_INIT_RETRY_DELAY", "1")


class FakeLLMService:
    """In-memory stand-in for LLMService that records every call."""

    format_messages_with_context = LLMService.format_messages_with_context

    def __init__(self, reply: str = "Hello! How can we help you today?"):
        self.reply = reply
        self.threads: Dict[str, List[Dict[str, str]]] = {}
        self.missing_threads = set()
        self.run_statuses = ["completed"]
        self.created_threads: List[str] = []
        self.added_messages: List[tuple] = []
        self.runs: List[tuple] = []
        self.completion_calls: List[List[Dict[str, str]]] = []
        self.completion_reply = "Fallback reply"
        self.instructions: Optional[str] = "You are the support assistant."
        self.fail_assistant = False
        self.fail_completion = False
        self._statuses = iter(())

    async def create_thread(self) -> str:
        remote_id = f"thread_remote_{len(self.created_threads) + 1}"
        self.created_threads.append(remote_id)
        self.threads[remote_id] = []
        return remote_id

    async def thread_exists(self, remote_id: str) -> bool:
        return remote_id in self.threads and remote_id not in self.missing_threads

    async def add_user_message(self, remote_id: str, content: str) -> None:
        if self.fail_assistant:
            raise ProviderUnavailable("assistant API down")
        self.added_messages.append((remote_id, content))
        self.threads[remote_id].append({"role": "user", "content": content})

    async def start_run(self, remote_id: str, assistant_id: str) -> str:
        self.runs.append((remote_id, assistant_id))
        self._statuses = iter(list(self.run_statuses))
        self.threads[remote_id].append({"role": "assistant", "content": self.reply})
        return f"run_{len(self.runs)}"

    async def get_run_status(self, remote_id: str, run_id: str) -> str:
        return next(self._statuses, self.run_statuses[-1])

    async def get_latest_reply(self, remote_id: str) -> Optional[str]:
        for message in reversed(self.threads[remote_id]):
            if message["role"] == "assistant":
                return message["content"]
        return None

    async def list_messages(self, remote_id: str, limit: int = 100) -> List[Dict[str, str]]:
        return list(self.threads[remote_id])[:limit]

    async def get_assistant_instructions(self, assistant_id: str) -> Optional[str]:
        return self.instructions

    async def chat_completion(self, messages: List[Dict[str, str]]) -> str:
        self.completion_calls.append(messages)
        if self.fail_completion:
            raise ProviderUnavailable("completion API down")
        return self.completion_reply


class FakeJiraService:
    """Records Jira calls instead of performing HTTP requests."""

    def __init__(self):
        self.comments: List[Dict[str, Any]] = []
        self.created_issues: List[Dict[str, Any]] = []
        self.issues: Dict[str, Dict[str, Any]] = {}
        self.fail_comments = False

    async def add_comment(self, issue_key: str, text: str, identity: str = "ai", credentials=None) -> Dict[str, Any]:
        if self.fail_comments:
            raise TicketGatewayError("Jira is down", status_code=503)
        self.comments.append({"issue_key": issue_key, "text": text, "identity": identity, "credentials": credentials})
        return {"id": str(len(self.comments))}

    async def get_issue(self, issue_key: str) -> Dict[str, Any]:
        if issue_key not in self.issues:
            raise TicketGatewayError(f"Issue {issue_key} not found", status_code=404)
        return self.issues[issue_key]

    async def create_issue(self, project_key: str, summary: str, description: str, issue_type=None, labels=None) -> str:
        issue_key = f"{project_key}-{len(self.created_issues) + 1}"
        self.created_issues.append({"key": issue_key, "summary": summary, "description": description, "labels": labels})
        return issue_key


class FakeWhatsAppService(WhatsAppService):
    """Real payload parsing and verification, recorded sending."""

    def __init__(self, config: WhatsAppConfig):
        super().__init__(config)
        self.sent: List[tuple] = []

    async def send_message(self, to: str, body: str) -> Dict[str, Any]:
        self.sent.append((to, body))
        return {"messages": [{"id": f"wamid.out.{len(self.sent)}"}]}


@pytest.fixture
def test_db_url():
    """Test database URL."""
    return "sqlite:///:memory:"


@pytest.fixture
def test_engine(test_db_url):
    """Test database engine."""
    engine = create_engine(test_db_url, connect_args={"check_same_thread": False})

    init_database(engine)

    yield engine

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def test_session(test_engine):
    """Test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded_registry(test_session):
    """Registry with the three standard test services."""
    registry = ServiceRegistry(test_session)
    registry.upsert_service("landing-page", "Landing Page", "asst_landing", "Website Assistant", project_key="WEB")
    registry.upsert_service("sales", "Sales", "asst_sales", "Sales Assistant", project_key="SAL", keywords=["precio", "comprar"])
    registry.upsert_service("support", "Support", "asst_support", "Support Assistant", project_key="SUP", keywords=["ayuda", "error"])
    return registry


@pytest.fixture
def test_config():
    """Test configuration."""
    return Config(
        database=DatabaseConfig(url="sqlite:///:memory:"),
        openai=OpenAIConfig(
            api_key="test-api-key",
            run_poll_interval=0,
            run_timeout=1
        ),
        jira=JiraConfig(
            base_url="https://example.atlassian.net",
            email="helpdesk@example.com",
            api_token="jira-token",
            widget_email="widget@example.com",
            widget_api_token="widget-token",
            bot_account_ids=["557058:bot-account"],
            default_service_id="landing-page"
        ),
        whatsapp=WhatsAppConfig(
            enabled=True,
            verify_token="verify-me",
            access_token="wa-token",
            phone_number_id="1234567890",
            default_service_id="support"
        ),
        admin=AdminConfig(enabled=True, username="admin", password="admin123"),
        services=[
            ServiceSeedConfig(
                service_id="landing-page",
                service_name="Landing Page",
                assistant_id="asst_landing",
                assistant_name="Website Assistant",
                project_key="WEB"
            ),
            ServiceSeedConfig(
                service_id="sales",
                service_name="Sales",
                assistant_id="asst_sales",
                assistant_name="Sales Assistant",
                project_key="SAL",
                keywords=["precio", "comprar"]
            ),
            ServiceSeedConfig(
                service_id="support",
                service_name="Support",
                assistant_id="asst_support",
                assistant_name="Support Assistant",
                project_key="SUP",
                keywords=["ayuda", "error"]
            ),
        ]
    )


@pytest.fixture
def fake_llm():
    return FakeLLMService()


@pytest.fixture
def fake_jira():
    return FakeJiraService()


@pytest.fixture
def fake_whatsapp(test_config):
    return FakeWhatsAppService(test_config.whatsapp)


@pytest.fixture
def test_app(test_config, fake_llm, fake_jira, fake_whatsapp):
    """Test FastAPI application."""
    return create_app(test_config, llm_service=fake_llm, jira_service=fake_jira, whatsapp_service=fake_whatsapp)


@pytest.fixture
def test_client(test_app):
    """Test client."""
    return TestClient(test_app)


@pytest.fixture
def app_session(test_app):
    """Session on the application's own database."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_app.state.engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
