import os
import warnings

import pytest
from sqlalchemy import create_engine

# Set environment variables BEFORE importing app modules
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["POSTGRES_DSN"] = "sqlite+aiosqlite:///file:thankumail_tests?mode=memory&cache=shared&uri=true"
os.environ["PUBLIC_BASE_URL"] = "https://gifts.example.com"
os.environ["BREVO_API_KEY"] = ""
os.environ["QUOTA_BACKEND"] = "memory"

warnings.filterwarnings("ignore", category=DeprecationWarning)

from fastapi.testclient import TestClient

from thankumail.core.config import settings
from thankumail.core.mailer import SendResult, get_notifier
from thankumail.core.quota import InMemoryQuotaStore, get_quota_store
from thankumail.core.rate_limit import limiter
from thankumail.db.session import Base, build_engine, build_session_factory, get_db
from thankumail.main import app, request_metrics


class FakeNotifier:
    """Records dispatched emails instead of calling the provider."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail = False

    def dispatch(self, public_id, to_email, claim_link, message, amount_cents):
        if self.fail:
            raise RuntimeError("provider exploded")
        self.sent.append(
            {
                "public_id": public_id,
                "to": to_email,
                "claim_link": claim_link,
                "message": message,
                "amount": amount_cents,
            }
        )

    async def send_gift_email(self, to_email, claim_link, message, amount_cents):
        self.sent.append(
            {"to": to_email, "claim_link": claim_link, "message": message, "amount": amount_cents}
        )
        return SendResult(ok=True, message_id="fake-message-1")


def pytest_configure(config):
    warnings.filterwarnings("ignore", category=DeprecationWarning)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session", autouse=True)
def disable_rate_limiting():
    """Disable burst limiting for all tests; tests that need it switch it back on."""
    original = settings.rate_limit_enabled
    settings.rate_limit_enabled = False
    yield
    settings.rate_limit_enabled = original


@pytest.fixture
def session_factory(tmp_path):
    db_path = tmp_path / "gifts-test.db"
    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    engine = build_engine(f"sqlite+aiosqlite:///{db_path}")
    yield build_session_factory(engine)
    engine.sync_engine.dispose()


@pytest.fixture
def quota_store():
    return InMemoryQuotaStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture(autouse=True)
def app_overrides(session_factory, quota_store, notifier):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_quota_store] = lambda: quota_store
    app.dependency_overrides[get_notifier] = lambda: notifier
    limiter.reset()
    request_metrics.reset()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)
