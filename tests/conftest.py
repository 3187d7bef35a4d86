"""Pytest configuration and fixtures."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.infrastructure.media_storage import MediaStorage
from app.persistence.database import Base
from app.persistence.models import *  # noqa: F401, F403
from app.persistence.models.channel_instance import ChannelInstance

GATEWAY_URL = "http://gateway.test"
OWN_NUMBER = "5511988887777"


class FakeGateway:
    """Routes httpx.MockTransport requests to canned responses by URL fragment.

    Unrouted requests get a 404, which every client treats as "not found".
    """

    def __init__(self):
        self.routes: list[tuple[str, str, object]] = []
        self.requests: list[httpx.Request] = []

    def add(self, method: str, fragment: str, response) -> None:
        """Register a response (or a callable taking the request) for a URL fragment."""
        self.routes.append((method.upper(), fragment, response))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        for method, fragment, response in self.routes:
            if request.method == method and fragment in url:
                return response(request) if callable(response) else response
        return httpx.Response(404, json={"error": "not found"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, fragment: str) -> list[httpx.Request]:
        return [r for r in self.requests if fragment in str(r.url)]


@pytest.fixture
async def db_session():
    """Create a test database session."""
    # Use in-memory SQLite for testing; one shared connection keeps the data alive
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    # pysqlite's implicit transactions break SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def fake_gateway():
    """Fake WhatsApp gateway behind an httpx.MockTransport."""
    return FakeGateway()


@pytest.fixture
def mock_storage():
    """Media storage that records uploads instead of talking to GCS."""
    storage = MagicMock(spec=MediaStorage)
    storage.get_blob_path.side_effect = MediaStorage.get_blob_path

    async def upload(blob_path, data, content_type):
        return f"storage://test-bucket/{blob_path}"

    storage.upload = AsyncMock(side_effect=upload)
    return storage


@pytest.fixture
async def channel_instance(db_session):
    """Active WAHA channel instance for tenant 1."""
    instance = ChannelInstance(
        tenant_id=1,
        provider="waha",
        session_name="default",
        base_url=GATEWAY_URL,
        api_key="gateway-key",
        phone_number=OWN_NUMBER,
        is_active=True,
    )
    db_session.add(instance)
    await db_session.commit()
    await db_session.refresh(instance)
    return instance


@pytest.fixture
async def client(db_session, mock_storage, fake_gateway):
    """Create a test HTTP client bound to the app and the test session."""
    from app.api.routes.whatsapp_webhooks import get_webhook_service
    from app.domain.services.whatsapp_webhook_service import WhatsAppWebhookService
    from app.main import app

    app.dependency_overrides[get_webhook_service] = lambda: WhatsAppWebhookService(
        db_session, storage=mock_storage, transport=fake_gateway.transport
    )

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()
