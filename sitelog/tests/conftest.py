"""Pytest configuration and fixtures."""

import io
from typing import AsyncGenerator
from unittest.mock import AsyncMock, Mock

import pytest
from httpx import AsyncClient, ASGITransport
from PIL import Image as PILImage
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sitelog.app.core.config import Settings
from sitelog.app.db.base import Base, get_db
from sitelog.app.main import app
from sitelog.app.models.client import Client
from sitelog.app.services.analysis import AnalysisEngine
from sitelog.app.services.blob_store import BlobStore, LocalFileStorage, get_blob_store
from sitelog.app.services.job_queue import ReportJobQueue
from sitelog.app.services.pdf_generator import PDFGenerator
from sitelog.app.services.pipeline import ReportPipeline, get_report_pipeline

FAKE_PDF = b"%PDF-1.4\n% sitelog test document\n%%EOF\n"


class FakeRenderEngine:
    """Render engine double that records the HTML it was given."""

    name = "fake"

    def __init__(self, result: bytes = FAKE_PDF, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def render(self, html: str, css: str) -> bytes:
        self.calls.append((html, css))
        if self.error is not None:
            raise self.error
        return self.result


def make_jpeg(color: str = "red", size: tuple[int, int] = (32, 24)) -> bytes:
    bio = io.BytesIO()
    PILImage.new("RGB", size, color).save(bio, "JPEG")
    return bio.getvalue()


@pytest.fixture
def jpeg_bytes() -> bytes:
    """A small valid JPEG."""
    return make_jpeg()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings for tests: no credentials, storage under tmp_path."""
    return Settings(
        _env_file=None,
        environment="test",
        storage_root=str(tmp_path / "storage"),
        openai_api_key=None,
        bunny_storage_zone_name=None,
        bunny_storage_api_key=None,
        bunny_cdn_pull_zone_url=None,
        smtp_user=None,
        smtp_password=None,
        webhook_url=None,
        public_base_url="http://test",
    )


@pytest.fixture
def blob_store(test_settings: Settings) -> BlobStore:
    """Blob store backed by a temporary local directory."""
    return BlobStore(settings=test_settings, local=LocalFileStorage(test_settings.storage_root))


@pytest.fixture
def render_engine() -> FakeRenderEngine:
    return FakeRenderEngine()


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """
    Session factory over a fresh in-memory database.

    StaticPool keeps one connection so every session sees the same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def test_db(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Database session for a test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def sample_client(test_db: AsyncSession) -> Client:
    """An active client with two notification recipients."""
    client = Client(
        company_name="Acme Civil",
        contact_name="Jo Site",
        contact_email="jo@acme.test",
        notification_emails=["pm@acme.test", "office@acme.test"],
        brand_color="#336699",
        active=True,
    )
    test_db.add(client)
    await test_db.commit()
    return client


@pytest.fixture
def mock_distributor() -> Mock:
    distributor = Mock()
    distributor.distribute = AsyncMock(return_value=None)
    return distributor


@pytest.fixture
def pipeline(
    test_settings: Settings,
    session_factory: async_sessionmaker,
    blob_store: BlobStore,
    render_engine: FakeRenderEngine,
    mock_distributor: Mock,
) -> ReportPipeline:
    """Pipeline wired to the test database, local storage and a fake render engine."""
    return ReportPipeline(
        settings=test_settings,
        session_factory=session_factory,
        blob_store=blob_store,
        analysis_engine=AnalysisEngine(settings=test_settings),
        pdf_generator=PDFGenerator(settings=test_settings, blob_store=blob_store, engine=render_engine),
        distributor=mock_distributor,
        queue=ReportJobQueue(workers=1),
    )


@pytest.fixture
async def test_client_with_db(
    session_factory: async_sessionmaker,
    pipeline: ReportPipeline,
    blob_store: BlobStore,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create test client with in-memory database.

    Overrides the database, pipeline and blob store dependencies and runs the
    pipeline workers for the duration of the test.
    """
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_report_pipeline] = lambda: pipeline
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    pipeline.queue.start()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    await pipeline.queue.stop()
    app.dependency_overrides.clear()
