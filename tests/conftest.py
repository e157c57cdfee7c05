import os

os.environ.setdefault("ENCRYPTION_KEY", "11" * 32)
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("VISION_API_KEY", "test-vision-key")

import io
import json
from datetime import timedelta

import httpx
import pytest
from PIL import Image
from reportlab.pdfgen import canvas
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import create_tables  # noqa: F401  registers every model on Base
from config import decode_encryption_key
from database import Base, configure_sqlite
from modules.envelopes.repositories.envelope_repository import EnvelopeRepository, IncomingFile
from modules.storage import EncryptedBlobStore, LocalObjectStore
from modules.webhooks.services.dispatcher import EventDispatcher

TEST_KEY = decode_encryption_key(os.environ["ENCRYPTION_KEY"])


def make_pdf_bytes(pages=1, text="PDF de prueba para firmar"):
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer)
    for number in range(pages):
        c.drawString(100, 750, f"{text} - page {number + 1}")
        c.showPage()
    c.save()
    buffer.seek(0)
    return buffer.read()


def make_png_bytes(size=(60, 30), color=(0, 0, 255, 255)):
    buffer = io.BytesIO()
    Image.new("RGBA", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_jpeg_bytes(size=(80, 50), color=(200, 180, 160)):
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="JPEG")
    return buffer.getvalue()


def vision_reply(content):
    """OpenAI-style chat completion body with ``content`` as the answer text"""
    if not isinstance(content, str):
        content = json.dumps(content)
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def blob_store(tmp_path):
    return EncryptedBlobStore(LocalObjectStore(str(tmp_path / "blobs")), TEST_KEY)


@pytest.fixture
def repository(db_session, blob_store):
    return EnvelopeRepository(db_session, blob_store)


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def example_pdf():
    return make_pdf_bytes()


@pytest.fixture
def create_envelope(repository):
    """Factory: creates a pending envelope with one encrypted PDF"""
    from modules.envelopes.models import get_workflow

    def _create(workflow_id="standard", placeholders=None, ttl=timedelta(days=7), pages=1):
        return repository.create_signing_session(
            "Ana García",
            "ana@example.com",
            [IncomingFile("contrato.pdf", make_pdf_bytes(pages), "application/pdf")],
            get_workflow(workflow_id),
            ttl,
            placeholders,
        )

    return _create


@pytest.fixture
def vision_responses():
    """Queue of answers served by the fake vision backend, in order"""
    return []


@pytest.fixture
def vision_client(vision_responses):
    def handler(request):
        if not vision_responses:
            return httpx.Response(500, json={"error": "no answer queued"})
        answer = vision_responses.pop(0)
        if isinstance(answer, httpx.Response):
            return answer
        return httpx.Response(200, json=vision_reply(answer))

    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def api_key(db_session):
    from modules.auth.services.api_key_service import ApiKeyService

    _, plaintext = ApiKeyService(db_session).create_key("integration-tests")
    return plaintext


@pytest.fixture
def client(db_session, blob_store, vision_client):
    from fastapi.testclient import TestClient

    from database import get_db
    from main import app
    from modules.envelopes.dependencies import get_blob_store
    from modules.verification.dependencies import get_verification_adapter
    from modules.verification.services.verification_adapter import VerificationAdapter

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_verification_adapter] = lambda: VerificationAdapter(
        vision_client, "https://vision.test/v1/chat/completions", "test-vision-key", "test-model", timeout=5
    )
    yield TestClient(app)
    app.dependency_overrides.clear()
