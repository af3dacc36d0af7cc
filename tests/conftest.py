"""
Shared pytest fixtures — in‑memory SQLite, FastAPI TestClient, a fake
Anthropic client and a temp-dir image store.
"""
import os
import tempfile
from types import SimpleNamespace

# Must be set before app.config is imported
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["DATA_DIR"] = tempfile.mkdtemp(prefix="receipt-data-")
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="receipt-uploads-")
os.environ["STORAGE_BACKEND"] = "filesystem"
os.environ["ANTHROPIC_API_KEY"] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.database import Base, get_db  # noqa: E402
from app.dependencies import get_extractor, get_storage  # noqa: E402
from app.main import app  # noqa: E402
from app.models import ReceiptModel  # noqa: F401,E402  — register model
from app.pipeline.extractor import ReceiptExtractor  # noqa: E402
from app.services.storage import StorageService  # noqa: E402

# StaticPool ensures all connections share the same in-memory database
_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)

JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 64
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64

COFFEE_JSON = (
    '{"storeName": "Coffee Shop", "amount": 12.5, '
    '"confidence": "high", "extractedText": "COFFEE SHOP\\nTOTAL 12.50"}'
)


class FakeMessages:
    def __init__(self):
        self.calls = []
        self.reply = None
        self.error = None

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeAnthropic:
    """Stands in for ``anthropic.Anthropic``; only ``messages.create`` is used."""

    def __init__(self):
        self.messages = FakeMessages()

    def respond_with(self, text):
        self.messages.reply = SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])

    def respond_with_blocks(self, blocks):
        self.messages.reply = SimpleNamespace(content=blocks)

    def fail_with(self, error):
        self.messages.error = error


@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture()
def db():
    session = _Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def fake_anthropic():
    fake = FakeAnthropic()
    fake.respond_with(COFFEE_JSON)
    return fake


@pytest.fixture()
def extractor(fake_anthropic):
    return ReceiptExtractor(client=fake_anthropic)


@pytest.fixture()
def storage(tmp_path):
    return StorageService(
        backend="filesystem",
        upload_dir=str(tmp_path / "uploads"),
        public_base_url="http://testserver",
    )


@pytest.fixture()
def client(db, extractor, storage):
    def _override():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _override
    app.dependency_overrides[get_extractor] = lambda: extractor
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
