# brandforge/conftest.py
import base64
import os
import tempfile
from pathlib import Path

import pytest

# Settings are read at import time: configure the test environment first
_TMP_DIR = Path(tempfile.mkdtemp(prefix="brandforge-tests-"))
os.environ.setdefault("ENV", "test")
os.environ["TEST_DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ.setdefault("DATABASE_URL", os.environ["TEST_DATABASE_URL"])
os.environ.setdefault("AUTH_JWT_SECRET", "brandforge-test-secret-0123456789abcdef")
os.environ["AUTH_ALLOW_HEADER_FALLBACK"] = "true"
os.environ.setdefault("GEMINI_API_KEY", "test-key")

import httpx
from sqlalchemy import insert

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 17
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00\x10JFIF\x00" + b"\x00" * 16
GIF_BYTES = b"GIF89a" + b"\x01\x00\x01\x00" + b"\x00" * 8
WEBP_BYTES = b"RIFF" + b"\x24\x00\x00\x00" + b"WEBPVP8 " + b"\x00" * 12


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    """Recreate all tables once per session on the SQLite test database."""
    from brandforge.core.database import reset_database
    reset_database()
    yield


@pytest.fixture(scope="function", autouse=True)
def reset_db():
    """Delete every row (children first) and reset metrics before each test."""
    from brandforge.core.database import get_db_session, metadata
    from brandforge.core.metrics import METRICS

    with get_db_session() as session:
        for table in reversed(metadata.sorted_tables):
            session.execute(table.delete())
    METRICS.reset()
    yield


@pytest.fixture
def images():
    """Minimal encoded images with valid signatures."""
    return {
        "png": _b64(PNG_BYTES),
        "jpeg": _b64(JPEG_BYTES),
        "gif": _b64(GIF_BYTES),
        "webp": _b64(WEBP_BYTES),
        "png_url": f"data:image/png;base64,{_b64(PNG_BYTES)}",
        "jpeg_url": f"data:image/jpeg;base64,{_b64(JPEG_BYTES)}",
    }


@pytest.fixture
def seed_team():
    """Create a user in a team with initial balances. Returns an Identity."""
    from brandforge.core.auth import Identity
    from brandforge.core.database import get_db_session, users
    from brandforge.features.entitlements.service import ensure_team_entitlement

    def _seed(user_id: str = "user-1", team_id: str = "team-1", credits: int = 0, image_credits: int = 0):
        with get_db_session() as session:
            session.execute(insert(users).values(user_id=user_id, team_id=team_id))
        ensure_team_entitlement(team_id, credits=credits, image_credits=image_credits)
        return Identity(user_id=user_id, team_id=team_id)

    return _seed


class FakeSleep:
    """Records requested delays instead of waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def retry_policy(fake_sleep):
    from brandforge.features.generation.invoker import RetryPolicy, linear_delay
    return RetryPolicy(max_attempts=3, delay_fn=linear_delay(2.0), sleep=fake_sleep)


def gemini_image_body(data: str, mime_type: str = "image/png", text: str = None) -> dict:
    parts = []
    if text:
        parts.append({"text": text})
    parts.append({"inlineData": {"mimeType": mime_type, "data": data}})
    return {"candidates": [{"content": {"role": "model", "parts": parts}}]}


class ScriptedProvider:
    """
    Fake generative-model endpoint.

    Each queued item is (status_code, json_body) or an exception instance to
    raise. The last item repeats once the script runs out.
    """

    def __init__(self):
        self.script = []
        self.requests = []

    def queue(self, *items):
        self.script.extend(items)
        return self

    def succeed(self, data: str, text: str = None):
        return self.queue((200, gemini_image_body(data, text=text)))

    def _handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.script:
            raise AssertionError("provider called with an empty script")
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        status, body = item
        return httpx.Response(status, json=body)

    def client(self):
        from brandforge.features.generation.client import ImageModelClient
        return ImageModelClient(
            api_key="test-key",
            base_url="https://provider.test/v1beta",
            model="test-image-model",
            transport=httpx.MockTransport(self._handler),
        )


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def api_client(provider, retry_policy):
    """TestClient with the model client and retry policy overridden."""
    from fastapi.testclient import TestClient
    from brandforge.main import app
    from brandforge.api.actions import get_image_client, get_retry_policy

    app.dependency_overrides[get_image_client] = provider.client
    app.dependency_overrides[get_retry_policy] = lambda: retry_policy
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
