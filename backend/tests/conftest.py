import pytest
from jose import jwt

from docchat.core.config import Settings
from docchat.core.errors import ModelUnavailable
from docchat.db.memdb import InMemoryRepository


class FakeLanguageModel:
    """Records prompts and returns a canned reply (or fails on demand)."""

    def __init__(self, reply: str = "Alpha is the first letter.", fail: bool = False):
        self.reply = reply
        self.fail = fail
        self.prompts = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise ModelUnavailable("Failed to generate AI response. Please try again later.")
        return self.reply

    async def summarize(self, text: str) -> str:
        if self.fail:
            raise ModelUnavailable("Failed to summarize document.")
        return f"Summary of {len(text.split())} words."


@pytest.fixture
def settings(tmp_path):
    return Settings(
        use_in_memory=True,
        sync_ingest=True,
        local_storage_dir=str(tmp_path / "uploads"),
        log_dir=None,
        pipeline_debug=False,
        gemini_api_key="",
        jwt_secret=None,
        generation_timeout_s=5.0,
    )


@pytest.fixture
def repo():
    return InMemoryRepository()


@pytest.fixture
def llm():
    return FakeLanguageModel()


@pytest.fixture
def make_token():
    def _make(subject: str = "firebase-uid-1", email: str = "ada@example.com", name: str = "Ada", secret: str = "dev-unverified"):
        return jwt.encode({"sub": subject, "email": email, "name": name}, secret, algorithm="HS256")
    return _make


@pytest.fixture
def auth_headers(make_token):
    return {"Authorization": f"Bearer {make_token()}"}
