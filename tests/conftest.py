import io
import json
import os

# Settings are read at import time
os.environ.setdefault("OPENAI_API_KEY", "test-key")

import pytest  # noqa: E402
import requests  # noqa: E402
from PIL import Image  # noqa: E402

from app.storage.job_store import JobStore  # noqa: E402


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeChatClient:
    """Stands in for ChatCompletionClient; replays canned answers in order."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.calls = []

    def complete(self, prompt, image=None):
        self.calls.append((prompt, image))
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer


def _make_response(status_code, payload=None, text=None):
    resp = requests.Response()
    resp.status_code = status_code
    resp.url = "http://testserver/"
    if text is not None:
        resp._content = text.encode("utf-8")
    else:
        resp._content = json.dumps(payload).encode("utf-8")
        resp.headers["Content-Type"] = "application/json"
    return resp


@pytest.fixture
def make_response():
    return _make_response


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock):
    return JobStore(base_dir=str(tmp_path / "jobs"), retention_seconds=3600, clock=clock)


@pytest.fixture
def png_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), (255, 255, 255)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def chat_client_factory():
    return FakeChatClient


@pytest.fixture
def label_answer():
    return json.dumps({
        "ingredients": [
            {
                "name": "Aspartame",
                "classification": "high_risk",
                "explanation": "Artificial sweetener with debated long-term effects.",
            },
            {
                "name": "Sodium",
                "classification": "moderate_risk",
                "explanation": "Excessive intake raises blood pressure.",
            },
            {
                "name": "Dietary Fiber",
                "classification": "healthy",
                "explanation": "Supports digestion and gut health.",
            },
        ]
    })
