"""
Shared fixtures for unit and integration tests.
"""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import MagicMock

# ── Ensure src/ packages are importable ──
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT)

# ── Fake .env values used by every test ──
ENV_DEFAULTS = {
    "OLLAMA_MODEL": "llama3.1",
    "OLLAMA_BASE_URL": "http://127.0.0.1:11434",
    "OLLAMA_TIMEOUT": "300",
    "OLLAMA_TEMPERATURE": "0.0",
    "OLLAMA_TOP_P": "1.0",
    "OLLAMA_NUM_PREDICT": "4096",
    "OLLAMA_SEED": "42",
    "CORS_ORIGINS": "*",
    "SESSION_STORE": "memory",
    "REDIS_URL": "redis://localhost:6379/0",
    "REPORTS_DIR": "reports",
    "PUBLIC_BASE_URL": "http://127.0.0.1:8000",
    "MAX_QUESTIONS": "10",
    "LOG_LEVEL": "WARNING",
    "API_BASE": "http://127.0.0.1:8000",
    "API_TIMEOUT": "60",
    "REPORT_TIMEOUT": "300",
    "RATINGS_ENABLED": "true",
}

SIX_QUESTIONS = [
    "Describe how you grant and revoke administrator access on critical IT systems.",
    "How are security patches tested and applied to servers you manage?",
    "What logs do you forward to the SOC and how long are they retained?",
    "How do you back up system configurations and verify restores?",
    "What is your role when PowerCERT reports an incident affecting your systems?",
    "How are changes to production systems approved and documented?",
]


@pytest.fixture(autouse=True)
def mock_env(monkeypatch):
    """Inject all required env vars so modules never blow up on import."""
    for k, v in ENV_DEFAULTS.items():
        monkeypatch.setenv(k, v)


# ── Test doubles ──
class FakeQuestionGenerator:
    def __init__(self, questions=None, error=None):
        self.questions = list(SIX_QUESTIONS if questions is None else questions)
        self.error = error
        self.calls = []

    def generate(self, department, role):
        self.calls.append((department, role))
        if self.error is not None:
            raise self.error
        return list(self.questions)


class FakeReportGenerator:
    def __init__(self, content="# NEPRA Cybersecurity Compliance Report\n\nAll good.", error=None):
        self.content = content
        self.error = error
        self.requests = []

    def generate(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.content


class FakeUploader:
    def __init__(self, error=None):
        self.error = error
        self.uploads = []

    def upload(self, session_id, content, name):
        if self.error is not None:
            raise self.error
        self.uploads.append((session_id, content, name))
        return f"http://127.0.0.1:8000/reports/{session_id}/{name}"


class Clock:
    """Deterministic clock that advances one second per call."""

    def __init__(self):
        self.now = datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def profile():
    from backend.questionnaire.models import UserProfile
    return UserProfile(
        name="Ayesha Khan",
        email="ayesha.khan@nepra.org.pk",
        linkedin="https://www.linkedin.com/in/ayesha-khan",
        department="IT Operations",
        role="System Administrator",
    )


@pytest.fixture
def memory_store():
    from backend.questionnaire.store import InMemorySessionStore
    return InMemorySessionStore()


@pytest.fixture
def pointer_cache(tmp_path):
    from frontend.pointer_cache import PointerCache
    return PointerCache(tmp_path / "pointers.json")


@pytest.fixture
def fake_questions():
    return FakeQuestionGenerator()


@pytest.fixture
def fake_report():
    return FakeReportGenerator()


@pytest.fixture
def fake_uploader():
    return FakeUploader()


@pytest.fixture
def make_machine(memory_store, pointer_cache, fake_questions, fake_report, fake_uploader):
    """Factory building a machine wired to in-memory doubles; keyword args override any collaborator."""
    from frontend.session_machine import BackendInit, ComplianceSessionMachine

    counter = iter(range(1, 1000))

    def _make(**overrides):
        backend = overrides.pop("backend", None) or BackendInit(
            overrides.pop("store", memory_store), overrides.pop("uploader", fake_uploader),
        )
        return ComplianceSessionMachine(
            backend,
            overrides.pop("question_generator", fake_questions),
            overrides.pop("report_generator", fake_report),
            overrides.pop("pointer_cache", pointer_cache),
            clock=overrides.pop("clock", Clock()),
            new_session_id=overrides.pop("new_session_id", lambda: f"session_test_{next(counter)}"),
            **overrides,
        )

    return _make


@pytest.fixture
def mock_ollama_client():
    """Return a MagicMock that behaves like OllamaClient."""
    client = MagicMock()
    client.model = "llama3.1"
    client.base_url = "http://127.0.0.1:11434"
    client.timeout = 300
    return client


@pytest.fixture
def sample_llm_questions_response():
    """A realistic raw LLM reply with a <think> wrapper and a fenced JSON body."""
    return (
        "<think>\nThe user is a System Administrator in IT Operations. Focus on access control.\n</think>\n"
        "```json\n"
        "{\n"
        '  "questions": [\n'
        + ",\n".join(f'    "{q}"' for q in SIX_QUESTIONS)
        + "\n  ]\n}\n```"
    )
