"""HTTP adapters the Streamlit client uses to reach the backend API.

Each adapter satisfies one collaborator of :class:`ComplianceSessionMachine`
(question source, report writer, session store, report uploader) and maps
transport failures onto the matching error type.
"""
import logging
import os

import requests
from dotenv import load_dotenv

from backend.questionnaire.errors import GenerationServiceError, StoreError, UploadError
from backend.questionnaire.models import (
    ComplianceSession, GenerateReportRequest, ResponseData, SessionUpdate,
)
from backend.questionnaire.uploads import content_type_for

from .session_machine import BackendInit

load_dotenv()
logger = logging.getLogger(__name__)

# ── configurable via .env ──
API_BASE = os.getenv("API_BASE", "http://127.0.0.1:8000")
API_TIMEOUT = int(os.getenv("API_TIMEOUT", "60"))
REPORT_TIMEOUT = int(os.getenv("REPORT_TIMEOUT", "300"))

UNREACHABLE = "Cannot connect to backend. Is the server running?"


def _detail(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return resp.text


class ApiClient:
    def __init__(self, base_url: str | None = None, timeout: int | None = None, report_timeout: int | None = None):
        self.base_url = (base_url or API_BASE).rstrip("/")
        self.timeout = timeout or API_TIMEOUT
        self.report_timeout = report_timeout or REPORT_TIMEOUT

    def request(self, method: str, path: str, error=StoreError, timeout: int | None = None, **kwargs):
        try:
            return requests.request(method, f"{self.base_url}{path}", timeout=timeout or self.timeout, **kwargs)
        except requests.exceptions.Timeout as exc:
            raise error(f"Request to {path} timed out after {timeout or self.timeout}s") from exc
        except requests.exceptions.ConnectionError as exc:
            raise error(UNREACHABLE) from exc
        except requests.exceptions.RequestException as exc:
            raise error(f"Request to {path} failed: {exc}") from exc


class HttpQuestionGenerator:
    def __init__(self, api: ApiClient):
        self.api = api

    def generate(self, department: str, role: str) -> list[str]:
        resp = self.api.request(
            "POST", "/questions", error=GenerationServiceError, timeout=self.api.report_timeout,
            json={"department": department, "role": role},
        )
        if not resp.ok:
            raise GenerationServiceError(f"{resp.status_code}: {_detail(resp)}")
        return resp.json()["questions"]


class HttpReportGenerator:
    def __init__(self, api: ApiClient):
        self.api = api

    def generate(self, request: GenerateReportRequest) -> str:
        resp = self.api.request(
            "POST", "/report", error=GenerationServiceError, timeout=self.api.report_timeout,
            json=request.model_dump(mode="json"),
        )
        if not resp.ok:
            raise GenerationServiceError(f"{resp.status_code}: {_detail(resp)}")
        return resp.json()["report_content"]


class HttpSessionStore:
    backend = "http"

    def __init__(self, api: ApiClient):
        self.api = api

    def _check(self, resp: requests.Response, action: str) -> requests.Response:
        if not resp.ok:
            raise StoreError(f"Could not {action}: {resp.status_code} {_detail(resp)}")
        return resp

    def create_session(self, session: ComplianceSession) -> str:
        resp = self.api.request("POST", "/sessions", json=session.model_dump(mode="json"))
        return self._check(resp, "create session").json()["session_id"]

    def update_session(self, session_id: str, fields: SessionUpdate | dict) -> None:
        if isinstance(fields, dict):
            fields = SessionUpdate.model_validate(fields)
        resp = self.api.request(
            "PATCH", f"/sessions/{session_id}", json=fields.model_dump(mode="json", exclude_unset=True),
        )
        self._check(resp, f"update session {session_id}")

    def get_session(self, session_id: str) -> ComplianceSession | None:
        if not session_id:
            return None
        resp = self.api.request("GET", f"/sessions/{session_id}")
        if resp.status_code == 404:
            return None
        return ComplianceSession.model_validate(self._check(resp, f"load session {session_id}").json())

    def add_response(self, session_id: str, response: ResponseData) -> str:
        resp = self.api.request(
            "PUT", f"/sessions/{session_id}/responses/{response.question_id}",
            json=response.model_dump(mode="json"),
        )
        return self._check(resp, f"save response {response.question_id}").json()["response_key"]

    def ping(self) -> bool:
        try:
            resp = self.api.request("GET", "/health")
        except StoreError:
            return False
        return resp.ok and bool(resp.json().get("store_ok"))


class HttpReportUploader:
    def __init__(self, api: ApiClient):
        self.api = api

    def upload(self, session_id: str, content: str | bytes, name: str) -> str:
        if not session_id:
            raise UploadError("Missing sessionId. Cannot upload report.")
        data = content.encode("utf-8") if isinstance(content, str) else content
        resp = self.api.request(
            "POST", f"/sessions/{session_id}/reports", error=UploadError,
            files={"file": (name, data, content_type_for(name))},
        )
        if not resp.ok:
            raise UploadError(f"Upload failed: {resp.status_code} {_detail(resp)}")
        return resp.json()["url"]


def probe_backend(api: ApiClient) -> BackendInit:
    """Check that the backend and its session store answer before the UI starts."""
    try:
        resp = api.request("GET", "/health")
    except StoreError as exc:
        logger.error("Backend health check failed: %s", exc)
        return BackendInit(None, None, error=f"CRITICAL: Backend unreachable at {api.base_url}. {exc}")
    if not resp.ok:
        return BackendInit(None, None, error=f"CRITICAL: Backend health check failed ({resp.status_code}).")
    health = resp.json()
    if not health.get("store_ok"):
        return BackendInit(
            None, None,
            error=f"CRITICAL: Session store '{health.get('session_store')}' is not reachable. Check REDIS_URL.",
        )
    logger.info("Backend ready at %s (store=%s)", api.base_url, health.get("session_store"))
    return BackendInit(HttpSessionStore(api), HttpReportUploader(api))
