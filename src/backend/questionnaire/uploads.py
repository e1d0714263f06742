import logging
import re
from pathlib import Path
from urllib.parse import quote

from .errors import UploadError

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")

CONTENT_TYPES = {
    ".md": "text/markdown",
    ".txt": "text/plain",
    ".pdf": "application/pdf",
}


def default_report_name(session_id: str, content: str | bytes) -> str:
    suffix = ".md" if isinstance(content, str) else ".pdf"
    return f"nepra_compliance_report_{session_id}{suffix}"


def safe_name(name: str) -> str:
    cleaned = _SAFE_NAME.sub("_", Path(name).name).strip("._")
    if not cleaned:
        raise UploadError(f"Invalid file name: {name!r}")
    return cleaned


def content_type_for(name: str) -> str:
    return CONTENT_TYPES.get(Path(name).suffix.lower(), "application/octet-stream")


class LocalReportStorage:
    """Stores reports under ``<root>/<session_id>/<name>`` and hands out API download URLs."""

    def __init__(self, root: Path, public_base_url: str):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def path_for(self, session_id: str, name: str) -> Path:
        folder = self.root / safe_name(session_id)
        return folder / safe_name(name)

    def url_for(self, session_id: str, name: str) -> str:
        return f"{self.public_base_url}/reports/{quote(safe_name(session_id))}/{quote(safe_name(name))}"

    def upload(self, session_id: str, content: str | bytes, name: str | None = None) -> str:
        if not session_id:
            raise UploadError("Missing sessionId. Cannot upload report.")
        name = name or default_report_name(session_id, content)
        target = self.path_for(session_id, name)
        data = content.encode("utf-8") if isinstance(content, str) else content
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            logger.warning("Could not store report %s for %s: %s", name, session_id, exc)
            raise UploadError(f"Could not store report {name}: {exc}") from exc
        logger.info("Stored report %s (%d bytes)", target, len(data))
        return self.url_for(session_id, name)

    def open(self, session_id: str, name: str) -> Path:
        target = self.path_for(session_id, name)
        if not target.is_file():
            raise UploadError(f"Report {name} not found for session {session_id}.")
        return target
