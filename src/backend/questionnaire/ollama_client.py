import logging
import os

import requests
from dotenv import load_dotenv

from .errors import ErrorKind, GenerationServiceError

load_dotenv()

logger = logging.getLogger(__name__)


def _generation_options() -> dict:
    # ── LLM generation options (from .env) ──
    return {
        "temperature": float(os.getenv("OLLAMA_TEMPERATURE", "0.2")),
        "top_p": float(os.getenv("OLLAMA_TOP_P", "0.9")),
        "num_predict": int(os.getenv("OLLAMA_NUM_PREDICT", "4096")),
        "seed": int(os.getenv("OLLAMA_SEED", "42")),
    }


class OllamaClient:
    def __init__(self, model: str, base_url: str = None, timeout: int = None):
        self.model = model
        self.base_url = (base_url or os.getenv("OLLAMA_BASE_URL", "http://127.0.0.1:11434")).rstrip("/")
        self.timeout = timeout or int(os.getenv("OLLAMA_TIMEOUT", "300"))

    def chat(self, system: str, user: str, json_mode: bool = False) -> str:
        payload = {
            "model": self.model,
            "stream": False,
            "options": _generation_options(),
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }
        if json_mode:
            payload["format"] = "json"
        try:
            r = requests.post(f"{self.base_url}/api/chat", json=payload, timeout=self.timeout)
        except requests.Timeout as exc:
            raise GenerationServiceError(f"Model request timed out: {exc}", ErrorKind.OVERLOADED) from exc
        except requests.ConnectionError as exc:
            raise GenerationServiceError(f"Service unavailable: cannot reach {self.base_url}") from exc
        if not r.ok:
            detail = _error_detail(r)
            logger.warning("Ollama returned %s for model %s: %s", r.status_code, self.model, detail)
            raise GenerationServiceError(f"{r.status_code} {r.reason}: {detail}")
        content = r.json().get("message", {}).get("content", "")
        logger.debug("Ollama returned %d characters", len(content))
        return content

    def complete_json(self, system: str, user: str) -> str:
        return self.chat(system, user, json_mode=True)

    def complete_text(self, system: str, user: str) -> str:
        return self.chat(system, user)


def _error_detail(response: requests.Response) -> str:
    try:
        return str(response.json().get("error", response.text))
    except ValueError:
        return response.text
