"""
Unit tests for backend/questionnaire/ollama_client.py

Covers:
  - OllamaClient initialization
  - chat() / complete_json() with mocked HTTP
  - Mapping of transport and HTTP failures onto GenerationServiceError
"""

import pytest
import requests
from unittest.mock import patch, MagicMock


def _import_client():
    from backend.questionnaire.ollama_client import OllamaClient
    return OllamaClient


def _response(status=200, body=None, reason="OK"):
    resp = MagicMock()
    resp.ok = status < 400
    resp.status_code = status
    resp.reason = reason
    resp.json.return_value = body if body is not None else {}
    resp.text = str(body)
    return resp


class TestOllamaClientInit:
    def test_default_init(self):
        Client = _import_client()
        c = Client(model="llama3.1")
        assert c.model == "llama3.1"
        assert c.base_url == "http://127.0.0.1:11434"
        assert c.timeout == 300

    def test_custom_init(self):
        Client = _import_client()
        c = Client(model="qwen2.5", base_url="http://localhost:9999/", timeout=30)
        assert c.base_url == "http://localhost:9999"
        assert c.timeout == 30


class TestChat:
    @patch("backend.questionnaire.ollama_client.requests.post")
    def test_complete_json_success(self, mock_post):
        Client = _import_client()
        mock_post.return_value = _response(body={"message": {"content": '{"questions": ["Q1?"]}'}})

        result = Client(model="llama3.1").complete_json(system="You are a bot.", user="Ask.")

        assert '"questions"' in result
        payload = mock_post.call_args.kwargs["json"]
        assert payload["model"] == "llama3.1"
        assert payload["stream"] is False
        assert payload["format"] == "json"
        assert payload["options"]["temperature"] == 0.0
        assert payload["options"]["seed"] == 42
        assert mock_post.call_args.args[0] == "http://127.0.0.1:11434/api/chat"

    @patch("backend.questionnaire.ollama_client.requests.post")
    def test_complete_text_has_no_format(self, mock_post):
        Client = _import_client()
        mock_post.return_value = _response(body={"message": {"content": "# Report"}})

        assert Client(model="llama3.1").complete_text(system="sys", user="usr") == "# Report"
        payload = mock_post.call_args.kwargs["json"]
        assert "format" not in payload
        assert payload["messages"][0] == {"role": "system", "content": "sys"}
        assert payload["messages"][1] == {"role": "user", "content": "usr"}

    @patch("backend.questionnaire.ollama_client.requests.post")
    def test_empty_response(self, mock_post):
        Client = _import_client()
        mock_post.return_value = _response(body={"message": {}})
        assert Client(model="llama3.1").complete_json(system="sys", user="usr") == ""


class TestChatErrors:
    @patch("backend.questionnaire.ollama_client.requests.post")
    def test_timeout_is_overload(self, mock_post):
        from backend.questionnaire.errors import ErrorKind, GenerationServiceError
        Client = _import_client()
        mock_post.side_effect = requests.Timeout("Connection timed out")

        with pytest.raises(GenerationServiceError) as info:
            Client(model="llama3.1").complete_json(system="sys", user="usr")
        assert info.value.kind == ErrorKind.OVERLOADED

    @patch("backend.questionnaire.ollama_client.requests.post")
    def test_unreachable_is_overload(self, mock_post):
        from backend.questionnaire.errors import ErrorKind, GenerationServiceError
        Client = _import_client()
        mock_post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(GenerationServiceError) as info:
            Client(model="llama3.1").complete_text(system="sys", user="usr")
        assert info.value.kind == ErrorKind.OVERLOADED

    @patch("backend.questionnaire.ollama_client.requests.post")
    def test_missing_model_is_generic(self, mock_post):
        from backend.questionnaire.errors import ErrorKind, GenerationServiceError
        Client = _import_client()
        mock_post.return_value = _response(404, {"error": "model 'llama3.1' not found"}, reason="Not Found")

        with pytest.raises(GenerationServiceError) as info:
            Client(model="llama3.1").complete_json(system="sys", user="usr")
        assert info.value.kind == ErrorKind.GENERIC
        assert "not found" in str(info.value)

    @patch("backend.questionnaire.ollama_client.requests.post")
    def test_503_is_overload(self, mock_post):
        from backend.questionnaire.errors import ErrorKind, GenerationServiceError
        Client = _import_client()
        mock_post.return_value = _response(503, {"error": "server busy"}, reason="Service Unavailable")

        with pytest.raises(GenerationServiceError) as info:
            Client(model="llama3.1").complete_json(system="sys", user="usr")
        assert info.value.kind == ErrorKind.OVERLOADED
