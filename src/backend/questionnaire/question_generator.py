"""Tailored NEPRA question generation.

The model is asked for ``{"questions": [...]}``. Its reply is cleaned the same
way for every model: ``<think>`` blocks and code fences are stripped, the
first JSON object (or list) is extracted, repaired with ``json_repair`` and
parsed with ``orjson``. A reply that still cannot be read is re-requested a
couple of times before the generator gives up and returns the error sentinel.
"""
import logging
import re

import orjson
from json_repair import repair_json
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from .errors import InputRejected
from .ollama_client import OllamaClient
from .prompts import NEPRA_THEMES, QUESTIONS_FAILED_SENTINEL, TAILOR_SYSTEM, TAILOR_USER

logger = logging.getLogger(__name__)

MIN_QUESTIONS = 5
MAX_QUESTIONS = 10

_LIST_LINE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(?P<text>.+?)\s*$")


class QuestionParseError(ValueError):
    pass


def _strip_wrappers(raw: str) -> str:
    if not raw:
        return raw
    raw = re.sub(r"<think>.*?</think>", "", raw, flags=re.DOTALL)
    raw = re.sub(r"```(?:json)?", "", raw)
    return raw.strip()


def _coerce_question(item) -> str:
    if isinstance(item, dict):
        item = item.get("questionText") or item.get("question_text") or item.get("question") or item.get("text") or ""
    return str(item).strip().strip('"').strip()


def _loads(fragment: str):
    try:
        return orjson.loads(repair_json(fragment))
    except orjson.JSONDecodeError as exc:
        raise QuestionParseError(f"Invalid JSON in model response: {exc}") from exc


def parse_questions(raw: str) -> list[str]:
    """Extract question strings from a model reply. Raises QuestionParseError."""
    cleaned = _strip_wrappers(raw or "")
    if not cleaned:
        raise QuestionParseError("Empty model response.")

    items = None
    obj = re.search(r"\{.*\}", cleaned, flags=re.DOTALL)
    if obj:
        data = _loads(obj.group(0))
        if isinstance(data, dict):
            items = data.get("questions")
    if items is None:
        arr = re.search(r"\[.*\]", cleaned, flags=re.DOTALL)
        if arr:
            data = _loads(arr.group(0))
            if isinstance(data, list):
                items = data
    if items is None:
        # Plain bulleted or numbered list
        items = [m.group("text") for m in map(_LIST_LINE.match, cleaned.splitlines()) if m]
    if not isinstance(items, list):
        raise QuestionParseError("'questions' is not a list.")

    questions = [q for q in (_coerce_question(i) for i in items) if q]
    if not questions:
        raise QuestionParseError("No questions found in model response.")
    return questions


class QuestionGenerator:
    def __init__(self, client: OllamaClient, max_questions: int = MAX_QUESTIONS):
        self.client = client
        self.max_questions = max_questions

    @retry(
        retry=retry_if_exception_type(QuestionParseError),
        stop=stop_after_attempt(3),
        wait=wait_fixed(0.2),
        reraise=True,
    )
    def _ask(self, department: str, role: str) -> list[str]:
        limits = {"min_questions": min(MIN_QUESTIONS, self.max_questions), "max_questions": self.max_questions}
        system = TAILOR_SYSTEM.format(**limits)
        user = TAILOR_USER.format(
            department=department,
            role=role,
            themes="\n".join(f'- "{t}"' for t in NEPRA_THEMES),
            **limits,
        )
        return parse_questions(self.client.complete_json(system=system, user=user))

    def generate(self, department: str, role: str) -> list[str]:
        """
        Return 5-10 questions tailored to department and role.
        A reply that cannot be parsed yields ``[QUESTIONS_FAILED_SENTINEL]``;
        service failures propagate as GenerationServiceError.
        """
        department, role = (department or "").strip(), (role or "").strip()
        if not department or not role:
            raise InputRejected("Department and Role are required to fetch questions.")

        try:
            questions = self._ask(department, role)
        except QuestionParseError as exc:
            logger.warning("Unreadable question list for %s / %s: %s", department, role, exc)
            return [QUESTIONS_FAILED_SENTINEL]

        if len(questions) < MIN_QUESTIONS:
            logger.warning("Model returned only %d questions for %s / %s", len(questions), department, role)
        if len(questions) > self.max_questions:
            logger.info("Truncating %d questions to %d", len(questions), self.max_questions)
        return questions[: self.max_questions]
