"""Client-side lifecycle of one compliance questionnaire session.

The machine owns the session that is being edited locally and drives the
backend collaborators (question source, report writer, session store, report
uploader). Streamlit reruns the script on every event and calls exactly one
public method per event, so every handler runs to completion before the next
one starts. ``is_loading`` is only there to reject a re-entrant call.

States::

    form -> questionnaire -> [collecting_ratings] -> generating_report -> report_ready
      ^                                                  |
      +------------------------- reset ------------------+     (error is terminal)
"""
import logging
import math
import secrets
import string
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from backend.questionnaire.errors import (
    USER_MESSAGES, ErrorKind, GenerationServiceError, InputRejected, InvalidTransition,
    StoreError, UploadError, classify_error_text,
)
from backend.questionnaire.models import (
    MAX_SCORE, MIN_SCORE, ComplianceSession, GenerateReportRequest, QuestionDefinition,
    QuestionnaireDataForReport, ReportAnswerDetail, ResponseData, SessionPointer,
    SessionStatus, SessionUpdate, UserProfile, utcnow,
)
from backend.questionnaire.prompts import ERROR_SENTINEL, POLICY_AREAS
from backend.questionnaire.store import SessionStore

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


class AppState(str, Enum):
    FORM = "form"
    QUESTIONNAIRE = "questionnaire"
    COLLECTING_RATINGS = "collecting_ratings"
    GENERATING_REPORT = "generating_report"
    REPORT_READY = "report_ready"
    ERROR = "error"


TRANSITIONS: dict[AppState, frozenset[AppState]] = {
    AppState.FORM: frozenset({AppState.FORM, AppState.QUESTIONNAIRE, AppState.ERROR}),
    AppState.QUESTIONNAIRE: frozenset({
        AppState.QUESTIONNAIRE, AppState.COLLECTING_RATINGS, AppState.GENERATING_REPORT, AppState.FORM, AppState.ERROR,
    }),
    AppState.COLLECTING_RATINGS: frozenset({
        AppState.COLLECTING_RATINGS, AppState.GENERATING_REPORT, AppState.FORM, AppState.ERROR,
    }),
    AppState.GENERATING_REPORT: frozenset({
        AppState.REPORT_READY, AppState.QUESTIONNAIRE, AppState.COLLECTING_RATINGS, AppState.FORM, AppState.ERROR,
    }),
    AppState.REPORT_READY: frozenset({AppState.FORM, AppState.ERROR}),
    AppState.ERROR: frozenset({AppState.FORM, AppState.ERROR}),
}

# States a fresh machine may jump to while restoring a stored session
RESUME_TARGETS = frozenset({AppState.QUESTIONNAIRE, AppState.COLLECTING_RATINGS, AppState.REPORT_READY})


class QuestionSource(Protocol):
    def generate(self, department: str, role: str) -> list[str]: ...


class ReportWriter(Protocol):
    def generate(self, request: GenerateReportRequest) -> str: ...


class ReportUploader(Protocol):
    def upload(self, session_id: str, content: str | bytes, name: str) -> str: ...


@dataclass(slots=True)
class BackendInit:
    """Outcome of probing the backing services before the UI starts."""

    store: Optional[SessionStore]
    uploader: Optional[ReportUploader]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.store is not None and self.uploader is not None


@dataclass(frozen=True, slots=True)
class Notice:
    level: str  # info | success | warning | error
    title: str
    message: str


@dataclass(frozen=True, slots=True)
class ReportOutcome:
    content: Optional[str]
    url: Optional[str]
    restored: bool = False

    @property
    def display_text(self) -> str:
        if self.content:
            return self.content
        if self.url:
            return (
                "This compliance session was already completed. "
                f"The generated report is available at: {self.url}"
            )
        return (
            "This compliance session was already completed, but no report link was saved. "
            "Start a new session to generate a fresh report."
        )


def generate_session_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"session_{int(time.time() * 1000)}_{suffix}"


def parse_score(raw) -> float:
    """Parse a maturity score, accepting numbers or numeric strings in [0, 10]."""
    if isinstance(raw, bool):
        raise InputRejected("Score must be a number.")
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = str(raw if raw is not None else "").strip()
        try:
            value = float(text)
        except ValueError:
            raise InputRejected(f"'{text}' is not a valid score. Enter a number between 0 and 10.") from None
    if not math.isfinite(value) or not MIN_SCORE <= value <= MAX_SCORE:
        raise InputRejected(f"Score must be between {MIN_SCORE:g} and {MAX_SCORE:g}.")
    return value


def _failure_message(text: str, fallback: str) -> str:
    kind = classify_error_text(text)
    if kind != ErrorKind.GENERIC:
        return USER_MESSAGES[kind]
    return text or fallback


class ComplianceSessionMachine:
    def __init__(
        self,
        backend: BackendInit,
        question_generator: QuestionSource,
        report_generator: ReportWriter,
        pointer_cache,
        *,
        ratings_enabled: bool = True,
        policy_areas: list[str] | None = None,
        probe: Callable[[], BackendInit] | None = None,
        clock: Callable = utcnow,
        new_session_id: Callable[[], str] = generate_session_id,
    ):
        self.backend = backend
        self.question_generator = question_generator
        self.report_generator = report_generator
        self.pointer_cache = pointer_cache
        self.ratings_enabled = ratings_enabled
        self.policy_areas = list(POLICY_AREAS if policy_areas is None else policy_areas)
        self._probe = probe
        self._clock = clock
        self._new_session_id = new_session_id

        self.state = AppState.FORM
        self.error: Optional[str] = None
        self.notices: list[Notice] = []
        self.report: Optional[ReportOutcome] = None
        self.is_loading = False
        self.last_profile: Optional[UserProfile] = None
        self.session = self._blank_session()
        self._pre_report_state: Optional[AppState] = None

        if not backend.ok:
            self._enter_error(backend.error)

    # ── plumbing ──
    @property
    def store(self) -> SessionStore:
        return self.backend.store

    @property
    def uploader(self) -> ReportUploader:
        return self.backend.uploader

    def _blank_session(self) -> ComplianceSession:
        return ComplianceSession(
            session_id=self._new_session_id(),
            user_profile=self.last_profile or UserProfile(),
            start_time=self._clock(),
        )

    def _transition(self, target: AppState, resuming: bool = False) -> None:
        allowed = TRANSITIONS[self.state]
        if resuming and self.state == AppState.FORM:
            allowed = allowed | RESUME_TARGETS
        if target not in allowed:
            raise InvalidTransition(f"Cannot move from {self.state.value} to {target.value}.")
        if target != self.state:
            logger.info("Session %s: %s -> %s", self.session.session_id, self.state.value, target.value)
        self.state = target

    def _require(self, *states: AppState) -> None:
        if self.state not in states:
            names = ", ".join(s.value for s in states)
            raise InvalidTransition(f"Operation needs state {names}, current state is {self.state.value}.")

    def _enter_error(self, message: Optional[str]) -> None:
        self.error = message or "CRITICAL: Backend services are not configured."
        self._transition(AppState.ERROR)
        logger.error(self.error)

    @contextmanager
    def _loading(self):
        if self.is_loading:
            raise InvalidTransition("Another operation is still running.")
        self.is_loading = True
        try:
            yield
        finally:
            self.is_loading = False

    def notify(self, level: str, title: str, message: str) -> None:
        self.notices.append(Notice(level, title, message))

    def drain_notices(self) -> list[Notice]:
        notices, self.notices = self.notices, []
        return notices

    def _pointer(self) -> SessionPointer:
        s = self.session
        return SessionPointer(
            session_id=s.session_id,
            user_profile=s.user_profile,
            current_question_index=s.current_question_index,
            current_rating_area_index=s.current_rating_area_index,
            policy_scores=dict(s.policy_scores),
        )

    def _remember_position(self) -> None:
        self.pointer_cache.save_active(self._pointer())

    def _fresh_form(self) -> None:
        self.session = self._blank_session()
        self.report = None
        self._pre_report_state = None
        self._transition(AppState.FORM)

    # ── view helpers ──
    @property
    def current_question(self) -> Optional[QuestionDefinition]:
        return self.session.current_question

    @property
    def current_answer(self) -> str:
        q = self.current_question
        response = self.session.responses.get(q.id) if q else None
        return response.answer_text if response else ""

    @property
    def current_risk_level(self) -> str:
        q = self.current_question
        response = self.session.responses.get(q.id) if q else None
        return response.risk_level if response else "not_assessed"

    @property
    def is_first_question(self) -> bool:
        return self.session.current_question_index == 0

    @property
    def is_last_question(self) -> bool:
        return self.session.current_question_index >= len(self.session.questions) - 1

    @property
    def current_rating_area(self) -> Optional[str]:
        areas = self.session.policy_areas_to_rate
        idx = self.session.current_rating_area_index
        return areas[idx] if 0 <= idx < len(areas) else None

    # ── resume ──
    def resume(self) -> AppState:
        """Restore the active session named by the pointer cache, if the store still has it."""
        if self.state == AppState.ERROR:
            return self.state
        self._require(AppState.FORM)
        with self._loading():
            self.last_profile = self.pointer_cache.load_profile()
            pointer = self.pointer_cache.load_active()
            if pointer is None:
                self._fresh_form()
                return self.state
            try:
                stored = self.store.get_session(pointer.session_id)
            except StoreError as exc:
                logger.warning("Could not resume %s: %s", pointer.session_id, exc)
                self.notify("warning", "Resume Failed", f"Failed to resume session: {exc}. Starting fresh.")
                self.pointer_cache.clear_active()
                self._fresh_form()
                return self.state
            if stored is None:
                logger.info("Pointer %s has no stored session, starting fresh", pointer.session_id)
                self.pointer_cache.clear_active()
                self._fresh_form()
                return self.state
            return self._restore(stored)

    def _restore(self, stored: ComplianceSession) -> AppState:
        self.session = stored
        if stored.is_complete:
            self.report = ReportOutcome(content=None, url=stored.report_url, restored=True)
            self.pointer_cache.clear_active()
            self._transition(AppState.REPORT_READY, resuming=True)
            return self.state

        if not stored.questions:
            if stored.user_profile.has_department_and_role:
                self._fetch_questions(is_new=False)
            else:
                self.pointer_cache.clear_active()
                self._fresh_form()
            return self.state

        stored.current_question_index = min(stored.answered_count, len(stored.questions) - 1)
        areas = stored.policy_areas_to_rate
        if stored.status == SessionStatus.RATING and areas:
            stored.current_rating_area_index = min(len(stored.policy_scores), len(areas) - 1)
            self._transition(AppState.COLLECTING_RATINGS, resuming=True)
        else:
            self._transition(AppState.QUESTIONNAIRE, resuming=True)
        self._remember_position()
        self.notify("info", "Session Resumed", f"Welcome back, {stored.user_profile.name or 'there'}.")
        return self.state

    # ── form ──
    def submit_profile(self, profile: UserProfile) -> bool:
        """Start a new session for ``profile``. Returns True once questions are loaded."""
        self._require(AppState.FORM)
        if not profile.has_department_and_role:
            raise InputRejected("Department and Role are required to tailor the questionnaire.")
        with self._loading():
            self.pointer_cache.save_profile(profile)
            self.last_profile = profile
            self.session = ComplianceSession(
                session_id=self._new_session_id(), user_profile=profile, start_time=self._clock(),
            )
            self.error = None
            return self._fetch_questions(is_new=True)

    def _fetch_questions(self, is_new: bool) -> bool:
        profile = self.session.user_profile
        try:
            texts = self.question_generator.generate(profile.department, profile.role)
        except GenerationServiceError as exc:
            return self._questions_failed(exc.user_message)
        except InputRejected as exc:
            return self._questions_failed(str(exc))

        if not texts or texts[0].lstrip().startswith(ERROR_SENTINEL):
            return self._questions_failed(_failure_message(
                texts[0] if texts else "",
                "No questions were returned for your department and role. Please try again.",
            ))

        sid = self.session.session_id
        questions = [QuestionDefinition(id=f"q_{sid}_{i}", question_text=t) for i, t in enumerate(texts)]
        ids = {q.id for q in questions}
        self.session.questions = questions
        if is_new:
            self.session.responses = {}
            self.session.current_question_index = 0
        else:
            dropped = set(self.session.responses) - ids
            if dropped:
                logger.warning("Discarding %d responses that no longer match questions", len(dropped))
            self.session.responses = {k: v for k, v in self.session.responses.items() if k in ids}
            self.session.current_question_index = min(len(self.session.responses), len(questions) - 1)

        try:
            if is_new:
                self.store.create_session(self.session)
            else:
                self.store.update_session(sid, SessionUpdate(
                    questions=questions, current_question_index=self.session.current_question_index,
                ))
        except StoreError as exc:
            self.session.questions = []
            self.session.current_question_index = 0
            self.error = f"Could not start the session: {exc}"
            self.notify("error", "Storage Error", self.error)
            self._transition(AppState.FORM)
            return False

        self._remember_position()
        logger.info("Session %s loaded %d questions", sid, len(questions))
        self._transition(AppState.QUESTIONNAIRE)
        return True

    def _questions_failed(self, message: str) -> bool:
        self.error = message
        self.session.questions = []
        self.session.current_question_index = 0
        self.notify("error", "Error Fetching Questions", message)
        self._transition(AppState.FORM)
        return False

    # ── questionnaire ──
    def set_answer(self, text: str, risk_level: str | None = None) -> None:
        self._require(AppState.QUESTIONNAIRE)
        q = self.current_question
        existing = self.session.responses.get(q.id)
        self.session.responses[q.id] = ResponseData(
            question_id=q.id,
            question_text=q.question_text,
            answer_text=text,
            timestamp=self._clock(),
            category=q.category,
            risk_level=risk_level or (existing.risk_level if existing else "not_assessed"),
        )

    def _save_current(self) -> Optional[bool]:
        q = self.current_question
        response = self.session.responses.get(q.id) if q else None
        if response is None or not response.answer_text.strip():
            return None
        sid = self.session.session_id
        try:
            self.store.add_response(sid, response)
            self.store.update_session(sid, SessionUpdate(
                current_question_index=self.session.current_question_index,
            ))
        except StoreError as exc:
            logger.warning("Could not save %s for %s: %s", q.id, sid, exc)
            self.notify("warning", "Sync Error", f"Could not save progress: {exc}")
            return False
        self._remember_position()
        return True

    def save_progress(self) -> bool:
        self._require(AppState.QUESTIONNAIRE)
        with self._loading():
            saved = self._save_current()
        if saved is None:
            self.notify("info", "Nothing to Save", "Type an answer before saving.")
        elif saved:
            self.notify("success", "Progress Saved", "Your answer has been saved.")
        return bool(saved)

    def next_question(self) -> AppState:
        self._require(AppState.QUESTIONNAIRE)
        with self._loading():
            self._save_current()
            if self.session.current_question_index + 1 < len(self.session.questions):
                self.session.current_question_index += 1
                self._remember_position()
                self._transition(AppState.QUESTIONNAIRE)
            else:
                self._finish_questionnaire()
        return self.state

    def previous_question(self) -> AppState:
        self._require(AppState.QUESTIONNAIRE)
        if self.session.current_question_index > 0:
            self.session.current_question_index -= 1
        return self.state

    def submit_questionnaire(self) -> AppState:
        """Save the current answer and finish the questionnaire from any question."""
        self._require(AppState.QUESTIONNAIRE)
        with self._loading():
            self._save_current()
            self._finish_questionnaire()
        return self.state

    def _finish_questionnaire(self) -> None:
        if not (self.ratings_enabled and self.policy_areas):
            self._generate_report()
            return
        s = self.session
        s.policy_areas_to_rate = list(self.policy_areas)
        s.current_rating_area_index = min(len(s.policy_scores), len(s.policy_areas_to_rate) - 1)
        s.status = SessionStatus.RATING
        try:
            self.store.update_session(s.session_id, SessionUpdate(
                status=SessionStatus.RATING,
                policy_areas_to_rate=s.policy_areas_to_rate,
                current_rating_area_index=s.current_rating_area_index,
            ))
        except StoreError as exc:
            self.notify("warning", "Sync Error", f"Could not save progress: {exc}")
        self._remember_position()
        self._transition(AppState.COLLECTING_RATINGS)

    # ── ratings ──
    def submit_rating(self, raw) -> AppState:
        """Record the score for the current policy area; the last one triggers the report."""
        self._require(AppState.COLLECTING_RATINGS)
        score = parse_score(raw)
        with self._loading():
            s = self.session
            s.policy_scores[self.current_rating_area] = score
            last = s.current_rating_area_index + 1 >= len(s.policy_areas_to_rate)
            if not last:
                s.current_rating_area_index += 1
            try:
                self.store.update_session(s.session_id, SessionUpdate(
                    policy_scores=s.policy_scores, current_rating_area_index=s.current_rating_area_index,
                ))
            except StoreError as exc:
                self.notify("warning", "Sync Error", f"Could not save rating: {exc}")
            if last:
                self._generate_report()
            else:
                self._remember_position()
                self._transition(AppState.COLLECTING_RATINGS)
        return self.state

    # ── report ──
    def retry_report(self) -> AppState:
        """Run report generation again after a failed attempt."""
        if self.state == AppState.COLLECTING_RATINGS:
            if len(self.session.policy_scores) < len(self.session.policy_areas_to_rate):
                raise InvalidTransition("Rate every policy area before generating the report.")
            with self._loading():
                self._generate_report()
            return self.state
        return self.submit_questionnaire()

    def build_report_request(self) -> GenerateReportRequest:
        s = self.session
        answers = {}
        for i, q in enumerate(s.questions):
            response = s.responses.get(q.id)
            if response is None or not response.answer_text.strip():
                continue
            answers[str(i)] = ReportAnswerDetail(
                question=q.question_text,
                answer_text=response.answer_text,
                timestamp=response.timestamp.isoformat(),
                category=response.category or q.category,
                risk_level=response.risk_level,
            )
        now = self._clock()
        return GenerateReportRequest(
            user_profile=s.user_profile,
            questionnaire_data=QuestionnaireDataForReport(
                questions=[q.question_text for q in s.questions], answers=answers,
            ),
            session_id=s.session_id,
            report_date=now.date().isoformat(),
            completed_time=now.isoformat(),
            policy_scores=dict(s.policy_scores) or None,
        )

    def _generate_report(self) -> None:
        self._pre_report_state = self.state
        self._transition(AppState.GENERATING_REPORT)
        try:
            content = self.report_generator.generate(self.build_report_request())
        except GenerationServiceError as exc:
            self._report_failed(exc.user_message)
            return
        except Exception:
            self._transition(self._pre_report_state or AppState.QUESTIONNAIRE)
            raise
        if not content or not content.strip() or content.lstrip().startswith(ERROR_SENTINEL):
            self._report_failed(_failure_message(content or "", "The report came back empty."))
            return

        s = self.session
        url = None
        try:
            url = self.uploader.upload(s.session_id, content, f"compliance_report_{s.session_id}.md")
            self.notify("success", "Report Uploaded", "Your report has been saved.")
        except UploadError as exc:
            logger.warning("Report upload failed for %s: %s", s.session_id, exc)
            self.notify("warning", "Storage Error", f"Report generated but could not be uploaded: {exc}")

        s.status = SessionStatus.COMPLETED
        s.report_generated = True
        s.completed_time = self._clock()
        s.report_url = url
        try:
            self.store.update_session(s.session_id, SessionUpdate(
                status=SessionStatus.COMPLETED, report_generated=True,
                completed_time=s.completed_time, report_url=url,
            ))
        except StoreError as exc:
            self.notify("warning", "Sync Error", f"Could not mark the session complete: {exc}")
        self.pointer_cache.clear_active()
        self.report = ReportOutcome(content=content, url=url)
        self.error = None
        self._transition(AppState.REPORT_READY)

    def _report_failed(self, message: str) -> None:
        self.error = f"Failed to generate report: {message}"
        self.notify("error", "Report Generation Failed", message)
        self._transition(self._pre_report_state or AppState.QUESTIONNAIRE)

    # ── reset ──
    def reset(self) -> AppState:
        """Drop the current session and return to an empty form."""
        self.pointer_cache.clear_active()
        self.error = None
        self.notices.clear()
        if self._probe is not None and not self.backend.ok:
            self.backend = self._probe()
        if not self.backend.ok:
            self._enter_error(self.backend.error)
            return self.state
        self.last_profile = self.pointer_cache.load_profile() or self.last_profile
        self._fresh_form()
        return self.state
