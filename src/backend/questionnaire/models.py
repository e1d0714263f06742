import math
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_CATEGORY = "NEPRA Compliance"
MIN_SCORE = 0.0
MAX_SCORE = 10.0

RiskLevel = Literal["low", "medium", "high", "not_assessed"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    ACTIVE = "active"
    RATING = "rating"
    COMPLETED = "completed"


def _check_scores(scores: dict[str, float] | None) -> dict[str, float] | None:
    if scores is None:
        return scores
    for area, value in scores.items():
        if math.isnan(value) or not MIN_SCORE <= value <= MAX_SCORE:
            raise ValueError(f"Score for '{area}' must be between {MIN_SCORE} and {MAX_SCORE}")
    return scores


# ---------- Session documents ----------
class UserProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    email: str = ""
    linkedin: str | None = None
    department: str = ""
    role: str = ""

    @field_validator("name", "email", "department", "role")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @field_validator("email")
    @classmethod
    def email_shape(cls, v: str) -> str:
        if v and ("@" not in v or v.startswith("@") or v.endswith("@")):
            raise ValueError("Email address is not valid")
        return v

    @field_validator("linkedin")
    @classmethod
    def link_shape(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("Profile link must be an http(s) URL")
        return v

    @property
    def has_department_and_role(self) -> bool:
        return bool(self.department and self.role)


class QuestionDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    question_text: str
    category: str = DEFAULT_CATEGORY


class ResponseData(BaseModel):
    question_id: str = Field(min_length=1)
    question_text: str
    answer_text: str
    timestamp: datetime = Field(default_factory=utcnow)
    category: str = DEFAULT_CATEGORY
    risk_level: RiskLevel = "not_assessed"


class ComplianceSession(BaseModel):
    session_id: str = Field(min_length=1)
    user_profile: UserProfile
    questions: list[QuestionDefinition] = []
    responses: dict[str, ResponseData] = {}
    current_question_index: int = 0
    policy_areas_to_rate: list[str] = []
    current_rating_area_index: int = 0
    policy_scores: dict[str, float] = {}
    status: SessionStatus = SessionStatus.ACTIVE
    start_time: datetime = Field(default_factory=utcnow)
    last_saved_time: datetime | None = None
    completed_time: datetime | None = None
    report_generated: bool = False
    report_url: str | None = None

    @field_validator("policy_scores")
    @classmethod
    def scores_in_range(cls, v):
        return _check_scores(v)

    @model_validator(mode="after")
    def check_consistency(self) -> "ComplianceSession":
        if self.questions:
            ids = {q.id for q in self.questions}
            unknown = set(self.responses) - ids
            if unknown:
                raise ValueError(f"Responses reference unknown questions: {sorted(unknown)}")
            self.current_question_index = max(0, min(self.current_question_index, len(self.questions) - 1))
        else:
            self.current_question_index = 0
        return self

    @property
    def is_complete(self) -> bool:
        return self.status == SessionStatus.COMPLETED or self.report_generated

    @property
    def answered_count(self) -> int:
        return sum(1 for r in self.responses.values() if r.answer_text.strip())

    @property
    def current_question(self) -> QuestionDefinition | None:
        if not self.questions:
            return None
        return self.questions[self.current_question_index]


class SessionUpdate(BaseModel):
    """Partial update of a session document. Only fields that were set are applied."""

    questions: list[QuestionDefinition] | None = None
    current_question_index: int | None = Field(None, ge=0)
    policy_areas_to_rate: list[str] | None = None
    current_rating_area_index: int | None = Field(None, ge=0)
    policy_scores: dict[str, float] | None = None
    status: SessionStatus | None = None
    completed_time: datetime | None = None
    report_generated: bool | None = None
    report_url: str | None = None

    @field_validator("policy_scores")
    @classmethod
    def scores_in_range(cls, v):
        return _check_scores(v)


# ---------- Question generation ----------
class TailorQuestionsRequest(BaseModel):
    department: str = Field(min_length=1)
    role: str = Field(min_length=1)


class TailorQuestionsResponse(BaseModel):
    questions: list[str]


# ---------- Report generation ----------
class ReportAnswerDetail(BaseModel):
    question: str
    answer_text: str
    timestamp: str
    category: str | None = None
    risk_level: RiskLevel = "not_assessed"


class QuestionnaireDataForReport(BaseModel):
    questions: list[str]
    answers: dict[str, ReportAnswerDetail] = {}  # keyed by question index as string


class GenerateReportRequest(BaseModel):
    user_profile: UserProfile
    questionnaire_data: QuestionnaireDataForReport
    session_id: str
    report_date: str
    completed_time: str | None = None
    policy_scores: dict[str, float] | None = None

    @field_validator("policy_scores")
    @classmethod
    def scores_in_range(cls, v):
        return _check_scores(v)

    @property
    def average_policy_score(self) -> float | None:
        if not self.policy_scores:
            return None
        return round(sum(self.policy_scores.values()) / len(self.policy_scores), 1)


class GenerateReportResponse(BaseModel):
    report_content: str


# ---------- Store / upload API ----------
class SessionCreated(BaseModel):
    session_id: str


class ResponseSaved(BaseModel):
    session_id: str
    response_key: str


class UploadResult(BaseModel):
    session_id: str
    name: str
    url: str


class DepartmentsResponse(BaseModel):
    departments: list[str]
    policy_areas: list[str]


# ---------- Client resume hints ----------
class SessionPointer(BaseModel):
    session_id: str
    user_profile: UserProfile | None = None
    current_question_index: int = 0
    current_rating_area_index: int = 0
    policy_scores: dict[str, float] = {}


class CachedPointers(BaseModel):
    last_profile: UserProfile | None = None
    active: SessionPointer | None = None
