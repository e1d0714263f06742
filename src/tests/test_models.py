"""
Unit tests for backend/questionnaire/models.py

Covers:
  - Profile validation (email, profile link, trimming)
  - Session invariants (index clamping, responses reference known questions)
  - Score bounds on sessions, updates and report requests
"""

import math

import pytest
from pydantic import ValidationError


def _import_models():
    from backend.questionnaire import models
    return models


def _questions(n, sid="s1"):
    m = _import_models()
    return [m.QuestionDefinition(id=f"q_{sid}_{i}", question_text=f"Question {i}?") for i in range(n)]


class TestUserProfile:
    def test_fields_are_trimmed(self):
        m = _import_models()
        p = m.UserProfile(name="  Ali ", email=" ali@nepra.org.pk ", department=" Finance ", role=" Clerk ")
        assert p.name == "Ali"
        assert p.department == "Finance"
        assert p.has_department_and_role

    def test_missing_role_is_not_complete(self):
        m = _import_models()
        assert not m.UserProfile(department="Finance", role="   ").has_department_and_role

    def test_bad_email_rejected(self):
        m = _import_models()
        with pytest.raises(ValidationError):
            m.UserProfile(email="not-an-email")

    def test_blank_link_becomes_none(self):
        m = _import_models()
        assert m.UserProfile(linkedin="  ").linkedin is None

    def test_non_http_link_rejected(self):
        m = _import_models()
        with pytest.raises(ValidationError):
            m.UserProfile(linkedin="javascript:alert(1)")

    def test_profile_is_frozen(self):
        m = _import_models()
        p = m.UserProfile(department="Finance", role="Clerk")
        with pytest.raises(ValidationError):
            p.role = "Manager"


class TestComplianceSession:
    def test_defaults(self, profile):
        m = _import_models()
        s = m.ComplianceSession(session_id="s1", user_profile=profile)
        assert s.status == m.SessionStatus.ACTIVE
        assert s.questions == []
        assert s.current_question is None
        assert not s.is_complete

    def test_index_clamped_to_question_range(self, profile):
        m = _import_models()
        s = m.ComplianceSession(session_id="s1", user_profile=profile, questions=_questions(3),
                                current_question_index=9)
        assert s.current_question_index == 2
        assert s.current_question.id == "q_s1_2"

    def test_index_reset_without_questions(self, profile):
        m = _import_models()
        s = m.ComplianceSession(session_id="s1", user_profile=profile, current_question_index=4)
        assert s.current_question_index == 0

    def test_response_for_unknown_question_rejected(self, profile):
        m = _import_models()
        with pytest.raises(ValidationError):
            m.ComplianceSession(
                session_id="s1", user_profile=profile, questions=_questions(2),
                responses={"q_other_0": m.ResponseData(question_id="q_other_0", question_text="?", answer_text="x")},
            )

    def test_answered_count_ignores_blank_answers(self, profile):
        m = _import_models()
        qs = _questions(3)
        s = m.ComplianceSession(
            session_id="s1", user_profile=profile, questions=qs,
            responses={
                qs[0].id: m.ResponseData(question_id=qs[0].id, question_text="?", answer_text="Yes"),
                qs[1].id: m.ResponseData(question_id=qs[1].id, question_text="?", answer_text="   "),
            },
        )
        assert s.answered_count == 1

    def test_report_generated_counts_as_complete(self, profile):
        m = _import_models()
        s = m.ComplianceSession(session_id="s1", user_profile=profile, report_generated=True)
        assert s.is_complete

    @pytest.mark.parametrize("score", [-0.1, 10.1, math.nan])
    def test_score_out_of_range_rejected(self, profile, score):
        m = _import_models()
        with pytest.raises(ValidationError):
            m.ComplianceSession(session_id="s1", user_profile=profile, policy_scores={"Access Control": score})

    def test_empty_session_id_rejected(self, profile):
        m = _import_models()
        with pytest.raises(ValidationError):
            m.ComplianceSession(session_id="", user_profile=profile)


class TestSessionUpdate:
    def test_only_set_fields_dumped(self):
        m = _import_models()
        update = m.SessionUpdate(current_question_index=2)
        assert update.model_dump(exclude_unset=True) == {"current_question_index": 2}

    def test_explicit_none_is_kept(self):
        m = _import_models()
        update = m.SessionUpdate(report_url=None)
        assert update.model_dump(exclude_unset=True) == {"report_url": None}

    def test_negative_index_rejected(self):
        m = _import_models()
        with pytest.raises(ValidationError):
            m.SessionUpdate(current_rating_area_index=-1)


class TestReportModels:
    def test_average_policy_score(self, profile):
        m = _import_models()
        req = m.GenerateReportRequest(
            user_profile=profile,
            questionnaire_data=m.QuestionnaireDataForReport(questions=["Q?"]),
            session_id="s1",
            report_date="2025-03-14",
            policy_scores={"Access Control": 7.0, "Incident Response": 8.5, "Asset Management": 5.0},
        )
        assert req.average_policy_score == 6.8

    def test_average_without_scores(self, profile):
        m = _import_models()
        req = m.GenerateReportRequest(
            user_profile=profile,
            questionnaire_data=m.QuestionnaireDataForReport(questions=[]),
            session_id="s1",
            report_date="2025-03-14",
        )
        assert req.average_policy_score is None

    def test_tailor_request_requires_department(self):
        m = _import_models()
        with pytest.raises(ValidationError):
            m.TailorQuestionsRequest(department="", role="Engineer")
