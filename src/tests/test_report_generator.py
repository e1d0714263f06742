"""
Unit tests for backend/questionnaire/report_generator.py
"""

import pytest


def _import_report():
    from backend.questionnaire import report_generator
    return report_generator


@pytest.fixture
def report_request(profile):
    from backend.questionnaire.models import (
        GenerateReportRequest, QuestionnaireDataForReport, ReportAnswerDetail,
    )
    return GenerateReportRequest(
        user_profile=profile,
        questionnaire_data=QuestionnaireDataForReport(
            questions=["How is access reviewed?", "How are backups tested?"],
            answers={
                "0": ReportAnswerDetail(
                    question="How is access reviewed?",
                    answer_text="Quarterly review signed off by the CISO.",
                    timestamp="2025-03-14T09:00:01+00:00",
                    category="NEPRA Compliance",
                    risk_level="medium",
                ),
            },
        ),
        session_id="session_1_abcdefg",
        report_date="2025-03-14",
        completed_time="2025-03-14T09:30:00+00:00",
        policy_scores={"Access Rights Management": 7.5, "Data Backup and Recovery": 6.5},
    )


class TestBuildReportPrompt:
    def test_profile_and_header(self, report_request):
        rg = _import_report()
        prompt = rg.build_report_prompt(report_request)
        assert "Report Generation Date: 2025-03-14" in prompt
        assert "Session ID: session_1_abcdefg" in prompt
        assert "Questionnaire Completed On: 2025-03-14T09:30:00+00:00" in prompt
        assert "- **Name:** Ayesha Khan" in prompt
        assert "- **LinkedIn:** https://www.linkedin.com/in/ayesha-khan" in prompt

    def test_answers_and_missing_answers(self, report_request):
        rg = _import_report()
        prompt = rg.build_report_prompt(report_request)
        assert "**Question 1**: How is access reviewed?" in prompt
        assert "Quarterly review signed off by the CISO." in prompt
        assert "**Self-Reported Risk:** medium" in prompt
        assert "**Question 2**: How are backups tested?" in prompt
        assert rg.NO_ANSWER in prompt

    def test_scores_and_average(self, report_request):
        rg = _import_report()
        prompt = rg.build_report_prompt(report_request)
        assert "## Policy Maturity Self-Assessment" in prompt
        assert "- **Access Rights Management:** 7.5/10.0" in prompt
        assert "- **Average Policy Maturity Score:** 7.0/10.0" in prompt
        assert "self-assessed policy maturity scores" in prompt

    def test_no_scores_section_without_ratings(self, report_request):
        rg = _import_report()
        prompt = rg.build_report_prompt(report_request.model_copy(update={"policy_scores": None}))
        assert "Policy Maturity Self-Assessment" not in prompt
        assert "self-assessed policy maturity scores" not in prompt


class TestCleanReport:
    def test_strips_think_block(self):
        rg = _import_report()
        assert rg.clean_report("<think>planning</think>\n# Report\nBody") == "# Report\nBody"

    def test_strips_whole_document_fence(self):
        rg = _import_report()
        assert rg.clean_report("```markdown\n# Report\nBody\n```") == "# Report\nBody"

    def test_inner_fences_kept(self):
        rg = _import_report()
        text = "# Report\n```\ncode\n```\nEnd"
        assert rg.clean_report(text) == text

    def test_empty(self):
        rg = _import_report()
        assert rg.clean_report("") == ""


class TestReportGenerator:
    def test_generate(self, mock_ollama_client, report_request):
        rg = _import_report()
        mock_ollama_client.complete_text.return_value = "<think>x</think># NEPRA Report\nDone."

        assert rg.ReportGenerator(mock_ollama_client).generate(report_request) == "# NEPRA Report\nDone."
        kwargs = mock_ollama_client.complete_text.call_args.kwargs
        assert "NEPRA" in kwargs["system"]
        assert "session_1_abcdefg" in kwargs["user"]

    def test_empty_reply_returns_sentinel(self, mock_ollama_client, report_request):
        rg = _import_report()
        from backend.questionnaire.prompts import REPORT_FAILED_SENTINEL
        mock_ollama_client.complete_text.return_value = "<think>only thoughts</think>"

        assert rg.ReportGenerator(mock_ollama_client).generate(report_request) == REPORT_FAILED_SENTINEL
