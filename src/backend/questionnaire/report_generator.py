import logging
import re

from .models import GenerateReportRequest
from .ollama_client import OllamaClient
from .prompts import NEPRA_THEMES, REPORT_FAILED_SENTINEL, REPORT_SYSTEM, REPORT_USER

logger = logging.getLogger(__name__)

NO_ANSWER = "[No answer provided for this question]"


def _profile_block(request: GenerateReportRequest) -> str:
    p = request.user_profile
    lines = [f"- **Name:** {p.name}", f"- **Email:** {p.email}"]
    if p.linkedin:
        lines.append(f"- **LinkedIn:** {p.linkedin}")
    lines += [f"- **Department:** {p.department}", f"- **Role:** {p.role}"]
    return "\n".join(lines)


def _qa_block(request: GenerateReportRequest) -> str:
    data = request.questionnaire_data
    blocks = []
    for i, question in enumerate(data.questions):
        answer = data.answers.get(str(i))
        lines = [f"**Question {i + 1}**: {question}"]
        if answer and answer.answer_text.strip():
            lines.append(f"  - **User's Answer:** {answer.answer_text}")
            lines.append(f"  - **Answered On:** {answer.timestamp}")
            if answer.category:
                lines.append(f"  - **NEPRA Category:** {answer.category}")
            if answer.risk_level != "not_assessed":
                lines.append(f"  - **Self-Reported Risk:** {answer.risk_level}")
        else:
            lines.append(f"  - **User's Answer:** {NO_ANSWER}")
            lines.append("  - **Answered On:** [N/A]")
        blocks.append("\n".join(lines) + "\n---")
    return "\n".join(blocks)


def _scores_block(request: GenerateReportRequest) -> str:
    if not request.policy_scores:
        return ""
    lines = ["## Policy Maturity Self-Assessment"]
    lines += [f"- **{area}:** {score:.1f}/10.0" for area, score in request.policy_scores.items()]
    lines.append(f"- **Average Policy Maturity Score:** {request.average_policy_score:.1f}/10.0")
    lines.append("---")
    return "\n".join(lines) + "\n"


def build_report_prompt(request: GenerateReportRequest) -> str:
    """Render the user prompt for one report request."""
    completed = (
        f"Questionnaire Completed On: {request.completed_time}\n" if request.completed_time else ""
    )
    return REPORT_USER.format(
        report_date=request.report_date,
        session_id=request.session_id,
        completed_line=completed,
        profile_block=_profile_block(request),
        qa_block=_qa_block(request),
        scores_block=_scores_block(request),
        role=request.user_profile.role,
        department=request.user_profile.department,
        score_clause=", and the self-assessed policy maturity scores" if request.policy_scores else "",
        themes=", ".join(f'"{t}"' for t in NEPRA_THEMES),
    )


def clean_report(raw: str) -> str:
    if not raw:
        return ""
    text = re.sub(r"<think>.*?</think>\s*", "", raw, flags=re.DOTALL).strip()
    # Some models wrap the whole document in a single fence
    fenced = re.fullmatch(r"```(?:markdown|md)?\s*\n(.*)\n```", text, flags=re.DOTALL)
    if fenced:
        text = fenced.group(1).strip()
    return text


class ReportGenerator:
    def __init__(self, client: OllamaClient):
        self.client = client

    def generate(self, request: GenerateReportRequest) -> str:
        prompt = build_report_prompt(request)
        logger.info(
            "Generating report for session %s (%d questions, %d answers)",
            request.session_id,
            len(request.questionnaire_data.questions),
            len(request.questionnaire_data.answers),
        )
        report = clean_report(self.client.complete_text(system=REPORT_SYSTEM, user=prompt))
        if not report:
            logger.warning("Model returned no report content for session %s", request.session_id)
            return REPORT_FAILED_SENTINEL
        return report
