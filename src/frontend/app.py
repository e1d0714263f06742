import os

import pandas as pd
import streamlit as st
from dotenv import load_dotenv
from pydantic import ValidationError

from backend.questionnaire.config import configure_logging
from backend.questionnaire.errors import InputRejected, InvalidTransition, StoreError
from backend.questionnaire.models import UserProfile
from backend.questionnaire.prompts import NEPRA_DEPARTMENTS
from backend.questionnaire.report_pdf import render_report_pdf
from frontend.api_client import ApiClient, HttpQuestionGenerator, HttpReportGenerator, probe_backend
from frontend.pointer_cache import PointerCache
from frontend.session_machine import AppState, ComplianceSessionMachine

load_dotenv()
configure_logging()

# ── configurable via .env ──
API_BASE = os.getenv("API_BASE", "http://127.0.0.1:8000")
RATINGS_ENABLED = os.getenv("RATINGS_ENABLED", "true").lower() in ("1", "true", "yes")

RISK_LEVELS = ["not_assessed", "low", "medium", "high"]
NOTICE_ICONS = {"info": "ℹ️", "success": "✅", "warning": "⚠️", "error": "❌"}
OTHER_DEPARTMENT = "Other (type below)"

st.set_page_config(page_title="NEPRA Compliance Agent", page_icon="🛡️", layout="wide")
st.title("🛡️ NEPRA Cybersecurity Compliance Agent")


def build_machine(api_url: str) -> ComplianceSessionMachine:
    api = ApiClient(api_url)
    machine = ComplianceSessionMachine(
        probe_backend(api), HttpQuestionGenerator(api), HttpReportGenerator(api), PointerCache(),
        ratings_enabled=RATINGS_ENABLED, probe=lambda: probe_backend(api),
    )
    with st.spinner("Checking for a session to resume..."):
        machine.resume()
    return machine


@st.cache_data(ttl=3600)
def load_departments(api_url: str) -> list[str]:
    try:
        resp = ApiClient(api_url).request("GET", "/departments")
    except StoreError:
        return sorted(NEPRA_DEPARTMENTS)
    return resp.json()["departments"] if resp.ok else sorted(NEPRA_DEPARTMENTS)


def run(action, *args):
    """Call one machine operation and rerun so the new state renders."""
    try:
        action(*args)
    except InputRejected as exc:
        st.error(str(exc))
        return
    except InvalidTransition as exc:
        st.warning(str(exc))
        return
    st.rerun()


API = st.sidebar.text_input("API URL", API_BASE)

if "machine" not in st.session_state or st.session_state.get("api_url") != API:
    st.session_state.api_url = API
    st.session_state.machine = build_machine(API)
machine: ComplianceSessionMachine = st.session_state.machine

for notice in machine.drain_notices():
    st.toast(f"**{notice.title}**: {notice.message}", icon=NOTICE_ICONS.get(notice.level))

st.sidebar.caption(f"Session: `{machine.session.session_id}`")
st.sidebar.caption(f"Stage: {machine.state.value.replace('_', ' ')}")
if st.sidebar.button("🔄 Start over", disabled=machine.is_loading):
    run(machine.reset)


# ── Error ──
if machine.state == AppState.ERROR:
    st.error(machine.error)
    st.info("Fix the backend configuration, then press **Start over** in the sidebar.")
    st.stop()


# ── Profile form ──
if machine.state == AppState.FORM:
    if machine.error:
        st.error(machine.error)
    last = machine.last_profile or UserProfile()
    departments = load_departments(API)
    options = [""] + departments + [OTHER_DEPARTMENT]

    st.subheader("Tell us about yourself")
    st.write("Questions are tailored to your department and role within NEPRA.")
    with st.form("profile"):
        name = st.text_input("Full name", last.name)
        email = st.text_input("Email", last.email)
        linkedin = st.text_input("LinkedIn profile (optional)", last.linkedin or "")
        picked = st.selectbox(
            "Department", options,
            index=options.index(last.department) if last.department in departments else 0,
        )
        custom = st.text_input(
            "Department (if not listed)",
            last.department if last.department and last.department not in departments else "",
        )
        role = st.text_input("Role / job title", last.role)
        submitted = st.form_submit_button("Start questionnaire", disabled=machine.is_loading)

    if submitted:
        department = custom.strip() or ("" if picked == OTHER_DEPARTMENT else picked)
        try:
            profile = UserProfile(name=name, email=email, linkedin=linkedin, department=department, role=role)
        except ValidationError as exc:
            st.error("; ".join(e["msg"] for e in exc.errors()))
            st.stop()
        with st.spinner("Tailoring questions to your role (this may take a minute)..."):
            run(machine.submit_profile, profile)


# ── Questionnaire ──
elif machine.state == AppState.QUESTIONNAIRE:
    s = machine.session
    q = machine.current_question
    number, total = s.current_question_index + 1, len(s.questions)

    st.progress(number / total, text=f"Question {number} of {total}")
    st.caption(q.category)
    st.markdown(f"### {q.question_text}")

    answer = st.text_area("Your answer", machine.current_answer, key=f"answer_{q.id}", height=180)
    risk = st.selectbox(
        "Self-assessed risk", RISK_LEVELS, index=RISK_LEVELS.index(machine.current_risk_level),
        key=f"risk_{q.id}",
    )

    c1, c2, c3, c4 = st.columns(4)
    prev_clicked = c1.button("⬅️ Previous", disabled=machine.is_loading or machine.is_first_question)
    save_clicked = c2.button("💾 Save progress", disabled=machine.is_loading)
    next_label = "Finish ➡️" if machine.is_last_question else "Next ➡️"
    next_clicked = c3.button(next_label, disabled=machine.is_loading, type="primary")
    submit_clicked = c4.button("📝 Submit all", disabled=machine.is_loading)

    if answer.strip() or q.id in s.responses:
        machine.set_answer(answer, risk)

    if prev_clicked:
        run(machine.previous_question)
    elif save_clicked:
        run(machine.save_progress)
    elif next_clicked:
        with st.spinner("Saving..." if not machine.is_last_question else "Wrapping up the questionnaire..."):
            run(machine.next_question)
    elif submit_clicked:
        with st.spinner("Wrapping up the questionnaire..."):
            run(machine.submit_questionnaire)

    if machine.error:
        st.error(machine.error)
        if st.button("Retry report generation", disabled=machine.is_loading):
            with st.spinner("Generating your compliance report..."):
                run(machine.retry_report)


# ── Policy maturity ratings ──
elif machine.state == AppState.COLLECTING_RATINGS:
    s = machine.session
    area = machine.current_rating_area
    number, total = s.current_rating_area_index + 1, len(s.policy_areas_to_rate)

    st.progress(number / total, text=f"Policy area {number} of {total}")
    st.subheader("Policy maturity self-assessment")
    st.markdown(f"How mature is your organisation's **{area}**? Rate from 0 (absent) to 10 (optimised).")

    raw = st.text_input("Score (0-10)", str(s.policy_scores.get(area, "")), key=f"score_{area}",
                        placeholder="e.g. 7.5")
    label = "Generate report" if number == total else "Next area ➡️"
    if st.button(label, disabled=machine.is_loading, type="primary"):
        with st.spinner("Generating your compliance report..." if number == total else "Saving..."):
            run(machine.submit_rating, raw)

    if machine.error:
        st.error(machine.error)
        if len(s.policy_scores) >= total and st.button("Retry report generation", disabled=machine.is_loading):
            with st.spinner("Generating your compliance report..."):
                run(machine.retry_report)

    if s.policy_scores:
        st.dataframe(
            pd.DataFrame([{"Policy area": k, "Score": v} for k, v in s.policy_scores.items()]),
            hide_index=True, use_container_width=True,
        )


# ── Report ──
elif machine.state == AppState.REPORT_READY:
    s = machine.session
    report = machine.report
    st.success("Compliance report ready")

    if report.url:
        st.markdown(f"[Open stored report]({report.url})")
    st.markdown(report.display_text)

    if report.content:
        c1, c2 = st.columns(2)
        c1.download_button(
            "⬇️ Download Markdown", report.content,
            file_name=f"nepra_compliance_report_{s.session_id}.md", mime="text/markdown",
        )
        c2.download_button(
            "⬇️ Download PDF", render_report_pdf(report.content),
            file_name=f"nepra_compliance_report_{s.session_id}.pdf", mime="application/pdf",
        )

        with st.expander("Your answers"):
            df = pd.DataFrame([{
                "Question": q.question_text,
                "Answer": s.responses[q.id].answer_text if q.id in s.responses else "—",
                "Risk": s.responses[q.id].risk_level if q.id in s.responses else "not_assessed",
            } for q in s.questions])

            def color(val):
                colors = {"low": "#90EE90", "medium": "#FFD700", "high": "#FFB6C1"}
                return f"background-color: {colors.get(val, '')}"

            st.dataframe(df.style.map(color, subset=["Risk"]), hide_index=True, use_container_width=True)

    if st.button("Start a new assessment", type="primary"):
        run(machine.reset)
