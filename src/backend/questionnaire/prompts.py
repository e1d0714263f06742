NEPRA_DEPARTMENTS = [
    "Access Control",
    "Awareness and Training",
    "Audit and Accountability",
    "Configuration Management",
    "Incident Response",
    "Maintenance",
    "Media Protection",
    "Physical and Environmental Protection",
    "Planning",
    "Personnel Security",
    "Risk Assessment",
    "System and Communications Protection",
    "System and Information Integrity",
    "System and Services Acquisition",
    "Monitoring",
    "Vulnerability Assessment & Penetration Testing (VAPT)",
    "IT Operations",
    "OT Operations",
    "Security Policy",
    "Reporting",
    "SOC (Security Operations Center)",
    "PowerCERT Coordination",
    "Human Resources",
    "Legal",
    "Other",
]

# Regulatory themes referenced by both prompts
NEPRA_THEMES = [
    "Least Privilege Principle",
    "Access Rights Management",
    "Critical Infrastructure",
    "IDS/IPS",
    "SOC & PowerCERT coordination",
    "Security Incident Reporting (within 72 hours)",
    "Data Integrity, Confidentiality & Authenticity",
    "Audit & Training Programs",
    "Security Controls Monitoring",
    "Quarterly Reporting Requirements",
    "VAPT",
    "Data Backup and Recovery",
    "Change Management",
    "Risk Management",
]

# Areas the user self-rates (0.0-10.0) after the questionnaire
POLICY_AREAS = [
    "Access Rights Management",
    "Security Incident Reporting",
    "Data Integrity, Confidentiality & Authenticity",
    "Audit & Training Programs",
    "Security Controls Monitoring",
    "Vulnerability Assessment & Penetration Testing",
    "Data Backup and Recovery",
    "Change Management",
]

ERROR_SENTINEL = "Error:"
QUESTIONS_FAILED_SENTINEL = (
    "Error: Failed to generate questions. Please check your role and department or try again."
)
REPORT_FAILED_SENTINEL = (
    "Error: Failed to generate report content. The AI service might be temporarily "
    "unavailable or unable to process the request. Please try again."
)

TAILOR_SYSTEM = (
    "You are an AI assistant specializing in cybersecurity compliance for Pakistan's power sector, "
    "aligned with the NEPRA (National Electric Power Regulatory Authority) Security of Information "
    "Technology and Operational Technology Regulations, 2022.\n"
    "Generate a concise list of {min_questions}-{max_questions} highly relevant cybersecurity questions "
    "for an employee, based on their department and role. The questions must directly assess "
    "compliance with mandatory NEPRA controls.\n"
    'Return ONLY a JSON object with a "questions" array of question strings. No other text.'
)

TAILOR_USER = """User's Department: {department}
User's Role: {role}

Key NEPRA regulatory themes to consider:
{themes}

Instructions:
1. Generate {min_questions}-{max_questions} questions, each a single string.
2. The questions MUST be specific to the given department and role.
3. Cover a range of NEPRA controls that apply to that role.
4. Phrase questions clearly and directly; explain jargon if it is needed.

Example for 'IT Operations' / 'System Administrator':
- "Describe the process you follow for granting or revoking access rights to critical IT systems, ensuring adherence to the 'Least Privilege Principle'."
- "What is your role in the event of a security incident reported by the SOC, and how do you coordinate with PowerCERT?"

Example for 'Human Resources' / 'HR Manager':
- "What procedures are in place for cybersecurity awareness training for new employees and regular refreshers for existing staff, as required by NEPRA?"

Respond with ONLY valid JSON:
{{"questions": ["...", "..."]}}"""

REPORT_SYSTEM = (
    "You are a senior cybersecurity analyst generating a NEPRA-aligned Cybersecurity Compliance Report "
    "for an employee in Pakistan's power sector. The report must be clearly structured, comprehensive "
    "and ready for submission or review. Use Markdown. Output ONLY the report."
)

REPORT_USER = """Report Generation Date: {report_date}
Session ID: {session_id}
{completed_line}
## User Information
{profile_block}

---
## NEPRA Compliance Questionnaire & Responses

Group related Q&A pairs under NEPRA regulatory categories as sub-headings (e.g. "### Access Control").
Questions that do not clearly fit a category go under "### Other Compliance Areas".
Keep every question number as given below.

{qa_block}
{scores_block}
## Overall Compliance Assessment & Recommendations

Based on the user's role ({role} in {department}), the NEPRA regulations and the answers provided{score_clause}, write a summary that:
1. Assesses the department's adherence to relevant NEPRA cybersecurity controls.
2. Identifies key strengths.
3. Highlights areas needing attention, improvement or training, citing question numbers or policy areas.
4. Flags any potential non-compliance or significant risk with immediate follow-up actions.
5. Concludes with the overall compliance posture suggested by this session.

Link insights back to NEPRA themes such as: {themes}.
Reproduce the header, user information and every question with its answer, then the assessment."""
