import io
import re
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import ListFlowable, ListItem, Paragraph, SimpleDocTemplate, Spacer
from reportlab.platypus.flowables import HRFlowable

_BOLD = re.compile(r"\*\*(.+?)\*\*")
_ITALIC = re.compile(r"(?<!\*)\*(?!\*)(.+?)(?<!\*)\*(?!\*)")
_BULLET = re.compile(r"^\s*[-*]\s+(.*)$")
_NUMBERED = re.compile(r"^\s*\d+[.)]\s+(.*)$")

HEADING_STYLES = {1: "Heading1", 2: "Heading2", 3: "Heading3"}


def _inline(text: str) -> str:
    text = escape(text)
    text = _BOLD.sub(r"<b>\1</b>", text)
    return _ITALIC.sub(r"<i>\1</i>", text)


def _flush_list(story, items, styles, numbered):
    if not items:
        return
    story.append(
        ListFlowable(
            [ListItem(Paragraph(_inline(t), styles["Normal"])) for t in items],
            bulletType="1" if numbered else "bullet",
            leftIndent=14,
        )
    )
    items.clear()


def render_report_pdf(markdown_text: str, title: str = "NEPRA Cybersecurity Compliance Report") -> bytes:
    """
    Render report Markdown to PDF bytes.

    Supports headings (#, ##, ###), bullet and numbered lists, horizontal rules
    and **bold** / *italic* inline markup. Anything else is a plain paragraph.
    """
    buf = io.BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=A4, leftMargin=36, rightMargin=36, topMargin=36, bottomMargin=36,
                            title=title)
    styles = getSampleStyleSheet()
    story = [Paragraph(f"<b>{escape(title)}</b>", styles["Title"]), Spacer(1, 8)]

    items: list[str] = []
    numbered = False
    for line in (markdown_text or "").splitlines():
        stripped = line.strip()
        bullet, number = _BULLET.match(line), _NUMBERED.match(line)
        if stripped == "---":
            _flush_list(story, items, styles, numbered)
            story += [Spacer(1, 4), HRFlowable(width="100%", color=colors.grey), Spacer(1, 4)]
        elif bullet or number:
            if items and numbered != bool(number):
                _flush_list(story, items, styles, numbered)
            numbered = bool(number)
            items.append((bullet or number).group(1))
        else:
            _flush_list(story, items, styles, numbered)
            if not stripped:
                story.append(Spacer(1, 6))
                continue
            level = len(stripped) - len(stripped.lstrip("#"))
            if 1 <= level <= 3 and stripped[level:level + 1] == " ":
                story.append(Paragraph(_inline(stripped[level + 1:]), styles[HEADING_STYLES[level]]))
            else:
                story.append(Paragraph(_inline(stripped), styles["Normal"]))
    _flush_list(story, items, styles, numbered)

    doc.build(story)
    return buf.getvalue()
