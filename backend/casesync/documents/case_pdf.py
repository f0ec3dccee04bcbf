"""
Summary documents rendered next to the mirrored case files.

* CaseDetails.pdf — the case's structured service payload.
* Comments.pdf    — a redesign's comment thread, colour-coded by author.

Rendering is synchronous (reportlab); the ``generate_*`` coroutines run
it in a worker thread so it overlaps with the case's downloads.
"""

from __future__ import annotations

import asyncio
import re
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Any, Iterable
from xml.sax.saxutils import escape
from zoneinfo import ZoneInfo

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

from casesync.core.config import settings
from casesync.core.constants import ActivityType
from casesync.core.logging import get_logger
from casesync.models.case import CaseActivity, CaseDetails
from casesync.pipeline.errors import DocumentGenerationError

logger = get_logger(__name__)

_CAMEL_RE = re.compile(r"([A-Z])")

TEAM_AUTHOR = "ToothSketch Team"
CLIENT_AUTHOR = "Client"

# activity type -> (author label, text colour)
_ACTIVITY_STYLE: dict[str, tuple[str, Any]] = {
    ActivityType.REDESIGN_UPDATE: ("Redesign Update", colors.red),
    ActivityType.ADMIN_COMMENT: (TEAM_AUTHOR, colors.black),
    ActivityType.SUPER_ADMIN_COMMENT: (TEAM_AUTHOR, colors.black),
    ActivityType.CRM_COMMENT: (TEAM_AUTHOR, colors.black),
    ActivityType.USER_COMMENT: (CLIENT_AUTHOR, colors.blue),
    ActivityType.SIDE_ADMIN_COMMENT: (CLIENT_AUTHOR, colors.blue),
}


def humanize_key(text: str) -> str:
    """``toothNumbers`` -> ``Tooth Numbers``."""
    result = _CAMEL_RE.sub(r" \1", text)
    return result[:1].upper() + result[1:]


def _format_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


def _styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle("CaseTitle", parent=base["Title"], fontSize=24, leading=28, alignment=0),
        "priority": ParagraphStyle("CasePriority", parent=base["Normal"], fontSize=20, leading=24, spaceAfter=12),
        "section": ParagraphStyle("CaseSection", parent=base["Normal"], fontSize=16, leading=20, spaceAfter=6),
        "subsection": ParagraphStyle("CaseSubsection", parent=base["Normal"], fontSize=14, leading=18, spaceBefore=6),
        "field": ParagraphStyle("CaseField", parent=base["Normal"], fontSize=12, leading=15),
        "meta": ParagraphStyle("CaseMeta", parent=base["Normal"], fontSize=10, leading=12, textColor=colors.gray),
    }


def _para(text: str, style: ParagraphStyle) -> Paragraph:
    return Paragraph(escape(text).replace("\n", "<br/>"), style)


# ═══════════════════════════════════════════════════════════
#  Case details
# ═══════════════════════════════════════════════════════════

def build_case_details(case_id: str, details: CaseDetails) -> list:
    """Flowables for CaseDetails.pdf."""
    st = _styles()
    story: list = [_para(f"Case Details for TS-{case_id}", st["title"]), Spacer(1, 12)]

    if details.casePriority is not None:
        story.append(_para(f"Case Priority {details.casePriority}", st["priority"]))

    story.append(_para(f"Patient name - {details.patientName or ''}", st["section"]))
    story.append(Spacer(1, 18))

    for service_key, service in details.services.items():
        story.append(_para(humanize_key(service_key), st["section"]))
        if not isinstance(service, dict):
            story.append(_para(_format_value(service), st["field"]))
            story.append(Spacer(1, 12))
            continue

        for field_key, value in service.items():
            if field_key == "instanceDetails" and isinstance(value, list):
                story.append(_para(humanize_key(field_key) + ": ", st["subsection"]))
                for idx, instance in enumerate(value, start=1):
                    story.append(_para(_instance_text(idx, instance), st["field"]))
                    story.append(Spacer(1, 8))
            else:
                story.append(_para(f"{humanize_key(field_key)}: {_format_value(value)}", st["field"]))

        story.append(Spacer(1, 12))

    story.append(Spacer(1, 12))
    story.append(_para("Misc. details", st["section"]))
    if details.additionalNote:
        story.append(_para("Additional Notes: " + details.additionalNote, st["field"]))
    if details.splintedCrowns:
        story.append(_para("Splinted Crowns: " + details.splintedCrowns, st["field"]))

    return story


def _instance_text(idx: int, instance: Any) -> str:
    if not isinstance(instance, dict):
        return f"Instance {idx}\n{_format_value(instance)}"

    answers = []
    for key, value in instance.items():
        if key == "toothNumbers" and isinstance(value, list):
            answers.append("Tooth Numbers: " + _format_value(value))
        else:
            answers.append(f"{humanize_key(key)}: {_format_value(value)}")
    return f"Instance {idx}\n" + "\n".join(answers)


def render_case_details(case_id: str, details: CaseDetails, path: str | Path) -> Path:
    path = Path(path)
    doc = SimpleDocTemplate(str(path), pagesize=letter, leftMargin=inch, rightMargin=inch)
    doc.build(build_case_details(case_id, details))
    return path


# ═══════════════════════════════════════════════════════════
#  Comments
# ═══════════════════════════════════════════════════════════

def activity_author(activity_type: str) -> tuple[str, Any]:
    """Author label and colour for an activity type (case-insensitive)."""
    key = (activity_type or "").lower().strip()
    return _ACTIVITY_STYLE.get(key, ("Unknown", colors.black))


def build_comments(
    case_id: str,
    activities: Iterable[CaseActivity],
    priority: str,
    tz: str | tzinfo | None = None,
) -> list:
    """
    Flowables for Comments.pdf; system updates are left out.

    Entry timestamps are shown in ``tz``, ``DATE_BUCKET_TZ`` by default.
    """
    st = _styles()
    zone = _zone(tz)
    story: list = [
        _para(f"Comments for TS-{case_id}", st["title"]),
        Spacer(1, 12),
        _para(f"Case Redesign Priority {priority}", st["priority"]),
        Spacer(1, 12),
    ]

    for activity in activities:
        if activity.type == ActivityType.SYSTEM_UPDATE:
            continue

        author, colour = activity_author(activity.type)
        entry_style = ParagraphStyle("CommentEntry", parent=st["field"], textColor=colour)
        story.append(_para(f"{author.upper()} :   {activity.content}", entry_style))
        story.append(_para(_format_timestamp(activity.timestamp, zone), st["meta"]))
        story.append(Spacer(1, 10))

    return story


def _zone(tz: str | tzinfo | None) -> tzinfo:
    if tz is None:
        tz = settings.DATE_BUCKET_TZ
    return ZoneInfo(tz) if isinstance(tz, str) else tz


def _format_timestamp(seconds: int, zone: tzinfo) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).astimezone(zone).strftime("%m/%d/%Y, %I:%M:%S %p")


def render_comments(
    case_id: str,
    activities: Iterable[CaseActivity],
    priority: str,
    path: str | Path,
    tz: str | tzinfo | None = None,
) -> Path:
    path = Path(path)
    doc = SimpleDocTemplate(str(path), pagesize=letter, leftMargin=inch, rightMargin=inch)
    doc.build(build_comments(case_id, activities, priority, tz))
    return path


# ═══════════════════════════════════════════════════════════
#  Async entry points
# ═══════════════════════════════════════════════════════════

async def generate_case_pdf(case_id: str, details: CaseDetails, path: str | Path) -> Path:
    try:
        return await asyncio.to_thread(render_case_details, case_id, details, path)
    except Exception as exc:
        raise DocumentGenerationError(
            f"CaseDetails.pdf generation failed for {case_id}: {exc}",
            case_id=case_id,
            details={"path": str(path)},
        ) from exc


async def generate_comments_pdf(
    case_id: str,
    activities: list[CaseActivity],
    priority: str,
    path: str | Path,
    tz: str | tzinfo | None = None,
) -> Path:
    try:
        return await asyncio.to_thread(render_comments, case_id, activities, priority, path, tz)
    except Exception as exc:
        raise DocumentGenerationError(
            f"Comments.pdf generation failed for {case_id}: {exc}",
            case_id=case_id,
            details={"path": str(path)},
        ) from exc
