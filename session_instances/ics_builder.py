"""ICS calendar export for session instances."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from .models import SchedulePeriod, SessionInstance

PRODID = "-//Session Instances//EN"


def _format(dt: datetime) -> str:
    """Format a datetime in UTC with trailing Z."""
    return dt.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _escape_text(value: str) -> str:
    """Escape text for RFC5545 TEXT value."""

    normalized = value.replace("\r\n", "\n").replace("\r", "\n")
    escaped = normalized.replace("\\", "\\\\")
    escaped = escaped.replace("\n", "\\n")
    escaped = escaped.replace(",", "\\,")
    escaped = escaped.replace(";", "\\;")
    return escaped


def _fold_line(line: str, limit: int = 75) -> List[str]:
    """Fold a line according to RFC5545 (75 octets)."""

    if len(line.encode("utf-8")) <= limit:
        return [line]

    folded: List[str] = []
    current_chars: List[str] = []
    current_bytes = 0

    for ch in line:
        ch_bytes = len(ch.encode("utf-8"))
        if current_bytes + ch_bytes > limit:
            folded.append("".join(current_chars))
            current_chars = [" "]
            current_bytes = 1
        current_chars.append(ch)
        current_bytes += ch_bytes

    folded.append("".join(current_chars))
    return folded


def event_uid(instance: SessionInstance) -> str:
    base = instance.id or f"{instance.period_id}|{instance.date}|{instance.start_time}"
    return hashlib.sha1(base.encode()).hexdigest()


def build_events(
    instances: Iterable[SessionInstance], *, tz: ZoneInfo
) -> List[dict]:
    """One event per active instance, ordered by start."""

    events: List[dict] = []
    for inst in instances:
        if not inst.is_active:
            continue
        spots = f"{inst.available_spots} of {inst.capacity} spots available"
        description_parts = [
            inst.name,
            spots,
            "Coaches: " + ", ".join(inst.coaches) if inst.coaches else "Coaches: TBD",
            inst.notes or "",
        ]
        events.append(
            {
                "uid": event_uid(inst),
                "summary": inst.name,
                "start": inst.starts_at(tz),
                "end": inst.ends_at(tz),
                "description": "\n".join(filter(None, description_parts)),
                "status": "CANCELLED" if inst.is_cancelled else "CONFIRMED",
                "transp": "TRANSPARENT" if inst.is_cancelled else "OPAQUE",
            }
        )
    events.sort(key=lambda e: e["start"])
    return events


def build_ics(
    instances: Iterable[SessionInstance],
    *,
    tz: ZoneInfo,
    calendar_name: Optional[str] = None,
) -> Tuple[str, List[dict]]:
    events = build_events(instances, tz=tz)

    now = datetime.now(timezone.utc)
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
    ]
    if calendar_name:
        lines.append(f"X-WR-CALNAME:{_escape_text(calendar_name)}")

    for e in events:
        lines.append("BEGIN:VEVENT")
        lines.append(f"UID:{e['uid']}")
        lines.append(f"DTSTAMP:{_format(now)}")
        lines.append(f"SUMMARY:{_escape_text(e['summary'])}")
        lines.append(f"DTSTART:{_format(e['start'])}")
        lines.append(f"DTEND:{_format(e['end'])}")
        if e["description"]:
            lines.append(f"DESCRIPTION:{_escape_text(e['description'])}")
        lines.append(f"STATUS:{e['status']}")
        lines.append(f"TRANSP:{e['transp']}")
        lines.append("END:VEVENT")
    lines.append("END:VCALENDAR")
    folded_lines: List[str] = []
    for line in lines:
        folded_lines.extend(_fold_line(line))
    ics = "\r\n".join(folded_lines) + "\r\n"
    return ics, events


def output_filename(period: SchedulePeriod) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", period.name.lower()).strip("-") or "period"
    return f"sessions_{slug}_{period.start_date:%Y%m%d}-{period.end_date:%Y%m%d}.ics"
