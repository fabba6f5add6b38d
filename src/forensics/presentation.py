"""
Presentation helpers for audit change rows.

Maps action codes and secondary action codes to display labels and
formats diff values for admin review screens.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List

from src.forensics.models import ChangeRecord, DiffEntry, as_record

EMPTY_VALUE = "—"

NEUTRAL_STYLE = "border-slate-300 bg-slate-100 text-slate-800"


@dataclass(frozen=True)
class ActionPresentation:
    label: str
    style_class: str


@dataclass(frozen=True)
class SecondaryFacet:
    code: str
    label: str
    style_class: str


_ARCHIVED = ActionPresentation("Archived trip", "border-amber-300 bg-amber-50 text-amber-800")
_ARCHIVE_FAILED = ActionPresentation("Archive failed", "border-rose-300 bg-rose-50 text-rose-800")
_CREATED = ActionPresentation("Created trip", "border-emerald-300 bg-emerald-50 text-emerald-800")
_UPDATED = ActionPresentation("Updated trip", "border-sky-300 bg-sky-50 text-sky-800")
_DELETED = ActionPresentation("Deleted trip", "border-rose-300 bg-rose-50 text-rose-800")
_SHARED = ActionPresentation("Shared trip", "border-violet-300 bg-violet-50 text-violet-800")
_PROFILE = ActionPresentation("Updated profile", "border-indigo-300 bg-indigo-50 text-indigo-800")

ACTION_PRESENTATIONS: Dict[str, ActionPresentation] = {
    "trip.archived": _ARCHIVED,
    "trip.archive": _ARCHIVED,
    "trip.archive_failed": _ARCHIVE_FAILED,
    "trip.created": _CREATED,
    "trip.create": _CREATED,
    "trip.updated": _UPDATED,
    "trip.update": _UPDATED,
    "trip.deleted": _DELETED,
    "trip.delete": _DELETED,
    "trip.share_created": _SHARED,
    "trip.share.create": _SHARED,
    "profile.updated": _PROFILE,
}

SECONDARY_FACETS: Dict[str, SecondaryFacet] = {
    "trip.transport.updated": SecondaryFacet(
        "trip.transport.updated", "Transport updated", "border-cyan-300 bg-cyan-50 text-cyan-800"
    ),
    "trip.activity.deleted": SecondaryFacet(
        "trip.activity.deleted", "Activity deleted", "border-rose-300 bg-rose-50 text-rose-800"
    ),
    "trip.activity.updated": SecondaryFacet(
        "trip.activity.updated", "Activity updated", "border-sky-300 bg-sky-50 text-sky-800"
    ),
    "trip.segment.deleted": SecondaryFacet(
        "trip.segment.deleted", "Segment deleted", "border-orange-300 bg-orange-50 text-orange-800"
    ),
    "trip.city.updated": SecondaryFacet(
        "trip.city.updated", "City updated", "border-teal-300 bg-teal-50 text-teal-800"
    ),
    "trip.trip_dates.updated": SecondaryFacet(
        "trip.trip_dates.updated", "Trip dates updated", "border-amber-300 bg-amber-50 text-amber-800"
    ),
    "trip.visibility.updated": SecondaryFacet(
        "trip.visibility.updated", "Visibility updated", "border-violet-300 bg-violet-50 text-violet-800"
    ),
}


def format_action_label(action: str) -> str:
    """
    Turn an unknown action code into a readable label.

    "trip.shared_link_rotated" -> "Trip Shared Link Rotated"
    """
    cleaned = re.sub(r"[._]+", " ", action.strip())
    tokens = cleaned.split()
    if not tokens:
        return "User change"
    return " ".join(token[:1].upper() + token[1:] for token in tokens)


def resolve_action_presentation(action: str) -> ActionPresentation:
    """Label and style class for an action code."""
    known = ACTION_PRESENTATIONS.get(action.strip().lower())
    if known:
        return known
    return ActionPresentation(format_action_label(action), NEUTRAL_STYLE)


def resolve_secondary_facets(record: ChangeRecord) -> List[SecondaryFacet]:
    """
    Facets for the secondary action codes recorded on a trip update.

    Args:
        record: Change record

    Returns:
        Facets in recorded order, empty for other actions
    """
    if record.normalized_action != "trip.updated":
        return []

    codes = as_record(record.metadata).get("secondary_action_codes")
    if not isinstance(codes, list):
        return []

    facets = []
    for code in codes:
        if not isinstance(code, str) or not code.strip():
            continue
        code = code.strip()
        facet = SECONDARY_FACETS.get(code)
        if facet is None:
            facet = SecondaryFacet(code, format_action_label(code), NEUTRAL_STYLE)
        facets.append(facet)

    return facets


def build_diff_entry_render_key(entry: DiffEntry, index: int) -> str:
    return f"{entry.key}::{index}"


def build_facet_render_key(facet: SecondaryFacet, index: int) -> str:
    return f"{facet.code}::{index}"


def _format_item_snapshot(snapshot: Dict[str, Any]) -> str:
    parts = []

    item_type = snapshot.get("type")
    if isinstance(item_type, str) and item_type.strip():
        parts.append(item_type.strip())

    title = snapshot.get("title")
    if isinstance(title, str) and title.strip():
        parts.append(title.strip())

    offset = snapshot.get("start_date_offset")
    if isinstance(offset, (int, float)) and not isinstance(offset, bool):
        parts.append(f"Day {'+' if offset >= 0 else ''}{offset:g}")

    duration = snapshot.get("duration")
    if isinstance(duration, (int, float)) and not isinstance(duration, bool):
        parts.append(f"{duration:g}d")

    return " · ".join(parts)


def format_diff_value(entry: DiffEntry, value: Any) -> str:
    """
    Render one side of a diff entry for display.

    Timeline item snapshots render as "type · title · Day +N · Nd";
    missing values render as an em dash.
    """
    if value is None:
        return EMPTY_VALUE

    if isinstance(value, bool):
        return "on" if value else "off"

    if isinstance(value, str):
        return value if value.strip() else EMPTY_VALUE

    if isinstance(value, dict):
        if ("type" in value or "title" in value) and " · " in entry.key:
            rendered = _format_item_snapshot(value)
            if rendered:
                return rendered
        return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)

    if isinstance(value, list):
        return json.dumps(value, ensure_ascii=False, default=str)

    return str(value)
