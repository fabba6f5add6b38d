"""
Export request normalization and timeline filtering.

Turns a loosely-typed export request body into bounded, validated filters
and applies them to the merged admin + user record set.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from src.forensics.models import ChangeRecord, EventSource

logger = logging.getLogger(__name__)

MAX_FILTER_VALUES = 200
MAX_SEARCH_LENGTH = 160
DEFAULT_SOURCE_LIMIT = 500
MAX_SOURCE_LIMIT = 2000

DATE_RANGES = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "all": None,
}
DEFAULT_DATE_RANGE = "30d"

FRACTION_PATTERN = re.compile(r"\.(\d+)")


@dataclass(frozen=True)
class ExportRequest:
    """Normalized export filters."""

    search_token: str = ""
    date_range: str = DEFAULT_DATE_RANGE
    action_filters: List[str] = field(default_factory=list)
    target_filters: List[str] = field(default_factory=list)
    actor_filters: List[str] = field(default_factory=list)
    event_ids: List[str] = field(default_factory=list)
    source_limit: int = DEFAULT_SOURCE_LIMIT

    def to_filters(self) -> Dict[str, Any]:
        """Filters as recorded in the replay bundle."""
        return {
            "search": self.search_token or None,
            "date_range": self.date_range,
            "action_filters": list(self.action_filters),
            "target_filters": list(self.target_filters),
            "actor_filters": list(self.actor_filters),
            "event_ids": list(self.event_ids),
            "source_limit": self.source_limit,
        }


def _read(body: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in body:
            return body[key]
    return None


def normalize_string_list(value: Any) -> List[str]:
    """
    Deduplicated, trimmed, non-empty strings, capped at MAX_FILTER_VALUES.

    The cap applies before deduplication.
    """
    if not isinstance(value, list):
        return []

    candidates = [
        entry.strip() for entry in value
        if isinstance(entry, str) and entry.strip()
    ][:MAX_FILTER_VALUES]

    return list(dict.fromkeys(candidates))


def clamp_source_limit(value: Any) -> int:
    """Clamp the per-source row limit to 1..MAX_SOURCE_LIMIT."""
    if isinstance(value, bool):
        return DEFAULT_SOURCE_LIMIT
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return DEFAULT_SOURCE_LIMIT
    if not math.isfinite(parsed):
        return DEFAULT_SOURCE_LIMIT

    rounded = math.floor(parsed)
    if rounded <= 0:
        return DEFAULT_SOURCE_LIMIT
    return min(rounded, MAX_SOURCE_LIMIT)


def normalize_export_request(body: Optional[Mapping[str, Any]]) -> ExportRequest:
    """
    Normalize an export request body.

    Accepts camelCase (dateRange) and snake_case (date_range) keys.

    Args:
        body: Parsed JSON request body, or None

    Returns:
        ExportRequest with bounded values
    """
    if not isinstance(body, Mapping):
        body = {}

    search = _read(body, "search")
    search_token = search.strip().lower()[:MAX_SEARCH_LENGTH] if isinstance(search, str) else ""

    date_range = _read(body, "dateRange", "date_range")
    if date_range not in DATE_RANGES:
        date_range = DEFAULT_DATE_RANGE

    actors = [
        actor for actor in normalize_string_list(_read(body, "actorFilters", "actor_filters"))
        if actor in (EventSource.ADMIN.value, EventSource.USER.value)
    ]

    return ExportRequest(
        search_token=search_token,
        date_range=date_range,
        action_filters=normalize_string_list(_read(body, "actionFilters", "action_filters")),
        target_filters=normalize_string_list(_read(body, "targetFilters", "target_filters")),
        actor_filters=actors,
        event_ids=normalize_string_list(_read(body, "eventIds", "event_ids")),
        source_limit=clamp_source_limit(_read(body, "sourceLimit", "source_limit")),
    )


def _pad_fraction(match: "re.Match") -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into an aware datetime, None if invalid.

    Fractional seconds of any length are normalized to microseconds;
    Postgres trims trailing zeros (".12345").
    """
    if not value or not isinstance(value, str):
        return None
    text = FRACTION_PATTERN.sub(_pad_fraction, value.strip().replace("Z", "+00:00"), count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_in_date_range(created_at: Optional[str], date_range: str, now: datetime) -> bool:
    window = DATE_RANGES.get(date_range)
    if window is None:
        return True

    timestamp = parse_timestamp(created_at)
    if timestamp is None:
        return False
    return timestamp >= now - window


def matches_search(record: ChangeRecord, search_token: str) -> bool:
    parts = (
        record.action,
        record.target_type,
        record.target_id,
        record.actor_email,
        record.actor_user_id,
    )
    haystack = " ".join(str(part) for part in parts if part is not None).lower()
    return search_token in haystack


def filter_timeline_entries(
    records: List[ChangeRecord],
    request: ExportRequest,
    now: Optional[datetime] = None
) -> List[ChangeRecord]:
    """
    Apply export filters to the merged record set.

    Args:
        records: Admin and user records
        request: Normalized export request
        now: Reference time for the date range (defaults to current UTC)

    Returns:
        Matching records, newest first
    """
    now = now or datetime.now(timezone.utc)
    event_ids = set(request.event_ids)

    matched = []
    for record in records:
        if not is_in_date_range(record.created_at, request.date_range, now):
            continue
        if request.action_filters and record.action not in request.action_filters:
            continue
        if request.target_filters and record.target_type not in request.target_filters:
            continue
        if request.actor_filters and record.source not in request.actor_filters:
            continue
        if event_ids and record.id not in event_ids:
            continue
        if request.search_token and not matches_search(record, request.search_token):
            continue
        matched.append(record)

    epoch = datetime.min.replace(tzinfo=timezone.utc)
    matched.sort(key=lambda record: parse_timestamp(record.created_at) or epoch, reverse=True)

    logger.info(f"Filtered {len(records)} audit records down to {len(matched)}")
    return matched
