"""
Replay Bundle Builder for Audit Forensics

Merges events from the admin and user audit trails into a versioned,
schema-tagged export bundle: events sorted by timestamp and numbered,
grouped by correlation id, with redaction applied per event.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from src.forensics.models import ChangeRecord, as_record, as_text
from src.utils.correlation import extract_correlation_id_from_event

logger = logging.getLogger(__name__)

REPLAY_SCHEMA = "admin_forensics_replay_v1"

REDACTION_NONE = "none"
REDACTED_VALUE = "[redacted]"

# Field name -> replacement value, applied when an event's policy is not "none"
REDACTION_RULES: Dict[str, Any] = {
    "error_message": REDACTED_VALUE,
}

EventInput = Union[ChangeRecord, Mapping[str, Any]]


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and Z suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def _as_event(event: EventInput) -> Dict[str, Any]:
    if isinstance(event, ChangeRecord):
        return event.to_event()
    return dict(event)


def resolve_redaction_policy(event: Mapping[str, Any]) -> str:
    metadata = as_record(event.get("metadata"))
    return as_text(metadata.get("redaction_policy")) or REDACTION_NONE


def apply_redaction_policy(value: Mapping[str, Any], policy: str) -> Dict[str, Any]:
    """
    Mask the registered fields of a mapping.

    Args:
        value: Metadata or snapshot mapping
        policy: Redaction policy of the event

    Returns:
        A new dict; unchanged copy when policy is "none"
    """
    redacted = dict(value)
    if policy == REDACTION_NONE:
        return redacted

    for field, replacement in REDACTION_RULES.items():
        if field in redacted:
            redacted[field] = replacement

    return redacted


class ReplayBundleBuilder:
    """
    Builds replay bundles from heterogeneous audit events.

    Pure and deterministic for a fixed generated_at; never rejects events.
    """

    def __init__(self, schema: str = REPLAY_SCHEMA):
        self.schema = schema
        logger.debug(f"Initialized ReplayBundleBuilder for schema {schema}")

    def normalize_events(self, events: Iterable[EventInput]) -> List[Dict[str, Any]]:
        """
        Sort, number, correlate and redact events.

        Args:
            events: Records or event mappings from either trail

        Returns:
            List of serialized bundle events
        """
        raw_events = [_as_event(event) for event in events]
        sorted_events = sorted(raw_events, key=lambda event: str(event.get("created_at") or ""))

        normalized = []
        for index, event in enumerate(sorted_events):
            policy = resolve_redaction_policy(event)
            normalized.append({
                "sequence": index + 1,
                "source": event.get("source"),
                "id": event.get("id"),
                "created_at": event.get("created_at"),
                "correlation_id": extract_correlation_id_from_event(event),
                "action": event.get("action"),
                "target_type": event.get("target_type"),
                "target_id": event.get("target_id"),
                "actor_user_id": event.get("actor_user_id"),
                "actor_email": event.get("actor_email"),
                "redaction_policy": policy,
                "metadata": apply_redaction_policy(as_record(event.get("metadata")), policy),
                "before_data": apply_redaction_policy(as_record(event.get("before_data")), policy),
                "after_data": apply_redaction_policy(as_record(event.get("after_data")), policy),
            })

        return normalized

    def build_correlations(self, normalized_events: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Group normalized events by correlation id.

        Args:
            normalized_events: Output of normalize_events

        Returns:
            Correlation groups sorted by first_seen_at
        """
        groups: Dict[str, Dict[str, Any]] = {}

        for event in normalized_events:
            correlation_id = event["correlation_id"]
            created_at = event["created_at"]
            group = groups.get(correlation_id)

            if group is None:
                groups[correlation_id] = {
                    "correlation_id": correlation_id,
                    "event_ids": [event["id"]],
                    "actions": [event["action"]],
                    "first_seen_at": created_at,
                    "last_seen_at": created_at,
                }
                continue

            group["event_ids"].append(event["id"])
            if event["action"] not in group["actions"]:
                group["actions"].append(event["action"])
            if str(created_at or "") < str(group["first_seen_at"] or ""):
                group["first_seen_at"] = created_at
            if str(created_at or "") > str(group["last_seen_at"] or ""):
                group["last_seen_at"] = created_at

        return sorted(groups.values(), key=lambda group: str(group["first_seen_at"] or ""))

    def build(
        self,
        events: Iterable[EventInput],
        generated_at_iso: Optional[str] = None,
        filters: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Build a replay bundle.

        Args:
            events: Records or event mappings from either trail
            generated_at_iso: Bundle timestamp (defaults to now)
            filters: Caller filters, passed through verbatim

        Returns:
            Bundle dictionary in the admin_forensics_replay_v1 shape
        """
        normalized_events = self.normalize_events(events)
        correlations = self.build_correlations(normalized_events)

        logger.info(
            f"Built replay bundle: {len(normalized_events)} events, "
            f"{len(correlations)} correlations"
        )

        return {
            "schema": self.schema,
            "generated_at": generated_at_iso or utc_now_iso(),
            "filters": dict(filters) if filters is not None else {},
            "totals": {
                "event_count": len(normalized_events),
                "correlation_count": len(correlations),
            },
            "events": normalized_events,
            "correlations": correlations,
        }


def build_replay_bundle(
    events: Iterable[EventInput],
    generated_at_iso: Optional[str] = None,
    filters: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    """Build a replay bundle with the default builder."""
    return ReplayBundleBuilder().build(events, generated_at_iso=generated_at_iso, filters=filters)


def serialize_replay_bundle(bundle: Mapping[str, Any]) -> str:
    """Pretty-printed JSON with a trailing newline."""
    return json.dumps(bundle, indent=2, ensure_ascii=False, default=str) + "\n"


def write_replay_bundle(
    bundle: Mapping[str, Any],
    file_name: str,
    output_dir: Optional[Union[str, Path]] = None
) -> bool:
    """
    Write a bundle to a download file.

    Args:
        bundle: Replay bundle
        file_name: Name of the file to create
        output_dir: Target directory; when None there is nowhere to
            deliver the file and the call is a no-op

    Returns:
        True if the file was written, False otherwise
    """
    if output_dir is None:
        logger.debug("No output directory available, skipping bundle download")
        return False

    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / Path(file_name).name

    with open(target, "w", encoding="utf-8") as f:
        f.write(serialize_replay_bundle(bundle))

    logger.info(f"Replay bundle written: {target}")
    return True
