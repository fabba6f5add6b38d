"""
Data Model for Admin Audit Forensics

Defines the change-log record shape shared by the admin audit trail and the
user change trail, the field-level diff entry, and typed decoders for the
action-specific metadata carried on trip records.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)


class EventSource(Enum):
    """Audit trail that produced a record."""
    ADMIN = "admin"
    USER = "user"


ADMIN_UNDO_ACTION = "admin.trip.override_commit"

LIFECYCLE_FIELDS = (
    "status",
    "title",
    "show_on_public_profile",
    "trip_expires_at",
    "source_kind",
)


def as_record(value: Any) -> Dict[str, Any]:
    """Return value if it is a mapping, otherwise an empty dict."""
    if isinstance(value, Mapping):
        return dict(value)
    return {}


def as_optional_record(value: Any) -> Optional[Dict[str, Any]]:
    """Return value as a dict if it is a mapping, otherwise None."""
    if isinstance(value, Mapping):
        return dict(value)
    return None


def as_text(value: Any) -> Optional[str]:
    """Return the trimmed string, or None for blanks and non-strings."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def as_optional_str(value: Any) -> Optional[str]:
    """Stringify scalar ids (e.g. integer keys), keeping None."""
    if value is None:
        return None
    return str(value)


def as_record_list(value: Any) -> List[Dict[str, Any]]:
    """Keep only the mapping items of a list."""
    if not isinstance(value, list):
        return []
    return [dict(item) for item in value if isinstance(item, Mapping)]


@dataclass(frozen=True)
class ChangeRecord:
    """
    A single audit record from either trail.

    Attributes:
        id: Identifier, unique within its source
        source: "admin" or "user"
        created_at: ISO-8601 timestamp
        action: Dotted action code (e.g. "trip.updated")
        target_type: Type of the affected entity
        target_id: Identifier of the affected entity
        actor_user_id: Acting user id
        actor_email: Acting user email
        before_data: Snapshot of the target before the action
        after_data: Snapshot of the target after the action
        metadata: Action-specific details
    """

    id: str
    source: str
    created_at: str
    action: str
    target_type: str = ""
    target_id: Optional[str] = None
    actor_user_id: Optional[str] = None
    actor_email: Optional[str] = None
    before_data: Optional[Dict[str, Any]] = None
    after_data: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any], source: str) -> "ChangeRecord":
        """
        Build a record from a raw database row.

        Admin audit rows carry actor_user_id/actor_email, user change rows
        carry owner_user_id/owner_email. JSON columns that are not objects
        are dropped to None; non-string ids are stringified.

        Args:
            row: Raw row mapping
            source: "admin" or "user"

        Returns:
            ChangeRecord instance
        """
        if source == EventSource.USER.value:
            actor_user_id = row.get("owner_user_id", row.get("actor_user_id"))
            actor_email = row.get("owner_email", row.get("actor_email"))
        else:
            actor_user_id = row.get("actor_user_id")
            actor_email = row.get("actor_email")

        return cls(
            id=str(row.get("id", "")),
            source=source,
            created_at=str(row.get("created_at") or ""),
            action=str(row.get("action") or ""),
            target_type=str(row.get("target_type") or ""),
            target_id=as_optional_str(row.get("target_id")),
            actor_user_id=as_optional_str(actor_user_id),
            actor_email=as_optional_str(actor_email),
            before_data=as_optional_record(row.get("before_data")),
            after_data=as_optional_record(row.get("after_data")),
            metadata=as_optional_record(row.get("metadata")),
        )

    @classmethod
    def from_event(cls, event: Mapping[str, Any]) -> "ChangeRecord":
        """Build a record from an already-normalized event mapping."""
        return cls.from_row(event, str(event.get("source") or EventSource.ADMIN.value))

    def to_event(self) -> Dict[str, Any]:
        """Project the record to the flat event shape used for export."""
        return {
            "source": self.source,
            "id": self.id,
            "created_at": self.created_at,
            "action": self.action,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "actor_user_id": self.actor_user_id,
            "actor_email": self.actor_email,
            "metadata": self.metadata,
            "before_data": self.before_data,
            "after_data": self.after_data,
        }

    @property
    def normalized_action(self) -> str:
        return self.action.strip().lower()


@dataclass(frozen=True)
class DiffEntry:
    """One field-level before/after change."""

    key: str
    before_value: Any = None
    after_value: Any = None

    def inverted(self) -> "DiffEntry":
        """Return the entry with before and after swapped."""
        return DiffEntry(key=self.key, before_value=self.after_value, after_value=self.before_value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "before_value": self.before_value,
            "after_value": self.after_value,
        }


@dataclass(frozen=True)
class TimelineEntry:
    """A record tagged with the trail it came from, as indexed for undo lookups."""

    kind: str
    record: ChangeRecord


def build_timeline_index(
    admin_records: Iterable[ChangeRecord] = (),
    user_records: Iterable[ChangeRecord] = ()
) -> Dict[str, TimelineEntry]:
    """
    Index admin and user records by id.

    Args:
        admin_records: Records from the admin audit trail
        user_records: Records from the user change trail

    Returns:
        Dictionary mapping record id -> TimelineEntry
    """
    index: Dict[str, TimelineEntry] = {}

    for record in admin_records:
        index[record.id] = TimelineEntry(kind=EventSource.ADMIN.value, record=record)

    for record in user_records:
        if record.id in index:
            logger.warning(f"Record id {record.id} present in both audit trails, keeping user record")
        index[record.id] = TimelineEntry(kind=EventSource.USER.value, record=record)

    return index


# Typed metadata


@dataclass(frozen=True)
class TimelineDiff:
    """Structured itinerary edit description nested in trip.updated metadata."""

    transport_mode_changes: List[Dict[str, Any]] = field(default_factory=list)
    deleted_items: List[Dict[str, Any]] = field(default_factory=list)
    added_items: List[Dict[str, Any]] = field(default_factory=list)
    updated_items: List[Dict[str, Any]] = field(default_factory=list)
    visual_changes: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def decode(cls, value: Any) -> "TimelineDiff":
        raw = as_record(value)
        return cls(
            transport_mode_changes=as_record_list(raw.get("transport_mode_changes")),
            deleted_items=as_record_list(raw.get("deleted_items")),
            added_items=as_record_list(raw.get("added_items")),
            updated_items=as_record_list(raw.get("updated_items")),
            visual_changes=as_record_list(raw.get("visual_changes")),
        )


@dataclass(frozen=True)
class LifecyclePair:
    """Before/after values of a lifecycle field, with presence flags."""

    key: str
    has_before: bool
    has_after: bool
    before: Any = None
    after: Any = None


def decode_lifecycle_pairs(metadata: Mapping[str, Any]) -> List[LifecyclePair]:
    """Read the <field>_before/<field>_after pairs for all lifecycle fields."""
    pairs = []
    for key in LIFECYCLE_FIELDS:
        before_key = f"{key}_before"
        after_key = f"{key}_after"
        pairs.append(LifecyclePair(
            key=key,
            has_before=before_key in metadata,
            has_after=after_key in metadata,
            before=metadata.get(before_key),
            after=metadata.get(after_key),
        ))
    return pairs


@dataclass(frozen=True)
class TripArchivedMetadata:
    status_before: Any = None
    status_after: Any = None
    has_status_before: bool = False
    has_status_after: bool = False


@dataclass(frozen=True)
class TripUpdatedMetadata:
    timeline_diff: TimelineDiff
    version_label: Optional[str]
    lifecycle: List[LifecyclePair]


@dataclass(frozen=True)
class TripCreatedMetadata:
    lifecycle: List[LifecyclePair]


def _has_content(value: Any) -> bool:
    return isinstance(value, Mapping) and len(value) > 0


def decode_trip_metadata(record: ChangeRecord):
    """
    Decode the metadata of a trip record into its action-specific shape.

    Args:
        record: Change record

    Returns:
        TripArchivedMetadata, TripUpdatedMetadata, TripCreatedMetadata, or
        None when the action has no metadata-derived diff
    """
    metadata = as_record(record.metadata)

    if record.action == "trip.archived":
        return TripArchivedMetadata(
            status_before=metadata.get("status_before"),
            status_after=metadata.get("status_after"),
            has_status_before=metadata.get("status_before") is not None,
            has_status_after=metadata.get("status_after") is not None,
        )

    if record.action == "trip.updated":
        raw_diff = metadata.get("timeline_diff_v1")
        if not _has_content(raw_diff):
            raw_diff = metadata.get("timeline_diff")
        return TripUpdatedMetadata(
            timeline_diff=TimelineDiff.decode(raw_diff),
            version_label=as_text(metadata.get("version_label")),
            lifecycle=decode_lifecycle_pairs(metadata),
        )

    if record.action == "trip.created":
        return TripCreatedMetadata(lifecycle=decode_lifecycle_pairs(metadata))

    return None
