"""
Diff Extractor for Audit Forensics

Turns a single change-log record into an ordered list of field-level diff
entries. Snapshot pairs take precedence; trip actions without snapshots are
diffed from their metadata (lifecycle field pairs, structured timeline
diffs, and free-text visual version labels).
"""

import logging
import re
from typing import Any, Dict, List, Optional

from src.forensics.comparer import ValueComparer
from src.forensics.models import (
    ChangeRecord,
    DiffEntry,
    LifecyclePair,
    TimelineDiff,
    TripArchivedMetadata,
    TripCreatedMetadata,
    TripUpdatedMetadata,
    as_record,
    as_text,
    decode_trip_metadata,
)

logger = logging.getLogger(__name__)

NOISY_DIFF_KEYS = ("updated_at", "created_at", "onboarding_completed_at")

KEY_SEPARATOR = " · "

VISUAL_LABEL_PREFIX = re.compile(r"^\s*visual\s*:\s*", re.IGNORECASE)
VISUAL_SEGMENT_SEPARATOR = "·"
VISUAL_ARROW = "→"
VISUAL_EMPTY_VALUE = "—"

VISUAL_FIELD_KEY_MAP = {
    "map view": "map_view",
    "route view": "route_view",
    "city names": "city_names",
    "map layout": "map_layout",
    "timeline layout": "timeline_layout",
    "zoom": "zoom_level",
    "zoom level": "zoom_level",
}

ZOOM_SEGMENTS = ("zoomed in", "zoomed out")

ENTITY_TYPE_MAP = {
    "travel-empty": "segment",
    "travel": "transport",
}


def snake_case(value: str) -> str:
    """Lowercase a label and collapse non-alphanumeric runs into underscores."""
    return re.sub(r"[^a-z0-9]+", "_", value.strip().lower()).strip("_")


def normalize_visual_field(value: Any) -> str:
    """
    Normalize a visual setting label into a field key.

    Args:
        value: Field or label text (e.g. "Map view")

    Returns:
        Snake-case field key, "change" when empty
    """
    text = as_text(value)
    if not text:
        return "change"

    collapsed = re.sub(r"\s+", " ", text.lower())
    if collapsed in VISUAL_FIELD_KEY_MAP:
        return VISUAL_FIELD_KEY_MAP[collapsed]

    return snake_case(collapsed) or "change"


def normalize_entity_type(value: Optional[str]) -> str:
    """
    Normalize a timeline item type into the entity segment of a diff key.

    Args:
        value: Raw item type (e.g. "travel-empty", "activity")

    Returns:
        Normalized entity type, "item" when absent
    """
    if not value:
        return "item"

    lowered = value.strip().lower()
    if lowered in ENTITY_TYPE_MAP:
        return ENTITY_TYPE_MAP[lowered]

    return snake_case(lowered) or "item"


def resolve_item_label(entry: Dict[str, Any]) -> str:
    """Title of a timeline item, falling back to its snapshots and id."""
    title = (
        as_text(entry.get("title"))
        or as_text(as_record(entry.get("before")).get("title"))
        or as_text(as_record(entry.get("after")).get("title"))
    )
    if title:
        return title

    return as_text(entry.get("item_id")) or as_text(entry.get("itemId")) or "Unknown item"


def resolve_item_type(entry: Dict[str, Any]) -> Optional[str]:
    """Item type from the entry itself, then the before and after snapshots."""
    return (
        as_text(entry.get("item_type"))
        or as_text(as_record(entry.get("before")).get("type"))
        or as_text(as_record(entry.get("after")).get("type"))
    )


def _first_present(entry: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in entry:
            return entry[key]
    return None


class DiffExtractor:
    """
    Extracts field-level diff entries from change-log records.

    Never raises: malformed or absent data degrades to fewer entries.
    """

    def __init__(self, comparer: Optional[ValueComparer] = None):
        """
        Initialize the diff extractor.

        Args:
            comparer: Value comparer (defaults to one ignoring noisy keys)
        """
        self.comparer = comparer or ValueComparer(ignore_fields=NOISY_DIFF_KEYS)
        logger.debug("Initialized DiffExtractor")

    def extract(self, record: ChangeRecord) -> List[DiffEntry]:
        """
        Build the diff entries for a record.

        Args:
            record: Change record from either audit trail

        Returns:
            Ordered list of DiffEntry (possibly empty)
        """
        before = as_record(record.before_data)
        after = as_record(record.after_data)

        if before or after:
            entries = self.snapshot_entries(before, after)
            logger.debug(f"Record {record.id}: {len(entries)} snapshot diff entries")
            return entries

        metadata = decode_trip_metadata(record)

        if isinstance(metadata, TripArchivedMetadata):
            return self.archived_entries(metadata)

        if isinstance(metadata, TripUpdatedMetadata):
            timeline_entries = self.timeline_entries(metadata.timeline_diff)
            visual_entries: List[DiffEntry] = []
            if not timeline_entries:
                visual_entries = self.visual_label_entries(metadata.version_label)
            lifecycle_entries = self.lifecycle_entries(metadata.lifecycle, require_before=True)

            logger.debug(
                f"Record {record.id}: {len(timeline_entries)} timeline, "
                f"{len(visual_entries)} visual label, {len(lifecycle_entries)} lifecycle entries"
            )
            return timeline_entries + visual_entries + lifecycle_entries

        if isinstance(metadata, TripCreatedMetadata):
            return self.lifecycle_entries(metadata.lifecycle, require_before=False)

        return []

    def snapshot_entries(
        self,
        before: Dict[str, Any],
        after: Dict[str, Any]
    ) -> List[DiffEntry]:
        """
        Diff two snapshots key by key.

        Args:
            before: Snapshot before the action
            after: Snapshot after the action

        Returns:
            Entries for changed, non-noisy keys sorted by key
        """
        return [
            DiffEntry(key=key, before_value=before.get(key), after_value=after.get(key))
            for key in self.comparer.changed_fields(before, after)
        ]

    def archived_entries(self, metadata: TripArchivedMetadata) -> List[DiffEntry]:
        """Status entry for an archived trip."""
        if not (metadata.has_status_before or metadata.has_status_after):
            return []

        before = metadata.status_before if metadata.has_status_before else "active"
        after = metadata.status_after if metadata.has_status_after else "archived"
        return [DiffEntry(key="status", before_value=before, after_value=after)]

    def lifecycle_entries(
        self,
        pairs: List[LifecyclePair],
        require_before: bool
    ) -> List[DiffEntry]:
        """
        Build entries from lifecycle <field>_before/<field>_after pairs.

        Args:
            pairs: Decoded lifecycle pairs
            require_before: Skip pairs without a before key

        Returns:
            Entries whose values differ, in lifecycle field order
        """
        entries = []

        for pair in pairs:
            if not pair.has_after:
                continue
            if require_before and not pair.has_before:
                continue

            before = pair.before if pair.has_before else None
            if self.comparer.values_equal(before, pair.after):
                continue

            entries.append(DiffEntry(key=pair.key, before_value=before, after_value=pair.after))

        return entries

    def timeline_entries(self, timeline_diff: TimelineDiff) -> List[DiffEntry]:
        """
        Build entries from a structured timeline diff.

        Order: transport mode changes, deleted items, added items, updated
        items, visual changes.
        """
        entries: List[DiffEntry] = []

        for change in timeline_diff.transport_mode_changes:
            entries.append(DiffEntry(
                key=f"transport_mode{KEY_SEPARATOR}{resolve_item_label(change)}",
                before_value=_first_present(change, "before_mode", "beforeMode"),
                after_value=_first_present(change, "after_mode", "afterMode"),
            ))

        for item in timeline_diff.deleted_items:
            entity = normalize_entity_type(resolve_item_type(item))
            before = item.get("before")
            entries.append(DiffEntry(
                key=f"deleted_{entity}{KEY_SEPARATOR}{resolve_item_label(item)}",
                before_value=before if before is not None else item,
                after_value=None,
            ))

        for item in timeline_diff.added_items:
            entity = normalize_entity_type(resolve_item_type(item))
            after = item.get("after")
            entries.append(DiffEntry(
                key=f"added_{entity}{KEY_SEPARATOR}{resolve_item_label(item)}",
                before_value=None,
                after_value=after if after is not None else item,
            ))

        for item in timeline_diff.updated_items:
            entries.extend(self._updated_item_entries(item))

        for change in timeline_diff.visual_changes:
            field = normalize_visual_field(
                _first_present(change, "field") or _first_present(change, "label")
            )
            before = _first_present(change, "before_value", "beforeValue", "before")
            after = _first_present(change, "after_value", "afterValue", "after")
            if self.comparer.values_equal(before, after):
                continue
            entries.append(DiffEntry(key=f"visual_{field}", before_value=before, after_value=after))

        return entries

    def _updated_item_entries(self, item: Dict[str, Any]) -> List[DiffEntry]:
        label = resolve_item_label(item)
        before = as_record(item.get("before"))
        after = as_record(item.get("after"))

        raw_fields = _first_present(item, "changed_fields", "changedFields")
        changed_fields = [
            f.strip() for f in raw_fields
            if isinstance(f, str) and f.strip()
        ] if isinstance(raw_fields, list) else []

        if changed_fields:
            candidates = changed_fields
        else:
            candidates = list(before.keys()) + [k for k in after.keys() if k not in before]

        entries = []
        for field in candidates:
            before_value = before.get(field)
            after_value = after.get(field)
            if self.comparer.values_equal(before_value, after_value):
                continue
            entries.append(DiffEntry(
                key=f"updated_{field}{KEY_SEPARATOR}{label}",
                before_value=before_value,
                after_value=after_value,
            ))

        return entries

    def visual_label_entries(self, version_label: Optional[str]) -> List[DiffEntry]:
        """
        Parse a "Visual: <field>: <before> → <after> · ..." version label.

        Args:
            version_label: Free-text version label

        Returns:
            visual_<field> entries, empty for labels without the Visual prefix
        """
        if not version_label or not VISUAL_LABEL_PREFIX.match(version_label):
            return []

        body = VISUAL_LABEL_PREFIX.sub("", version_label, count=1).strip()
        entries = []

        for segment in body.split(VISUAL_SEGMENT_SEPARATOR):
            segment = segment.strip()
            if not segment:
                continue
            entry = self._parse_visual_segment(segment)
            if entry is not None:
                entries.append(entry)

        return entries

    def _parse_visual_segment(self, segment: str) -> Optional[DiffEntry]:
        name, colon, remainder = segment.partition(":")

        if colon and name.strip():
            field = normalize_visual_field(name)
            if VISUAL_ARROW in remainder:
                before, _, after = remainder.partition(VISUAL_ARROW)
                before_value = _visual_value(before)
                after_value = _visual_value(after)
            else:
                before_value = None
                after_value = _visual_value(remainder) or segment
        elif segment.lower() in ZOOM_SEGMENTS:
            field = "zoom_level"
            before_value = None
            after_value = segment
        else:
            field = normalize_visual_field(segment)
            before_value = None
            after_value = segment

        if self.comparer.values_equal(before_value, after_value):
            return None

        return DiffEntry(key=f"visual_{field}", before_value=before_value, after_value=after_value)


def _visual_value(value: str) -> Optional[str]:
    normalized = value.strip()
    if not normalized or normalized == VISUAL_EMPTY_VALUE:
        return None
    return normalized


_default_extractor = DiffExtractor()


def extract_diff_entries(record: ChangeRecord) -> List[DiffEntry]:
    """
    Extract diff entries from a record using the default extractor.

    Args:
        record: Change record

    Returns:
        Ordered list of DiffEntry
    """
    return _default_extractor.extract(record)
