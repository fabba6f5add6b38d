"""
Undo Resolver for Audit Forensics

Resolves admin undo records back to the user change they reverted and
produces the inverse diff. Undo records point at their source either through
structured metadata (undo_source_event_id / source_event_id) or through a
legacy "Audit undo <id>" label. Chains of undos are walked hop by hop, each
admin undo layer flipping the direction of the diff once.
"""

import logging
import re
from typing import List, Mapping, Optional, Set

from src.forensics.differ import DiffExtractor
from src.forensics.models import (
    ADMIN_UNDO_ACTION,
    ChangeRecord,
    DiffEntry,
    EventSource,
    TimelineEntry,
    as_record,
    as_text,
)

logger = logging.getLogger(__name__)

UNDO_LABEL_PATTERN = re.compile(r"^Audit undo\s+([A-Za-z0-9_-]+)$")

MAX_UNDO_CHAIN_DEPTH = 10

TimelineIndex = Mapping[str, TimelineEntry]


def resolve_undo_source_id(record: ChangeRecord) -> Optional[str]:
    """
    Find the id of the event an undo record reverted.

    Args:
        record: Admin undo record

    Returns:
        Source event id, or None if it cannot be traced
    """
    metadata = as_record(record.metadata)

    explicit = as_text(metadata.get("undo_source_event_id")) or as_text(metadata.get("source_event_id"))
    if explicit:
        return explicit

    label = as_text(metadata.get("label"))
    if not label:
        return None

    match = UNDO_LABEL_PATTERN.match(label)
    return match.group(1) if match else None


def resolve_undo_root_source_id(record: ChangeRecord) -> Optional[str]:
    """Id of the original user event at the bottom of an undo chain, if recorded."""
    metadata = as_record(record.metadata)
    return as_text(metadata.get("undo_root_source_event_id")) or as_text(metadata.get("root_source_event_id"))


def resolve_undo_parity(record: ChangeRecord) -> Optional[int]:
    """
    Read the explicit undo parity recorded on an undo record.

    Parity 1 means the record reverts the root change, 0 means it
    re-applies it.

    Args:
        record: Admin undo record

    Returns:
        0, 1, or None when absent or invalid
    """
    raw = as_record(record.metadata).get("undo_parity")

    if isinstance(raw, bool):
        return None

    if isinstance(raw, (int, float)):
        try:
            normalized = int(raw)
        except (OverflowError, ValueError):
            return None
        return normalized if normalized in (0, 1) else None

    if isinstance(raw, str):
        match = re.match(r"^\s*([+-]?\d+)", raw)
        if match and int(match.group(1)) in (0, 1):
            return int(match.group(1))

    return None


class UndoResolver:
    """
    Resolves undo records against an index of known timeline records.

    The index maps record id -> TimelineEntry(kind, record) and is treated
    as read-only. A partial index makes resolution report None instead of
    failing.
    """

    def __init__(
        self,
        extractor: Optional[DiffExtractor] = None,
        max_depth: int = MAX_UNDO_CHAIN_DEPTH
    ):
        """
        Initialize the undo resolver.

        Args:
            extractor: Diff extractor used on the source user record
            max_depth: Maximum number of hops followed through an undo chain
        """
        self.extractor = extractor or DiffExtractor()
        self.max_depth = max_depth
        logger.debug(f"Initialized UndoResolver with max depth {max_depth}")

    def resolve_chain_parity(
        self,
        record: ChangeRecord,
        timeline_by_id: TimelineIndex
    ) -> Optional[int]:
        """
        Parity of an undo record, explicit or derived from its chain.

        Args:
            record: Admin undo record
            timeline_by_id: Index of known records

        Returns:
            0, 1, or None if the chain cannot be traced
        """
        return self._chain_parity(record, timeline_by_id, set(), 0)

    def _chain_parity(
        self,
        record: ChangeRecord,
        timeline_by_id: TimelineIndex,
        visited: Set[str],
        depth: int
    ) -> Optional[int]:
        explicit = resolve_undo_parity(record)
        if explicit is not None:
            return explicit

        if record.id in visited or depth >= self.max_depth:
            return None
        visited.add(record.id)

        source_id = resolve_undo_source_id(record)
        if not source_id:
            return None

        source = timeline_by_id.get(source_id)
        if source is None:
            return None
        if source.kind == EventSource.USER.value:
            return 1
        if source.record.normalized_action != ADMIN_UNDO_ACTION:
            return None

        source_parity = self._chain_parity(source.record, timeline_by_id, visited, depth + 1)
        if source_parity is None:
            return None
        return (source_parity + 1) % 2

    def resolve_inverted_diff(
        self,
        undo_record: ChangeRecord,
        timeline_by_id: TimelineIndex
    ) -> Optional[List[DiffEntry]]:
        """
        Build the diff an undo record applied.

        Args:
            undo_record: Admin undo record
            timeline_by_id: Index of known admin and user records

        Returns:
            Diff entries in the direction the undo applied them, or None
            when the source cannot be traced to a user record with a
            non-empty diff
        """
        root_entries = self._resolve_from_root(undo_record, timeline_by_id)
        if root_entries is not None:
            return root_entries

        source_id = resolve_undo_source_id(undo_record)
        if not source_id:
            logger.debug(f"Undo record {undo_record.id} has no traceable source")
            return None

        source_entries = self._resolve_entry_diff(source_id, timeline_by_id, {undo_record.id}, 1)
        if not source_entries:
            return None

        return [entry.inverted() for entry in source_entries]

    def _resolve_from_root(
        self,
        undo_record: ChangeRecord,
        timeline_by_id: TimelineIndex
    ) -> Optional[List[DiffEntry]]:
        root_id = resolve_undo_root_source_id(undo_record)
        if not root_id:
            return None

        parity = self.resolve_chain_parity(undo_record, timeline_by_id)
        if parity is None:
            return None

        root = timeline_by_id.get(root_id)
        if root is None or root.kind != EventSource.USER.value:
            return None

        root_entries = self.extractor.extract(root.record)
        if not root_entries:
            return None

        if parity == 1:
            return [entry.inverted() for entry in root_entries]
        return root_entries

    def _resolve_entry_diff(
        self,
        entry_id: str,
        timeline_by_id: TimelineIndex,
        visited: Set[str],
        depth: int
    ) -> Optional[List[DiffEntry]]:
        """
        Diff of the record with the given id, as that record applied it.

        User records are diffed directly. Admin undo records are resolved
        through their own source and inverted.
        """
        if depth > self.max_depth:
            logger.warning(f"Undo chain exceeded {self.max_depth} hops at {entry_id}")
            return None

        if entry_id in visited:
            logger.warning(f"Undo chain cycle detected at {entry_id}")
            return None
        visited.add(entry_id)

        source = timeline_by_id.get(entry_id)
        if source is None:
            logger.debug(f"Undo source {entry_id} not present in timeline index")
            return None

        if source.kind == EventSource.USER.value:
            entries = self.extractor.extract(source.record)
            return entries or None

        if source.record.normalized_action != ADMIN_UNDO_ACTION:
            return None

        nested_id = resolve_undo_source_id(source.record)
        if not nested_id:
            return None

        nested_entries = self._resolve_entry_diff(nested_id, timeline_by_id, visited, depth + 1)
        if not nested_entries:
            return None

        return [entry.inverted() for entry in nested_entries]


_default_resolver = UndoResolver()


def resolve_inverted_diff(
    undo_record: ChangeRecord,
    timeline_by_id: TimelineIndex
) -> Optional[List[DiffEntry]]:
    """Resolve an undo record with the default resolver."""
    return _default_resolver.resolve_inverted_diff(undo_record, timeline_by_id)


def resolve_chain_parity(
    undo_record: ChangeRecord,
    timeline_by_id: TimelineIndex
) -> Optional[int]:
    """Resolve undo parity with the default resolver."""
    return _default_resolver.resolve_chain_parity(undo_record, timeline_by_id)
