"""
Forensics Module for Admin Audit Review

This module reconciles the admin audit trail and the user change trail,
extracts field-level diffs, resolves undo chains, and builds replay bundles.

Main components:
- differ: Field-level diff extraction from change records
- undo: Undo chain tracing and diff inversion
- replay: Deterministic replay bundle construction

Usage:
    from src.forensics import ChangeRecord, DiffExtractor, UndoResolver, ReplayBundleBuilder

    # Diff a single record
    extractor = DiffExtractor()
    entries = extractor.extract(record)

    # Resolve what an undo record applied
    resolver = UndoResolver(extractor)
    inverted = resolver.resolve_inverted_diff(undo_record, timeline_by_id)

    # Build an export bundle
    bundle = ReplayBundleBuilder().build(records, filters={"date_range": "30d"})
"""

from src.forensics.models import ChangeRecord, DiffEntry, TimelineEntry, build_timeline_index
from src.forensics.differ import DiffExtractor, extract_diff_entries
from src.forensics.undo import UndoResolver, resolve_inverted_diff, resolve_undo_source_id
from src.forensics.replay import ReplayBundleBuilder, build_replay_bundle, write_replay_bundle

__all__ = [
    "ChangeRecord",
    "DiffEntry",
    "TimelineEntry",
    "build_timeline_index",
    "DiffExtractor",
    "extract_diff_entries",
    "UndoResolver",
    "resolve_inverted_diff",
    "resolve_undo_source_id",
    "ReplayBundleBuilder",
    "build_replay_bundle",
    "write_replay_bundle",
]

__version__ = "1.0.0"
