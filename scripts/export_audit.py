#!/usr/bin/env python3
"""
Admin Audit Forensics Tool

Exports replay bundles from the admin and user audit trails and inspects
individual change records, with support for:
- Authenticated export through the Supabase audit RPCs
- Offline bundle building from exported row files
- Field-level diffs and undo resolution for a single record

Usage:
    ./scripts/export_audit.py export --token $ADMIN_JWT --date-range 7d --output-dir exports
    ./scripts/export_audit.py bundle --admin-rows admin.json --user-rows user.json
    ./scripts/export_audit.py diff --admin-rows admin.json --user-rows user.json --record-id evt-42
"""

import sys
import os
import argparse
import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.export import AuditExportHandler
from src.forensics import (
    ChangeRecord,
    DiffExtractor,
    ReplayBundleBuilder,
    UndoResolver,
    build_timeline_index,
    write_replay_bundle,
)
from src.forensics.models import ADMIN_UNDO_ACTION, EventSource
from src.forensics.presentation import (
    format_diff_value,
    resolve_action_presentation,
    resolve_secondary_facets,
)
from src.monitoring import get_metrics
from src.utils.config import load_export_config
from src.utils.correlation import setup_correlation_logging


class StructuredJSONFormatter(logging.Formatter):
    """JSON formatter with correlation ID support."""

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', None),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        # Add extra fields
        if hasattr(record, 'command'):
            log_data['command'] = record.command
        if hasattr(record, 'event_count'):
            log_data['event_count'] = record.event_count

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


# Configure the src package logger so library logs share the handlers
logger = logging.getLogger("src")


def configure_logging(json_logging: Optional[bool] = None, stream=None) -> logging.Logger:
    """
    Install a console or JSON handler on the src package logger.

    Args:
        json_logging: Emit JSON lines (defaults to JSON_LOGGING env var)
        stream: Output stream (defaults to stderr)

    Returns:
        The configured src logger
    """
    if json_logging is None:
        json_logging = os.getenv('JSON_LOGGING', 'false').lower() == 'true'

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream)
    if json_logging:
        handler.setFormatter(StructuredJSONFormatter())
    else:
        # Human-readable handler for console
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    setup_correlation_logging(logger)
    return logger


def load_rows(path: Optional[str]) -> List[Dict[str, Any]]:
    """
    Load exported audit rows from a JSON file.

    Accepts a bare list of rows or an object with a "rows" list.

    Args:
        path: JSON file path (None yields no rows)

    Returns:
        List of row mappings
    """
    if not path:
        return []

    with open(path, 'r', encoding='utf-8') as f:
        payload = json.load(f)

    if isinstance(payload, dict):
        payload = payload.get("rows", [])
    if not isinstance(payload, list):
        raise ValueError(f"{path} must contain a list of audit rows")

    rows = [row for row in payload if isinstance(row, dict)]
    logger.info(f"Loaded {len(rows)} rows from {path}")
    return rows


def load_records(admin_path: Optional[str], user_path: Optional[str]) -> Dict[str, List[ChangeRecord]]:
    return {
        EventSource.ADMIN.value: [
            ChangeRecord.from_row(row, EventSource.ADMIN.value) for row in load_rows(admin_path)
        ],
        EventSource.USER.value: [
            ChangeRecord.from_row(row, EventSource.USER.value) for row in load_rows(user_path)
        ],
    }


def run_export(args) -> int:
    """Run an authenticated export against Supabase."""
    config = load_export_config(supabase_url=args.supabase_url, anon_key=args.anon_key)
    token = args.token or os.getenv("AUDIT_ADMIN_TOKEN", "")

    body = {
        "search": args.search,
        "dateRange": args.date_range,
        "actionFilters": args.action or [],
        "targetFilters": args.target or [],
        "actorFilters": args.actor or [],
        "eventIds": args.event_id or [],
        "sourceLimit": args.source_limit,
    }

    handler = AuditExportHandler(config, metrics=get_metrics())
    response = handler.handle("POST", {"Authorization": f"Bearer {token}"}, body)

    if not response.ok:
        logger.error(f"Export failed ({response.status}): {response.payload.get('error')}")
        print(json.dumps(response.payload, indent=2))
        return 1

    bundle = response.payload["data"]["bundle"]
    output_dir = args.output_dir or (config.export_dir if config else None)
    file_name = f"admin-audit-replay-{bundle['generated_at'][:10]}.json"

    if not write_replay_bundle(bundle, file_name, output_dir):
        print(json.dumps(response.payload, indent=2))

    print(json.dumps({
        "export_audit_id": response.payload["data"]["export_audit_id"],
        "totals": bundle["totals"],
    }, indent=2))
    return 0


def run_bundle(args) -> int:
    """Build a replay bundle from exported row files."""
    records = load_records(args.admin_rows, args.user_rows)
    events = records[EventSource.ADMIN.value] + records[EventSource.USER.value]

    metrics = get_metrics()
    build = metrics.time_bundle_build(ReplayBundleBuilder().build)
    bundle = build(events, filters={"source": "offline"})

    if args.output_dir:
        file_name = f"admin-audit-replay-{bundle['generated_at'][:10]}.json"
        write_replay_bundle(bundle, file_name, args.output_dir)
        print(json.dumps(bundle["totals"], indent=2))
    else:
        print(json.dumps(bundle, indent=2, default=str))

    return 0


def run_diff(args) -> int:
    """Print the diff of one record, resolving undo records through their chain."""
    records = load_records(args.admin_rows, args.user_rows)
    index = build_timeline_index(records[EventSource.ADMIN.value], records[EventSource.USER.value])

    entry = index.get(args.record_id)
    if entry is None:
        logger.error(f"Record {args.record_id} not found")
        return 1

    record = entry.record
    metrics = get_metrics()
    extractor = DiffExtractor()

    if entry.kind == EventSource.ADMIN.value and record.normalized_action == ADMIN_UNDO_ACTION:
        entries = UndoResolver(extractor).resolve_inverted_diff(record, index)
        metrics.record_undo_resolution(entries is not None)
        entries = entries or []
    else:
        entries = extractor.extract(record)

    metrics.record_diff(record.action, len(entries))

    presentation = resolve_action_presentation(record.action)
    facets = [facet.label for facet in resolve_secondary_facets(record)]

    print(json.dumps({
        "id": record.id,
        "source": entry.kind,
        "action": record.action,
        "label": presentation.label,
        "facets": facets,
        "changes": [
            {
                "key": diff.key,
                "before": format_diff_value(diff, diff.before_value),
                "after": format_diff_value(diff, diff.after_value),
            }
            for diff in entries
        ],
    }, indent=2, ensure_ascii=False))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Admin Audit Forensics Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Export command
    export_parser = subparsers.add_parser("export", help="Export a replay bundle from Supabase")
    export_parser.add_argument("--token", help="Admin bearer token (defaults to AUDIT_ADMIN_TOKEN)")
    export_parser.add_argument("--supabase-url", help="Supabase project URL")
    export_parser.add_argument("--anon-key", help="Supabase anon key")
    export_parser.add_argument("--search", default="", help="Search text")
    export_parser.add_argument("--date-range", choices=["7d", "30d", "90d", "all"], default="30d")
    export_parser.add_argument("--action", nargs="+", help="Action codes to include")
    export_parser.add_argument("--target", nargs="+", help="Target types to include")
    export_parser.add_argument("--actor", nargs="+", choices=["admin", "user"], help="Audit trails to include")
    export_parser.add_argument("--event-id", nargs="+", help="Event ids to include")
    export_parser.add_argument("--source-limit", type=int, default=500, help="Rows per audit trail")
    export_parser.add_argument("--output-dir", help="Directory for the bundle file")

    # Bundle command
    bundle_parser = subparsers.add_parser("bundle", help="Build a bundle from exported row files")
    bundle_parser.add_argument("--admin-rows", help="JSON file with admin audit rows")
    bundle_parser.add_argument("--user-rows", help="JSON file with user change rows")
    bundle_parser.add_argument("--output-dir", help="Directory for the bundle file")

    # Diff command
    diff_parser = subparsers.add_parser("diff", help="Show the field-level diff of one record")
    diff_parser.add_argument("--admin-rows", help="JSON file with admin audit rows")
    diff_parser.add_argument("--user-rows", help="JSON file with user change rows")
    diff_parser.add_argument("--record-id", required=True, help="Record id")

    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--pushgateway", help="Push metrics to this Pushgateway after the run")
    parser.add_argument("--metrics-port", type=int, help="Serve metrics over HTTP on this port during the run")

    args = parser.parse_args(argv)

    configure_logging()
    if args.verbose:
        logger.setLevel(logging.DEBUG)

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "export": run_export,
        "bundle": run_bundle,
        "diff": run_diff,
    }

    if args.metrics_port:
        get_metrics().start_server(args.metrics_port)

    try:
        result = commands[args.command](args)

        if args.pushgateway:
            get_metrics().push(args.pushgateway, job_name="audit_forensics")

        return result

    except Exception as e:
        logger.error(f"Error: {e}", exc_info=args.verbose)
        return 1


if __name__ == "__main__":
    sys.exit(main())
