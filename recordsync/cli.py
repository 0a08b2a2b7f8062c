"""
Record Sync command-line tool

Stages invoice and quote extracts and reconciles them into the master
record set, with support for:
- Previewing an extract without touching the database
- Upload with automatic sync, or staging and syncing separately
- Dry-run syncs listing the DELETE / INSERT actions
- Follow-up annotations, CSV export and status reporting

Usage:
    recordsync init-db
    recordsync preview past_due_2024-05-01.xlsx
    recordsync upload past_due_2024-05-01.xlsx
    recordsync sync --domain invoices --dry-run
    recordsync annotate --domain invoices --key 1001 --note "Called" --action-date 05/03/2024
    recordsync export --domain quotes --output-dir exports/
    recordsync report --domain invoices
    recordsync alerts --output alert_rules.yml
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from recordsync.config import Settings, load_settings
from recordsync.domains import DOMAINS
from recordsync.exceptions import RecordSyncError, StoreError, ValidationError
from recordsync.monitoring.alerts import AlertRuleGenerator
from recordsync.monitoring.metrics import MetricsCollector, get_metrics_collector
from recordsync.pipeline import RecordSyncPipeline
from recordsync.store import create_store
from recordsync.utils.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="recordsync",
        description="Staged reconciliation of invoice and quote extracts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument("--config", help="YAML config file (default: $RECORDSYNC_CONFIG)")
    parser.add_argument("--store", choices=["postgres", "memory"], help="Override the configured store")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")
    domains = sorted(DOMAINS)

    init_parser = subparsers.add_parser("init-db", help="Create master and staging tables")
    init_parser.add_argument("--domain", choices=domains, action="append", help="Domain (repeatable, default all)")

    preview_parser = subparsers.add_parser("preview", help="Parse an extract without storing it")
    preview_parser.add_argument("file", help="Extract file (.xlsx, .xlsm, .csv)")
    preview_parser.add_argument("--domain", choices=domains, help="Expected domain (default: from file name)")
    preview_parser.add_argument("--limit", type=int, default=20, help="Rows to show")

    upload_parser = subparsers.add_parser("upload", help="Stage an extract and sync master")
    upload_parser.add_argument("file", help="Extract file (.xlsx, .xlsm, .csv)")
    upload_parser.add_argument("--domain", choices=domains, help="Expected domain (default: from file name)")
    upload_parser.add_argument("--no-sync", action="store_true", help="Only replace staging")

    stage_parser = subparsers.add_parser("stage", help="Replace staging from a JSON array of rows")
    stage_parser.add_argument("--domain", choices=domains, required=True)
    stage_parser.add_argument("--payload", required=True, help="JSON file, or - for stdin")

    sync_parser = subparsers.add_parser("sync", help="Reconcile master against staging")
    sync_parser.add_argument("--domain", choices=domains, required=True)
    sync_parser.add_argument("--dry-run", action="store_true", help="Show actions without applying them")

    annotate_parser = subparsers.add_parser("annotate", help="Set note and action date on a record")
    annotate_parser.add_argument("--domain", choices=domains, required=True)
    annotate_parser.add_argument("--key", required=True, help="Identity key of the record")
    annotate_parser.add_argument("--note", default="", help="Follow-up note")
    annotate_parser.add_argument("--action-date", default=None, help="Follow-up date (empty clears it)")

    export_parser = subparsers.add_parser("export", help="Export master as CSV")
    export_parser.add_argument("--domain", choices=domains, required=True)
    export_parser.add_argument("--output-dir", help="Write a dated file here instead of stdout")

    report_parser = subparsers.add_parser("report", help="Show master/staging status")
    report_parser.add_argument("--domain", choices=domains, required=True)

    alerts_parser = subparsers.add_parser("alerts", help="Generate Prometheus alert rules")
    alerts_parser.add_argument("--output", help="YAML file to write (default: stdout)")

    return parser


def build_metrics(settings: Settings) -> MetricsCollector:
    """Metrics collector, serving over HTTP when a port is configured."""
    if settings.metrics_port:
        collector = get_metrics_collector(port=settings.metrics_port)
        collector.start_server()
        return collector
    return MetricsCollector()


def run_command(args: argparse.Namespace, pipeline: RecordSyncPipeline) -> Any:
    """
    Execute one subcommand.

    Returns:
        JSON-serializable result, or a string to print as-is
    """
    if args.command == "init-db":
        return {"initialized": pipeline.init_db(args.domain)}

    if args.command == "preview":
        return pipeline.preview(args.file, domain=args.domain, limit=args.limit)

    if args.command == "upload":
        return pipeline.upload(args.file, domain=args.domain, sync=not args.no_sync)

    if args.command == "stage":
        payload = _read_payload(args.payload)
        return {"domain": args.domain, "staged": pipeline.stage(args.domain, payload)}

    if args.command == "sync":
        return pipeline.sync(args.domain, dry_run=args.dry_run).to_dict()

    if args.command == "annotate":
        pipeline.annotate(args.domain, args.key, args.note, args.action_date)
        return {"domain": args.domain, "key": args.key, "updated": True}

    if args.command == "export":
        if args.output_dir:
            path = pipeline.export(args.domain, directory=args.output_dir)
            return {"domain": args.domain, "file": str(path)}
        return pipeline.export(args.domain)

    if args.command == "report":
        return pipeline.report(args.domain)

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        settings = load_settings(args.config)
    except RecordSyncError as e:
        configure_logging(json_logging=args.json_logs)
        logger.error(f"Configuration error: {e}")
        return 1

    if args.store:
        settings.store = args.store

    configure_logging(
        level=logging.DEBUG if args.verbose else settings.log_level,
        json_logging=args.json_logs or settings.json_logging
    )

    if args.command == "alerts":
        generator = AlertRuleGenerator()
        if args.output:
            generator.export_to_yaml(args.output)
            _emit(generator.get_alert_summary())
        else:
            _emit(generator.to_yaml())
        return 0

    store = create_store(settings)
    pipeline = RecordSyncPipeline(store, metrics=build_metrics(settings))

    try:
        with store:
            _emit(run_command(args, pipeline))
        return 0

    except StoreError as e:
        logger.error(f"Store error during {e.phase or 'unknown'} phase: {e}", exc_info=args.verbose)
        _emit(e.to_dict())
        return 1

    except RecordSyncError as e:
        logger.error(f"Error: {e}", exc_info=args.verbose)
        _emit({"error": str(e)})
        return 1


def _read_payload(source: str) -> Any:
    try:
        if source == "-":
            return json.load(sys.stdin)
        with open(Path(source), "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"Cannot read staging payload {source}: {e}") from e


def _emit(result: Any) -> None:
    if isinstance(result, str):
        sys.stdout.write(result)
    else:
        print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    sys.exit(main())
