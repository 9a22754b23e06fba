"""
Command-line interface for the graph sync engine.

    graphsync sync --full
    graphsync sync --kind node-property --name status --name due
    graphsync sync --full --metrics-file /var/lib/node_exporter/graphsync.prom
    graphsync history [--json] [--limit N]
    graphsync mappings [--json]

Ctrl+C during a sync pauses immediately and cancels after the configured
grace period; a second Ctrl+C cancels at once.
"""

import argparse
import getpass
import json
import os
import signal
import sys
import time
from typing import Iterable, List, Optional

# Keep stdout clean for progress and JSON output
os.environ.setdefault("GRAPHSYNC_LOG_STDERR", "1")

from graphsync.shared.config import reload_config  # noqa: E402
from graphsync.shared.credentials import (  # noqa: E402
    CredentialProvider,
    SessionCredentialStore,
    SettingsCredentialProvider,
)
from graphsync.shared.observability import get_logger, setup_logging  # noqa: E402
from graphsync.shared.observability.metrics import (  # noqa: E402
    get_metrics,
    setup_metrics,
)
from graphsync.sync import (  # noqa: E402
    RunState,
    StateSlice,
    SyncEngine,
    SyncKind,
    SyncStatus,
)

logger = get_logger(__name__)


class ProgressUI:
    """Simple progress bar renderer for terminal output."""

    def __init__(self, json_mode: bool = False):
        self.json_mode = json_mode
        self.start_time = time.time()
        self._last_line = None

    def render(self, run: RunState) -> None:
        progress = run.progress
        if not run.running or progress.phase is None:
            return
        phase = progress.phase.value
        percent = progress.fraction * 100
        target = progress.current_target or ""
        elapsed = time.time() - self.start_time

        if self.json_mode:
            line = json.dumps(
                {
                    "phase": phase,
                    "current": progress.current,
                    "total": progress.total,
                    "percent": round(percent, 1),
                    "target": target,
                    "paused": run.paused,
                    "elapsed_seconds": round(elapsed, 1),
                }
            )
            if line != self._last_line:
                print(line, flush=True)
                self._last_line = line
            return

        bar_width = 30
        filled = int((percent / 100) * bar_width)
        bar = "█" * filled + "░" * (bar_width - filled)
        mins = int(elapsed // 60)
        secs = int(elapsed % 60)
        time_str = f"{mins}m{secs}s" if mins > 0 else f"{secs}s"
        state = " (paused)" if run.paused else ""

        sys.stdout.write(
            f"\r{phase:22} [{bar}] {percent:5.1f}% | {time_str:6} | {target[:40]}{state}"
        )
        sys.stdout.flush()

    def finish(self, entry: dict) -> None:
        if self.json_mode:
            print(json.dumps({"result": entry}, default=str), flush=True)
            return
        status = entry["status"]
        mark = "✓" if status == SyncStatus.COMPLETED.value and entry.get("success") else "✗"
        print(
            f"\n{mark} {entry['kind']} [{status}] {entry.get('message') or ''} "
            f"({entry.get('success_count', 0)} ok, {entry.get('error_count', 0)} errors)"
        )
        for error in entry.get("errors", [])[:10]:
            print(f"    {error['error_type']:16} {error['document']}: {error['error']}")
        remaining = len(entry.get("errors", [])) - 10
        if remaining > 0:
            print(f"    ... {remaining} more")


def build_credentials(settings, interactive: bool) -> CredentialProvider:
    if settings.neo4j_password:
        return SettingsCredentialProvider(settings)
    store = SessionCredentialStore(settings.neo4j_user)
    if interactive and sys.stdin.isatty():
        store.set_password(getpass.getpass(f"Neo4j password for {settings.neo4j_user}: "))
    return store


def _enqueue(engine: SyncEngine, args) -> List[str]:
    if args.full:
        return [item.id for item in engine.add_full_sync()]
    kind = SyncKind.parse(args.kind)
    ids = []
    for name in args.name:
        item = engine.add_selected_sync(kind, name)
        if item.id not in ids:
            ids.append(item.id)
    return ids


def write_metrics(path: str) -> None:
    """Write the registry in text exposition format (node_exporter textfile collector)"""
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "wb") as f:
        f.write(get_metrics())
    os.replace(tmp_path, path)
    logger.info("metrics_written", path=path)


def cmd_sync(args) -> int:
    config, settings = reload_config()
    credentials = build_credentials(settings, interactive=not args.json)
    engine = SyncEngine(
        config=config, settings=settings, credentials=credentials, autostart=False
    )
    setup_metrics(settings)
    ui = ProgressUI(json_mode=args.json)
    unsubscribe = engine.subscribe(StateSlice.RUN, ui.render)

    interrupts = {"count": 0}

    def signal_handler(sig, frame):
        interrupts["count"] += 1
        if interrupts["count"] == 1:
            grace = config.sync.cancel_grace_seconds
            print(
                f"\nPaused; cancelling in {grace:g}s (Ctrl+C again to cancel now)",
                file=sys.stderr,
            )
            engine.request_cancel()
        else:
            engine.cancel_now()

    previous = signal.signal(signal.SIGINT, signal_handler)
    try:
        item_ids = _enqueue(engine, args)
        engine.queue.start_processing()
        while not engine.wait_until_idle(timeout=0.5):
            pass
    finally:
        signal.signal(signal.SIGINT, previous)
        unsubscribe()

    entries = [e for e in engine.history_entries() if e["id"] in item_ids]
    for entry in reversed(entries):
        ui.finish(entry)

    if args.metrics_file:
        write_metrics(args.metrics_file)

    ok = all(
        e["status"] == SyncStatus.COMPLETED.value and e.get("success") for e in entries
    )
    return 0 if ok else 1


def cmd_history(args) -> int:
    from graphsync.sync import SyncHistory

    config, _ = reload_config()
    history = SyncHistory(config.sync.history_path, config.sync.history_max_entries)
    if args.json:
        print(json.dumps(history.entries(args.limit), indent=2, default=str))
        return 0

    items = history.items(args.limit)
    if not items:
        print("No sync history")
        return 0

    for item in items:
        print(
            f"{item.completed_at or '-':32} {item.kind.value:20} "
            f"{item.status.value:10} {item.success_count:>6} ok "
            f"{item.error_count:>6} err  {', '.join(item.names)}"
        )
    return 0


def _rows(items: Iterable, fields: Iterable[str]) -> List[dict]:
    return [{f: getattr(item, f) for f in fields} for item in items]


def cmd_mappings(args) -> int:
    config, _ = reload_config()
    mappings = config.mappings
    tables = {
        "node_properties": _rows(
            mappings.node_properties,
            ["property_name", "node_property_type", "node_property_name", "enabled"],
        ),
        "relationships": _rows(
            mappings.relationships,
            ["property_name", "relationship_type", "direction", "enabled"],
        ),
        "labels": _rows(mappings.labels, ["label_name", "type", "pattern", "enabled"]),
    }

    if args.json:
        print(json.dumps(tables, indent=2, default=lambda v: getattr(v, "value", str(v))))
        return 0

    for section, rows in tables.items():
        print(f"{section}:")
        if not rows:
            print("  (none)")
        for row in rows:
            values = [getattr(v, "value", v) for v in row.values()]
            print("  " + "  ".join(str(v) for v in values))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="graphsync",
        description="Mirror document front matter into Neo4j",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    sync_parser = subparsers.add_parser("sync", help="Queue and run sync items")
    target = sync_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--full", action="store_true", help="Sync every enabled mapping")
    target.add_argument(
        "--kind",
        choices=["node-property", "relationship", "label"],
        help="Kind of the selected names",
    )
    sync_parser.add_argument(
        "--name", action="append", default=[], help="Mapping or label name (repeatable)"
    )
    sync_parser.add_argument("--json", action="store_true", help="JSON output")
    sync_parser.add_argument(
        "--metrics-file", default=None, help="Write Prometheus metrics here when done"
    )

    history_parser = subparsers.add_parser("history", help="Show recent sync results")
    history_parser.add_argument("--limit", type=int, default=None, help="Max entries")
    history_parser.add_argument("--json", action="store_true", help="JSON output")

    mappings_parser = subparsers.add_parser("mappings", help="Show configured mappings")
    mappings_parser.add_argument("--json", action="store_true", help="JSON output")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.log_level or os.environ.get("LOG_LEVEL", "WARNING"))

    if args.command == "sync":
        if args.kind and not args.name:
            parser.error("--kind requires at least one --name")
        return cmd_sync(args)
    elif args.command == "history":
        return cmd_history(args)
    elif args.command == "mappings":
        return cmd_mappings(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
