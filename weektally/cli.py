"""
WeekTally: Command line entry point.

Thin shell over the tracker service and the reconciler; all output is JSON
so it can be scripted.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from typing import Any

from weektally.config import settings
from weektally.core.clock import SystemClock
from weektally.core.errors import WeekTallyError
from weektally.core.periods import WEEKDAYS
from weektally.core.reconciler import Reconciler
from weektally.core.tracker_service import PREF_WEEK_START_DAY, TrackerService
from weektally.core.transfer import read_import_file
from weektally.data.db import RecordStore
from weektally.data.state_slot import CurrentStateSlot, load_or_create_device_id

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass
class _Context:
    store: RecordStore
    service: TrackerService
    reconciler: Reconciler


def _build_context() -> _Context:
    clock = SystemClock()
    store = RecordStore(settings.DATABASE_PATH)
    service = TrackerService(
        store=store,
        state_slot=CurrentStateSlot(settings.STATE_PATH),
        clock=clock,
        device_id=load_or_create_device_id(settings.DEVICE_ID_PATH),
        default_week_start=settings.WEEK_START_DAY,
    )
    return _Context(store, service, Reconciler(service, clock, app_name=settings.APP_NAME))


def _print_json(obj: Any) -> None:
    sys.stdout.write(json.dumps(obj, ensure_ascii=False, indent=2) + "\n")


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_status(args: argparse.Namespace, ctx: _Context) -> None:
    _print_json({"ok": True, **ctx.service.stats()})


def _cmd_export(args: argparse.Namespace, ctx: _Context) -> None:
    path = ctx.reconciler.export_to_file(args.path)
    _print_json({"ok": True, "path": str(path)})


def _cmd_import(args: argparse.Namespace, ctx: _Context) -> None:
    payload = read_import_file(args.path)
    plan = ctx.reconciler.plan(payload)
    if not args.yes:
        sys.stderr.write(
            f"File: {args.path}\n"
            f"Exported: {plan.export_date or 'unknown date'} by {plan.exported_by}\n"
            f"Import type: {plan.classification.value.replace('_', ' ').lower()}\n"
            f"{plan.action}.\n"
            "This cannot be undone. Proceed? [y/N] "
        )
        if input().strip().lower() not in ("y", "yes"):
            logger.info("Import cancelled by user")
            _print_json({"ok": False, "cancelled": True})
            return

    result = ctx.reconciler.apply(payload)
    _print_json({
        "ok": True,
        "classification": result.classification.value,
        "message": result.message,
        "importedCount": result.imported_count,
        "preferencesImported": result.preferences_imported,
        "skipped": [e.to_dict() for e in result.skipped],
    })


def _cmd_count(args: argparse.Namespace, ctx: _Context) -> None:
    state = ctx.service.record_count(args.category, delta=args.delta, day=args.day)
    day = args.day or state.selected_view_date
    _print_json({
        "ok": True,
        "day": day,
        "count": state.daily_counts.get(day, {}).get(args.category, 0),
        "weeklyCounts": state.weekly_counts,
    })


def _cmd_week_start(args: argparse.Namespace, ctx: _Context) -> None:
    ctx.service.save_preference(PREF_WEEK_START_DAY, args.day)
    _print_json({"ok": True, "weekStartDay": args.day})


def _cmd_rollover(args: argparse.Namespace, ctx: _Context) -> None:
    _print_json({"ok": True, "reset": ctx.service.check_rollover()})


def _cmd_changes(args: argparse.Namespace, ctx: _Context) -> None:
    entries = ctx.service.pending_changes(args.since)
    _print_json({"ok": True, "changes": [entry.to_dict() for entry in entries]})


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="weektally", description="Local-first weekly tracker"
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("status", help="Show store counts and the current period").set_defaults(
        func=_cmd_status
    )

    ex = sub.add_parser("export", help="Write all data to a JSON export file")
    ex.add_argument("path")
    ex.set_defaults(func=_cmd_export)

    im = sub.add_parser("import", help="Merge a JSON export file into local data")
    im.add_argument("path")
    im.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    im.set_defaults(func=_cmd_import)

    cnt = sub.add_parser("count", help="Add to a category's count")
    cnt.add_argument("category")
    cnt.add_argument("--delta", type=int, default=1, help="May be negative (default 1)")
    cnt.add_argument("--day", help="YYYY-MM-DD within the current period")
    cnt.set_defaults(func=_cmd_count)

    ws = sub.add_parser("week-start", help="Set the first day of the week")
    ws.add_argument("day", choices=list(WEEKDAYS))
    ws.set_defaults(func=_cmd_week_start)

    sub.add_parser("rollover", help="Apply a pending daily or weekly reset").set_defaults(
        func=_cmd_rollover
    )

    ch = sub.add_parser("changes", help="List change-log entries recorded for sync")
    ch.add_argument("--since", type=int, default=0, help="Only entries at or after this timestamp (ms)")
    ch.set_defaults(func=_cmd_changes)

    return p


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=settings.LOG_LEVEL, format=LOG_FORMAT)
    args = _build_parser().parse_args(argv)
    ctx = _build_context()
    try:
        args.func(args, ctx)
    except WeekTallyError as exc:
        logger.error("%s failed: %s", args.cmd, exc)
        _print_json({"ok": False, "error": exc.to_dict()})
        return 1
    except ValueError as exc:
        _print_json({"ok": False, "error": {"code": "INVALID_ARGUMENT", "message": str(exc)}})
        return 2
    finally:
        ctx.store.close()
    return 0
