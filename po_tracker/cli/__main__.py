from __future__ import annotations

import argparse
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from ..db.connection import db_connection, db_disabled, load_env_file
from ..db.order_store import OrderNotFoundError, OrderStore, StoreError
from ..excel.reader import WorkbookParseError
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import log_summary, setup_logging
from ..models.config_models import TrackerConfig
from ..models.order import PersistedOrder
from ..report.follow_up import FollowUpReport, ReportError
from ..services.dashboard import group_by_created, search_orders
from ..services.importer import BatchImportError, import_workbooks
from ..services.reminder import ReminderError, ReminderScheduler
from ..services.summary import render_summary_line
from ..services.upload import UploadSession

"""CLI entrypoint.

    po-tracker [--config PATH] [--debug] <command> ...

Commands: inspect, import, list, show, update, delete, report, remind.

Exit codes: 0 success, 1 fatal (config / store / unreadable input / unknown
order), 2 partial failure (some workbooks failed to import).
"""

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2


class _StoreUnavailable(Exception):
    pass


@contextmanager
def _open_store(cfg: TrackerConfig, *, required: bool) -> Iterator[OrderStore | None]:
    """Yield an OrderStore, or None in mock mode (DISABLE_DB_CONNECT=1)."""
    if db_disabled():
        if required:
            raise _StoreUnavailable("database disabled via DISABLE_DB_CONNECT=1")
        yield None
        return
    with db_connection(cfg.database) as conn:
        store = OrderStore(conn, table=cfg.database.table, canonical_fields=cfg.columns.canonical_fields)
        store.ensure_schema()
        yield store


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="po-tracker", description="Purchase order tracker")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("inspect", help="Show normalized rows of a workbook without saving")
    s.add_argument("file", type=Path)

    s = sub.add_parser("import", help="Import workbooks (files or directories)")
    s.add_argument("paths", type=Path, nargs="+")
    s.add_argument("--only", type=int, nargs="+", metavar="ROW_ID",
                   help="import only these row ids (see inspect)")

    s = sub.add_parser("list", help="List stored orders grouped by import batch")
    s.add_argument("--search", default="", help="case-insensitive text filter")

    s = sub.add_parser("show", help="Show one order")
    s.add_argument("id")

    s = sub.add_parser("update", help="Update delivery / status / dispatch details")
    s.add_argument("id")
    s.add_argument("--status")
    s.add_argument("--delivery-date")
    s.add_argument("--delivery-time")
    s.add_argument("--remarks")
    s.add_argument("--transporter")
    s.add_argument("--cn-number")

    s = sub.add_parser("delete", help="Delete one order")
    s.add_argument("id")

    s = sub.add_parser("report", help="Write the follow-up PDF report")
    s.add_argument("ids", nargs="+")
    s.add_argument("--from", dest="start", default=None, help="period start")
    s.add_argument("--to", dest="end", default=None, help="period end")
    s.add_argument("--out", type=Path, default=None, help="output directory")

    s = sub.add_parser("remind", help="Wait for a one-time delivery reminder (this session only)")
    s.add_argument("id")
    s.add_argument("--at", required=True, help="ISO datetime, e.g. 2024-12-12T09:30")
    return p


def _print_order(order: PersistedOrder) -> None:
    for key, value in order.to_dict().items():
        print(f"  {key}: {value}")


def _cmd_inspect(cfg: TrackerConfig, args: argparse.Namespace, logger: Any) -> int:
    session = UploadSession(cfg.columns, cfg.header_row_offset)
    try:
        orders = session.load(args.file)
    except WorkbookParseError as e:
        logger.error(str(e))
        return EXIT_FATAL
    print(f"FILE: {args.file.name} rows={session.parsed_rows} kept={len(orders)} dropped={session.dropped_rows}")
    for o in orders:
        cells = " | ".join(f"{k}={v}" for k, v in o.fields.items())
        print(f"  [{o.temp_id}] {cells}")
    return EXIT_SUCCESS


def _cmd_import(cfg: TrackerConfig, args: argparse.Namespace, logger: Any) -> int:
    if args.only and len(args.paths) != 1:
        logger.error("--only requires exactly one workbook")
        return EXIT_FATAL
    with _open_store(cfg, required=False) as store:
        mode = "live" if store is not None else "mock"
        logger.debug("import mode=%s", mode)
        try:
            result = import_workbooks(args.paths, cfg, store=store, only=args.only,
                                      error_log=ErrorLogBuffer())
        except BatchImportError as e:
            logger.error(str(e))
            return EXIT_FATAL
    logger.info(f"mode={mode} saved_rows={result.saved_rows}")
    log_summary(render_summary_line(result)[len("SUMMARY "):])
    if result.failed_files > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS


def _cmd_list(store: OrderStore, args: argparse.Namespace) -> int:
    orders = search_orders(store.list(), args.search)
    if not orders:
        print("no orders found")
        return EXIT_SUCCESS
    for label, group in group_by_created(orders):
        print(f"== {label} ({len(group)})")
        for o in group:
            print(f"  {o.id}  {o.order_date or '-'}  {o.vendor_name or '-'}  [{o.status}]")
    return EXIT_SUCCESS


def _require(store: OrderStore, order_id: str) -> PersistedOrder:
    order = store.get(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


def _cmd_update(store: OrderStore, args: argparse.Namespace, logger: Any) -> int:
    changes = {
        "status": args.status,
        "deliveryDate": args.delivery_date,
        "deliveryTime": args.delivery_time,
        "remarks": args.remarks,
        "transporterName": args.transporter,
        "cnNumber": args.cn_number,
    }
    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes:
        logger.error("nothing to update")
        return EXIT_FATAL
    try:
        store.update(args.id, changes)
    except ValueError as e:
        logger.error(str(e))
        return EXIT_FATAL
    logger.info(f"order {args.id} updated: {', '.join(sorted(changes))}")
    return EXIT_SUCCESS


def _cmd_report(cfg: TrackerConfig, store: OrderStore, args: argparse.Namespace, logger: Any) -> int:
    orders = [_require(store, i) for i in args.ids]
    report_cfg = cfg.report
    if args.out is not None:
        report_cfg = replace(report_cfg, output_directory=str(args.out))
    try:
        path = FollowUpReport(report_cfg, timezone=cfg.timezone).write(orders, args.start, args.end)
    except ReportError as e:
        buf = ErrorLogBuffer()
        buf.record(file=",".join(args.ids), row=-1, error_type="REPORT_ERROR", message=str(e))
        buf.flush()
        logger.error(str(e))
        return EXIT_FATAL
    print(path)
    return EXIT_SUCCESS


def _cmd_remind(store: OrderStore, args: argparse.Namespace, logger: Any) -> int:
    order = _require(store, args.id)
    try:
        when = datetime.fromisoformat(args.at)
    except ValueError:
        logger.error(f"invalid --at value: {args.at}")
        return EXIT_FATAL
    if when.tzinfo is None:
        when = when.astimezone()  # ローカル時刻として解釈

    fired = threading.Event()

    def _notify(title: str, body: str) -> None:
        logger.warning(f"{title}: {body}")
        fired.set()

    scheduler = ReminderScheduler(notify=_notify)
    try:
        reminder = scheduler.schedule(order, when)
    except ReminderError as e:
        logger.error(str(e))
        return EXIT_FATAL
    logger.info("reminders are not persisted; keep this process running until it fires")
    try:
        fired.wait((reminder.when - datetime.now(reminder.when.tzinfo)).total_seconds() + 5)
    except KeyboardInterrupt:
        scheduler.cancel_all()
        logger.info("reminder cancelled")
        return EXIT_FATAL
    return EXIT_SUCCESS if fired.is_set() else EXIT_FATAL


def _dispatch(cfg: TrackerConfig, args: argparse.Namespace, logger: Any) -> int:
    if args.command == "inspect":
        return _cmd_inspect(cfg, args, logger)
    if args.command == "import":
        return _cmd_import(cfg, args, logger)

    with _open_store(cfg, required=True) as store:
        assert store is not None
        if args.command == "list":
            return _cmd_list(store, args)
        if args.command == "show":
            order = _require(store, args.id)
            print(f"ORDER {order.id}")
            _print_order(order)
            return EXIT_SUCCESS
        if args.command == "update":
            return _cmd_update(store, args, logger)
        if args.command == "delete":
            store.delete(args.id)
            logger.info(f"order {args.id} deleted")
            return EXIT_SUCCESS
        if args.command == "report":
            return _cmd_report(cfg, store, args, logger)
        if args.command == "remind":
            return _cmd_remind(store, args, logger)
    raise AssertionError(f"unhandled command {args.command}")  # pragma: no cover


def main(argv: list[str] | None = None) -> int:
    # 空リスト [] が渡された場合に sys.argv が混入しないよう None のときのみ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _build_parser().parse_args(argv)
    logger = setup_logging(debug=args.debug)
    if args.debug:
        logger.debug("debug mode enabled")

    # .env を最優先で読み込む (DB 接続パラメータ優先順位保証)
    load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        return _dispatch(cfg, args, logger)
    except OrderNotFoundError as e:
        logger.error(str(e))
        return EXIT_FATAL
    except (StoreError, _StoreUnavailable) as e:
        logger.error(f"store: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
