# solis_backfill/main.py

from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
import json
import signal
import sys
import threading

from .cli import build_parser
from .config import Config
from .exceptions import BackfillError, ConfigError
from .logging import ConsoleLog, StructuredLog, RunLogEntry

from .services.solis_api_client import SolisCloudClient
from .services.resilient_fetcher import RequestPacer, ResilientFetcher
from .services.reconciliation import ReconciliationEngine
from .services.monthly_rollup import MonthlyRollupService
from .services.output_formatter import emit_human, emit_json, format_rollup
from .services.summary_store import SqliteSummaryStore
from .services.supabase_store import SupabaseSummaryStore
from .services.time_range import parse_day
from .services.window_policy import ExplicitRangeWindow, FullHistoryWindow

EXIT_OK = 0
EXIT_FATAL = 1


def build_window_policy(args, max_months=None):
    """Both range flags select ranged mode; neither selects full history."""
    start_raw = getattr(args, "start", None)
    end_raw = getattr(args, "end", None)
    if start_raw is None and end_raw is None:
        return FullHistoryWindow(max_months=max_months)
    if start_raw is None or end_raw is None:
        raise ValueError("--start and --end must be given together (e.g. --start 2025-11-15 --end 2025-11-22)")
    return ExplicitRangeWindow(start=parse_day(start_raw), end=parse_day(end_raw))


def build_store(store_cfg, log):
    if store_cfg.backend == "supabase":
        return SupabaseSummaryStore(store_cfg, log)
    path = Path(store_cfg.path).expanduser() if store_cfg.path else None
    return SqliteSummaryStore(path=path)


@contextmanager
def cancel_on_signals(event: threading.Event, log):
    """Set ``event`` on SIGINT/SIGTERM so the engine stops between buckets."""

    def _handler(signum, frame):
        log.warning("Signal %s received; finishing current month then stopping", signum)
        event.set()

    previous = {}
    if threading.current_thread() is threading.main_thread():
        for sig in (signal.SIGINT, signal.SIGTERM):
            previous[sig] = signal.signal(sig, _handler)
    try:
        yield event
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def run_backfill(args, app_cfg, policy, store, log, structured_logger, cancel_event) -> int:
    app_cfg.require_solis_credentials()

    bf = app_cfg.backfill
    pacer = RequestPacer(bf.rate_limit_delay)
    client = SolisCloudClient(app_cfg.solis, log, pacer=pacer)
    fetcher = ResilientFetcher(
        client,
        log,
        max_retries=bf.max_retries,
        backoff_step=bf.retry_backoff,
        currency=app_cfg.solis.currency,
        pacer=pacer,
    )

    # Fatal when it fails: without the inverter list there is nothing to do.
    devices = fetcher.list_devices()
    log.info("Found %d inverter(s)", len(devices))
    for dev in devices:
        first_day = dev.first_generation_date
        log.info(" - %s (first gen: %s)", dev.device_id, first_day.isoformat() if first_day else "unknown")

    if args.devices:
        wanted = {sn.strip() for sn in args.devices if sn.strip()}
        known = {dev.device_id for dev in devices}
        for sn in sorted(wanted - known):
            log.warning("Requested inverter %s is not on this account", sn)
        devices = [dev for dev in devices if dev.device_id in wanted]

    engine = ReconciliationEngine(
        store,
        fetcher,
        log,
        window_policy=policy,
        dry_run=args.dry,
        zero_fill=bf.zero_fill_missing,
        cancel_event=cancel_event,
    )
    report = engine.run(devices)

    if not args.quiet:
        if args.json:
            emit_json(report)
        else:
            emit_human(report)

    structured_logger.write(
        RunLogEntry(
            timestamp=report.finished_at or datetime.now(timezone.utc).isoformat(),
            command="backfill",
            mode=report.mode,
            dry_run=report.dry_run,
            cancelled=report.cancelled,
            totals=report.totals(),
            devices=[d.as_dict() for d in report.devices],
        )
    )
    return EXIT_OK


def run_rollup(args, store, log, structured_logger) -> int:
    service = MonthlyRollupService(store, log, dry_run=args.dry)
    result = service.run()

    if not args.quiet:
        if args.json:
            print(json.dumps(result.as_dict(), indent=2))
        else:
            print(format_rollup(result))

    structured_logger.write(
        RunLogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            command="rollup-monthly",
            mode=None,
            dry_run=args.dry,
            cancelled=False,
            totals={"rows_written": result.rows_written, "failures": len(result.failures)},
            devices=[{"device_id": k, "months": v} for k, v in result.per_device.items()],
        )
    )
    return EXIT_OK


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    policy = None
    if args.command == "backfill":
        try:
            policy = build_window_policy(args)
        except ValueError as exc:
            parser.error(str(exc))

    try:
        app_cfg = Config.load(args.config)
    except ConfigError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_FATAL

    if isinstance(policy, FullHistoryWindow) and app_cfg.backfill.max_months:
        policy = FullHistoryWindow(max_months=app_cfg.backfill.max_months)

    console_logger = ConsoleLog(
        level="DEBUG" if args.debug else app_cfg.logging.console_level,
        quiet=args.quiet or app_cfg.logging.console_quiet,
        debug_modules=app_cfg.logging.debug_modules,
    )
    log = console_logger.setup()
    structured_logger = StructuredLog(
        app_cfg.logging.structured_path,
        app_cfg.logging.structured_enabled,
    )

    store = None
    try:
        app_cfg.require_store()
        store = build_store(app_cfg.store, log)
        with cancel_on_signals(threading.Event(), log) as cancel_event:
            if args.command == "backfill":
                return run_backfill(args, app_cfg, policy, store, log, structured_logger, cancel_event)
            if args.command == "rollup-monthly":
                return run_rollup(args, store, log, structured_logger)
            raise ValueError(f"Unsupported command: {args.command}")
    except BackfillError as exc:
        log.error("Fatal: %s", exc)
        return EXIT_FATAL
    finally:
        if store is not None:
            store.close()


if __name__ == "__main__":
    sys.exit(main())
