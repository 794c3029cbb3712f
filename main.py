"""
CLI entrypoint for the taxonomy annotation workstation.

Commands:
- send-to-ai: run one AI labeling job per active taxonomy over a set of records
- jobs:       list active AI jobs with their progress
- progress:   show the progress descriptor and jobs of the current session
- cancel-job: cancel an AI job, or withdraw queued taxonomies from a running session
- label:      interactive labeling console over a working set of records

Every command loads .env, configs/workstation.yaml, configures logging
(console + rotating file under .workstation/logs) and builds the configured backend.
During send-to-ai the first Ctrl-C stops the run after the job in progress.
"""

import argparse
import asyncio
import contextlib
import logging
import os
import signal
import sys
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import opik
from dotenv import load_dotenv

from application import (
    ActiveJobPoller,
    JobOrchestrator,
    LabelingSession,
    RecordListView,
    RunReport,
    WorkstationContext,
)
from application.console import LabelConsole
from domain.errors import JobCreationError, PreconditionError, WorkstationError
from domain.schemas import RecordStatus
from infrastructure.backends import WorkstationBackend, make_backend
from infrastructure.config import BackendKind, WorkstationConfig, load_fixtures, load_workstation_config
from infrastructure.constants import FIXTURES_FILE, LOG_DIR, STORE_FILE, WORKSTATION_FILE
from infrastructure.io import ensure_exists, load_record_ids
from infrastructure.observability import configure_logging
from infrastructure.store import KeyValueStore, make_store

logger = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _add_record_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--ids", type=str, default=None, help="File with record ids (.csv/.xlsx/.xls table or .txt)")
    p.add_argument("--column", type=str, default="id", help="Id column in --ids tables (default: id)")
    p.add_argument("--record", action="append", default=[], help="Record id (repeatable)")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Taxonomy annotation workstation")
    p.add_argument(
        "--config",
        type=str,
        default=str(WORKSTATION_FILE),
        help="Path to workstation.yaml (default: configs/workstation.yaml)",
    )
    p.add_argument("--env", type=str, default=".env", help="Path to .env file (default: .env)")
    p.add_argument(
        "--memory",
        action="store_true",
        help="Use the in-memory backend (fixtures from --fixtures) instead of the annotation server.",
    )
    p.add_argument(
        "--fixtures",
        type=str,
        default=None,
        help="Fixtures YAML for the in-memory backend (default: configs/fixtures.yaml)",
    )
    p.add_argument("--trace", action="store_true", help="Send opik traces (configures opik on start).")
    p.add_argument("--console-level", type=str, default="INFO", choices=LOG_LEVELS, help="Console log level")
    p.add_argument("--file-level", type=str, default="DEBUG", choices=LOG_LEVELS, help="File log level")

    sub = p.add_subparsers(dest="command", required=True)

    send = sub.add_parser("send-to-ai", help="Send records to AI, one job per active taxonomy")
    _add_record_args(send)

    sub.add_parser("jobs", help="List active AI jobs")
    sub.add_parser("progress", help="Show the current AI session's progress")

    cancel = sub.add_parser("cancel-job", help="Cancel an AI job or withdraw a queued taxonomy")
    target = cancel.add_mutually_exclusive_group(required=True)
    target.add_argument("--job", type=str, help="AI job id to cancel")
    target.add_argument("--taxonomy", type=str, help="Queued taxonomy key to withdraw from the running session")
    target.add_argument(
        "--remaining",
        action="store_true",
        help="Withdraw every queued taxonomy; the job in progress still completes",
    )

    label = sub.add_parser("label", help="Interactive labeling console")
    _add_record_args(label)
    label.add_argument(
        "--status",
        type=str,
        default=RecordStatus.PENDING.value,
        choices=[s.value for s in RecordStatus],
        help="Queue status used when no ids are given (default: pending)",
    )

    return p.parse_args(argv)


def _record_ids(args: argparse.Namespace) -> list[str]:
    ids: list[str] = list(args.record)
    if args.ids:
        path = Path(args.ids)
        ensure_exists(path, "record id file")
        ids.extend(load_record_ids(path, column=args.column))
    return list(dict.fromkeys(ids))


def _load_config(args: argparse.Namespace) -> WorkstationConfig:
    backend = BackendKind.MEMORY if args.memory else None
    config_path = Path(args.config)
    if not config_path.exists():
        logger.info("No %s found; using defaults and environment", config_path)
        return load_workstation_config(None, backend=backend)
    return load_workstation_config(config_path, backend=backend)


def _build_backend(cfg: WorkstationConfig, args: argparse.Namespace) -> WorkstationBackend:
    fixtures = None
    if cfg.backend is BackendKind.MEMORY:
        fixtures_path = Path(args.fixtures) if args.fixtures else (cfg.memory_fixtures or FIXTURES_FILE)
        ensure_exists(fixtures_path, "in-memory backend fixtures")
        fixtures = load_fixtures(fixtures_path)
    return make_backend(cfg, fixtures=fixtures)


def _cancel_on_interrupt(on_interrupt: Callable[[], None]) -> Callable[[], None]:
    """
    Route the first Ctrl-C to `on_interrupt`; a second one interrupts as usual.

    Returns a function that removes the handler. Platforms without loop signal
    handlers keep the default behaviour.
    """
    loop = asyncio.get_running_loop()

    def _handle() -> None:
        loop.remove_signal_handler(signal.SIGINT)
        logger.warning("Interrupt received: stopping after the current AI job (Ctrl-C again to abort)")
        on_interrupt()

    try:
        loop.add_signal_handler(signal.SIGINT, _handle)
    except (NotImplementedError, RuntimeError):
        return lambda: None
    return lambda: loop.remove_signal_handler(signal.SIGINT)


def _print_report(report: RunReport) -> None:
    print(f"Session {report.session_id}")
    for outcome in report.outcomes:
        if outcome.timed_out:
            print(f"  {outcome.taxonomy_key}: job {outcome.job_id} TIMED OUT")
            continue
        job = outcome.job
        print(
            f"  {outcome.taxonomy_key}: job {outcome.job_id} {outcome.status.value if outcome.status else '?'}"
            f" ({job.processed_sentences or 0}/{job.total_sentences or 0} processed, {job.failed_sentences or 0} failed)"
        )
    for key in report.skipped:
        print(f"  {key}: skipped")
    if report.cancelled:
        print("Run cancelled before all taxonomies were sent.")


async def _send_to_ai(
    cfg: WorkstationConfig,
    backend: WorkstationBackend,
    context: WorkstationContext,
    record_ids: list[str],
) -> int:
    queue = RecordListView(backend, refresh_interval_s=cfg.polling.queue_refresh_interval_s)
    poller = ActiveJobPoller(
        backend,
        interval_s=cfg.polling.active_jobs_interval_s,
        limit=cfg.polling.active_jobs_limit,
        on_refresh=queue.refresh,
    )
    orchestrator = JobOrchestrator(
        backend,
        context=context,
        polling=cfg.polling,
        poller=poller,
        on_refresh=queue.refresh,
    )
    queue.select(record_ids)
    poller.track_session_jobs(context.progress)

    stop = asyncio.Event()
    background = [
        asyncio.create_task(poller.run(stop)),
        asyncio.create_task(queue.run_auto_refresh(stop)),
    ]
    remove_handler = _cancel_on_interrupt(orchestrator.cancel)
    try:
        report = await orchestrator.run(record_ids, selection=queue.selected)
    except JobCreationError as e:
        logger.error("Failed to send sentences to AI: %s", e)
        for outcome in e.outcomes:
            logger.info("Job %s for %s was started before the failure", outcome.job_id, outcome.taxonomy_key)
        return 1
    except PreconditionError as e:
        logger.error("%s", e)
        return 2
    finally:
        remove_handler()
        stop.set()
        for task in background:
            task.cancel()
        for task in background:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    _print_report(report)
    return 0 if not any(o.timed_out for o in report.outcomes) else 1


async def _list_jobs(backend: WorkstationBackend, cfg: WorkstationConfig) -> int:
    poller = ActiveJobPoller(backend, limit=cfg.polling.active_jobs_limit)
    jobs = await poller.active_jobs()
    if not jobs:
        print("No active jobs")
        return 0
    for job in jobs:
        failed = f" ({job.failed_sentences} failed)" if job.failed_sentences else ""
        print(
            f"{job.id}  {job.taxonomy_key or '?':<12} {job.status.value:<10} "
            f"{job.processed_sentences or 0}/{job.total_sentences or 0} sentences{failed}  {job.progress_percent}%"
        )
    return 0


def _show_progress(store: KeyValueStore) -> int:
    context = WorkstationContext(store=store)
    progress = context.progress
    descriptor = progress.read()
    if descriptor is None:
        print("No AI session in progress")
        return 0
    state = "finished" if descriptor.finished else f"sending {descriptor.current or '-'}"
    print(f"Session {descriptor.session_id}: {state}")
    if descriptor.remaining:
        print(f"  queued: {', '.join(descriptor.remaining)}")
    for job in progress.session_jobs():
        print(f"  job {job.job_id} ({job.taxonomy_key})")
    return 0


def _withdraw(store: KeyValueStore, args: argparse.Namespace) -> int:
    progress = WorkstationContext(store=store).progress
    if args.remaining:
        withdrawn = progress.withdraw_remaining()
        if not withdrawn:
            print("No queued taxonomies in the current session.")
            return 1
        print(f"Withdrew {', '.join(withdrawn)}; the job in progress will still complete.")
        return 0
    if progress.withdraw(args.taxonomy):
        print(f"Withdrew {args.taxonomy}; it will be skipped.")
        return 0
    print(f"{args.taxonomy} is not queued in the current session.")
    return 1


async def _cancel(backend: WorkstationBackend, args: argparse.Namespace) -> int:
    status = await backend.cancel_job(args.job)
    print(f"Job {args.job}: {status.value}")
    return 0


async def _label(
    cfg: WorkstationConfig,
    backend: WorkstationBackend,
    context: WorkstationContext,
    args: argparse.Namespace,
) -> int:
    record_ids = _record_ids(args)
    if not record_ids:
        queue = RecordListView(backend, status=RecordStatus(args.status))
        await queue.refresh()
        record_ids = queue.record_ids
    if not record_ids:
        print("Queue is empty")
        return 0

    session = await LabelingSession.open(
        backend,
        context=context,
        record_ids=record_ids,
        debounce_s=cfg.search.debounce_s,
    )
    await LabelConsole(session).run()
    return 0


async def _dispatch(args: argparse.Namespace, cfg: WorkstationConfig) -> int:
    store = make_store(cfg.store.path or STORE_FILE)
    context = WorkstationContext(store=store, user_id=cfg.labeling.user_id)

    if args.command == "progress":
        return _show_progress(store)
    if args.command == "cancel-job" and not args.job:
        return _withdraw(store, args)

    async with _build_backend(cfg, args) as backend:
        if args.command == "send-to-ai":
            return await _send_to_ai(cfg, backend, context, _record_ids(args))
        if args.command == "jobs":
            return await _list_jobs(backend, cfg)
        if args.command == "cancel-job":
            return await _cancel(backend, args)
        if args.command == "label":
            return await _label(cfg, backend, context, args)
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    env_file = Path(args.env)
    if env_file.exists():
        load_dotenv(env_file, override=True)

    if args.trace:
        opik.configure()
    else:
        os.environ["OPIK_TRACK_DISABLE"] = "true"

    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_path = LOG_DIR / f"{args.command}_{ts}.log"
    configure_logging(
        log_file=log_path,
        console_level=getattr(logging, args.console_level),
        file_level=getattr(logging, args.file_level),
    )

    try:
        cfg = _load_config(args)
        code = asyncio.run(_dispatch(args, cfg))
    except (WorkstationError, FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        code = 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        code = 130

    logger.debug("Detailed log: %s", log_path)
    return code


if __name__ == "__main__":
    sys.exit(main())
