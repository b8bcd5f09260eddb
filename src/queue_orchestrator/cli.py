from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import Any, Sequence

from queue_orchestrator import __version__
from queue_orchestrator.config.settings import Settings, get_settings
from queue_orchestrator.dispatcher import build_dispatcher
from queue_orchestrator.scheduler import QueueScheduler, SchedulerReport, filter_eligible
from queue_orchestrator.storage.markdown import MarkdownTaskStore

logger = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="queue-orchestrator",
        description="Drive queued engineering tasks through agent stages.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--queue-dir", type=Path, default=None, help="Task document directory.")
    parser.add_argument("--log-level", default=None, help="Logging level (default from settings).")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Poll the queue and dispatch eligible tasks.")
    run.add_argument("--max-concurrency", type=int, default=None)
    run.add_argument("--max-iterations", type=int, default=None, help="Stop after N cycles.")
    run.add_argument("--merge-mode", choices=["pr", "direct", "auto"], default=None)
    run.add_argument("--dispatch-mode", choices=["batch", "rolling"], default=None)
    run.add_argument("--model", default=None, help="Agent model identifier.")

    tasks = commands.add_parser("tasks", help="List tasks and their eligibility.")
    tasks.add_argument("--json", action="store_true", help="Print machine-readable JSON output.")

    serve = commands.add_parser("serve", help="Serve the HTTP status API.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser.parse_args(argv)


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {
        "queue_dir": args.queue_dir,
        "log_level": args.log_level,
        "max_concurrency": getattr(args, "max_concurrency", None),
        "max_iterations": getattr(args, "max_iterations", None),
        "merge_mode": getattr(args, "merge_mode", None),
        "dispatch_mode": getattr(args, "dispatch_mode", None),
        "agent_model": getattr(args, "model", None),
    }
    update = {key: value for key, value in overrides.items() if value is not None}
    if not update:
        return settings
    return Settings.model_validate({**settings.model_dump(), **update})


async def run_queue(settings: Settings) -> SchedulerReport:
    store = MarkdownTaskStore(settings.queue_dir, id_prefix=settings.id_prefix)
    scheduler = QueueScheduler(
        store,
        build_dispatcher(settings, store),
        max_concurrency=settings.max_concurrency,
        poll_interval_s=settings.poll_interval_s,
        max_iterations=settings.max_iterations,
        mode=settings.dispatch_mode,
    )
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, scheduler.request_stop)
        except NotImplementedError:
            logger.warning("cli event=signal_unsupported signal=%s", signum)
    logger.info(
        "cli event=run queue_dir=%s max_concurrency=%s merge_mode=%s dispatch_mode=%s",
        settings.queue_dir,
        settings.max_concurrency,
        settings.merge_mode,
        settings.dispatch_mode,
    )
    return await scheduler.run()


def _print_tasks(settings: Settings, as_json: bool) -> None:
    store = MarkdownTaskStore(settings.queue_dir, id_prefix=settings.id_prefix)
    all_tasks = asyncio.run(store.load_all())
    eligible = {task.task_id for task in filter_eligible(all_tasks, set())}

    if as_json:
        payload = [
            {**task.model_dump(mode="json"), "eligible": task.task_id in eligible}
            for task in all_tasks
        ]
        print(json.dumps(payload, indent=2, ensure_ascii=True))
        return

    if not all_tasks:
        print(f"No tasks in {settings.queue_dir}")
        return
    for task in all_tasks:
        marker = "*" if task.task_id in eligible else " "
        depends = f" depends_on={','.join(task.depends_on)}" if task.depends_on else ""
        print(f"{marker} {task.task_id:<10} {task.status.value:<26} {task.title}{depends}")
    print("")
    print(f"Total: {len(all_tasks)}  eligible (*): {len(eligible)}")


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = _apply_overrides(get_settings(), args)
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    if args.command == "run":
        report = asyncio.run(run_queue(settings))
        print(
            f"Stopped ({report.stop_reason}) after {report.cycles} cycles; "
            f"dispatched {len(report.dispatched)} task(s)."
        )
        return 0
    if args.command == "tasks":
        _print_tasks(settings, args.json)
        return 0
    if args.command == "serve":
        import uvicorn

        from queue_orchestrator.api.main import create_app

        uvicorn.run(create_app(settings_override=settings), host=args.host, port=args.port)
        return 0
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
