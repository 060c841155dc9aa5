import argparse
import logging
import os
import signal
import sys
import uuid
from typing import List, Optional

from .config import AppConfig, load_config
from .console import ConsoleReporter
from .errors import BackendError, ConfigError
from .journal import Journal
from .loop import AgentLoop, RunOutcome
from .models import PROVIDERS, OpenAIChatClient
from .prompts import load_prompts
from .runner import CommandRunner, detect_shell

LOGGER = logging.getLogger(__name__)

EXIT_CODES = {
    RunOutcome.SUCCESS: 0,
    RunOutcome.PROTOCOL_EXHAUSTED: 1,
    RunOutcome.BACKEND_ERROR: 3,
    RunOutcome.BUDGET_EXHAUSTED: 4,
}
EXIT_CONFIG_ERROR = 2
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="simple-agent",
        description="Let a language model complete a task by running shell commands.",
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="YAML config file")
    common.add_argument("--provider", choices=sorted(PROVIDERS), help="Model backend")
    common.add_argument("--model", help="The model to use")
    common.add_argument("--url", "-u", dest="base_url", help="Base URL of the OpenAI-compatible API")
    common.add_argument(
        "--log-level",
        default=os.environ.get("SIMPLE_AGENT_LOG_LEVEL", "WARNING"),
        help="Python logging level for diagnostics (default: WARNING)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", parents=[common], help="Run the agent on a task")
    run.add_argument("--task", help="File containing the task to execute")
    run.add_argument("--system", help="The path to the system prompt")
    run.add_argument("--task-template", help="Template that wraps the task, with a {{ task }} placeholder")
    run.add_argument("--workdir", help="Working directory for commands")
    run.add_argument("--max-iterations", type=int, help="Maximum number of model calls")
    run.add_argument("--max-seconds", type=float, help="Wall-clock budget for the whole run")
    run.add_argument("--max-malformed", type=int, help="Consecutive malformed replies before giving up")
    run.add_argument("--timeout", type=float, help="Per-command timeout in seconds")
    run.add_argument("--log-dir", help="Write a JSONL transcript of the run to this directory")
    run.add_argument("--quiet", "-q", action="store_true", help="Do not print progress")

    sub.add_parser("check", parents=[common], help="Verify the model backend and model name")
    return parser


def _overrides(args: argparse.Namespace) -> dict:
    return {
        "model.provider": args.provider,
        "model.model": args.model,
        "model.base_url": args.base_url,
        "agent.workdir": getattr(args, "workdir", None),
        "agent.max_iterations": getattr(args, "max_iterations", None),
        "agent.max_seconds": getattr(args, "max_seconds", None),
        "agent.max_malformed_replies": getattr(args, "max_malformed", None),
        "agent.timeout_seconds": getattr(args, "timeout", None),
        "agent.log_dir": getattr(args, "log_dir", None),
        "prompts.task": getattr(args, "task", None),
        "prompts.system": getattr(args, "system", None),
        "prompts.task_template": getattr(args, "task_template", None),
    }


def build_client(cfg: AppConfig) -> OpenAIChatClient:
    return OpenAIChatClient.from_settings(
        model=cfg.model,
        api_key=cfg.api_key,
        base_url=cfg.base_url,
        reasoning_effort=cfg.reasoning_effort,
        timeout_seconds=cfg.request_timeout_seconds,
    )


def _resolve_shell(cfg: AppConfig):
    try:
        return detect_shell(cfg.shell)
    except ValueError as e:
        raise ConfigError(str(e)) from e


def build_runner(cfg: AppConfig) -> CommandRunner:
    _, shell_prefix = _resolve_shell(cfg)
    return CommandRunner(
        shell_prefix,
        workdir=cfg.workdir,
        timeout_seconds=cfg.timeout_seconds,
        max_output_chars=cfg.max_output_chars,
        extra_env=cfg.env,
    )


def _raise_keyboard_interrupt(signum, frame):
    raise KeyboardInterrupt()


def cmd_run(cfg: AppConfig, quiet: bool = False) -> int:
    if not cfg.task_path:
        raise ConfigError("Missing task file (set prompts.task or --task).")
    shell_name, _ = _resolve_shell(cfg)
    prompts = load_prompts(
        task_path=cfg.task_path,
        system_path=cfg.system_path,
        template_path=cfg.template_path,
        shell_name=shell_name,
    )
    run_id = uuid.uuid4().hex
    loop = AgentLoop(
        build_client(cfg),
        build_runner(cfg),
        max_iterations=cfg.max_iterations,
        max_seconds=cfg.max_seconds,
        max_malformed_replies=cfg.max_malformed_replies,
        compress_output=cfg.compress_output,
        journal=Journal(cfg.log_dir, run_id) if cfg.log_dir else None,
        reporter=None if quiet else ConsoleReporter(),
    )
    result = loop.run(prompts["system"], prompts["task"], run_id=run_id)
    return EXIT_CODES[result.outcome]


def cmd_check(cfg: AppConfig) -> int:
    client = build_client(cfg)
    print(f"provider: {cfg.provider}")
    print(f"base_url: {cfg.base_url}")
    print(f"model: {cfg.model}")
    reply = client.check()
    print("\n=== Model reply ===")
    print(reply)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    previous_handler = signal.signal(signal.SIGTERM, _raise_keyboard_interrupt)

    try:
        cfg = load_config(args.config, _overrides(args))
        if args.command == "check":
            return cmd_check(cfg)
        return cmd_run(cfg, quiet=args.quiet)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except BackendError as e:
        print(f"Backend error: {e}", file=sys.stderr)
        return EXIT_CODES[RunOutcome.BACKEND_ERROR]
    except KeyboardInterrupt:
        print("Cancelled, shutting down...", file=sys.stderr)
        return EXIT_CANCELLED
    finally:
        signal.signal(signal.SIGTERM, previous_handler)


if __name__ == "__main__":
    raise SystemExit(main())
