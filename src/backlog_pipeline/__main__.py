"""Entry point for `python -m backlog_pipeline` and the `backlog-pipeline` CLI script."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv

from backlog_pipeline.errors import PipelineError
from backlog_pipeline.pipeline import BuildPipeline
from backlog_pipeline.settings import VALIDATION_POLICIES, RuntimeSettings


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build the next pending backlog task and publish it")
    parser.add_argument(
        "--workspace-root",
        type=Path,
        default=None,
        help="Working tree that edits are applied to and committed from (default: cwd)",
    )
    parser.add_argument(
        "--backlog",
        type=Path,
        default=None,
        help="Queue document path, relative to the workspace root (default: backlog.json)",
    )
    parser.add_argument(
        "--validation-policy",
        type=lambda value: value.lower(),
        default=None,
        choices=sorted(VALIDATION_POLICIES),
        help="warn: publish despite failing checks; block: failing checks abort the run",
    )
    parser.add_argument("--no-push", action="store_true", help="Commit locally without pushing")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> RuntimeSettings:
    workspace_root = (args.workspace_root or Path.cwd()).resolve()
    env_path = workspace_root / ".env"
    if env_path.is_file():
        load_dotenv(env_path)

    overrides: dict[str, object] = {"workspace_root": str(workspace_root)}
    if args.backlog is not None:
        overrides["backlog_path"] = str(args.backlog)
    if args.validation_policy is not None:
        overrides["validation_policy"] = args.validation_policy
    if args.no_push:
        overrides["push"] = False
    return RuntimeSettings.from_env().with_overrides(**overrides)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(args)
    except ValueError as exc:
        logging.error("Invalid configuration: %s", exc)
        return 1

    if not settings.workspace_root_path.is_dir():
        logging.error("Workspace root is not a directory: %s", settings.workspace_root_path)
        return 1

    try:
        pipeline = BuildPipeline.from_settings(settings)
        result = pipeline.run()
    except (PipelineError, RuntimeError, ValueError) as exc:
        logging.error("Build failed: %s", exc)
        return 1
    except Exception as exc:  # noqa: BLE001
        logging.exception("Build failed unexpectedly: %s", exc)
        return 1

    print(f"run_state={result.state.value}")
    if result.task is not None:
        print(f"task={result.task.key}")
    for warning in result.warnings:
        print(f"warning={warning.command}: {warning.message}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
