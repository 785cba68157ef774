import argparse
import logging
import sys
import threading
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from .config import Config
from .constants import APP_NAME, ENV_PREFIX
from .daemon import DaemonLoop, setup_logging, shutdown_on_signals
from .sync import SyncOrchestrator, SyncOutcome, SyncReason

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)

COMMANDS = {
    "mirror": "Perform a one-time mirror operation (clone source and push to target)",
    "sync": "Perform a one-time sync operation (fetch updates and push to target)",
    "daemon": "Run continuously, syncing at the configured interval",
}

_SUMMARIES = {
    SyncReason.UP_TO_DATE: "Target is already up to date.",
    SyncReason.UPDATED: "Target updated with new commits.",
    SyncReason.MIRRORED_FRESH: "Source mirrored to target.",
}


def print_usage() -> None:
    """Prints the command summary."""
    console.print(f"Usage: {APP_NAME} [mirror|sync|daemon] [options]", markup=False)
    for name, description in COMMANDS.items():
        console.print(f"  [cyan]{name:<7}[/cyan] - {description}")
    console.print(f"\nRun '{APP_NAME} --help' for configuration options.")


def build_parser() -> argparse.ArgumentParser:
    """Builds the argument parser for the command and configuration overrides."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Mirror a Git repository from a source remote to a target remote.",
        epilog=(
            "Configuration precedence: gitmirror.toml < environment "
            f"({ENV_PREFIX}SECTION__KEY) < command line."
        ),
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="sync",
        help="mirror, sync or daemon (default: sync)",
    )
    parser.add_argument("--config", "-c", type=Path, help="Path to a TOML or JSON file")
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    for side in ("source", "target"):
        group = parser.add_argument_group(f"{side} repository")
        group.add_argument(f"--{side}-url", help=f"{side.title()} repository URL")
        group.add_argument(f"--{side}-branch", help="Branch to mirror")
        group.add_argument(f"--{side}-username", help="Username for token auth")
        group.add_argument(f"--{side}-token", help="Access token")

    group = parser.add_argument_group("workspace")
    group.add_argument("--local-path", help="Local working copy path")
    group.add_argument(
        "--interval", help="Daemon sync interval (e.g. 300, '5m', '1hr')"
    )
    group.add_argument(
        "--keep-workspace",
        action="store_true",
        default=None,
        help="Keep the clone after a fresh mirror for incremental syncs",
    )
    return parser


def collect_overrides(args: argparse.Namespace) -> dict:
    """Turns command-line flags into a nested configuration layer."""
    overrides: dict = {}
    for side in ("source", "target"):
        values = {
            key: getattr(args, f"{side}_{key}")
            for key in ("url", "branch", "username", "token")
            if getattr(args, f"{side}_{key}") is not None
        }
        if values:
            overrides[side] = values

    mirror = {}
    if args.local_path is not None:
        mirror["local_path"] = args.local_path
    if args.interval is not None:
        mirror["sync_interval"] = args.interval
    if args.keep_workspace is not None:
        mirror["keep_workspace"] = args.keep_workspace
    if mirror:
        overrides["mirror"] = mirror

    if args.verbose:
        overrides["logging"] = {"level": "DEBUG"}
    return overrides


def report(outcome: SyncOutcome) -> int:
    """Prints a one-line summary and returns the process exit code."""
    if outcome.succeeded:
        console.print(f"[bold green]✔ {_SUMMARIES[outcome.reason]}[/bold green]")
        return 0
    err_console.print(f"[bold red]FAILED:[/bold red] {escape(outcome.message)}")
    return 1


def run_once(orchestrator: SyncOrchestrator, command: str) -> int:
    """Runs a single mirror or sync and returns the exit code."""
    if command == "mirror":
        logger.info("Performing one-time mirror operation")
        with console.status("Mirroring repository...", spinner="dots"):
            outcome = orchestrator.mirror()
    else:
        logger.info("Performing one-time sync operation")
        with console.status("Syncing repository...", spinner="dots"):
            outcome = orchestrator.sync()
    return report(outcome)


def run_daemon(orchestrator: SyncOrchestrator, config: Config) -> int:
    """Runs the daemon loop until SIGINT/SIGTERM."""
    logger.info("Starting continuous sync daemon")
    with shutdown_on_signals(threading.Event()) as cancel:
        DaemonLoop(orchestrator).run(config.mirror.sync_interval, cancel)
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Git Mirror CLI."""
    args = build_parser().parse_args(argv)
    command = args.command.lower()

    if command not in COMMANDS:
        print_usage()
        sys.exit(1)

    config = Config.load(args.config, overrides=collect_overrides(args))
    setup_logging(
        config.logging.level,
        config.logging.file,
        config.logging.max_log_size,
        interactive=command != "daemon",
    )

    problems = config.validate()
    if problems:
        for problem in problems:
            err_console.print(f"[bold red]Config Error:[/bold red] {problem}")
        sys.exit(2)

    logger.info(f"{APP_NAME} started")
    orchestrator = SyncOrchestrator(config)

    if command == "daemon":
        sys.exit(run_daemon(orchestrator, config))
    sys.exit(run_once(orchestrator, command))


if __name__ == "__main__":
    main()
