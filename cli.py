"""Command line tools for inspecting and finishing a logical test run."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from exceptions import RelayError
from reporter import RelayReporter
from state import RunStateStore


def _show_state(store: RunStateStore) -> int:
    if not store.exists():
        print(f"No run state at {store.path}")
        return 0
    state = store.read()
    print(json.dumps(state.model_dump(by_alias=True, mode="json"), indent=2))
    return 0


def _clear_state(store: RunStateStore, logger: logging.Logger) -> int:
    store.clear()
    logger.info(f"Run state cleared: {store.path}")
    return 0


async def _complete_run(args: argparse.Namespace, store: RunStateStore, logger: logging.Logger) -> int:
    if not store.exists():
        logger.warning(f"No run state at {store.path}; nothing to complete")
        return 1

    config_path = Path(args.config) if args.config else None
    reporter = RelayReporter(store=store, config_path=config_path, logger=logger)
    if reporter.disabled or reporter.config.testops.run.id is None:
        logger.warning("No active run to complete")
        return 1

    try:
        await reporter.start_test_run_async()
        completed = await reporter.complete()
    finally:
        await reporter.aclose()
    return 0 if completed else 1


def _build_arg_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Inspect and finish relay reporter runs.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s state show                   # Print the shared run state
  %(prog)s state clear                  # Forget the current logical run
  %(prog)s complete --config relay.yml  # Complete the run after all workers finished
        """,
    )
    parser.add_argument(
        "--state-path",
        help="Path to the run state file (default: ./reporter_state.json)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    state_parser = commands.add_parser("state", help="Inspect or clear the run state")
    state_parser.add_argument("action", choices=["show", "clear"])

    complete_parser = commands.add_parser("complete", help="Complete the current run")
    complete_parser.add_argument(
        "--config",
        help="Path to config file (default: relay.config.json if exists)",
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point."""
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s" if args.verbose else "[%(levelname)s] %(message)s",
    )
    logger = logging.getLogger("relay_reporter")

    store = RunStateStore(Path(args.state_path) if args.state_path else None)

    try:
        if args.command == "state" and args.action == "show":
            exit_code = _show_state(store)
        elif args.command == "state":
            exit_code = _clear_state(store, logger)
        else:
            exit_code = asyncio.run(_complete_run(args, store, logger))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        exit_code = 130
    except RelayError as exc:
        logger.error(f"Error: {exc}")
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
