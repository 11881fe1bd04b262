"""packweave command-line entrypoint."""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import List, Optional

from args import parse_args
from cli_config import apply_cli_overrides, parse_constraint_flags, parse_priority_flags
from constants import Constants, ExitCodes
from common.errors import ConfigurationError, ResolutionAborted, SourceLoadError
from common.events import LoggingEventSink
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from install.pipeline import InstallOptions, InstallPipeline
from platforms.registry import detect_platforms, load_platform_table, select_platforms
from resolution.graph_builder import normalize_constraints
from uninstall.uninstaller import Uninstaller
from workspace.index import read_workspace_index

logger = logging.getLogger(__name__)


def prompt_conflict(name: str, ranges: List[str], requested_by: List[str], available: List[str]) -> Optional[str]:
    """Ask which version to use for a conflicting package.

    An empty answer leaves the conflict unresolved.

    Raises:
        ResolutionAborted: on end of input or Ctrl-C.
    """
    sys.stderr.write(f"\nNo version of {name} satisfies every constraint:\n")
    for range_str, who in zip(ranges, requested_by):
        sys.stderr.write(f"  {range_str}  (from {who})\n")
    for i, version in enumerate(available, start=1):
        sys.stderr.write(f"  [{i}] {version}\n")
    while True:
        try:
            answer = input("Version to use (number or version, empty to skip): ").strip()
        except (EOFError, KeyboardInterrupt) as exc:
            raise ResolutionAborted(f"Resolution of {name} cancelled") from exc
        if not answer:
            return None
        if answer.isdigit() and 1 <= int(answer) <= len(available):
            return available[int(answer) - 1]
        if answer in available:
            return answer
        sys.stderr.write(f"'{answer}' is not one of the listed versions\n")


def run_install(args) -> int:
    options = InstallOptions(
        target_dir=args.TARGET,
        force=args.FORCE,
        platforms=tuple(args.PLATFORMS or ()),
        include_dev=args.DEV,
        on_conflict=prompt_conflict if args.INTERACTIVE else None,
        constraints=normalize_constraints(parse_constraint_flags(args.CONSTRAINTS)),
        priorities=parse_priority_flags(args.PRIORITIES),
        platforms_file=args.PLATFORMS_FILE,
    )
    result = InstallPipeline(options, events=LoggingEventSink()).install(args.packages)

    logger.info(
        "Installed %d package(s): %d file(s) written, %d updated",
        len(result.installed), result.files_written, result.files_updated,
    )
    for skipped in result.skipped:
        logger.info("Skipped %s (%s)", skipped.identity, skipped.reason.value)
    for conflict in result.file_conflicts:
        logger.info(
            "%s: kept %s over %s",
            conflict.target_path, conflict.winner.package_name,
            ", ".join(w.package_name for w in conflict.losers),
        )
    if not result.success:
        for conflict in result.version_conflicts:
            if not conflict.resolved:
                logger.error(
                    "Unresolved version conflict for %s: %s",
                    conflict.package_name, ", ".join(conflict.ranges),
                )
        return ExitCodes.UNRESOLVED_CONFLICTS.value
    if result.warnings and args.ERROR_ON_WARNINGS:
        logger.error("Warnings present, exiting with non-zero status code.")
        return ExitCodes.EXIT_WARNINGS.value
    return ExitCodes.SUCCESS.value


def run_uninstall(args) -> int:
    table = load_platform_table(args.PLATFORMS_FILE)
    platforms = list(table.values())
    result = Uninstaller(args.TARGET, platforms, events=LoggingEventSink()).uninstall(
        args.package, recursive=args.RECURSIVE
    )
    if not result.found:
        return ExitCodes.FILE_ERROR.value
    logger.info(
        "Removed %s: %d file(s) deleted, %d updated",
        ", ".join(result.removed_packages), len(result.removed), len(result.updated),
    )
    if result.warnings and args.ERROR_ON_WARNINGS:
        logger.error("Warnings present, exiting with non-zero status code.")
        return ExitCodes.EXIT_WARNINGS.value
    return ExitCodes.SUCCESS.value


def run_list(args) -> int:
    index = read_workspace_index(args.TARGET)
    payload = [
        {
            "name": name,
            "version": entry.version,
            "path": entry.path,
            "dependencies": list(entry.dependencies),
            "targets": sorted({r.target_path for r in entry.records()}),
        }
        for name, entry in sorted(index.packages.items())
    ]
    print(json.dumps(payload, indent=2))
    return ExitCodes.SUCCESS.value


def run_platforms(args) -> int:
    table = load_platform_table(args.PLATFORMS_FILE)
    detected = set(detect_platforms(table, args.TARGET))
    selected = {p.id for p in select_platforms(table, None, args.TARGET)}
    payload = [
        {
            "id": pid,
            "name": platform.name,
            "rootDir": platform.root_dir,
            "rootFile": platform.root_file,
            "detected": pid in detected,
            "selected": pid in selected,
        }
        for pid, platform in table.items()
    ]
    print(json.dumps(payload, indent=2))
    return ExitCodes.SUCCESS.value


COMMANDS = {
    "install": run_install,
    "uninstall": run_uninstall,
    "list": run_list,
    "platforms": run_platforms,
}


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.ENV_LOG_LEVEL] = args.LOG_LEVEL
    configure_logging(args.LOG_LEVEL, args.LOG_FILE, args.QUIET)
    apply_cli_overrides(args)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.COMMAND),
        )

    try:
        code = COMMANDS[args.COMMAND](args)
    except ResolutionAborted as exc:
        logger.error("Aborted: %s", exc)
        code = ExitCodes.ABORTED.value
    except (ConfigurationError, SourceLoadError) as exc:
        logger.error("%s", exc)
        code = ExitCodes.FILE_ERROR.value

    if is_debug_enabled(logger):
        logger.debug(
            "CLI finished",
            extra=extra_context(event="function_exit", component="cli", action=args.COMMAND, outcome=code),
        )
    sys.exit(code)


if __name__ == "__main__":
    main()
