# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
numpkg command line.

    numpkg install [-nodeps] [-local|-global] [-forge] [-verbose] PKG...
    numpkg uninstall|load|unload|list|describe|update|rebuild|test [options] [PKG...]

Options accept both the single-dash form (-nodeps) and the double-dash form
(--nodeps). Diagnostics go to stderr; load and unload print the new search
path as a shell assignment on stdout.
"""

import argparse
import os
import shlex
import sys
from typing import List, Optional

from numpkg.core.config import load_config
from numpkg.core.errors import NumpkgError
from numpkg.core.logging import get_logger
from numpkg.models.registry_models import (
    CommandOptions,
    InstallReport,
    PackageDescriptionView,
    PackageRecord,
    Registry,
    UpdateReport,
)
from numpkg.services.registry import Command, PackageService
from numpkg.services.search_path import PATH_ENV_VAR, SearchPath

SESSION_COMMANDS = {Command.LOAD, Command.UNLOAD, Command.LIST, Command.DESCRIBE, Command.TEST}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="numpkg",
        description="Install, load and manage numerical computing packages",
        allow_abbrev=False,
    )
    parser.add_argument("command", choices=[c.value for c in Command], help="Command to run")
    parser.add_argument("names", nargs="*", help="Packages, archives or URLs")
    parser.add_argument("-nodeps", "--nodeps", "--no-deps", dest="no_deps", action="store_true",
                        help="Do not check dependencies")
    parser.add_argument("-local", "--local", dest="prefer_local", action="store_true",
                        help="Use the local (per-user) registry")
    parser.add_argument("-global", "--global", dest="prefer_global", action="store_true",
                        help="Use the global (system) registry")
    parser.add_argument("-forge", "--forge", dest="forge", action="store_true",
                        help="Look packages up on the package forge")
    parser.add_argument("-force", "--force", dest="force", action="store_true",
                        help="Reinstall packages whose version is already installed")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true",
                        help="Print build output and details")
    parser.add_argument("--config", dest="config", default=None,
                        help="Configuration file (default: $NUMPKG_CONFIG_PATH or ~/.config/numpkg/numpkg.yaml)")
    return parser


def _print_records(title: str, records: List[PackageRecord]):
    if not records:
        return
    print(title)
    width = max(len(r.name) for r in records)
    vwidth = max(len(r.version) for r in records)
    for record in records:
        mark = "*" if record.loaded else " "
        print(f"  {record.name:<{width}}{mark} | {record.version:<{vwidth}} | {record.directory}")


def _print_install(report: InstallReport):
    for record in report.installed:
        print(f"installed {record} in {record.directory}")
    for name in report.skipped:
        print(f"{name} is already installed")
    for source, reason in report.failures.items():
        print(f"error: {source}: {reason}", file=sys.stderr)


def _print_describe(views: List[PackageDescriptionView], verbose: bool):
    for view in views:
        record = view.record
        print(f"---\nPackage name:\n\t{view.name}")
        if record is not None:
            print(f"Version:\n\t{record.version}")
            if record.title:
                print(f"Short description:\n\t{record.title}")
            if record.dependencies:
                print("Depends on:\n\t" + ", ".join(str(dep) for dep in record.dependencies))
        print(f"Status:\n\t{view.status.value}")
        if verbose:
            for category, functions in view.functions.items():
                print(f"{category}:")
                for function in functions:
                    print(f"\t{function}")


def render(command: Command, result, options: CommandOptions, search_path: SearchPath) -> int:
    """Print a command result, returning the exit status"""
    if command is Command.INSTALL:
        _print_install(result)
        return 0 if result.ok else 1

    if command is Command.UPDATE:
        report: UpdateReport = result
        for warning in report.warnings:
            print(f"warning: {warning}", file=sys.stderr)
        for name, version in report.outdated.items():
            print(f"{name} -> {version}")
        if report.install is not None:
            _print_install(report.install)
        return 0 if report.ok else 1

    if command in (Command.LOAD, Command.UNLOAD):
        print(f"export {PATH_ENV_VAR}={shlex.quote(search_path.to_env())}")
        return 0

    if command is Command.UNINSTALL:
        for record in result:
            print(f"removed {record}")
        return 0

    if command is Command.LIST:
        if options.forge:
            print("\n".join(result))
            return 0
        local, global_ = result
        _print_records("Local packages:", local)
        _print_records("Global packages:", global_)
        return 0

    if command is Command.DESCRIBE:
        _print_describe(result, options.verbose)
        return 0

    if command is Command.REBUILD:
        registry: Registry = result
        print(f"{len(registry)} packages registered")
        return 0

    if command is Command.TEST:
        for name, passed in result.items():
            print(f"{name}: {'PASS' if passed else 'FAIL'}")
        return 0 if all(result.values()) else 1

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_intermixed_args(argv)

    try:
        config = load_config(args.config or os.getenv("NUMPKG_CONFIG_PATH"))
    except NumpkgError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return e.exit_code

    logger = get_logger(
        "numpkg",
        log_level="DEBUG" if args.verbose else config.log_level,
        log_format=config.log_format,
    )

    command = Command(args.command)
    options = CommandOptions(
        no_deps=args.no_deps,
        prefer_local=args.prefer_local,
        prefer_global=args.prefer_global,
        forge=args.forge,
        force=args.force,
        verbose=args.verbose,
    )

    fresh_session = PATH_ENV_VAR not in os.environ
    search_path = SearchPath.from_env()
    try:
        service = PackageService.from_config(config, path_activator=search_path)
        if fresh_session and command in SESSION_COMMANDS:
            try:
                service.autoload()
            except NumpkgError as e:
                logger.warning(f"Autoloading packages failed: {e.message}")
        result = service.execute(command, args.names, options)
    except NumpkgError as e:
        logger.debug(f"{command.value} failed", exc_info=True)
        print(f"error: {e.message}", file=sys.stderr)
        return e.exit_code
    except OSError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    return render(command, result, options, search_path)


if __name__ == "__main__":
    sys.exit(main())
