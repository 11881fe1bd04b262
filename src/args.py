"""Argument parsing for packweave."""

import argparse

from constants import Constants


def _add_common_arguments(parser):
    parser.add_argument("--target",
                        dest="TARGET",
                        help="Workspace directory to install into (default: current directory)",
                        action="store",
                        type=str,
                        default=".")
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=Constants.LOG_LEVELS)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Do not output logs to the console.",
                        action="store_true")
    parser.add_argument("--platforms-file",
                        dest="PLATFORMS_FILE",
                        help="YAML file extending or overriding the built-in platform table",
                        action="store",
                        type=str)
    parser.add_argument("--registry-dir",
                        dest="REGISTRY_DIR",
                        help="Local registry directory (<dir>/<name>/<version>/)",
                        action="store",
                        type=str)
    parser.add_argument("--registry-url",
                        dest="REGISTRY_URL",
                        help="Remote registry index URL",
                        action="store",
                        type=str)


def build_parser():
    """Build the top-level parser with its subcommands."""
    parser = argparse.ArgumentParser(
        prog="packweave",
        description="packweave - install configuration packages into agent platform layouts",
        add_help=True,
    )
    subparsers = parser.add_subparsers(dest="COMMAND", metavar="COMMAND")
    subparsers.required = True

    install = subparsers.add_parser("install", help="Install packages (or the workspace manifest)")
    _add_common_arguments(install)
    install.add_argument("packages",
                         metavar="PACKAGE",
                         help="name[@range] or a package directory; empty installs the workspace manifest",
                         nargs="*")
    install.add_argument("-f", "--force",
                         dest="FORCE",
                         help="Pick the highest version on conflicts and re-apply installed packages",
                         action="store_true")
    install.add_argument("-p", "--platform",
                         dest="PLATFORMS",
                         help="Platform id to install for (repeatable; default: detected platforms)",
                         action="append",
                         type=str,
                         default=[])
    install.add_argument("--dev",
                         dest="DEV",
                         help="Include dev-dependencies of the workspace manifest",
                         action="store_true")
    install.add_argument("-i", "--interactive",
                         dest="INTERACTIVE",
                         help="Prompt for a version when constraints conflict",
                         action="store_true")
    install.add_argument("--constraint",
                         dest="CONSTRAINTS",
                         help="Global version constraint name@range applied to every request (repeatable)",
                         action="append",
                         type=str,
                         default=[])
    install.add_argument("--priority",
                         dest="PRIORITIES",
                         help="Write priority override name=N (repeatable)",
                         action="append",
                         type=str,
                         default=[])
    install.add_argument("--error-on-warnings",
                         dest="ERROR_ON_WARNINGS",
                         help="Exit with a non-zero status code if warnings are present.",
                         action="store_true")

    uninstall = subparsers.add_parser("uninstall", help="Remove an installed package")
    _add_common_arguments(uninstall)
    uninstall.add_argument("package",
                           metavar="PACKAGE",
                           help="Installed package name")
    uninstall.add_argument("-r", "--recursive",
                           dest="RECURSIVE",
                           help="Also remove dependencies nothing else needs",
                           action="store_true")
    uninstall.add_argument("--error-on-warnings",
                           dest="ERROR_ON_WARNINGS",
                           help="Exit with a non-zero status code if warnings are present.",
                           action="store_true")

    list_cmd = subparsers.add_parser("list", help="Print installed packages as JSON")
    _add_common_arguments(list_cmd)

    platforms = subparsers.add_parser("platforms", help="Print known and detected platforms as JSON")
    _add_common_arguments(platforms)

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
