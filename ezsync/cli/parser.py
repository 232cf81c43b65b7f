import argparse
import configparser
from argparse import ArgumentTypeError
from pathlib import Path

from ..version import NAME, VERSION


def non_negative_int(value: str) -> int:
    try:
        result = int(value)
    except ValueError:
        raise ArgumentTypeError(f"{value!r} is not an integer")
    if result < 0:
        raise ArgumentTypeError("must not be negative")
    return result


def positive_float(value: str) -> float:
    try:
        result = float(value)
    except ValueError:
        raise ArgumentTypeError(f"{value!r} is not a number")
    if result <= 0:
        raise ArgumentTypeError("must be greater than 0")
    return result


DEVICE_PARSER = argparse.ArgumentParser(add_help=False)
DEVICE_PARSER_GROUP = DEVICE_PARSER.add_argument_group(
    title="device arguments",
    description="how to reach the EZ-Share card",
)
DEVICE_PARSER_GROUP.add_argument(
    "--url", "-u",
    type=str,
    metavar="URL",
    help="base url of the card (default: http://192.168.4.1)"
)
DEVICE_PARSER_GROUP.add_argument(
    "--proxy", "-p",
    type=str,
    metavar="HOST:PORT",
    help="SOCKS5 proxy to reach the card through"
)
DEVICE_PARSER_GROUP.add_argument(
    "--timeout",
    type=positive_float,
    metavar="SECONDS",
    help="timeout for a single request"
)
DEVICE_PARSER_GROUP.add_argument(
    "--retries",
    type=non_negative_int,
    metavar="N",
    help="how often to retry requests that failed with a timeout or server error"
)
DEVICE_PARSER_GROUP.add_argument(
    "--user-agent",
    type=str,
    metavar="STRING",
    help="user agent to send with every request"
)


def load_device(
        args: argparse.Namespace,
        section: configparser.SectionProxy,
) -> None:
    if args.url is not None:
        section["url"] = args.url
    if args.proxy is not None:
        section["proxy"] = args.proxy
    if args.timeout is not None:
        section["timeout"] = str(args.timeout)
    if args.retries is not None:
        section["retries"] = str(args.retries)
    if args.user_agent is not None:
        section["user_agent"] = args.user_agent


PARSER = argparse.ArgumentParser(prog=NAME)
PARSER.set_defaults(command=None, action="sync")
PARSER.add_argument(
    "--version",
    action="version",
    version=f"{NAME} {VERSION}",
)
PARSER.add_argument(
    "--config", "-c",
    type=Path,
    metavar="PATH",
    help="custom config file"
)
PARSER.add_argument(
    "--dump-config",
    action="store_true",
    help="dump current configuration to the default config path and exit"
)
PARSER.add_argument(
    "--dump-config-to",
    metavar="PATH",
    help="dump current configuration to a file and exit."
    " Use '-' as path to print to stdout instead"
)
PARSER.add_argument(
    "--explain",
    action=argparse.BooleanOptionalAction,
    help="log and explain in detail what ezsync is doing"
)
PARSER.add_argument(
    "--status",
    action=argparse.BooleanOptionalAction,
    help="print status updates while ezsync is syncing"
)
PARSER.add_argument(
    "--report",
    action=argparse.BooleanOptionalAction,
    help="print a report of all synced files and errors before exiting"
)


def load_default_section(
        args: argparse.Namespace,
        parser: configparser.ConfigParser,
) -> None:
    section = parser[parser.default_section]

    if args.explain is not None:
        section["explain"] = "yes" if args.explain else "no"
    if args.status is not None:
        section["status"] = "yes" if args.status else "no"
    if args.report is not None:
        section["report"] = "yes" if args.report else "no"


SUBPARSERS = PARSER.add_subparsers(title="commands")
