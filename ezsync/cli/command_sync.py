import argparse
import configparser
from pathlib import Path

from ..logging import log
from .parser import DEVICE_PARSER, SUBPARSERS, load_device

SUBPARSER = SUBPARSERS.add_parser(
    "sync",
    parents=[DEVICE_PARSER],
    help="mirror the card's files into a local directory",
)

GROUP = SUBPARSER.add_argument_group(
    title="sync arguments",
    description="arguments for the 'sync' command",
)
GROUP.add_argument(
    "target",
    type=Path,
    metavar="TARGET",
    help="local directory to sync into"
)
GROUP.add_argument(
    "--remote-root",
    type=str,
    metavar="PATH",
    help="directory on the card to start syncing at (default: /)"
)
GROUP.add_argument(
    "--dry-run", "-n",
    action=argparse.BooleanOptionalAction,
    help="only print what would be synced without touching any files"
)


def load(
        args: argparse.Namespace,
        parser: configparser.ConfigParser,
) -> None:
    log.explain("Creating config for command 'sync'")

    parser["device"] = {}
    load_device(args, parser["device"])

    parser["sync"] = {}
    section = parser["sync"]
    section["target"] = str(args.target)
    if args.remote_root is not None:
        section["remote_root"] = args.remote_root
    if args.dry_run is not None:
        section["dry_run"] = "yes" if args.dry_run else "no"


SUBPARSER.set_defaults(command=load, action="sync")
