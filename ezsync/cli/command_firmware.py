import argparse
import configparser

from ..logging import log
from .parser import DEVICE_PARSER, SUBPARSERS, load_device

SUBPARSER = SUBPARSERS.add_parser(
    "firmware",
    parents=[DEVICE_PARSER],
    help="print the card's firmware version",
)


def load(
        args: argparse.Namespace,
        parser: configparser.ConfigParser,
) -> None:
    log.explain("Creating config for command 'firmware'")

    parser["device"] = {}
    load_device(args, parser["device"])


SUBPARSER.set_defaults(command=load, action="firmware")
