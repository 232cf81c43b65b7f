import argparse
import asyncio
import configparser
import os
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, NoReturn, Optional

import httpx

from .cli import PARSER, load_default_section
from .config import Config, ConfigDumpError, ConfigLoadError, ConfigOptionError
from .device import DeviceError
from .ezsync import Ezsync
from .logging import log
from .output_dir import OutputDirError
from .sync import SyncError


def fail(message: str, *details: str) -> NoReturn:
    log.error(message)
    for detail in details:
        log.error_contd(detail)
    sys.exit(1)


def load_config(args: argparse.Namespace) -> Config:
    """
    Builds the config either from the command's arguments or, if no command
    was given, from the config file. Global flags are applied on top.
    """

    log.explain_topic("Loading config")
    parser = configparser.ConfigParser(interpolation=None)

    try:
        if args.command is None:
            log.explain("No command given, reading the config file")
            Config.load_parser(parser, path=args.config)
        else:
            log.explain("Building the config from the command line")
            args.command(args, parser)
    except ConfigLoadError as e:
        fail(str(e), e.reason)

    load_default_section(args, parser)
    return Config(parser)


def configure_logging(args: argparse.Namespace, config: Optional[Config] = None) -> None:
    """
    Called once before the config is loaded, with CLI flags only, and once
    after, so the config file can fill in whatever the flags left open.
    """

    # Anything but the config itself would corrupt a dump to stdout
    if args.dump_config_to == "-":
        log.output_explain = log.output_status = log.output_report = False
        return

    flags = {"explain": args.explain, "status": args.status, "report": args.report}
    for name, flag in flags.items():
        if flag is not None:
            setattr(log, f"output_{name}", flag)
        elif config is not None:
            try:
                setattr(log, f"output_{name}", getattr(config.default_section, name)())
            except ConfigOptionError as e:
                fail(str(e))


def dump_config(args: argparse.Namespace, config: Config) -> None:
    log.explain_topic("Dumping config")

    if args.dump_config and args.dump_config_to is not None:
        fail("--dump-config and --dump-config-to are mutually exclusive")

    try:
        if args.dump_config_to == "-":
            config.dump_to_stdout()
        elif args.dump_config_to is not None:
            config.dump(Path(args.dump_config_to))
        else:
            config.dump()
    except ConfigDumpError as e:
        fail(str(e), e.reason)


def run(coroutine: Coroutine[Any, Any, None]) -> None:
    if os.name == "nt":
        # The proactor loop crashes while shutting down after asyncio.run().
        # See https://bugs.python.org/issue39232 and
        # https://github.com/encode/httpx/issues/914#issuecomment-780023632
        loop = asyncio.new_event_loop()
        loop.run_until_complete(coroutine)
        loop.run_until_complete(asyncio.sleep(1))
        loop.close()
    else:
        asyncio.run(coroutine)


def firmware(ezsync: Ezsync) -> None:
    try:
        run(ezsync.print_firmware())
    except (DeviceError, httpx.HTTPError) as e:
        fail(f"Failed to query firmware version: {e}")
    except KeyboardInterrupt:
        log.explain_topic("Interrupted")
        sys.exit(1)


def sync(ezsync: Ezsync) -> None:
    try:
        run(ezsync.run())
    except ConfigOptionError as e:
        fail(str(e))
    except (SyncError, OutputDirError) as e:
        log.error(f"Sync failed: {e}")
        ezsync.print_report()
        sys.exit(1)
    except KeyboardInterrupt:
        log.explain_topic("Interrupted, files synced so far are kept")
        ezsync.print_report()
        sys.exit(1)
    except Exception:
        log.unexpected_exception()
        ezsync.print_report()
        sys.exit(1)

    ezsync.print_report()
    if ezsync.failed:
        sys.exit(1)


def main() -> None:
    args = PARSER.parse_args()

    # Loading the config may already log, so CLI flags are applied first
    configure_logging(args)
    config = load_config(args)
    configure_logging(args, config)

    if args.dump_config or args.dump_config_to is not None:
        dump_config(args, config)
        sys.exit()

    try:
        ezsync = Ezsync(config)
    except ConfigOptionError as e:
        fail(str(e))

    if args.action == "firmware":
        firmware(ezsync)
    else:
        sync(ezsync)


if __name__ == "__main__":
    main()
