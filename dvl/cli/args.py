# dvl/cli/args.py
from __future__ import annotations

import argparse
from typing import Optional, Tuple

from dvl.app.config import DvlConfig, load_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dvl", description="Water Linked DVL A50 host tool.")
    sub = parser.add_subparsers(dest="cmd", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=None, help="YAML config file (see dvl/metadata/dvl.yml).")
    common.add_argument("--host", default=None, help="DVL address (overrides config).")
    common.add_argument("--port", type=int, default=None, help="DVL TCP port (default 16171).")
    common.add_argument("--timeout", type=float, default=None, help="Command reply timeout in seconds.")
    common.add_argument("--trace", default=None, help="Append command events to this JSON-lines file.")
    common.add_argument("--log-file", default=None, help="Also write the application log to this file.")
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging on the console.")

    ps = sub.add_parser("stream", parents=[common], help="Print (and optionally record) telemetry.")
    ps.add_argument("--secs", type=float, default=None, help="Stop after this many seconds.")
    ps.add_argument("--record", default=None, metavar="DIR", help="Record reports as JSON lines into DIR.")
    kind = ps.add_mutually_exclusive_group()
    kind.add_argument("--velocity-only", action="store_true")
    kind.add_argument("--dead-reckoning-only", action="store_true")

    pst = sub.add_parser("status", parents=[common], help="Listen briefly and print link counters.")
    pst.add_argument("--secs", type=float, default=2.0)

    sub.add_parser("calibrate-gyro", parents=[common])
    sub.add_parser("reset-dr", parents=[common], help="Reset the dead reckoning estimate.")
    sub.add_parser("get-config", parents=[common])

    pp = sub.add_parser("ping", parents=[common], help="Trigger external pings.")
    pp.add_argument("--count", type=int, default=1)

    psc = sub.add_parser("set-config", parents=[common])
    psc.add_argument("parameters", help='JSON object, e.g. \'{"speed_of_sound": 1480}\'')

    return parser


def parse_args(argv: Optional[list[str]] = None) -> Tuple[argparse.Namespace, DvlConfig]:
    """
    Returns: (args, config)

    Config precedence: defaults < --config file < CLI flags.
    """
    args = build_parser().parse_args(argv)
    cfg = load_config(
        args.config,
        overrides={
            "host": args.host,
            "port": args.port,
            "cmd_timeout_s": args.timeout,
            "command_trace": args.trace,
        },
    )
    return args, cfg
