# dvl/cli/main.py
from __future__ import annotations

from pathlib import Path
from typing import Optional

from dvl.core.errors import DvlError

from dvl.cli.args import parse_args
from dvl.cli.commands import (
    cmd_calibrate_gyro,
    cmd_get_config,
    cmd_ping,
    cmd_reset_dr,
    cmd_set_config,
    cmd_status,
    cmd_stream,
    configure_logging,
)

COMMANDS = {
    "stream": cmd_stream,
    "status": cmd_status,
    "calibrate-gyro": cmd_calibrate_gyro,
    "reset-dr": cmd_reset_dr,
    "ping": cmd_ping,
    "get-config": cmd_get_config,
    "set-config": cmd_set_config,
}


def main(argv: Optional[list[str]] = None) -> int:
    try:
        args, cfg = parse_args(argv)
        configure_logging(
            verbose=args.verbose,
            log_file=Path(args.log_file) if args.log_file else None,
        )

        handler = COMMANDS.get(args.cmd)
        if handler is None:
            return 2
        return handler(args, cfg)
    except DvlError as e:
        print(f"ERROR: {e.message}")
        if e.hint:
            print(f"Hint: {e.hint}")
        return 1
