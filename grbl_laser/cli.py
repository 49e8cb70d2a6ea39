#!/usr/bin/env python3
"""Thin CLI around the `GrblLaser` driver.

This script is intentionally minimal: it builds a config from flags, calls
library functions and returns meaningful exit codes (0 ok, 1 usage, 2 failure).
"""

import argparse
import json
import logging
import sys

from .config import GrblConfig
from .csv_logger import CSVLogger
from .driver import GrblLaser
from .job import Job, LaserProperty, RasterPart
from .protocol import GrblError, GrblJobError
from .transport import MockTransport


def build_config(args) -> GrblConfig:
    data = {}
    if args.config:
        with open(args.config) as f:
            data.update(json.load(f))
    overrides = {
        "port": args.port,
        "baudrate": args.baud,
        "init_delay": args.init_delay,
        "identification_line": args.ident,
        "homing": args.homing,
        "pre_job_gcode": args.pre,
        "post_job_gcode": args.post,
    }
    data.update({k: v for k, v in overrides.items() if v is not None})
    if args.mock:
        data["init_delay"] = 0
    return GrblConfig.from_dict(data)


def load_job(args) -> Job:
    if args.cmd == "engrave":
        prop = LaserProperty(power=args.power, speed=args.speed, focus=args.focus)
        part = RasterPart.from_image(args.image, x=args.x, y=args.y, dpi=args.dpi, laser_property=prop)
        return Job(parts=(part,), name=args.image)
    with open(args.job) as f:
        return Job.from_dict(json.load(f))


def main(argv=None):
    parser = argparse.ArgumentParser(description="GRBL laser CLI")
    parser.add_argument("--port", help="serial port, or 'auto'")
    parser.add_argument("--baud", type=int)
    parser.add_argument("--init-delay", type=int, help="seconds to wait for board reset, 0 = soft reset")
    parser.add_argument("--ident", help="banner prefix, empty to skip identification")
    parser.add_argument("--homing", action="store_true", default=None, help="send $H before the job")
    parser.add_argument("--pre", help="pre-job G-code, comma separated")
    parser.add_argument("--post", help="post-job G-code, comma separated")
    parser.add_argument("--config", help="JSON file with config options")
    parser.add_argument("--csv", help="write a CSV log of every line sent")
    parser.add_argument("--mock", action="store_true", help="use an auto-responding mock device")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("connect", help="handshake with the controller and disconnect")

    p = sub.add_parser("preview", help="print the G-code a job would send")
    p.add_argument("job", help="job JSON file")

    p = sub.add_parser("send", help="send a job JSON file")
    p.add_argument("job")

    p = sub.add_parser("engrave", help="engrave an image")
    p.add_argument("image")
    p.add_argument("--power", type=float, default=100.0)
    p.add_argument("--speed", type=float, default=100.0)
    p.add_argument("--focus", type=float, default=0.0)
    p.add_argument("--dpi", type=float, default=500.0)
    p.add_argument("--x", type=int, default=0)
    p.add_argument("--y", type=int, default=0)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    if not args.cmd:
        parser.print_help()
        return 1

    try:
        config = build_config(args)
    except (OSError, ValueError) as e:
        print(f"Bad configuration: {e}", file=sys.stderr)
        return 1

    csv_logger = CSVLogger(args.csv) if args.csv else None
    factory = (lambda port: MockTransport(auto_respond=True, port=port)) if args.mock else None
    driver = GrblLaser(config, transport_factory=factory, csv_logger=csv_logger)

    try:
        if args.cmd == "connect":
            session = driver.connect()
            session.close()
            print(f"Found Grbl board on {config.port}")
            return 0

        job = load_job(args)
        if args.cmd == "preview":
            sequence = driver.preview_job(job)
            sys.stdout.write(sequence.to_text())
            print(sequence.summary(), file=sys.stderr)
            return 0

        result = driver.send_job(job)
        print(result["message"])
        return 0
    except GrblJobError as e:
        print(f"Job failed: {e}", file=sys.stderr)
        return 2
    except (GrblError, OSError) as e:
        print(str(e), file=sys.stderr)
        return 2
    finally:
        if csv_logger:
            csv_logger.close()


if __name__ == "__main__":
    raise SystemExit(main())
